"""
Renders a patient's structured record into the prompt text used to draft notes.

Everything here is a pure function of its arguments: no network, no clock, no
randomness. Given the same patient, note type, prior notes and extra context,
`build_prompt` always returns byte-identical text.

Every axis of the diagnosis, MSE and PE is always present in the output. Empty
fields render an explicit marker instead of being dropped, so the model can tell
"normal" from "not assessed".
"""
# chartaid/modules/formatter.py

from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Sequence

from modules.fields import OTHERS, ensure_list, get_path
from modules.forms import DIAGNOSIS_FIELDS, MSE_AXES, ORIENTATION_FLAGS, PE_FIELDS, with_defaults
from modules.models import RecordType

DELIMITER = ', '
OTHER_FALLBACK = '其他'
DIAGNOSIS_OTHER_FALLBACK = '其他診斷'
NO_DIAGNOSIS = '無特定診斷'
NOT_ASSESSED = '未評估'
NO_PE_FINDINGS = '無特定異常'
DEFAULT_CLINICAL_FOCUS = '穩定觀察中'
NO_BACKGROUND = '無'
NORMAL = '正常'
ABNORMAL = '異常'

SYSTEM_INSTRUCTION = """你是一個在嘉南療養院服務的資深醫療AI助手。
【核心規範】
1. 格式絕對隔離：只有病程紀錄 (Progress Note) 可使用 SOAP 標籤，其餘一律禁止。
2. 禁止符號：輸出內容中絕對不得包含雙星號粗體語法。
3. 專業度：維持資深精神科醫師/護理師口吻。"""


class NoteFormat:
    """Formatting rules for one note type.

    Attributes:
        header (str): Required first line of the generated note.
        allow_soap (bool): Whether S/O/A/P section labels are permitted.
        rules (list): Rules placed after the header rule.
        admission_rule (str): Template with a `{date}` slot, used only when the
            patient has an admission date.
        closing_rules (list): Rules placed after the admission rule.
    """
    def __init__(self, header, allow_soap=False, rules=None, admission_rule=None, closing_rules=None):
        self.header = header
        self.allow_soap = allow_soap
        self.rules = list(rules or [])
        self.admission_rule = admission_rule
        self.closing_rules = list(closing_rules or [])


def _plain(record_type: RecordType) -> NoteFormat:
    return NoteFormat(record_type.value)


NOTE_FORMATS = {
    RecordType.PROGRESS_NOTE: NoteFormat(
        RecordType.PROGRESS_NOTE.value,
        allow_soap=True,
        rules=[
            '採用「SOAP 格式」。',
            'S (Subjective): 僅記錄個案主訴。',
            'O (Objective): 極簡描述 MSE/PE。只准列出異常發現，忽略正常項目。',
            'A (Assessment): 絕對僅能列出「診斷名稱」。嚴禁包含病情分析文字。',
            'P (Plan): 必須以「純條列式」列出處置計畫（如 1., 2., 3...）。嚴禁散文描述。',
        ],
    ),
    RecordType.PHYSIO_PSYCHO_EXAM: _plain(RecordType.PHYSIO_PSYCHO_EXAM),
    RecordType.PSYCHOTHERAPY: _plain(RecordType.PSYCHOTHERAPY),
    RecordType.SUPPORTIVE_PSYCHOTHERAPY: _plain(RecordType.SUPPORTIVE_PSYCHOTHERAPY),
    RecordType.SPECIAL_HANDLING: _plain(RecordType.SPECIAL_HANDLING),
    RecordType.WEEKLY_SUMMARY: _plain(RecordType.WEEKLY_SUMMARY),
    RecordType.MONTHLY_SUMMARY: _plain(RecordType.MONTHLY_SUMMARY),
    RecordType.OFF_DUTY_SUMMARY: NoteFormat(
        RecordType.OFF_DUTY_SUMMARY.value,
        rules=['內容生成請主要使用「中文」。'],
        admission_rule='必須在內容開頭提及病患於 {date} 入院住院治療。',
    ),
    RecordType.DISCHARGE_NOTE: NoteFormat(
        RecordType.DISCHARGE_NOTE.value,
        rules=['採用「高度專業醫療整合風格」撰寫。'],
        admission_rule='內容首段必須提及病患自 {date} 入院以來之病程總結。',
        closing_rules=['結尾必須結合後續的安置計畫。'],
    ),
}


def format_value(value, other_text: Optional[str] = None, empty_marker: str = NOT_ASSESSED) -> str:
    """Collapses a single- or multi-select value into display text.

    The sentinel is replaced by its free text (or a generic fallback), lists are
    joined with the fixed delimiter and empty values become `empty_marker`.
    """
    values = ensure_list(value)
    if not values:
        return empty_marker
    other = other_text or OTHER_FALLBACK
    return DELIMITER.join(other if v == OTHERS else v for v in values)


def format_diagnosis_list(values, other_text: Optional[str] = None) -> str:
    values = ensure_list(values)
    if not values:
        return NO_DIAGNOSIS
    other = other_text or DIAGNOSIS_OTHER_FALLBACK
    return DELIMITER.join(other if v == OTHERS else v for v in values)


def _field_text(record: Dict, field, empty_marker: str) -> str:
    other_text = get_path(record, field.other_path) if field.other_path else None
    return format_value(get_path(record, field.path), other_text, empty_marker)


def format_orientation(orientation: Optional[Dict]) -> str:
    """Renders the orientation flags as `time/place/person`, each normal or abnormal."""
    orientation = orientation or {}
    return '/'.join(ABNORMAL if orientation.get(flag) else NORMAL for flag, _ in ORIENTATION_FLAGS)


def format_mse(mse: Optional[Dict]) -> str:
    mse = with_defaults('mse', mse)
    lines = []
    for axis in MSE_AXES:
        parts = []
        if axis.key == 'cognition':
            parts.append(f"定向感(時/地/人): {format_orientation(get_path(mse, ('cognition', 'orientation')))}")
        for field in axis.fields:
            text = _field_text(mse, field, NOT_ASSESSED)
            # A field named like its axis reads as "[title] value".
            parts.append(text if field.note_label == axis.note_title else f"{field.note_label}: {text}")
        lines.append(f"[{axis.note_title}] " + DELIMITER.join(parts))
    return '\n'.join(lines)


def format_pe(pe: Optional[Dict]) -> str:
    pe = with_defaults('pe', pe)
    return '\n'.join(f"[{field.note_label}] {_field_text(pe, field, NO_PE_FINDINGS)}" for field in PE_FIELDS)


def format_diagnosis(diagnosis: Optional[Dict]) -> str:
    """Renders both diagnosis categories as `psychiatric / medical`."""
    diagnosis = with_defaults('diagnosis', diagnosis)
    psychiatric, medical = DIAGNOSIS_FIELDS
    return ' / '.join([
        format_diagnosis_list(get_path(diagnosis, psychiatric.path), get_path(diagnosis, psychiatric.other_path)),
        format_diagnosis_list(get_path(diagnosis, medical.path), get_path(diagnosis, medical.other_path)),
    ])


def format_admission_date(admission_date: Optional[Dict]) -> str:
    # A date with a blanked component is treated as absent.
    if not admission_date or any(admission_date.get(part) is None for part in ('year', 'month', 'day')):
        return ''
    return f"民國 {admission_date.get('year')} 年 {admission_date.get('month')} 月 {admission_date.get('day')} 日"


def build_format_instruction(record_type, admission_date: Optional[Dict] = None) -> str:
    """Builds the numbered formatting rules for a note type.

    Args:
        record_type: A `RecordType` member or value.
        admission_date (dict): Injected into the admission rule when present.

    Returns:
        str: One rule per line, numbered from 1.
    """
    note_format = NOTE_FORMATS[RecordType(record_type)]
    rules = []
    if not note_format.allow_soap:
        rules.append('嚴格禁止使用 SOAP 標籤。')
    rules.append(f"開頭第一行必須是「{note_format.header}」。")
    rules.extend(note_format.rules)
    date_text = format_admission_date(admission_date)
    if note_format.admission_rule and date_text:
        rules.append(note_format.admission_rule.format(date=date_text))
    rules.extend(note_format.closing_rules)
    return '\n'.join(f"{i}. {rule}" for i, rule in enumerate(rules, start=1))


def format_reference_notes(reference_notes: Iterable[Dict]) -> str:
    """Quotes earlier notes, oldest first, so the model can keep continuity."""
    notes = sorted(reference_notes or [], key=lambda n: n.get('created_at', ''))
    blocks = []
    for note in notes:
        heading = f"({note.get('created_at', '')[:10]}) {note.get('record_type', '')}".strip()
        blocks.append(f"{heading}\n{note.get('content', '')}")
    return '\n---\n'.join(blocks)


def build_patient_context(patient: Dict, reference_notes: Sequence[Dict] = (), extra_info: str = '') -> str:
    lines: List[str] = [
        '【臨床素材】',
        f"- 診斷：{format_diagnosis(patient.get('diagnosis'))}",
        f"- 背景：{patient.get('background') or NO_BACKGROUND}",
        f"- 臨床重點：{patient.get('clinical_focus') or DEFAULT_CLINICAL_FOCUS}",
        f"- MSE：\n{format_mse(patient.get('mse'))}",
        f"- PE & NE：\n{format_pe(patient.get('pe'))}",
    ]
    if extra_info:
        lines.append(f"- 附加說明/原因/安置計畫：{extra_info}")
    references = format_reference_notes(reference_notes)
    if references:
        lines.append(f"【參考紀錄】\n{references}")
    return '\n'.join(lines)


def build_prompt(patient: Dict, record_type, reference_notes: Sequence[Dict] = (), extra_info: str = '') -> str:
    """Assembles the complete prompt for one note.

    Args:
        patient (dict): The stored patient, possibly with unset form sections.
        record_type: A `RecordType` member or value.
        reference_notes (list): Earlier `MedicalRecord` dicts for this patient.
        extra_info (str): Free text typed by the clinician for this note.

    Returns:
        str: The clinical context followed by the note type's formatting rules.
    """
    context = build_patient_context(patient, reference_notes, extra_info)
    instruction = build_format_instruction(record_type, patient.get('admission_date'))
    return f"{context}\n\n{instruction}"
