"""
Field catalogue and default skeletons for the clinical forms.

The diagnosis checklist, the Mental Status Exam and the Physical/Neuro Exam are
described here as data (`Field` objects grouped into axes). The GUI renders its
widgets from this catalogue and the note formatter reads the same paths, so an
option added here shows up in both places.

Each form also has a default skeleton. Components are handed `with_defaults(...)`
rather than the raw stored record, so every nested key exists and downstream code
never needs per-field None checks.
"""
# chartaid/modules/forms.py

from __future__ import annotations

import copy
from datetime import date
from typing import Dict, List, Optional

from modules.fields import Field

ROC_EPOCH_OFFSET = 1911
SECTIONS = ('diagnosis', 'mse', 'pe')


class Axis:
    """A titled group of fields, rendered as one form section and one note line."""
    def __init__(self, key, title, note_title, fields):
        self.key = key
        self.title = title
        self.note_title = note_title
        self.fields = list(fields)


# Diagnosis

DIAGNOSIS_FIELDS = [
    Field(
        ('psychiatric',), '精神科診斷',
        ['Schizophrenia', 'Bipolar disorder', 'Major depressive disorder',
         'Dementia (Major neurocognitive disorder)', 'Organic mental disorder',
         'Intellectual disability (Mental retardation)'],
        other_path=('psychiatric_other',),
    ),
    Field(
        ('medical',), '內外科診斷',
        ['Hypertension', 'Hyperlipidemia', 'Diabetes mellitus'],
        other_path=('medical_other',),
    ),
]


# Mental Status Exam

MSE_AXES = [
    Axis('appearance', 'A. 外觀與態度 (Appearance & Attitude)', '外觀態度', [
        Field(('appearance', 'cleanliness'), '整潔度', ['整潔', '不整潔', '極度邋遢'],
              multi=False, other_path=('appearance', 'cleanliness_other'), note_label='整潔'),
        Field(('appearance', 'cooperation'), '合作度', ['合作', '不合作', '敵意', '過度防衛'],
              other_path=('appearance', 'cooperation_other'),
              exclude_map={'合作': ['不合作', '敵意', '過度防衛']}, note_label='合作'),
        Field(('appearance', 'psychomotor'), '精神運動', ['正常', '遲緩', '躁動', '異常動作 (Tic/顫抖)'],
              other_path=('appearance', 'other'),
              exclude_map={'正常': ['遲緩', '躁動', '異常動作 (Tic/顫抖)']}),
    ]),
    Axis('speech', 'B. 言語 (Speech)', '言語', [
        Field(('speech', 'speed'), '速度', ['正常', '緩慢', '快速', '不發一語'],
              multi=False, other_path=('speech', 'speed_other')),
        Field(('speech', 'volume'), '音量', ['適中', '輕聲細語', '大聲咆哮'],
              multi=False, other_path=('speech', 'volume_other')),
        Field(('speech', 'coherence'), '連貫性', ['連貫', '答非所問', '語無倫次'],
              other_path=('speech', 'other'),
              exclude_map={'連貫': ['答非所問', '語無倫次']}),
    ]),
    Axis('mood', 'C. 情緒與情感 (Mood & Affect)', '情緒情感', [
        Field(('mood', 'subjective'), '主觀情緒', ['穩定', '憂鬱', '焦慮', '亢奮'],
              other_path=('mood', 'other'),
              exclude_map={'穩定': ['憂鬱', '焦慮', '亢奮']}, note_label='主觀'),
        Field(('mood', 'objective'), '客觀情感', ['適切', '平淡 (Flat)', '易怒', '不一致'],
              other_path=('mood', 'objective_other'),
              exclude_map={'適切': ['平淡 (Flat)', '易怒', '不一致']}, note_label='客觀'),
    ]),
    Axis('thought', 'D. 思維 (Thought)', '思維', [
        Field(('thought', 'process'), '過程 (邏輯)', ['邏輯連貫', '思考鬆散', '思考中斷', '思考奔馳', '意念飛耀'],
              other_path=('thought', 'process_other'),
              exclude_map={'邏輯連貫': ['思考鬆散', '思考中斷', '思考奔馳', '意念飛耀']}),
        Field(('thought', 'content'), '內容 (妄想)', ['無異常', '被害妄想', '關係妄想', '誇大妄想', '被控制妄想', '被偷妄想'],
              other_path=('thought', 'other'),
              exclude_map={'無異常': ['被害妄想', '關係妄想', '誇大妄想', '被控制妄想', '被偷妄想']}),
    ]),
    Axis('perception', 'E. 知覺 (Perception)', '知覺', [
        Field(('perception', 'hallucinations'), '幻覺', ['無', '幻聽', '幻視'],
              other_path=('perception', 'other'),
              exclude_map={'無': ['幻聽', '幻視']}),
    ]),
    Axis('cognition', 'F. 認知功能 (Cognition)', '認知功能', [
        Field(('cognition', 'attention'), '注意力', ['集中', '易分心'],
              multi=False, other_path=('cognition', 'attention_other')),
        Field(('cognition', 'memory'), '記憶力', ['近期記憶缺損', '遠期記憶缺損']),
        Field(('cognition', 'abstraction'), '抽象思考', ['無法解釋諺語'],
              other_path=('cognition', 'other')),
    ]),
    Axis('insight', 'G. 病識感 (Insight)', '病識感', [
        Field(('insight',), '病識感',
              ['完全缺乏', '部分 (知道生病但不認為需要就醫或無法配合治療)', '完整 (主動求助)'],
              multi=False),
    ]),
    Axis('risk', 'H. 風險 (Risk)', '風險評估', [
        Field(('risk',), '風險', ['無', '自傷或自殺風險', '暴力風險', '跌倒風險', '逃跑風險'],
              other_path=('risk_other',),
              exclude_map={'無': ['自傷或自殺風險', '暴力風險', '跌倒風險', '逃跑風險']}, note_label='風險評估'),
    ]),
]

# Orientation is three independent "abnormal" flags, always rendered time/place/person.
ORIENTATION_FLAGS = [
    ('time', '時間定向感異常'),
    ('place', '地點定向感異常'),
    ('person', '人物定向感異常'),
]


# Physical & Neurological Exam

def _pe_field(axis, label, options):
    return Field((axis,), label, options, other_path=(f'{axis}_other',),
                 exclude_map={options[0]: options[1:]})


PE_FIELDS = [
    _pe_field('conscious', '意識狀態', ['清醒 (Clear)', '嗜睡 (Drowsy)', '混亂 (Confused)', '木僵 (Stupor)']),
    _pe_field('heent', '頭頸部', ['無異常', '結膜蒼白', '鞏膜黃疸', '咽喉紅腫', '頸部淋巴結腫大']),
    _pe_field('chest', '胸部', ['呼吸音清晰', '囉音 (Crackles)', '哮鳴音 (Wheezing)', '呼吸音減弱']),
    _pe_field('heart', '心臟', ['規律心跳', '心雜音', '心律不整']),
    _pe_field('abdominal', '腹部', ['柔軟無壓痛', '壓痛', '腹脹', '腸音減弱']),
    _pe_field('extremities', '四肢', ['無水腫', '水腫', '活動受限', '肌力減弱']),
    _pe_field('skin', '皮膚', ['完整', '傷口', '瘀青', '皮疹', '壓瘡']),
    _pe_field('ne', '神經學', ['無局部神經學異常', '肢體無力', '步態不穩', '構音障礙', '顫抖']),
]


def mse_fields() -> List[Field]:
    """All MSE fields in form order."""
    return [field for axis in MSE_AXES for field in axis.fields]


# Default skeletons

def default_diagnosis() -> Dict:
    return {
        'psychiatric': [],
        'psychiatric_other': '',
        'medical': [],
        'medical_other': '',
    }


def default_mse() -> Dict:
    return {
        'appearance': {'cleanliness': '', 'cleanliness_other': '', 'cooperation': [],
                       'cooperation_other': '', 'psychomotor': [], 'other': ''},
        'speech': {'speed': '', 'speed_other': '', 'volume': '', 'volume_other': '',
                   'coherence': [], 'other': ''},
        'mood': {'subjective': [], 'other': '', 'objective': [], 'objective_other': ''},
        'thought': {'process': [], 'process_other': '', 'content': [], 'other': ''},
        'perception': {'hallucinations': [], 'other': ''},
        'cognition': {'orientation': {'time': False, 'place': False, 'person': False},
                      'attention': '', 'attention_other': '', 'memory': [],
                      'abstraction': [], 'other': ''},
        'insight': '',
        'risk': [],
        'risk_other': '',
    }


def default_pe() -> Dict:
    skeleton = {}
    for field in PE_FIELDS:
        skeleton[field.path[0]] = []
        skeleton[field.other_path[0]] = ''
    return skeleton


DEFAULT_FACTORIES = {
    'diagnosis': default_diagnosis,
    'mse': default_mse,
    'pe': default_pe,
}


def _fill(defaults, data):
    """Overlays stored data on a skeleton, recursing into nested sections."""
    if not isinstance(data, dict):
        return defaults
    merged = dict(defaults)
    for key, value in data.items():
        if isinstance(merged.get(key), dict) and isinstance(value, dict):
            merged[key] = _fill(merged[key], value)
        elif value is not None:
            merged[key] = value
    return merged


def with_defaults(section: str, data: Optional[Dict]) -> Dict:
    """Returns `data` with every key of the section's skeleton present.

    Args:
        section (str): 'diagnosis', 'mse' or 'pe'.
        data (dict): The stored record, possibly None or partial.

    Returns:
        dict: A complete record. The input is not modified.
    """
    if section not in DEFAULT_FACTORIES:
        raise ValueError(f"Unknown form section: {section}")
    return _fill(DEFAULT_FACTORIES[section](), copy.deepcopy(data) if data else None)


def merge_section(patient: Dict, section: str, data: Dict) -> Dict:
    """Replaces one form section on a patient, leaving the other sections untouched.

    The returned patient is a shallow copy: sibling sections are the same objects
    as before, so callers can compare them by identity.
    """
    if section not in DEFAULT_FACTORIES:
        raise ValueError(f"Unknown form section: {section}")
    updated = dict(patient)
    updated[section] = data
    return updated


# Demographics

def current_roc_year(today: Optional[date] = None) -> int:
    return (today or date.today()).year - ROC_EPOCH_OFFSET


def clamp_date_part(part: str, raw) -> Optional[int]:
    """Parses one admission-date component and clamps it into range.

    Year must be at least 1, month 1-12 and day 1-31. Day-of-month is not checked
    against the month, so dates such as Feb 30 are accepted as entered.

    Returns:
        int or None: The clamped value, or None if `raw` is not an integer.
    """
    try:
        number = int(str(raw).strip())
    except (TypeError, ValueError):
        return None
    number = max(1, number)
    if part == 'month':
        number = min(12, number)
    elif part == 'day':
        number = min(31, number)
    return number


def update_admission_date(current: Optional[Dict], part: str, raw, today: Optional[date] = None) -> Optional[Dict]:
    """Applies one edited component to an admission date.

    Args:
        current (dict): The existing {"year", "month", "day"} or None.
        part (str): 'year', 'month' or 'day'.
        raw: The user's input for that component.
        today (date): Used to seed the year when the date is first created.

    Returns:
        dict or None: The new admission date.
    """
    if part not in ('year', 'month', 'day'):
        raise ValueError(f"Unknown date component: {part}")
    value = clamp_date_part(part, raw)
    if value is None:
        if current is None:
            return None
        return {**current, part: None}
    base = current or {'year': current_roc_year(today), 'month': 1, 'day': 1}
    return {**base, part: value}
