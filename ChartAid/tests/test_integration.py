"""
Integration tests for the ChartAid application.

These tests verify that `ChartAidService`, the form helpers, the note formatter and
the Gemini gateway work together: filling in a patient's forms, drafting notes from
them, and keeping the generated records.
"""
from modules import gemini as gemini_module
from modules.fields import OTHERS, apply_other_text, apply_selection, apply_single
from modules.forms import DIAGNOSIS_FIELDS, mse_fields
from modules.models import RecordType


def _field(key, fields):
    return next(f for f in fields if f.key == key)


def test_forms_flow_into_generated_note(service, clinician, patient, fake_model):
    """
    Tests that saved form data reaches the model prompt.

    The clinician fills in the diagnosis and MSE the way the GUI does (through the
    field helpers), saves both, and drafts a discharge note.
    """
    pid = patient['patient_id']
    record = service.get_patient(pid)

    psychiatric = _field('psychiatric', DIAGNOSIS_FIELDS)
    diagnosis = apply_selection(record['diagnosis'], psychiatric, ['Schizophrenia', OTHERS])
    diagnosis = apply_other_text(diagnosis, psychiatric, 'Alcohol use disorder')
    assert service.update_patient_section(pid, clinician.user_id, 'diagnosis', diagnosis) is True

    mse = apply_selection(record['mse'], _field('perception.hallucinations', mse_fields()), ['幻聽'])
    mse = apply_single(mse, _field('insight', mse_fields()), '完全缺乏')
    assert service.update_patient_section(pid, clinician.user_id, 'mse', mse) is True
    assert service.update_patient(pid, clinician.user_id, {'clinical_focus': '幻聽頻率'}) is True

    fake_model.reply = "Discharge Note\n病患病況穩定。"
    text, stored = service.generate_and_store_record(pid, RecordType.DISCHARGE_NOTE, clinician.user_id, '返家')

    assert text == "Discharge Note\n病患病況穩定。"
    assert stored['content'] == text
    assert stored['record_type'] == RecordType.DISCHARGE_NOTE.value
    assert stored['author_id'] == clinician.user_id

    prompt = fake_model.prompts[0]
    assert '- 診斷：Schizophrenia, Alcohol use disorder / 無特定診斷' in prompt
    assert '[知覺] 幻覺: 幻聽' in prompt
    assert '[病識感] 完全缺乏' in prompt
    assert '- 臨床重點：幻聽頻率' in prompt
    assert '- 附加說明/原因/安置計畫：返家' in prompt
    assert '病患自 民國 114 年 3 月 5 日 入院以來' in prompt
    assert '嚴格禁止使用 SOAP 標籤。' in prompt


def test_records_are_append_only_and_used_as_references(service, clinician, patient, fake_model):
    pid = patient['patient_id']
    fake_model.reply = "第一份紀錄"
    _, first = service.generate_and_store_record(pid, RecordType.WEEKLY_SUMMARY, clinician.user_id)
    fake_model.reply = "第二份紀錄"
    _, second = service.generate_and_store_record(pid, RecordType.WEEKLY_SUMMARY.value, clinician.user_id)

    records = service.get_records_for_patient(pid)
    assert {r['record_id'] for r in records} == {first['record_id'], second['record_id']}
    assert first['content'] == "第一份紀錄"
    assert "【參考紀錄】" not in fake_model.prompts[0]
    assert "第一份紀錄" in fake_model.prompts[1]


def test_failed_generation_stores_nothing(service, clinician, patient, fake_model):
    pid = patient['patient_id']
    fake_model.error = RuntimeError("network down")

    text, stored = service.generate_and_store_record(pid, RecordType.PROGRESS_NOTE, clinician.user_id)

    assert text == gemini_module.ERROR_MESSAGE
    assert stored is None
    assert service.get_records_for_patient(pid) == []

    fake_model.error = None
    fake_model.reply = ""
    text, stored = service.generate_and_store_record(pid, RecordType.PROGRESS_NOTE, clinician.user_id)
    assert text == gemini_module.EMPTY_RESPONSE_MESSAGE
    assert stored is None


def test_progress_note_prompt_allows_soap(service, clinician, patient, fake_model):
    service.generate_and_store_record(patient['patient_id'], RecordType.PROGRESS_NOTE, clinician.user_id)
    prompt = fake_model.prompts[0]
    assert '採用「SOAP 格式」。' in prompt
    assert '嚴格禁止使用 SOAP 標籤' not in prompt


def test_generation_for_unknown_patient(service, clinician, fake_model):
    assert service.generate_and_store_record("missing", RecordType.PROGRESS_NOTE, clinician.user_id) == (None, None)
    assert fake_model.prompts == []


def test_patient_deletion_removes_records(service, clinician, patient, fake_model):
    pid = patient['patient_id']
    service.generate_and_store_record(pid, RecordType.MONTHLY_SUMMARY, clinician.user_id)

    assert service.request_patient_deletion(pid, clinician.user_id)['name'] == "王小明"
    assert service.confirm_patient_deletion(pid, clinician.user_id, pid) is True
    assert service.get_records_for_patient(pid) == []
