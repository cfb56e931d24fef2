"""
System tests for the ChartAid application.

These tests run complete user journeys against `ChartAidService`, from the admin
creating an account through a clinician managing a patient, and check that the
state survives a restart of the service.
"""
from datetime import date

from modules.models import RecordType
from modules.roster import ChartAidService, calculate_age, mask_name


def test_end_to_end_roster_journey(service, fake_model):
    """
    Walks through a clinician's full session.

    The admin creates the account, the clinician adds a patient, drafts a note,
    and deletes the patient, which only happens after confirmation.
    """
    assert service.login("", "0614", "ADMIN").is_admin
    user = service.create_user("林醫師", "pass1234", "NP")

    clinician = service.login("林醫師", "pass1234", "NP")
    assert clinician.user_id == user.user_id

    added = service.add_patient(clinician.user_id, {
        'name': "陳小華", 'ward': "3A", 'bed': "12", 'gender': 'female', 'birth_year_roc': 80,
    })
    roster = service.list_patients(clinician.user_id)
    assert [p['patient_id'] for p in roster] == [added['patient_id']]
    assert mask_name(roster[0]['name']) == "陳Ｏ華"
    assert calculate_age(roster[0]['birth_year_roc']) == date.today().year - 1911 - 80

    pid = added['patient_id']
    text, record = service.generate_and_store_record(pid, RecordType.SPECIAL_HANDLING, clinician.user_id)
    assert record['content'] == text
    assert '[風險評估] 未評估' in fake_model.prompts[0]

    # Deleting without a confirmation leaves the patient in place.
    service.confirm_patient_deletion(pid, clinician.user_id, None)
    assert service.get_patient(pid) is not None

    assert service.request_patient_deletion(pid, clinician.user_id) is not None
    assert service.confirm_patient_deletion(pid, clinician.user_id, pid) is True
    assert service.list_patients(clinician.user_id) == []


def test_system_persistence_across_service_instances(service, clinician, patient, fake_model, data_file, encryptor):
    """
    Tests that everything written by one service instance is read back by the next.
    """
    pid = patient['patient_id']
    mse = service.get_patient(pid)['mse']
    mse['cognition']['orientation']['place'] = True
    service.update_patient_section(pid, clinician.user_id, 'mse', mse)
    service.generate_and_store_record(pid, RecordType.PROGRESS_NOTE, clinician.user_id)
    service.change_admin_password("n3w-admin")

    restarted = ChartAidService(data_file=data_file, encryptor=encryptor)

    assert restarted.login("林醫師", "pass1234", "RESIDENT")
    assert restarted.login("", "n3w-admin", "ADMIN")
    reloaded = restarted.get_patient(pid)
    assert reloaded['name'] == "王小明"
    assert reloaded['admission_date'] == {'year': 114, 'month': 3, 'day': 5}
    assert reloaded['mse']['cognition']['orientation'] == {'time': False, 'place': True, 'person': False}
    assert len(restarted.get_records_for_patient(pid)) == 1
