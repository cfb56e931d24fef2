"""
This module defines the primary data models for the ChartAid application.

These classes structure the data managed by `ChartAidService` and stored in the
application's encrypted document store. Each model is persisted as its `__dict__`,
so the attribute names below are also the stored field names.
"""
# chartaid/modules/models.py

from datetime import datetime
from enum import Enum
import uuid


class UserRole(str, Enum):
    """Staff roles. Only the administrator manages accounts; the others keep rosters."""
    ADMIN = 'ADMIN'
    NP = 'NP'              # nurse practitioner
    RESIDENT = 'RESIDENT'  # resident physician
    PA = 'PA'              # physician assistant

    @property
    def display_name(self) -> str:
        return ROLE_DISPLAY_NAMES[self]


ROLE_DISPLAY_NAMES = {
    UserRole.ADMIN: '管理員',
    UserRole.NP: '專科護理師',
    UserRole.RESIDENT: '住院醫師',
    UserRole.PA: '醫師助理',
}

CLINICIAN_ROLES = [UserRole.NP, UserRole.RESIDENT, UserRole.PA]


class RecordType(str, Enum):
    """The closed set of note types a clinician can draft. Values are the ward's titles."""
    PROGRESS_NOTE = '病程紀錄 (Progress Note)'
    PHYSIO_PSYCHO_EXAM = '生理心理功能檢查紀錄'
    PSYCHOTHERAPY = '特殊心理治療紀錄'
    SUPPORTIVE_PSYCHOTHERAPY = '支持性心理治療紀錄'
    SPECIAL_HANDLING = '精神科住院病人特別處理紀錄'
    WEEKLY_SUMMARY = 'Weekly Summary'
    MONTHLY_SUMMARY = 'Monthly Summary'
    OFF_DUTY_SUMMARY = 'Off Duty note'
    DISCHARGE_NOTE = 'Discharge Note'


GENDERS = {
    'male': '男',
    'female': '女',
    'other': '其他',
}


class User:
    """Represents a staff account.

    Attributes:
        user_id (str): A unique identifier for the user.
        name (str): The display and login name.
        role (str): A `UserRole` value.
        password_hash (str): Salted SHA-256 hash of the password.
        salt (str): The per-user salt.
    """
    def __init__(self, name, role, password_hash, salt, user_id=None):
        self.user_id = user_id or str(uuid.uuid4())
        self.name = name
        self.role = UserRole(role).value
        self.password_hash = password_hash
        self.salt = salt

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN.value


class Patient:
    """Represents one inpatient on a clinician's roster.

    Attributes:
        patient_id (str): A unique identifier for the patient.
        clinician_id (str): The `user_id` of the owning clinician.
        name (str): Full name. Required.
        ward (str): Ward code, e.g. "3A".
        bed (str): Bed number within the ward.
        gender (str): 'male', 'female' or 'other'.
        birth_year_roc (int): Birth year in the Republic-of-China calendar.
        admission_date (dict): {"year", "month", "day"} in the ROC calendar, or None.
        background (str): Free-text history.
        clinical_focus (str): What the team is currently watching.
        diagnosis (dict): Diagnosis checklist record.
        mse (dict): Mental Status Exam record.
        pe (dict): Physical and neurological exam record.
    """
    def __init__(self, clinician_id, name, ward='', bed='', gender='male', birth_year_roc=None,
                 admission_date=None, background='', clinical_focus='', diagnosis=None, mse=None,
                 pe=None, patient_id=None):
        self.patient_id = patient_id or str(uuid.uuid4())
        self.clinician_id = clinician_id
        self.name = name
        self.ward = ward
        self.bed = bed
        self.gender = gender
        self.birth_year_roc = birth_year_roc
        self.admission_date = admission_date
        self.background = background
        self.clinical_focus = clinical_focus
        self.diagnosis = diagnosis
        self.mse = mse
        self.pe = pe


class MedicalRecord:
    """A generated note. Records are append-only: regeneration creates a new one.

    Attributes:
        record_id (str): A unique identifier for the record.
        patient_id (str): The patient the note is about.
        author_id (str): The clinician who requested the draft.
        record_type (str): A `RecordType` value.
        content (str): The generated text, exactly as returned by the model.
        created_at (str): ISO-formatted creation timestamp.
    """
    def __init__(self, patient_id, author_id, record_type, content, record_id=None, created_at=None):
        self.record_id = record_id or str(uuid.uuid4())
        self.patient_id = patient_id
        self.author_id = author_id
        self.record_type = RecordType(record_type).value
        self.content = content
        self.created_at = created_at or datetime.now().isoformat()
