"""
This module provides the core business logic and data management for ChartAid.

It defines the `ChartAidService` class, which is responsible for:
- Loading and saving the document store (an encrypted JSON file with the
  `config`, `users`, `patients` and `records` collections).
- Staff authentication and account management (admin and clinicians).
- The clinician's patient roster: listing, creating, editing and deleting patients,
  and saving the diagnosis, MSE and PE forms.
- Drafting medical notes through the `gemini` module and storing them as records.

Every write goes through `_commit`. The file is replaced atomically, and if it cannot
be written the in-memory state returns to the last successfully saved copy.

The service is shared by every browser session (`st.cache_resource`), so it keeps no
per-session state. Roster operations take the acting clinician's id and refuse
patients owned by someone else.
"""
# chartaid/modules/roster.py

import copy
import functools
import hashlib
import json
import locale
import logging
import os
from datetime import date

from cryptography.fernet import InvalidToken

from modules import config
from modules.encryption import get_encryptor
from modules.forms import ROC_EPOCH_OFFSET, SECTIONS, merge_section, with_defaults
from modules.gemini import draft_medical_note, is_fallback
from modules.models import CLINICIAN_ROLES, MedicalRecord, Patient, User, UserRole

logger = logging.getLogger(__name__)

DATA_FILE = config.DATA_FILE
MASK_GLYPH = 'Ｏ'
PATIENT_FIELDS = ('name', 'ward', 'bed', 'gender', 'birth_year_roc', 'admission_date',
                  'background', 'clinical_focus') + SECTIONS


def mask_name(name: str) -> str:
    """Hides the second-to-last character of a name for list views.

    Args:
        name: The patient's full name.

    Returns:
        The masked name, e.g. "王小明" -> "王Ｏ明". Names shorter than two
        characters are returned unchanged.
    """
    if not name or len(name) < 2:
        return name
    return name[:-2] + MASK_GLYPH + name[-1]


def calculate_age(birth_year_roc, today: date = None):
    """Returns the age for an ROC birth year, or 'N/A' when the year is unknown or unreadable."""
    if not birth_year_roc:
        return 'N/A'
    try:
        birth_year = int(birth_year_roc)
    except (TypeError, ValueError):
        return 'N/A'
    return (today or date.today()).year - ROC_EPOCH_OFFSET - birth_year


def name_sort_key(name: str) -> str:
    """Collation key for names under the process's LC_COLLATE setting."""
    return locale.strxfrm(name or '')


def _compare(a, b) -> int:
    return (a > b) - (a < b)


def _compare_patients(a: dict, b: dict) -> int:
    # Ward and bed only decide the order when both patients have them.
    for key in ('ward', 'bed'):
        left, right = a.get(key), b.get(key)
        if left and right and left != right:
            return _compare(left, right)
    return _compare(name_sort_key(a.get('name', '')), name_sort_key(b.get('name', '')))


def sort_patients(patients: list) -> list:
    """Orders patients by ward, then bed, then name."""
    return sorted(patients, key=functools.cmp_to_key(_compare_patients))


class ChartAidService:
    """Manages all business logic and data for the ChartAid application."""
    def __init__(self, data_file=None, encryptor=None):
        """Initializes the service and loads the store.

        Args:
            data_file (str): Path of the encrypted data file. Defaults to `DATA_FILE`.
            encryptor: An object with `encrypt`/`decrypt`. Defaults to the shared
                Fernet instance.
        """
        self.data_file = data_file or DATA_FILE
        self._encryptor = encryptor or get_encryptor()
        self._data = self._load_data()
        self._saved = copy.deepcopy(self._data)
        if self._ensure_defaults():
            self._commit()

    # Persistence

    def _empty_store(self) -> dict:
        return {"config": {}, "users": {}, "patients": {}, "records": {}}

    def _load_data(self) -> dict:
        """Loads and decrypts the store.

        Returns:
            dict: The stored collections, or an empty store if the file is missing or corrupt.
        """
        try:
            with open(self.data_file, 'r') as f:
                encrypted_data = f.read()
            if not encrypted_data:
                return self._empty_store()
            data = json.loads(self._encryptor.decrypt(encrypted_data.encode()).decode())
        except FileNotFoundError:
            logger.info("Data file '%s' not found. Starting with a new store.", self.data_file)
            return self._empty_store()
        except (InvalidToken, json.JSONDecodeError) as e:
            logger.warning("Could not read data file '%s' (%r). Starting with a new store.", self.data_file, e)
            return self._empty_store()
        for collection in ("config", "users", "patients", "records"):
            data.setdefault(collection, {})
        return data

    def _save_data(self):
        """Encrypts the store and swaps it into place.

        The payload is written to a temporary file beside the data file first, so a
        failed write never truncates the existing store.
        """
        payload = json.dumps(self._data, ensure_ascii=False, indent=4)
        encrypted_data = self._encryptor.encrypt(payload.encode())
        tmp_file = self.data_file + '.tmp'
        try:
            with open(tmp_file, 'w') as f:
                f.write(encrypted_data.decode())
            os.replace(tmp_file, self.data_file)
        except OSError:
            if os.path.exists(tmp_file):
                os.remove(tmp_file)
            raise

    def _commit(self) -> bool:
        """Saves the store, rolling back to the last saved state if the write fails.

        Returns:
            bool: True if the data was written.
        """
        try:
            self._save_data()
        except OSError:
            logger.exception("Failed to write data file '%s'. Restoring last saved state.", self.data_file)
            self._data = copy.deepcopy(self._saved)
            return False
        self._saved = copy.deepcopy(self._data)
        return True

    def _ensure_defaults(self) -> bool:
        """Seeds the admin password on first run. Returns True if anything changed."""
        admin = self._data['config'].get('admin')
        if admin and admin.get('password_hash'):
            return False
        password_hash, salt = self._hash_password(config.DEFAULT_ADMIN_PASSWORD)
        self._data['config']['admin'] = {'password_hash': password_hash, 'salt': salt}
        return True

    # Accounts

    @staticmethod
    def _hash_password(password: str, salt: str = None):
        """Hashes a password with a salt, generating the salt if none is given.

        Returns:
            tuple: (password_hash, salt)
        """
        salt = salt or os.urandom(16).hex()
        return hashlib.sha256((salt + password).encode()).hexdigest(), salt

    def _check_password(self, record: dict, password: str) -> bool:
        salt = record.get('salt')
        if not salt:
            logger.error("Stored credentials are missing a salt.")
            return False
        return self._hash_password(password, salt)[0] == record.get('password_hash')

    def login(self, name: str, password: str, role: str):
        """Authenticates a staff member.

        The signed-in user is kept by the caller's session, not by the service.

        Args:
            name (str): Login name. Ignored for the administrator.
            password (str): Plaintext password.
            role (str): A `UserRole` value.

        Returns:
            User or None: The authenticated user, or None on failure.
        """
        role = UserRole(role)
        if role == UserRole.ADMIN:
            admin = self._data['config'].get('admin', {})
            if self._check_password(admin, password):
                return User('admin', UserRole.ADMIN, admin['password_hash'], admin['salt'], user_id='admin')
            return None

        for user_data in self._data['users'].values():
            if user_data.get('name') == name and user_data.get('role') == role.value:
                if self._check_password(user_data, password):
                    return User(**user_data)
                return None
        return None

    def create_user(self, name: str, password: str, role: str):
        """Creates a clinician account.

        Returns:
            User or str or bool: The new user, 'missing_fields' if name or password is
            empty, 'duplicate' if the name is taken for that role, or False if the
            store could not be written.
        """
        name = (name or '').strip()
        if not name or not password:
            return 'missing_fields'
        role = UserRole(role)
        if role not in CLINICIAN_ROLES:
            raise ValueError(f"Accounts cannot be created with role {role.value}")
        if any(u.get('name') == name and u.get('role') == role.value for u in self._data['users'].values()):
            return 'duplicate'
        password_hash, salt = self._hash_password(password)
        user = User(name, role, password_hash, salt)
        self._data['users'][user.user_id] = dict(user.__dict__)
        if not self._commit():
            return False
        logger.info("Created %s account %s", role.value, user.user_id)
        return user

    def list_users(self) -> list:
        """Returns all clinician accounts ordered by role and name."""
        order = {role.value: i for i, role in enumerate(CLINICIAN_ROLES)}
        return sorted(self._data['users'].values(),
                      key=lambda u: (order.get(u.get('role'), len(order)), name_sort_key(u.get('name', ''))))

    def get_user(self, user_id: str) -> dict:
        return self._data['users'].get(user_id, {})

    def delete_user(self, user_id: str) -> bool:
        """Deletes a clinician together with their patients and those patients' records."""
        if user_id not in self._data['users']:
            return False
        del self._data['users'][user_id]
        owned = [pid for pid, p in self._data['patients'].items() if p.get('clinician_id') == user_id]
        for patient_id in owned:
            self._remove_patient(patient_id)
        if not self._commit():
            return False
        logger.info("Deleted account %s and %d patients", user_id, len(owned))
        return True

    def change_password(self, user_id: str, new_password: str):
        """Sets a new password for a clinician.

        Returns:
            bool or str: True on success, 'missing_fields' if the password is empty,
            False if the user does not exist or the store could not be written.
        """
        if not new_password:
            return 'missing_fields'
        user_data = self._data['users'].get(user_id)
        if not user_data:
            return False
        user_data['password_hash'], user_data['salt'] = self._hash_password(new_password)
        return self._commit()

    def change_admin_password(self, new_password: str):
        if not new_password:
            return 'missing_fields'
        password_hash, salt = self._hash_password(new_password)
        self._data['config']['admin'] = {'password_hash': password_hash, 'salt': salt}
        return self._commit()

    def count_patients_by_clinician(self) -> dict:
        counts = {}
        for patient in self._data['patients'].values():
            counts[patient.get('clinician_id')] = counts.get(patient.get('clinician_id'), 0) + 1
        return counts

    # Roster

    def list_patients(self, clinician_id: str) -> list:
        """Returns the clinician's own patients, sorted by ward, bed and name."""
        owned = [p for p in self._data['patients'].values() if p.get('clinician_id') == clinician_id]
        return sort_patients(owned)

    def _owned_patient(self, patient_id: str, clinician_id: str):
        """Returns the stored patient if `clinician_id` owns it, otherwise None."""
        stored = self._data['patients'].get(patient_id)
        if stored is None:
            return None
        if stored.get('clinician_id') != clinician_id:
            logger.warning("Clinician %s has no access to patient %s.", clinician_id, patient_id)
            return None
        return stored

    def get_patient(self, patient_id: str, clinician_id: str = None):
        """Returns a patient with every form section filled with defaults, or None.

        When `clinician_id` is given, patients owned by anyone else are not returned.
        """
        if clinician_id is None:
            stored = self._data['patients'].get(patient_id)
        else:
            stored = self._owned_patient(patient_id, clinician_id)
        if stored is None:
            return None
        patient = dict(stored)
        for section in SECTIONS:
            patient[section] = with_defaults(section, stored.get(section))
        return patient

    def add_patient(self, clinician_id: str, details: dict):
        """Adds a patient to a clinician's roster.

        Args:
            clinician_id (str): The owning clinician.
            details (dict): Demographic fields; 'name' is required.

        Returns:
            dict or str or bool: The stored patient, 'missing_name' if no name was
            given (nothing is written), or False if the store could not be written.
        """
        name = (details.get('name') or '').strip()
        if not name:
            return 'missing_name'
        fields = {k: v for k, v in details.items() if k in PATIENT_FIELDS}
        fields['name'] = name
        patient = Patient(clinician_id=clinician_id, **fields)
        for section in SECTIONS:
            setattr(patient, section, with_defaults(section, getattr(patient, section)))
        self._data['patients'][patient.patient_id] = dict(patient.__dict__)
        if not self._commit():
            return False
        logger.info("Added patient %s for clinician %s", patient.patient_id, clinician_id)
        return self._data['patients'][patient.patient_id]

    def update_patient(self, patient_id: str, clinician_id: str, details: dict):
        """Replaces the given fields of one of the clinician's patients.

        Identity and owner cannot change.

        Returns:
            bool or str: True on success, 'missing_name' if the name would become
            empty, False if the clinician has no such patient or the write failed.
        """
        stored = self._owned_patient(patient_id, clinician_id)
        if stored is None:
            return False
        fields = {k: v for k, v in details.items() if k in PATIENT_FIELDS}
        if 'name' in fields:
            fields['name'] = (fields['name'] or '').strip()
            if not fields['name']:
                return 'missing_name'
        self._data['patients'][patient_id] = {**stored, **fields}
        return self._commit()

    def update_patient_section(self, patient_id: str, clinician_id: str, section: str, data: dict) -> bool:
        """Saves one form section (diagnosis, MSE or PE) without touching the others."""
        stored = self._owned_patient(patient_id, clinician_id)
        if stored is None:
            return False
        self._data['patients'][patient_id] = merge_section(stored, section, data)
        return self._commit()

    def request_patient_deletion(self, patient_id: str, clinician_id: str):
        """First phase of deletion: looks up the patient the clinician wants to delete.

        Nothing is written. The caller keeps the returned patient's id as its
        session's pending deletion and passes it back to `confirm_patient_deletion`.

        Returns:
            dict or None: The patient awaiting confirmation, or None if the clinician
            has no such patient.
        """
        return self._owned_patient(patient_id, clinician_id)

    def confirm_patient_deletion(self, patient_id: str, clinician_id: str, requested_id: str) -> bool:
        """Second phase of deletion: deletes the patient if it matches the request.

        Args:
            patient_id (str): The patient being confirmed.
            clinician_id (str): The acting clinician; must own the patient.
            requested_id (str): The pending deletion held by the clinician's session.

        Returns:
            bool: True if the patient was deleted.
        """
        if not patient_id or requested_id != patient_id:
            logger.warning("Refusing to delete patient %s without a matching confirmation.", patient_id)
            return False
        if self._owned_patient(patient_id, clinician_id) is None:
            return False
        self._remove_patient(patient_id)
        if not self._commit():
            return False
        logger.info("Deleted patient %s", patient_id)
        return True

    def _remove_patient(self, patient_id: str):
        self._data['patients'].pop(patient_id, None)
        self._data['records'] = {rid: r for rid, r in self._data['records'].items()
                                 if r.get('patient_id') != patient_id}

    # Medical records

    def get_records_for_patient(self, patient_id: str) -> list:
        """Returns the patient's generated notes, newest first."""
        records = [r for r in self._data['records'].values() if r.get('patient_id') == patient_id]
        return sorted(records, key=lambda r: r.get('created_at', ''), reverse=True)

    def generate_and_store_record(self, patient_id: str, record_type, author_id: str, extra_info: str = ''):
        """Drafts a note with Gemini and stores it as a new medical record.

        Earlier records for the patient are passed to the model as references. A
        record is only stored when generation succeeds.

        Args:
            patient_id (str): The patient to write about.
            record_type: A `RecordType` member or value.
            author_id (str): The requesting clinician; must own the patient.
            extra_info (str): Additional context typed for this note.

        Returns:
            tuple: (text, record). `text` is the draft or a fallback message;
            `record` is the stored record dict, or None if nothing was stored.
        """
        patient = self.get_patient(patient_id, author_id)
        if patient is None:
            return None, None
        text = draft_medical_note(patient, record_type, self.get_records_for_patient(patient_id), extra_info)
        if is_fallback(text):
            return text, None
        record = MedicalRecord(patient_id, author_id, record_type, text)
        self._data['records'][record.record_id] = dict(record.__dict__)
        if not self._commit():
            return text, None
        return text, self._data['records'][record.record_id]
