"""
View-state machine for the ChartAid UI.

The app moves between four views:

    LOGIN -> ADMIN                      (administrator)
    LOGIN -> DASHBOARD <-> PATIENT_DETAIL  (clinicians)
    any   -> LOGIN                      (logout)

The current view, the signed-in user, the open patient and a pending patient
deletion live together in one `NavigationState` kept in `st.session_state`, so each
browser session has its own.
"""
# chartaid/modules/navigation.py

from enum import Enum


class View(str, Enum):
    LOGIN = 'LOGIN'
    ADMIN = 'ADMIN'
    DASHBOARD = 'DASHBOARD'
    PATIENT_DETAIL = 'PATIENT_DETAIL'


class NavigationState:
    """Tracks which view is showing and the context it needs."""

    def __init__(self):
        self.view = View.LOGIN
        self.user = None
        self.patient_id = None
        self.pending_deletion = None

    def login(self, user):
        if self.view != View.LOGIN:
            raise ValueError(f"Cannot log in from {self.view.value}")
        self.user = user
        self.view = View.ADMIN if user.is_admin else View.DASHBOARD

    def open_patient(self, patient_id):
        if self.view not in (View.DASHBOARD, View.PATIENT_DETAIL):
            raise ValueError(f"Cannot open a patient from {self.view.value}")
        self.patient_id = patient_id
        self.pending_deletion = None
        self.view = View.PATIENT_DETAIL

    def back_to_dashboard(self):
        if self.view not in (View.DASHBOARD, View.PATIENT_DETAIL):
            raise ValueError(f"Cannot return to the dashboard from {self.view.value}")
        self.patient_id = None
        self.view = View.DASHBOARD

    def request_deletion(self, patient_id):
        """Remembers the patient this session asked to delete, pending confirmation."""
        if self.view != View.DASHBOARD:
            raise ValueError(f"Cannot delete a patient from {self.view.value}")
        self.pending_deletion = patient_id

    def cancel_deletion(self):
        self.pending_deletion = None

    def logout(self):
        self.user = None
        self.patient_id = None
        self.pending_deletion = None
        self.view = View.LOGIN
