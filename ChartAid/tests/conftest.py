"""
Pytest configuration file for the ChartAid test suite.

This file defines shared fixtures used across the test files:
- An isolated `ChartAidService` writing to a temporary data file with its own
  freshly generated Fernet key, so tests never touch production data or keys.
- A clinician account with a patient on their roster.
- A fake Gemini model, so no test makes a network call or needs an API key.
"""
import pytest
from cryptography.fernet import Fernet

from modules import gemini as gemini_module
from modules.roster import ChartAidService


class FakeResponse:
    def __init__(self, text):
        self.text = text


class FakeModel:
    """Stands in for `genai.GenerativeModel`; records prompts and replays a reply."""

    def __init__(self, reply="S: 病患表示睡眠改善。", error=None):
        self.reply = reply
        self.error = error
        self.prompts = []
        self.generation_configs = []

    def generate_content(self, contents, generation_config=None):
        self.prompts.append(contents)
        self.generation_configs.append(generation_config)
        if self.error:
            raise self.error
        return FakeResponse(self.reply)


@pytest.fixture
def encryptor():
    """Provides a Fernet instance with a key generated for this test only."""
    return Fernet(Fernet.generate_key())


@pytest.fixture
def data_file(tmp_path):
    return str(tmp_path / "records.json")


@pytest.fixture
def service(data_file, encryptor):
    """Creates a new, empty service instance for each test."""
    return ChartAidService(data_file=data_file, encryptor=encryptor)


@pytest.fixture
def clinician(service):
    """A resident physician account, as returned by a successful login."""
    service.create_user("林醫師", "pass1234", "RESIDENT")
    return service.login("林醫師", "pass1234", "RESIDENT")


@pytest.fixture
def patient(service, clinician):
    """A patient on the clinician's roster."""
    return service.add_patient(clinician.user_id, {
        'name': "王小明", 'ward': "3A", 'bed': "12", 'gender': 'male',
        'birth_year_roc': 80, 'admission_date': {'year': 114, 'month': 3, 'day': 5},
    })


@pytest.fixture
def fake_model(monkeypatch):
    """Routes every Gemini call to a `FakeModel`.

    Tests can change `fake_model.reply` or set `fake_model.error` before generating.
    """
    model = FakeModel()
    monkeypatch.setattr(gemini_module, "get_model", lambda system_instruction=None: model)
    return model
