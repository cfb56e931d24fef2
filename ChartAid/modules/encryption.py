"""
This module handles encryption of ChartAid's document store at rest.

It uses the `cryptography` library (Fernet symmetric encryption). The key lives in a
separate key file (`config.KEY_FILE`, `secret.key` by default) that is generated on
first use. Patient data is unreadable without it, so the key file must be backed up
with the data file and kept out of version control.
"""
# chartaid/modules/encryption.py

import logging

from cryptography.fernet import Fernet

from modules import config

logger = logging.getLogger(__name__)

_encryptor = None


def write_key(path: str) -> bytes:
    """Generates a new Fernet key and saves it to `path`."""
    key = Fernet.generate_key()
    with open(path, "wb") as key_file:
        key_file.write(key)
    return key


def load_key(path: str) -> bytes:
    """Loads the Fernet key stored at `path`."""
    with open(path, "rb") as key_file:
        return key_file.read()


def load_or_create_key(path: str) -> bytes:
    """Returns the key at `path`, creating one if the file does not exist yet."""
    try:
        return load_key(path)
    except FileNotFoundError:
        logger.warning("Encryption key '%s' not found. Generating a new one.", path)
        return write_key(path)


def get_encryptor() -> Fernet:
    """Returns the process-wide Fernet instance for the configured key file."""
    global _encryptor
    if _encryptor is None:
        _encryptor = Fernet(load_or_create_key(config.KEY_FILE))
    return _encryptor
