"""
Runtime settings for the ChartAid application.

Values are read once from environment variables so that deployments can point the
app at a different data file, key file or Gemini model without code changes. The
Gemini API key is the only secret; it may come from the environment or from
Streamlit's secrets store (`.streamlit/secrets.toml`).
"""
# chartaid/modules/config.py

import logging
import os

import streamlit as st

logger = logging.getLogger(__name__)

DATA_FILE = os.getenv("CHARTAID_DATA_FILE", "records.json")
KEY_FILE = os.getenv("CHARTAID_KEY_FILE", "secret.key")
GEMINI_MODEL = os.getenv("CHARTAID_GEMINI_MODEL", "gemini-3-flash-preview")
GEMINI_TEMPERATURE = float(os.getenv("CHARTAID_GEMINI_TEMPERATURE", "0.8"))
LOG_LEVEL = os.getenv("CHARTAID_LOG_LEVEL", "INFO").upper()
COLLATION_LOCALE = os.getenv("CHARTAID_COLLATION_LOCALE", "zh_TW.UTF-8")

# Seeded into the `config` collection the first time the store is created.
DEFAULT_ADMIN_PASSWORD = os.getenv("CHARTAID_DEFAULT_ADMIN_PASSWORD", "0614")


def get_gemini_api_key() -> str | None:
    """Returns the Gemini API key, preferring the environment over Streamlit secrets.

    Returns:
        The API key, or None if it is not configured anywhere.
    """
    key = os.getenv("GEMINI_API_KEY")
    if key:
        return key
    try:
        return st.secrets["GEMINI_API_KEY"]
    except Exception as e:
        # Raised both for a missing secrets file and for a missing key.
        logger.warning("Gemini API key not found in Streamlit secrets (%s).", e)
        return None
