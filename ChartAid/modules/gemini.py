"""
This module provides an interface to the Google Gemini large language model.

It is responsible for:
- Configuring the Gemini API with the key from the environment or Streamlit secrets.
- Creating the generative model with the fixed system instruction.
- Sending an assembled note prompt and returning the model's text unmodified.

Each call is a single best-effort attempt. Failures never raise to the caller;
they are logged and replaced by a user-facing fallback message.
"""
# chartaid/modules/gemini.py

import logging

import google.generativeai as genai

from modules import config
from modules.formatter import SYSTEM_INSTRUCTION, build_prompt

logger = logging.getLogger(__name__)

EMPTY_RESPONSE_MESSAGE = "生成失敗。"
ERROR_MESSAGE = "生成發生錯誤，請稍後再試。"
FALLBACK_MESSAGES = (EMPTY_RESPONSE_MESSAGE, ERROR_MESSAGE)


def get_model(system_instruction: str = SYSTEM_INSTRUCTION):
    """Configures the API and returns a model bound to `system_instruction`.

    The key is read on every call so a key added to the secrets file is picked up
    without restarting the app.
    """
    genai.configure(api_key=config.get_gemini_api_key())
    return genai.GenerativeModel(config.GEMINI_MODEL, system_instruction=system_instruction)


def generate_note(contents: str, system_instruction: str = SYSTEM_INSTRUCTION) -> str:
    """Sends a prompt to Gemini and returns the generated text.

    Args:
        contents: The assembled clinical context and formatting rules.
        system_instruction: The register and format constraints for the model.

    Returns:
        The model's text exactly as returned, `EMPTY_RESPONSE_MESSAGE` if the
        model produced nothing, or `ERROR_MESSAGE` if the request failed.
    """
    try:
        model = get_model(system_instruction)
        response = model.generate_content(
            contents,
            generation_config=genai.GenerationConfig(temperature=config.GEMINI_TEMPERATURE),
        )
        text = response.text
    except Exception:
        logger.exception("Error generating note from Gemini API")
        return ERROR_MESSAGE
    if not text:
        logger.warning("Gemini API returned an empty response.")
        return EMPTY_RESPONSE_MESSAGE
    return text


def is_fallback(text: str) -> bool:
    """True if `text` is one of this module's fallback messages rather than a draft."""
    return text in FALLBACK_MESSAGES



def draft_medical_note(patient: dict, record_type, reference_notes=(), extra_info: str = '') -> str:
    """Formats a patient's record for `record_type` and asks Gemini for the note."""
    prompt = build_prompt(patient, record_type, reference_notes, extra_info)
    return generate_note(prompt)
