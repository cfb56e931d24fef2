"""
This is the main entry point for the ChartAid Streamlit application.

This script handles the following key responsibilities:
- Sets the overall page configuration and process-wide logging.
- Selects the collation locale used to sort patient names.
- Initializes the main `ChartAidService`, which manages all backend logic and data.
- Routes the user to the view held in the session's `NavigationState`.
"""
# chartaid/main.py

import locale
import logging

import streamlit as st

from modules import config
from modules.navigation import View
from modules.roster import ChartAidService
import gui

st.set_page_config(
    page_title="ChartAid",
    layout="wide"
)

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("chartaid")

try:
    locale.setlocale(locale.LC_COLLATE, config.COLLATION_LOCALE)
except locale.Error:
    logger.warning("Locale '%s' is not available; names will sort by code point.", config.COLLATION_LOCALE)


@st.cache_resource
def get_chartaid_service():
    """
    Initializes and returns the main ChartAidService instance.

    Decorated with `@st.cache_resource` so the store is loaded only once and kept
    across app reruns.

    Returns:
        ChartAidService: The singleton instance of the main application service.
    """
    return ChartAidService()


service = get_chartaid_service()
nav = gui.get_nav()

gui.show_header(service)

if nav.view == View.ADMIN:
    gui.show_admin_page(service)
elif nav.view == View.DASHBOARD:
    gui.show_dashboard(service)
elif nav.view == View.PATIENT_DETAIL:
    gui.show_patient_detail(service)
else:
    gui.show_login_form(service)
