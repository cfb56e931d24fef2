"""
UI tests for the ChartAid application using Streamlit's AppTest framework.

These tests simulate user interactions with the frontend to verify that the
GUI behaves as expected: logging in, the masked roster, the delete confirmation
and the clinical form widgets.
"""
from streamlit.testing.v1 import AppTest

from modules.navigation import View


def _render_logged_in(svc, user, patient_id=None):
    import streamlit as st

    import gui as gui_module
    from modules.navigation import NavigationState

    if 'nav' not in st.session_state:
        nav = NavigationState()
        nav.login(user)
        if patient_id:
            nav.open_patient(patient_id)
        st.session_state.nav = nav
    if patient_id:
        gui_module.show_patient_detail(svc)
    else:
        gui_module.show_dashboard(svc)


def test_ui_login_as_admin(service):
    """
    Tests that the administrator can log in and is routed to the admin console.
    """
    def render(svc):
        import gui as gui_module

        gui_module.show_login_form(svc)

    app = AppTest.from_function(render, args=(service,), default_timeout=15)
    app.run()
    assert any("登入" in md.value for md in app.markdown)

    app.selectbox[0].select_index(3)
    app.text_input[1].input("0614")
    app.button[0].click().run()

    assert app.session_state["nav"].view == View.ADMIN


def test_ui_login_rejects_wrong_password(service, clinician):
    """
    Tests that a failed login shows an error and leaves the session on the login view.
    """
    def render(svc):
        import gui as gui_module

        gui_module.show_login_form(svc)

    app = AppTest.from_function(render, args=(service,), default_timeout=15)
    app.run()
    app.selectbox[0].select_index(1)
    app.text_input[0].input("林醫師")
    app.text_input[1].input("wrong")
    app.button[0].click().run()

    assert any("帳號或密碼錯誤" in err.value for err in app.error)
    assert app.session_state["nav"].view == View.LOGIN


def test_ui_dashboard_masks_names(service, clinician, patient):
    """
    Tests that the roster shows masked names, never the full name.
    """
    app = AppTest.from_function(_render_logged_in, args=(service, clinician), default_timeout=15)
    app.run()

    markdown_values = [md.value for md in app.markdown]
    assert any("王Ｏ明" in value for value in markdown_values)
    assert not any("王小明" in value for value in markdown_values)


def test_ui_delete_requires_confirmation(service, clinician, patient):
    """
    Tests the two-step delete: the first click only asks for confirmation.
    """
    pid = patient['patient_id']
    app = AppTest.from_function(_render_logged_in, args=(service, clinician), default_timeout=15)
    app.run()

    app.button(key=f"delete_{pid}").click().run()
    assert any("確定要刪除" in err.value for err in app.error)
    assert service.get_patient(pid) is not None

    app.button(key="cancel_delete").click().run()
    assert app.session_state["nav"].pending_deletion is None
    assert service.get_patient(pid) is not None

    app.button(key=f"delete_{pid}").click().run()
    app.button(key="confirm_delete").click().run()
    assert service.get_patient(pid) is None
    assert any("目前尚無病患資料" in info.value for info in app.info)


def test_ui_pending_deletion_stays_in_its_session(service, clinician, patient):
    """
    Tests that a delete request in one browser session is invisible to another
    session sharing the same service, and that another clinician cannot confirm it.
    """
    pid = patient['patient_id']
    other = service.create_user("張護理師", "pw", "NP")

    first = AppTest.from_function(_render_logged_in, args=(service, clinician), default_timeout=15)
    first.run()
    first.button(key=f"delete_{pid}").click().run()
    assert first.session_state["nav"].pending_deletion == pid

    second = AppTest.from_function(_render_logged_in, args=(service, clinician), default_timeout=15)
    second.run()
    assert second.session_state["nav"].pending_deletion is None
    assert not any("確定要刪除" in err.value for err in second.error)
    assert not any(button.key == "confirm_delete" for button in second.button)

    intruder = AppTest.from_function(_render_logged_in, args=(service, other), default_timeout=15)
    intruder.run()
    assert not any(button.key == "confirm_delete" for button in intruder.button)
    assert service.confirm_patient_deletion(pid, other.user_id, pid) is False
    assert service.get_patient(pid) is not None

    first.button(key="confirm_delete").click().run()
    assert service.get_patient(pid) is None


def test_ui_mse_multiselect_applies_exclusion_and_saves(service, clinician, patient):
    """
    Tests that the MSE widgets enforce exclusive options and that saving writes the draft.
    """
    pid = patient['patient_id']
    app = AppTest.from_function(_render_logged_in, args=(service, clinician, pid), default_timeout=15)
    app.run()

    cooperation = f"{pid}_mse_appearance.cooperation"
    app.multiselect(key=cooperation).select("不合作").run()
    app.multiselect(key=cooperation).select("合作").run()

    assert app.multiselect(key=cooperation).value == ["合作"]
    assert app.session_state[f"draft_{pid}_mse"]['appearance']['cooperation'] == ["合作"]
    assert service.get_patient(pid)['mse']['appearance']['cooperation'] == []

    app.button(key=f"save_{pid}_mse").click().run()
    assert service.get_patient(pid)['mse']['appearance']['cooperation'] == ["合作"]
