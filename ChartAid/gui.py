"""
This module defines the graphical user interface (GUI) for ChartAid using Streamlit.

It renders every view of the application: the login page, the admin console, the
clinician's patient roster and the patient detail page with its clinical forms and
note generation. Navigation between views goes through the `NavigationState` kept
in `st.session_state.nav`.

Clinical form edits are collected in a per-patient draft in the session state and
only written to the store when the section's save button is pressed. A failed save
leaves the draft in place.
"""
# chartaid/gui.py

import datetime

import pandas as pd
import streamlit as st

from modules.fields import (OTHERS, apply_other_text, apply_selection, apply_single, display_label,
                            ensure_list, get_path, options_with_others, set_path)
from modules.forms import DIAGNOSIS_FIELDS, MSE_AXES, ORIENTATION_FLAGS, PE_FIELDS, update_admission_date
from modules.formatter import format_admission_date
from modules.gemini import is_fallback
from modules.models import CLINICIAN_ROLES, GENDERS, RecordType, UserRole
from modules.navigation import NavigationState
from modules.roster import calculate_age, mask_name

APP_TITLE = "衛生福利部嘉南療養院病歷寫作輔助系統"


def get_nav() -> NavigationState:
    """Returns the session's navigation state, creating it on first use."""
    if 'nav' not in st.session_state:
        st.session_state.nav = NavigationState()
    return st.session_state.nav


def _parse_positive_int(raw):
    """Parses a positive integer from a text input, returning None for anything else."""
    try:
        value = int(str(raw).strip())
    except (TypeError, ValueError):
        return None
    return value if value >= 1 else None


def _init_widget(key, value):
    """Seeds a widget's session-state value the first time it is rendered."""
    if key not in st.session_state:
        st.session_state[key] = value


# Header & authentication

def show_header(service):
    """Displays the page title and, when signed in, the current user with a logout button."""
    st.markdown(f"<h1 style='text-align: center;'>{APP_TITLE}</h1>", unsafe_allow_html=True)
    nav = get_nav()
    if nav.user is None:
        return
    col1, col2 = st.columns([4, 1])
    with col1:
        st.caption(f"當前使用者: {nav.user.name} ({UserRole(nav.user.role).display_name})")
    with col2:
        if st.button("登出", key="logout_btn", use_container_width=True):
            nav.logout()
            st.rerun()


def show_login_form(service):
    """Displays the login form and handles authentication.

    Args:
        service: The main application service instance.
    """
    nav = get_nav()
    col1, col2, col3 = st.columns([1, 2, 1])
    with col2:
        st.markdown("<h2 style='text-align: center;'>登入</h2>", unsafe_allow_html=True)
        with st.form("login_form"):
            role = st.selectbox("身分", [r.value for r in CLINICIAN_ROLES] + [UserRole.ADMIN.value],
                                format_func=lambda r: UserRole(r).display_name)
            name = st.text_input("姓名", help="管理員登入不需填寫。")
            password = st.text_input("密碼", type="password")
            submitted = st.form_submit_button("登入", use_container_width=True)

            if submitted:
                if not password or (role != UserRole.ADMIN.value and not name):
                    st.error("請輸入姓名與密碼。")
                else:
                    user = service.login(name.strip(), password, role)
                    if user:
                        nav.login(user)
                        st.rerun()
                    else:
                        st.error("帳號或密碼錯誤。")


# Admin console

def show_admin_page(service):
    """Renders the admin console: staff accounts, staff export and the admin password."""
    st.markdown("<h2 style='text-align: center;'>管理員控制台</h2>", unsafe_allow_html=True)
    st.subheader("醫護人員帳號")
    users = service.list_users()
    counts = service.count_patients_by_clinician()

    if not users:
        st.info("目前尚無醫護人員帳號。")
    else:
        staff_df = pd.DataFrame([
            {"姓名": u.get('name'), "身分": UserRole(u.get('role')).display_name,
             "負責病患數": counts.get(u.get('user_id'), 0)}
            for u in users
        ])
        st.dataframe(staff_df, use_container_width=True, hide_index=True)
        st.download_button(
            "下載人員名單 (CSV)", staff_df.to_csv(index=False).encode('utf-8-sig'),
            f"chartaid_staff_{datetime.date.today()}.csv", "text/csv"
        )
        for user_data in users:
            with st.expander(f"{user_data.get('name')} ({UserRole(user_data.get('role')).display_name})"):
                _render_user_management_entry(service, user_data, counts.get(user_data.get('user_id'), 0))

    st.divider()
    st.subheader("新增醫護人員")
    with st.form("create_user_form", clear_on_submit=True):
        new_name = st.text_input("姓名")
        new_role = st.selectbox("身分", [r.value for r in CLINICIAN_ROLES],
                                format_func=lambda r: UserRole(r).display_name)
        new_password = st.text_input("初始密碼", type="password")
        if st.form_submit_button("建立帳號"):
            result = service.create_user(new_name, new_password, new_role)
            if result == 'missing_fields':
                st.error("姓名與密碼為必填。")
            elif result == 'duplicate':
                st.error(f"「{new_name}」已有相同身分的帳號。")
            elif result:
                st.success(f"已建立 {new_name} 的帳號。")
            else:
                st.error("儲存失敗，請再試一次。")

    st.divider()
    st.subheader("修改管理員密碼")
    with st.form("admin_password_form", clear_on_submit=True):
        admin_password = st.text_input("新密碼", type="password")
        if st.form_submit_button("更新"):
            result = service.change_admin_password(admin_password)
            if result == 'missing_fields':
                st.error("請輸入新密碼。")
            elif result:
                st.success("管理員密碼已更新。")
            else:
                st.error("儲存失敗，請再試一次。")


def _render_user_management_entry(service, user_data, patient_count):
    """Renders the delete control for one staff account, behind a confirmation checkbox."""
    user_id = user_data.get('user_id')
    st.write(f"**負責病患數:** {patient_count}")
    st.warning("刪除帳號會一併刪除其負責的病患與病歷，此動作無法復原。")
    confirm = st.checkbox("我了解此動作無法復原。", key=f"confirm_delete_user_{user_id}")
    if st.button("刪除帳號", key=f"delete_user_{user_id}", disabled=not confirm):
        if service.delete_user(user_id):
            st.success("帳號已刪除。")
            st.rerun()
        else:
            st.error("刪除失敗，請再試一次。")


# Dashboard (patient roster)

def show_dashboard(service):
    """Renders the clinician's roster with add, edit and delete controls."""
    user = get_nav().user
    _render_password_change(service, user)

    col1, col2 = st.columns([3, 1])
    with col1:
        st.markdown("## 負責病患名單")
    with col2:
        label = "取消新增" if st.session_state.get('show_patient_form') else "＋ 新增病患"
        if st.button(label, key="toggle_patient_form", use_container_width=True):
            st.session_state.show_patient_form = not st.session_state.get('show_patient_form')
            st.session_state.editing_patient_id = None
            st.rerun()

    if st.session_state.get('show_patient_form'):
        _render_patient_form(service, user)

    _render_delete_confirmation(service, user)

    patients = service.list_patients(user.user_id)
    if not patients:
        st.info("目前尚無病患資料，請點擊上方按鈕新增。")
        return
    for patient in patients:
        _render_patient_row(service, patient)


def _render_password_change(service, user):
    with st.expander("修改我的密碼"):
        with st.form("change_password_form", clear_on_submit=True):
            new_password = st.text_input("新密碼", type="password")
            if st.form_submit_button("更新"):
                result = service.change_password(user.user_id, new_password)
                if result == 'missing_fields':
                    st.error("請輸入新密碼。")
                elif result:
                    st.success("密碼已成功更新")
                else:
                    st.error("儲存失敗，請再試一次。")


def _patient_summary_line(patient):
    line = f"病房: {patient.get('ward') or '-'} | 床號: {patient.get('bed') or '-'}"
    date_text = format_admission_date(patient.get('admission_date'))
    if date_text:
        line += f" | 住院: {date_text}"
    return line


def _render_patient_row(service, patient):
    """Renders one roster entry. Names are masked in the list."""
    patient_id = patient['patient_id']
    gender = GENDERS.get(patient.get('gender'), '-')
    with st.container(border=True):
        col1, col2, col3, col4 = st.columns([4, 1, 1, 1])
        with col1:
            st.markdown(f"**{mask_name(patient.get('name', ''))}** "
                        f"({calculate_age(patient.get('birth_year_roc'))}歲 / {gender})")
            st.caption(_patient_summary_line(patient))
        with col2:
            if st.button("開啟", key=f"open_{patient_id}", use_container_width=True):
                get_nav().open_patient(patient_id)
                st.rerun()
        with col3:
            if st.button("修改基本資料", key=f"edit_{patient_id}", use_container_width=True):
                st.session_state.editing_patient_id = patient_id
                st.session_state.show_patient_form = True
                st.rerun()
        with col4:
            if st.button("刪除", key=f"delete_{patient_id}", use_container_width=True):
                if service.request_patient_deletion(patient_id, get_nav().user.user_id):
                    get_nav().request_deletion(patient_id)
                st.rerun()


def _render_delete_confirmation(service, user):
    """Shows the confirmation step for this session's requested deletion."""
    nav = get_nav()
    patient_id = nav.pending_deletion
    if not patient_id:
        return
    patient = service.request_patient_deletion(patient_id, user.user_id)
    if patient is None:
        nav.cancel_deletion()
        return
    with st.container(border=True):
        st.error(f"確定要刪除病患「{mask_name(patient.get('name', ''))}」的所有資料嗎？此動作無法復原。")
        col1, col2 = st.columns(2)
        with col1:
            if st.button("取消", key="cancel_delete", use_container_width=True):
                nav.cancel_deletion()
                st.rerun()
        with col2:
            if st.button("確定刪除", key="confirm_delete", type="primary", use_container_width=True):
                if service.confirm_patient_deletion(patient_id, user.user_id, nav.pending_deletion):
                    nav.cancel_deletion()
                    st.rerun()
                else:
                    st.error("刪除失敗，請再試一次。")


def _render_patient_form(service, user):
    """Renders the add/edit demographics form.

    Validation failures and failed saves keep the form open with its inputs.
    """
    editing_id = st.session_state.get('editing_patient_id')
    editing = service.get_patient(editing_id, user.user_id) if editing_id else None
    current = editing or {}
    admission = current.get('admission_date') or {}
    genders = list(GENDERS)

    with st.form("patient_form"):
        col1, col2, col3 = st.columns(3)
        with col1:
            name = st.text_input("病患姓名 (全名) *", value=current.get('name', ''))
            gender = st.selectbox("性別", genders, format_func=GENDERS.get,
                                  index=genders.index(current.get('gender')) if current.get('gender') in genders else 0)
        with col2:
            ward = st.text_input("病房", value=current.get('ward', ''))
            birth_year = st.text_input("出生年 (民國)", value=str(current.get('birth_year_roc') or ''),
                                       placeholder="例如: 80")
        with col3:
            bed = st.text_input("床號", value=current.get('bed', ''))

        st.markdown("**住院日期 (民國)**")
        dcol1, dcol2, dcol3 = st.columns(3)
        with dcol1:
            year = st.text_input("民國年", value=str(admission.get('year') or ''), placeholder="年")
        with dcol2:
            month = st.text_input("月", value=str(admission.get('month') or ''), placeholder="月")
        with dcol3:
            day = st.text_input("日", value=str(admission.get('day') or ''), placeholder="日")

        submitted = st.form_submit_button("儲存修改" if editing else "確認新增")

    if not submitted:
        return
    if not name.strip():
        st.error("請輸入病患姓名。")
        return

    admission_date = current.get('admission_date')
    for part, raw in (('year', year), ('month', month), ('day', day)):
        if raw.strip() or admission_date is not None:
            admission_date = update_admission_date(admission_date, part, raw)
    if admission_date and all(v is None for v in admission_date.values()):
        admission_date = None

    details = {
        'name': name, 'ward': ward.strip(), 'bed': bed.strip(), 'gender': gender,
        'birth_year_roc': _parse_positive_int(birth_year), 'admission_date': admission_date,
    }
    if editing:
        result = service.update_patient(editing_id, user.user_id, details)
    else:
        result = service.add_patient(user.user_id, details)

    if result == 'missing_name':
        st.error("請輸入病患姓名。")
    elif result:
        st.session_state.show_patient_form = False
        st.session_state.editing_patient_id = None
        st.rerun()
    else:
        st.error("儲存失敗。")


# Patient detail

def show_patient_detail(service):
    """Renders one patient's record: demographics, forms, note drafting and history."""
    nav = get_nav()
    if st.button("← 返回病患名單", key="back_to_dashboard"):
        nav.back_to_dashboard()
        st.rerun()

    patient = service.get_patient(nav.patient_id, nav.user.user_id)
    if patient is None:
        st.error("找不到此病患。")
        return

    gender = GENDERS.get(patient.get('gender'), '-')
    st.markdown(f"## {patient.get('name')} "
                f"({calculate_age(patient.get('birth_year_roc'))}歲 / {gender})")
    st.caption(_patient_summary_line(patient))

    info_tab, dx_tab, mse_tab, pe_tab, draft_tab, history_tab = st.tabs(
        ["基本資料", "診斷", "MSE", "PE & NE", "病歷生成", "歷史紀錄"]
    )
    with info_tab:
        _render_background_form(service, patient)
    with dx_tab:
        _render_section_form(service, patient, 'diagnosis', [(None, DIAGNOSIS_FIELDS)], "儲存診斷")
    with mse_tab:
        _render_section_form(service, patient, 'mse', [(axis.title, axis.fields) for axis in MSE_AXES], "儲存 MSE")
    with pe_tab:
        _render_section_form(service, patient, 'pe', [(None, PE_FIELDS)], "儲存 PE & NE")
    with draft_tab:
        _render_generation_page(service, patient)
    with history_tab:
        _render_record_history(service, patient)


def _render_background_form(service, patient):
    with st.form(f"background_form_{patient['patient_id']}"):
        background = st.text_area("病史背景", value=patient.get('background', ''))
        clinical_focus = st.text_area("臨床重點", value=patient.get('clinical_focus', ''))
        if st.form_submit_button("儲存"):
            if service.update_patient(patient['patient_id'], get_nav().user.user_id,
                                      {'background': background, 'clinical_focus': clinical_focus}):
                st.success("已儲存。")
            else:
                st.error("儲存失敗，請再試一次。")


def _draft_key(patient_id, section):
    return f"draft_{patient_id}_{section}"


def _render_section_form(service, patient, section, groups, save_label):
    """Renders one clinical form section from the field catalogue.

    Args:
        service: The main application service instance.
        patient (dict): The patient, with defaults filled.
        section (str): 'diagnosis', 'mse' or 'pe'.
        groups (list): (title, fields) pairs to render in order.
        save_label (str): Caption of the save button.
    """
    patient_id = patient['patient_id']
    draft_key = _draft_key(patient_id, section)
    _init_widget(draft_key, patient[section])
    prefix = f"{patient_id}_{section}"

    for title, fields in groups:
        if title:
            st.markdown(f"#### {title}")
        if section == 'mse' and fields and fields[0].path[0] == 'cognition':
            _render_orientation(draft_key, prefix)
        for field in fields:
            if field.multi:
                _render_multi_select(field, draft_key, prefix)
            else:
                _render_single_select(field, draft_key, prefix)

    if st.button(save_label, key=f"save_{prefix}", type="primary"):
        if service.update_patient_section(patient_id, get_nav().user.user_id, section,
                                          st.session_state[draft_key]):
            st.success("已儲存。")
        else:
            st.error("儲存失敗，請再試一次。您填寫的內容仍保留在表單中。")


def _on_single_change(field, draft_key, widget_key):
    st.session_state[draft_key] = apply_single(st.session_state[draft_key], field, st.session_state[widget_key])


def _on_multi_change(field, draft_key, widget_key):
    updated = apply_selection(st.session_state[draft_key], field, st.session_state[widget_key])
    st.session_state[draft_key] = updated
    # Exclusion rules may have dropped labels the widget still shows.
    st.session_state[widget_key] = ensure_list(get_path(updated, field.path))


def _on_other_change(field, draft_key, widget_key):
    st.session_state[draft_key] = apply_other_text(st.session_state[draft_key], field, st.session_state[widget_key])


def _on_orientation_change(flag, draft_key, widget_key):
    path = ('cognition', 'orientation', flag)
    st.session_state[draft_key] = set_path(st.session_state[draft_key], path, st.session_state[widget_key])


def _render_other_input(field, draft_key, prefix):
    widget_key = f"{prefix}_{field.key}_other"
    _init_widget(widget_key, get_path(st.session_state[draft_key], field.other_path) or '')
    st.text_input("其他 (請輸入)", key=widget_key, on_change=_on_other_change,
                  args=(field, draft_key, widget_key))


def _render_single_select(field, draft_key, prefix):
    options = options_with_others(field)
    if not options:
        return
    widget_key = f"{prefix}_{field.key}"
    current = get_path(st.session_state[draft_key], field.path)
    _init_widget(widget_key, current if current in options else None)
    st.radio(field.label, options, index=None, format_func=display_label, key=widget_key,
             horizontal=True, on_change=_on_single_change, args=(field, draft_key, widget_key))
    if st.session_state[widget_key] == OTHERS:
        _render_other_input(field, draft_key, prefix)


def _render_multi_select(field, draft_key, prefix):
    options = options_with_others(field)
    if not options:
        return
    widget_key = f"{prefix}_{field.key}"
    current = ensure_list(get_path(st.session_state[draft_key], field.path))
    _init_widget(widget_key, [v for v in current if v in options])
    st.multiselect(field.label, options, format_func=display_label, key=widget_key,
                   on_change=_on_multi_change, args=(field, draft_key, widget_key))
    if OTHERS in st.session_state[widget_key]:
        _render_other_input(field, draft_key, prefix)


def _render_orientation(draft_key, prefix):
    st.markdown("**定向感**")
    cols = st.columns(len(ORIENTATION_FLAGS))
    for col, (flag, label) in zip(cols, ORIENTATION_FLAGS):
        widget_key = f"{prefix}_orientation_{flag}"
        _init_widget(widget_key, bool(get_path(st.session_state[draft_key], ('cognition', 'orientation', flag))))
        with col:
            st.checkbox(label, key=widget_key, on_change=_on_orientation_change,
                        args=(flag, draft_key, widget_key))


def _render_generation_page(service, patient):
    """Lets the clinician pick a note type and draft it from the saved record."""
    patient_id = patient['patient_id']
    st.caption("生成時使用已儲存的資料，請先儲存各表單的修改。")
    if patient.get('admission_date'):
        st.caption(f"住院日期: {format_admission_date(patient['admission_date'])}")
    record_type = st.selectbox("紀錄類型", [t.value for t in RecordType], key=f"record_type_{patient_id}")
    extra_info = st.text_area("附加說明/原因/安置計畫", key=f"extra_info_{patient_id}")

    result_key = f"generated_{patient_id}"
    if st.button("生成紀錄", key=f"generate_{patient_id}", type="primary"):
        with st.spinner("生成中..."):
            text, record = service.generate_and_store_record(patient_id, record_type,
                                                             get_nav().user.user_id, extra_info)
        st.session_state[result_key] = text
        if text and not is_fallback(text) and record is None:
            st.error("紀錄已生成但儲存失敗，請複製內容或再試一次。")

    text = st.session_state.get(result_key)
    if not text:
        return
    if is_fallback(text):
        st.warning(text)
        return
    st.text_area("生成結果", value=text, height=400)
    st.download_button("下載紀錄 (.txt)", text.encode('utf-8'),
                       f"chartaid_{record_type}_{datetime.date.today()}.txt", "text/plain",
                       key=f"download_generated_{patient_id}")


def _format_timestamp(timestamp_str):
    """Converts an ISO timestamp into 'YYYY-MM-DD HH:MM', or returns it unchanged if unparsable."""
    if not timestamp_str:
        return "未知時間"
    try:
        return datetime.datetime.fromisoformat(timestamp_str).strftime('%Y-%m-%d %H:%M')
    except ValueError:
        return timestamp_str


def _render_record_history(service, patient):
    records = service.get_records_for_patient(patient['patient_id'])
    if not records:
        st.info("尚無病歷紀錄。")
        return
    records_df = pd.DataFrame(records)[['created_at', 'record_type', 'content']]
    st.download_button(
        "下載全部紀錄 (CSV)", records_df.to_csv(index=False).encode('utf-8-sig'),
        f"chartaid_records_{datetime.date.today()}.csv", "text/csv",
        key=f"download_records_{patient['patient_id']}"
    )
    for record in records:
        with st.expander(f"{_format_timestamp(record.get('created_at'))} · {record.get('record_type')}"):
            st.text(record.get('content', ''))
