from typing import Callable, Iterable, MutableMapping

import streamlit as st

from api_client import ApiClient, ApiSession, SessionExpiredError, configure_logging
from data_integrator import fetch_current_user, login, logout
from domain.models import ReferenceData

SESSION_KEY = "api_session"
CURRENT_PAGE_KEY = "current_page"
PROFILE_TOKEN_KEY = "profile_token"


def enter_page(state: MutableMapping, page: str) -> bool:
    """Record `page` as the one rendering now; True if the last run rendered another page."""
    arrived = state.get(CURRENT_PAGE_KEY) != page
    state[CURRENT_PAGE_KEY] = page
    return arrived


def _get_session() -> ApiSession:
    if SESSION_KEY not in st.session_state:
        st.session_state[SESSION_KEY] = ApiSession()
    return st.session_state[SESSION_KEY]


def get_client() -> ApiClient:
    return ApiClient(_get_session())


def _login_form(client: ApiClient) -> None:
    st.subheader("Login")
    with st.form("login_form", enter_to_submit=True):
        username = st.text_input("Username or email")
        password = st.text_input("Password", type="password")
        submitted = st.form_submit_button("Login", type="primary")

    if submitted:
        ok, msg, _ = login(client, username.strip(), password)
        if ok:
            st.rerun()
        else:
            st.error(msg)


def require_session() -> ApiClient:
    """
    Return a client for the logged-in operator, or show the login form and
    stop the page.
    """
    configure_logging()
    client = get_client()

    if not client.session.is_authenticated:
        show_login_notice()
        _login_form(client)
        st.stop()

    # profile is reloaded once per token
    if st.session_state.get(PROFILE_TOKEN_KEY) != client.session.token:
        try:
            fetch_current_user(client)
        except SessionExpiredError as e:
            handle_session_expired(str(e))
        st.session_state[PROFILE_TOKEN_KEY] = client.session.token

    with st.sidebar:
        st.caption(f"Logged in as **{client.session.display_name}**")
        if st.button("Logout", key="logout_button"):
            logout(client)
            st.session_state.clear()
            st.rerun()

    return client


def handle_session_expired(message: str = "Session expired. Please login again.") -> None:
    _get_session().clear()
    st.session_state["login_notice"] = message
    st.rerun()


def show_login_notice() -> None:
    notice = st.session_state.pop("login_notice", None)
    if notice:
        st.warning(notice)


def show_messages(kind: str, messages: Iterable[str]) -> None:
    show = {"error": st.error, "warning": st.warning, "info": st.info, "success": st.success}[kind]
    for message in messages:
        show(message)


def show_degraded_warning(reference: ReferenceData) -> None:
    if not reference.degraded:
        return
    failed = ", ".join(sorted(reference.failures))
    st.warning(
        f"Some reference data could not be loaded ({failed}). "
        "The affected selectors are empty; reload the page to retry."
    )


@st.dialog("Confirm")
def confirmation_dialog(prompt: str, on_confirm: Callable[[], None], state_name: str):
    st.write(prompt)

    col_yes, col_no = st.columns(2)

    with col_yes:
        if st.button("Yes", type="primary", key="confirm_yes"):
            on_confirm()
            st.session_state[state_name] = True
            st.rerun()
    with col_no:
        if st.button("No", key="confirm_no"):
            st.session_state[state_name] = False
            st.rerun()
