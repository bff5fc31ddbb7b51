"""
app/state.py

Process-wide clinic objects for the Streamlit app, plus the per-session
login helpers every page uses.
"""

from __future__ import annotations

import datetime as dt
import logging

import streamlit as st

from storage.auth import AuthService
from storage.csv_store import ClinicStore
from storage.models import User, UserRole
from storage.seed import seed_demo_data_if_needed
from storage.settings import Settings, load_settings
from workflow.engine import ClinicWorkflow
from workflow.result import WorkflowResult

logger = logging.getLogger(__name__)


@st.cache_resource
def get_settings() -> Settings:
    return load_settings()


@st.cache_resource
def get_store() -> ClinicStore:
    settings = get_settings()
    store = ClinicStore.from_settings(settings)
    if seed_demo_data_if_needed(store, dt.date.today()):
        logger.info("Demo data seeded into %s", settings.data_dir)
    return store


@st.cache_resource
def get_workflow() -> ClinicWorkflow:
    return ClinicWorkflow(get_store(), release_policy=get_settings().slot_release_policy)


def get_auth() -> AuthService:
    """One AuthService per browser session."""
    if "auth_service" not in st.session_state:
        st.session_state["auth_service"] = AuthService(get_store())
    return st.session_state["auth_service"]


def current_user() -> User | None:
    return get_auth().current_user()


def require_role(role: UserRole) -> User | None:
    """Return the logged-in user if they hold *role*; otherwise bounce to sign-in."""
    user = current_user()
    if user is None or user.role != role:
        st.warning(f"Please log in as a {role.value.lower()}.")
        st.session_state["current_page"] = "auth"
        return None
    return user


def show_result(result: WorkflowResult, success: str) -> None:
    """Queue the outcome of a workflow call for the next run, then rerun."""
    if result.ok:
        st.session_state["flash"] = ("success", success)
    else:
        st.session_state["flash"] = ("error", result.error.message)
    st.rerun()


def render_flash() -> None:
    kind, message = st.session_state.pop("flash", (None, None))
    if kind == "success":
        st.success(message)
    elif kind == "error":
        st.error(message)
