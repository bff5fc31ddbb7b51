"""
app/main.py

MedCore HMS: Streamlit entry point.
- Login gate backed by the clinic's user store
- Role-based navigation (Patient / Doctor / Pharmacist / Administrator)
- Global theme injection
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import streamlit as st

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

from app.pages import administrator, auth, doctor, patient, pharmacist  # noqa: E402
from app.state import current_user, get_auth  # noqa: E402
from app.ui import inject_theme  # noqa: E402
from storage.models import UserRole  # noqa: E402

# ---------------------------------------------------------------------------
# Page config
# ---------------------------------------------------------------------------
st.set_page_config(
    page_title="MedCore HMS",
    page_icon="🏥",
    layout="wide",
    initial_sidebar_state="expanded",
)

# ---------------------------------------------------------------------------
# Session defaults
# ---------------------------------------------------------------------------
if "current_page" not in st.session_state:
    st.session_state["current_page"] = "auth"

PAGES = {
    "auth": auth.render,
    "patient": patient.render,
    "doctor": doctor.render,
    "pharmacist": pharmacist.render,
    "administrator": administrator.render,
}

ROLE_NAV = {
    UserRole.PATIENT: [("My Health", "patient")],
    UserRole.DOCTOR: [("Clinical Dashboard", "doctor")],
    UserRole.PHARMACIST: [("Pharmacy", "pharmacist")],
    UserRole.ADMINISTRATOR: [("Administration", "administrator")],
}


def _logout() -> None:
    get_auth().logout()
    st.session_state["current_page"] = "auth"
    st.rerun()


inject_theme()

# ---------------------------------------------------------------------------
# Sidebar
# ---------------------------------------------------------------------------
st.sidebar.title("🩺 MedCore HMS")
st.sidebar.markdown("Appointments, outcomes, prescriptions and pharmacy stock in one workspace.")
st.sidebar.divider()

user = current_user()
if user is not None:
    st.sidebar.success(f"**{user.name}**\n\nRole: **{user.role.value.title()}**")
    if st.sidebar.button("↩️ Sign out"):
        _logout()
else:
    st.sidebar.info("Not logged in")

st.sidebar.divider()

# ---------------------------------------------------------------------------
# Navigation options (role-based)
# ---------------------------------------------------------------------------
nav_options = [("Account" if user is not None else "Sign in", "auth")]
if user is not None and get_auth().password_change_required:
    # Default password: no portal until it is changed.
    nav_options = [("Change password", "auth")]
    st.session_state["current_page"] = "auth"
elif user is not None:
    nav_options = ROLE_NAV[user.role] + nav_options
else:
    st.session_state["current_page"] = "auth"

labels = [x[0] for x in nav_options]
keys = [x[1] for x in nav_options]

try:
    current_idx = keys.index(st.session_state["current_page"])
except ValueError:
    current_idx = 0
    st.session_state["current_page"] = keys[0]

page_label = st.sidebar.radio("Navigate", options=labels, index=current_idx)
page_key = dict(nav_options)[page_label]
st.session_state["current_page"] = page_key

st.sidebar.divider()
st.sidebar.caption("⚠️ Demo warning: Do not enter real personal health information on a public demo.")

# ---------------------------------------------------------------------------
# Page routing
# ---------------------------------------------------------------------------
PAGES[page_key]()
