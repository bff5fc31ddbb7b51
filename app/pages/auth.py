"""
app/pages/auth.py

Sign-in landing page:
- Left hero panel (raw HTML via components.html)
- Right login form; once signed in, account details and password change
- Accounts still on the default password must change it before reaching
  their portal
"""

from __future__ import annotations

import streamlit as st
import streamlit.components.v1 as components

from app.state import current_user, get_auth
from app.ui import card_close, card_open, inject_theme, portal_choice
from storage.auth import AuthenticationError
from storage.csv_store import StoreWriteError
from storage.models import UserRole

_HOME_PAGE = {
    UserRole.PATIENT: "patient",
    UserRole.DOCTOR: "doctor",
    UserRole.PHARMACIST: "pharmacist",
    UserRole.ADMINISTRATOR: "administrator",
}


def render() -> None:
    inject_theme()

    colL, colR = st.columns([1.15, 1], gap="large")

    with colL:
        hero_html = """
<div style="
  border-radius: 18px;
  height: 640px;
  padding: 26px 26px;
  background:
    radial-gradient(1200px 600px at 10% 20%, rgba(255,255,255,0.08), rgba(255,255,255,0.00) 60%),
    linear-gradient(145deg, hsl(212 72% 18%), hsl(212 72% 12%));
  border: 1px solid rgba(255,255,255,0.10);
  position: relative;
  overflow: hidden;
  font-family: system-ui, -apple-system, Segoe UI, Roboto, Arial, sans-serif;
">
  <div style="
    position:absolute; left:-40px; top:40px; width:120%;
    height:120px; transform: rotate(-2deg);
    background: linear-gradient(90deg, rgba(255,255,255,0.10), rgba(255,255,255,0.02), rgba(255,255,255,0.00));
    opacity:0.45;
  "></div>

  <div style="display:flex; align-items:center; gap:12px; margin-bottom:22px; position:relative;">
    <div style="
      width:46px; height:46px; border-radius:14px;
      background: hsla(177,60%,38%,0.18);
      display:flex; align-items:center; justify-content:center;
      font-weight:900; color: hsl(177 60% 55%);
      border: 1px solid rgba(255,255,255,0.08);
    ">🩺</div>
    <div style="color: rgba(255,255,255,0.95); font-weight:900; font-size:20px;">MedCore</div>
  </div>

  <div style="position:absolute; left:26px; bottom:22px; right:26px;">
    <div style="color:white; font-weight:1000; font-size:52px; line-height:1.02; margin-bottom:14px;">
      Your clinic,<br>one workflow.
    </div>

    <div style="color: rgba(255,255,255,0.75); font-size:15px; max-width:520px; margin-bottom:22px;">
      Appointments, consultation outcomes, prescriptions and pharmacy stock,
      kept consistent from booking to dispensing.
    </div>

    <div style="display:flex; gap:24px; flex-wrap:wrap; margin-top:12px;">
      <div>
        <div style="color: hsl(177 60% 55%); font-weight:900; font-size:12px; letter-spacing:0.06em;">SCHEDULING</div>
        <div style="color: rgba(255,255,255,0.80); font-size:13px;">Slots · Requests</div>
      </div>
      <div>
        <div style="color: hsl(177 60% 55%); font-weight:900; font-size:12px; letter-spacing:0.06em;">RECORDS</div>
        <div style="color: rgba(255,255,255,0.80); font-size:13px;">Outcomes · History</div>
      </div>
      <div>
        <div style="color: hsl(177 60% 55%); font-weight:900; font-size:12px; letter-spacing:0.06em;">PHARMACY</div>
        <div style="color: rgba(255,255,255,0.80); font-size:13px;">Stock · Replenishment</div>
      </div>
    </div>
  </div>
</div>
        """
        # IMPORTANT: components.html renders raw HTML, no Markdown parsing
        components.html(hero_html, height=660)

    with colR:
        st.markdown("<div style='height:12px'></div>", unsafe_allow_html=True)
        user = current_user()
        if user is not None:
            _render_account(user)
            return

        st.markdown(
            """
<div style="padding: 10px 4px;">
  <div style="font-weight:1000; font-size:36px; color: rgba(15,23,42,0.92);">Sign in</div>
  <div style="margin-top:6px; color: rgba(15,23,42,0.55); font-size:15px;">Use your hospital ID and password</div>
</div>
            """,
            unsafe_allow_html=True,
        )

        st.markdown("<div style='height:10px'></div>", unsafe_allow_html=True)
        portal_choice("One login, four portals", "Patients, doctors, pharmacists and administrators", icon_text="👤")
        st.markdown("<div style='height:10px'></div>", unsafe_allow_html=True)

        with st.form("login_form"):
            user_id = st.text_input("Hospital ID", placeholder="e.g. P001")
            password = st.text_input("Password", type="password")
            submitted = st.form_submit_button("Sign in", type="primary", use_container_width=True)

        if submitted:
            user = get_auth().login(user_id or "", password or "")
            if user is None:
                st.error("Invalid hospital ID or password.")
            else:
                if not get_auth().password_change_required:
                    st.session_state["current_page"] = _HOME_PAGE[user.role]
                st.rerun()

        st.markdown(
            """
<p style="color: rgba(15,23,42,0.55); font-size:12px; margin-top:16px;">
Demo accounts: P001 (patient), D001 (doctor), PH001 (pharmacist), AD001 (administrator).
Password: <code>password</code>.
</p>
            """,
            unsafe_allow_html=True,
        )


def _render_account(user) -> None:
    card_open(user.name, f"{user.user_id} · {user.role.value.title()}")
    card_close()
    st.markdown("<div style='height:10px'></div>", unsafe_allow_html=True)
    forced = get_auth().password_change_required
    if forced:
        st.warning("You are still using the default password. Choose a new one to continue.")

    with st.form("change_password_form", clear_on_submit=True):
        st.markdown("**Change password**")
        old = st.text_input("Current password", type="password")
        new = st.text_input("New password", type="password")
        confirm = st.text_input("Confirm new password", type="password")
        submitted = st.form_submit_button("Update password", use_container_width=True)

    if submitted:
        if new != confirm:
            st.error("New passwords do not match.")
            return
        try:
            get_auth().change_password(user.user_id, old, new)
        except (AuthenticationError, StoreWriteError) as exc:
            st.error(str(exc))
            return
        if forced:
            st.session_state["current_page"] = _HOME_PAGE[user.role]
            st.rerun()
        st.success("Password updated.")
