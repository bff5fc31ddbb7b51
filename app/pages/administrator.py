"""
app/pages/administrator.py

Administration
- Staff: list with role / gender filters, add, update, remove
- Appointments: read-only overview by status
- Inventory: medications, stock levels, alert levels
- Replenishment requests: approve
"""

from __future__ import annotations

from datetime import datetime

import streamlit as st

from app.state import get_workflow, render_flash, require_role, show_result
from app.ui import fmt_slot, inject_theme, metric_card
from storage.auth import DEFAULT_PASSWORD
from storage.models import AppointmentStatus, UserRole
from workflow.roles import STAFF_ROLES, AdministratorPortal


def _render_staff(portal: AdministratorPortal) -> None:
    c1, c2 = st.columns(2)
    with c1:
        role = st.selectbox("Role", options=["All"] + [r.value.title() for r in STAFF_ROLES])
    with c2:
        gender = st.selectbox("Gender", options=["All", "Male", "Female"])
    staff = portal.list_staff(
        role=None if role == "All" else role,
        gender=None if gender == "All" else gender,
    )
    st.dataframe(
        [
            {"ID": u.user_id, "Name": u.name, "Role": u.role.value.title(), "Gender": u.gender,
             "Contact": u.contact_number, "Email": u.email_address}
            for u in staff
        ],
        use_container_width=True,
        hide_index=True,
    )

    with st.expander("➕ Add staff member"):
        with st.form("add_staff", clear_on_submit=True):
            new_role = st.selectbox("Role", options=[r.value for r in STAFF_ROLES])
            user_id = st.text_input("Hospital ID")
            name = st.text_input("Name")
            new_gender = st.selectbox("Gender", options=["Male", "Female"])
            specialization = st.text_input("Specialization (doctors)")
            password = st.text_input(
                "Initial password", value=DEFAULT_PASSWORD, type="password",
                help="Changed by the staff member at first sign-in.",
            )
            if st.form_submit_button("Add", type="primary"):
                profile = {"gender": new_gender}
                if new_role == UserRole.DOCTOR.value:
                    profile["specialization"] = specialization
                show_result(portal.add_staff(new_role, user_id, password, name, **profile), f"{user_id} added.")

    if staff:
        options = {f"{u.name} · {u.user_id}": u for u in staff}
        member = options[st.selectbox("Edit staff member", options=list(options.keys()))]
        with st.form(f"edit_{member.user_id}"):
            name = st.text_input("Name", value=member.name)
            contact = st.text_input("Contact number", value=member.contact_number)
            email = st.text_input("Email address", value=member.email_address)
            c1, c2 = st.columns(2)
            with c1:
                save = st.form_submit_button("Save", type="primary")
            with c2:
                remove = st.form_submit_button("Remove")
        if save:
            show_result(
                portal.update_staff(member.user_id, name=name, contact_number=contact, email_address=email),
                f"{member.user_id} updated.",
            )
        if remove:
            show_result(portal.remove_staff(member.user_id), f"{member.user_id} removed.")


def _render_appointments(portal: AdministratorPortal) -> None:
    status = st.selectbox("Status", options=["All"] + [s.value.title() for s in AppointmentStatus])
    appointments = portal.all_appointments(None if status == "All" else AppointmentStatus(status.upper()))
    st.dataframe(
        [
            {"ID": a.appointment_id, "Patient": a.patient_id, "Doctor": a.doctor_id,
             "Slot": fmt_slot(portal.workflow.slot_for(a)), "Status": a.status.value.title(),
             "Outcome": a.outcome_id or ""}
            for a in appointments
        ],
        use_container_width=True,
        hide_index=True,
    )


def _render_inventory(portal: AdministratorPortal) -> None:
    medications = portal.inventory()
    st.dataframe(
        [
            {"ID": m.medication_id, "Medication": m.name, "Stock": m.stock_level,
             "Alert level": m.low_stock_alert_level, "Low": "⚠️" if m.is_low_stock else ""}
            for m in medications
        ],
        use_container_width=True,
        hide_index=True,
    )

    with st.expander("➕ Add medication"):
        with st.form("add_med", clear_on_submit=True):
            name = st.text_input("Name")
            stock = st.number_input("Initial stock", min_value=0, value=0, step=1)
            alert = st.number_input("Low stock alert level", min_value=0, value=10, step=1)
            if st.form_submit_button("Add", type="primary"):
                show_result(portal.add_medication(name, int(stock), int(alert)), "Medication added.")

    if not medications:
        return
    options = {f"{m.name} ({m.medication_id})": m for m in medications}
    med = options[st.selectbox("Edit medication", options=list(options.keys()))]
    with st.form(f"edit_{med.medication_id}"):
        name = st.text_input("Name", value=med.name)
        stock = st.number_input("Stock level", value=med.stock_level, step=1)
        alert = st.number_input("Low stock alert level", value=med.low_stock_alert_level, step=1)
        c1, c2, c3, c4 = st.columns(4)
        with c1:
            rename = st.form_submit_button("Rename")
        with c2:
            set_stock = st.form_submit_button("Set stock")
        with c3:
            set_alert = st.form_submit_button("Set alert")
        with c4:
            remove = st.form_submit_button("Remove")
    if rename:
        show_result(portal.update_medication(med.medication_id, name), "Medication renamed.")
    if set_stock:
        show_result(portal.adjust_stock(med.medication_id, int(stock)), "Stock updated.")
    if set_alert:
        show_result(portal.set_low_stock_alert(med.medication_id, int(alert)), "Alert level updated.")
    if remove:
        show_result(portal.remove_medication(med.medication_id), "Medication removed.")


def _render_requests(portal: AdministratorPortal) -> None:
    pending = portal.pending_requests()
    if not pending:
        st.info("No replenishment requests pending.")
        return
    for req in pending:
        medication = portal.store.medications.get(req.medication_id)
        c1, c2 = st.columns([4, 1])
        with c1:
            st.write(
                f"**{req.request_id}** · {medication.name if medication else req.medication_id} × {req.quantity} "
                f"(by {req.requested_by})"
            )
        with c2:
            if st.button("Approve", key=f"appr_{req.request_id}", type="primary", use_container_width=True):
                show_result(portal.approve_request(req.request_id), f"{req.request_id} approved.")


def render() -> None:
    inject_theme()
    st.title("Administration")
    st.caption(datetime.now().strftime("%A, %d %B %Y"))

    user = require_role(UserRole.ADMINISTRATOR)
    if user is None:
        st.rerun()
        return

    portal = AdministratorPortal(get_workflow(), user)
    render_flash()

    c1, c2, c3 = st.columns(3)
    with c1:
        metric_card("Staff", str(len(portal.list_staff())))
    with c2:
        metric_card("Low stock", str(len(portal.workflow.low_stock_medications())))
    with c3:
        metric_card("Pending requests", str(len(portal.pending_requests())))

    st.divider()
    staff, appointments, inventory, requests = st.tabs(["Staff", "Appointments", "Inventory", "Replenishment"])
    with staff:
        _render_staff(portal)
    with appointments:
        _render_appointments(portal)
    with inventory:
        _render_inventory(portal)
    with requests:
        _render_requests(portal)
