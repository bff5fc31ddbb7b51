"""
app/pages/patient.py

Patient portal
- Metrics: scheduled appointments, completed visits, history entries
- Book an AVAILABLE slot with a doctor
- Reschedule / cancel scheduled appointments
- Past outcomes with prescriptions, medical record export
- Contact details
"""

from __future__ import annotations

from datetime import datetime

import streamlit as st

from app.state import get_workflow, render_flash, require_role, show_result
from app.ui import card_close, card_open, fmt_slot, inject_theme, metric_card, status_badge
from storage.models import UserRole
from workflow.export import export_json, export_pdf
from workflow.roles import PatientPortal
from workflow.result import WorkflowResult


def _render_booking(portal: PatientPortal) -> None:
    doctors = portal.doctors()
    if not doctors:
        st.info("No doctors are registered yet.")
        return

    doctor_options = {f"{d.name} · {d.specialization or 'General'}": d for d in doctors}
    doctor = doctor_options[st.selectbox("Doctor", options=list(doctor_options.keys()))]
    slots = portal.available_slots(doctor.user_id)
    if not slots:
        st.info("This doctor has no open slots right now.")
        return

    slot_options = {fmt_slot(s): s for s in slots}
    slot = slot_options[st.selectbox("Available slot", options=list(slot_options.keys()))]
    if st.button("Request appointment", type="primary", use_container_width=True):
        show_result(
            portal.request_appointment(doctor.user_id, slot.slot_id),
            "Appointment requested. The doctor will confirm it shortly.",
        )


def _render_scheduled(portal: PatientPortal) -> None:
    workflow = portal.workflow
    scheduled = portal.scheduled_appointments()
    if not scheduled:
        st.info("No scheduled appointments.")
        return

    for appt in scheduled:
        doctor = workflow.store.users.get(appt.doctor_id)
        slot = workflow.slot_for(appt)
        with st.container(border=True):
            c1, c2 = st.columns([3, 1])
            with c1:
                st.markdown(f"**{fmt_slot(slot)}** · {doctor.name if doctor else appt.doctor_id}")
                st.caption(f"Appointment {appt.appointment_id}")
            with c2:
                st.markdown(status_badge(appt.status), unsafe_allow_html=True)

            alternatives = {fmt_slot(s): s for s in workflow.available_slots(appt.doctor_id)}
            r1, r2 = st.columns([3, 1])
            with r1:
                choice = st.selectbox(
                    "Move to",
                    options=["—"] + list(alternatives.keys()),
                    key=f"resched_{appt.appointment_id}",
                )
                if choice != "—" and st.button("Reschedule", key=f"move_{appt.appointment_id}"):
                    show_result(
                        portal.reschedule_appointment(appt.appointment_id, alternatives[choice].slot_id),
                        "Appointment moved. The doctor will confirm the new time.",
                    )
            with r2:
                st.markdown("<div style='height:28px'></div>", unsafe_allow_html=True)
                if st.button("Cancel", key=f"cancel_{appt.appointment_id}"):
                    show_result(portal.cancel_appointment(appt.appointment_id), "Appointment cancelled.")


def _render_outcomes(portal: PatientPortal) -> None:
    views = portal.outcomes()
    if not views:
        st.info("No completed visits yet.")
        return
    for view in views:
        with st.expander(f"{view.appointment_date} · {view.outcome.service_provided}"):
            if view.outcome.consultation_notes:
                st.write(view.outcome.consultation_notes)
            for rx in view.prescriptions:
                medication = portal.store.medications.get(rx.medication_id)
                st.markdown(
                    f"- {medication.name if medication else rx.medication_id} × {rx.quantity} "
                    f"{status_badge(rx.status)}",
                    unsafe_allow_html=True,
                )


def _render_record(portal: PatientPortal) -> None:
    record = portal.medical_record()
    if record.history:
        st.dataframe(
            [
                {"Date": h.diagnosis_date, "Diagnosis": h.diagnosis, "Treatment": h.treatment}
                for h in record.history
            ],
            use_container_width=True,
            hide_index=True,
        )
    else:
        st.info("No diagnoses recorded.")

    c1, c2 = st.columns(2)
    user = portal.user
    with c1:
        st.download_button(
            "Download record (JSON)",
            data=export_json(portal.workflow, user.user_id, user) or "",
            file_name=f"medical_record_{user.user_id}.json",
            mime="application/json",
            use_container_width=True,
        )
    with c2:
        st.download_button(
            "Download record (PDF)",
            data=export_pdf(portal.workflow, user.user_id, user) or b"",
            file_name=f"medical_record_{user.user_id}.pdf",
            mime="application/pdf",
            use_container_width=True,
        )


def _render_profile(portal: PatientPortal) -> None:
    user = portal.user
    card_open(user.name, f"{user.user_id} · born {user.date_of_birth or '—'} · blood type {user.blood_type or '—'}")
    card_close()
    with st.form("contact_form"):
        phone = st.text_input("Contact number", value=user.contact_number)
        email = st.text_input("Email address", value=user.email_address)
        submitted = st.form_submit_button("Save contact details")
    if submitted:
        results = []
        if phone != user.contact_number:
            results.append(portal.update_contact_number(phone))
        if email != user.email_address:
            results.append(portal.update_email_address(email))
        failed = next((r for r in results if not r.ok), None)
        show_result(failed if failed is not None else WorkflowResult.success(), "Contact details saved.")


def render() -> None:
    inject_theme()
    st.title("My Health Overview")
    st.caption(datetime.now().strftime("%A, %d %B %Y"))

    user = require_role(UserRole.PATIENT)
    if user is None:
        st.rerun()
        return

    portal = PatientPortal(get_workflow(), user)
    render_flash()

    c1, c2, c3 = st.columns(3)
    with c1:
        metric_card("Scheduled", str(len(portal.scheduled_appointments())), "requested or confirmed")
    with c2:
        metric_card("Completed visits", str(len(portal.outcomes())))
    with c3:
        metric_card("History entries", str(len(portal.medical_record().history)))

    st.divider()
    book, scheduled, outcomes, record, profile = st.tabs(
        ["Book", "My appointments", "Visit outcomes", "Medical record", "Profile"]
    )
    with book:
        _render_booking(portal)
    with scheduled:
        _render_scheduled(portal)
    with outcomes:
        _render_outcomes(portal)
    with record:
        _render_record(portal)
    with profile:
        _render_profile(portal)
