"""
app/pages/doctor.py

Doctor dashboard
- Metrics: pending requests, upcoming appointments, patients under care
- Accept / decline appointment requests
- Record consultation outcomes (service, notes, prescriptions)
- Schedule: open and remove slots
- Patients under care: medical record, diagnoses, export
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta

import streamlit as st

from app.state import get_workflow, render_flash, require_role, show_result
from app.ui import card_close, card_open, fmt_slot, inject_theme, metric_card, status_badge
from storage.models import SlotStatus, UserRole
from workflow.engine import PrescriptionOrder
from workflow.export import export_json, export_pdf
from workflow.roles import DoctorPortal


def _patient_name(portal: DoctorPortal, patient_id: str) -> str:
    user = portal.store.users.get(patient_id)
    return user.name if user else patient_id


# ---------------------------------------------------------------------------
# Requests & consultations
# ---------------------------------------------------------------------------


def _render_requests(portal: DoctorPortal) -> None:
    pending = portal.pending_requests()
    if not pending:
        st.info("No appointment requests waiting.")
        return
    for appt in pending:
        with st.container(border=True):
            c1, c2, c3 = st.columns([3, 1, 1])
            with c1:
                st.markdown(f"**{_patient_name(portal, appt.patient_id)}** · {fmt_slot(portal.workflow.slot_for(appt))}")
                st.caption(f"Appointment {appt.appointment_id}")
            with c2:
                if st.button("Accept", key=f"acc_{appt.appointment_id}", type="primary", use_container_width=True):
                    show_result(portal.decide_appointment(appt.appointment_id, True), "Appointment confirmed.")
            with c3:
                if st.button("Decline", key=f"dec_{appt.appointment_id}", use_container_width=True):
                    show_result(portal.decide_appointment(appt.appointment_id, False), "Appointment declined.")


def _render_consultations(portal: DoctorPortal) -> None:
    upcoming = portal.upcoming_appointments()
    if not upcoming:
        st.info("No confirmed appointments.")
        return

    medications = {f"{m.name} ({m.medication_id})": m for m in portal.medications()}
    for appt in upcoming:
        label = f"{fmt_slot(portal.workflow.slot_for(appt))} · {_patient_name(portal, appt.patient_id)}"
        with st.expander(label):
            key = appt.appointment_id
            service = st.text_input("Service provided", placeholder="e.g. Consultation, X-ray", key=f"svc_{key}")
            notes = st.text_area("Consultation notes", key=f"notes_{key}")
            picked = st.multiselect("Prescribe", options=list(medications.keys()), key=f"rx_{key}")
            quantities = {
                name: st.number_input(f"Quantity of {name}", min_value=1, value=1, step=1, key=f"q_{key}_{name}")
                for name in picked
            }
            if st.button("Record outcome", type="primary", key=f"done_{key}"):
                orders = [
                    PrescriptionOrder(medication_id=medications[name].medication_id, quantity=int(qty))
                    for name, qty in quantities.items()
                ]
                show_result(
                    portal.complete_appointment(appt.appointment_id, service, notes, orders),
                    "Outcome recorded.",
                )


# ---------------------------------------------------------------------------
# Schedule
# ---------------------------------------------------------------------------


def _render_schedule(portal: DoctorPortal) -> None:
    with st.form("new_slot"):
        c1, c2, c3 = st.columns(3)
        with c1:
            day = st.date_input("Date", value=date.today() + timedelta(days=1), min_value=date.today())
        with c2:
            start = st.time_input("Start", value=time(9, 0))
        with c3:
            end = st.time_input("End", value=time(9, 30))
        submitted = st.form_submit_button("Open slot", type="primary")
    if submitted:
        show_result(portal.create_slot(day, start, end), "Slot opened.")

    slots = portal.schedule()
    if not slots:
        st.info("No slots yet.")
        return
    for slot in slots:
        c1, c2, c3 = st.columns([3, 1, 1])
        with c1:
            st.write(fmt_slot(slot))
        with c2:
            st.markdown(status_badge(slot.status), unsafe_allow_html=True)
        with c3:
            if slot.status == SlotStatus.AVAILABLE and st.button("Remove", key=f"rm_{slot.slot_id}"):
                show_result(portal.remove_slot(slot.slot_id), "Slot removed.")


# ---------------------------------------------------------------------------
# Patients
# ---------------------------------------------------------------------------


def _render_patients(portal: DoctorPortal) -> None:
    patients = portal.patients_under_care()
    if not patients:
        st.info("No patients under your care yet.")
        return

    options = {f"{p.name} · {p.user_id}": p for p in patients}
    patient = options[st.selectbox("Patient", options=list(options.keys()))]
    record = portal.medical_record(patient.user_id).unwrap()

    card_open(patient.name, f"{patient.gender or '—'} · born {patient.date_of_birth or '—'} · blood type {patient.blood_type or '—'}")
    card_close()

    st.markdown("**Diagnoses & treatments**")
    for entry in record.history:
        with st.expander(f"{entry.diagnosis_date} · {entry.diagnosis}"):
            with st.form(f"hist_{entry.history_id}"):
                diagnosis = st.text_input("Diagnosis", value=entry.diagnosis)
                treatment = st.text_input("Treatment", value=entry.treatment)
                if st.form_submit_button("Update"):
                    show_result(portal.update_history(entry.history_id, diagnosis, treatment), "History updated.")

    with st.form(f"new_hist_{patient.user_id}", clear_on_submit=True):
        diagnosis = st.text_input("New diagnosis")
        treatment = st.text_input("Treatment")
        if st.form_submit_button("Add to record"):
            show_result(portal.add_history(patient.user_id, diagnosis, treatment), "Diagnosis added.")

    st.markdown("**Past outcomes**")
    for view in record.outcomes:
        st.markdown(f"- {view.appointment_date} · {view.outcome.service_provided}")

    doctor = portal.user
    c1, c2 = st.columns(2)
    with c1:
        st.download_button(
            "Export record (JSON)",
            data=export_json(portal.workflow, patient.user_id, doctor) or "",
            file_name=f"medical_record_{patient.user_id}.json",
            mime="application/json",
            use_container_width=True,
        )
    with c2:
        st.download_button(
            "Export record (PDF)",
            data=export_pdf(portal.workflow, patient.user_id, doctor) or b"",
            file_name=f"medical_record_{patient.user_id}.pdf",
            mime="application/pdf",
            use_container_width=True,
        )


def render() -> None:
    inject_theme()
    st.title("Clinical Dashboard")
    st.caption(datetime.now().strftime("%A, %d %B %Y"))

    user = require_role(UserRole.DOCTOR)
    if user is None:
        st.rerun()
        return

    portal = DoctorPortal(get_workflow(), user)
    render_flash()

    c1, c2, c3 = st.columns(3)
    with c1:
        metric_card("Pending requests", str(len(portal.pending_requests())), "awaiting your decision")
    with c2:
        metric_card("Upcoming", str(len(portal.upcoming_appointments())), "confirmed appointments")
    with c3:
        metric_card("Patients", str(len(portal.patients_under_care())), "under your care")

    st.divider()
    requests, consultations, schedule, patients = st.tabs(
        ["Requests", "Consultations", "My schedule", "My patients"]
    )
    with requests:
        _render_requests(portal)
    with consultations:
        _render_consultations(portal)
    with schedule:
        _render_schedule(portal)
    with patients:
        _render_patients(portal)
