"""
app/pages/pharmacist.py

Pharmacy desk
- Pending prescriptions with one-click dispensing
- Inventory with low-stock flags
- Replenishment requests
"""

from __future__ import annotations

from datetime import datetime

import streamlit as st

from app.state import get_workflow, render_flash, require_role, show_result
from app.ui import inject_theme, metric_card, status_badge
from storage.models import UserRole
from workflow.roles import PharmacistPortal


def _render_prescriptions(portal: PharmacistPortal) -> None:
    pending = portal.pending_prescriptions()
    if not pending:
        st.info("Nothing waiting to be dispensed.")
        return
    for rx in pending:
        medication = portal.store.medications.get(rx.medication_id)
        appointment = portal.store.appointments.get(rx.appointment_id)
        with st.container(border=True):
            c1, c2 = st.columns([4, 1])
            with c1:
                st.markdown(f"**{medication.name if medication else rx.medication_id}** × {rx.quantity}")
                st.caption(
                    f"{rx.prescription_id} · appointment {rx.appointment_id}"
                    + (f" · patient {appointment.patient_id}" if appointment else "")
                    + (f" · in stock {medication.stock_level}" if medication else "")
                )
            with c2:
                if st.button("Dispense", key=f"disp_{rx.prescription_id}", type="primary", use_container_width=True):
                    show_result(portal.dispense(rx.prescription_id), f"{rx.prescription_id} dispensed.")


def _render_inventory(portal: PharmacistPortal) -> None:
    rows = [
        {
            "ID": m.medication_id,
            "Medication": m.name,
            "Stock": m.stock_level,
            "Alert level": m.low_stock_alert_level,
            "Low": "⚠️" if m.is_low_stock else "",
        }
        for m in portal.inventory()
    ]
    st.dataframe(rows, use_container_width=True, hide_index=True)


def _render_requests(portal: PharmacistPortal) -> None:
    medications = {f"{m.name} ({m.medication_id})": m for m in portal.inventory()}
    if medications:
        with st.form("replenish", clear_on_submit=True):
            name = st.selectbox("Medication", options=list(medications.keys()))
            qty = st.number_input("Quantity", min_value=1, value=10, step=1)
            if st.form_submit_button("Submit request", type="primary"):
                show_result(
                    portal.submit_replenishment_request(medications[name].medication_id, int(qty)),
                    "Replenishment request submitted.",
                )

    for req in sorted(portal.my_requests(), key=lambda r: r.request_id, reverse=True):
        c1, c2 = st.columns([4, 1])
        with c1:
            st.write(f"{req.request_id} · {req.medication_id} × {req.quantity}")
        with c2:
            st.markdown(status_badge(req.status), unsafe_allow_html=True)


def render() -> None:
    inject_theme()
    st.title("Pharmacy")
    st.caption(datetime.now().strftime("%A, %d %B %Y"))

    user = require_role(UserRole.PHARMACIST)
    if user is None:
        st.rerun()
        return

    portal = PharmacistPortal(get_workflow(), user)
    render_flash()

    c1, c2 = st.columns(2)
    with c1:
        metric_card("To dispense", str(len(portal.pending_prescriptions())))
    with c2:
        low = portal.low_stock_medications()
        metric_card("Low stock", str(len(low)), ", ".join(m.name for m in low) or None)

    st.divider()
    prescriptions, inventory, requests = st.tabs(["Prescriptions", "Inventory", "Replenishment"])
    with prescriptions:
        _render_prescriptions(portal)
    with inventory:
        _render_inventory(portal)
    with requests:
        _render_requests(portal)
