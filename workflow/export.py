"""
workflow/export.py

Medical record export: a JSON string or PDF bytes for one patient.

Both exporters enforce the same access rule: the requester must be the
patient themselves, or a doctor who has the patient under care (a confirmed
or completed appointment).  Anyone else gets ``None``.

Dependencies
------------
- reportlab  (PDF generation)
- workflow.engine  (data access)
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from io import BytesIO
from typing import Any
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.pagesizes import LETTER
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from storage.models import User, UserRole
from workflow.engine import ClinicWorkflow

logger = logging.getLogger(__name__)

DISCLAIMER = (
    "This document is generated for local demo purposes only. "
    "It is NOT a legally valid health record."
)


# ---------------------------------------------------------------------------
# Access control & shared data fetch
# ---------------------------------------------------------------------------


def can_export(workflow: ClinicWorkflow, patient_id: str, requester: User) -> bool:
    if requester.role == UserRole.PATIENT:
        return requester.user_id == patient_id
    if requester.role == UserRole.DOCTOR:
        return workflow.is_under_care(requester.user_id, patient_id)
    return False


def _build_export_bundle(workflow: ClinicWorkflow, patient_id: str, requester: User) -> dict[str, Any] | None:
    """
    Assemble all exportable data for a patient.

    Returns ``None`` if the requester is not authorised or the patient is unknown.
    """
    if not can_export(workflow, patient_id, requester):
        logger.warning("Export of %s refused for %s", patient_id, requester.user_id)
        return None
    result = workflow.medical_record(patient_id)
    if not result.ok:
        return None
    record = result.value

    patient = record.patient.model_dump(mode="json", exclude={"password_hash"})
    return {
        "export_generated_at": datetime.now(tz=timezone.utc).isoformat(),
        "exported_by": requester.user_id,
        "patient": patient,
        "history": [h.model_dump(mode="json") for h in record.history],
        "outcomes": [
            {
                "outcome_id": v.outcome.outcome_id,
                "appointment_id": v.appointment.appointment_id,
                "doctor_id": v.appointment.doctor_id,
                "date": v.appointment_date.isoformat() if v.appointment_date else None,
                "service_provided": v.outcome.service_provided,
                "consultation_notes": v.outcome.consultation_notes,
                "prescriptions": [p.model_dump(mode="json") for p in v.prescriptions],
            }
            for v in record.outcomes
        ],
        "disclaimer": DISCLAIMER,
    }


# ---------------------------------------------------------------------------
# JSON export
# ---------------------------------------------------------------------------


def export_json(workflow: ClinicWorkflow, patient_id: str, requester: User) -> str | None:
    """
    Produce a pretty-printed JSON string of the patient's medical record.

    Returns:
        JSON string, or ``None`` if access is denied / patient not found.
    """
    bundle = _build_export_bundle(workflow, patient_id, requester)
    if bundle is None:
        return None
    logger.info("Medical record of %s exported as JSON by %s", patient_id, requester.user_id)
    return json.dumps(bundle, indent=2, ensure_ascii=False, default=str)


# ---------------------------------------------------------------------------
# PDF export
# ---------------------------------------------------------------------------

_HEADER_STYLE = [
    ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
    ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
    ("FONTSIZE", (0, 0), (-1, -1), 9),
    ("GRID", (0, 0), (-1, -1), 0.5, colors.HexColor("#cccccc")),
    ("LEFTPADDING", (0, 0), (-1, -1), 6),
    ("RIGHTPADDING", (0, 0), (-1, -1), 6),
    ("TOPPADDING", (0, 0), (-1, -1), 4),
    ("BOTTOMPADDING", (0, 0), (-1, -1), 4),
    ("VALIGN", (0, 0), (-1, -1), "TOP"),
]


def _table(rows: list[list[Any]], widths: list[float], header: str, stripe: str) -> Table:
    table = Table(rows, colWidths=widths, repeatRows=1)
    table.setStyle(
        TableStyle(
            [("BACKGROUND", (0, 0), (-1, 0), colors.HexColor(header))]
            + _HEADER_STYLE
            + [("ROWBACKGROUNDS", (0, 1), (-1, -1), [colors.white, colors.HexColor(stripe)])]
        )
    )
    return table


def export_pdf(workflow: ClinicWorkflow, patient_id: str, requester: User) -> bytes | None:
    """
    Produce the patient's medical record as PDF bytes using reportlab.

    Returns:
        PDF as ``bytes``, or ``None`` if access is denied / patient not found.
    """
    bundle = _build_export_bundle(workflow, patient_id, requester)
    if bundle is None:
        return None

    buf = BytesIO()
    doc = SimpleDocTemplate(
        buf,
        pagesize=LETTER,
        leftMargin=inch,
        rightMargin=inch,
        topMargin=inch,
        bottomMargin=inch,
    )

    styles = getSampleStyleSheet()
    title_style = ParagraphStyle(
        "CustomTitle",
        parent=styles["Title"],
        fontSize=18,
        textColor=colors.HexColor("#1a3a5c"),
        spaceAfter=6,
    )
    heading_style = ParagraphStyle(
        "CustomHeading",
        parent=styles["Heading2"],
        fontSize=12,
        textColor=colors.HexColor("#1a3a5c"),
        spaceBefore=12,
        spaceAfter=4,
    )
    normal = styles["Normal"]
    cell = ParagraphStyle("Cell", parent=normal, fontSize=9, leading=11)
    small = ParagraphStyle("Small", parent=normal, fontSize=8, textColor=colors.grey)

    def p(text: Any, style: ParagraphStyle = cell) -> Paragraph:
        return Paragraph(escape(str(text or "-")).replace("\n", "<br/>"), style)

    patient = bundle["patient"]
    story = []

    # ---- Header ----
    story.append(Paragraph("MedCore HMS: Medical Record", title_style))
    story.append(Paragraph(f"Generated: {bundle['export_generated_at']}", small))
    story.append(Spacer(1, 0.15 * inch))

    # ---- Patient profile ----
    story.append(Paragraph("Patient", heading_style))
    profile = [
        ["Field", "Value"],
        ["Patient ID", patient["user_id"]],
        ["Name", patient.get("name") or "-"],
        ["Date of birth", patient.get("date_of_birth") or "-"],
        ["Gender", patient.get("gender") or "-"],
        ["Blood type", patient.get("blood_type") or "-"],
        ["Contact", patient.get("contact_number") or "-"],
        ["Email", patient.get("email_address") or "-"],
    ]
    story.append(_table(profile, [2 * inch, 4.5 * inch], "#1a3a5c", "#f0f4f8"))

    # ---- History ----
    story.append(Paragraph("Diagnoses & Treatments", heading_style))
    if bundle["history"]:
        rows = [["Date", "Diagnosis", "Treatment"]] + [
            [h["diagnosis_date"], p(h["diagnosis"]), p(h["treatment"])] for h in bundle["history"]
        ]
        story.append(_table(rows, [1.1 * inch, 2.7 * inch, 2.7 * inch], "#1a3a5c", "#f0f4f8"))
    else:
        story.append(Paragraph("No history recorded.", normal))

    # ---- Outcomes ----
    story.append(Paragraph("Appointment Outcomes", heading_style))
    if bundle["outcomes"]:
        rows = [["Date", "Doctor", "Service", "Notes", "Prescriptions"]]
        for o in bundle["outcomes"]:
            meds = ", ".join(
                f"{rx['medication_id']} x{rx['quantity']} ({rx['status']})" for rx in o["prescriptions"]
            )
            rows.append([
                o["date"] or "-",
                o["doctor_id"],
                p(o["service_provided"]),
                p(o["consultation_notes"]),
                p(meds),
            ])
        story.append(
            _table(
                rows,
                [0.9 * inch, 0.7 * inch, 1.5 * inch, 1.9 * inch, 1.5 * inch],
                "#2d6a4f",
                "#f0f8f4",
            )
        )
    else:
        story.append(Paragraph("No completed appointments.", normal))

    # ---- Disclaimer ----
    story.append(Spacer(1, 0.3 * inch))
    story.append(Paragraph(bundle["disclaimer"], small))

    doc.build(story)
    logger.info("Medical record of %s exported as PDF by %s", patient_id, requester.user_id)
    return buf.getvalue()
