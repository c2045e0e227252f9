# opticlinic/services/pdf_service.py
import logging
from io import BytesIO
from typing import Iterable, Optional

import bleach
from xhtml2pdf import pisa

from .. import models

logger = logging.getLogger(__name__)


class PDFRenderError(Exception):
    pass


_STYLE = """
<style>
  @page { size: a4 portrait; margin: 1.5cm; }
  body { font-family: Helvetica; font-size: 10pt; }
  h1 { font-size: 16pt; margin-bottom: 4pt; }
  h2 { font-size: 12pt; margin-top: 12pt; border-bottom: 1px solid #999; }
  table { width: 100%; }
  td.label { width: 35%; font-weight: bold; vertical-align: top; }
  .evolution { margin-top: 8pt; }
</style>
"""

HISTORY_FIELDS = [
    ("reason_for_consultation", "Reason for consultation"),
    ("current_illness", "Current illness"),
    ("personal_history", "Personal history"),
    ("family_history", "Family history"),
    ("occupational_history", "Occupational history"),
    ("optical_correction_type", "Optical correction"),
    ("systemic_diseases", "Systemic diseases"),
    ("medications", "Medications"),
    ("allergies", "Allergies"),
    ("diagnostic", "Diagnostic"),
    ("treatment_plan", "Treatment plan"),
    ("observations", "Observations"),
]

SOAP_FIELDS = [
    ("subjective", "Subjective"),
    ("objective", "Objective"),
    ("assessment", "Assessment"),
    ("plan", "Plan"),
    ("recommendations", "Recommendations"),
]


def _text(value: Optional[object]) -> str:
    """Escape free text for the PDF template; no markup survives."""
    if value is None or value == "":
        return "-"
    return bleach.clean(str(value), tags=[], strip=True).replace("\n", "<br/>")


def _rows(obj, fields: Iterable) -> str:
    return "".join(
        f'<tr><td class="label">{label}</td><td>{_text(getattr(obj, name, None))}</td></tr>'
        for name, label in fields
    )


def render_clinical_history_html(history: models.ClinicalHistory,
                                 evolutions: Iterable[models.ClinicalEvolution]) -> str:
    patient = history.patient
    header = (
        f"<h1>Clinical history #{history.id}</h1>"
        f"<p><b>Patient:</b> {_text(patient.full_name if patient else None)} &nbsp; "
        f"<b>Identification:</b> {_text(patient.identification if patient else None)}</p>"
    )
    parts = [header, "<h2>Clinical history</h2>", f"<table>{_rows(history, HISTORY_FIELDS)}</table>"]

    evolutions = list(evolutions)
    parts.append("<h2>Evolutions</h2>")
    if not evolutions:
        parts.append("<p>No evolutions recorded.</p>")
    for evolution in evolutions:
        parts.append(
            f'<div class="evolution"><p><b>{_text(evolution.evolution_date)}</b>'
            f"{' (appointment #' + str(evolution.appointment_id) + ')' if evolution.appointment_id else ''}</p>"
            f"<table>{_rows(evolution, SOAP_FIELDS)}</table></div>"
        )
    return f"<html><head><meta charset='utf-8'/>{_STYLE}</head><body>{''.join(parts)}</body></html>"


def html_to_pdf(html: str) -> bytes:
    pdf_io = BytesIO()
    result = pisa.CreatePDF(src=html, dest=pdf_io, encoding="utf-8")
    if result.err:
        logger.error(f"PDF rendering failed with {result.err} error(s)")
        raise PDFRenderError("Could not render the PDF document.")
    return pdf_io.getvalue()


def render_clinical_history_pdf(history: models.ClinicalHistory,
                                evolutions: Iterable[models.ClinicalEvolution]) -> bytes:
    return html_to_pdf(render_clinical_history_html(history, evolutions))
