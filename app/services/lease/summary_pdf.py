"""
Sweetlease - Summary Export
Renders a LeaseRecord into a short PDF report with reportlab platypus.
"""

import io
import logging
from typing import Optional
from xml.sax.saxutils import escape

from reportlab.lib.colors import HexColor, white
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle
from reportlab.lib.units import inch
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from app.services.lease.models import LeaseRecord

logger = logging.getLogger(__name__)

SUMMARY_FILENAME = "sweetlease_summary.pdf"
SUMMARY_TITLE = "Lease Analysis Summary"

NAVY = HexColor("#1E3A5F")
SLATE = HexColor("#334155")
LGRAY = HexColor("#F1F5F9")
BORDER = HexColor("#CBD5E1")

TITLE_STYLE = ParagraphStyle("title", fontName="Helvetica-Bold", fontSize=18, textColor=NAVY, leading=22, spaceAfter=4)
SECTION_STYLE = ParagraphStyle("section", fontName="Helvetica-Bold", fontSize=12, textColor=NAVY, leading=16, spaceBefore=14, spaceAfter=6)
BODY_STYLE = ParagraphStyle("body", fontName="Helvetica", fontSize=9.5, textColor=SLATE, leading=14, spaceAfter=4)
LABEL_STYLE = ParagraphStyle("label", fontName="Helvetica-Bold", fontSize=9, textColor=SLATE, leading=13)
CELL_STYLE = ParagraphStyle("cell", fontName="Helvetica", fontSize=9, textColor=SLATE, leading=13)
HEADER_STYLE = ParagraphStyle("header", fontName="Helvetica-Bold", fontSize=9, textColor=white, leading=13)


def _p(text: Optional[str], style: ParagraphStyle = CELL_STYLE) -> Paragraph:
    return Paragraph(escape(text or "-"), style)


def _key_value_table(rows: list[tuple[str, str]]) -> Table:
    table = Table(
        [[_p(label, LABEL_STYLE), _p(value)] for label, value in rows],
        colWidths=[1.8 * inch, 4.6 * inch],
    )
    table.setStyle(TableStyle([
        ("BACKGROUND", (0, 0), (0, -1), LGRAY),
        ("GRID", (0, 0), (-1, -1), 0.5, BORDER),
        ("VALIGN", (0, 0), (-1, -1), "TOP"),
    ]))
    return table


def _critical_dates_table(record: LeaseRecord) -> Table:
    rows = [[_p("Date", HEADER_STYLE), _p("Description", HEADER_STYLE), _p("Category", HEADER_STYLE)]]
    for item in record.sorted_critical_dates():
        rows.append([_p(item.date), _p(item.description), _p(item.label)])
    table = Table(rows, colWidths=[1.3 * inch, 3.7 * inch, 1.4 * inch], repeatRows=1)
    table.setStyle(TableStyle([
        ("BACKGROUND", (0, 0), (-1, 0), NAVY),
        ("GRID", (0, 0), (-1, -1), 0.5, BORDER),
        ("ROWBACKGROUNDS", (0, 1), (-1, -1), [white, LGRAY]),
        ("VALIGN", (0, 0), (-1, -1), "TOP"),
    ]))
    return table


def render_summary_pdf(record: LeaseRecord, file_name: Optional[str] = None) -> bytes:
    """Build the summary report and return the PDF bytes."""
    buffer = io.BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=A4,
        leftMargin=0.8 * inch,
        rightMargin=0.8 * inch,
        topMargin=0.75 * inch,
        bottomMargin=0.75 * inch,
        title=SUMMARY_TITLE,
    )

    story = [Paragraph(SUMMARY_TITLE, TITLE_STYLE)]
    if file_name:
        story.append(_p(f"Source document: {file_name}", BODY_STYLE))

    story.append(Paragraph("Summary", SECTION_STYLE))
    story.append(_p(record.summary, BODY_STYLE))

    story.append(Paragraph("Key Terms", SECTION_STYLE))
    confidence = (
        f"{record.ocr_confidence:.1f}%" if record.ocr_confidence is not None else "Not available"
    )
    story.append(_key_value_table([
        ("Tenant", record.parties.tenant),
        ("Landlord", record.parties.landlord),
        ("Commencement", record.dates.commencement_date),
        ("Term", record.dates.term),
        ("Expiration", record.dates.expiration_date),
        ("Rent", f"{record.rent.amount} {record.rent.frequency}".strip()),
        ("Next rent due", record.rent.next_due_date),
        ("Permitted use", record.clauses.permitted_use),
        ("Break clause", record.clauses.break_clause),
        ("Extraction confidence", confidence),
    ]))

    story.append(Paragraph("Critical Dates", SECTION_STYLE))
    if record.critical_dates:
        story.append(_critical_dates_table(record))
    else:
        story.append(_p("No critical dates were identified.", BODY_STYLE))
    story.append(Spacer(1, 12))

    doc.build(story)
    pdf = buffer.getvalue()
    logger.info("Rendered summary PDF (%d bytes, %d critical dates)", len(pdf), len(record.critical_dates))
    return pdf
