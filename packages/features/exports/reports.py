from __future__ import annotations

import io
import os
from datetime import datetime
from xml.sax.saxutils import escape
from typing import Any, Dict, List, Optional, Sequence

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4, landscape
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from packages.features.common.forms import fmt_money
from packages.features.exports.exports import ADMIN_VISA_COLUMNS, cell, table_rows

COMPANY_NAME = os.getenv("COMPANY_NAME", "OS TRAVELS & TOURS")
TAGLINE = "Your Trusted Travel Partner"

BRAND = colors.HexColor("#1e3a8a")

_HEADER_STYLE = [
    ("BACKGROUND", (0, 0), (-1, 0), BRAND),
    ("TEXTCOLOR", (0, 0), (-1, 0), colors.whitesmoke),
    ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
    ("FONTSIZE", (0, 0), (-1, -1), 8),
    ("BOTTOMPADDING", (0, 0), (-1, 0), 6),
    ("ROWBACKGROUNDS", (0, 1), (-1, -1), [colors.white, colors.HexColor("#f1f5f9")]),
    ("GRID", (0, 0), (-1, -1), 0.5, colors.HexColor("#cbd5e1")),
    ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
]

VISA_REPORT_FIELDS = [
    ("Full Name", "fullName"),
    ("Passport", "passport"),
    ("Visa Type", "visaType"),
    ("Country", "country"),
    ("Application Date", "date"),
    ("Passport Expiry", "expiryDate"),
    ("Email", "email"),
    ("Phone", "phone"),
    ("Visa Status", "visaStatus"),
    ("Payment Status", "paymentStatus"),
    ("Total Fee", "totalFee"),
    ("Received Fee", "receivedFee"),
    ("Remaining Fee", "remainingFee"),
    ("Embassy Fee", "embassyFee"),
    ("Sent To Embassy", "sentToEmbassy"),
    ("Received From Embassy", "receivedFromEmbassy"),
    ("Reference", "reference"),
    ("Handled By", "userEmail"),
    ("Remarks", "remarks"),
]


def _header(story: List[Any], title: str, subtitle: Optional[str] = None) -> None:
    styles = getSampleStyleSheet()
    story.append(Paragraph(f"<b>{escape(COMPANY_NAME)}</b>", styles["Title"]))
    story.append(Paragraph(TAGLINE, styles["Normal"]))
    story.append(Spacer(1, 0.15 * inch))
    story.append(Paragraph(f"<b>{escape(title)}</b>", styles["Heading2"]))
    generated = datetime.now().strftime("%Y-%m-%d %H:%M")
    story.append(Paragraph(subtitle or f"Generated on {generated}", styles["Normal"]))
    story.append(Spacer(1, 0.2 * inch))


def _build(story: List[Any], wide: bool = False) -> bytes:
    buffer = io.BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=landscape(A4) if wide else A4,
        leftMargin=0.5 * inch,
        rightMargin=0.5 * inch,
        topMargin=0.5 * inch,
        bottomMargin=0.5 * inch,
    )
    doc.build(story)
    return buffer.getvalue()


def _table(data: List[List[Any]], col_widths: Optional[Sequence[float]] = None) -> Table:
    table = Table(data, colWidths=col_widths, repeatRows=1)
    table.setStyle(TableStyle(_HEADER_STYLE))
    return table


def admin_report_pdf(stats: Dict[str, Any], recent: Sequence[Dict[str, Any]], period_label: str = "All Time") -> bytes:
    """Statistics table followed by the ten most recent bookings of the filtered list."""
    story: List[Any] = []
    _header(story, "ADMIN VISA REPORT", f"Period: {period_label} | Generated on {datetime.now():%Y-%m-%d %H:%M}")

    story.append(
        _table(
            [
                ["Metric", "Value"],
                ["Total Bookings", stats.get("total", 0)],
                ["Approved", stats.get("approved", 0)],
                ["Processing", stats.get("processing", 0)],
                ["Rejected", stats.get("rejected", 0)],
                ["Paid", stats.get("paid", 0)],
                ["Unpaid", stats.get("unpaid", 0)],
                ["Total Revenue", fmt_money(stats.get("totalRevenue"))],
                ["Pending Revenue", fmt_money(stats.get("pendingRevenue"))],
                ["Profit", fmt_money(stats.get("profit"))],
            ],
            col_widths=[2.5 * inch, 2 * inch],
        )
    )
    story.append(Spacer(1, 0.3 * inch))
    story.append(Paragraph("<b>Recent Bookings</b>", getSampleStyleSheet()["Heading3"]))

    columns = [c for c in ADMIN_VISA_COLUMNS if c[0] not in ("Email", "Remaining")]
    rows = table_rows(list(recent)[:10], columns)
    if rows:
        story.append(_table([[label for label, _ in columns]] + rows))
    else:
        story.append(Paragraph("No bookings match the current filters.", getSampleStyleSheet()["Normal"]))
    return _build(story, wide=True)


def visa_booking_pdf(doc: Dict[str, Any]) -> bytes:
    story: List[Any] = []
    _header(story, "VISA BOOKING REPORT")

    pairs = [(label, cell(doc.get(field))) for label, field in VISA_REPORT_FIELDS]
    data = [["Field", "Value", "Field", "Value"]]
    for i in range(0, len(pairs), 2):
        left = pairs[i]
        right = pairs[i + 1] if i + 1 < len(pairs) else ("", "")
        data.append([left[0], left[1], right[0], right[1]])
    story.append(_table(data, col_widths=[1.4 * inch, 2.1 * inch, 1.4 * inch, 2.1 * inch]))
    story.append(Spacer(1, 0.3 * inch))
    story.append(Paragraph("Thank you for choosing us.", getSampleStyleSheet()["Italic"]))
    return _build(story)


def table_pdf(title: str, docs: Sequence[Dict[str, Any]], columns: Sequence[tuple], summary: Optional[Dict[str, Any]] = None) -> bytes:
    """Generic list export used by the ticket, hotel, Umrah and insurance pages."""
    story: List[Any] = []
    _header(story, title.upper())
    if summary:
        story.append(_table([["Metric", "Value"]] + [[k, v] for k, v in summary.items()], col_widths=[2.5 * inch, 2 * inch]))
        story.append(Spacer(1, 0.25 * inch))
    rows = table_rows(docs, columns)
    if rows:
        story.append(_table([[label for label, _ in columns]] + rows))
    else:
        story.append(Paragraph("No records to show.", getSampleStyleSheet()["Normal"]))
    return _build(story, wide=True)
