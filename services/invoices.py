"""Invoice PDF rendering."""

from __future__ import annotations

import re
from decimal import Decimal, InvalidOperation
from io import BytesIO
from typing import Any, Dict, Tuple

TWO_PLACES = Decimal("0.01")


def safe_text(value: Any) -> str:
    text = str(value if value is not None else "").strip() or "-"
    return (
        text.replace("&", "&amp;")
            .replace("<", "&lt;")
            .replace(">", "&gt;")
    )


def _sanitize_filename_fragment(value: Any) -> str:
    return re.sub(r"[^a-zA-Z0-9_-]+", "", str(value or "").strip().replace(" ", "-")).lower()


def build_invoice_filename(invoice: Dict[str, Any]) -> str:
    parts = [
        _sanitize_filename_fragment(invoice.get("invoice_id")),
        _sanitize_filename_fragment(invoice.get("client_name")),
        _sanitize_filename_fragment(invoice.get("invoice_date")),
    ]
    base = "_".join(part for part in parts if part) or "invoice"
    return base + ".pdf"


def as_decimal(value: Any, default: Decimal = Decimal("0")) -> Decimal:
    if value in (None, "", False):
        return default
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        return default


def money_text(amount: Decimal) -> str:
    return f"{amount.quantize(TWO_PLACES):,}"


def render_invoice_pdf(invoice: Dict[str, Any], firm_name: str = "Practice Organizer") -> Tuple[BytesIO, str]:
    """Render a stored invoice row (with its client/case join columns) to PDF."""
    try:
        from reportlab.lib import colors
        from reportlab.lib.pagesizes import A4
        from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
        from reportlab.lib.units import mm
        from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle
    except ImportError as exc:  # pragma: no cover - dependency guard
        raise RuntimeError(
            "ReportLab is required to generate invoices. Install it with `pip install reportlab`."
        ) from exc

    pdf_buffer = BytesIO()
    doc = SimpleDocTemplate(
        pdf_buffer,
        pagesize=A4,
        leftMargin=18 * mm,
        rightMargin=18 * mm,
        topMargin=24 * mm,
        bottomMargin=20 * mm,
        title=f"Invoice {invoice.get('invoice_id') or ''}".strip(),
    )
    available_width = doc.width

    styles = getSampleStyleSheet()
    title_style = styles["Title"].clone("InvoiceTitle")
    title_style.fontSize = 22
    title_style.leading = 26
    title_style.alignment = 0

    meta_style = ParagraphStyle(
        "InvoiceMeta", parent=styles["Normal"], fontSize=10, leading=14, alignment=2
    )
    party_style = ParagraphStyle("InvoiceParty", parent=styles["Normal"], fontSize=10, leading=14)
    header_style = ParagraphStyle(
        "InvoiceHeader",
        parent=styles["Normal"],
        fontSize=10,
        leading=13,
        alignment=1,
        textColor=colors.whitesmoke,
    )
    cell_style = ParagraphStyle("InvoiceCell", parent=styles["Normal"], fontSize=10, leading=13)
    money_style = ParagraphStyle(
        "InvoiceMoney", parent=styles["Normal"], fontSize=10, leading=13, alignment=2
    )

    amount = as_decimal(invoice.get("invoice_amount"))
    tax = as_decimal(invoice.get("tax_amount"))
    total = amount + tax

    story: list = [Paragraph("INVOICE", title_style), Spacer(1, 6)]

    meta_html = (
        f"<b>Invoice #</b> {safe_text(invoice.get('invoice_id'))}<br/>"
        f"<b>Date</b> {safe_text(invoice.get('invoice_date'))}<br/>"
        f"<b>Due</b> {safe_text(invoice.get('due_date'))}<br/>"
        f"<b>Status</b> {safe_text(invoice.get('invoice_status'))}"
    )
    story.append(Paragraph(meta_html, meta_style))
    story.append(Spacer(1, 18))

    billed_to = [safe_text(invoice.get("client_name"))]
    if invoice.get("client_email"):
        billed_to.append(safe_text(invoice.get("client_email")))
    matter = []
    if invoice.get("case_number") or invoice.get("case_title"):
        matter.append(safe_text(invoice.get("case_number")))
        matter.append(safe_text(invoice.get("case_title")))

    parties = Table(
        [
            [
                Paragraph(f"<b>From</b><br/>{safe_text(firm_name)}", party_style),
                Paragraph("<b>Billed to</b><br/>" + "<br/>".join(billed_to), party_style),
                Paragraph("<b>Case</b><br/>" + ("<br/>".join(matter) or "-"), party_style),
            ]
        ],
        colWidths=[available_width / 3] * 3,
    )
    parties.setStyle(
        TableStyle(
            [
                ("VALIGN", (0, 0), (-1, -1), "TOP"),
                ("LEFTPADDING", (0, 0), (-1, -1), 0),
                ("RIGHTPADDING", (0, 0), (-1, -1), 6),
            ]
        )
    )
    story.append(parties)
    story.append(Spacer(1, 18))

    table_data = [
        [Paragraph("Description", header_style), Paragraph("Amount", header_style)],
        [Paragraph("Professional fees", cell_style), Paragraph(money_text(amount), money_style)],
        [Paragraph("Tax", cell_style), Paragraph(money_text(tax), money_style)],
        [Paragraph("<b>Total</b>", money_style), Paragraph(f"<b>{money_text(total)}</b>", money_style)],
    ]
    amounts = Table(table_data, colWidths=[available_width * 0.7, available_width * 0.3], repeatRows=1)
    amounts.setStyle(
        TableStyle(
            [
                ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor("#1f2937")),
                ("LINEBELOW", (0, 0), (-1, 0), 1, colors.black),
                ("VALIGN", (0, 0), (-1, -1), "TOP"),
                ("INNERGRID", (0, 0), (-1, -1), 0.25, colors.lightgrey),
                ("BOX", (0, 0), (-1, -1), 0.5, colors.lightgrey),
                ("BACKGROUND", (0, -1), (-1, -1), colors.HexColor("#f3f4f6")),
                ("TOPPADDING", (0, 0), (-1, -1), 4),
                ("BOTTOMPADDING", (0, 0), (-1, -1), 6),
            ]
        )
    )
    story.append(amounts)

    if invoice.get("payment_reference"):
        story.append(Spacer(1, 12))
        story.append(
            Paragraph(f"Payment reference: {safe_text(invoice.get('payment_reference'))}", cell_style)
        )

    doc.build(story)
    pdf_buffer.seek(0)
    return pdf_buffer, build_invoice_filename(invoice)
