# pdf_service.py
import io
import logging
import re
from datetime import date
from pathlib import Path

from reportlab.pdfgen import canvas
from reportlab.lib.pagesizes import A4
from reportlab.lib.units import mm
from reportlab.lib import colors
from reportlab.pdfbase.pdfmetrics import stringWidth
from reportlab.lib.utils import ImageReader

from config import Config
from models import InvoiceInput
from totals import Totals, calculate_totals, format_currency, number_text

logger = logging.getLogger(__name__)

PAGE_W, PAGE_H = A4

ACCENT = colors.Color(102 / 255, 126 / 255, 234 / 255)
GREY = colors.Color(100 / 255, 100 / 255, 100 / 255)
LIGHT_GREY = colors.Color(150 / 255, 150 / 255, 150 / 255)
RULE_GREY = colors.Color(200 / 255, 200 / 255, 200 / 255)

# Layout is expressed in mm from the top-left corner of the page.
MARGIN_X = 15
CONTENT_W = 180
DESC_X, QTY_X, RATE_X, AMOUNT_X = 20, 120, 145, 170
DESC_WRAP_W = 95
LINE_H = 5
START_Y = 20
WATERMARK_AT = (105, 150)
FOOTER_Y = (280, 285)


def _y(top_mm: float) -> float:
    """mm-from-top -> reportlab points-from-bottom."""
    return PAGE_H - top_mm * mm


def _safe_filename(name: str) -> str:
    # strip characters not allowed on Windows/mac paths
    return re.sub(r'[\\/*?:"<>|]', "", (name or "")).strip() or "Invoice"


def _long_date(d) -> str:
    if d is None:
        return ""
    return f"{d:%B} {d.day}, {d.year}"


def _short_date(d) -> str:
    return f"{d.month}/{d.day}/{d.year}"


def invoice_filename(inv: InvoiceInput) -> str:
    client = re.sub(r"\s+", "_", inv.client_name or "")
    return f"Invoice_{inv.invoice_number}_{client}.pdf"


def _split_long_token(token, font, size, max_width):
    """Break a single long token (like a URL) into width-safe chunks."""
    if stringWidth(token, font, size) <= max_width:
        return [token]
    chunks = []
    remaining = token
    while remaining:
        lo, hi = 1, len(remaining)
        fit = 1
        while lo <= hi:
            mid = (lo + hi) // 2
            if stringWidth(remaining[:mid], font, size) <= max_width:
                fit = mid
                lo = mid + 1
            else:
                hi = mid - 1
        chunks.append(remaining[:fit])
        remaining = remaining[fit:]
    return chunks


def wrap_text(text, font, size, max_width):
    """
    Word-wrap to max_width points. Hard line breaks in the input are kept
    (a blank input line stays a blank output line).
    """
    lines = []
    for paragraph in str(text or "").splitlines() or [""]:
        words = []
        for w in paragraph.split():
            words.extend(_split_long_token(w, font, size, max_width))

        current = ""
        for w in words:
            test = current + (" " if current else "") + w
            if stringWidth(test, font, size) <= max_width:
                current = test
            else:
                if current:
                    lines.append(current)
                current = w
        lines.append(current)
    return lines


def compose_invoice(pdf, inv: InvoiceInput, totals: Totals | None = None, generated_on: date | None = None) -> float:
    """
    Draws the invoice onto a reportlab canvas (or anything with the same
    drawing methods), top to bottom with a single cursor. Nothing is ever
    moved back up; content past the bottom edge is left to the canvas.

    Returns the final cursor position in mm from the top.
    """
    if totals is None:
        totals = calculate_totals(inv.quantity, inv.rate, inv.tax_rate)
    generated_on = generated_on or date.today()
    cur = inv.currency
    y = START_Y

    # -----------------------------
    # Logo
    # -----------------------------
    if inv.logo is not None:
        img = ImageReader(io.BytesIO(inv.logo.data))
        pdf.drawImage(img, MARGIN_X * mm, _y(y + 20), width=40 * mm, height=20 * mm, mask="auto")
        y += 25

    # -----------------------------
    # Header
    # -----------------------------
    pdf.setFont("Helvetica", 24)
    pdf.setFillColor(ACCENT)
    pdf.drawString(MARGIN_X * mm, _y(y), inv.business_name)
    y += 10

    pdf.setFont("Helvetica", 16)
    pdf.setFillColor(colors.black)
    pdf.drawString(MARGIN_X * mm, _y(y), "INVOICE")
    y += 15

    # -----------------------------
    # Invoice meta
    # -----------------------------
    pdf.setFont("Helvetica", 10)
    pdf.setFillColor(GREY)
    pdf.drawString(MARGIN_X * mm, _y(y), f"Invoice Number: {inv.invoice_number}")
    y += 6
    pdf.drawString(MARGIN_X * mm, _y(y), f"Invoice Date: {_long_date(inv.invoice_date)}")
    y += 6
    pdf.drawString(MARGIN_X * mm, _y(y), f"Due Date: {_long_date(inv.due_date)}")
    y += 15

    # -----------------------------
    # Bill To
    # -----------------------------
    pdf.setFont("Helvetica", 12)
    pdf.setFillColor(colors.black)
    pdf.drawString(MARGIN_X * mm, _y(y), "Bill To:")
    y += 7
    pdf.setFont("Helvetica", 11)
    pdf.drawString(MARGIN_X * mm, _y(y), inv.client_name)
    y += 20

    # -----------------------------
    # Table header band
    # -----------------------------
    pdf.setFillColor(ACCENT)
    pdf.rect(MARGIN_X * mm, _y(y + 10), CONTENT_W * mm, 10 * mm, stroke=0, fill=1)
    pdf.setFillColor(colors.white)
    pdf.setFont("Helvetica", 10)
    for x, label in ((DESC_X, "Description"), (QTY_X, "Qty"), (RATE_X, "Rate"), (AMOUNT_X, "Amount")):
        pdf.drawString(x * mm, _y(y + 7), label)
    y += 15

    # -----------------------------
    # Line item
    # -----------------------------
    pdf.setFillColor(colors.black)
    pdf.setFont("Helvetica", 9)
    desc_lines = wrap_text(inv.service_description, "Helvetica", 9, DESC_WRAP_W * mm)
    for i, ln in enumerate(desc_lines):
        pdf.drawString(DESC_X * mm, _y(y + i * LINE_H), ln)
    pdf.drawString(QTY_X * mm, _y(y), number_text(inv.quantity))
    pdf.drawString(RATE_X * mm, _y(y), format_currency(inv.rate, cur))
    pdf.drawString(AMOUNT_X * mm, _y(y), format_currency(totals.subtotal, cur))
    y += max(len(desc_lines) * LINE_H, 10)

    pdf.setStrokeColor(RULE_GREY)
    pdf.line(MARGIN_X * mm, _y(y), (MARGIN_X + CONTENT_W) * mm, _y(y))
    y += 10

    # -----------------------------
    # Totals
    # -----------------------------
    pdf.setFont("Helvetica", 10)
    pdf.drawString(RATE_X * mm, _y(y), "Subtotal:")
    pdf.drawString(AMOUNT_X * mm, _y(y), format_currency(totals.subtotal, cur))
    y += 7

    pdf.drawString(RATE_X * mm, _y(y), f"Tax ({number_text(inv.tax_rate)}%):")
    pdf.drawString(AMOUNT_X * mm, _y(y), format_currency(totals.tax, cur))
    y += 10

    pdf.setLineWidth(0.5 * mm)
    pdf.line(RATE_X * mm, _y(y), (MARGIN_X + CONTENT_W) * mm, _y(y))
    y += 7

    pdf.setFont("Helvetica-Bold", 12)
    pdf.drawString(RATE_X * mm, _y(y), "Total:")
    pdf.drawString(AMOUNT_X * mm, _y(y), format_currency(totals.total, cur))
    y += 15

    # -----------------------------
    # Notes
    # -----------------------------
    if (inv.additional_notes or "").strip():
        pdf.setFont("Helvetica", 10)
        pdf.setFillColor(GREY)
        pdf.drawString(MARGIN_X * mm, _y(y), "Notes:")
        y += 7

        pdf.setFont("Helvetica", 9)
        note_lines = wrap_text(inv.additional_notes, "Helvetica", 9, CONTENT_W * mm)
        for i, ln in enumerate(note_lines):
            pdf.drawString(MARGIN_X * mm, _y(y + i * LINE_H), ln)
        y += len(note_lines) * LINE_H

    # -----------------------------
    # Watermark
    # -----------------------------
    if inv.watermark:
        pdf.saveState()
        pdf.setFont("Helvetica", 60)
        pdf.setFillColor(RULE_GREY)
        pdf.translate(WATERMARK_AT[0] * mm, _y(WATERMARK_AT[1]))
        pdf.rotate(45)
        pdf.drawCentredString(0, 0, "DRAFT")
        pdf.restoreState()

    # -----------------------------
    # Footer
    # -----------------------------
    pdf.setFont("Helvetica", 8)
    pdf.setFillColor(LIGHT_GREY)
    pdf.drawCentredString(PAGE_W / 2, _y(FOOTER_Y[0]), "Thank you for your business!")
    pdf.drawCentredString(PAGE_W / 2, _y(FOOTER_Y[1]), f"Generated on {_short_date(generated_on)}")

    return y


def render_invoice_pdf(inv: InvoiceInput, totals: Totals | None = None, generated_on: date | None = None) -> bytes:
    """
    Renders the whole document in memory and returns the PDF bytes.
    Renderer errors (bad logo bytes, etc.) propagate to the caller.
    """
    buf = io.BytesIO()
    pdf = canvas.Canvas(buf, pagesize=A4)
    pdf.setTitle(f"Invoice {inv.invoice_number}")
    pdf.setAuthor(inv.business_name)

    compose_invoice(pdf, inv, totals=totals, generated_on=generated_on)

    pdf.showPage()
    pdf.save()
    return buf.getvalue()


def write_invoice_pdf(inv: InvoiceInput, out_dir: str | None = None) -> Path:
    """
    Renders and writes the PDF into out_dir (EXPORTS_DIR by default).
    The file is only created once rendering has fully succeeded.

    Returns: absolute pdf path on disk.
    """
    data = render_invoice_pdf(inv)

    target_dir = Path(out_dir or Config.EXPORTS_DIR)
    target_dir.mkdir(parents=True, exist_ok=True)
    pdf_path = (target_dir / _safe_filename(invoice_filename(inv))).resolve()
    pdf_path.write_bytes(data)

    logger.info("PDF generated: %s (%d bytes)", pdf_path, len(data))
    return pdf_path
