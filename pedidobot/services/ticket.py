import logging
import os
from datetime import datetime
from io import BytesIO

from reportlab.lib.units import mm
from reportlab.pdfgen import canvas
from sqlalchemy.orm import Session

from pedidobot.core.config import STORE_NAME, SUPPORT_PHONE, TICKETS_DIR
from pedidobot.models.sale import Sale
from pedidobot.models.user import User
from pedidobot.services.cart_store import CartLine
from pedidobot.services.pricing import format_money

logger = logging.getLogger(__name__)

TICKET_WIDTH = 80 * mm
MARGIN = 4 * mm
LINE_GAP = 12
# characters that fit one line of the 80mm roll at 8pt
LINE_CHARS = 42


def _wrap(text: str, width: int = LINE_CHARS) -> list[str]:
    words = text.split()
    lines: list[str] = []
    current = ""
    for word in words:
        candidate = f"{current} {word}".strip()
        if len(candidate) > width and current:
            lines.append(current)
            current = word
        else:
            current = candidate
    if current:
        lines.append(current)
    return lines or [""]


def _item_rows(lines: list[CartLine]) -> list[tuple[str, str]]:
    rows: list[tuple[str, str]] = []
    for line in lines:
        label = f"{line.quantity}x {line.product_name}"
        if line.flavor_name:
            label += f" ({line.flavor_name})"
        rows.append((label, format_money(line.price_cents)))
    return rows


def render_ticket(sale: Sale, lines: list[CartLine], user: User | None) -> bytes:
    """
    Render an 80mm roll ticket for a confirmed sale and return the PDF bytes.
    The page height grows with the number of item rows.
    """
    rows = _item_rows(lines)
    wrapped_rows = [(_wrap(label, LINE_CHARS - 10), price) for label, price in rows]
    body_lines = sum(len(label_lines) for label_lines, _ in wrapped_rows)
    height = (22 + body_lines) * LINE_GAP + 2 * MARGIN

    buffer = BytesIO()
    c = canvas.Canvas(buffer, pagesize=(TICKET_WIDTH, height))
    y = height - MARGIN - LINE_GAP

    def write_line(text: str = "", *, bold: bool = False, font_size: int = 8, center: bool = False, gap: int = LINE_GAP):
        nonlocal y
        c.setFont("Helvetica-Bold" if bold else "Helvetica", font_size)
        if center:
            c.drawCentredString(TICKET_WIDTH / 2, y, text)
        else:
            c.drawString(MARGIN, y, text)
        y -= gap

    def write_row(left: str, right: str, *, bold: bool = False):
        nonlocal y
        c.setFont("Helvetica-Bold" if bold else "Helvetica", 8)
        c.drawString(MARGIN, y, left)
        c.drawRightString(TICKET_WIDTH - MARGIN, y, right)
        y -= LINE_GAP

    created_at = sale.created_at or datetime.now()
    customer = (user.name if user and user.name else "") or "Cliente"
    phone = user.phone if user else ""

    write_line(STORE_NAME, bold=True, font_size=11, center=True, gap=16)
    write_line(f"Pedido #{sale.id}", bold=True, center=True)
    write_line(created_at.strftime("%d/%m/%Y %H:%M"), center=True)
    write_line("-" * LINE_CHARS)
    write_line(f"Cliente: {customer}")
    if phone:
        write_line(f"WhatsApp: {phone}")
    write_line("-" * LINE_CHARS)
    write_row("Producto", "Importe", bold=True)
    for label_lines, price in wrapped_rows:
        write_row(label_lines[0], price)
        for extra in label_lines[1:]:
            write_line(f"  {extra}")
    write_line("-" * LINE_CHARS)
    write_row("TOTAL", format_money(sale.total_cents), bold=True)
    write_line("")
    write_line("¡Gracias por tu compra!", center=True)
    write_line(f"Soporte: {SUPPORT_PHONE}", center=True)

    c.showPage()
    c.save()
    return buffer.getvalue()


def create_ticket_for_sale(
    db: Session,
    sale: Sale,
    lines: list[CartLine],
    user: User | None,
    *,
    base_dir: str = TICKETS_DIR,
) -> str:
    """Write the ticket PDF to disk and remember its path on the sale."""
    os.makedirs(base_dir, exist_ok=True)
    file_path = os.path.join(base_dir, f"pedido_{sale.id}.pdf")
    with open(file_path, "wb") as f:
        f.write(render_ticket(sale, lines, user))

    sale.ticket_path = file_path
    db.commit()
    logger.info("ticket generated sale_id=%s path=%s", sale.id, file_path, extra={"sale_id": sale.id})
    return file_path
