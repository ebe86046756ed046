"""
braincrm/pdf/invoice.py

Invoice PDF rendering (reportlab canvas, A4 portrait).

Single pass: load invoice + client -> load lines (creation order) -> draw
header, client box, line table, totals, payment conditions, notes, footer.

Any loading problem raises InvoicePdfError before a single byte is drawn,
so a caller never receives a partial document.
"""

from __future__ import annotations

import logging
from io import BytesIO
from typing import Any, NamedTuple, Optional

from flask import current_app
from reportlab.lib.colors import Color
from reportlab.pdfgen import canvas
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import Client, Invoice, InvoiceLine, _to_decimal, tax_label_for
from ..utils import format_date_fr, format_money, parse_optional_int
from .layout import COLUMN_X, PAGE_HEIGHT, PAGE_WIDTH, ROW_HEIGHT, FlowLayout

logger = logging.getLogger(__name__)

PRIMARY = Color(0.2, 0.4, 0.8)
TEXT = Color(0.1, 0.1, 0.1)
MUTED = Color(0.4, 0.4, 0.4)
BORDER = Color(0.8, 0.8, 0.8)
HEADER_FILL = Color(0.95, 0.95, 0.95)
WHITE = Color(1, 1, 1)

FONT = "Helvetica"
FONT_BOLD = "Helvetica-Bold"

NAME_MAX_LENGTH = 25
NAME_KEEP = 22

PAYMENT_MODES = {"cheque": "Chèque", "traite": "Traite", "virement": "Virement"}

TABLE_HEADERS = ("Intérimaire", "H. Norm.", "H. Sup 25%", "H. Sup 50%", "H. Sup 100%", "Montant HT")


class InvoicePdfError(Exception):
    """Invoice could not be rendered. `status` is the HTTP status to answer with."""

    def __init__(self, message: str, status: int = 500):
        super().__init__(message)
        self.status = status


class InvoicePdf(NamedTuple):
    content: bytes
    filename: str
    page_count: int


# ---------------------------------------------------------------------
# Formatting helpers
# ---------------------------------------------------------------------
def truncate_name(name: str) -> str:
    """Names longer than 25 characters keep their first 22 plus an ellipsis."""
    if len(name) > NAME_MAX_LENGTH:
        return name[:NAME_KEEP] + "..."
    return name


def line_label(line: InvoiceLine) -> str:
    person = line.personnel
    if person is not None:
        return f"{person.matricule} - {person.nom} {person.prenom}"
    return line.description or "-"


def format_hours(value: Any) -> str:
    hours = _to_decimal(value)
    if hours == 0:
        return "0"
    return format(hours.normalize(), "f")


# ---------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------
def _load(invoice_id: Any) -> tuple[Invoice, Optional[Client], list[InvoiceLine]]:
    if invoice_id is None or invoice_id == "":
        raise InvoicePdfError("L'identifiant de la facture est requis", status=400)
    pk = parse_optional_int(invoice_id)
    if pk is None:
        raise InvoicePdfError("Identifiant de facture invalide", status=400)

    try:
        invoice = db.session.get(Invoice, pk)
    except SQLAlchemyError:
        logger.exception("error fetching invoice %s", pk)
        raise InvoicePdfError("Impossible de récupérer la facture")
    if invoice is None:
        raise InvoicePdfError("Facture introuvable", status=404)
    logger.info("invoice fetched: %s", invoice.invoice_number)

    try:
        client = invoice.client
        lines = (
            InvoiceLine.query.filter_by(invoice_id=invoice.id)
            .order_by(InvoiceLine.created_at.asc(), InvoiceLine.id.asc())
            .all()
        )
    except SQLAlchemyError:
        logger.exception("error fetching lines of invoice %s", pk)
        raise InvoicePdfError("Impossible de récupérer les lignes de facture")
    logger.info("lines fetched: %d", len(lines))

    return invoice, client, lines


# ---------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------
class _InvoiceRenderer:
    def __init__(self, invoice: Invoice, client: Optional[Client], lines: list[InvoiceLine]):
        self.invoice = invoice
        self.client = client
        self.lines = lines
        self.company = current_app.config.get("APP_NAME", "BrainCRM")
        self.currency = current_app.config.get("CURRENCY", "MAD")

        self.buffer = BytesIO()
        self.c = canvas.Canvas(self.buffer, pagesize=(PAGE_WIDTH, PAGE_HEIGHT))
        self.c.setTitle(f"Facture {invoice.invoice_number}")
        self.c.setAuthor(self.company)
        self.flow = FlowLayout(on_overflow=self._close_page)

    # primitives -----------------------------------------------------
    def text(self, value: str, x: float, y: float, *, bold: bool = False, size: float = 10, color: Color = TEXT):
        self.c.setFont(FONT_BOLD if bold else FONT, size)
        self.c.setFillColor(color)
        self.c.drawString(x, y, value)

    def money(self, amount: Any) -> str:
        return format_money(amount, self.currency)

    def _footer(self) -> None:
        self.text(f"Généré par {self.company}", 50, 30, size=8, color=MUTED)

    def _close_page(self) -> None:
        self._footer()
        self.c.showPage()

    # blocks ---------------------------------------------------------
    def header(self) -> None:
        inv = self.invoice
        right = PAGE_WIDTH - 200
        y = self.flow.y

        self.text(self.company, 50, y, bold=True, size=24, color=PRIMARY)
        self.text(f"FACTURE N° {inv.invoice_number}", right, y, bold=True, size=14)
        self.flow.advance(40)

        self.text(f"Date d'émission: {format_date_fr(inv.issue_date)}", right, self.flow.y, size=9, color=MUTED)
        self.flow.advance(14)
        if inv.due_date:
            self.text(f"Date d'échéance: {format_date_fr(inv.due_date)}", right, self.flow.y, size=9, color=MUTED)
        self.flow.advance(14)
        period = f"Période: {format_date_fr(inv.period_start)} - {format_date_fr(inv.period_end)}"
        self.text(period, right, self.flow.y, size=9, color=MUTED)
        self.flow.advance(40)

    def client_box(self) -> None:
        y = self.flow.y
        self.c.setStrokeColor(BORDER)
        self.c.setLineWidth(1)
        self.c.rect(50, y - 80, 250, 90, stroke=1, fill=0)

        self.text("FACTURER À:", 60, y, bold=True, size=9, color=MUTED)
        self.flow.advance(15)

        client = self.client
        if client is not None:
            self.text(client.raison_sociale or "", 60, self.flow.y, bold=True, size=11)
            self.flow.advance(14)
            address = client.adresse_facturation or client.adresse
            if address:
                self.text(address, 60, self.flow.y, size=9)
                self.flow.advance(12)
            if client.telephone:
                self.text(f"Tél: {client.telephone}", 60, self.flow.y, size=9)
                self.flow.advance(12)
            if client.code_ice:
                self.text(f"ICE: {client.code_ice}", 60, self.flow.y, size=9, color=MUTED)
                self.flow.advance(12)

        # The box is 90pt tall whatever was printed in it.
        self.flow.y = min(self.flow.y, y - 80) - 30

    def table(self) -> None:
        top = self.flow.y
        self.c.setFillColor(HEADER_FILL)
        self.c.rect(50, top - 5, PAGE_WIDTH - 100, 20, stroke=0, fill=1)
        for x, label in zip(COLUMN_X, TABLE_HEADERS):
            self.text(label, x, top, bold=True, size=9)
        self.flow.advance(25)

        if not self.lines:
            self.flow.place(
                ROW_HEIGHT,
                lambda y: self.text("Aucune ligne de facturation", COLUMN_X[0], y, size=9, color=MUTED),
            )
            return

        for line in self.lines:
            self.flow.place(ROW_HEIGHT, lambda y, line=line: self._row(line, y))

    def _row(self, line: InvoiceLine, y: float) -> None:
        values = (
            truncate_name(line_label(line)),
            format_hours(line.heures_normales),
            format_hours(line.heures_sup_25),
            format_hours(line.heures_sup_50),
            format_hours(line.heures_sup_100),
            self.money(line.montant_ht),
        )
        for x, value in zip(COLUMN_X, values):
            self.text(value, x, y, size=9)

    def totals(self) -> None:
        inv = self.invoice
        self.flow.ensure(130)

        self.flow.advance(10)
        self.c.setStrokeColor(BORDER)
        self.c.setLineWidth(1)
        self.c.line(50, self.flow.y, PAGE_WIDTH - 50, self.flow.y)
        self.flow.advance(30)

        x = PAGE_WIDTH - 200
        self.text("Total HT:", x, self.flow.y)
        self.text(self.money(inv.total_ht), x + 80, self.flow.y, bold=True)
        self.flow.advance(18)

        label = tax_label_for(self.client.tva if self.client else None)
        self.text(f"{label}:", x, self.flow.y)
        self.text(self.money(inv.total_tva), x + 80, self.flow.y, bold=True)
        self.flow.advance(20)

        self.c.setFillColor(PRIMARY)
        self.c.rect(x - 10, self.flow.y - 5, 165, 25, stroke=0, fill=1)
        self.text("Total TTC:", x, self.flow.y, bold=True, size=11, color=WHITE)
        self.text(self.money(inv.total_ttc), x + 80, self.flow.y, bold=True, size=11, color=WHITE)
        self.flow.advance(50)

    def payment_conditions(self) -> None:
        client = self.client
        if client is None or not (client.mode_reglement or client.delai_reglement):
            return

        self.flow.ensure(40)
        self.text("Conditions de paiement:", 50, self.flow.y, bold=True, size=9)
        self.flow.advance(14)
        mode = PAYMENT_MODES.get(client.mode_reglement, "Virement")
        self.text(f"Mode de règlement: {mode}", 50, self.flow.y, size=9)
        self.flow.advance(12)
        if client.delai_reglement:
            self.text(f"Délai de règlement: {client.delai_reglement} jours", 50, self.flow.y, size=9)

    def notes(self) -> None:
        if not self.invoice.notes:
            return
        self.flow.advance(30)
        self.flow.ensure(20)
        self.text("Notes:", 50, self.flow.y, bold=True, size=9)
        self.flow.advance(14)
        for note_line in self.invoice.notes.splitlines() or [""]:
            self.flow.ensure(12)
            self.text(note_line, 50, self.flow.y, size=9, color=MUTED)
            self.flow.advance(12)

    def render(self) -> bytes:
        self.header()
        self.client_box()
        self.table()
        self.totals()
        self.payment_conditions()
        self.notes()

        self._footer()
        self.c.showPage()
        self.c.save()
        return self.buffer.getvalue()


def generate_invoice_pdf(invoice_id: Any) -> InvoicePdf:
    """
    Render one invoice.

    Raises:
        InvoicePdfError: missing/invalid id (400), unknown invoice (404),
        database failure while loading (500).
    """
    logger.info("generating PDF for invoice %s", invoice_id)
    invoice, client, lines = _load(invoice_id)

    renderer = _InvoiceRenderer(invoice, client, lines)
    content = renderer.render()

    logger.info(
        "PDF generated for %s: %d bytes, %d page(s)",
        invoice.invoice_number,
        len(content),
        renderer.flow.page_count,
    )
    return InvoicePdf(
        content=content,
        filename=f"{invoice.invoice_number}.pdf",
        page_count=renderer.flow.page_count,
    )
