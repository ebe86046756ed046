"""
Tests for invoice PDF rendering and the flowing page layout.

Run with: pytest tests/test_pdf.py -v
"""

from decimal import Decimal
from unittest.mock import MagicMock, patch

import pytest
from sqlalchemy.exc import OperationalError

from braincrm.extensions import db
from braincrm.pdf import LOW_WATER_MARK, FlowLayout, InvoicePdfError, generate_invoice_pdf
from braincrm.pdf.invoice import format_hours, line_label, truncate_name
from braincrm.services import clients, invoice_lines, invoices, personnel


# ═══════════════════════════════════════════════════════════════════
# Layout
# ═══════════════════════════════════════════════════════════════════

class TestFlowLayout:

    def test_starts_below_top_margin(self):
        flow = FlowLayout()
        assert flow.y == 842 - 50
        assert flow.page_count == 1

    def test_page_break_below_low_water_mark(self):
        overflow = MagicMock()
        flow = FlowLayout(on_overflow=overflow)

        # 792 - 35 x 18 = 162, still above the mark
        for _ in range(35):
            flow.place(18)
        assert flow.page_count == 1
        assert flow.y == 162
        overflow.assert_not_called()

        # 162 - 18 = 144 < 150
        flow.place(18)
        assert flow.page_count == 2
        assert flow.y == flow.top
        overflow.assert_called_once()

    def test_block_drawn_at_cursor(self):
        drawn = []
        flow = FlowLayout()
        at = flow.place(18, drawn.append)
        assert drawn == [792] and at == 792
        assert flow.y == 774

    def test_ensure_breaks_only_when_needed(self):
        flow = FlowLayout()
        flow.ensure(500)
        assert flow.page_count == 1

        flow.advance(700)
        flow.ensure(130)
        assert flow.page_count == 2

    def test_default_mark(self):
        assert LOW_WATER_MARK == 150


class TestFormatting:

    def test_truncate_name(self):
        assert truncate_name("A" * 25) == "A" * 25
        assert truncate_name("B" * 26) == "B" * 22 + "..."

    def test_format_hours(self):
        assert format_hours(None) == "0"
        assert format_hours(Decimal("151.670")) == "151.67"
        assert format_hours(Decimal("8.00")) == "8"

    def test_line_label_without_worker(self):
        line = MagicMock(personnel=None, description="Prime de panier")
        assert line_label(line) == "Prime de panier"


# ═══════════════════════════════════════════════════════════════════
# Rendering
# ═══════════════════════════════════════════════════════════════════

@pytest.fixture
def invoice(ctx):
    client = clients.create(
        ctx,
        {
            "code": "CL-1",
            "raison_sociale": "Atlas Industries SARL",
            "adresse": "12 bd Zerktouni, Casablanca",
            "code_ice": "001234567000089",
            "tva": "reduite",
            "mode_reglement": "virement",
            "delai_reglement": 30,
        },
    )
    return invoices.create(
        ctx,
        {
            "client_id": client.id,
            "issue_date": "2025-02-01",
            "period_start": "2025-01-01",
            "period_end": "2025-01-31",
            "notes": "Merci de rappeler le numéro de facture.\nRIB en pied de page.",
        },
    )


def add_lines(ctx, invoice, count):
    worker = personnel.create(
        ctx, {"matricule": "M-100", "nom": "Benjelloun-El Amrani", "prenom": "Mohammed Amine"}
    )
    for i in range(count):
        invoice_lines.create(
            ctx,
            {
                "invoice_id": invoice.id,
                "personnel_id": worker.id,
                "heures_normales": "151.67",
                "heures_sup_25": "4",
                "montant_ht": str(1000 + i),
            },
        )


class TestGenerateInvoicePdf:

    def test_single_page(self, ctx, invoice):
        add_lines(ctx, invoice, 2)
        pdf = generate_invoice_pdf(invoice.id)

        assert pdf.content.startswith(b"%PDF")
        assert pdf.filename == "FAC-2025-0001.pdf"
        assert pdf.page_count == 1

    def test_many_lines_flow_onto_new_pages(self, ctx, invoice):
        add_lines(ctx, invoice, 60)
        pdf = generate_invoice_pdf(str(invoice.id))

        assert pdf.page_count >= 2
        assert pdf.content.rstrip().endswith(b"%%EOF")

    def test_invoice_without_lines(self, ctx, invoice):
        pdf = generate_invoice_pdf(invoice.id)
        assert pdf.page_count == 1

    @pytest.mark.parametrize("invoice_id", [None, ""])
    def test_missing_id(self, app_ctx, invoice_id):
        with pytest.raises(InvoicePdfError) as exc:
            generate_invoice_pdf(invoice_id)
        assert exc.value.status == 400

    def test_invalid_id(self, app_ctx):
        with pytest.raises(InvoicePdfError) as exc:
            generate_invoice_pdf("abc")
        assert exc.value.status == 400

    def test_unknown_invoice(self, app_ctx):
        with pytest.raises(InvoicePdfError) as exc:
            generate_invoice_pdf(4242)
        assert exc.value.status == 404
        assert str(exc.value) == "Facture introuvable"

    def test_database_failure(self, ctx, invoice):
        invoice_id = invoice.id
        error = OperationalError("SELECT", {}, Exception("connection lost"))
        with patch.object(db.session, "get", side_effect=error):
            with pytest.raises(InvoicePdfError) as exc:
                generate_invoice_pdf(invoice_id)
        assert exc.value.status == 500
