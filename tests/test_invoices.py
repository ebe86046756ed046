"""
Tests for invoice totals, numbering, status stamping and line aggregation.

Run with: pytest tests/test_invoices.py -v
"""

from datetime import date, timedelta
from decimal import Decimal

import pytest

from braincrm.models import compute_invoice_totals, tax_label_for
from braincrm.services import clients, invoice_lines, invoices, personnel
from braincrm.services.base import ValidationError
from braincrm.utils import format_money


# ═══════════════════════════════════════════════════════════════════
# Pure computations
# ═══════════════════════════════════════════════════════════════════

class TestComputeInvoiceTotals:

    @pytest.mark.parametrize(
        "category, tva, ttc",
        [
            ("reduite", "100.00", "1100.00"),
            ("exoneree", "0.00", "1000.00"),
            ("normale", "200.00", "1200.00"),
            (None, "200.00", "1200.00"),
            ("unknown", "200.00", "1200.00"),
        ],
    )
    def test_rate_by_category(self, category, tva, ttc):
        assert compute_invoice_totals(Decimal("1000"), category) == (Decimal(tva), Decimal(ttc))

    def test_half_up_rounding(self):
        # 0.125 x 0.20 = 0.025 -> 0.03
        assert compute_invoice_totals(Decimal("0.125"), None)[0] == Decimal("0.03")

    def test_missing_amount_is_zero(self):
        assert compute_invoice_totals(None, "reduite") == (Decimal("0.00"), Decimal("0.00"))

    def test_tax_labels(self):
        assert tax_label_for("exoneree") == "TVA (Exonérée)"
        assert tax_label_for("reduite") == "TVA (Réduite)"
        assert tax_label_for(None) == "TVA (20%)"


class TestFormatMoney:

    def test_grouping_and_comma(self):
        assert format_money(Decimal("1234567.891")) == "1 234 567,89 MAD"

    def test_negative_and_zero(self):
        assert format_money(-5) == "-5,00 MAD"
        assert format_money(None, currency="") == "0,00"


# ═══════════════════════════════════════════════════════════════════
# Invoice service
# ═══════════════════════════════════════════════════════════════════

@pytest.fixture
def client_reduit(ctx):
    return clients.create(
        ctx,
        {"code": "CL-R", "raison_sociale": "Réduit SA", "tva": "reduite", "delai_reglement": 30},
    )


@pytest.fixture
def client_exonere(ctx):
    return clients.create(ctx, {"code": "CL-E", "raison_sociale": "Exonéré SA", "tva": "exoneree"})


class TestInvoiceService:

    def test_totals_derived_from_client_category(self, ctx, client_reduit):
        invoice = invoices.create(ctx, {"client_id": client_reduit.id, "total_ht": "1000"})
        assert invoice.total_tva == Decimal("100.00")
        assert invoice.total_ttc == Decimal("1100.00")

    def test_client_supplied_totals_ignored(self, ctx, client_exonere):
        invoice = invoices.create(
            ctx,
            {"client_id": client_exonere.id, "total_ht": "1000", "total_tva": "999", "total_ttc": "1"},
        )
        assert invoice.total_tva == Decimal("0.00")
        assert invoice.total_ttc == Decimal("1000.00")

    def test_numbering_is_sequential_per_year(self, ctx, client_reduit):
        first = invoices.create(ctx, {"client_id": client_reduit.id, "issue_date": "2025-03-01"})
        second = invoices.create(ctx, {"client_id": client_reduit.id, "issue_date": "2025-04-01"})
        other_year = invoices.create(ctx, {"client_id": client_reduit.id, "issue_date": "2026-01-02"})
        assert first.invoice_number == "FAC-2025-0001"
        assert second.invoice_number == "FAC-2025-0002"
        assert other_year.invoice_number == "FAC-2026-0001"

    def test_defaults(self, ctx, client_reduit):
        invoice = invoices.create(ctx, {"client_id": client_reduit.id, "issue_date": "2025-03-01"})
        assert invoice.status == "draft"
        assert invoice.due_date == date(2025, 3, 31)
        assert invoice.payment_date is None

    def test_unknown_client_rejected(self, ctx):
        with pytest.raises(ValidationError):
            invoices.create(ctx, {"client_id": 999})

    def test_missing_client_rejected(self, ctx):
        with pytest.raises(ValidationError):
            invoices.create(ctx, {"total_ht": "10"})

    def test_negative_total_rejected(self, ctx, client_reduit):
        with pytest.raises(ValidationError):
            invoices.create(ctx, {"client_id": client_reduit.id, "total_ht": "-1"})

    def test_mark_paid_stamps_payment_date(self, ctx, client_reduit):
        invoice = invoices.create(ctx, {"client_id": client_reduit.id})
        paid = invoices.mark_paid(ctx, invoice.id)
        assert paid.status == "paid"
        assert paid.payment_date == date.today()

    def test_explicit_payment_date_kept(self, ctx, client_reduit):
        invoice = invoices.create(ctx, {"client_id": client_reduit.id})
        yesterday = date.today() - timedelta(days=1)
        paid = invoices.update(ctx, invoice.id, {"status": "paid", "payment_date": yesterday.isoformat()})
        assert paid.payment_date == yesterday

    def test_changing_client_rederives_totals(self, ctx, client_reduit, client_exonere):
        invoice = invoices.create(ctx, {"client_id": client_reduit.id, "total_ht": "500"})
        moved = invoices.update(ctx, invoice.id, {"client_id": client_exonere.id})
        assert moved.total_tva == Decimal("0.00")
        assert moved.total_ttc == Decimal("500.00")

    def test_snapshot_carries_client_and_label(self, ctx, client_reduit):
        invoice = invoices.create(ctx, {"client_id": client_reduit.id, "total_ht": "10"})
        data = invoices.snapshot(invoice)
        assert data["client_name"] == "Réduit SA"
        assert data["tax_label"] == "TVA (Réduite)"
        assert data["total_ttc"] == 11.0


class TestInvoiceLines:

    @pytest.fixture
    def invoice(self, ctx, client_reduit):
        return invoices.create(ctx, {"client_id": client_reduit.id})

    def test_lines_resum_total(self, ctx, invoice):
        worker = personnel.create(ctx, {"matricule": "M-7", "nom": "Bennani", "prenom": "Omar"})
        invoice_lines.create(
            ctx,
            {"invoice_id": invoice.id, "personnel_id": worker.id, "heures_normales": "151,67", "montant_ht": "600"},
        )
        invoice_lines.create(ctx, {"invoice_id": invoice.id, "description": "Frais", "montant_ht": "400"})

        refreshed = invoices.get(invoice.id)
        assert refreshed.total_ht == Decimal("1000.00")
        assert refreshed.total_tva == Decimal("100.00")
        assert refreshed.total_ttc == Decimal("1100.00")

    def test_delete_line_resums_total(self, ctx, invoice):
        keep = invoice_lines.create(ctx, {"invoice_id": invoice.id, "montant_ht": "250"})
        drop = invoice_lines.create(ctx, {"invoice_id": invoice.id, "montant_ht": "750"})

        assert invoice_lines.delete(ctx, drop.id) is True
        refreshed = invoices.get(invoice.id)
        assert refreshed.total_ht == Decimal("250.00")
        assert [line["id"] for line in invoice_lines.for_invoice(invoice.id)] == [keep.id]

    def test_lines_listed_in_creation_order(self, ctx, invoice):
        ids = [
            invoice_lines.create(ctx, {"invoice_id": invoice.id, "description": f"L{i}"}).id
            for i in range(3)
        ]
        assert [line["id"] for line in invoice_lines.for_invoice(invoice.id)] == ids

    def test_missing_hours_default_to_zero(self, ctx, invoice):
        line = invoice_lines.create(ctx, {"invoice_id": invoice.id})
        assert line.heures_sup_25 == Decimal("0")
        assert line.montant_ht == Decimal("0")

    def test_negative_hours_rejected(self, ctx, invoice):
        with pytest.raises(ValidationError):
            invoice_lines.create(ctx, {"invoice_id": invoice.id, "heures_sup_50": "-2"})

    def test_line_cannot_move_invoice(self, ctx, invoice, client_reduit):
        other = invoices.create(ctx, {"client_id": client_reduit.id})
        line = invoice_lines.create(ctx, {"invoice_id": invoice.id})
        with pytest.raises(ValidationError):
            invoice_lines.update(ctx, line.id, {"invoice_id": other.id})
