"""
braincrm/services/invoices.py

Invoices and invoice lines.

Totals:
- total_ht is the only money input; total_tva / total_ttc are always derived from
  it and the client's tax category (see models.compute_invoice_totals).
- Adding or removing a line re-sums total_ht from the lines, then re-derives.

Numbering:
- FAC-YYYY-NNNN, sequential per issue year, assigned on create.

Status:
- draft -> pending -> sent -> paid (or cancelled). Moving to "paid" stamps
  payment_date with today's date unless one is given.
"""

from __future__ import annotations

import logging
from datetime import date, timedelta
from decimal import Decimal
from typing import Any, Dict

from ..extensions import db
from ..models import Client, Contract, Invoice, InvoiceLine, Personnel
from .base import EntityService, ValidationError, choice, day, decimal, integer, text

logger = logging.getLogger(__name__)

INVOICE_STATUSES = ("draft", "pending", "sent", "paid", "cancelled")
NUMBER_PREFIX = "FAC"


def next_invoice_number(year: int) -> str:
    """FAC-<year>-<seq>, seq = highest existing sequence for that year + 1."""
    prefix = f"{NUMBER_PREFIX}-{year}-"
    # The pending invoice has no number yet; it must not be flushed by this query.
    with db.session.no_autoflush:
        numbers = (
            db.session.query(Invoice.invoice_number)
            .filter(Invoice.invoice_number.like(f"{prefix}%"))
            .all()
        )
    last = 0
    for (number,) in numbers:
        suffix = number[len(prefix):]
        if suffix.isdigit():
            last = max(last, int(suffix))
    return f"{prefix}{last + 1:04d}"


class InvoiceService(EntityService):
    model = Invoice
    table = "invoices"
    entity_type = "invoice"
    dependents = ("invoice_lines",)

    fields = {
        "client_id": integer,
        "issue_date": day,
        "due_date": day,
        "period_start": day,
        "period_end": day,
        "payment_date": day,
        "status": choice(*INVOICE_STATUSES),
        "total_ht": decimal,
        "notes": text,
    }
    required = ("client_id",)
    filterable = ("status", "client_id", "issue_date", "due_date")
    ignored = frozenset({"invoice_number", "total_tva", "total_ttc"})

    messages = {
        "created": "Facture créée avec succès",
        "updated": "Facture mise à jour avec succès",
        "deleted": "Facture supprimée avec succès",
        "create_error": "Erreur lors de la création de la facture",
        "update_error": "Erreur lors de la mise à jour de la facture",
        "delete_error": "Erreur lors de la suppression de la facture",
    }

    def order_by(self):
        return (Invoice.issue_date.desc(), Invoice.id.desc())

    def validate(self, cleaned, *, partial):
        start, end = cleaned.get("period_start"), cleaned.get("period_end")
        if start and end and end < start:
            raise ValidationError("La fin de période doit être postérieure au début.")
        total = cleaned.get("total_ht")
        if total is not None and total < 0:
            raise ValidationError("Le total HT ne peut pas être négatif.")

    def snapshot(self, obj):
        data = super().snapshot(obj)
        data["client_name"] = obj.client.raison_sociale if obj.client else None
        data["tax_label"] = obj.tax_label
        return data

    def _attach_client(self, obj: Invoice) -> Client:
        client = db.session.get(Client, obj.client_id) if obj.client_id is not None else None
        if client is None:
            raise ValidationError("Client introuvable.")
        obj.client = client
        return client

    def _prepare_create(self, ctx, obj, data):
        client = self._attach_client(obj)

        if obj.issue_date is None:
            obj.issue_date = date.today()
        if obj.due_date is None and client.delai_reglement is not None:
            obj.due_date = obj.issue_date + timedelta(days=client.delai_reglement)
        if obj.status is None:
            obj.status = INVOICE_STATUSES[0]
        if obj.status == "paid" and obj.payment_date is None:
            obj.payment_date = date.today()

        obj.invoice_number = next_invoice_number(obj.issue_date.year)
        obj.recalc_totals()

    def _prepare_update(self, ctx, obj, patch, before):
        if "status" in patch and obj.status is None:
            raise ValidationError("Le statut est obligatoire.")
        if "issue_date" in patch and obj.issue_date is None:
            raise ValidationError("La date d'émission est obligatoire.")

        if "client_id" in patch:
            self._attach_client(obj)
        if "client_id" in patch or "total_ht" in patch:
            obj.recalc_totals()

        if obj.status == "paid" and before.get("status") != "paid" and obj.payment_date is None:
            obj.payment_date = date.today()

    def mark_paid(self, ctx, invoice_id: Any):
        return self.update(ctx, invoice_id, {"status": "paid"})


class InvoiceLineService(EntityService):
    """Lines of one invoice. Each write re-derives the parent invoice totals."""

    model = InvoiceLine
    table = "invoice_lines"
    entity_type = "invoice"
    # Parent totals move with the lines.
    dependents = ("invoices",)

    fields = {
        "invoice_id": integer,
        "personnel_id": integer,
        "contract_id": integer,
        "description": text,
        "heures_normales": decimal,
        "heures_sup_25": decimal,
        "heures_sup_50": decimal,
        "heures_sup_100": decimal,
        "heures_feriees": decimal,
        "montant_ht": decimal,
    }
    required = ("invoice_id",)
    filterable = ("invoice_id", "personnel_id", "contract_id")

    messages = {
        "created": "Ligne ajoutée avec succès",
        "updated": "Ligne mise à jour avec succès",
        "deleted": "Ligne supprimée avec succès",
        "create_error": "Erreur lors de l'ajout de la ligne",
        "update_error": "Erreur lors de la mise à jour de la ligne",
        "delete_error": "Erreur lors de la suppression de la ligne",
    }

    HOUR_FIELDS = ("heures_normales", "heures_sup_25", "heures_sup_50", "heures_sup_100", "heures_feriees")

    def order_by(self):
        return (InvoiceLine.created_at.asc(), InvoiceLine.id.asc())

    def for_invoice(self, invoice_id: Any) -> list[Dict[str, Any]]:
        return self.list({"invoice_id": invoice_id})

    def validate(self, cleaned, *, partial):
        for field in self.HOUR_FIELDS + ("montant_ht",):
            value = cleaned.get(field)
            if value is not None and value < 0:
                raise ValidationError(f"Valeur négative interdite pour « {field} ».")

    def snapshot(self, obj):
        data = super().snapshot(obj)
        data["personnel_name"] = obj.personnel.full_name() if obj.personnel else None
        data["matricule"] = obj.personnel.matricule if obj.personnel else None
        return data

    def _prepare_create(self, ctx, obj, data):
        if db.session.get(Invoice, obj.invoice_id) is None:
            raise ValidationError("Facture introuvable.")
        if obj.personnel_id is not None and db.session.get(Personnel, obj.personnel_id) is None:
            raise ValidationError("Personnel introuvable.")
        if obj.contract_id is not None and db.session.get(Contract, obj.contract_id) is None:
            raise ValidationError("Contrat introuvable.")
        for field in self.HOUR_FIELDS + ("montant_ht",):
            if getattr(obj, field) is None:
                setattr(obj, field, Decimal("0"))

    def _prepare_update(self, ctx, obj, patch, before):
        if "invoice_id" in patch and patch["invoice_id"] != before.get("invoice_id"):
            raise ValidationError("Une ligne ne peut pas changer de facture.")
        for field in self.HOUR_FIELDS + ("montant_ht",):
            if getattr(obj, field) is None:
                setattr(obj, field, Decimal("0"))

    def _sync_invoice(self, invoice_id: int) -> None:
        invoice = db.session.get(Invoice, invoice_id)
        if invoice is None:
            return
        total = (
            db.session.query(db.func.coalesce(db.func.sum(InvoiceLine.montant_ht), 0))
            .filter(InvoiceLine.invoice_id == invoice_id)
            .scalar()
        )
        invoice.total_ht = Decimal(str(total))
        invoice.recalc_totals()
        logger.debug("invoice #%s total_ht resynced to %s", invoice_id, invoice.total_ht)

    def _after_create_flush(self, ctx, obj):
        self._sync_invoice(obj.invoice_id)

    def _after_update_flush(self, ctx, obj, patch, before, after):
        if "montant_ht" in patch:
            self._sync_invoice(obj.invoice_id)

    def _after_delete_flush(self, ctx, obj):
        self._sync_invoice(obj.invoice_id)
