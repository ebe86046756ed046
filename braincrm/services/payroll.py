"""
Payroll entries.

net_salary = base_salary + bonus - deductions, computed whenever the caller does
not send an explicit net_salary.
"""

from __future__ import annotations

from decimal import Decimal

from ..extensions import db
from ..models import Payroll, Personnel
from .base import EntityService, ValidationError, choice, day, decimal, integer

PAYROLL_STATUSES = ("pending", "processing", "paid")
MONEY_FIELDS = ("base_salary", "bonus", "deductions")


class PayrollService(EntityService):
    model = Payroll
    table = "payrolls"
    entity_type = "payroll"

    fields = {
        "personnel_id": integer,
        "period_start": day,
        "period_end": day,
        "base_salary": decimal,
        "bonus": decimal,
        "deductions": decimal,
        "net_salary": decimal,
        "payment_date": day,
        "status": choice(*PAYROLL_STATUSES),
    }
    required = ("personnel_id", "period_start", "period_end")
    filterable = ("personnel_id", "status", "period_start", "period_end")

    messages = {
        "created": "Fiche de paie créée avec succès",
        "updated": "Fiche de paie mise à jour avec succès",
        "deleted": "Fiche de paie supprimée avec succès",
        "create_error": "Erreur lors de la création de la fiche de paie",
        "update_error": "Erreur lors de la mise à jour de la fiche de paie",
        "delete_error": "Erreur lors de la suppression de la fiche de paie",
    }

    def order_by(self):
        return (Payroll.period_start.desc(), Payroll.id.desc())

    def validate(self, cleaned, *, partial):
        start, end = cleaned.get("period_start"), cleaned.get("period_end")
        if start and end and end < start:
            raise ValidationError("La fin de période doit être postérieure au début.")

    def snapshot(self, obj):
        data = super().snapshot(obj)
        data["personnel_name"] = obj.personnel.full_name() if obj.personnel else None
        return data

    def _normalize(self, obj: Payroll) -> None:
        for field in MONEY_FIELDS:
            if getattr(obj, field) is None:
                setattr(obj, field, Decimal("0"))

    def _prepare_create(self, ctx, obj, data):
        if db.session.get(Personnel, obj.personnel_id) is None:
            raise ValidationError("Personnel introuvable.")
        self._normalize(obj)
        if obj.status is None:
            obj.status = PAYROLL_STATUSES[0]
        if data.get("net_salary") is None:
            obj.recalc_net()

    def _prepare_update(self, ctx, obj, patch, before):
        if "personnel_id" in patch and db.session.get(Personnel, obj.personnel_id) is None:
            raise ValidationError("Personnel introuvable.")
        if obj.period_start and obj.period_end and obj.period_end < obj.period_start:
            raise ValidationError("La fin de période doit être postérieure au début.")
        if "status" in patch and obj.status is None:
            raise ValidationError("Le statut est obligatoire.")
        self._normalize(obj)
        if obj.net_salary is None or (
            "net_salary" not in patch and any(f in patch for f in MONEY_FIELDS)
        ):
            obj.recalc_net()
