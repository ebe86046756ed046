"""
Dashboard: headline KPIs, urgent tasks and the recent activity feed.

Urgent tasks are recomputed on every call (no cache) and listed in a fixed
order; a task only appears when at least one record matches it:

    contracts-critical   critical  active contracts ending within 7 days
    contracts-warning    warning   active contracts ending within 30 days (not critical)
    docs-critical        critical  active personnel whose document expires within 7 days
    docs-warning         warning   same, within 30 days (not critical)
    invoices-overdue     critical  pending/sent invoices past their due date
    candidates-pending   warning   applications still new or under review
    missions-pending     warning   missions waiting for confirmation
    invoices-draft       info      draft invoices
    trainings-upcoming   info      planned trainings starting within 7 days
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import date, timedelta
from typing import Any, Dict, Optional

from ..audit import audit_entry_dict, list_audit_logs
from ..models import Candidate, Contract, Invoice, Mission, Personnel, Training
from .recruitment import OPEN_CANDIDATE_STATUSES

CRITICAL_DAYS = 7
WARNING_DAYS = 30
RECENT_ACTIVITY_LIMIT = 10


@dataclass
class UrgentTask:
    id: str
    level: str  # critical / warning / info
    title: str
    description: str
    count: int
    module: str


def kpis() -> Dict[str, int]:
    return {
        "active_candidates": Candidate.query.filter(Candidate.status.notin_(("hired", "rejected"))).count(),
        "active_missions": Mission.query.filter_by(status="active").count(),
        "active_trainings": Training.query.filter(Training.status.in_(("planned", "in_progress"))).count(),
        "active_personnel": Personnel.query.filter_by(is_active=True).count(),
    }


KPI_LABELS = {
    "active_candidates": "Candidatures actives",
    "active_missions": "Missions en cours",
    "active_trainings": "Formations actives",
    "active_personnel": "Employés actifs",
}


def _expiring_contracts(limit: date):
    return Contract.query.filter(
        Contract.status == "actif",
        Contract.date_fin.isnot(None),
        Contract.date_fin < limit,
    )


def _expiring_documents(limit: date):
    return Personnel.query.filter(
        Personnel.is_active.is_(True),
        Personnel.date_validite_document.isnot(None),
        Personnel.date_validite_document < limit,
    )


def urgent_tasks(today: Optional[date] = None) -> list[UrgentTask]:
    today = today or date.today()
    soon = today + timedelta(days=CRITICAL_DAYS)
    later = today + timedelta(days=WARNING_DAYS)

    contracts_critical = _expiring_contracts(soon).count()
    contracts_warning = _expiring_contracts(later).count() - contracts_critical
    docs_critical = _expiring_documents(soon).count()
    docs_warning = _expiring_documents(later).count() - docs_critical
    overdue = Invoice.query.filter(
        Invoice.status.in_(("pending", "sent")),
        Invoice.due_date.isnot(None),
        Invoice.due_date < today,
    ).count()
    candidates_pending = Candidate.query.filter(Candidate.status.in_(OPEN_CANDIDATE_STATUSES)).count()
    missions_pending = Mission.query.filter_by(status="pending").count()
    drafts = Invoice.query.filter_by(status="draft").count()
    upcoming = Training.query.filter(
        Training.status == "planned",
        Training.start_date >= today,
        Training.start_date < soon,
    ).count()

    tasks = [
        UrgentTask("contracts-critical", "critical", "Contrats expirant sous 7 jours",
                   f"{contracts_critical} contrat(s) arrivent à expiration très bientôt",
                   contracts_critical, "contracts"),
        UrgentTask("contracts-warning", "warning", "Contrats à renouveler",
                   f"{contracts_warning} contrat(s) expirent dans les 30 jours",
                   contracts_warning, "contracts"),
        UrgentTask("docs-critical", "critical", "Documents expirant sous 7 jours",
                   f"{docs_critical} document(s) de personnel expirent bientôt",
                   docs_critical, "personnel"),
        UrgentTask("docs-warning", "warning", "Documents à renouveler",
                   f"{docs_warning} document(s) expirent dans les 30 jours",
                   docs_warning, "personnel"),
        UrgentTask("invoices-overdue", "critical", "Factures en retard",
                   f"{overdue} facture(s) ont dépassé leur date d'échéance",
                   overdue, "invoices"),
        UrgentTask("candidates-pending", "warning", "Candidatures à traiter",
                   f"{candidates_pending} candidature(s) en attente de traitement",
                   candidates_pending, "candidates"),
        UrgentTask("missions-pending", "warning", "Missions en attente",
                   f"{missions_pending} mission(s) à confirmer",
                   missions_pending, "missions"),
        UrgentTask("invoices-draft", "info", "Factures brouillon",
                   f"{drafts} facture(s) en brouillon à finaliser",
                   drafts, "invoices"),
        UrgentTask("trainings-upcoming", "info", "Formations à venir",
                   f"{upcoming} formation(s) débutent dans les 7 prochains jours",
                   upcoming, "training"),
    ]
    return [task for task in tasks if task.count > 0]


def recent_activity(limit: int = RECENT_ACTIVITY_LIMIT) -> list[Dict[str, Any]]:
    return [audit_entry_dict(entry) for entry in list_audit_logs(limit=limit)]


def summary(today: Optional[date] = None) -> Dict[str, Any]:
    """Everything the dashboard page shows, in one payload."""
    values = kpis()
    return {
        "kpis": [{"key": key, "label": KPI_LABELS[key], "value": values[key]} for key in KPI_LABELS],
        "urgent_tasks": [asdict(task) for task in urgent_tasks(today)],
        "recent_activity": recent_activity(),
    }
