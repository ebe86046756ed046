"""
Aggregate reports (read-only, never cached).

- recruitment: applications per status, hires and conversion rate
- payroll: payroll mass over an optional period (by period_start)
- trainings: sessions per status and completed participations
- monthly: one month of HR activity (hires, missions started, payroll mass)
"""

from __future__ import annotations

from calendar import monthrange
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Any, Callable, Dict, Optional

from sqlalchemy import func

from ..audit import json_value
from ..extensions import db
from ..models import Candidate, Mission, Payroll, Training, TrainingParticipant
from ..utils import parse_date, parse_optional_int
from .base import ValidationError
from .recruitment import CANDIDATE_STATUSES
from .training import TRAINING_STATUSES


def _counts(column, options) -> Dict[str, int]:
    rows = dict(db.session.query(column, func.count()).group_by(column).all())
    return {option: int(rows.get(option, 0)) for option in options}


def _period(start: Any, end: Any) -> tuple[Optional[date], Optional[date]]:
    start_day, end_day = parse_date(start), parse_date(end)
    if (start and start_day is None) or (end and end_day is None):
        raise ValidationError("Période invalide (format AAAA-MM-JJ attendu).")
    if start_day and end_day and end_day < start_day:
        raise ValidationError("La date de fin doit être postérieure à la date de début.")
    return start_day, end_day


def recruitment(**_: Any) -> Dict[str, Any]:
    by_status = _counts(Candidate.status, CANDIDATE_STATUSES)
    total = sum(by_status.values())
    hired = by_status["hired"]
    rate = round(hired * 100 / total, 1) if total else 0.0
    return {"total": total, "by_status": by_status, "hired": hired, "conversion_rate": rate}


def payroll(start: Any = None, end: Any = None, **_: Any) -> Dict[str, Any]:
    start_day, end_day = _period(start, end)
    q = db.session.query(
        func.count(Payroll.id),
        func.coalesce(func.sum(Payroll.base_salary), 0),
        func.coalesce(func.sum(Payroll.bonus), 0),
        func.coalesce(func.sum(Payroll.deductions), 0),
        func.coalesce(func.sum(Payroll.net_salary), 0),
    )
    if start_day:
        q = q.filter(Payroll.period_start >= start_day)
    if end_day:
        q = q.filter(Payroll.period_start <= end_day)
    count, base, bonus, deductions, net = q.one()
    return {
        "start": json_value(start_day),
        "end": json_value(end_day),
        "entries": int(count),
        "base_salary": json_value(Decimal(str(base))),
        "bonus": json_value(Decimal(str(bonus))),
        "deductions": json_value(Decimal(str(deductions))),
        "net_salary": json_value(Decimal(str(net))),
    }


def trainings(**_: Any) -> Dict[str, Any]:
    by_status = _counts(Training.status, TRAINING_STATUSES)
    enrolled = TrainingParticipant.query.count()
    completed = TrainingParticipant.query.filter_by(completed=True).count()
    return {
        "total": sum(by_status.values()),
        "by_status": by_status,
        "participants": enrolled,
        "completed_participants": completed,
    }


def monthly(year: Any = None, month: Any = None, **_: Any) -> Dict[str, Any]:
    today = date.today()
    year = parse_optional_int(year) or today.year
    month = parse_optional_int(month) or today.month
    if not 1 <= month <= 12:
        raise ValidationError("Mois invalide.")
    first = date(year, month, 1)
    last = date(year, month, monthrange(year, month)[1])

    applications = Candidate.query.filter(
        Candidate.applied_at >= datetime.combine(first, time.min),
        Candidate.applied_at < datetime.combine(last + timedelta(days=1), time.min),
    )
    return {
        "year": year,
        "month": month,
        "applications": applications.count(),
        "hires": applications.filter(Candidate.status == "hired").count(),
        "missions_started": Mission.query.filter(Mission.start_date.between(first, last)).count(),
        "trainings_started": Training.query.filter(Training.start_date.between(first, last)).count(),
        "payroll": payroll(first.isoformat(), last.isoformat()),
    }


REPORTS: Dict[str, Callable[..., Dict[str, Any]]] = {
    "recruitment": recruitment,
    "payroll": payroll,
    "trainings": trainings,
    "monthly": monthly,
}


def build_report(kind: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    report = REPORTS.get(kind)
    if report is None:
        raise ValidationError(f"Rapport inconnu (attendu: {', '.join(REPORTS)}).")
    params = params or {}
    return report(**{k: v for k, v in params.items() if k in ("start", "end", "year", "month")})
