"""
braincrm/audit.py

Audit logging helper utilities.

Goals:
- Capture WHO did WHAT to WHICH entity, with BEFORE/AFTER snapshots.
- Store email/name snapshots to preserve identity even if the profile changes later.
- Store IP address and user agent for traceability.

IMPORTANT:
- log_action() ADDS an AuditLog entry to the current SQLAlchemy session.
  The calling service controls transaction boundaries (commit/rollback), so the
  entry is committed together with the data change or not at all.
- Entries are immutable: nothing in the application updates or deletes them.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Optional

from flask import has_request_context, request

from .extensions import db
from .models import AuditLog
from .permissions import UserContext

ACTION_LABELS = {
    "create": "Création",
    "update": "Modification",
    "delete": "Suppression",
    "view": "Consultation",
    "login": "Connexion",
    "logout": "Déconnexion",
    "export": "Export",
    "import": "Import",
    "status_change": "Changement de statut",
    "role_change": "Changement de rôle",
}

ENTITY_TYPE_LABELS = {
    "client": "Client",
    "personnel": "Personnel",
    "contract": "Contrat",
    "invoice": "Facture",
    "mission": "Mission",
    "candidate": "Candidat",
    "job_offer": "Offre d'emploi",
    "training": "Formation",
    "payroll": "Paie",
    "user": "Utilisateur",
    "event": "Événement",
    "report": "Rapport",
    "permission": "Permission",
}


def get_action_label(action: str) -> str:
    return ACTION_LABELS.get(action, action)


def get_entity_type_label(entity_type: str) -> str:
    return ENTITY_TYPE_LABELS.get(entity_type, entity_type)


def json_value(value: Any) -> Any:
    """
    Convert a column value to a JSON-native value.

    - Decimal -> float (money columns are 2 decimals)
    - date/datetime -> ISO string
    - everything else unchanged
    """
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


def serialize_model(instance: Any) -> Dict[str, Any]:
    """
    Convert a SQLAlchemy model instance to a flat snapshot based on table columns.

    NOTES:
    - Captures only scalar column values (not relationships).
    - Values are JSON-native so snapshots can be stored in JSON columns and compared.
    """
    return {
        column.name: json_value(getattr(instance, column.name))
        for column in instance.__table__.columns
    }


def log_action(
    ctx: UserContext,
    action: str,
    entity_type: str,
    entity_id: Any = None,
    *,
    old_data: Optional[Dict[str, Any]] = None,
    new_data: Optional[Dict[str, Any]] = None,
) -> AuditLog:
    """
    Add an AuditLog entry to the current db session.

    Parameters:
        ctx: acting user (anonymous contexts are recorded with no user)
        action: one of ACTION_LABELS
        entity_type: one of ENTITY_TYPE_LABELS
        entity_id: primary key of the entity (after flush), optional
        old_data / new_data: flat snapshots (optional)
    """
    if action not in ACTION_LABELS:
        raise ValueError(f"Unknown audit action: {action!r}")
    if entity_type not in ENTITY_TYPE_LABELS:
        raise ValueError(f"Unknown audit entity type: {entity_type!r}")

    ip_address = None
    user_agent = None
    if has_request_context():
        # Behind a reverse proxy, configure ProxyFix to capture the real client IP.
        ip_address = request.remote_addr
        user_agent = (request.user_agent.string or None) if request.user_agent else None

    entry = AuditLog(
        user_id=ctx.user_id,
        user_email=ctx.email,
        user_name=ctx.full_name,
        action=action,
        entity_type=entity_type,
        entity_id=str(entity_id) if entity_id is not None else None,
        old_data=old_data or None,
        new_data=new_data or None,
        ip_address=ip_address,
        user_agent=user_agent[:500] if user_agent else None,
    )
    db.session.add(entry)
    return entry


def list_audit_logs(
    entity_type: Optional[str] = None,
    action: Optional[str] = None,
    user_id: Optional[int] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    limit: int = 100,
) -> list[AuditLog]:
    """Newest-first audit entries with optional equality/range filters."""
    q = AuditLog.query
    if entity_type:
        q = q.filter(AuditLog.entity_type == entity_type)
    if action:
        q = q.filter(AuditLog.action == action)
    if user_id:
        q = q.filter(AuditLog.user_id == user_id)
    if start:
        q = q.filter(AuditLog.created_at >= start)
    if end:
        q = q.filter(AuditLog.created_at <= end)

    return q.order_by(AuditLog.created_at.desc(), AuditLog.id.desc()).limit(limit).all()


def audit_entry_dict(entry: AuditLog) -> Dict[str, Any]:
    data = serialize_model(entry)
    data["action_label"] = get_action_label(entry.action)
    data["entity_type_label"] = get_entity_type_label(entry.entity_type)
    return data
