"""
Role / module permission matrix administration.

Bulk updates are applied in one transaction: either every pending change is
saved or none is. Missing (role, module) rows are created on the fly.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, Mapping, Optional

from sqlalchemy.exc import SQLAlchemyError

from ..audit import log_action, serialize_model
from ..cache import notify_changed
from ..extensions import db
from ..models import RolePermission
from ..notifications import notify_error, notify_success
from ..permissions import ACTIONS, MODULES, PERMISSION_FLAGS, ROLES, UserContext
from ..utils import parse_bool
from .base import ValidationError

logger = logging.getLogger(__name__)


def matrix(role: Optional[str] = None) -> list[Dict[str, Any]]:
    """Stored permission rows ordered by role then module (optionally one role)."""
    q = RolePermission.query
    if role:
        if role not in ROLES:
            raise ValidationError("Rôle invalide.")
        q = q.filter_by(role=role)
    rows = q.order_by(RolePermission.role.asc(), RolePermission.module.asc()).all()
    return [serialize_model(row) for row in rows]


def _clean_update(raw: Any) -> tuple[str, str, Dict[str, bool]]:
    if not isinstance(raw, Mapping):
        raise ValidationError("Modification de permission invalide.")
    role, module = raw.get("role"), raw.get("module")
    if role not in ROLES:
        raise ValidationError(f"Rôle invalide: {role!r}.")
    if module not in MODULES:
        raise ValidationError(f"Module invalide: {module!r}.")

    flags: Dict[str, bool] = {}
    for key, value in raw.items():
        if key in ("role", "module"):
            continue
        flag = ACTIONS.get(key, key)
        if flag not in PERMISSION_FLAGS:
            raise ValidationError(f"Permission inconnue: {key!r}.")
        flags[flag] = parse_bool(value)
    if not flags:
        raise ValidationError("Aucune permission à modifier.")
    return role, module, flags


def update_permissions(ctx: UserContext, updates: Iterable[Any]) -> bool:
    """
    Apply [{"role": ..., "module": ..., "can_view": true, ...}, ...] atomically.

    Returns True on success, False (with an error notification) on database failure.
    """
    cleaned = [_clean_update(raw) for raw in (updates or [])]
    if not cleaned:
        raise ValidationError("Aucune modification à enregistrer.")

    try:
        for role, module, flags in cleaned:
            row = RolePermission.query.filter_by(role=role, module=module).first()
            before = serialize_model(row) if row else None
            if row is None:
                row = RolePermission(role=role, module=module)
                for flag in PERMISSION_FLAGS:
                    setattr(row, flag, False)
                db.session.add(row)
            for flag, value in flags.items():
                setattr(row, flag, value)
            db.session.flush()

            log_action(ctx, "update", "permission", row.id, old_data=before, new_data=serialize_model(row))
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("role_permissions: bulk update failed")
        notify_error("Impossible de mettre à jour les permissions. Vérifiez vos droits d'accès.")
        return False

    logger.info("%d permission row(s) updated by user %s", len(cleaned), ctx.user_id)
    notify_changed("role_permissions")
    notify_success("Les modifications ont été enregistrées avec succès.")
    return True
