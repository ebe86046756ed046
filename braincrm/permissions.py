"""
braincrm/permissions.py

Role / module permission resolution and route guards.

Key rules:
- Permission evaluation is a pure function of (role, module, action, permission table).
- super_admin bypasses every module check.
- No row for (role, module) means every flag is False.
- Permissions not loaded yet (None) means inaccessible: fail closed.
- No inheritance between modules, no wildcards, exact string match only.

The acting user is carried by an explicit UserContext, built once per request in
current_context() and passed to every permission check and service call.

IMPORTANT:
- This is application-side filtering. Decorators must preserve wrapped function
  metadata to avoid Flask endpoint collisions; functools.wraps everywhere.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from functools import wraps
from typing import Any, Callable, Dict, Mapping, Optional

from flask import g, jsonify
from flask_login import current_user

from .extensions import cache

logger = logging.getLogger(__name__)

SUPER_ADMIN = "super_admin"

ROLES = {
    "super_admin": "Super Admin",
    "admin": "Admin",
    "manager": "Manager",
    "rh": "RH",
    "user": "Utilisateur",
}

MODULES = {
    "dashboard": "Tableau de bord",
    "personnel": "Personnel",
    "clients": "Clients",
    "contracts": "Contrats",
    "missions": "Missions",
    "invoices": "Factures",
    "payroll": "Paie",
    "recruitment": "Recrutement",
    "candidates": "Candidatures",
    "training": "Formations",
    "planning": "Planning",
    "reports": "Rapports",
    "users": "Utilisateurs",
    "audit_logs": "Journal d'audit",
    "permissions": "Permissions",
    "settings": "Paramètres",
}

# action -> role_permissions column
ACTIONS = {
    "view": "can_view",
    "create": "can_create",
    "edit": "can_edit",
    "delete": "can_delete",
}
PERMISSION_FLAGS = tuple(ACTIONS.values())

# module -> {"can_view": bool, ...}
PermissionTable = Mapping[str, Mapping[str, bool]]


def _flag_name(action: str) -> str:
    if action in ACTIONS:
        return ACTIONS[action]
    if action in PERMISSION_FLAGS:
        return action
    raise ValueError(f"Unknown permission action: {action!r}")


def has_permission(
    role: Optional[str],
    module: str,
    action: str,
    permissions: Optional[PermissionTable],
) -> bool:
    """Resolve one (role, module, action) against a loaded permission table."""
    if role == SUPER_ADMIN:
        return True

    flag = _flag_name(action)

    if not role or permissions is None:
        return False

    module_permission = permissions.get(module)
    if not module_permission:
        return False

    return bool(module_permission.get(flag, False))


def _fetch_role_permissions(role: str) -> Dict[str, Dict[str, bool]]:
    from .models import RolePermission

    rows = RolePermission.query.filter_by(role=role).order_by(RolePermission.module.asc()).all()
    return {
        row.module: {flag: bool(getattr(row, flag)) for flag in PERMISSION_FLAGS}
        for row in rows
    }


def load_permissions(role: Optional[str]) -> Optional[Dict[str, Dict[str, bool]]]:
    """
    Permission table for a role, fetched once and memoized.

    The memo lives in the collection cache under "role_permissions" and is dropped
    whenever that table changes. Returns None when there is no role.
    """
    if not role:
        return None
    return cache.get_or_load("role_permissions", role, lambda: _fetch_role_permissions(role))


# ---------------------------------------------------------------------
# Explicit acting-user context
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class UserContext:
    """Who is acting, with which role and which loaded permissions."""

    user_id: Optional[int] = None
    email: Optional[str] = None
    full_name: Optional[str] = None
    role: Optional[str] = None
    permissions: Optional[PermissionTable] = field(default=None, compare=False)

    @property
    def is_authenticated(self) -> bool:
        return self.user_id is not None

    @property
    def is_super_admin(self) -> bool:
        return self.role == SUPER_ADMIN

    def has_permission(self, module: str, action: str) -> bool:
        return has_permission(self.role, module, action, self.permissions)

    def can_view(self, module: str) -> bool:
        return self.has_permission(module, "view")

    def can_create(self, module: str) -> bool:
        return self.has_permission(module, "create")

    def can_edit(self, module: str) -> bool:
        return self.has_permission(module, "edit")

    def can_delete(self, module: str) -> bool:
        return self.has_permission(module, "delete")

    def visible_modules(self) -> list[dict]:
        """Modules the UI may show (visibility only; routes still enforce)."""
        return [
            {"key": key, "label": label}
            for key, label in MODULES.items()
            if self.can_view(key)
        ]


ANONYMOUS = UserContext()


def build_context(user: Any) -> UserContext:
    """Build a UserContext from a User model (or an anonymous user)."""
    if user is None or not getattr(user, "is_authenticated", False):
        return ANONYMOUS

    role = user.role
    return UserContext(
        user_id=user.id,
        email=user.email,
        full_name=user.full_name,
        role=role,
        permissions=load_permissions(role),
    )


def current_context() -> UserContext:
    """Request-scoped context for the logged-in user."""
    if "user_context" not in g:
        g.user_context = build_context(current_user)
    return g.user_context


# ---------------------------------------------------------------------
# Route guards
# ---------------------------------------------------------------------
def _unauthorized():
    return jsonify({"success": False, "error": "Authentification requise."}), 401


def _forbidden():
    return jsonify({"success": False, "error": "Accès refusé."}), 403


def permission_required(module: str, action: str = "view") -> Callable[..., Any]:
    """
    Decorator factory: the current context must hold (module, action).

    Usage:
        @permission_required("invoices", "edit")
        def update_invoice(invoice_id): ...
    """
    _flag_name(action)

    def decorator(view_func: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(view_func)
        def wrapper(*args: Any, **kwargs: Any):
            ctx = current_context()
            if not ctx.is_authenticated:
                return _unauthorized()
            if not ctx.has_permission(module, action):
                logger.info("denied %s:%s for user %s (role=%s)", module, action, ctx.user_id, ctx.role)
                return _forbidden()
            return view_func(*args, **kwargs)

        return wrapper

    return decorator
