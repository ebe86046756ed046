"""
braincrm/seed.py

Seed the default role/module permission matrix.

Rules:
- Safe to run multiple times (idempotent).
- Existing (role, module) rows are never overwritten: administrators may have
  tuned them from the permissions screen.
- super_admin gets no rows; it bypasses every check.
"""

from __future__ import annotations

from .cache import notify_changed
from .extensions import db
from .models import RolePermission
from .permissions import MODULES

ALL = ("can_view", "can_create", "can_edit", "can_delete")
VIEW = ("can_view",)
WRITE = ("can_view", "can_create", "can_edit")

BUSINESS_MODULES = (
    "personnel",
    "clients",
    "contracts",
    "missions",
    "invoices",
    "payroll",
    "recruitment",
    "candidates",
    "training",
    "planning",
)

DEFAULT_MATRIX = {
    "admin": {
        **{module: ALL for module in MODULES},
        "permissions": VIEW,
    },
    "manager": {
        "dashboard": VIEW,
        "reports": VIEW,
        "payroll": VIEW,
        **{module: WRITE for module in BUSINESS_MODULES if module != "payroll"},
    },
    "rh": {
        "dashboard": VIEW,
        "reports": VIEW,
        "personnel": WRITE,
        "contracts": WRITE,
        "payroll": WRITE,
        "recruitment": WRITE,
        "candidates": WRITE,
        "training": WRITE,
        "planning": WRITE,
    },
    "user": {
        "dashboard": VIEW,
        "planning": VIEW,
        "training": VIEW,
    },
}


def seed_default_permissions() -> int:
    """
    Create the missing RolePermission rows of DEFAULT_MATRIX.

    Returns the number of rows created.
    """
    created = 0
    for role, modules in DEFAULT_MATRIX.items():
        for module, flags in modules.items():
            exists = RolePermission.query.filter_by(role=role, module=module).first()
            if exists:
                continue
            db.session.add(
                RolePermission(
                    role=role,
                    module=module,
                    **{flag: flag in flags for flag in ALL},
                )
            )
            created += 1

    db.session.commit()
    notify_changed("role_permissions")
    return created
