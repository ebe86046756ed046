"""
Administration.

Routes (JSON unless noted):
- GET  /api/admin/permissions?role=...   permission matrix rows (+ roles / modules catalogs)
- PUT  /api/admin/permissions            bulk update [{"role", "module", "can_view", ...}]
- GET  /api/admin/audit-logs             newest first, filters: entity_type, action, user_id, start, end, limit
- POST /api/admin/export                 {"tables": [...], "format": "json|csv|sql",
                                          "start_date": ..., "end_date": ...} -> file download
"""

from datetime import datetime, time

from flask import Blueprint, Response, request

from ...audit import ACTION_LABELS, ENTITY_TYPE_LABELS, audit_entry_dict, list_audit_logs
from ...export import TABLES, export_tables
from ...permissions import MODULES, ROLES, current_context, permission_required
from ...services import role_permissions
from ...services.base import ValidationError
from ...utils import parse_date, parse_optional_int
from ..api import failed, get_json_or_error, ok

admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")

MAX_AUDIT_LIMIT = 500


# ---------------------------------------------------------------------
# PERMISSIONS MATRIX
# ---------------------------------------------------------------------

@admin_bp.route("/permissions")
@permission_required("permissions", "view")
def permissions_matrix():
    try:
        rows = role_permissions.matrix(request.args.get("role") or None)
    except ValidationError as e:
        return failed(str(e), 400)
    return ok(items=rows, roles=ROLES, modules=MODULES)


@admin_bp.route("/permissions", methods=["PUT", "PATCH"])
@permission_required("permissions", "edit")
def update_permissions():
    data, error = get_json_or_error(object_only=False)
    if error:
        return error
    updates = data.get("updates") if isinstance(data, dict) else data
    if not isinstance(updates, list):
        return failed("Liste de modifications attendue.", 400)

    try:
        saved = role_permissions.update_permissions(current_context(), updates)
    except ValidationError as e:
        return failed(str(e), 400)
    if not saved:
        return failed("Impossible de mettre à jour les permissions.", 400)
    return ok(items=role_permissions.matrix())


# ---------------------------------------------------------------------
# AUDIT LOG
# ---------------------------------------------------------------------

@admin_bp.route("/audit-logs")
@permission_required("audit_logs", "view")
def audit_logs():
    args = request.args
    start, end = parse_date(args.get("start")), parse_date(args.get("end"))
    limit = parse_optional_int(args.get("limit")) or 100

    entries = list_audit_logs(
        entity_type=args.get("entity_type") or None,
        action=args.get("action") or None,
        user_id=parse_optional_int(args.get("user_id")),
        start=datetime.combine(start, time.min) if start else None,
        end=datetime.combine(end, time.max) if end else None,
        limit=max(1, min(limit, MAX_AUDIT_LIMIT)),
    )
    return ok(
        items=[audit_entry_dict(e) for e in entries],
        actions=ACTION_LABELS,
        entity_types=ENTITY_TYPE_LABELS,
    )


# ---------------------------------------------------------------------
# DATA EXPORT
# ---------------------------------------------------------------------

@admin_bp.route("/export/tables")
@permission_required("settings", "view")
def export_catalog():
    return ok(items=[{"id": t.id, "label": t.label, "date_column": t.date_column} for t in TABLES.values()])


@admin_bp.route("/export", methods=["POST"])
@permission_required("settings", "view")
def export_data():
    data, error = get_json_or_error()
    if error:
        return error
    try:
        result = export_tables(
            current_context(),
            data.get("tables"),
            data.get("format") or "json",
            data.get("start_date"),
            data.get("end_date"),
        )
    except ValidationError as e:
        return failed(str(e), 400)

    return Response(
        result.content,
        mimetype=result.mimetype,
        headers={"Content-Disposition": f'attachment; filename="{result.filename}"'},
    )
