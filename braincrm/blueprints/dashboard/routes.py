"""
Dashboard and reports.

Routes (JSON):
- GET /api/dashboard                 KPIs, urgent tasks, recent activity
- GET /api/reports/<kind>            recruitment / payroll / trainings / monthly
                                     (?start=&end= for payroll, ?year=&month= for monthly)
"""

from flask import Blueprint

from ...permissions import permission_required
from ...services import dashboard, reports
from ...services.base import ValidationError
from ..api import failed, ok, query_filters

dashboard_bp = Blueprint("dashboard", __name__, url_prefix="/api")


@dashboard_bp.route("/dashboard")
@permission_required("dashboard", "view")
def overview():
    return ok(**dashboard.summary())


@dashboard_bp.route("/reports/<kind>")
@permission_required("reports", "view")
def report(kind: str):
    try:
        data = reports.build_report(kind, query_filters())
    except ValidationError as e:
        return failed(str(e), 400)
    return ok(kind=kind, report=data)
