"""
Missions.

Routes (JSON):
- /api/missions[/<id>]
- /api/missions/<id>/contracts  contracts signed for the mission
"""

from flask import Blueprint

from ...permissions import current_context, permission_required
from ...services import contracts, missions
from ..api import failed, not_found, ok, register_crud

missions_bp = Blueprint("missions", __name__, url_prefix="/api")

register_crud(missions_bp, missions, "missions", "/missions", "missions")


@missions_bp.route("/missions/<int:mission_id>/contracts")
@permission_required("missions", "view")
def mission_contracts(mission_id: int):
    if missions.get(mission_id) is None:
        return not_found("Mission introuvable.")
    if not current_context().can_view("contracts"):
        return failed("Accès refusé.", 403)
    return ok(items=contracts.list({"mission_id": mission_id}))
