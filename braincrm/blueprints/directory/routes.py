"""
Master data: clients and personnel.

Routes (JSON):
- /api/clients[/<id>]
- /api/personnel[/<id>]
- /api/personnel/<id>/contracts
"""

from flask import Blueprint

from ...permissions import permission_required
from ...services import clients, contracts, personnel
from ..api import not_found, ok, register_crud

directory_bp = Blueprint("directory", __name__, url_prefix="/api")

register_crud(directory_bp, clients, "clients", "/clients", "clients")
register_crud(directory_bp, personnel, "personnel", "/personnel", "personnel")


@directory_bp.route("/personnel/<int:personnel_id>/contracts")
@permission_required("contracts", "view")
def personnel_contracts(personnel_id: int):
    """Contracts of one worker, newest first."""
    if personnel.get(personnel_id) is None:
        return not_found("Personnel introuvable.")
    return ok(items=contracts.list({"personnel_id": personnel_id}))
