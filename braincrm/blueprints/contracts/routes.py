"""
Contracts and their version history.

Routes (JSON):
- /api/contracts[/<id>]
- /api/contracts/<id>/history  (newest first, display-ready)
"""

from flask import Blueprint

from ...permissions import permission_required
from ...services import contracts
from ..api import not_found, ok, register_crud

contracts_bp = Blueprint("contracts", __name__, url_prefix="/api")

register_crud(contracts_bp, contracts, "contracts", "/contracts", "contracts")


@contracts_bp.route("/contracts/<int:contract_id>/history")
@permission_required("contracts", "view")
def contract_history(contract_id: int):
    if contracts.get(contract_id) is None:
        return not_found("Contrat introuvable.")
    return ok(items=contracts.history(contract_id))
