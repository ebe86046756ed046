"""
Recruitment: job offers, candidates and the public careers board.

Routes (JSON):
- /api/job-offers[/<id>]                       module "recruitment"
- /api/job-offers/<id>/candidates              applications to one offer
- /api/candidates[/<id>]                       module "candidates"
- GET  /api/public/job-offers                  published offers (no login)
- GET  /api/public/job-offers/<id>
- POST /api/public/job-offers/<id>/apply       public application (no login, no CSRF)
"""

import logging

from flask import Blueprint

from ...extensions import csrf
from ...permissions import permission_required
from ...services import candidates, job_offers
from ...services.base import ValidationError
from ..api import failed, get_json_or_error, not_found, ok, register_crud

logger = logging.getLogger(__name__)

recruitment_bp = Blueprint("recruitment", __name__, url_prefix="/api")

register_crud(recruitment_bp, job_offers, "recruitment", "/job-offers", "job_offers")
register_crud(recruitment_bp, candidates, "candidates", "/candidates", "candidates")

# What an anonymous visitor may see of an offer.
PUBLIC_OFFER_FIELDS = (
    "id",
    "title",
    "description",
    "department",
    "location",
    "job_type",
    "salary_min",
    "salary_max",
    "requirements",
    "responsibilities",
    "benefits",
    "published_at",
    "expires_at",
)


def _public(item: dict) -> dict:
    return {key: item.get(key) for key in PUBLIC_OFFER_FIELDS}


@recruitment_bp.route("/job-offers/<int:offer_id>/candidates")
@permission_required("candidates", "view")
def offer_candidates(offer_id: int):
    if job_offers.get(offer_id) is None:
        return not_found("Offre d'emploi introuvable.")
    return ok(items=candidates.list({"job_offer_id": offer_id}))


# ---------------------------------------------------------------------
# PUBLIC CAREERS BOARD
# ---------------------------------------------------------------------

@recruitment_bp.route("/public/job-offers")
def public_offers():
    return ok(items=[_public(item) for item in job_offers.published()])


@recruitment_bp.route("/public/job-offers/<int:offer_id>")
def public_offer(offer_id: int):
    offer = job_offers.get_published(offer_id)
    if offer is None:
        return not_found("Offre d'emploi introuvable.")
    return ok(item=_public(job_offers.snapshot(offer)))


@recruitment_bp.route("/public/job-offers/<int:offer_id>/apply", methods=["POST"])
@csrf.exempt
def apply(offer_id: int):
    data, error = get_json_or_error()
    if error:
        return error
    try:
        obj = candidates.apply(offer_id, data)
    except ValidationError as e:
        return failed(str(e), 400)
    if obj is None:
        return failed(candidates.messages["create_error"], 400)
    logger.info("Public application #%s received for job offer #%s", obj.id, offer_id)
    return ok(201, item={"id": obj.id, "status": obj.status})
