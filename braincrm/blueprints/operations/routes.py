"""
Day-to-day operations: payroll, trainings (+ participants), planning events.

Routes (JSON):
- /api/payrolls[/<id>]
- /api/trainings[/<id>]
- /api/trainings/<id>/participants                     GET, POST
- /api/trainings/<id>/participants/<participant_id>    PATCH, DELETE
- /api/events[/<id>]
- GET /api/events/range?start=YYYY-MM-DD&end=YYYY-MM-DD
"""

from flask import Blueprint, request

from ...permissions import current_context, permission_required
from ...services import events, participants, payrolls, trainings
from ...services.base import ValidationError
from ..api import failed, get_json_or_error, not_found, ok, register_crud

operations_bp = Blueprint("operations", __name__, url_prefix="/api")

register_crud(operations_bp, payrolls, "payroll", "/payrolls", "payrolls")
register_crud(operations_bp, trainings, "training", "/trainings", "trainings")
register_crud(operations_bp, events, "planning", "/events", "events")


# ---------------------------------------------------------------------
# TRAINING PARTICIPANTS
# ---------------------------------------------------------------------

@operations_bp.route("/trainings/<int:training_id>/participants")
@permission_required("training", "view")
def list_participants(training_id: int):
    if trainings.get(training_id) is None:
        return not_found("Formation introuvable.")
    return ok(items=participants.for_training(training_id))


@operations_bp.route("/trainings/<int:training_id>/participants", methods=["POST"])
@permission_required("training", "edit")
def add_participant(training_id: int):
    data, error = get_json_or_error()
    if error:
        return error
    if trainings.get(training_id) is None:
        return not_found("Formation introuvable.")

    try:
        obj = participants.create(current_context(), {**data, "training_id": training_id})
    except ValidationError as e:
        return failed(str(e), 400)
    if obj is None:
        return failed(participants.messages["create_error"], 400)
    return ok(201, item=participants.snapshot(obj))


def _participant_of(training_id: int, participant_id: int):
    obj = participants.get(participant_id)
    if obj is None or obj.training_id != training_id:
        return None
    return obj


@operations_bp.route("/trainings/<int:training_id>/participants/<int:participant_id>", methods=["PATCH", "PUT"])
@permission_required("training", "edit")
def update_participant(training_id: int, participant_id: int):
    data, error = get_json_or_error()
    if error:
        return error
    if _participant_of(training_id, participant_id) is None:
        return not_found("Participant introuvable.")

    try:
        obj = participants.update(current_context(), participant_id, data)
    except ValidationError as e:
        return failed(str(e), 400)
    if obj is None:
        return failed(participants.messages["update_error"], 400)
    return ok(item=participants.snapshot(obj))


@operations_bp.route("/trainings/<int:training_id>/participants/<int:participant_id>", methods=["DELETE"])
@permission_required("training", "edit")
def remove_participant(training_id: int, participant_id: int):
    if _participant_of(training_id, participant_id) is None:
        return not_found("Participant introuvable.")
    if not participants.delete(current_context(), participant_id):
        return failed(participants.messages["delete_error"], 400)
    return ok()


# ---------------------------------------------------------------------
# PLANNING
# ---------------------------------------------------------------------

@operations_bp.route("/events/range")
@permission_required("planning", "view")
def events_in_range():
    try:
        items = events.list_between(request.args.get("start"), request.args.get("end"))
    except ValidationError as e:
        return failed(str(e), 400)
    return ok(items=items)
