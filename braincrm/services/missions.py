"""
Missions (temporary-work assignments).

A mission may name the client it is placed at, the worker filling it and the
candidate it was recruited from. Every link is checked on write.
"""

from __future__ import annotations

from ..extensions import db
from ..models import Candidate, Client, Mission, Personnel
from .base import EntityService, ValidationError, choice, day, decimal, integer, text

MISSION_STATUSES = ("pending", "active", "completed", "cancelled")
TITLE_MAX_LENGTH = 200


class MissionService(EntityService):
    model = Mission
    table = "missions"
    entity_type = "mission"
    # Deleting a mission unlinks its contracts.
    dependents = ("contracts",)

    fields = {
        "title": text,
        "description": text,
        "client_id": integer,
        "candidate_id": integer,
        "personnel_id": integer,
        "location": text,
        "mission_type": text,
        "daily_rate": decimal,
        "start_date": day,
        "end_date": day,
        "status": choice(*MISSION_STATUSES),
        "contract_url": text,
    }
    required = ("title", "start_date")
    filterable = ("status", "client_id", "personnel_id", "candidate_id", "start_date")

    messages = {
        "created": "Mission créée avec succès",
        "updated": "Mission mise à jour avec succès",
        "deleted": "Mission supprimée avec succès",
        "create_error": "Erreur lors de la création de la mission",
        "update_error": "Erreur lors de la mise à jour de la mission",
        "delete_error": "Erreur lors de la suppression de la mission",
    }

    def order_by(self):
        return (Mission.start_date.desc(), Mission.id.desc())

    def validate(self, cleaned, *, partial):
        title = cleaned.get("title")
        if title and len(title) > TITLE_MAX_LENGTH:
            raise ValidationError("Le titre est trop long.")
        rate = cleaned.get("daily_rate")
        if rate is not None and rate < 0:
            raise ValidationError("Le tarif doit être positif.")
        start, end = cleaned.get("start_date"), cleaned.get("end_date")
        if start and end and end < start:
            raise ValidationError("La date de fin doit être postérieure à la date de début.")

    def snapshot(self, obj):
        data = super().snapshot(obj)
        data["client_name"] = obj.client.raison_sociale if obj.client else None
        data["personnel_name"] = obj.personnel.full_name() if obj.personnel else None
        data["candidate_name"] = obj.candidate.full_name if obj.candidate else None
        return data

    def _check_links(self, obj: Mission) -> None:
        if obj.client_id is not None and db.session.get(Client, obj.client_id) is None:
            raise ValidationError("Client introuvable.")
        if obj.personnel_id is not None and db.session.get(Personnel, obj.personnel_id) is None:
            raise ValidationError("Personnel introuvable.")
        if obj.candidate_id is not None and db.session.get(Candidate, obj.candidate_id) is None:
            raise ValidationError("Candidat introuvable.")

    def _prepare_create(self, ctx, obj, data):
        self._check_links(obj)
        if obj.status is None:
            obj.status = MISSION_STATUSES[0]

    def _prepare_update(self, ctx, obj, patch, before):
        if any(f in patch for f in ("client_id", "personnel_id", "candidate_id")):
            self._check_links(obj)
        if obj.start_date and obj.end_date and obj.end_date < obj.start_date:
            raise ValidationError("La date de fin doit être postérieure à la date de début.")
