"""
Trainings and their participants.

Participant rules:
- a person is enrolled at most once per training
- a training never holds more than max_participants people (no limit when unset)
- completed=True stamps completion_date with today (unless given),
  completed=False clears it
"""

from __future__ import annotations

from datetime import date
from typing import Any, Dict

from ..extensions import db
from ..models import Personnel, Training, TrainingParticipant
from .base import EntityService, ValidationError, choice, day, flag, integer, text

TRAINING_STATUSES = ("planned", "in_progress", "completed", "cancelled")


class TrainingService(EntityService):
    model = Training
    table = "trainings"
    entity_type = "training"
    dependents = ("training_participants",)

    fields = {
        "title": text,
        "description": text,
        "category": text,
        "trainer": text,
        "start_date": day,
        "end_date": day,
        "duration_hours": integer,
        "location": text,
        "max_participants": integer,
        "status": choice(*TRAINING_STATUSES),
    }
    required = ("title", "start_date")
    filterable = ("status", "category", "start_date")

    messages = {
        "created": "Formation créée avec succès",
        "updated": "Formation mise à jour avec succès",
        "deleted": "Formation supprimée avec succès",
        "create_error": "Erreur lors de la création de la formation",
        "update_error": "Erreur lors de la mise à jour de la formation",
        "delete_error": "Erreur lors de la suppression de la formation",
    }

    def order_by(self):
        return (Training.start_date.desc(), Training.id.desc())

    def validate(self, cleaned, *, partial):
        start, end = cleaned.get("start_date"), cleaned.get("end_date")
        if start and end and end < start:
            raise ValidationError("La date de fin doit être postérieure à la date de début.")
        for field in ("duration_hours", "max_participants"):
            value = cleaned.get(field)
            if value is not None and value < 0:
                raise ValidationError(f"Valeur négative interdite pour « {field} ».")

    def snapshot(self, obj):
        data = super().snapshot(obj)
        data["participant_count"] = len(obj.participants)
        return data

    def _prepare_create(self, ctx, obj, data):
        if obj.status is None:
            obj.status = TRAINING_STATUSES[0]

    def _prepare_update(self, ctx, obj, patch, before):
        if "status" in patch and obj.status is None:
            raise ValidationError("Le statut est obligatoire.")
        if obj.max_participants is not None and len(obj.participants) > obj.max_participants:
            raise ValidationError("La capacité ne peut pas être inférieure au nombre d'inscrits.")


class ParticipantService(EntityService):
    model = TrainingParticipant
    table = "training_participants"
    entity_type = "training"
    # Participant counts are part of the training list.
    dependents = ("trainings",)

    fields = {
        "training_id": integer,
        "personnel_id": integer,
        "completed": flag,
        "completion_date": day,
    }
    required = ("training_id", "personnel_id")
    filterable = ("training_id", "personnel_id", "completed")

    messages = {
        "created": "Participant ajouté avec succès",
        "updated": "Participant mis à jour",
        "deleted": "Participant retiré avec succès",
        "create_error": "Erreur lors de l'ajout du participant",
        "update_error": "Erreur lors de la mise à jour du participant",
        "delete_error": "Erreur lors de la suppression du participant",
    }

    def order_by(self):
        return (TrainingParticipant.created_at.asc(), TrainingParticipant.id.asc())

    def for_training(self, training_id: Any) -> list[Dict[str, Any]]:
        return self.list({"training_id": training_id})

    def snapshot(self, obj):
        data = super().snapshot(obj)
        person = obj.personnel
        data["personnel"] = (
            {"id": person.id, "nom": person.nom, "prenom": person.prenom, "matricule": person.matricule}
            if person
            else None
        )
        return data

    def _prepare_create(self, ctx, obj, data):
        training = db.session.get(Training, obj.training_id)
        if training is None:
            raise ValidationError("Formation introuvable.")
        if db.session.get(Personnel, obj.personnel_id) is None:
            raise ValidationError("Personnel introuvable.")

        enrolled = TrainingParticipant.query.filter_by(training_id=training.id)
        if enrolled.filter_by(personnel_id=obj.personnel_id).first() is not None:
            raise ValidationError("Cette personne est déjà inscrite à la formation.")
        if training.max_participants is not None and enrolled.count() >= training.max_participants:
            raise ValidationError("Nombre maximum de participants atteint.")

        if obj.completed is None:
            obj.completed = False
        self._stamp_completion(obj, data)

    def _prepare_update(self, ctx, obj, patch, before):
        for field in ("training_id", "personnel_id"):
            if field in patch and patch[field] != before.get(field):
                raise ValidationError("Une inscription ne peut pas changer de formation ou de personne.")
        self._stamp_completion(obj, patch)

    @staticmethod
    def _stamp_completion(obj: TrainingParticipant, data: Dict[str, Any]) -> None:
        if "completed" not in data:
            return
        if obj.completed and obj.completion_date is None:
            obj.completion_date = date.today()
        elif not obj.completed:
            obj.completion_date = None
