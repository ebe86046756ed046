"""
Planning events (meetings, interviews, trainings, deadlines).

Events are standalone and listed chronologically (ascending start).
"""

from __future__ import annotations

from datetime import datetime, time
from typing import Any, Dict

from ..models import Event
from ..utils import parse_date
from .base import EntityService, ValidationError, choice, moment, string_list, text

EVENT_TYPES = ("meeting", "interview", "training", "deadline", "other")


class EventService(EntityService):
    model = Event
    table = "events"
    entity_type = "event"

    fields = {
        "title": text,
        "description": text,
        "start_datetime": moment,
        "end_datetime": moment,
        "event_type": choice(*EVENT_TYPES),
        "location": text,
        "attendees": string_list,
    }
    required = ("title", "start_datetime")
    filterable = ("event_type", "start_datetime")

    messages = {
        "created": "Événement créé avec succès",
        "updated": "Événement mis à jour avec succès",
        "deleted": "Événement supprimé avec succès",
        "create_error": "Erreur lors de la création de l'événement",
        "update_error": "Erreur lors de la mise à jour de l'événement",
        "delete_error": "Erreur lors de la suppression de l'événement",
    }

    def order_by(self):
        return (Event.start_datetime.asc(), Event.id.asc())

    def validate(self, cleaned, *, partial):
        start, end = cleaned.get("start_datetime"), cleaned.get("end_datetime")
        if start and end and end < start:
            raise ValidationError("La fin doit être postérieure au début.")

    def _prepare_create(self, ctx, obj, data):
        if obj.event_type is None:
            obj.event_type = "other"

    def _prepare_update(self, ctx, obj, patch, before):
        if "event_type" in patch and obj.event_type is None:
            obj.event_type = "other"
        if obj.start_datetime and obj.end_datetime and obj.end_datetime < obj.start_datetime:
            raise ValidationError("La fin doit être postérieure au début.")

    def list_between(self, start: Any, end: Any) -> list[Dict[str, Any]]:
        """Events starting within [start, end] (dates are whole days, end inclusive)."""
        first, last = parse_date(start), parse_date(end)
        if first is None or last is None:
            raise ValidationError("Période invalide.")
        if last < first:
            raise ValidationError("La fin de période doit être postérieure au début.")
        return self.list(
            {
                "start_datetime__gte": datetime.combine(first, time.min).isoformat(),
                "start_datetime__lte": datetime.combine(last, time.max).isoformat(),
            }
        )
