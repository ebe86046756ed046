"""
braincrm/services/base.py

Uniform entity service: list / get / create / update / delete.

Contract (every entity):
- Input is validated BEFORE any database call. Problems raise ValidationError,
  which routes surface inline (HTTP 400).
- Database failures (constraint violation, connection loss, ...) are caught here:
  rollback, log, localized error notification, return None/False. No retry.
  The collection cache is left untouched.
- On success: commit (data + audit entry in ONE transaction), then the refresh
  signal for the table, then the localized success notification.
- No optimistic updates: callers only see new state after a confirmed commit.

Subclasses declare the model, the writable fields with their parsers, required
fields, filterable fields and default ordering, and may hook into the mutation
pipeline (_prepare_create, _after_create_flush, _prepare_update, ...).
"""

from __future__ import annotations

import json
import logging
from typing import Any, Callable, Dict, Iterable, Mapping, Optional

from sqlalchemy.exc import SQLAlchemyError

from ..audit import log_action, serialize_model
from ..cache import notify_changed
from ..extensions import cache, db
from ..notifications import notify_error, notify_success
from ..permissions import UserContext
from ..utils import parse_bool, parse_date, parse_datetime, parse_decimal, parse_optional_int

logger = logging.getLogger(__name__)

# Columns a client may send back but never writes.
READ_ONLY_FIELDS = frozenset({"id", "created_at", "updated_at"})

RANGE_SUFFIXES = {"__gte": "gte", "__lte": "lte"}


class ValidationError(ValueError):
    """Invalid input, detected before any database call."""


# ---------------------------------------------------------------------
# Field parsers: raw JSON value -> column value. None stays None.
# ---------------------------------------------------------------------
def _strict(parser: Callable[[Any], Any], kind: str) -> Callable[[str, Any], Any]:
    def parse(field: str, raw: Any) -> Any:
        if raw is None or raw == "":
            return None
        value = parser(raw)
        if value is None:
            raise ValidationError(f"Valeur invalide pour « {field} » ({kind} attendu).")
        return value

    return parse


def text(field: str, raw: Any) -> Optional[str]:
    if raw is None:
        return None
    value = str(raw).strip()
    return value or None


integer = _strict(parse_optional_int, "entier")
decimal = _strict(parse_decimal, "nombre")
day = _strict(parse_date, "date")
moment = _strict(parse_datetime, "date/heure")


def flag(field: str, raw: Any) -> bool:
    return parse_bool(raw)


def choice(*options: str) -> Callable[[str, Any], Optional[str]]:
    def parse(field: str, raw: Any) -> Optional[str]:
        value = text(field, raw)
        if value is not None and value not in options:
            raise ValidationError(
                f"Valeur invalide pour « {field} » (attendu: {', '.join(options)})."
            )
        return value

    return parse


def string_list(field: str, raw: Any) -> Optional[list]:
    if raw is None or raw == "":
        return None
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError:
            raw = [part for part in raw.split(",")]
    if not isinstance(raw, (list, tuple)):
        raise ValidationError(f"Valeur invalide pour « {field} » (liste attendue).")
    return [str(item).strip() for item in raw if str(item).strip()]


# ---------------------------------------------------------------------
# Base service
# ---------------------------------------------------------------------
class EntityService:
    model: Any = None
    table: str = ""
    entity_type: str = ""

    fields: Dict[str, Callable[[str, Any], Any]] = {}
    required: tuple = ()
    filterable: tuple = ()
    # Derived columns a client may echo back; silently dropped.
    ignored: frozenset = frozenset()
    # Tables whose cached snapshots embed this table's rows, or whose rows
    # are cascaded or nulled when one of ours is deleted.
    dependents: tuple = ()

    messages = {
        "created": "Enregistrement créé avec succès",
        "updated": "Enregistrement mis à jour avec succès",
        "deleted": "Enregistrement supprimé avec succès",
        "create_error": "Erreur lors de la création",
        "update_error": "Erreur lors de la mise à jour",
        "delete_error": "Erreur lors de la suppression",
    }

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    def order_by(self) -> Iterable[Any]:
        return (self.model.created_at.desc(), self.model.id.desc())

    def snapshot(self, obj: Any) -> Dict[str, Any]:
        """Flat, JSON-native representation used by lists and responses."""
        return serialize_model(obj)

    def _clean_filters(self, filters: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
        cleaned: Dict[str, Any] = {}
        for key, raw in (filters or {}).items():
            if raw is None or raw == "":
                continue
            field = key
            for suffix in RANGE_SUFFIXES:
                if key.endswith(suffix):
                    field = key[: -len(suffix)]
                    break
            if field not in self.filterable:
                raise ValidationError(f"Filtre non supporté: « {key} ».")
            parser = self.fields.get(field, text)
            cleaned[key] = parser(field, raw)
        return cleaned

    def query(self, filters: Optional[Mapping[str, Any]] = None):
        q = self.model.query
        for key, value in self._clean_filters(filters).items():
            op = None
            field = key
            for suffix, name in RANGE_SUFFIXES.items():
                if key.endswith(suffix):
                    field, op = key[: -len(suffix)], name
                    break
            column = getattr(self.model, field)
            if op == "gte":
                q = q.filter(column >= value)
            elif op == "lte":
                q = q.filter(column <= value)
            else:
                q = q.filter(column == value)
        return q.order_by(*self.order_by())

    def list(self, filters: Optional[Mapping[str, Any]] = None) -> list[Dict[str, Any]]:
        """Ordered snapshots, served from the collection cache until the table changes."""
        cleaned = self._clean_filters(filters)
        key = tuple(sorted(cleaned.items()))

        def load() -> list[Dict[str, Any]]:
            return [self.snapshot(obj) for obj in self.query(cleaned).all()]

        return list(cache.get_or_load(self.table, key, load))

    def get(self, entity_id: Any) -> Any:
        entity_id = parse_optional_int(entity_id)
        if entity_id is None:
            return None
        return db.session.get(self.model, entity_id)

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------
    def clean(self, data: Optional[Mapping[str, Any]], *, partial: bool) -> Dict[str, Any]:
        """Parse and validate input. Raises ValidationError; touches no database state."""
        if data is None or not isinstance(data, Mapping):
            raise ValidationError("Données manquantes.")

        unknown = sorted(
            k for k in data
            if k not in self.fields and k not in READ_ONLY_FIELDS and k not in self.ignored
        )
        if unknown:
            raise ValidationError(f"Champ(s) inconnu(s): {', '.join(unknown)}.")

        cleaned = {
            field: parser(field, data[field])
            for field, parser in self.fields.items()
            if field in data
        }

        # An explicit empty value cannot clear a NOT NULL column.
        columns = self.model.__table__.columns
        blanked = [
            f for f, value in cleaned.items()
            if value is None and f in columns and not columns[f].nullable
        ]
        if blanked:
            raise ValidationError(f"Valeur obligatoire pour: {', '.join(blanked)}.")

        required = [f for f in self.required if (f in data or not partial)]
        missing = [f for f in required if cleaned.get(f) is None]
        if missing:
            raise ValidationError(f"Champ(s) obligatoire(s) manquant(s): {', '.join(missing)}.")

        self.validate(cleaned, partial=partial)
        return cleaned

    def validate(self, cleaned: Dict[str, Any], *, partial: bool) -> None:
        """Cross-field checks; override in subclasses."""

    # ------------------------------------------------------------------
    # Hooks (inside the transaction)
    # ------------------------------------------------------------------
    def _prepare_create(self, ctx: UserContext, obj: Any, data: Dict[str, Any]) -> None:
        pass

    def _after_create_flush(self, ctx: UserContext, obj: Any) -> None:
        pass

    def _prepare_update(self, ctx: UserContext, obj: Any, patch: Dict[str, Any], before: Dict[str, Any]) -> None:
        pass

    def _after_update_flush(
        self, ctx: UserContext, obj: Any, patch: Dict[str, Any], before: Dict[str, Any], after: Dict[str, Any]
    ) -> None:
        pass

    def _prepare_delete(self, ctx: UserContext, obj: Any) -> None:
        pass

    def _after_delete_flush(self, ctx: UserContext, obj: Any) -> None:
        pass

    def _update_action(self, before: Dict[str, Any], after: Dict[str, Any]) -> str:
        if "status" in before and before.get("status") != after.get("status"):
            return "status_change"
        return "update"

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------
    def _fail(self, message_key: str, action: str) -> None:
        db.session.rollback()
        logger.exception("%s %s failed", self.table, action)
        notify_error(self.messages[message_key])

    def _succeed(self, message_key: str) -> None:
        notify_changed(self.table)
        for table in self.dependents:
            notify_changed(table)
        notify_success(self.messages[message_key])

    def create(self, ctx: UserContext, draft: Mapping[str, Any]) -> Any:
        data = self.clean(draft, partial=False)

        obj = self.model(**data)
        try:
            self._prepare_create(ctx, obj, data)
            db.session.add(obj)
            db.session.flush()

            self._after_create_flush(ctx, obj)
            log_action(ctx, "create", self.entity_type, obj.id, new_data=serialize_model(obj))
            db.session.commit()
        except ValidationError:
            db.session.rollback()
            raise
        except SQLAlchemyError:
            self._fail("create_error", "create")
            return None

        logger.info("%s #%s created by user %s", self.table, obj.id, ctx.user_id)
        self._succeed("created")
        return obj

    def update(self, ctx: UserContext, entity_id: Any, patch: Mapping[str, Any]) -> Any:
        data = self.clean(patch, partial=True)

        obj = self.get(entity_id)
        if obj is None:
            notify_error(self.messages["update_error"])
            return None

        before = serialize_model(obj)
        try:
            for field, value in data.items():
                setattr(obj, field, value)
            self._prepare_update(ctx, obj, data, before)
            db.session.flush()

            after = serialize_model(obj)
            self._after_update_flush(ctx, obj, data, before, after)
            log_action(
                ctx,
                self._update_action(before, after),
                self.entity_type,
                obj.id,
                old_data=before,
                new_data=after,
            )
            db.session.commit()
        except ValidationError:
            db.session.rollback()
            raise
        except SQLAlchemyError:
            self._fail("update_error", "update")
            return None

        logger.info("%s #%s updated by user %s", self.table, obj.id, ctx.user_id)
        self._succeed("updated")
        return obj

    def delete(self, ctx: UserContext, entity_id: Any) -> bool:
        obj = self.get(entity_id)
        if obj is None:
            notify_error(self.messages["delete_error"])
            return False

        obj_id = obj.id
        before = serialize_model(obj)
        try:
            self._prepare_delete(ctx, obj)
            db.session.delete(obj)
            db.session.flush()

            self._after_delete_flush(ctx, obj)
            log_action(ctx, "delete", self.entity_type, obj_id, old_data=before)
            db.session.commit()
        except ValidationError:
            db.session.rollback()
            raise
        except SQLAlchemyError:
            self._fail("delete_error", "delete")
            return False

        logger.info("%s #%s deleted by user %s", self.table, obj_id, ctx.user_id)
        self._succeed("deleted")
        return True
