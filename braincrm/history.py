"""
braincrm/history.py

Contract version history: diff computation at write time, display formatting at read time.

Rules:
- A diff map is an ordered {field: FieldChange(old, new)} holding exactly the fields
  whose values differ under strict equality (shallow, no deep-object awareness).
- A field present on one side only is a change (value vs None).
- Field names are validated against a fixed schema per entity type before storing.
- The display layer trusts the stored diff map; it never recomputes it.
- History is listed newest first.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, Iterable, Mapping, NamedTuple, Optional

from .extensions import db
from .models import ContractHistory
from .permissions import UserContext

CHANGE_CREATION = "creation"
CHANGE_MODIFICATION = "modification"
CHANGE_STATUS = "status_change"

CHANGE_TYPE_LABELS = {
    CHANGE_CREATION: "Création",
    CHANGE_MODIFICATION: "Modification",
    CHANGE_STATUS: "Changement de statut",
}

# Editable contract fields and their display labels.
CONTRACT_FIELD_LABELS = {
    "numero_contrat": "N° de contrat",
    "type_contrat": "Type de contrat",
    "date_debut": "Date de début",
    "date_fin": "Date de fin",
    "date_entree_fonction": "Date d'entrée en fonction",
    "periode_essai": "Période d'essai",
    "motif_recours": "Motif de recours",
    "justificatif": "Justificatif",
    "caracteristiques_poste": "Caractéristiques du poste",
    "lieu_travail": "Lieu de travail",
    "numero_commande": "N° de commande",
    "salaire_reference": "Salaire de référence",
    "taux_horaire": "Taux horaire",
    "coefficient_facturation": "Coefficient de facturation",
    "indemnites_non_soumises_rubrique": "Rubrique indemnités",
    "indemnites_non_soumises_montant": "Montant indemnités",
    "client_id": "Client",
    "personnel_id": "Personnel",
    "mission_id": "Mission",
    "status": "Statut",
    "is_active": "Actif",
}

FIELD_SCHEMAS = {
    "contract": frozenset(CONTRACT_FIELD_LABELS),
}


class FieldChange(NamedTuple):
    old: Any
    new: Any

    def as_dict(self) -> Dict[str, Any]:
        return {"old": self.old, "new": self.new}


_MISSING = object()


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float, Decimal)) and not isinstance(value, bool)


def values_differ(old: Any, new: Any) -> bool:
    """Strict, shallow inequality."""
    if old is new:
        return False
    if _is_number(old) and _is_number(new):
        return old != new
    if isinstance(old, (dict, list)) or isinstance(new, (dict, list)):
        # Containers compare by identity only.
        return True
    if type(old) is not type(new):
        return True
    return old != new


def validate_fields(entity_type: str, fields: Iterable[str]) -> None:
    """Raise ValueError if any field is not part of the entity's schema."""
    schema = FIELD_SCHEMAS.get(entity_type)
    if schema is None:
        raise ValueError(f"No field schema for entity type {entity_type!r}")
    unknown = sorted(set(fields) - schema)
    if unknown:
        raise ValueError(f"Unknown {entity_type} field(s): {', '.join(unknown)}")


def compute_changes(
    previous: Mapping[str, Any],
    current: Mapping[str, Any],
    fields: Optional[Iterable[str]] = None,
) -> Dict[str, FieldChange]:
    """
    Field-level delta between two flat snapshots.

    Keys of `previous` come first (in their order), then keys only in `current`.
    When `fields` is given, only those keys are compared.
    """
    if fields is None:
        keys = list(previous) + [k for k in current if k not in previous]
    else:
        keys = list(dict.fromkeys(fields))

    changes: Dict[str, FieldChange] = {}
    for key in keys:
        old = previous.get(key, _MISSING)
        new = current.get(key, _MISSING)
        if old is _MISSING and new is _MISSING:
            continue
        old = None if old is _MISSING else old
        new = None if new is _MISSING else new
        if values_differ(old, new):
            changes[key] = FieldChange(old, new)
    return changes


def changes_to_json(changes: Mapping[str, FieldChange]) -> Dict[str, Dict[str, Any]]:
    return {key: change.as_dict() for key, change in changes.items()}


def changes_from_json(raw: Optional[Mapping[str, Any]]) -> Dict[str, FieldChange]:
    if not raw:
        return {}
    return {key: FieldChange(value.get("old"), value.get("new")) for key, value in raw.items()}


# ---------------------------------------------------------------------
# Display
# ---------------------------------------------------------------------
def format_value(value: Any) -> str:
    """None / "" -> "-", booleans -> Oui/Non, everything else -> str()."""
    if value is None or value == "":
        return "-"
    if isinstance(value, bool):
        return "Oui" if value else "Non"
    return str(value)


def field_label(field: str) -> str:
    return CONTRACT_FIELD_LABELS.get(field, field)


def change_type_label(change_type: str) -> str:
    return CHANGE_TYPE_LABELS.get(change_type, change_type)


def render_entry(entry: ContractHistory) -> Dict[str, Any]:
    """Display-ready version record; the stored diff map is not modified."""
    changes = changes_from_json(entry.changes)
    return {
        "id": entry.id,
        "version_number": entry.version_number,
        "change_type": entry.change_type,
        "change_type_label": change_type_label(entry.change_type),
        "changed_by": entry.changed_by,
        "changed_at": entry.changed_at.isoformat() if entry.changed_at else None,
        "changes": [
            {
                "field": key,
                "label": field_label(key),
                "old": format_value(change.old),
                "new": format_value(change.new),
            }
            for key, change in changes.items()
        ],
    }


# ---------------------------------------------------------------------
# Recording / listing
# ---------------------------------------------------------------------
def next_version_number(contract_id: int) -> int:
    last = (
        db.session.query(db.func.max(ContractHistory.version_number))
        .filter(ContractHistory.contract_id == contract_id)
        .scalar()
    )
    return (last or 0) + 1


def record_creation(ctx: UserContext, contract_id: int, snapshot: Dict[str, Any]) -> ContractHistory:
    """Add the first version (no diff map). Caller commits."""
    entry = ContractHistory(
        contract_id=contract_id,
        version_number=next_version_number(contract_id),
        change_type=CHANGE_CREATION,
        changes=None,
        snapshot=snapshot,
        changed_by=ctx.user_id,
    )
    db.session.add(entry)
    return entry


def record_modification(
    ctx: UserContext,
    contract_id: int,
    changes: Mapping[str, FieldChange],
    snapshot: Dict[str, Any],
) -> ContractHistory:
    """
    Add a new version with its diff map. Caller commits.

    change_type is status_change when the status field is part of the diff.
    """
    validate_fields("contract", changes.keys())
    entry = ContractHistory(
        contract_id=contract_id,
        version_number=next_version_number(contract_id),
        change_type=CHANGE_STATUS if "status" in changes else CHANGE_MODIFICATION,
        changes=changes_to_json(changes),
        snapshot=snapshot,
        changed_by=ctx.user_id,
    )
    db.session.add(entry)
    return entry


def list_history(contract_id: int) -> list[ContractHistory]:
    """Versions of one contract, newest first."""
    return (
        ContractHistory.query.filter_by(contract_id=contract_id)
        .order_by(ContractHistory.changed_at.desc(), ContractHistory.version_number.desc())
        .all()
    )
