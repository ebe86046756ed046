"""
braincrm/services/contracts.py

Contracts with version history.

Every successful write adds a ContractHistory row in the same transaction:
- create -> version 1, change_type "creation", full snapshot, no diff map
- update -> version last + 1, diff map over the patched fields,
  change_type "status_change" when the status is part of the diff

An update that changes nothing adds no version.
"""

from __future__ import annotations

from typing import Any, Dict

from ..audit import serialize_model
from ..extensions import db
from ..history import compute_changes, list_history, record_creation, record_modification, render_entry
from ..models import Client, Contract, Mission, Personnel
from .base import EntityService, ValidationError, choice, day, decimal, flag, integer, text

CONTRACT_TYPES = ("nouveau", "modification", "renouvellement", "avenant", "duplicata")
CONTRACT_STATUSES = ("brouillon", "actif", "termine", "annule")


class ContractService(EntityService):
    model = Contract
    table = "contracts"
    entity_type = "contract"
    dependents = ("invoice_lines",)

    fields = {
        "numero_contrat": text,
        "type_contrat": choice(*CONTRACT_TYPES),
        "status": choice(*CONTRACT_STATUSES),
        "client_id": integer,
        "personnel_id": integer,
        "mission_id": integer,
        "date_debut": day,
        "date_fin": day,
        "date_entree_fonction": day,
        "periode_essai": choice("2_jours", "3_jours", "5_jours"),
        "motif_recours": text,
        "justificatif": text,
        "caracteristiques_poste": text,
        "lieu_travail": text,
        "numero_commande": text,
        "salaire_reference": decimal,
        "taux_horaire": decimal,
        "coefficient_facturation": decimal,
        "indemnites_non_soumises_rubrique": text,
        "indemnites_non_soumises_montant": decimal,
        "is_active": flag,
    }
    required = ("numero_contrat", "date_debut")
    filterable = ("status", "type_contrat", "client_id", "personnel_id", "mission_id", "date_debut", "is_active")

    messages = {
        "created": "Contrat créé avec succès",
        "updated": "Contrat mis à jour avec succès",
        "deleted": "Contrat supprimé avec succès",
        "create_error": "Erreur lors de la création du contrat",
        "update_error": "Erreur lors de la mise à jour du contrat",
        "delete_error": "Erreur lors de la suppression du contrat",
    }

    def validate(self, cleaned, *, partial):
        start, end = cleaned.get("date_debut"), cleaned.get("date_fin")
        if start and end and end < start:
            raise ValidationError("La date de fin doit être postérieure à la date de début.")

    def _check_links(self, obj: Contract) -> None:
        if obj.client_id is not None and db.session.get(Client, obj.client_id) is None:
            raise ValidationError("Client introuvable.")
        if obj.personnel_id is not None and db.session.get(Personnel, obj.personnel_id) is None:
            raise ValidationError("Personnel introuvable.")
        if obj.mission_id is not None and db.session.get(Mission, obj.mission_id) is None:
            raise ValidationError("Mission introuvable.")

    def _prepare_create(self, ctx, obj, data):
        self._check_links(obj)
        if obj.type_contrat is None:
            obj.type_contrat = CONTRACT_TYPES[0]
        if obj.status is None:
            obj.status = CONTRACT_STATUSES[0]

    def _after_create_flush(self, ctx, obj):
        record_creation(ctx, obj.id, serialize_model(obj))

    def _prepare_update(self, ctx, obj, patch, before):
        if any(f in patch for f in ("client_id", "personnel_id", "mission_id")):
            self._check_links(obj)
        if obj.date_fin and obj.date_debut and obj.date_fin < obj.date_debut:
            raise ValidationError("La date de fin doit être postérieure à la date de début.")

    def _after_update_flush(self, ctx, obj, patch, before, after):
        changes = compute_changes(before, after, fields=patch.keys())
        if changes:
            record_modification(ctx, obj.id, changes, after)

    def history(self, contract_id: Any) -> list[Dict[str, Any]]:
        """Display-ready versions, newest first."""
        contract = self.get(contract_id)
        if contract is None:
            return []
        return [render_entry(entry) for entry in list_history(contract.id)]
