"""
Clients and personnel (master data).

Both are plain entity services: the uniform pipeline in base.py does all the work,
these classes only declare the writable fields, their parsers and the messages.
"""

from __future__ import annotations

from ..models import Client, Personnel
from .base import EntityService, ValidationError, choice, day, flag, integer, text


class ClientService(EntityService):
    model = Client
    table = "clients"
    entity_type = "client"
    dependents = ("invoices", "contracts", "missions", "job_offers")

    fields = {
        "code": text,
        "raison_sociale": text,
        "type_client": choice("C1", "C2", "C9"),
        "titre": text,
        "adresse": text,
        "adresse_facturation": text,
        "telephone": text,
        "email": text,
        "contact_nom": text,
        "contact_email": text,
        "contact_telephone": text,
        "code_ice": text,
        "tva": choice("normale", "exoneree", "reduite"),
        "mode_reglement": choice("cheque", "traite", "virement"),
        "delai_reglement": integer,
        "mode_edition_facture": choice("global", "salarie", "commande"),
        "is_active": flag,
    }
    required = ("code", "raison_sociale")
    filterable = ("code", "tva", "type_client", "is_active")

    messages = {
        "created": "Client créé avec succès",
        "updated": "Client mis à jour avec succès",
        "deleted": "Client supprimé avec succès",
        "create_error": "Erreur lors de la création du client",
        "update_error": "Erreur lors de la mise à jour du client",
        "delete_error": "Erreur lors de la suppression du client",
    }

    def validate(self, cleaned, *, partial):
        delay = cleaned.get("delai_reglement")
        if delay is not None and delay < 0:
            raise ValidationError("Le délai de règlement ne peut pas être négatif.")

    def order_by(self):
        return (Client.raison_sociale.asc(), Client.id.asc())


class PersonnelService(EntityService):
    model = Personnel
    table = "personnel"
    entity_type = "personnel"
    dependents = (
        "contracts", "payrolls", "invoice_lines", "training_participants", "trainings", "missions",
    )

    fields = {
        "matricule": text,
        "civilite": choice("Mr", "Mme", "Mle"),
        "nom": text,
        "prenom": text,
        "date_naissance": day,
        "nationalite": text,
        "situation_familiale": choice("C", "M", "D"),
        "telephone1": text,
        "telephone2": text,
        "adresse": text,
        "ville": text,
        "code_postal": text,
        "qualification": text,
        "mode_paiement": choice("espece", "cheque", "virement"),
        "rib": text,
        "date_entree": day,
        "type_document": text,
        "numero_document": text,
        "date_validite_document": day,
        "is_active": flag,
    }
    required = ("matricule", "nom", "prenom")
    filterable = ("matricule", "ville", "qualification", "is_active", "date_validite_document")

    messages = {
        "created": "Personnel créé avec succès",
        "updated": "Personnel mis à jour avec succès",
        "deleted": "Personnel supprimé avec succès",
        "create_error": "Erreur lors de la création du personnel",
        "update_error": "Erreur lors de la mise à jour du personnel",
        "delete_error": "Erreur lors de la suppression du personnel",
    }

    def _prepare_create(self, ctx, obj, data):
        if obj.civilite is None:
            obj.civilite = "Mr"

    def snapshot(self, obj):
        data = super().snapshot(obj)
        data["full_name"] = obj.full_name()
        return data
