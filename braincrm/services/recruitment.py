"""
Recruitment: job offers and the candidates applying to them.

Job offers:
- status draft -> active -> closed; published_at is stamped the first time an
  offer becomes active and is never moved afterwards.
- An offer is public while it is active and not past expires_at (that day included).

Candidates:
- one application per e-mail and offer (e-mails are compared lowercased)
- public applications only reach published offers, always start as "new" and
  can only carry the applicant's own fields.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any, Dict, Mapping, Optional

from ..extensions import db
from ..models import Candidate, Client, JobOffer
from ..permissions import ANONYMOUS
from ..utils import parse_optional_int
from .base import EntityService, ValidationError, choice, day, decimal, integer, string_list, text

JOB_STATUSES = ("draft", "active", "closed")
JOB_TYPES = ("cdi", "cdd", "interim", "freelance", "stage")
CANDIDATE_STATUSES = ("new", "reviewing", "interview", "offer", "hired", "rejected")
# Applications still waiting for a decision
OPEN_CANDIDATE_STATUSES = ("new", "reviewing")
PUBLIC_APPLICATION_FIELDS = ("full_name", "email", "phone", "cv_url", "cover_letter")
MAX_RATING = 5


def _now() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def is_published(offer: JobOffer, today: Optional[date] = None) -> bool:
    today = today or date.today()
    if offer.status != "active":
        return False
    return offer.expires_at is None or offer.expires_at >= today


class JobOfferService(EntityService):
    model = JobOffer
    table = "job_offers"
    entity_type = "job_offer"
    # Candidate snapshots carry the offer title; deletes unlink candidates.
    dependents = ("candidates",)

    fields = {
        "title": text,
        "description": text,
        "department": text,
        "location": text,
        "client_id": integer,
        "job_type": choice(*JOB_TYPES),
        "salary_min": decimal,
        "salary_max": decimal,
        "requirements": string_list,
        "responsibilities": string_list,
        "benefits": string_list,
        "status": choice(*JOB_STATUSES),
        "expires_at": day,
    }
    required = ("title",)
    filterable = ("status", "job_type", "client_id", "department")
    ignored = frozenset({"published_at", "candidate_count", "client_name"})

    messages = {
        "created": "Offre d'emploi créée avec succès",
        "updated": "Offre d'emploi mise à jour avec succès",
        "deleted": "Offre d'emploi supprimée avec succès",
        "create_error": "Erreur lors de la création de l'offre d'emploi",
        "update_error": "Erreur lors de la mise à jour de l'offre d'emploi",
        "delete_error": "Erreur lors de la suppression de l'offre d'emploi",
    }

    def validate(self, cleaned, *, partial):
        low, high = cleaned.get("salary_min"), cleaned.get("salary_max")
        for value in (low, high):
            if value is not None and value < 0:
                raise ValidationError("Le salaire doit être positif.")
        if low is not None and high is not None and high < low:
            raise ValidationError("Le salaire maximum doit être supérieur au minimum.")

    def snapshot(self, obj):
        data = super().snapshot(obj)
        data["client_name"] = obj.client.raison_sociale if obj.client else None
        data["candidate_count"] = len(obj.candidates)
        return data

    def _check_client(self, obj: JobOffer) -> None:
        if obj.client_id is not None and db.session.get(Client, obj.client_id) is None:
            raise ValidationError("Client introuvable.")

    @staticmethod
    def _stamp_publication(obj: JobOffer) -> None:
        if obj.status == "active" and obj.published_at is None:
            obj.published_at = _now()

    def _prepare_create(self, ctx, obj, data):
        self._check_client(obj)
        if obj.status is None:
            obj.status = JOB_STATUSES[0]
        self._stamp_publication(obj)

    def _prepare_update(self, ctx, obj, patch, before):
        if "client_id" in patch:
            self._check_client(obj)
        if obj.salary_min is not None and obj.salary_max is not None and obj.salary_max < obj.salary_min:
            raise ValidationError("Le salaire maximum doit être supérieur au minimum.")
        self._stamp_publication(obj)

    def published(self, today: Optional[date] = None) -> list[Dict[str, Any]]:
        """Public board: active, unexpired offers, most recently published first."""
        today = today or date.today()
        items = [
            item for item in self.list({"status": "active"})
            if item["expires_at"] is None or item["expires_at"] >= today.isoformat()
        ]
        return sorted(items, key=lambda item: item["published_at"] or "", reverse=True)

    def get_published(self, offer_id: Any, today: Optional[date] = None) -> Optional[JobOffer]:
        offer = self.get(offer_id)
        if offer is None or not is_published(offer, today):
            return None
        return offer


class CandidateService(EntityService):
    model = Candidate
    table = "candidates"
    entity_type = "candidate"
    # Offer snapshots count candidates, mission snapshots name them.
    dependents = ("job_offers", "missions")

    fields = {
        "full_name": text,
        "email": text,
        "phone": text,
        "job_offer_id": integer,
        "cv_url": text,
        "cover_letter": text,
        "notes": text,
        "rating": integer,
        "status": choice(*CANDIDATE_STATUSES),
    }
    required = ("full_name", "email")
    filterable = ("status", "job_offer_id", "email")
    ignored = frozenset({"applied_at", "job_offer_title"})

    messages = {
        "created": "Candidature enregistrée avec succès",
        "updated": "Candidature mise à jour avec succès",
        "deleted": "Candidature supprimée avec succès",
        "create_error": "Erreur lors de l'enregistrement de la candidature",
        "update_error": "Erreur lors de la mise à jour de la candidature",
        "delete_error": "Erreur lors de la suppression de la candidature",
    }

    def order_by(self):
        return (Candidate.applied_at.desc(), Candidate.id.desc())

    def validate(self, cleaned, *, partial):
        email = cleaned.get("email")
        if email is not None:
            if "@" not in email:
                raise ValidationError("Adresse e-mail invalide.")
            cleaned["email"] = email.lower()
        rating = cleaned.get("rating")
        if rating is not None and not 0 <= rating <= MAX_RATING:
            raise ValidationError(f"La note doit être comprise entre 0 et {MAX_RATING}.")

    def snapshot(self, obj):
        data = super().snapshot(obj)
        data["job_offer_title"] = obj.job_offer.title if obj.job_offer else None
        return data

    def _check_unique(self, obj: Candidate) -> None:
        if obj.job_offer_id is None:
            return
        q = Candidate.query.filter_by(job_offer_id=obj.job_offer_id, email=obj.email)
        if obj.id is not None:
            q = q.filter(Candidate.id != obj.id)
        duplicate = q.first()
        if duplicate is not None:
            raise ValidationError("Une candidature existe déjà pour cette offre avec cette adresse e-mail.")

    def _prepare_create(self, ctx, obj, data):
        if obj.job_offer_id is not None and db.session.get(JobOffer, obj.job_offer_id) is None:
            raise ValidationError("Offre d'emploi introuvable.")
        self._check_unique(obj)
        if obj.status is None:
            obj.status = CANDIDATE_STATUSES[0]
        if obj.applied_at is None:
            obj.applied_at = _now()

    def _prepare_update(self, ctx, obj, patch, before):
        if "job_offer_id" in patch and obj.job_offer_id is not None:
            if db.session.get(JobOffer, obj.job_offer_id) is None:
                raise ValidationError("Offre d'emploi introuvable.")
        if "job_offer_id" in patch or "email" in patch:
            with db.session.no_autoflush:
                self._check_unique(obj)

    def apply(self, offer_id: Any, data: Mapping[str, Any], today: Optional[date] = None) -> Optional[Candidate]:
        """Public application to a published offer."""
        if not isinstance(data, Mapping):
            raise ValidationError("Données manquantes.")
        unknown = sorted(set(data) - set(PUBLIC_APPLICATION_FIELDS))
        if unknown:
            raise ValidationError(f"Champ(s) inconnu(s): {', '.join(unknown)}.")

        offer_id = parse_optional_int(offer_id)
        offer = db.session.get(JobOffer, offer_id) if offer_id is not None else None
        if offer is None or not is_published(offer, today):
            raise ValidationError("Cette offre n'est plus disponible.")

        draft = dict(data, job_offer_id=offer.id, status=CANDIDATE_STATUSES[0])
        return self.create(ANONYMOUS, draft)
