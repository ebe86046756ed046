"""
braincrm/services/users.py

User administration: accounts + profiles + roles.

An account spans three tables (users, profiles, user_roles), so this service does
not use the single-model pipeline of EntityService, but keeps the same contract:
- input validated before any database call (ValidationError)
- one transaction per operation, audit entry included
- database failure: rollback, log, error notification, None/False returned
- success: refresh signal for "users", then the success notification

Deletion order is dependent-first: role row, then profile, then the account.
All three steps share one transaction. When a step fails, nothing is removed
(in particular, a failed role removal never touches the profile).
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Mapping, Optional

from sqlalchemy.exc import SQLAlchemyError

from ..audit import log_action, serialize_model
from ..cache import notify_changed
from ..extensions import cache, db
from ..models import Profile, User, UserRole
from ..notifications import notify_error, notify_success
from ..permissions import ROLES, UserContext
from ..utils import parse_bool, parse_optional_int
from .base import ValidationError, text

logger = logging.getLogger(__name__)

PROFILE_FIELDS = ("full_name", "department", "phone", "avatar_url")
MIN_PASSWORD_LENGTH = 8

MESSAGES = {
    "created": "Utilisateur créé avec succès",
    "profile_updated": "Profil mis à jour avec succès",
    "role_updated": "Rôle mis à jour avec succès",
    "status_updated": "Statut mis à jour avec succès",
    "deleted": "Utilisateur supprimé avec succès",
    "create_error": "Erreur lors de la création de l'utilisateur",
    "profile_error": "Erreur lors de la mise à jour du profil",
    "role_error": "Erreur lors de la mise à jour du rôle",
    "status_error": "Erreur lors de la mise à jour du statut",
    "delete_error": "Erreur lors de la suppression de l'utilisateur",
    "not_found": "Utilisateur introuvable",
}


def _validate_role(role: Any) -> str:
    if role not in ROLES:
        raise ValidationError(f"Rôle invalide (attendu: {', '.join(ROLES)}).")
    return role


def _account_snapshot(user: User) -> Dict[str, Any]:
    data = serialize_model(user.profile) if user.profile else {}
    data.update(
        {
            "id": user.id,
            "user_id": user.id,
            "email": user.email,
            "role": user.role,
            "is_active": user.is_active,
            "created_at": user.created_at.isoformat() if user.created_at else None,
        }
    )
    return data


def create_account(
    email: str,
    password: str,
    *,
    full_name: Optional[str] = None,
    role: str = "user",
    department: Optional[str] = None,
    phone: Optional[str] = None,
) -> User:
    """Add account + profile + role row to the session (flushed, not committed)."""
    user = User(email=email)
    user.set_password(password)
    db.session.add(user)
    db.session.flush()

    db.session.add(
        Profile(user_id=user.id, full_name=full_name, department=department, phone=phone, is_active=True)
    )
    db.session.add(UserRole(user_id=user.id, role=role))
    db.session.flush()
    db.session.refresh(user)
    return user


class UserService:
    table = "users"
    entity_type = "user"

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    def list(self) -> list[Dict[str, Any]]:
        """Accounts joined with profile and role, newest first."""

        def load() -> list[Dict[str, Any]]:
            users = User.query.order_by(User.created_at.desc(), User.id.desc()).all()
            return [_account_snapshot(u) for u in users]

        return list(cache.get_or_load(self.table, (), load))

    def get(self, user_id: Any) -> Optional[User]:
        user_id = parse_optional_int(user_id)
        if user_id is None:
            return None
        return db.session.get(User, user_id)

    def snapshot(self, user: User) -> Dict[str, Any]:
        return _account_snapshot(user)

    # ------------------------------------------------------------------
    # Transaction helper
    # ------------------------------------------------------------------
    def _run(self, work: Callable[[], Any], success_key: str, error_key: str) -> Any:
        try:
            result = work()
            db.session.commit()
        except ValidationError:
            db.session.rollback()
            raise
        except SQLAlchemyError:
            db.session.rollback()
            logger.exception("users: %s failed", error_key)
            notify_error(MESSAGES[error_key])
            return None

        notify_changed(self.table)
        notify_success(MESSAGES[success_key])
        return result

    def _require(self, user_id: Any) -> Optional[User]:
        user = self.get(user_id)
        if user is None:
            notify_error(MESSAGES["not_found"])
        return user

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------
    def create(self, ctx: UserContext, data: Mapping[str, Any]) -> Optional[User]:
        """Invite a user: account, profile and role in one transaction."""
        if not isinstance(data, Mapping):
            raise ValidationError("Données manquantes.")

        email = (text("email", data.get("email")) or "").lower()
        password = data.get("password") or ""
        if not email or "@" not in email:
            raise ValidationError("Adresse e-mail invalide.")
        if len(password) < MIN_PASSWORD_LENGTH:
            raise ValidationError(
                f"Le mot de passe doit contenir au moins {MIN_PASSWORD_LENGTH} caractères."
            )
        role = _validate_role(data.get("role") or "user")
        if role == "super_admin" and not ctx.is_super_admin:
            raise ValidationError("Seul un super administrateur peut attribuer ce rôle.")
        if User.query.filter_by(email=email).first() is not None:
            raise ValidationError("Un compte existe déjà pour cette adresse e-mail.")

        def work() -> User:
            user = create_account(
                email,
                password,
                full_name=text("full_name", data.get("full_name")),
                role=role,
                department=text("department", data.get("department")),
                phone=text("phone", data.get("phone")),
            )
            log_action(ctx, "create", self.entity_type, user.id, new_data=_account_snapshot(user))
            return user

        user = self._run(work, "created", "create_error")
        if user is not None:
            logger.info("user #%s (%s) created by user %s", user.id, email, ctx.user_id)
        return user

    def update_profile(self, ctx: UserContext, user_id: Any, data: Mapping[str, Any]) -> Optional[Profile]:
        if not isinstance(data, Mapping):
            raise ValidationError("Données manquantes.")
        if "is_active" in data:
            raise ValidationError("Le statut se modifie via /api/users/<id>/status.")
        unknown = sorted(set(data) - set(PROFILE_FIELDS))
        if unknown:
            raise ValidationError(f"Champ(s) inconnu(s): {', '.join(unknown)}.")

        user = self._require(user_id)
        if user is None:
            return None

        def work() -> Profile:
            profile = user.profile
            if profile is None:
                profile = Profile(user_id=user.id)
                db.session.add(profile)
            before = serialize_model(profile) if profile.id else None

            for field in PROFILE_FIELDS:
                if field in data:
                    setattr(profile, field, text(field, data[field]))
            db.session.flush()

            log_action(ctx, "update", self.entity_type, user.id, old_data=before, new_data=serialize_model(profile))
            return profile

        return self._run(work, "profile_updated", "profile_error")

    def update_role(self, ctx: UserContext, user_id: Any, role: Any) -> Optional[UserRole]:
        """Set the user's role: update the row when present, insert it otherwise."""
        role = _validate_role(role)
        if role == "super_admin" and not ctx.is_super_admin:
            raise ValidationError("Seul un super administrateur peut attribuer ce rôle.")

        user = self._require(user_id)
        if user is None:
            return None

        def work() -> UserRole:
            row = UserRole.query.filter_by(user_id=user.id).first()
            old_role = row.role if row else None
            if row is not None:
                row.role = role
            else:
                row = UserRole(user_id=user.id, role=role)
                db.session.add(row)
            db.session.flush()

            log_action(
                ctx,
                "role_change",
                self.entity_type,
                user.id,
                old_data={"role": old_role},
                new_data={"role": role},
            )
            return row

        return self._run(work, "role_updated", "role_error")

    def toggle_status(self, ctx: UserContext, user_id: Any, is_active: Any) -> Optional[Profile]:
        is_active = parse_bool(is_active)
        if ctx.user_id is not None and parse_optional_int(user_id) == ctx.user_id and not is_active:
            raise ValidationError("Vous ne pouvez pas désactiver votre propre compte.")

        user = self._require(user_id)
        if user is None:
            return None

        def work() -> Profile:
            profile = user.profile
            if profile is None:
                profile = Profile(user_id=user.id)
                db.session.add(profile)
            old = bool(profile.is_active) if profile.id else None
            profile.is_active = is_active
            db.session.flush()

            log_action(
                ctx,
                "status_change",
                self.entity_type,
                user.id,
                old_data={"is_active": old},
                new_data={"is_active": is_active},
            )
            return profile

        return self._run(work, "status_updated", "status_error")

    # ------------------------------------------------------------------
    # Delete (dependent-first)
    # ------------------------------------------------------------------
    def _delete_role_row(self, user: User) -> None:
        row = UserRole.query.filter_by(user_id=user.id).first()
        if row is not None:
            db.session.delete(row)
            db.session.flush()
        db.session.expire(user, ["role_row"])

    def _delete_profile_row(self, user: User) -> None:
        profile = Profile.query.filter_by(user_id=user.id).first()
        if profile is not None:
            db.session.delete(profile)
            db.session.flush()
        db.session.expire(user, ["profile"])

    def _delete_account(self, user: User) -> None:
        db.session.delete(user)
        db.session.flush()

    def delete(self, ctx: UserContext, user_id: Any) -> bool:
        if ctx.user_id is not None and parse_optional_int(user_id) == ctx.user_id:
            raise ValidationError("Vous ne pouvez pas supprimer votre propre compte.")

        user = self._require(user_id)
        if user is None:
            return False

        before = _account_snapshot(user)
        target_id = user.id

        def work() -> bool:
            self._delete_role_row(user)
            self._delete_profile_row(user)
            self._delete_account(user)
            log_action(ctx, "delete", self.entity_type, target_id, old_data=before)
            return True

        done = self._run(work, "deleted", "delete_error")
        if done:
            logger.info("user #%s deleted by user %s", target_id, ctx.user_id)
        return bool(done)
