"""
User administration (accounts, profiles, roles).

Routes (JSON):
- GET    /api/users
- POST   /api/users                     invite (email, password, full_name, role, ...)
- PATCH  /api/users/<id>/profile
- PUT    /api/users/<id>/role           {"role": ...}
- POST   /api/users/<id>/status         {"is_active": ...}
- DELETE /api/users/<id>

Rules enforced server-side:
- only a super_admin can grant super_admin
- nobody deactivates or deletes their own account
"""

from flask import Blueprint

from ...permissions import current_context, permission_required
from ...services import users
from ...services.base import ValidationError
from ..api import failed, get_json_or_error, not_found, ok

users_bp = Blueprint("users", __name__, url_prefix="/api/users")


# ---------------------------------------------------------------------
# LIST / CREATE
# ---------------------------------------------------------------------

@users_bp.route("")
@permission_required("users", "view")
def list_users():
    return ok(items=users.list())


@users_bp.route("", methods=["POST"])
@permission_required("users", "create")
def create_user():
    data, error = get_json_or_error()
    if error:
        return error
    try:
        user = users.create(current_context(), data)
    except ValidationError as e:
        return failed(str(e), 400)
    if user is None:
        return failed("Erreur lors de la création de l'utilisateur", 400)
    return ok(201, item=users.snapshot(user))


# ---------------------------------------------------------------------
# PROFILE / ROLE / STATUS
# ---------------------------------------------------------------------

@users_bp.route("/<int:user_id>/profile", methods=["PATCH", "PUT"])
@permission_required("users", "edit")
def update_profile(user_id: int):
    data, error = get_json_or_error()
    if error:
        return error
    if users.get(user_id) is None:
        return not_found("Utilisateur introuvable.")
    try:
        profile = users.update_profile(current_context(), user_id, data)
    except ValidationError as e:
        return failed(str(e), 400)
    if profile is None:
        return failed("Erreur lors de la mise à jour du profil", 400)
    return ok(item=users.snapshot(users.get(user_id)))


@users_bp.route("/<int:user_id>/role", methods=["PUT", "PATCH"])
@permission_required("users", "edit")
def update_role(user_id: int):
    data, error = get_json_or_error()
    if error:
        return error
    if users.get(user_id) is None:
        return not_found("Utilisateur introuvable.")
    try:
        row = users.update_role(current_context(), user_id, data.get("role"))
    except ValidationError as e:
        return failed(str(e), 400)
    if row is None:
        return failed("Erreur lors de la mise à jour du rôle", 400)
    return ok(item=users.snapshot(users.get(user_id)))


@users_bp.route("/<int:user_id>/status", methods=["POST"])
@permission_required("users", "edit")
def toggle_status(user_id: int):
    data, error = get_json_or_error()
    if error:
        return error
    if users.get(user_id) is None:
        return not_found("Utilisateur introuvable.")
    try:
        profile = users.toggle_status(current_context(), user_id, data.get("is_active"))
    except ValidationError as e:
        return failed(str(e), 400)
    if profile is None:
        return failed("Erreur lors de la mise à jour du statut", 400)
    return ok(item=users.snapshot(users.get(user_id)))


# ---------------------------------------------------------------------
# DELETE
# ---------------------------------------------------------------------

@users_bp.route("/<int:user_id>", methods=["DELETE"])
@permission_required("users", "delete")
def delete_user(user_id: int):
    if users.get(user_id) is None:
        return not_found("Utilisateur introuvable.")
    try:
        done = users.delete(current_context(), user_id)
    except ValidationError as e:
        return failed(str(e), 400)
    if not done:
        return failed("Erreur lors de la suppression de l'utilisateur", 400)
    return ok()
