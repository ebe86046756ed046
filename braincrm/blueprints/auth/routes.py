"""
Authentication routes.

Provides:
- POST /auth/login    (email + password, JSON)
- POST /auth/logout
- GET  /auth/session  (current user + visible modules)
- GET  /auth/csrf     (token for the X-CSRFToken header)

Rules:
- Only active accounts may log in (inactive profile => refused).
- Credentials validated via password hash.
- Login / logout are audited.
"""

from datetime import datetime, timezone

from flask import Blueprint, g
from flask_login import current_user, login_required, login_user, logout_user
from flask_wtf.csrf import generate_csrf

from ...audit import log_action
from ...extensions import db
from ...models import User
from ...notifications import notify_error, notify_info, notify_success
from ...permissions import build_context, current_context
from ..api import failed, get_json_or_error, ok

auth_bp = Blueprint("auth", __name__, url_prefix="/auth")


def _session_payload(ctx):
    return {
        "user": {
            "id": ctx.user_id,
            "email": ctx.email,
            "full_name": ctx.full_name,
            "role": ctx.role,
        },
        "modules": ctx.visible_modules(),
    }


# ============================================================
# LOGIN
# ============================================================

@auth_bp.route("/login", methods=["POST"])
def login():
    """Authenticate a user and open a session."""
    data, error = get_json_or_error()
    if error:
        return error

    email = (data.get("email") or "").strip().lower()
    password = data.get("password") or ""

    user = User.query.filter_by(email=email).first()
    if not user or not user.check_password(password):
        notify_error("Email ou mot de passe incorrect.")
        return failed("Identifiants invalides.", 401)

    if not user.is_active:
        notify_error("Le compte est désactivé.")
        return failed("Compte désactivé.", 403)

    login_user(user)
    g.pop("user_context", None)
    ctx = build_context(user)

    if user.profile is not None:
        user.profile.last_login = datetime.now(timezone.utc).replace(tzinfo=None)
    log_action(ctx, "login", "user", user.id)
    db.session.commit()

    notify_success("Connexion réussie.")
    return ok(**_session_payload(ctx))


# ============================================================
# LOGOUT
# ============================================================

@auth_bp.route("/logout", methods=["POST"])
@login_required
def logout():
    """Log out the current user."""
    ctx = current_context()
    log_action(ctx, "logout", "user", ctx.user_id)
    db.session.commit()

    logout_user()
    g.pop("user_context", None)
    notify_info("Vous êtes déconnecté.")
    return ok()


# ============================================================
# SESSION / CSRF
# ============================================================

@auth_bp.route("/session")
def session_info():
    if not current_user.is_authenticated:
        return ok(user=None, modules=[])
    return ok(**_session_payload(current_context()))


@auth_bp.route("/csrf")
def csrf_token():
    return ok(csrf_token=generate_csrf(), header="X-CSRFToken")
