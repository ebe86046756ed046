"""
braincrm/__init__.py

Flask application factory for the BrainCRM staffing-agency back office.

Requirements:
- JSON API only; the UI is a separate client and is never trusted.
- SQLite for development, any SQLAlchemy URL in production (migrations via Flask-Migrate).
- Every route enforces its own permission through an explicit UserContext.

Navigation:
- /api/navigation lists the modules the current user may see.
  This only filters visibility; routes still enforce permissions.
"""

from __future__ import annotations

import click
from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException

from .extensions import cache, csrf, db, login_manager, migrate
from .logging_config import configure_logging
from .models import User
from .notifications import pop_notifications
from .permissions import ROLES, current_context


def create_app(config_object: str = "config.Config") -> Flask:
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.config.from_object(config_object)

    configure_logging(app)

    # Extensions
    db.init_app(app)
    migrate.init_app(app, db)
    csrf.init_app(app)
    cache.init_app(app)

    login_manager.init_app(app)

    @login_manager.user_loader
    def load_user(user_id: str) -> User | None:
        """Load user for Flask-Login."""
        try:
            return db.session.get(User, int(user_id))
        except (TypeError, ValueError):
            return None

    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({"success": False, "error": "Authentification requise."}), 401

    # ----------------------------------------------------------------------
    # Blueprints
    # ----------------------------------------------------------------------
    from .blueprints.admin.routes import admin_bp
    from .blueprints.auth.routes import auth_bp
    from .blueprints.contracts.routes import contracts_bp
    from .blueprints.dashboard.routes import dashboard_bp
    from .blueprints.directory.routes import directory_bp
    from .blueprints.invoices.routes import invoices_bp
    from .blueprints.missions.routes import missions_bp
    from .blueprints.operations.routes import operations_bp
    from .blueprints.recruitment.routes import recruitment_bp
    from .blueprints.users.routes import users_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(directory_bp)
    app.register_blueprint(contracts_bp)
    app.register_blueprint(invoices_bp)
    app.register_blueprint(operations_bp)
    app.register_blueprint(missions_bp)
    app.register_blueprint(recruitment_bp)
    app.register_blueprint(dashboard_bp)
    app.register_blueprint(users_bp)
    app.register_blueprint(admin_bp)

    # ----------------------------------------------------------------------
    # JSON errors
    # ----------------------------------------------------------------------
    @app.errorhandler(HTTPException)
    def handle_http_error(error: HTTPException):
        return (
            jsonify({"success": False, "error": error.description, "notifications": pop_notifications()}),
            error.code,
        )

    @app.errorhandler(500)
    def handle_server_error(error):
        db.session.rollback()
        app.logger.error("unhandled error: %s", error)
        return jsonify({"success": False, "error": "Erreur interne du serveur."}), 500

    # ----------------------------------------------------------------------
    # Navigation (UI visibility only; security enforced in routes)
    # ----------------------------------------------------------------------
    @app.route("/api/navigation")
    def navigation():
        ctx = current_context()
        if not ctx.is_authenticated:
            return jsonify({"success": False, "error": "Authentification requise."}), 401
        return jsonify(
            {
                "success": True,
                "user": {
                    "id": ctx.user_id,
                    "email": ctx.email,
                    "full_name": ctx.full_name,
                    "role": ctx.role,
                    "role_label": ROLES.get(ctx.role or "", ctx.role),
                },
                "modules": ctx.visible_modules(),
            }
        )

    # ----------------------------------------------------------------------
    # CLI
    # ----------------------------------------------------------------------
    @app.cli.command("seed-permissions")
    def seed_permissions_command():
        """Seed the default role/module permission matrix."""
        from .seed import seed_default_permissions

        created = seed_default_permissions()
        click.echo(f"Default permissions seeded ({created} new row(s)).")

    @app.cli.command("create-super-admin")
    @click.argument("email")
    @click.argument("password")
    @click.option("--full-name", default="Super Admin", show_default=True)
    def create_super_admin_command(email: str, password: str, full_name: str):
        """Create a super_admin account (first system bootstrap)."""
        from .services.users import create_account

        email = email.strip().lower()
        if User.query.filter_by(email=email).first():
            raise click.ClickException(f"An account already exists for {email}.")

        create_account(email, password, full_name=full_name, role="super_admin")
        db.session.commit()
        click.echo(f"Super admin {email} created.")

    return app
