"""
Commissioning Report Editor
Flask Application Factory.

Usage:
    from commissioning import create_app
    app = create_app()           # defaults to "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

import click
from flask import Flask, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate

from commissioning.config import config
from commissioning.core.exceptions import (
    AuthenticationError,
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from commissioning.middleware.logging_config import configure_logging
from commissioning.middleware.rate_limiter import init_rate_limits
from commissioning.middleware.timing import init_request_timing
from commissioning.models import db
from commissioning.utils.errors import E, api_error

logger = logging.getLogger(__name__)

# ── SQLite FK enforcement (global engine event) ─────────────────────────
from sqlalchemy import event as _sa_event, engine as _sa_engine


@_sa_event.listens_for(_sa_engine.Engine, "connect")
def _enable_sqlite_fk(dbapi_conn, connection_record):
    """Enable foreign key enforcement for SQLite connections."""
    if "sqlite" in type(dbapi_conn).__module__:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


migrate = Migrate()
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],                     # limits are applied per blueprint
    storage_uri=os.getenv("RATELIMIT_STORAGE_URI", "memory://"),
)


def _register_error_handlers(app):
    @app.errorhandler(NotFoundError)
    def handle_not_found(exc):
        return api_error(E.NOT_FOUND, str(exc))

    @app.errorhandler(ValidationError)
    def handle_validation(exc):
        return api_error(E.VALIDATION_INVALID, str(exc), details=exc.details)

    @app.errorhandler(ConflictError)
    def handle_conflict(exc):
        code = E.CONFLICT_VERSION if exc.field == "version" else E.CONFLICT_DUPLICATE
        details = {"field": exc.field}
        if exc.field == "version":
            details["current_version"] = exc.value
        return api_error(code, str(exc), details=details)

    @app.errorhandler(AuthenticationError)
    def handle_authentication(exc):
        return api_error(E.UNAUTHENTICATED, str(exc))

    @app.errorhandler(PermissionDeniedError)
    def handle_permission(exc):
        return api_error(E.FORBIDDEN, str(exc))

    @app.errorhandler(404)
    def not_found(e):
        return api_error(E.NOT_FOUND, "Not found", details={"path": request.path})

    @app.errorhandler(405)
    def method_not_allowed(e):
        return api_error(E.METHOD_NOT_ALLOWED, "Method not allowed")

    @app.errorhandler(413)
    def too_large(e):
        return api_error(E.PAYLOAD_TOO_LARGE, "Request body too large (reduce image count or size)")

    @app.errorhandler(415)
    def unsupported_media_type(e):
        return api_error(E.UNSUPPORTED_MEDIA_TYPE, str(e.description))

    @app.errorhandler(429)
    def rate_limited(e):
        return api_error(E.RATE_LIMITED, "Too many requests", details={"limit": str(e.description)})

    @app.errorhandler(500)
    def server_error(e):
        logger.error("500 error: %s", e, exc_info=True)
        return api_error(E.INTERNAL, "Internal server error")


def _register_cli(app):
    @app.cli.command("seed-template")
    def seed_template_cmd():
        """Seed the bundled default checklist template if the store is empty."""
        from commissioning.services.template_service import seed_default_template
        if seed_default_template():
            logger.info("Seeded default template.")
        else:
            logger.info("Template already present, nothing seeded.")

    @app.cli.command("create-admin")
    @click.argument("email")
    @click.password_option()
    def create_admin_cmd(email, password):
        """Create a user account with the admin role."""
        from commissioning.services.auth_service import create_user_with_role
        user = create_user_with_role(email, password, "admin")
        logger.info("Created admin user id=%s", user.id)


def create_app(config_name=None):
    """
    Create and configure the Flask application.

    Args:
        config_name: Configuration environment name.
                     One of: "development", "testing", "production".
                     Defaults to APP_ENV env var, or "development" if unset.

    Returns:
        Configured Flask application instance.
    """
    if config_name is None:
        config_name = os.getenv("APP_ENV", "development")

    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config[config_name]())

    # ── Structured logging (must be first) ───────────────────────────────
    configure_logging(app)
    init_request_timing(app)

    # ── Extensions ───────────────────────────────────────────────────────
    db.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)
    cors_origins = app.config.get("CORS_ORIGINS", "*")
    if cors_origins and cors_origins != "*":
        CORS(app, origins=[o.strip() for o in cors_origins.split(",") if o.strip()])
    else:
        CORS(app)

    # ── Request guard (Content-Type) ─────────────────────────────────────
    @app.before_request
    def _guard_request():
        from flask import abort
        if request.method in ("POST", "PUT", "PATCH") and request.path.startswith("/api/"):
            ct = request.content_type or ""
            if request.data and "json" not in ct:
                abort(415, description="Content-Type must be application/json")

    # ── Import all models so Alembic can detect them ─────────────────────
    from commissioning.models import auth as _auth_models          # noqa: F401
    from commissioning.models import history as _history_models    # noqa: F401
    from commissioning.models import template as _template_models  # noqa: F401

    # ── Auto-create tables (CREATE IF NOT EXISTS) ────────────────────────
    if app.config.get("AUTO_CREATE_TABLES", True):
        with app.app_context():
            db.create_all()
            app.logger.info("db.create_all() completed successfully")

    # ── Blueprints ───────────────────────────────────────────────────────
    from commissioning.blueprints.admin_bp import admin_bp
    from commissioning.blueprints.auth_bp import auth_bp
    from commissioning.blueprints.export_bp import export_bp
    from commissioning.blueprints.geocode_bp import geocode_bp
    from commissioning.blueprints.health_bp import health_bp
    from commissioning.blueprints.history_bp import history_bp
    from commissioning.blueprints.template_bp import template_bp

    app.register_blueprint(template_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(admin_bp)
    app.register_blueprint(history_bp)
    app.register_blueprint(export_bp)
    app.register_blueprint(geocode_bp)
    app.register_blueprint(health_bp)

    init_rate_limits(app, limiter)
    _register_error_handlers(app)
    _register_cli(app)

    return app
