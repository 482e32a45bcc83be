"""
Case Study Builder
Flask Application Factory.

Usage:
    from app import create_app
    app = create_app()           # defaults to APP_ENV or "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

import click
from flask import Flask, jsonify, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate
from sqlalchemy.exc import IntegrityError

from app.config import config
from app.core.exceptions import (
    ConflictError,
    ForbiddenError,
    IntegrationError,
    NotFoundError,
    TransitionError,
    UnauthorizedError,
    ValidationError,
)
from app.middleware.jwt_auth import init_jwt_middleware
from app.middleware.logging_config import configure_logging
from app.middleware.rate_limiter import init_rate_limits
from app.models import db

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
    default_limits=[],                     # no global limit — apply per-blueprint
    storage_uri=os.getenv("REDIS_URL", "memory://"),  # Redis in production, memory for dev
)

# Paths that accept non-JSON bodies (multipart / raw CSV)
_RAW_BODY_PREFIXES = ("/api/v1/case-studies/import",)


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

    # ── Extensions ───────────────────────────────────────────────────────
    db.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)
    cors_origins = app.config.get("CORS_ORIGINS", "*")
    if cors_origins and cors_origins != "*":
        CORS(app, origins=[o.strip() for o in cors_origins.split(",") if o.strip()])
    else:
        CORS(app)

    # ── JWT auth middleware (sets g.current_user) ────────────────────────
    init_jwt_middleware(app)

    # ── Request guard (Content-Type for mutating API calls) ──────────────
    @app.before_request
    def _guard_request():
        if request.method in ("POST", "PUT", "PATCH") and request.path.startswith("/api/"):
            if request.path.startswith(_RAW_BODY_PREFIXES):
                return None
            ct = request.content_type or ""
            if request.data and "json" not in ct:
                return jsonify({"error": "Content-Type must be application/json"}), 415
        return None

    # ── Import all models so Alembic can detect them ─────────────────────
    from app.models import audit as _audit_models                # noqa: F401
    from app.models import auth as _auth_models                  # noqa: F401
    from app.models import case_study as _case_study_models      # noqa: F401
    from app.models import gdpr as _gdpr_models                  # noqa: F401
    from app.models import notification as _notification_models  # noqa: F401
    from app.models import system_config as _system_config_models  # noqa: F401

    # ── Auto-create tables (CREATE IF NOT EXISTS) ────────────────────────
    with app.app_context():
        try:
            db.create_all()
            app.logger.info("db.create_all() completed successfully")
        except Exception as e:
            app.logger.warning("db.create_all() failed: %s", e)

    # ── Blueprints ───────────────────────────────────────────────────────
    from app.blueprints.admin_bp import admin_bp
    from app.blueprints.approval_bp import approval_bp
    from app.blueprints.bhag_bp import bhag_bp
    from app.blueprints.bulk_import_bp import bulk_import_bp
    from app.blueprints.case_study_bp import case_study_bp
    from app.blueprints.cost_calculator_bp import cost_calculator_bp
    from app.blueprints.crm_bp import crm_bp
    from app.blueprints.gdpr_bp import gdpr_bp
    from app.blueprints.health_bp import health_bp
    from app.blueprints.notification_bp import notification_bp
    from app.blueprints.system_config_bp import system_config_bp
    from app.blueprints.translation_bp import translation_bp

    app.register_blueprint(health_bp)
    app.register_blueprint(bulk_import_bp)
    app.register_blueprint(case_study_bp)
    app.register_blueprint(cost_calculator_bp)
    app.register_blueprint(approval_bp)
    app.register_blueprint(translation_bp)
    app.register_blueprint(crm_bp)
    app.register_blueprint(bhag_bp)
    app.register_blueprint(gdpr_bp)
    app.register_blueprint(notification_bp)
    app.register_blueprint(admin_bp)
    app.register_blueprint(system_config_bp)

    _register_error_handlers(app)
    _register_cli(app)

    # ── Rate limiting (after blueprints registered) ──────────────────────
    init_rate_limits(app, limiter)

    return app


def _register_error_handlers(app):
    """Map service exceptions and HTTP errors to JSON responses."""

    @app.errorhandler(UnauthorizedError)
    def _unauthorized(e):
        return jsonify({"error": "Unauthorized"}), 401

    @app.errorhandler(ForbiddenError)
    def _forbidden(e):
        return jsonify({"error": "Forbidden"}), 403

    @app.errorhandler(NotFoundError)
    def _not_found(e):
        return jsonify({"error": str(e)}), 404

    @app.errorhandler(ValidationError)
    def _validation(e):
        return jsonify({"error": str(e), "details": e.details}), 422

    @app.errorhandler(ConflictError)
    def _conflict(e):
        return jsonify({"error": str(e)}), 409

    @app.errorhandler(TransitionError)
    def _transition(e):
        return jsonify({"error": str(e), "current_status": e.current_status}), 409

    @app.errorhandler(IntegrityError)
    def _integrity(e):
        db.session.rollback()
        logger.warning("Integrity error: %s", e.orig)
        return jsonify({"error": "Duplicate or constraint violation"}), 409

    @app.errorhandler(IntegrationError)
    def _integration(e):
        logger.warning("Integration failure: %s", e, extra={"provider": e.provider})
        return jsonify({"error": str(e), "provider": e.provider}), 502

    @app.errorhandler(404)
    def not_found(e):
        return jsonify({"error": "Not found", "path": request.path}), 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return jsonify({"error": "Method not allowed"}), 405

    @app.errorhandler(413)
    def too_large(e):
        return jsonify({"error": "Request body too large"}), 413

    @app.errorhandler(429)
    def rate_limited(e):
        return jsonify({"error": "Too many requests", "retry_after": e.description}), 429

    @app.errorhandler(500)
    def server_error(e):
        logger.error("500 error: %s", e, exc_info=True)
        db.session.rollback()
        return jsonify({"error": "Internal server error"}), 500


def _register_cli(app):
    @app.cli.command("seed-system-config")
    def seed_system_config_cmd():
        """Insert missing default system settings."""
        from app.services.system_config_service import seed_defaults
        count = seed_defaults()
        db.session.commit()
        click.echo(f"Seeded {count} system config value(s).")

    @app.cli.command("issue-token")
    @click.argument("email")
    @click.option("--expires-in", type=int, default=None, help="Lifetime in seconds.")
    def issue_token_cmd(email, expires_in):
        """Print an access token for an existing active user."""
        from app.services.jwt_service import generate_access_token
        from app.services.user_service import get_user_by_email

        user = get_user_by_email(email)
        if user is None or not user.is_active:
            raise click.ClickException(f"No active user with email {email}")
        click.echo(generate_access_token(user, expires_in=expires_in))

    @app.cli.command("create-user")
    @click.argument("email")
    @click.option("--name", default=None)
    @click.option("--role", default="CONTRIBUTOR")
    def create_user_cmd(email, name, role):
        """Create a user (bootstrap the first ADMIN)."""
        from app.services.user_service import create_user

        try:
            user = create_user(email=email, name=name, role=role)
        except (ValidationError, ConflictError) as exc:
            raise click.ClickException(str(exc)) from exc
        click.echo(f"Created user {user.id} <{user.email}> role={user.role}")
