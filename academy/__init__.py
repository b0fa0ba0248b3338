"""
Academy Enrollment API
Flask Application Factory.

Usage:
    from academy import create_app
    app = create_app()           # APP_ENV, else "development"
    app = create_app("testing")

Startup order matters: logging first, then the signing-secret check, then
extensions, the request middleware chain, schema + storage layer,
blueprints, the error boundary and finally the per-blueprint rate limits.
"""

import logging
import os

from flask import Flask, abort, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate
from sqlalchemy import event
from sqlalchemy.engine import Engine

from academy.config import config
from academy.models import db
from academy.middleware.jwt_auth import init_jwt_middleware
from academy.middleware.logging_config import configure_logging
from academy.middleware.rate_limiter import init_rate_limits
from academy.middleware.security_headers import init_security_headers
from academy.middleware.timing import init_request_timing
from academy.utils.errors import register_error_handlers

logger = logging.getLogger(__name__)

migrate = Migrate()
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],
    storage_uri=os.getenv("REDIS_URL", "memory://"),
)

_WRITE_METHODS = frozenset({"POST", "PUT", "PATCH"})


@event.listens_for(Engine, "connect")
def _sqlite_foreign_keys(dbapi_conn, connection_record):
    # SQLite ships with FK enforcement off; the delete guards rely on it
    if "sqlite" in type(dbapi_conn).__module__:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def _cors_origins(app):
    raw = app.config.get("CORS_ORIGINS", "*")
    if not raw or raw == "*":
        return "*"
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


def _init_extensions(app):
    db.init_app(app)
    migrate.init_app(app, db)
    CORS(app, origins=_cors_origins(app))


def _guard_request():
    """Reject oversize bodies and non-JSON writes before any view runs."""
    limit = request.max_content_length
    if limit and request.content_length and request.content_length > limit:
        abort(413, description="Request body too large")
    if (
        request.method in _WRITE_METHODS
        and request.path.startswith("/api/")
        and request.data
        and not request.is_json
    ):
        abort(415, description="Content-Type must be application/json")


def _install_storage_layer(app):
    """Pool hygiene, ORM row policies and (PostgreSQL) native RLS."""
    from academy.storage.context import install_pool_hygiene
    from academy.storage.policies import install_storage_policies
    from academy.storage.rls import install_row_level_security

    install_pool_hygiene(db.engine)
    if not app.config.get("STORAGE_POLICIES_ENABLED", True):
        logger.warning("Storage row policies are DISABLED")
        return
    install_storage_policies()
    install_row_level_security(app, db)


def _register_blueprints(app):
    from academy.blueprints.admin_bp import admin_bp
    from academy.blueprints.auth_bp import auth_bp
    from academy.blueprints.public_bp import public_bp
    from academy.blueprints.user_bp import user_bp

    for blueprint in (auth_bp, public_bp, user_bp, admin_bp):
        app.register_blueprint(blueprint)


def _register_cli(app):
    @app.cli.command("reconcile-payments")
    def reconcile_payments_cmd():
        """Reject payment sessions whose verification window has elapsed."""
        from academy.services.payment_service import reconcile_expired_payments
        count = reconcile_expired_payments()
        logger.info("Rejected %s expired payment session(s).", count)


def create_app(config_name=None):
    """
    Create and configure the Flask application.

    Args:
        config_name: "development", "testing" or "production".
                     Defaults to the APP_ENV env var, then "development".

    Raises:
        RuntimeError: JWT_SECRET_KEY is not configured.
    """
    config_name = config_name or os.getenv("APP_ENV", "development")

    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config[config_name]())

    configure_logging(app)

    if not app.config.get("JWT_SECRET_KEY"):
        raise RuntimeError("JWT_SECRET_KEY environment variable is required")

    _init_extensions(app)

    # ── Request middleware chain ─────────────────────────────────────────
    init_security_headers(app)
    init_request_timing(app)
    init_jwt_middleware(app)        # before the limiter: keys read g.identity
    limiter.init_app(app)
    app.before_request(_guard_request)

    # ── Schema, then the storage layer on top of it ──────────────────────
    from academy.models import (  # noqa: F401  (register every table)
        account, audit, catalog, certificate, contact, enrollment,
    )

    with app.app_context():
        db.create_all()
        _install_storage_layer(app)

    _register_blueprints(app)
    register_error_handlers(app)
    _register_cli(app)

    # Limits attach to blueprints, so they must be registered first
    init_rate_limits(app, limiter)

    logger.info("Academy API ready (config=%s)", config_name)
    return app
