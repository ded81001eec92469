"""
Atelier — project phase workflow service.
Flask Application Factory.

Usage:
    from atelier import create_app
    app = create_app()           # defaults to APP_ENV or "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

from flask import Flask, abort, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate
from sqlalchemy import engine as _sa_engine
from sqlalchemy import event as _sa_event

from atelier.config import config
from atelier.middleware.jwt_auth import init_jwt_middleware
from atelier.middleware.logging_config import configure_logging
from atelier.middleware.rate_limiter import init_rate_limits
from atelier.middleware.security_headers import init_security_headers
from atelier.middleware.tenant_context import init_tenant_context
from atelier.middleware.timing import init_request_timing
from atelier.models import db

logger = logging.getLogger(__name__)


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
    default_limits=[],                     # no global limit; applied per blueprint
    storage_uri=os.getenv("REDIS_URL", "memory://"),  # Redis in production, memory for dev
)


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

    configure_logging(app)

    if app.config["SQLALCHEMY_DATABASE_URI"].startswith("sqlite:///") and \
            ":memory:" not in app.config["SQLALCHEMY_DATABASE_URI"]:
        os.makedirs(app.instance_path, exist_ok=True)

    db.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)
    cors_origins = app.config.get("CORS_ORIGINS", "*")
    if cors_origins and cors_origins != "*":
        CORS(app, origins=[o.strip() for o in cors_origins.split(",") if o.strip()])
    else:
        CORS(app)

    # ── Middleware (order matters: timing → jwt → tenant) ────────────────
    init_security_headers(app)
    init_request_timing(app)
    init_jwt_middleware(app)
    init_tenant_context(app)

    @app.before_request
    def _guard_request():
        max_len = app.config.get("MAX_CONTENT_LENGTH")
        if max_len and request.content_length and request.content_length > max_len:
            abort(413, description="Request body too large")
        if request.method in ("POST", "PUT", "PATCH") and request.path.startswith("/api/"):
            ct = request.content_type or ""
            if request.data and "json" not in ct:
                abort(415, description="Content-Type must be application/json")

    # ── Models (register tables on db.metadata) ──────────────────────────
    from atelier.models import audit as _audit_models                  # noqa: F401
    from atelier.models import auth as _auth_models                    # noqa: F401
    from atelier.models import phase as _phase_models                  # noqa: F401
    from atelier.models import phase_template as _phase_template_models  # noqa: F401
    from atelier.models import project as _project_models              # noqa: F401

    with app.app_context():
        db.create_all()
        app.logger.info("db.create_all() completed successfully")

    # ── Blueprints ───────────────────────────────────────────────────────
    from atelier.blueprints.health_bp import health_bp
    from atelier.blueprints.phase_bp import phase_bp
    from atelier.blueprints.phase_template_bp import phase_template_bp
    from atelier.blueprints.project_bp import project_bp
    from atelier.blueprints.sub_phase_bp import sub_phase_bp

    app.register_blueprint(health_bp)
    app.register_blueprint(project_bp)
    app.register_blueprint(phase_bp)
    app.register_blueprint(sub_phase_bp)
    app.register_blueprint(phase_template_bp)

    # ── CLI commands ─────────────────────────────────────────────────────
    @app.cli.command("seed-phase-templates")
    def seed_phase_templates_cmd():
        """Seed the default system phase templates."""
        from atelier.services.phase_template_service import seed_default_templates
        count = seed_default_templates()
        db.session.commit()
        logger.info("Seeded %s new phase templates.", count)

    # ── Error handlers ───────────────────────────────────────────────────
    @app.errorhandler(404)
    def not_found(e):
        return {"error": "Not found", "path": request.path}, 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return {"error": "Method not allowed"}, 405

    @app.errorhandler(413)
    def too_large(e):
        return {"error": e.description}, 413

    @app.errorhandler(415)
    def unsupported_media_type(e):
        return {"error": e.description}, 415

    @app.errorhandler(429)
    def rate_limited(e):
        return {"error": "Too many requests", "retry_after": e.description}, 429

    @app.errorhandler(500)
    def server_error(e):
        logger.error("500 error: %s", e, exc_info=True)
        return {"error": "Internal server error"}, 500

    # ── Rate limiting (after blueprints registered) ──────────────────────
    init_rate_limits(app, limiter)

    return app
