"""
Thesis Tracker
Flask Application Factory.

Usage:
    from thesis_tracker import create_app
    app = create_app()           # defaults to APP_ENV, then "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

import click
from flask import Flask
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate
from sqlalchemy import engine as _sa_engine
from sqlalchemy import event as _sa_event

from thesis_tracker.config import config
from thesis_tracker.middleware.logging_config import configure_logging
from thesis_tracker.middleware.rate_limiter import init_rate_limits
from thesis_tracker.middleware.timing import init_request_timing
from thesis_tracker.models import db
from thesis_tracker.utils.errors import register_error_handlers

logger = logging.getLogger(__name__)


# ── SQLite FK enforcement (global engine event) ─────────────────────────
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
    default_limits=[],  # no global limit; applied per blueprint
    storage_uri=os.getenv("RATELIMIT_STORAGE_URI", "memory://"),
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

    Raises:
        RuntimeError: production config without DATABASE_URL or SECRET_KEY.
    """
    if config_name is None:
        config_name = os.getenv("APP_ENV", "development")

    app = Flask(__name__, instance_relative_config=True)
    # Instantiate so config classes can validate their environment
    app.config.from_object(config[config_name]())

    # ── Structured logging (must be first) ───────────────────────────────
    configure_logging(app)

    os.makedirs(app.instance_path, exist_ok=True)

    # ── Extensions ───────────────────────────────────────────────────────
    db.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)
    cors_origins = app.config.get("CORS_ORIGINS", "*")
    if cors_origins and cors_origins != "*":
        CORS(app, origins=[o.strip() for o in cors_origins.split(",") if o.strip()])
    else:
        CORS(app)

    # ── Request timing middleware ────────────────────────────────────────
    init_request_timing(app)

    # ── Import all models so Alembic can detect them ─────────────────────
    from thesis_tracker.models import audit as _audit_models        # noqa: F401
    from thesis_tracker.models import schedule as _schedule_models  # noqa: F401

    # ── Auto-create tables (CREATE IF NOT EXISTS) ────────────────────────
    with app.app_context():
        db.create_all()

    # ── Blueprints ───────────────────────────────────────────────────────
    from thesis_tracker.blueprints.abm_bp import abm_bp
    from thesis_tracker.blueprints.audit_bp import audit_bp
    from thesis_tracker.blueprints.health_bp import health_bp
    from thesis_tracker.blueprints.structure_bp import structure_bp
    from thesis_tracker.blueprints.week_bp import week_bp

    app.register_blueprint(structure_bp)
    app.register_blueprint(abm_bp)
    app.register_blueprint(week_bp)
    app.register_blueprint(audit_bp)
    app.register_blueprint(health_bp)

    register_error_handlers(app, db)

    # ── CLI commands ─────────────────────────────────────────────────────
    @app.cli.command("seed-demo")
    def seed_demo_cmd():
        """Seed a 6-month / 24-week demo plan into an empty store."""
        from thesis_tracker.services.seed_service import seed_demo_plan
        counts = seed_demo_plan()
        click.echo(f"Seeded: {counts}")

    # ── Health check (short form; probes live under /health/*) ───────────
    @app.route("/api/v1/health")
    def health():
        return {"status": "ok", "app": "Thesis Tracker"}

    # ── Rate limiting (after blueprints registered) ──────────────────────
    init_rate_limits(app, limiter)

    logger.debug("App created: env=%s db=%s", config_name, app.config["SQLALCHEMY_DATABASE_URI"])
    return app
