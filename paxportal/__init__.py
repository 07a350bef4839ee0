"""
World Cup 2026 Passenger Capture Portal
Flask Application Factory.

Usage:
    from paxportal import create_app
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

from paxportal.config import config
from paxportal.models import db
from paxportal.middleware.logging_config import configure_logging
from paxportal.middleware.timing import init_request_timing
from paxportal.middleware.jwt_auth import init_jwt_middleware
from paxportal.middleware.rate_limiter import init_rate_limits

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
    default_limits=[],                     # no global limit; applied per blueprint
    storage_uri=os.getenv("REDIS_URL", "memory://"),
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
    os.makedirs(app.instance_path, exist_ok=True)

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

    # ── Request timing + JWT identity ────────────────────────────────────
    init_request_timing(app)
    init_jwt_middleware(app)

    app.config.setdefault("MAX_CONTENT_LENGTH", 2 * 1024 * 1024)  # 2 MB

    # ── Import all models so Alembic can detect them ─────────────────────
    from paxportal.models import auth as _auth_models             # noqa: F401
    from paxportal.models import sales_order as _sales_models     # noqa: F401
    from paxportal.models import capture as _capture_models       # noqa: F401
    from paxportal.models import audit as _audit_models           # noqa: F401

    # ── Auto-create tables outside production (migrations own prod schema) ─
    if config_name != "production":
        with app.app_context():
            db.create_all()

    # ── Blueprints ───────────────────────────────────────────────────────
    from paxportal.blueprints.health_bp import health_bp
    from paxportal.blueprints.sync_bp import sync_bp
    from paxportal.blueprints.captures_bp import captures_bp
    from paxportal.blueprints.forms_bp import forms_bp
    from paxportal.blueprints.proposals_bp import proposals_bp
    from paxportal.blueprints.dashboard_bp import dashboard_bp
    from paxportal.blueprints.clients_bp import clients_bp
    from paxportal.blueprints.users_bp import users_bp
    from paxportal.blueprints.audit_bp import audit_bp

    app.register_blueprint(health_bp)
    app.register_blueprint(sync_bp)
    app.register_blueprint(captures_bp)
    app.register_blueprint(forms_bp)
    app.register_blueprint(proposals_bp)
    app.register_blueprint(dashboard_bp)
    app.register_blueprint(clients_bp)
    app.register_blueprint(users_bp)
    app.register_blueprint(audit_bp)

    _register_cli(app)

    # ── Error handlers ───────────────────────────────────────────────────
    @app.errorhandler(404)
    def not_found(e):
        return {"error": "Not found", "code": "ERR_NOT_FOUND", "path": request.path}, 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return {"error": "Method not allowed", "code": "ERR_METHOD_NOT_ALLOWED"}, 405

    @app.errorhandler(429)
    def rate_limited(e):
        return {"error": "Too many requests", "code": "ERR_RATE_LIMITED", "retry_after": e.description}, 429

    @app.errorhandler(500)
    def server_error(e):
        logger.error("500 error: %s", e, exc_info=True)
        return {"error": "Internal server error", "code": "ERR_INTERNAL"}, 500

    # ── Rate limiting (after blueprints registered) ──────────────────────
    init_rate_limits(app, limiter)

    # ── Scheduler initialization (import jobs to register them) ──────────
    import importlib
    importlib.import_module("paxportal.services.scheduled_jobs")  # registers @register_job handlers
    from paxportal.services.scheduler_service import SchedulerService
    SchedulerService.init_app(app)

    # Under the reloader only the child process runs the scheduler
    reloader_parent = app.debug and os.environ.get("WERKZEUG_RUN_MAIN") != "true"
    if app.config.get("SCHEDULER_ENABLED") and not app.testing and not reloader_parent:
        SchedulerService.start()

    return app


def _register_cli(app):
    """``flask`` CLI commands for operators."""

    @app.cli.command("create-master")
    @click.option("--email", required=True)
    @click.option("--name", required=True)
    @click.option("--password", default=None, help="Omit to generate a temporary password.")
    def create_master_cmd(email, name, password):
        """Create a MASTER user."""
        from paxportal.core.exceptions import ConflictError, ValidationError
        from paxportal.models.auth import Role
        from paxportal.services.user_service import create_user

        try:
            user, temp_password = create_user(email, name, Role.MASTER, password=password)
        except (ConflictError, ValidationError) as exc:
            raise click.ClickException(str(exc)) from exc
        click.echo(f"MASTER user created: {user.email}")
        if temp_password:
            click.echo(f"Temporary password: {temp_password}")

    @app.cli.command("sync-now")
    def sync_now_cmd():
        """Run one Sales Log sync and print the result."""
        from paxportal.core.exceptions import ConflictError
        from paxportal.services.sheets_sync import run_sync

        try:
            result = run_sync()
        except ConflictError as exc:
            raise click.ClickException("Sync already running") from exc
        click.echo(
            f"{result['status']}: read={result['rows_read']} upserted={result['rows_upserted']} "
            f"skipped={result['rows_skipped']} errored={result['rows_errored']}"
        )

    @app.cli.command("expire-forms")
    def expire_forms_cmd():
        """Expire every open form past its deadline."""
        from paxportal.services.sheets_sync import expire_overdue_forms

        click.echo(f"Expired {expire_overdue_forms()} forms")

    @app.cli.command("encrypt-secret")
    @click.option("--file", "path", type=click.Path(exists=True, dir_okay=False), default=None,
                  help="Read the secret from a file (e.g. a service-account JSON key).")
    def encrypt_secret_cmd(path):
        """Print a Fernet token for GOOGLE_SERVICE_ACCOUNT_JSON."""
        from paxportal.utils.crypto import encrypt_secret

        if path:
            with open(path, encoding="utf-8") as fh:
                plaintext = fh.read()
        else:
            plaintext = click.prompt("Secret", hide_input=True)
        try:
            click.echo(encrypt_secret(plaintext.strip()))
        except RuntimeError as exc:
            raise click.ClickException(str(exc)) from exc
