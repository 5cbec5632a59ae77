"""Application factory: clean entry point for the Flask application."""

from __future__ import annotations

import datetime
import logging
import os
from datetime import timedelta

import click
from dotenv import load_dotenv
from flask import Flask, g, jsonify, session
from flask_wtf.csrf import CSRFError
from sqlalchemy import event

from config import enable_sqlite_fks, load_config
from errors import AppError
from extensions import csrf, db, limiter
from models import User
from routes import register_blueprints
from services.tenant import TenantSecurityError, register_tenant_guards, unpin_session
from services.tithe import flag_overdue

load_dotenv()

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------


def create_app(overrides: dict | None = None):
    """Create and configure the Flask application.

    *overrides* is applied to ``app.config`` before extensions initialise.
    """
    app_cfg, db_uri = load_config()

    app = Flask(__name__)
    app.config["SQLALCHEMY_DATABASE_URI"] = db_uri
    app.config["SQLALCHEMY_TRACK_MODIFICATIONS"] = False
    app.secret_key = app_cfg.secret_key
    app.config["APP_CONFIG"] = app_cfg
    app.json.ensure_ascii = False

    # Session security
    app.config["SESSION_COOKIE_HTTPONLY"] = True
    app.config["SESSION_COOKIE_SAMESITE"] = "Lax"
    app.config["SESSION_COOKIE_SECURE"] = (
        os.environ.get("FLASK_ENV", "") != "development"
    )
    app.config["PERMANENT_SESSION_LIFETIME"] = timedelta(hours=8)
    app.config["WTF_CSRF_TIME_LIMIT"] = None

    if overrides:
        app.config.update(overrides)

    # Initialize extensions
    csrf.init_app(app)
    limiter.init_app(app)
    db.init_app(app)

    # SQLite foreign key enforcement
    if "sqlite" in app.config["SQLALCHEMY_DATABASE_URI"]:
        with app.app_context():
            event.listen(db.engine, "connect", enable_sqlite_fks)

    with app.app_context():
        db.create_all()

    # Register tenant write-protection guard
    register_tenant_guards(app)

    # Register all blueprints
    register_blueprints(app)

    # ------------------------------------------------------------------
    # Request hooks
    # ------------------------------------------------------------------

    @app.before_request
    def load_current_user():
        """Set ``g.current_user`` from the session."""
        unpin_session()
        g.current_user = None
        user_id = session.get("user_id")
        if user_id:
            user = db.session.get(User, user_id)
            if user is None or not user.is_active:
                session.clear()
            else:
                g.current_user = user

    # ------------------------------------------------------------------
    # Security headers
    # ------------------------------------------------------------------

    @app.after_request
    def set_security_headers(response):
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        # "0" disables the legacy XSS auditor
        response.headers["X-XSS-Protection"] = "0"
        response.headers["Referrer-Policy"] = (
            "strict-origin-when-cross-origin"
        )
        response.headers["Permissions-Policy"] = (
            "geolocation=(), camera=(), microphone=()"
        )
        # The printable ledger carries inline styles and nothing else.
        response.headers["Content-Security-Policy"] = (
            "default-src 'none'; "
            "style-src 'unsafe-inline'; "
            "img-src 'self' data:; "
            "frame-ancestors 'none'"
        )
        if os.environ.get("FLASK_ENV") == "production":
            response.headers["Strict-Transport-Security"] = (
                "max-age=31536000; includeSubDomains"
            )
        return response

    # ------------------------------------------------------------------
    # Error handlers
    # ------------------------------------------------------------------

    @app.errorhandler(AppError)
    def app_error(error):
        if error.status_code >= 500:
            logger.error("%s: %s", type(error).__name__, error.message)
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(TenantSecurityError)
    def tenant_violation(error):
        db.session.rollback()
        logger.error("Tenant isolation violation: %s", error)
        return jsonify({"error": "Operação não permitida para esta paróquia."}), 403

    @app.errorhandler(CSRFError)
    def csrf_error(error):
        return jsonify({"error": "Token CSRF inválido ou ausente."}), 400

    @app.errorhandler(404)
    def not_found(_error):
        return jsonify({"error": "Recurso não encontrado."}), 404

    @app.errorhandler(405)
    def method_not_allowed(_error):
        return jsonify({"error": "Método não permitido."}), 405

    @app.errorhandler(429)
    def ratelimit_handler(_error):
        return jsonify({"error": "Muitas tentativas. Tente novamente mais tarde."}), 429

    @app.errorhandler(500)
    def server_error(_error):
        return jsonify({"error": "Erro interno do servidor."}), 500

    # ------------------------------------------------------------------
    # CLI
    # ------------------------------------------------------------------

    @app.cli.command("flag-overdue")
    @click.option(
        "--date", "as_of", default=None,
        help="Reference date (YYYY-MM-DD); defaults to today.",
    )
    def flag_overdue_command(as_of):
        """Mark open installments past their due date as overdue."""
        today = None
        if as_of:
            try:
                today = datetime.datetime.strptime(as_of, "%Y-%m-%d").date()
            except ValueError:
                raise click.BadParameter("use YYYY-MM-DD", param_hint="--date")
        count = flag_overdue(today)
        click.echo(f"{count} installment(s) flagged as overdue.")

    return app


# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    app = create_app()
    debug_mode = os.environ.get("FLASK_DEBUG", "false").lower() in (
        "true",
        "1",
    )
    app.run(debug=debug_mode)
