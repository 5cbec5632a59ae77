"""Configuration loading: YAML file plus environment-variable overrides."""

from __future__ import annotations

import logging
import os
import secrets

import yaml

from config_models import AppConfig

logger = logging.getLogger(__name__)


def load_config():
    """Load configuration from *config.yaml* with env-var overrides.

    Environment variables take precedence over config.yaml values.
    Returns (AppConfig, database_uri).
    """
    config_path = os.environ.get("CONFIG_PATH", "config.yaml")
    raw: dict = {}
    if os.path.exists(config_path):
        with open(config_path, "r", encoding="utf-8") as handle:
            raw = yaml.safe_load(handle) or {}

    app_cfg = raw.get("app", {})
    db_cfg = raw.get("database", {})

    secret_key = os.environ.get("APP_SECRET_KEY", app_cfg.get("secret_key", ""))
    if not secret_key or secret_key == "change-me":
        secret_key = secrets.token_hex(32)
        logger.warning(
            "Using auto-generated secret key. Set APP_SECRET_KEY env var "
            "or app.secret_key in config.yaml for stable sessions across restarts."
        )

    return (
        AppConfig(
            name=os.environ.get("APP_NAME", app_cfg.get("name", "Paróquia em Dia")),
            secret_key=secret_key,
            currency=app_cfg.get("currency", "BRL"),
            default_region=os.environ.get(
                "DEFAULT_REGION", app_cfg.get("default_region", "AL")
            ),
            donation_city=os.environ.get(
                "DONATION_CITY", app_cfg.get("donation_city", "MACEIO")
            ),
        ),
        os.environ.get("DATABASE_URI", db_cfg.get("uri", "sqlite:///paroquia.db")),
    )


def enable_sqlite_fks(dbapi_conn, _connection_record):
    """Enable foreign key enforcement for SQLite connections."""
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()
