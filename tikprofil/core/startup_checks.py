from __future__ import annotations

import logging
import os
from pathlib import Path

from alembic.config import Config
from alembic.script import ScriptDirectory
from sqlalchemy import inspect
from sqlalchemy.engine import Engine

from tikprofil.core.config import DATABASE_URL

logger = logging.getLogger(__name__)
MIGRATIONS_PREFIX = "[MIGRATIONS]"


def _current_env() -> str:
    return os.getenv("ENVIRONMENT", os.getenv("ENV", "dev")).strip().lower()


def validate_database_environment(database_url: str | None = None) -> None:
    url = database_url if database_url is not None else DATABASE_URL
    if _current_env() in {"prod", "production"} and url.startswith("sqlite"):
        logger.critical("%s SQLite is forbidden in production", MIGRATIONS_PREFIX)
        raise RuntimeError("SQLite is forbidden in production environment")


def _expected_heads(alembic_config_path: Path) -> set[str]:
    if not alembic_config_path.exists():
        logger.critical("%s alembic config not found path=%s", MIGRATIONS_PREFIX, alembic_config_path)
        raise RuntimeError("alembic config not found")
    script_directory = ScriptDirectory.from_config(Config(str(alembic_config_path)))
    return set(script_directory.get_heads())


def _applied_heads(engine: Engine) -> set[str] | None:
    """Revisions stamped in the database, or None when it was never migrated."""
    with engine.connect() as connection:
        if "alembic_version" not in inspect(connection).get_table_names():
            return None
        rows = connection.exec_driver_sql("SELECT version_num FROM alembic_version").fetchall()
    return {row[0] for row in rows if row and row[0]}


def ensure_migrations_applied(*, engine: Engine, alembic_config_path: Path) -> None:
    """Refuse to start when the checkout schema is behind the migration head.

    Test runs and local sqlite databases (bootstrapped with create_all) are skipped.
    """
    if _current_env() == "test":
        logger.info("%s skipped migration check in test environment", MIGRATIONS_PREFIX)
        return
    if engine.url.get_backend_name() == "sqlite":
        logger.info("%s skipped migration check for sqlite", MIGRATIONS_PREFIX)
        return

    expected = _expected_heads(alembic_config_path)
    applied = _applied_heads(engine)
    if applied is None:
        logger.critical("%s alembic_version table missing", MIGRATIONS_PREFIX)
        raise RuntimeError("Database has no migration state")
    if applied != expected:
        logger.critical(
            "%s pending migration detected current=%s expected=%s",
            MIGRATIONS_PREFIX,
            sorted(applied),
            sorted(expected),
        )
        raise RuntimeError("Pending migrations detected")

    logger.info("%s checkout schema at head=%s", MIGRATIONS_PREFIX, sorted(expected))
