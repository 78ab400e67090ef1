"""Programmatic Alembic migrations for the goal graph database."""

from __future__ import annotations

import logging
from pathlib import Path

from alembic import command
from alembic.config import Config
from alembic.runtime.migration import MigrationContext
from sqlalchemy import create_engine
from sqlalchemy.pool import NullPool

logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).resolve().parents[3]


def _alembic_config(db_path: Path) -> Config:
    alembic_ini = PROJECT_ROOT / "alembic.ini"
    migrations_dir = PROJECT_ROOT / "alembic"
    if not alembic_ini.is_file() or not migrations_dir.is_dir():
        raise FileNotFoundError(f"Alembic environment not found under {PROJECT_ROOT}")

    config = Config(str(alembic_ini))
    config.set_main_option("script_location", str(migrations_dir))
    config.set_main_option("sqlalchemy.url", f"sqlite:///{db_path}")
    return config


def upgrade_head(db_path: Path, *, revision: str = "head") -> None:
    """Migrate the SQLite database at ``db_path`` up to ``revision``."""

    logger.debug("Upgrading %s to %s", db_path, revision)
    command.upgrade(_alembic_config(db_path), revision)


def current_revision(db_path: Path) -> str | None:
    """Revision stamped in ``db_path``, ``None`` for an unmigrated database."""

    engine = create_engine(f"sqlite:///{db_path}", poolclass=NullPool)
    try:
        with engine.connect() as connection:
            return MigrationContext.configure(connection).get_current_revision()
    finally:
        engine.dispose()
