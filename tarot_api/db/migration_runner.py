"""
Migration Runner - Runs Alembic migrations at application startup.

Applies pending migrations when RUN_MIGRATIONS_ON_STARTUP is set, or on
demand with `python -m tarot_api.db.migration_runner`.
"""

from pathlib import Path
from typing import Any

from sqlalchemy import Engine, create_engine
from structlog import get_logger

from alembic import command
from alembic.config import Config
from alembic.runtime.migration import MigrationContext
from alembic.script import ScriptDirectory
from tarot_api.config import Settings

logger = get_logger(__name__)

# Path to alembic.ini relative to project root
ALEMBIC_INI_PATH = Path(__file__).parent.parent.parent / "alembic.ini"


def sync_database_url(database_url: str) -> str:
    """Get synchronous database URL for migrations.

    Alembic's command API uses synchronous connections, so async driver
    names are swapped for their blocking counterparts.
    """
    return database_url.replace("+asyncpg", "+psycopg2").replace("+aiosqlite", "")


def _alembic_config(settings: Settings) -> Config:
    alembic_cfg = Config(str(ALEMBIC_INI_PATH))
    sync_url = sync_database_url(settings.database_url)
    alembic_cfg.set_main_option("sqlalchemy.url", sync_url.replace("%", "%%"))
    alembic_cfg.attributes["configured_by_app"] = True
    return alembic_cfg


def _get_current_revision(engine: Engine) -> str | None:
    """Get the current database revision."""
    with engine.connect() as conn:
        context = MigrationContext.configure(conn)
        return context.get_current_revision()


def _get_head_revision(alembic_cfg: Config) -> str | None:
    """Get the head revision from migration scripts."""
    script = ScriptDirectory.from_config(alembic_cfg)
    return script.get_current_head()


def run_migrations(settings: Settings) -> None:
    """
    Run pending Alembic migrations.

    Only runs migrations if there are pending ones.

    Raises:
        RuntimeError: a migration failed
    """
    if not ALEMBIC_INI_PATH.exists():
        logger.warning("alembic_config_missing", path=str(ALEMBIC_INI_PATH))
        return

    try:
        alembic_cfg = _alembic_config(settings)
        engine = create_engine(sync_database_url(settings.database_url))

        try:
            current = _get_current_revision(engine)
            head = _get_head_revision(alembic_cfg)

            if current == head:
                logger.info("database_schema_up_to_date", revision=current)
                return

            logger.info("migrations_starting", from_revision=current, to_revision=head)
            command.upgrade(alembic_cfg, "head")
            logger.info("migrations_complete", revision=_get_current_revision(engine))

        finally:
            engine.dispose()

    except Exception as e:
        logger.error("migration_failed", error=str(e))
        raise RuntimeError(f"Database migration failed: {e}") from e


def check_migrations_status(settings: Settings) -> dict[str, Any]:
    """
    Check migration status without applying them.

    Returns:
        Dict with current revision, head revision, and whether migrations are pending.
    """
    if not ALEMBIC_INI_PATH.exists():
        return {"error": "Alembic config not found"}

    try:
        alembic_cfg = _alembic_config(settings)
        engine = create_engine(sync_database_url(settings.database_url))
        try:
            current = _get_current_revision(engine)
            head = _get_head_revision(alembic_cfg)
            return {
                "current_revision": current,
                "head_revision": head,
                "pending": current != head,
            }
        finally:
            engine.dispose()

    except Exception as e:
        return {"error": str(e)}


if __name__ == "__main__":
    from tarot_api.config import get_settings
    from tarot_api.observability import setup_logging

    app_settings = get_settings()
    setup_logging(app_settings)
    run_migrations(app_settings)
