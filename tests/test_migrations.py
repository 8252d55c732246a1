"""
Tests for the Alembic migration runner.
"""

import sqlite3

import pytest

from tarot_api.db.migration_runner import (
    check_migrations_status,
    run_migrations,
    sync_database_url,
)


class TestSyncDatabaseUrl:
    """Async driver names map to blocking drivers."""

    @pytest.mark.parametrize(
        ("url", "expected"),
        [
            (
                "postgresql+asyncpg://u:p@db:5432/tarot",
                "postgresql+psycopg2://u:p@db:5432/tarot",
            ),
            ("sqlite+aiosqlite:///./tarot.db", "sqlite:///./tarot.db"),
            ("postgresql://u:p@db/tarot", "postgresql://u:p@db/tarot"),
        ],
    )
    def test_conversion(self, url, expected):
        assert sync_database_url(url) == expected


class TestRunMigrations:
    """Migrations against a temporary SQLite file."""

    def test_fresh_database_is_pending(self, settings):
        status = check_migrations_status(settings)

        assert status["current_revision"] is None
        assert status["pending"] is True

    def test_upgrade_creates_accounts_table(self, settings, db_path):
        run_migrations(settings)

        with sqlite3.connect(db_path) as conn:
            columns = {row[1] for row in conn.execute("PRAGMA table_info(accounts)")}
        assert {"username", "api_token", "usage_limit", "usage_used", "status"} <= columns
        assert check_migrations_status(settings)["pending"] is False

    def test_second_run_is_noop(self, settings):
        run_migrations(settings)
        run_migrations(settings)

        assert check_migrations_status(settings)["pending"] is False
