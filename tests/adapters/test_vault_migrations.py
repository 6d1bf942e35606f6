"""Tests for the vault migration runner and the shipped migrations."""

from __future__ import annotations

import sqlite3

import pytest

from lanvault.adapters.sqlite.connection import connect
from lanvault.adapters.sqlite.meta_repository import MetaRepository
from lanvault.adapters.sqlite.migrations import ALL_MIGRATIONS, Migration, MigrationRunner
from lanvault.adapters.sqlite.migrations.m001_initial_schema import initial_migration
from lanvault.adapters.sqlite.migrations.m002_favorites_and_kdf import (
    favorites_and_kdf_migration,
)
from lanvault.adapters.sqlite.utils import table_columns
from lanvault.models.crypto.keys import LEGACY_ITERATIONS


class _BrokenMigration(Migration):
    @property
    def version(self) -> int:
        return 99

    @property
    def description(self) -> str:
        return "Refers to a missing table"

    def up(self, connection: sqlite3.Connection) -> None:
        connection.execute("ALTER TABLE no_such_table ADD COLUMN x INTEGER")


@pytest.fixture
def mem_conn():
    conn = sqlite3.connect(":memory:")
    conn.row_factory = sqlite3.Row
    yield conn
    conn.close()


@pytest.fixture
def legacy_db(tmp_path):
    """A database created by the first schema, holding one vault header."""
    path = tmp_path / "legacy.db"
    conn = connect(path, migrations=[initial_migration])
    with conn:
        conn.execute(
            "INSERT INTO vault_meta (id, salt, key_hash, created_at, version) VALUES (1, ?, ?, ?, 1)",
            (b"s" * 32, b"h" * 32, 1_700_000_000_000),
        )
        conn.execute(
            """
            INSERT INTO entries (id, title, username, password, created_at, modified_at)
            VALUES ('e1', 'ct', 'ct', 'ct', 1, 1)
            """
        )
    conn.close()
    return path


class TestRunner:
    def test_fresh_database_starts_at_zero(self, mem_conn):
        assert MigrationRunner(mem_conn).get_current_version() == 0

    def test_applies_all_in_order(self, mem_conn):
        runner = MigrationRunner(mem_conn)
        assert runner.run_migrations(list(reversed(ALL_MIGRATIONS))) == 2
        assert [h["version"] for h in runner.get_migration_history()] == [1, 2]

    def test_second_run_is_a_no_op(self, mem_conn):
        runner = MigrationRunner(mem_conn)
        runner.run_migrations(ALL_MIGRATIONS)
        assert runner.run_migrations(ALL_MIGRATIONS) == 0
        assert runner.get_current_version() == 2

    def test_rejects_old_version(self, mem_conn):
        runner = MigrationRunner(mem_conn)
        runner.run_migrations(ALL_MIGRATIONS)
        with pytest.raises(ValueError):
            runner.run_migration(initial_migration)

    def test_failed_migration_is_not_recorded(self, mem_conn):
        runner = MigrationRunner(mem_conn)
        runner.run_migrations(ALL_MIGRATIONS)
        with pytest.raises(RuntimeError, match="Migration 99 failed"):
            runner.run_migration(_BrokenMigration())
        assert runner.get_current_version() == 2


class TestSchema:
    def test_latest_columns(self, mem_conn):
        MigrationRunner(mem_conn).run_migrations(ALL_MIGRATIONS)
        entries = table_columns(mem_conn, "entries")
        assert {"is_favorite", "encryption_format_version", "last_used_at"} <= entries
        assert {"iterations", "last_unlocked_at"} <= table_columns(mem_conn, "vault_meta")

    def test_single_meta_row(self, mem_conn):
        MigrationRunner(mem_conn).run_migrations(ALL_MIGRATIONS)
        with pytest.raises(sqlite3.IntegrityError):
            mem_conn.execute(
                "INSERT INTO vault_meta (id, salt, key_hash, created_at) VALUES (2, x'00', x'00', 0)"
            )

    def test_column_migration_tolerates_existing_columns(self, mem_conn):
        MigrationRunner(mem_conn).run_migrations(ALL_MIGRATIONS)
        favorites_and_kdf_migration.up(mem_conn)
        assert "is_favorite" in table_columns(mem_conn, "entries")


class TestLegacyUpgrade:
    def test_upgrade_keeps_rows(self, legacy_db):
        conn = connect(legacy_db)
        row = conn.execute("SELECT * FROM entries WHERE id = 'e1'").fetchone()
        assert row["is_favorite"] == 0
        assert row["encryption_format_version"] == 2
        assert row["last_used_at"] is None
        conn.close()

    def test_legacy_header_reports_legacy_iterations(self, legacy_db):
        conn = connect(legacy_db)
        meta = MetaRepository(conn).get()
        assert meta.iterations == LEGACY_ITERATIONS
        assert meta.salt == b"s" * 32
        conn.close()

    def test_reopen_is_idempotent(self, legacy_db):
        connect(legacy_db).close()
        conn = connect(legacy_db)
        assert MigrationRunner(conn).get_current_version() == 2
        conn.close()
