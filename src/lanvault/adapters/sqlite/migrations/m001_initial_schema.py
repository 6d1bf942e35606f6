"""Migration 001: the first shipped vault layout.

Vaults created by this layout have no iteration column (they used the legacy
PBKDF2 count) and no favorite flag.
"""

from __future__ import annotations

import sqlite3

from lanvault.adapters.sqlite.migrations.runner import Migration


class InitialSchemaMigration(Migration):
    """Create vault_meta and entries."""

    @property
    def version(self) -> int:
        return 1

    @property
    def description(self) -> str:
        return "Create vault_meta and entries tables"

    def up(self, connection: sqlite3.Connection) -> None:
        connection.executescript("""
            CREATE TABLE IF NOT EXISTS vault_meta (
                id INTEGER PRIMARY KEY CHECK (id = 1),
                salt BLOB NOT NULL,
                key_hash BLOB NOT NULL,
                created_at INTEGER NOT NULL,
                version INTEGER NOT NULL DEFAULT 1
            );

            CREATE TABLE IF NOT EXISTS entries (
                id TEXT PRIMARY KEY,
                title TEXT NOT NULL,
                username TEXT NOT NULL,
                password TEXT NOT NULL,
                notes TEXT,
                totp_secret TEXT,
                url TEXT,
                folder_id TEXT,
                is_deleted INTEGER NOT NULL DEFAULT 0,
                created_at INTEGER NOT NULL,
                modified_at INTEGER NOT NULL,
                sync_version INTEGER NOT NULL DEFAULT 0
            );

            CREATE INDEX IF NOT EXISTS idx_entries_deleted ON entries(is_deleted);
        """)


initial_migration = InitialSchemaMigration()
