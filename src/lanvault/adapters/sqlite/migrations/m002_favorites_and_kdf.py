"""Migration 002: favorites, per-entry format version, explicit KDF iterations.

All changes are additive. ``vault_meta.iterations`` stays NULL for vaults
created before this migration; readers treat NULL as the legacy count.
"""

from __future__ import annotations

import sqlite3

from lanvault.adapters.sqlite.migrations.runner import Migration
from lanvault.adapters.sqlite.utils import table_columns

ENTRY_COLUMNS = {
    "is_favorite": "INTEGER NOT NULL DEFAULT 0",
    "encryption_format_version": "INTEGER NOT NULL DEFAULT 2",
    "last_used_at": "INTEGER",
}

META_COLUMNS = {
    "iterations": "INTEGER",
    "last_unlocked_at": "INTEGER",
}


class FavoritesAndKdfMigration(Migration):
    """Add favorite/format/usage columns to entries and KDF columns to vault_meta."""

    @property
    def version(self) -> int:
        return 2

    @property
    def description(self) -> str:
        return "Add favorites, format version, last used, and KDF iteration columns"

    def up(self, connection: sqlite3.Connection) -> None:
        for table, columns in (("entries", ENTRY_COLUMNS), ("vault_meta", META_COLUMNS)):
            existing = table_columns(connection, table)
            for name, ddl in columns.items():
                if name not in existing:
                    connection.execute(f"ALTER TABLE {table} ADD COLUMN {name} {ddl}")

        connection.execute(
            "CREATE INDEX IF NOT EXISTS idx_entries_favorite ON entries(is_favorite)"
        )
        connection.execute(
            "CREATE INDEX IF NOT EXISTS idx_entries_modified ON entries(modified_at)"
        )


favorites_and_kdf_migration = FavoritesAndKdfMigration()
