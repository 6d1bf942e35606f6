"""SQLite persistence for encrypted entry rows.

This layer never sees plaintext secret fields: ``title``, ``username``,
``password``, ``notes`` and ``totp_secret`` arrive and leave as ciphertext
blobs. Encryption happens one level up, in the vault service.
"""

from __future__ import annotations

import sqlite3
from typing import Any

from lanvault.adapters.sqlite.connection import execute_with_retry
from lanvault.adapters.sqlite.utils import row_to_dict

ENCRYPTED_FIELDS = ("title", "username", "password", "notes", "totp_secret")

COLUMNS = (
    "id",
    *ENCRYPTED_FIELDS,
    "url",
    "folder_id",
    "is_favorite",
    "is_deleted",
    "created_at",
    "modified_at",
    "last_used_at",
    "sync_version",
    "encryption_format_version",
)


class EntryRepository:
    """Row-level access to the ``entries`` table."""

    def __init__(self, connection: sqlite3.Connection):
        self.connection = connection

    def get_row(self, entry_id: str, include_deleted: bool = False) -> dict[str, Any] | None:
        """Fetch one row by id, or None."""
        query = "SELECT * FROM entries WHERE id = ?"
        if not include_deleted:
            query += " AND is_deleted = 0"
        row = self.connection.execute(query, (entry_id,)).fetchone()
        return row_to_dict(row) if row else None

    def list_rows(self, favorites_only: bool = False) -> list[dict[str, Any]]:
        """All live rows, most recently modified first."""
        query = "SELECT * FROM entries WHERE is_deleted = 0"
        if favorites_only:
            query += " AND is_favorite = 1"
        query += " ORDER BY modified_at DESC"
        return [row_to_dict(row) for row in self.connection.execute(query).fetchall()]

    def list_by_url(self, pattern: str) -> list[dict[str, Any]]:
        """Live rows whose plaintext URL contains ``pattern``."""
        cursor = self.connection.execute(
            "SELECT * FROM entries WHERE is_deleted = 0 AND url LIKE ? ORDER BY modified_at DESC",
            (f"%{pattern}%",),
        )
        return [row_to_dict(row) for row in cursor.fetchall()]

    def count(self, include_deleted: bool = False) -> int:
        query = "SELECT COUNT(*) FROM entries"
        if not include_deleted:
            query += " WHERE is_deleted = 0"
        return self.connection.execute(query).fetchone()[0]

    def insert(self, values: dict[str, Any]) -> None:
        """Insert a full row. The caller owns the transaction."""
        columns = [c for c in COLUMNS if c in values]
        placeholders = ", ".join("?" for _ in columns)
        execute_with_retry(
            self.connection,
            f"INSERT INTO entries ({', '.join(columns)}) VALUES ({placeholders})",
            tuple(values[c] for c in columns),
        )

    def update(self, entry_id: str, values: dict[str, Any]) -> None:
        """Overwrite the given columns of one row. The caller owns the transaction."""
        columns = [c for c in COLUMNS if c in values and c != "id"]
        if not columns:
            return
        assignments = ", ".join(f"{c} = ?" for c in columns)
        execute_with_retry(
            self.connection,
            f"UPDATE entries SET {assignments} WHERE id = ?",
            (*(values[c] for c in columns), entry_id),
        )
