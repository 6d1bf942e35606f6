"""Vault metadata persistence (the single ``vault_meta`` row)."""

from __future__ import annotations

import sqlite3

from lanvault.models.crypto.keys import LEGACY_ITERATIONS
from lanvault.models.entry import VaultMeta
from lanvault.models.exceptions import VaultAlreadyExists


class MetaRepository:
    """Reads and writes the vault header."""

    def __init__(self, connection: sqlite3.Connection):
        self.connection = connection

    def get(self) -> VaultMeta | None:
        """Return the stored metadata, or None if no vault exists yet.

        Rows written before the iteration column existed report the legacy
        iteration count.
        """
        row = self.connection.execute(
            """
            SELECT salt, key_hash, iterations, created_at, version, last_unlocked_at
            FROM vault_meta WHERE id = 1
            """
        ).fetchone()
        if row is None:
            return None
        return VaultMeta(
            salt=bytes(row["salt"]),
            key_hash=bytes(row["key_hash"]),
            iterations=row["iterations"] or LEGACY_ITERATIONS,
            created_at=row["created_at"],
            version=row["version"],
            last_unlocked_at=row["last_unlocked_at"],
        )

    def exists(self) -> bool:
        return self.connection.execute(
            "SELECT 1 FROM vault_meta WHERE id = 1"
        ).fetchone() is not None

    def create(self, meta: VaultMeta) -> None:
        """Insert the metadata row.

        Raises:
            VaultAlreadyExists: If a row is already present
        """
        try:
            with self.connection:
                self.connection.execute(
                    """
                    INSERT INTO vault_meta (id, salt, key_hash, iterations, created_at, version)
                    VALUES (1, ?, ?, ?, ?, ?)
                    """,
                    (meta.salt, meta.key_hash, meta.iterations, meta.created_at, meta.version),
                )
        except sqlite3.IntegrityError as e:
            raise VaultAlreadyExists("A vault already exists in this database") from e

    def touch_unlocked(self, timestamp: int) -> None:
        with self.connection:
            self.connection.execute(
                "UPDATE vault_meta SET last_unlocked_at = ? WHERE id = 1", (timestamp,)
            )
