"""Database connection setup for the vault.

Each :class:`~lanvault.services.vault_service.VaultService` owns exactly one
connection, opened here with WAL mode, foreign keys and owner-only file
permissions, and migrated to the latest schema before it is handed out.
"""

from __future__ import annotations

import logging
import os
import sqlite3
import time
from pathlib import Path

from lanvault.adapters.sqlite.migrations import ALL_MIGRATIONS, Migration, MigrationRunner

MEMORY = ":memory:"

logger = logging.getLogger(__name__)


def connect(
    db_path: str | Path,
    migrations: list[Migration] | None = None,
) -> sqlite3.Connection:
    """Open (creating if needed) and migrate a vault database.

    Args:
        db_path: Path to database file, or ``":memory:"``
        migrations: Migrations to apply; defaults to all known migrations

    Returns:
        sqlite3.Connection with ``sqlite3.Row`` rows
    """
    is_memory = str(db_path) == MEMORY
    is_new_database = False
    if not is_memory:
        db_path = Path(db_path)
        db_path.parent.mkdir(parents=True, exist_ok=True)
        is_new_database = not db_path.exists()

    connection = sqlite3.connect(
        str(db_path),
        check_same_thread=False,  # sync server answers from the event loop thread
        timeout=30.0,
    )
    connection.row_factory = sqlite3.Row
    connection.execute("PRAGMA foreign_keys = ON")
    connection.execute("PRAGMA journal_mode = WAL")

    # Owner read/write only
    if is_new_database:
        os.chmod(db_path, 0o600)
        logger.info("created vault database at %s", db_path)

    runner = MigrationRunner(connection)
    runner.run_migrations(ALL_MIGRATIONS if migrations is None else migrations)
    return connection


def execute_with_retry(
    connection: sqlite3.Connection,
    sql: str,
    params: tuple | dict | None = None,
    max_retries: int = 3,
) -> sqlite3.Cursor:
    """Execute SQL with retry logic for database locked errors.

    Raises:
        sqlite3.OperationalError: If database remains locked after retries
    """
    for attempt in range(max_retries):
        try:
            if params:
                return connection.execute(sql, params)
            return connection.execute(sql)
        except sqlite3.OperationalError as e:
            if "database is locked" in str(e) and attempt < max_retries - 1:
                # Exponential backoff: 0.1s, 0.2s, 0.4s
                time.sleep(0.1 * (2**attempt))
                continue
            raise

    raise sqlite3.OperationalError("Max retries exceeded")
