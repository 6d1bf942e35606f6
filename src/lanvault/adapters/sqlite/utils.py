"""Utility functions for SQLite adapter."""

from __future__ import annotations

import time
import uuid
from typing import Any


def generate_uuid() -> str:
    """Generate a new UUID as string.

    Returns:
        UUID string (e.g., "123e4567-e89b-12d3-a456-426614174000")
    """
    return str(uuid.uuid4())


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return time.time_ns() // 1_000_000


def next_modified_at(previous: int | None) -> int:
    """Timestamp for a mutation that must sort after ``previous``.

    Two mutations inside the same millisecond still get distinct, increasing
    stamps.
    """
    now = now_ms()
    if previous is not None and now <= previous:
        return previous + 1
    return now


def row_to_dict(row: Any) -> dict[str, Any]:
    """Convert sqlite3.Row to dictionary.

    Args:
        row: sqlite3.Row object

    Returns:
        Dictionary with column names as keys
    """
    if row is None:
        return {}
    return {key: row[key] for key in row.keys()}


def table_columns(connection: Any, table: str) -> set[str]:
    """Column names currently present on ``table``."""
    return {row[1] for row in connection.execute(f"PRAGMA table_info({table})")}
