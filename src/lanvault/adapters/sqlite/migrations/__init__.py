"""Vault schema migrations, in application order."""

from lanvault.adapters.sqlite.migrations.m001_initial_schema import initial_migration
from lanvault.adapters.sqlite.migrations.m002_favorites_and_kdf import (
    favorites_and_kdf_migration,
)
from lanvault.adapters.sqlite.migrations.runner import Migration, MigrationRunner

ALL_MIGRATIONS: list[Migration] = [
    initial_migration,
    favorites_and_kdf_migration,
]

__all__ = ["ALL_MIGRATIONS", "Migration", "MigrationRunner"]
