"""SQLite storage for the encrypted vault.

Layout::

    vault_meta      single row: salt, key hash, KDF iterations
    entries         one row per credential, secret fields encrypted
    schema_version  applied migrations
"""

from lanvault.adapters.sqlite.connection import connect, execute_with_retry
from lanvault.adapters.sqlite.entry_repository import EntryRepository
from lanvault.adapters.sqlite.meta_repository import MetaRepository

__all__ = ["connect", "execute_with_retry", "EntryRepository", "MetaRepository"]
