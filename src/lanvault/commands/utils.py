"""Helpers shared by the command groups."""

from __future__ import annotations

import os
from collections.abc import Iterator
from contextlib import contextmanager

import typer

from lanvault.models.entry import CorruptedEntry, Entry
from lanvault.services.config_service import get_config_service
from lanvault.services.vault_service import VaultService, VaultSession
from lanvault.utils.ui.formatters import MASK, format_timestamp

PASSWORD_ENV = "LANVAULT_PASSWORD"
UNREADABLE = "<unreadable>"


def read_password(confirm: bool = False) -> str:
    """Master password from ``LANVAULT_PASSWORD`` or a hidden prompt."""
    password = os.environ.get(PASSWORD_ENV)
    if password:
        return password
    return typer.prompt("Master password", hide_input=True, confirmation_prompt=confirm)


def get_vault_service() -> VaultService:
    """Open the configured vault database."""
    config_svc = get_config_service()
    return VaultService(
        config_svc.vault_path,
        auto_lock_seconds=config_svc.config.vault.auto_lock_seconds,
        kdf_iterations=config_svc.config.vault.kdf_iterations,
    )


@contextmanager
def unlocked_vault() -> Iterator[tuple[VaultService, VaultSession]]:
    """Unlock the configured vault for the duration of one command."""
    service = get_vault_service()
    try:
        session = service.unlock(read_password())
        try:
            yield service, session
        finally:
            service.lock(session)
    finally:
        service.close()


def entry_summary(entry: Entry) -> dict:
    """One table row for an entry list."""
    return {
        "id": entry.id,
        "title": entry.title,
        "username": entry.username,
        "url": entry.url,
        "favorite": entry.is_favorite,
        "modified": format_timestamp(entry.modified_at),
        "status": "ok",
    }


def corrupted_summary(entry: CorruptedEntry) -> dict:
    """Placeholder row for an entry that cannot be decrypted."""
    return {
        "id": entry.id,
        "title": UNREADABLE,
        "username": "",
        "url": entry.url,
        "favorite": None,
        "modified": format_timestamp(entry.modified_at),
        "status": "corrupted",
    }


def entry_detail(entry: Entry | CorruptedEntry, show_password: bool = False) -> dict:
    """Full key/value view of one entry."""
    if isinstance(entry, CorruptedEntry):
        return {
            "id": entry.id,
            "url": entry.url,
            "status": "corrupted",
            "error": entry.error,
            "modified": format_timestamp(entry.modified_at),
        }
    return {
        "id": entry.id,
        "title": entry.title,
        "username": entry.username,
        "password": entry.password if show_password else MASK,
        "url": entry.url,
        "notes": entry.notes,
        "folder_id": entry.folder_id,
        "favorite": entry.is_favorite,
        "created": format_timestamp(entry.created_at),
        "modified": format_timestamp(entry.modified_at),
        "last_used": format_timestamp(entry.last_used_at),
        "sync_version": entry.sync_version,
    }
