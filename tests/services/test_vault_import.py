"""Tests for merging peer entries into the vault."""

from __future__ import annotations

import pytest

from lanvault.models.entry import EntryCreate, SyncEntry
from lanvault.models.exceptions import VaultLocked


def _remote(entry_id="remote-1", modified_at=1_000, **fields):
    values = {"id": entry_id, "title": "Remote", "createdAt": 500, "modifiedAt": modified_at}
    values.update(fields)
    return values


@pytest.fixture
def local_entry(vault_service, session):
    entry_id = vault_service.add_entry(session, EntryCreate(title="Local", password="local-pw"))
    return vault_service.get(session, entry_id)


class TestMerge:
    def test_unknown_entry_is_imported_verbatim(self, vault_service, session):
        result = vault_service.import_entries(
            session, [_remote(username="u", password="p", totpSecret="S", isFavorite=True)]
        )
        assert (result.imported, result.updated, result.skipped) == (1, 0, 0)

        entry = vault_service.get(session, "remote-1")
        assert entry.username == "u"
        assert entry.totp_secret == "S"
        assert entry.is_favorite is True
        assert (entry.created_at, entry.modified_at) == (500, 1_000)

    def test_newer_remote_overwrites(self, vault_service, session, local_entry):
        remote = _remote(local_entry.id, local_entry.modified_at + 1, password="remote-pw")
        result = vault_service.import_entries(session, [remote])
        assert result.updated == 1

        entry = vault_service.get(session, local_entry.id)
        assert entry.title == "Remote"
        assert entry.password == "remote-pw"
        assert entry.modified_at == local_entry.modified_at + 1
        assert entry.sync_version == local_entry.sync_version + 1
        assert entry.created_at == 500

    def test_older_remote_is_skipped(self, vault_service, session, local_entry):
        result = vault_service.import_entries(
            session, [_remote(local_entry.id, local_entry.modified_at - 1)]
        )
        assert result.skipped == 1
        assert vault_service.get(session, local_entry.id).title == "Local"

    def test_equal_timestamp_keeps_local(self, vault_service, session, local_entry):
        result = vault_service.import_entries(
            session, [_remote(local_entry.id, local_entry.modified_at)]
        )
        assert result.skipped == 1
        assert vault_service.get(session, local_entry.id).password == "local-pw"

    def test_newer_remote_revives_tombstone(self, vault_service, session, local_entry):
        vault_service.delete_entry(session, local_entry.id)
        tombstone = vault_service.entry_repo.get_row(local_entry.id, include_deleted=True)

        result = vault_service.import_entries(
            session, [_remote(local_entry.id, tombstone["modified_at"] + 1)]
        )
        assert result.updated == 1
        assert vault_service.get(session, local_entry.id).title == "Remote"

    def test_older_remote_leaves_tombstone(self, vault_service, session, local_entry):
        vault_service.delete_entry(session, local_entry.id)
        result = vault_service.import_entries(session, [_remote(local_entry.id, 1)])
        assert result.skipped == 1
        assert vault_service.list_all(session) == []

    def test_accepts_model_instances(self, vault_service, session):
        entry = SyncEntry(id="m1", title="Model", created_at=1, modified_at=2)
        assert vault_service.import_entries(session, [entry]).imported == 1

    def test_empty_batch(self, vault_service, session):
        result = vault_service.import_entries(session, [])
        assert result.total == 0


class TestFailureIsolation:
    def test_invalid_entry_does_not_stop_batch(self, vault_service, session):
        batch = [
            _remote("ok-1"),
            {"id": "broken", "title": "No timestamps"},
            "not an object",
            _remote("ok-2"),
        ]
        result = vault_service.import_entries(session, batch)

        assert result.imported == 2
        assert [f.entry_id for f in result.failures] == ["broken", "<invalid>"]
        assert result.total == 4
        assert {e.id for e in vault_service.list_all(session)} == {"ok-1", "ok-2"}

    def test_database_error_is_recorded(self, vault_service, session, monkeypatch):
        import sqlite3

        original_insert = vault_service.entry_repo.insert

        def flaky_insert(values):
            if values["id"] == "bad":
                raise sqlite3.IntegrityError("simulated failure")
            original_insert(values)

        monkeypatch.setattr(vault_service.entry_repo, "insert", flaky_insert)
        result = vault_service.import_entries(session, [_remote("bad"), _remote("good")])

        assert result.imported == 1
        assert result.failures[0].entry_id == "bad"
        assert "simulated failure" in result.failures[0].reason
        assert vault_service.entry_repo.get_row("bad") is None

    def test_locked_session_rejects_batch(self, vault_service, session):
        vault_service.lock(session)
        with pytest.raises(VaultLocked):
            vault_service.import_entries(session, [_remote()])
