"""Encrypted vault store.

:class:`VaultService` owns one SQLite connection and implements every vault
operation. Unlocking yields a :class:`VaultSession`, which the caller passes to
each operation and ends with :meth:`VaultService.lock`. Nothing about the
unlocked state is global: two sessions on two services never share keys.

Secret fields (title, username, password, notes, TOTP secret) are encrypted
with the session's vault key; the URL and folder stay in plaintext so they can
be searched without decrypting.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
import time
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any
from urllib.parse import urlsplit

from pydantic import ValidationError

from lanvault.adapters.sqlite.connection import connect
from lanvault.adapters.sqlite.entry_repository import ENCRYPTED_FIELDS, EntryRepository
from lanvault.adapters.sqlite.meta_repository import MetaRepository
from lanvault.adapters.sqlite.utils import generate_uuid, next_modified_at, now_ms
from lanvault.models.crypto.cipher import CURRENT_FORMAT, decrypt, detect_format, encrypt
from lanvault.models.crypto.keys import (
    DerivedKeySet,
    create_header,
    derive_master_key,
    derive_master_key_async,
    derive_sub_keys,
    hash_for_verification,
    verify_key_hash,
)
from lanvault.models.entry import (
    CorruptedEntry,
    Entry,
    EntryCreate,
    EntryUpdate,
    ImportFailure,
    ImportResult,
    SyncEntry,
    VaultMeta,
)
from lanvault.models.exceptions import (
    DecryptionFailed,
    LanVaultError,
    NotFound,
    VaultAlreadyExists,
    VaultLocked,
    VaultNotFound,
    WrongPassword,
)

EXPORT_FORMAT = "lanvault-export"
EXPORT_VERSION = 1

REQUIRED_ENTRY_FIELDS = ("title", "username", "password", "is_favorite")

logger = logging.getLogger(__name__)


class VaultSession:
    """Unlocked state of one vault.

    Holds the derived keys, the vault metadata and the time of last activity.
    Crypto work borrows the keys through :meth:`keys`, which holds the session
    lock for the duration of the operation; :meth:`close` takes the same lock,
    so keys are never wiped under an in-flight operation.

    Args:
        keys: Sub-keys derived from the master key
        meta: Vault metadata the keys belong to
        auto_lock_seconds: Idle time after which the session closes itself,
            0 to disable
    """

    def __init__(self, keys: DerivedKeySet, meta: VaultMeta, auto_lock_seconds: int = 0):
        self._keys = keys
        self.meta = meta
        self.auto_lock_seconds = auto_lock_seconds
        self.last_activity = time.monotonic()
        self._mutex = threading.RLock()
        self._closed = False

    @property
    def is_open(self) -> bool:
        return not self._closed and not self.is_expired()

    def is_expired(self, now: float | None = None) -> bool:
        if not self.auto_lock_seconds:
            return False
        now = time.monotonic() if now is None else now
        return now - self.last_activity >= self.auto_lock_seconds

    @contextmanager
    def keys(self) -> Iterator[DerivedKeySet]:
        """Borrow the key set for one operation.

        Raises:
            VaultLocked: If the session was closed or has idled out
        """
        with self._mutex:
            if self._closed:
                raise VaultLocked("Vault is locked")
            if self.is_expired():
                self._wipe()
                logger.info("session auto-locked after %ss idle", self.auto_lock_seconds)
                raise VaultLocked("Vault auto-locked after inactivity")
            self.last_activity = time.monotonic()
            yield self._keys

    def close(self) -> None:
        """Zero the keys. Waits for any operation currently holding them."""
        with self._mutex:
            self._wipe()

    def _wipe(self) -> None:
        if not self._closed:
            self._keys.wipe()
            self._closed = True

    def __repr__(self) -> str:
        """String representation (hides key material)."""
        return f"VaultSession(open={self.is_open})"


class SessionEntrySource:
    """Entry source for the sync responder, bound to one session."""

    def __init__(self, service: VaultService, session: VaultSession):
        self.service = service
        self.session = session

    def export_entries(self) -> list[SyncEntry]:
        return self.service.export_for_sync(self.session)


class VaultService:
    """Service for the encrypted credential store.

    Args:
        db_path: Database file, or ``":memory:"``
        auto_lock_seconds: Idle timeout applied to sessions this service opens
        kdf_iterations: Iteration count for newly created vaults
    """

    def __init__(
        self,
        db_path: str | Path,
        auto_lock_seconds: int = 0,
        kdf_iterations: int | None = None,
    ):
        self.db_path = db_path
        self.auto_lock_seconds = auto_lock_seconds
        self.kdf_iterations = kdf_iterations
        self.connection = connect(db_path)
        self.meta_repo = MetaRepository(self.connection)
        self.entry_repo = EntryRepository(self.connection)

    def close(self) -> None:
        """Close the database connection."""
        self.connection.close()

    def __enter__(self) -> VaultService:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def exists(self) -> bool:
        """Whether a vault has been created in this database."""
        return self.meta_repo.exists()

    def create(self, password: str, iterations: int | None = None) -> VaultSession:
        """Create a new vault and return an open session on it.

        Raises:
            VaultAlreadyExists: If the database already holds a vault
        """
        if self.meta_repo.exists():
            raise VaultAlreadyExists("A vault already exists in this database")

        header = create_header(iterations or self.kdf_iterations)
        master_key = derive_master_key(password, header.salt, header.iterations)
        meta = VaultMeta(
            salt=header.salt,
            key_hash=hash_for_verification(master_key),
            iterations=header.iterations,
            created_at=now_ms(),
            version=header.version,
        )
        self.meta_repo.create(meta)
        logger.info("vault created (iterations=%d)", header.iterations)
        return self._start_session(master_key, meta)

    def open(self, password: str) -> VaultSession | None:
        """Unlock the vault.

        Returns:
            An open session, or None if the password is wrong

        Raises:
            VaultNotFound: If no vault was created in this database
        """
        meta = self._require_meta()
        master_key = derive_master_key(password, meta.salt, meta.iterations)
        return self._verify_and_start(master_key, meta)

    async def open_async(self, password: str) -> VaultSession | None:
        """Like :meth:`open`, with key derivation off the event loop."""
        meta = self._require_meta()
        master_key = await derive_master_key_async(password, meta.salt, meta.iterations)
        return self._verify_and_start(master_key, meta)

    def unlock(self, password: str) -> VaultSession:
        """Like :meth:`open`, but raises on a wrong password.

        Raises:
            WrongPassword: If the password does not match
            VaultNotFound: If no vault was created in this database
        """
        session = self.open(password)
        if session is None:
            raise WrongPassword("Incorrect master password")
        return session

    def lock(self, session: VaultSession) -> None:
        """Zero and discard the session's keys."""
        session.close()
        logger.info("vault locked")

    def _require_meta(self) -> VaultMeta:
        meta = self.meta_repo.get()
        if meta is None:
            raise VaultNotFound(f"No vault found at {self.db_path}")
        return meta

    def _verify_and_start(self, master_key: bytes, meta: VaultMeta) -> VaultSession | None:
        if not verify_key_hash(master_key, meta.key_hash):
            logger.warning("unlock failed: wrong password")
            return None
        self.meta_repo.touch_unlocked(now_ms())
        logger.info("vault unlocked")
        return self._start_session(master_key, meta)

    def _start_session(self, master_key: bytes, meta: VaultMeta) -> VaultSession:
        keys = derive_sub_keys(master_key)
        return VaultSession(keys, meta, auto_lock_seconds=self.auto_lock_seconds)

    # ------------------------------------------------------------------
    # Row conversion
    # ------------------------------------------------------------------

    @staticmethod
    def _encrypt_fields(keys: DerivedKeySet, values: dict[str, Any]) -> dict[str, Any]:
        encrypted = {}
        for name in ENCRYPTED_FIELDS:
            value = values.get(name)
            encrypted[name] = None if value is None else encrypt(value, keys.vault_key)
        encrypted["encryption_format_version"] = int(CURRENT_FORMAT)
        return encrypted

    @staticmethod
    def _decrypt_row(keys: DerivedKeySet, row: dict[str, Any]) -> Entry:
        """Decrypt a stored row.

        Raises:
            DecryptionFailed: If any secret field is unreadable
        """
        plain = {
            name: None if row[name] is None else decrypt(row[name], keys.vault_key)
            for name in ENCRYPTED_FIELDS
        }
        return Entry(
            id=row["id"],
            **plain,
            url=row["url"],
            folder_id=row["folder_id"],
            is_favorite=bool(row["is_favorite"]),
            is_deleted=bool(row["is_deleted"]),
            created_at=row["created_at"],
            modified_at=row["modified_at"],
            last_used_at=row["last_used_at"],
            sync_version=row["sync_version"],
            encryption_format_version=row["encryption_format_version"],
        )

    def _decrypt_rows(self, keys: DerivedKeySet, rows: list[dict[str, Any]]) -> list[Entry]:
        entries = []
        for row in rows:
            try:
                entries.append(self._decrypt_row(keys, row))
            except DecryptionFailed as e:
                logger.warning("skipping unreadable entry %s: %s", row["id"], e)
        return entries

    @staticmethod
    def _mutation(row: dict[str, Any]) -> dict[str, Any]:
        return {
            "modified_at": next_modified_at(row["modified_at"]),
            "sync_version": row["sync_version"] + 1,
        }

    def _live_row(self, entry_id: str) -> dict[str, Any]:
        row = self.entry_repo.get_row(entry_id)
        if row is None:
            raise NotFound(entry_id)
        return row

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def add_entry(self, session: VaultSession, fields: EntryCreate | dict) -> str:
        """Encrypt and store a new entry.

        Returns:
            The new entry id
        """
        if isinstance(fields, dict):
            fields = EntryCreate.model_validate(fields)
        with session.keys() as keys:
            entry_id = generate_uuid()
            now = now_ms()
            values = {
                "id": entry_id,
                **self._encrypt_fields(keys, fields.model_dump()),
                "url": fields.url,
                "folder_id": fields.folder_id,
                "is_favorite": int(fields.is_favorite),
                "is_deleted": 0,
                "created_at": now,
                "modified_at": now,
                "sync_version": 0,
            }
            with self.connection:
                self.entry_repo.insert(values)
        logger.info("entry added: %s", entry_id)
        return entry_id

    def update_entry(
        self, session: VaultSession, entry_id: str, changes: EntryUpdate | dict
    ) -> Entry:
        """Merge ``changes`` into an entry and store it re-encrypted.

        Raises:
            NotFound: If the entry is absent or deleted
            DecryptionFailed: If the stored entry cannot be read
        """
        if isinstance(changes, dict):
            changes = EntryUpdate.model_validate(changes)
        with session.keys() as keys:
            row = self._live_row(entry_id)
            current = self._decrypt_row(keys, row)
            update = changes.model_dump(exclude_unset=True)
            # Required fields cannot be cleared; None leaves them unchanged
            for name in REQUIRED_ENTRY_FIELDS:
                if name in update and update[name] is None:
                    del update[name]
            merged = current.model_copy(update=update)
            values = {
                **self._encrypt_fields(keys, merged.model_dump()),
                "url": merged.url,
                "folder_id": merged.folder_id,
                "is_favorite": int(merged.is_favorite),
                **self._mutation(row),
            }
            with self.connection:
                self.entry_repo.update(entry_id, values)
            logger.info("entry updated: %s", entry_id)
            return self._decrypt_row(keys, self._live_row(entry_id))

    def delete_entry(self, session: VaultSession, entry_id: str) -> None:
        """Soft delete: the row stays as a tombstone and disappears from reads.

        Raises:
            NotFound: If the entry is absent or already deleted
        """
        with session.keys():
            row = self._live_row(entry_id)
            with self.connection:
                self.entry_repo.update(entry_id, {"is_deleted": 1, **self._mutation(row)})
        logger.info("entry deleted: %s", entry_id)

    def toggle_favorite(self, session: VaultSession, entry_id: str) -> bool:
        """Flip the favorite flag.

        Returns:
            The new flag value
        """
        with session.keys():
            row = self._live_row(entry_id)
            favorite = not row["is_favorite"]
            with self.connection:
                self.entry_repo.update(
                    entry_id, {"is_favorite": int(favorite), **self._mutation(row)}
                )
        return favorite

    def record_used(self, session: VaultSession, entry_id: str) -> None:
        """Stamp ``last_used_at``. Not a content mutation: versions are untouched."""
        with session.keys():
            self._live_row(entry_id)
            with self.connection:
                self.entry_repo.update(entry_id, {"last_used_at": now_ms()})

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, session: VaultSession, entry_id: str) -> Entry | CorruptedEntry:
        """Fetch one entry.

        Returns:
            The decrypted entry, or a :class:`CorruptedEntry` placeholder if
            its fields cannot be decrypted

        Raises:
            NotFound: If the entry is absent or deleted
        """
        with session.keys() as keys:
            row = self._live_row(entry_id)
            try:
                return self._decrypt_row(keys, row)
            except DecryptionFailed as e:
                logger.warning("entry %s is corrupted: %s", entry_id, e)
                return CorruptedEntry(
                    id=row["id"],
                    url=row["url"],
                    folder_id=row["folder_id"],
                    created_at=row["created_at"],
                    modified_at=row["modified_at"],
                    error=str(e),
                )

    def list_all(self, session: VaultSession) -> list[Entry]:
        """All readable live entries, most recently modified first."""
        with session.keys() as keys:
            return self._decrypt_rows(keys, self.entry_repo.list_rows())

    def list_favorites(self, session: VaultSession) -> list[Entry]:
        with session.keys() as keys:
            return self._decrypt_rows(keys, self.entry_repo.list_rows(favorites_only=True))

    def search(self, session: VaultSession, query: str) -> list[Entry]:
        """Case-insensitive substring match on title, username and URL."""
        needle = query.casefold()
        return [
            entry
            for entry in self.list_all(session)
            if needle in entry.title.casefold()
            or needle in entry.username.casefold()
            or needle in (entry.url or "").casefold()
        ]

    def find_by_url(self, session: VaultSession, url: str) -> list[Entry]:
        """Entries whose URL host matches ``url``'s host or a parent/child domain of it."""
        host = _host_of(url)
        if not host:
            return []
        with session.keys() as keys:
            rows = [
                row
                for row in self.entry_repo.list_by_url(host.split(".")[-1])
                if _hosts_related(host, _host_of(row["url"]))
            ]
            return self._decrypt_rows(keys, rows)

    def corrupted_ids(self, session: VaultSession, favorites_only: bool = False) -> list[str]:
        """Ids of live entries whose fields cannot be decrypted."""
        with session.keys() as keys:
            bad = []
            for row in self.entry_repo.list_rows(favorites_only=favorites_only):
                try:
                    self._decrypt_row(keys, row)
                except DecryptionFailed:
                    bad.append(row["id"])
            return bad

    def format_census(self, session: VaultSession) -> dict[str, int]:
        """Count stored secret fields by the layout they decrypt under."""
        census: dict[str, int] = {}
        with session.keys() as keys:
            for row in self.entry_repo.list_rows():
                for name in ENCRYPTED_FIELDS:
                    if row[name] is None:
                        continue
                    fmt = detect_format(row[name], keys.vault_key)
                    label = fmt.name if fmt is not None else "UNREADABLE"
                    census[label] = census.get(label, 0) + 1
        return census

    def count(self) -> int:
        return self.entry_repo.count()

    # ------------------------------------------------------------------
    # Import / export
    # ------------------------------------------------------------------

    def export_for_sync(
        self, session: VaultSession, since: int | None = None
    ) -> list[SyncEntry]:
        """Live entries in wire form, optionally only those modified after ``since``."""
        entries = self.list_all(session)
        if since is not None:
            entries = [e for e in entries if e.modified_at > since]
        return [e.to_sync_entry() for e in entries]

    def entry_source(self, session: VaultSession) -> SessionEntrySource:
        """Bind this vault and session as a sync responder's entry source."""
        return SessionEntrySource(self, session)

    def import_entries(
        self, session: VaultSession, remote_entries: Iterable[SyncEntry | dict]
    ) -> ImportResult:
        """Merge entries received from a peer.

        Per entry: unknown ids are inserted as-is; known ids are overwritten
        only when the incoming ``modified_at`` is strictly newer (this also
        revives a local tombstone); otherwise the local copy wins. Each entry
        commits on its own, and a failing entry is recorded without stopping
        the batch.
        """
        result = ImportResult()
        with session.keys() as keys:
            for item in remote_entries:
                try:
                    incoming = (
                        item if isinstance(item, SyncEntry) else SyncEntry.model_validate(item)
                    )
                    outcome = self._merge_one(keys, incoming)
                except (ValidationError, LanVaultError, sqlite3.Error) as e:
                    entry_id = _raw_id(item)
                    logger.warning("import failed for entry %s: %s", entry_id, e)
                    result.failures.append(ImportFailure(entry_id=entry_id, reason=str(e)))
                    continue
                setattr(result, outcome, getattr(result, outcome) + 1)

        logger.info(
            "import finished: %d imported, %d updated, %d skipped, %d failed",
            result.imported,
            result.updated,
            result.skipped,
            len(result.failures),
        )
        return result

    def _merge_one(self, keys: DerivedKeySet, incoming: SyncEntry) -> str:
        values = {
            **self._encrypt_fields(keys, incoming.model_dump()),
            "url": incoming.url,
            "folder_id": incoming.folder_id,
            "is_favorite": int(incoming.is_favorite),
            "is_deleted": 0,
            "created_at": incoming.created_at,
            "modified_at": incoming.modified_at,
        }
        with self.connection:
            local = self.entry_repo.get_row(incoming.id, include_deleted=True)
            if local is None:
                self.entry_repo.insert({"id": incoming.id, **values, "sync_version": 0})
                return "imported"
            if incoming.modified_at > local["modified_at"]:
                values["sync_version"] = local["sync_version"] + 1
                self.entry_repo.update(incoming.id, values)
                return "updated"
        return "skipped"

    def export_encrypted(self, session: VaultSession) -> str:
        """Serialize all live entries into a blob sealed with the export key."""
        entries = self.export_for_sync(session)
        document = json.dumps(
            {
                "format": EXPORT_FORMAT,
                "version": EXPORT_VERSION,
                "exportedAt": now_ms(),
                "entries": [e.to_wire() for e in entries],
            }
        )
        with session.keys() as keys:
            blob = encrypt(document, keys.export_key)
        logger.info("exported %d entries", len(entries))
        return blob

    def import_encrypted(self, session: VaultSession, blob: str) -> ImportResult:
        """Merge an export produced by :meth:`export_encrypted` of the same vault.

        Raises:
            DecryptionFailed: If the blob was not sealed with this vault's export key
            ValueError: If the decrypted document is not an export
        """
        with session.keys() as keys:
            document = decrypt(blob.strip(), keys.export_key)
        try:
            payload = json.loads(document)
        except json.JSONDecodeError as e:
            raise ValueError(f"Export is not valid JSON: {e}") from e
        if not isinstance(payload, dict) or payload.get("format") != EXPORT_FORMAT:
            raise ValueError("Not a lanvault export")
        return self.import_entries(session, payload.get("entries", []))


def _raw_id(item: Any) -> str:
    if isinstance(item, SyncEntry):
        return item.id
    if isinstance(item, dict):
        return str(item.get("id", "<missing id>"))
    return "<invalid>"


def _host_of(url: str | None) -> str:
    if not url:
        return ""
    if "://" not in url:
        url = f"https://{url}"
    return (urlsplit(url).hostname or "").lower().removeprefix("www.")


def _hosts_related(host: str, other: str) -> bool:
    if not other:
        return False
    return host == other or host.endswith(f".{other}") or other.endswith(f".{host}")
