"""Credential entry models.

Timestamps are integer milliseconds since the Unix epoch, the unit both peers
exchange on the wire.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class EntryCreate(BaseModel):
    """Model for creating a new entry.

    Attributes:
        title: Display title (required)
        username: Account name or e-mail
        password: Secret to store
        url: Site address, stored in plaintext for search and autofill
        notes: Free-form notes
        totp_secret: Shared secret for one-time codes
        folder_id: Optional folder reference
        is_favorite: Whether to mark as favorite
    """

    title: str
    username: str = ""
    password: str = ""
    url: str | None = None
    notes: str | None = None
    totp_secret: str | None = None
    folder_id: str | None = None
    is_favorite: bool = False


class EntryUpdate(BaseModel):
    """Model for updating an existing entry.

    All fields are optional - only provided fields will be updated.
    """

    title: str | None = None
    username: str | None = None
    password: str | None = None
    url: str | None = None
    notes: str | None = None
    totp_secret: str | None = None
    folder_id: str | None = None
    is_favorite: bool | None = None


class Entry(BaseModel):
    """A decrypted credential entry.

    Attributes:
        id: UUIDv4, immutable
        created_at: Creation time (ms)
        modified_at: Last mutation time (ms), strictly increasing
        last_used_at: Last time the entry was used for autofill (ms)
        sync_version: Mutation counter, +1 per mutation
        encryption_format_version: Layout the secret fields were written in
    """

    id: str
    title: str
    username: str = ""
    password: str = ""
    url: str | None = None
    notes: str | None = None
    totp_secret: str | None = None
    folder_id: str | None = None
    is_favorite: bool = False
    is_deleted: bool = False
    created_at: int
    modified_at: int
    last_used_at: int | None = None
    sync_version: int = 0
    encryption_format_version: int = 2

    @property
    def is_corrupted(self) -> bool:
        return False

    def to_sync_entry(self) -> SyncEntry:
        """Re-export in the form peers exchange."""
        return SyncEntry(
            id=self.id,
            title=self.title,
            username=self.username,
            password=self.password,
            url=self.url,
            notes=self.notes,
            totp_secret=self.totp_secret,
            folder_id=self.folder_id,
            is_favorite=self.is_favorite,
            created_at=self.created_at,
            modified_at=self.modified_at,
        )


class CorruptedEntry(BaseModel):
    """Placeholder returned for a row whose secret fields cannot be decrypted."""

    id: str
    url: str | None = None
    folder_id: str | None = None
    created_at: int
    modified_at: int
    error: str

    @property
    def is_corrupted(self) -> bool:
        return True


class SyncEntry(BaseModel):
    """Plaintext entry exchanged between peers (camelCase on the wire)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    title: str = ""
    username: str = ""
    password: str = ""
    url: str | None = None
    notes: str | None = None
    totp_secret: str | None = None
    folder_id: str | None = None
    is_favorite: bool = False
    created_at: int
    modified_at: int

    @field_validator("title", "username", "password", mode="before")
    @classmethod
    def _none_to_empty(cls, v):
        return "" if v is None else v

    def to_wire(self) -> dict:
        """Serialize with camelCase keys."""
        return self.model_dump(by_alias=True)


class ImportFailure(BaseModel):
    """One entry that could not be merged."""

    entry_id: str
    reason: str


class ImportResult(BaseModel):
    """Outcome of merging a batch of remote entries."""

    imported: int = 0
    updated: int = 0
    skipped: int = 0
    failures: list[ImportFailure] = Field(default_factory=list)

    @property
    def total(self) -> int:
        return self.imported + self.updated + self.skipped + len(self.failures)


class VaultMeta(BaseModel):
    """Vault metadata row. Never contains the password or any key."""

    salt: bytes
    key_hash: bytes
    iterations: int
    created_at: int
    version: int = 1
    last_unlocked_at: int | None = None
