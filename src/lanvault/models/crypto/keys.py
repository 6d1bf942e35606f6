"""Master key derivation and purpose-scoped sub-keys.

Key hierarchy::

    password + salt --PBKDF2-HMAC-SHA256--> master key
    master key --HMAC-SHA256("vault-key")--> vault key   (entry fields)
               --HMAC-SHA256("sync-key")---> sync key    (LAN sync)
               --HMAC-SHA256("export-key")-> export key  (encrypted exports)
"""

from __future__ import annotations

import asyncio
import hashlib
import hmac
import os
from dataclasses import dataclass, field

from lanvault.models.exceptions import KeyDerivationError

# AES-256 requires 256-bit (32-byte) keys
KEY_SIZE = 32
SALT_SIZE = 32

# Vaults created before the iteration count was stored use this value.
LEGACY_ITERATIONS = 100_000
DEFAULT_ITERATIONS = 600_000

HEADER_VERSION = 1

VAULT_KEY_LABEL = b"vault-key"
SYNC_KEY_LABEL = b"sync-key"
EXPORT_KEY_LABEL = b"export-key"


@dataclass(frozen=True)
class VaultHeader:
    """Parameters needed to re-derive the master key of a vault."""

    salt: bytes
    iterations: int = DEFAULT_ITERATIONS
    version: int = HEADER_VERSION


@dataclass
class DerivedKeySet:
    """Sub-keys derived from one master key.

    Keys live in mutable buffers so :meth:`wipe` can overwrite them in place.
    """

    vault_key: bytearray
    sync_key: bytearray
    export_key: bytearray
    wiped: bool = field(default=False, compare=False)

    def wipe(self) -> None:
        """Overwrite every key with zeros."""
        for buf in (self.vault_key, self.sync_key, self.export_key):
            for i in range(len(buf)):
                buf[i] = 0
        self.wiped = True

    def __repr__(self) -> str:
        """String representation (hides key material)."""
        return f"DerivedKeySet(wiped={self.wiped})"


def generate_salt() -> bytes:
    """Generate a random salt for PBKDF2."""
    return os.urandom(SALT_SIZE)


def create_header(iterations: int | None = None) -> VaultHeader:
    """Create a header with a fresh salt for a new vault."""
    return VaultHeader(
        salt=generate_salt(),
        iterations=iterations or DEFAULT_ITERATIONS,
        version=HEADER_VERSION,
    )


def derive_master_key(
    password: str, salt: bytes, iterations: int = LEGACY_ITERATIONS
) -> bytes:
    """Derive the master key from a password using PBKDF2-HMAC-SHA256."""
    if not salt:
        raise KeyDerivationError("Salt must not be empty")
    if iterations <= 0:
        raise KeyDerivationError(f"Iterations must be positive, got {iterations}")

    return hashlib.pbkdf2_hmac(
        "sha256",
        password.encode("utf-8"),
        salt,
        iterations,
        dklen=KEY_SIZE,
    )


async def derive_master_key_async(
    password: str, salt: bytes, iterations: int = LEGACY_ITERATIONS
) -> bytes:
    """Run :func:`derive_master_key` in a worker thread."""
    return await asyncio.to_thread(derive_master_key, password, salt, iterations)


def _expand(master_key: bytes, label: bytes) -> bytearray:
    return bytearray(hmac.new(master_key, label, hashlib.sha256).digest())


def derive_sub_keys(master_key: bytes) -> DerivedKeySet:
    """Fan the master key out into independent sub-keys."""
    return DerivedKeySet(
        vault_key=_expand(master_key, VAULT_KEY_LABEL),
        sync_key=_expand(master_key, SYNC_KEY_LABEL),
        export_key=_expand(master_key, EXPORT_KEY_LABEL),
    )


def hash_for_verification(key: bytes) -> bytes:
    """One-way hash of the master key, stored to verify password guesses."""
    return hashlib.sha256(key).digest()


def verify_key_hash(key: bytes, expected_hash: bytes) -> bool:
    """Compare a key against a stored verification hash in constant time."""
    return hmac.compare_digest(hash_for_verification(key), expected_hash)
