"""Exception taxonomy for LanVault.

Every error the core raises derives from :class:`LanVaultError` so host code
can catch the whole family in one place. ``WrongPassword`` is an expected
outcome of unlocking; it exists for callers that prefer an exception over the
``None`` returned by :meth:`VaultService.open`.
"""


class LanVaultError(Exception):
    """Base exception for all LanVault errors."""


class KeyDerivationError(LanVaultError):
    """Raised when key derivation receives unusable parameters."""


class DecryptionFailed(LanVaultError):
    """Raised when every known ciphertext layout failed to decrypt a blob."""


class WrongPassword(LanVaultError):
    """Raised when the master password does not match the stored key hash."""


class VaultLocked(LanVaultError):
    """Raised when a vault operation runs without an open session."""


class VaultAlreadyExists(LanVaultError):
    """Raised when creating a vault where one already exists."""


class VaultNotFound(LanVaultError):
    """Raised when opening a vault that has never been created."""


class NotFound(LanVaultError):
    """Raised when an entry id is absent or soft-deleted."""

    def __init__(self, entry_id: str):
        super().__init__(f"Entry not found: {entry_id}")
        self.entry_id = entry_id


class TransportUnavailable(LanVaultError):
    """Raised when the peer is unreachable or the handshake failed."""


class PeerError(TransportUnavailable):
    """Raised when the peer answered a request with an ``error`` message."""


class RequestTimedOut(LanVaultError):
    """Raised when a peer request got no response within its bound."""


class FrameTooLarge(TransportUnavailable):
    """Raised when a peer announces a frame above the size limit."""


class MalformedMessage(LanVaultError):
    """Raised when a frame does not hold a valid protocol message."""


class InvalidTotpSecret(LanVaultError):
    """Raised when a TOTP secret or otpauth URI cannot be decoded."""
