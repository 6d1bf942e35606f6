"""Crypto primitives for the LanVault storage engine.

This package provides key derivation and the versioned field codec.
"""

from .cipher import (
    CURRENT_FORMAT,
    CipherFormat,
    DecryptOutcome,
    Failure,
    Success,
    decrypt,
    detect_format,
    encrypt,
)
from .keys import (
    DEFAULT_ITERATIONS,
    LEGACY_ITERATIONS,
    DerivedKeySet,
    VaultHeader,
    create_header,
    derive_master_key,
    derive_master_key_async,
    derive_sub_keys,
    hash_for_verification,
    verify_key_hash,
)

__all__ = [
    "CURRENT_FORMAT",
    "CipherFormat",
    "DecryptOutcome",
    "Failure",
    "Success",
    "decrypt",
    "detect_format",
    "encrypt",
    "DEFAULT_ITERATIONS",
    "LEGACY_ITERATIONS",
    "DerivedKeySet",
    "VaultHeader",
    "create_header",
    "derive_master_key",
    "derive_master_key_async",
    "derive_sub_keys",
    "hash_for_verification",
    "verify_key_hash",
]
