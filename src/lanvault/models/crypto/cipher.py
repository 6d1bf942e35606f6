"""AES-256-CBC field encryption with support for historical blob layouts.

New data is always written in the V2 layout: ``base64(IV || ciphertext)``
with a fresh 16-byte IV per call. Older builds wrote three other layouts that
must stay readable, so :func:`decrypt` walks an ordered list of attempt
functions and returns the first one that yields valid UTF-8.

Layouts, in the order they are tried:

* V2 - 16-byte IV prefix, CBC ciphertext.
* V1 - OpenSSL ``Salted__`` envelope; key and IV derived from a passphrase
  (the base64 text of the raw key) with EVP_BytesToKey/MD5.
* V0 - the same passphrase scheme with no salt and no header at all.
* V2 with a mis-packed IV - the IV was serialized as sixteen 4-byte
  big-endian words (one IV byte per word), so the ciphertext starts at
  byte 64.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import os
from collections.abc import Callable
from dataclasses import dataclass
from enum import IntEnum

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from lanvault.models.exceptions import DecryptionFailed

IV_SIZE = 16
BLOCK_SIZE = 16
MISPACKED_IV_SIZE = IV_SIZE * 4
OPENSSL_MAGIC = b"Salted__"
OPENSSL_SALT_SIZE = 8


class CipherFormat(IntEnum):
    """Identifiers for every blob layout the codec understands."""

    V0_RAW = 0
    V1_LEGACY = 1
    V2 = 2
    V2_MISPACKED_IV = 3


CURRENT_FORMAT = CipherFormat.V2


@dataclass(frozen=True)
class Success:
    """A decrypt attempt that produced valid text."""

    plaintext: str
    format: CipherFormat


@dataclass(frozen=True)
class Failure:
    """A decrypt attempt that did not apply or did not verify."""

    reason: str


DecryptOutcome = Success | Failure


# ---------------------------------------------------------------------------
# Primitives
# ---------------------------------------------------------------------------


def _cbc_encrypt(key: bytes, iv: bytes, data: bytes) -> bytes:
    padder = padding.PKCS7(algorithms.AES.block_size).padder()
    padded = padder.update(data) + padder.finalize()
    encryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).encryptor()
    return encryptor.update(padded) + encryptor.finalize()


def _cbc_decrypt(key: bytes, iv: bytes, ciphertext: bytes) -> bytes:
    if not ciphertext or len(ciphertext) % BLOCK_SIZE:
        raise ValueError(f"Ciphertext length {len(ciphertext)} is not block aligned")
    decryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).decryptor()
    padded = decryptor.update(ciphertext) + decryptor.finalize()
    unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
    return unpadder.update(padded) + unpadder.finalize()


def _passphrase(key: bytes) -> bytes:
    """Legacy builds held keys as base64 text and used that text as passphrase."""
    return base64.b64encode(key)


def evp_bytes_to_key(
    passphrase: bytes, salt: bytes, key_len: int = 32, iv_len: int = IV_SIZE
) -> tuple[bytes, bytes]:
    """OpenSSL EVP_BytesToKey with MD5 and a single iteration."""
    derived = b""
    block = b""
    while len(derived) < key_len + iv_len:
        block = hashlib.md5(block + passphrase + salt).digest()
        derived += block
    return derived[:key_len], derived[key_len : key_len + iv_len]


def _decode_text(data: bytes) -> str:
    return data.decode("utf-8", errors="strict")


# ---------------------------------------------------------------------------
# Writers
# ---------------------------------------------------------------------------


def encrypt(plaintext: str, key: bytes) -> str:
    """Encrypt text in the current (V2) layout."""
    iv = os.urandom(IV_SIZE)
    ciphertext = _cbc_encrypt(bytes(key), iv, plaintext.encode("utf-8"))
    return base64.b64encode(iv + ciphertext).decode("ascii")


def encrypt_v1(plaintext: str, key: bytes) -> str:
    """Write the legacy salted passphrase layout."""
    salt = os.urandom(OPENSSL_SALT_SIZE)
    aes_key, iv = evp_bytes_to_key(_passphrase(bytes(key)), salt)
    ciphertext = _cbc_encrypt(aes_key, iv, plaintext.encode("utf-8"))
    return base64.b64encode(OPENSSL_MAGIC + salt + ciphertext).decode("ascii")


def encrypt_v0(plaintext: str, key: bytes) -> str:
    """Write the oldest unsalted passphrase layout."""
    aes_key, iv = evp_bytes_to_key(_passphrase(bytes(key)), b"")
    ciphertext = _cbc_encrypt(aes_key, iv, plaintext.encode("utf-8"))
    return base64.b64encode(ciphertext).decode("ascii")


def pack_iv_words(iv: bytes) -> bytes:
    """Serialize an IV the way the buggy writer did: one byte per 32-bit word."""
    return b"".join(b"\x00\x00\x00" + bytes([b]) for b in iv)


def encrypt_v2_mispacked(plaintext: str, key: bytes) -> str:
    """Reproduce the buggy V2 writer.

    The cipher only ever consumed the first four words of the packed block,
    so those 16 bytes are the IV the ciphertext was produced with.
    """
    packed = pack_iv_words(os.urandom(IV_SIZE))
    ciphertext = _cbc_encrypt(bytes(key), packed[:IV_SIZE], plaintext.encode("utf-8"))
    return base64.b64encode(packed + ciphertext).decode("ascii")


# ---------------------------------------------------------------------------
# Decrypt attempts
# ---------------------------------------------------------------------------


def attempt_v2(raw: bytes, key: bytes) -> DecryptOutcome:
    """IV prefix followed by CBC ciphertext."""
    if len(raw) < IV_SIZE + BLOCK_SIZE:
        return Failure("blob too short for V2")
    try:
        plain = _cbc_decrypt(key, raw[:IV_SIZE], raw[IV_SIZE:])
        return Success(_decode_text(plain), CipherFormat.V2)
    except ValueError as e:
        return Failure(f"V2: {e}")


def attempt_v1(raw: bytes, key: bytes) -> DecryptOutcome:
    """OpenSSL salted envelope with a passphrase-derived key and IV."""
    header = len(OPENSSL_MAGIC) + OPENSSL_SALT_SIZE
    if not raw.startswith(OPENSSL_MAGIC) or len(raw) < header + BLOCK_SIZE:
        return Failure("no salted envelope")
    salt = raw[len(OPENSSL_MAGIC) : header]
    try:
        aes_key, iv = evp_bytes_to_key(_passphrase(key), salt)
        plain = _cbc_decrypt(aes_key, iv, raw[header:])
        return Success(_decode_text(plain), CipherFormat.V1_LEGACY)
    except ValueError as e:
        return Failure(f"V1: {e}")


def attempt_v0(raw: bytes, key: bytes) -> DecryptOutcome:
    """Whole blob is ciphertext; key and IV come from the passphrase alone."""
    try:
        aes_key, iv = evp_bytes_to_key(_passphrase(key), b"")
        plain = _cbc_decrypt(aes_key, iv, raw)
        return Success(_decode_text(plain), CipherFormat.V0_RAW)
    except ValueError as e:
        return Failure(f"V0: {e}")


def attempt_v2_mispacked(raw: bytes, key: bytes) -> DecryptOutcome:
    """64-byte packed IV block followed by CBC ciphertext."""
    if len(raw) < MISPACKED_IV_SIZE + BLOCK_SIZE:
        return Failure("blob too short for a mis-packed IV")
    block = raw[:MISPACKED_IV_SIZE]
    if any(block[i] for i in range(MISPACKED_IV_SIZE) if i % 4 != 3):
        return Failure("leading block is not a packed IV")

    ciphertext = raw[MISPACKED_IV_SIZE:]
    candidates = (block[:IV_SIZE], bytes(block[3::4]))
    reasons = []
    for iv in candidates:
        try:
            plain = _cbc_decrypt(key, iv, ciphertext)
            return Success(_decode_text(plain), CipherFormat.V2_MISPACKED_IV)
        except ValueError as e:
            reasons.append(str(e))
    return Failure(f"V2 mis-packed: {'; '.join(reasons)}")


DecryptAttempt = Callable[[bytes, bytes], DecryptOutcome]

DECRYPT_ATTEMPTS: tuple[DecryptAttempt, ...] = (
    attempt_v2,
    attempt_v1,
    attempt_v0,
    attempt_v2_mispacked,
)


def run_attempts(blob: str, key: bytes) -> DecryptOutcome:
    """Try every layout in priority order and return the first success."""
    try:
        raw = base64.b64decode(blob, validate=True)
    except (binascii.Error, ValueError, TypeError) as e:
        return Failure(f"not base64: {e}")

    key = bytes(key)
    failures = []
    for attempt in DECRYPT_ATTEMPTS:
        outcome = attempt(raw, key)
        if isinstance(outcome, Success):
            return outcome
        failures.append(outcome.reason)
    return Failure(" | ".join(failures))


def decrypt(blob: str, key: bytes) -> str:
    """Decrypt a blob written in any supported layout.

    Raises:
        DecryptionFailed: If no layout produced valid text
    """
    outcome = run_attempts(blob, key)
    if isinstance(outcome, Failure):
        raise DecryptionFailed(f"Decryption failed: {outcome.reason}")
    return outcome.plaintext


def detect_format(blob: str, key: bytes) -> CipherFormat | None:
    """Return the layout a blob decrypts under, or None if it is unreadable."""
    outcome = run_attempts(blob, key)
    return outcome.format if isinstance(outcome, Success) else None
