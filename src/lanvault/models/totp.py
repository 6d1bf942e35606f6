"""Time-based one-time passwords (RFC 6238) for entries that carry a TOTP secret.

Secrets are base32 strings as shown by authenticator setup screens, or whole
``otpauth://`` URIs, from which the ``secret`` parameter is taken. Codes are
six digits over a 30-second period using HMAC-SHA1.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import re
import struct
import time
from dataclasses import dataclass
from urllib.parse import parse_qs, unquote, urlsplit

from lanvault.models.exceptions import InvalidTotpSecret

DIGITS = 6
PERIOD = 30

OTPAUTH_SCHEME = "otpauth"
_SECRET_PARAM = re.compile(r"secret=([^&]+)", re.IGNORECASE)


@dataclass(frozen=True)
class TotpUri:
    """The parts of an ``otpauth://`` URI a vault cares about."""

    secret: str
    issuer: str | None = None
    account: str | None = None


@dataclass(frozen=True)
class TotpCode:
    code: str
    remaining: int
    period: int = PERIOD


def parse_totp_uri(uri: str) -> TotpUri | None:
    """Split an ``otpauth://`` URI.

    Returns:
        The secret, issuer and account, or None if ``uri`` is not an otpauth
        URI or has no secret
    """
    try:
        parts = urlsplit(uri.strip())
    except ValueError:
        return None
    if parts.scheme.lower() != OTPAUTH_SCHEME:
        return None
    params = parse_qs(parts.query)
    secret = (params.get("secret") or [""])[0]
    if not secret:
        return None
    account = unquote(parts.path.lstrip("/")) or None
    issuer = (params.get("issuer") or [None])[0]
    return TotpUri(secret=secret, issuer=issuer, account=account)


def _extract_secret(secret: str) -> str:
    value = re.sub(r"\s+", "", secret)
    if value.lower().startswith(f"{OTPAUTH_SCHEME}://"):
        parsed = parse_totp_uri(value)
        if parsed is not None:
            value = parsed.secret
        else:
            match = _SECRET_PARAM.search(value)
            value = match.group(1) if match else ""
    return value


def decode_secret(secret: str) -> bytes:
    """Decode a base32 secret, tolerating spaces, lower case and missing padding.

    Raises:
        InvalidTotpSecret: If nothing decodable is left
    """
    value = _extract_secret(secret).upper().rstrip("=")
    if not value:
        raise InvalidTotpSecret("TOTP secret is empty")
    value += "=" * (-len(value) % 8)
    try:
        key = base64.b32decode(value)
    except (binascii.Error, ValueError) as e:
        raise InvalidTotpSecret(f"TOTP secret is not valid base32: {e}") from e
    if not key:
        raise InvalidTotpSecret("TOTP secret is empty")
    return key


def hotp(key: bytes, counter: int, digits: int = DIGITS) -> str:
    """HMAC-SHA1 one-time password for ``counter`` (RFC 4226)."""
    digest = hmac.new(key, struct.pack(">Q", counter), hashlib.sha1).digest()
    offset = digest[-1] & 0x0F
    (value,) = struct.unpack(">I", digest[offset : offset + 4])
    return str((value & 0x7FFFFFFF) % 10**digits).zfill(digits)


def generate_totp(secret: str, for_time: float | None = None, digits: int = DIGITS) -> str:
    """Current code for ``secret``.

    Raises:
        InvalidTotpSecret: If the secret cannot be decoded
    """
    now = time.time() if for_time is None else for_time
    return hotp(decode_secret(secret), int(now) // PERIOD, digits)


def time_remaining(for_time: float | None = None) -> int:
    """Seconds until the current code rolls over (1 to 30)."""
    now = time.time() if for_time is None else for_time
    return PERIOD - int(now) % PERIOD


def totp_code(secret: str, for_time: float | None = None) -> TotpCode:
    now = time.time() if for_time is None else for_time
    return TotpCode(code=generate_totp(secret, now), remaining=time_remaining(now))


def validate_totp_secret(secret: str) -> bool:
    """Whether a code can be generated from ``secret``."""
    try:
        generate_totp(secret)
    except InvalidTotpSecret:
        return False
    return True


def format_totp_code(code: str) -> str:
    """Split a code into two halves for reading: ``123456`` -> ``123 456``."""
    if len(code) != DIGITS:
        return code
    half = DIGITS // 2
    return f"{code[:half]} {code[half:]}"
