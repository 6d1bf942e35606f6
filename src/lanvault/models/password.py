"""Random password generation."""

from __future__ import annotations

import secrets
import string

DEFAULT_LENGTH = 16
MAX_LENGTH = 1024
SYMBOLS = "!@#$%^&*()_+-=[]{}|;:,.<>?"


def build_charset(
    uppercase: bool = True, lowercase: bool = True, numbers: bool = True, symbols: bool = True
) -> str:
    """Characters a generated password may use. Falls back to lower case."""
    charset = ""
    if uppercase:
        charset += string.ascii_uppercase
    if lowercase:
        charset += string.ascii_lowercase
    if numbers:
        charset += string.digits
    if symbols:
        charset += SYMBOLS
    return charset or string.ascii_lowercase


def generate_password(
    length: int = DEFAULT_LENGTH,
    uppercase: bool = True,
    lowercase: bool = True,
    numbers: bool = True,
    symbols: bool = True,
) -> str:
    """Draw ``length`` characters uniformly from the selected classes.

    Raises:
        ValueError: If ``length`` is outside 1..MAX_LENGTH
    """
    if not 1 <= length <= MAX_LENGTH:
        raise ValueError(f"Password length must be between 1 and {MAX_LENGTH}, got {length}")
    chars = build_charset(uppercase, lowercase, numbers, symbols)
    return "".join(secrets.choice(chars) for _ in range(length))
