"""
Utility functions for wallet authentication

Shared helpers for address handling and random challenge material.
"""

import re
import secrets
import string
from typing import Optional

from walletauth.errors import InvalidAddress

ADDRESS_PREFIX = "0x"
ADDRESS_HEX_LENGTH = 40

# 36-symbol alphabet: ~5.17 bits of entropy per character
CHALLENGE_ALPHABET = string.ascii_lowercase + string.digits

_EMAIL_RE = re.compile(r"[^@\s]+@[^@\s]+\.[^@\s]+")


def validate_hex_format(value: str, length: int) -> bool:
    """
    Validate hexadecimal string format.

    Args:
        value: String to validate
        length: Expected hex string length

    Returns:
        True if valid hex string of specified length
    """
    if not value:
        return False
    return bool(re.fullmatch(r"[0-9a-fA-F]{{{}}}".format(length), value))


def is_hex(value: str) -> bool:
    """True for a (possibly empty) string of hex digits only."""
    return bool(re.fullmatch(r"[0-9a-fA-F]*", value))


def strip_hex_prefix(value: str) -> str:
    if value[:2] in ("0x", "0X"):
        return value[2:]
    return value


def is_valid_address(address: Optional[str]) -> bool:
    """
    Validate address syntax.

    Args:
        address: Hex address, with or without the 0x prefix

    Returns:
        True if exactly 40 hex characters remain after stripping the prefix
    """
    if not isinstance(address, str):
        return False
    return validate_hex_format(strip_hex_prefix(address), ADDRESS_HEX_LENGTH)


def canonicalize_address(address: Optional[str]) -> str:
    """
    Return the canonical (lower-case, 0x-prefixed) form of an address.

    Every component that stores or compares addresses goes through here.

    Raises:
        InvalidAddress: if the address fails syntax validation
    """
    if not is_valid_address(address):
        raise InvalidAddress()
    return ADDRESS_PREFIX + strip_hex_prefix(address).lower()


def random_alphanumeric(length: int) -> str:
    """
    Generate a cryptographically secure random string.

    Args:
        length: Number of characters drawn from CHALLENGE_ALPHABET

    Returns:
        Random lower-case alphanumeric string
    """
    return "".join(secrets.choice(CHALLENGE_ALPHABET) for _ in range(length))


def is_valid_email(email: str) -> bool:
    return bool(email) and bool(_EMAIL_RE.fullmatch(email))
