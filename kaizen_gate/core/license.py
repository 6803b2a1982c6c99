"""
License string handling: canonicalization, pepper normalization and peppered hashing.

License strings look like ``ACME-1A2B-3C4D-5E6F-7A8B``: a 2-6 letter client
prefix followed by four groups of four uppercase characters. Only the
peppered SHA-256 of the canonical string is ever stored.
"""

import hashlib
import re
import secrets
import unicodedata
from typing import Optional

LICENSE_PATTERN = re.compile(r"^([A-Z]{2,6})-([A-Z0-9]{4})-([A-Z0-9]{4})-([A-Z0-9]{4})-([A-Z0-9]{4})$")
PREFIX_PATTERN = re.compile(r"^[A-Z]{2,6}$")

# Characters that deployment tooling tends to smuggle into secrets
_ZERO_WIDTH = {"\u200b", "\u200c", "\u200d", "\u2060", "\ufeff"}
_QUOTES = ("\"", "'", "`")


def canonicalize_license(raw: Optional[str]) -> Optional[str]:
    """
    Return the canonical form of a license string, or None if it is malformed.

    All whitespace is removed and the result is uppercased. Idempotent:
    canonicalizing a canonical string returns it unchanged.
    """
    if not isinstance(raw, str):
        return None
    candidate = "".join(raw.split()).upper()
    if not LICENSE_PATTERN.match(candidate):
        return None
    return candidate


def extract_prefix(canonical: str) -> str:
    """Client prefix of an already canonical license string."""
    return canonical.split("-", 1)[0]


def normalize_prefix(raw: Optional[str]) -> Optional[str]:
    if not isinstance(raw, str):
        return None
    candidate = raw.strip().upper()
    return candidate if PREFIX_PATTERN.match(candidate) else None


def normalize_pepper(raw: Optional[str]) -> str:
    """
    Normalize an operator-provided pepper before hashing.

    Steps, in order:
      1. drop zero-width characters and control characters (CR, LF, TAB, ...)
      2. trim surrounding whitespace
      3. strip one layer of matching surrounding quotes, then trim again
    """
    if not raw:
        return ""
    cleaned = "".join(
        ch for ch in raw
        if ch not in _ZERO_WIDTH and unicodedata.category(ch) != "Cc"
    ).strip()
    if len(cleaned) >= 2 and cleaned[0] == cleaned[-1] and cleaned[0] in _QUOTES:
        cleaned = cleaned[1:-1].strip()
    return cleaned


def hash_license(canonical: str, pepper: Optional[str]) -> str:
    """Lowercase hex SHA-256 of ``pepper || canonical``."""
    material = normalize_pepper(pepper) + canonical
    return hashlib.sha256(material.encode("utf-8")).hexdigest()


def generate_license_string(prefix: str) -> str:
    """Random license string for issuance; groups are uppercase hex."""
    normalized = normalize_prefix(prefix)
    if normalized is None:
        raise ValueError("prefix must be 2-6 letters")
    groups = [secrets.token_hex(2).upper() for _ in range(4)]
    return "-".join([normalized, *groups])
