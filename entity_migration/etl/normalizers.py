"""
Data normalization utilities for the migration.

This module provides the string canonicalization used to build dedup keys,
plus the coercion helpers that turn loosely-typed legacy values
(numeric-or-blank, boolean-ish ints, padded strings) into typed Python values.

Design Decisions:
    1. normalize_key() is the single function used for every dedup key
    2. Coercion is lenient: unusable values become None, never an exception
    3. Blank strings are treated as absent everywhere

Key Normalization Strategy:
    - Lowercase and trim
    - Collapse internal whitespace to a single space
    - Strip characters outside [a-z0-9 -.&]
    - Trim again (stripping can expose edge spaces)
"""

import math
import re
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

# Regex patterns
WHITESPACE_PATTERN = re.compile(r"\s+")
KEY_STRIP_PATTERN = re.compile(r"[^a-z0-9 \-.&]")
ZERO_DATE_PATTERN = re.compile(r"^(0000-00-00|00/00/0000)")

# Formats seen in legacy date/time columns, tried in order.
# Time-only formats parse with year 1900 and are anchored later.
LEGACY_TIMESTAMP_FORMATS = (
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d %H:%M:%S.%f",
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%d %H:%M",
    "%Y-%m-%d",
    "%m/%d/%Y %H:%M:%S",
    "%m/%d/%Y %H:%M",
    "%m/%d/%Y %I:%M:%S %p",
    "%m/%d/%Y %I:%M %p",
    "%m/%d/%Y",
    "%H:%M:%S",
    "%H:%M",
    "%I:%M:%S %p",
    "%I:%M %p",
)

TRUE_WORDS = {"y", "yes", "t", "true", "on", "x"}

# Separator between person key parts; never survives normalize_key()
KEY_PART_SEPARATOR = "|"


def normalize_key(raw: Optional[str]) -> str:
    """
    Normalize a string for use in a dedup key.

    Args:
        raw: Raw name or key fragment.

    Returns:
        Normalized key, possibly empty.

    Examples:
        >>> normalize_key("  ACME, Inc.  ")
        'acme inc.'
        >>> normalize_key("Smith   &  Sons")
        'smith & sons'
    """
    if not raw:
        return ""

    normalized = WHITESPACE_PATTERN.sub(" ", raw.strip().lower())
    normalized = KEY_STRIP_PATTERN.sub("", normalized)
    # Stripping can leave doubled spaces ("a , b" -> "a  b")
    normalized = WHITESPACE_PATTERN.sub(" ", normalized)
    return normalized.strip()


def person_key(first: Optional[str], last: Optional[str], extra: Optional[str] = None) -> str:
    """
    Build the dedup key for a person.

    Each part is normalized on its own, so "Ann Lee" at one address and
    "Ann Lee" at another produce different keys. Returns "" when both name
    parts are blank; an address alone never identifies a person.
    """
    parts = [normalize_key(first), normalize_key(last), normalize_key(extra)]
    if not (parts[0] or parts[1]):
        return ""
    return KEY_PART_SEPARATOR.join(parts)


def org_key(legal_name: Optional[str]) -> str:
    """Build the dedup key for an organization (legal name only)."""
    return normalize_key(legal_name)


def clean_text(value: Any) -> Optional[str]:
    """
    Trim a legacy text value, returning None when blank.

    Examples:
        >>> clean_text("  Acme  ")
        'Acme'
        >>> clean_text("   ") is None
        True
    """
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def text_or_empty(value: Any) -> str:
    """Trim a legacy text value, returning "" when absent."""
    return clean_text(value) or ""


def concat_name(first: Optional[str], last: Optional[str]) -> str:
    """Join first and last name, ignoring blank parts."""
    return f"{text_or_empty(first)} {text_or_empty(last)}".strip()


def to_optional_float(value: Any) -> Optional[float]:
    """
    Coerce a numeric-or-blank legacy value to float.

    Blank and non-numeric values become None rather than zero.

    Examples:
        >>> to_optional_float("1500.50")
        1500.5
        >>> to_optional_float("n/a") is None
        True
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else None
    text = str(value).strip()
    if not text:
        return None
    try:
        number = Decimal(text)
    except InvalidOperation:
        return None
    if not number.is_finite():
        return None
    result = float(number)
    # Huge exponents overflow to inf
    return result if math.isfinite(result) else None


def to_optional_int(value: Any) -> Optional[int]:
    """Coerce a numeric-or-blank legacy value to int, or None."""
    number = to_optional_float(value)
    if number is None:
        return None
    return int(number)


def to_flag(value: Any, default: bool) -> bool:
    """
    Coerce a boolean-ish legacy value.

    Args:
        value: Legacy value (0/1, -1, "Y", "yes", "", None, ...).
        default: Result when the value is absent or blank.

    Returns:
        The coerced boolean.

    Examples:
        >>> to_flag(None, default=True)
        True
        >>> to_flag("0", default=True)
        False
        >>> to_flag("Yes", default=False)
        True
    """
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0

    text = str(value).strip().lower()
    if not text:
        return default
    if text in TRUE_WORDS:
        return True

    number = to_optional_float(text)
    return bool(number)


def parse_legacy_timestamp(value: Any) -> Optional[datetime]:
    """
    Parse a legacy date/time value.

    Blank strings, all-zero dates ("0000-00-00") and all-zero datetimes
    ("0000-00-00 00:00:00") are absent. Unparseable values are absent too;
    this never raises.

    Args:
        value: Raw legacy value (string, datetime, or None).

    Returns:
        Naive datetime, or None if absent.

    Examples:
        >>> parse_legacy_timestamp("2024-01-01 09:00:00")
        datetime.datetime(2024, 1, 1, 9, 0)
        >>> parse_legacy_timestamp("0000-00-00 00:00:00") is None
        True
        >>> parse_legacy_timestamp("07:30:00")
        datetime.datetime(1900, 1, 1, 7, 30)
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.replace(tzinfo=None)

    text = str(value).strip()
    if not text or ZERO_DATE_PATTERN.match(text):
        return None

    for fmt in LEGACY_TIMESTAMP_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    return None


def to_iso_date(value: Any) -> Optional[str]:
    """Normalize a legacy date value to YYYY-MM-DD, or None."""
    parsed = parse_legacy_timestamp(value)
    if parsed is None or parsed.year <= 1900:
        return None
    return parsed.strftime("%Y-%m-%d")
