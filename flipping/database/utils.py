"""
Database utility functions.

Provides reusable helpers for timestamp encoding, timezone normalization and
opaque JSON blob columns used across database repositories.
"""
from __future__ import annotations

import json
import re
from datetime import datetime, timezone
from typing import Any, Optional

# Fixed-width so that text ordering matches chronological ordering
DB_TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"

BLOB_FORMAT_VERSION = 1

# Fractional seconds; fromisoformat before 3.11 only takes 3 or 6 digits
_FRACTION_RE = re.compile(r"\.(\d+)")


def ensure_utc(dt: datetime) -> datetime:
    """
    Normalize a datetime to UTC.

    If dt is naive (no timezone info), assume it's in the local timezone,
    then convert to UTC.

    Args:
        dt: Datetime to normalize (may be naive or aware)

    Returns:
        Timezone-aware datetime in UTC
    """
    if dt.tzinfo is None:
        local_tz = datetime.now().astimezone().tzinfo
        return dt.replace(tzinfo=local_tz).astimezone(timezone.utc)
    return dt.astimezone(timezone.utc)


def format_db_timestamp(value: Optional[datetime]) -> Optional[str]:
    """
    Encode a timestamp for storage.

    Returns None for None so nullable columns get SQL NULL rather than a
    sentinel value.
    """
    if value is None:
        return None
    return ensure_utc(value).strftime(DB_TIMESTAMP_FORMAT)


def parse_db_timestamp(value: Optional[str]) -> Optional[datetime]:
    """
    Parse a timestamp from SQLite.

    Supports:
    - The storage format written by format_db_timestamp ("...Z")
    - Java Instant strings with nanosecond fractions (truncated to micros)
    - ISO format strings with or without offset (e.g., "2024-01-15T12:34:56")
    - "YYYY-MM-DD HH:MM:SS" (SQLite CURRENT_TIMESTAMP format)

    Naive values are taken to be UTC, which is what SQLite writes.

    Args:
        value: Timestamp string from database, or None

    Returns:
        Timezone-aware UTC datetime, or None if value is empty or unparseable
    """
    if not value:
        return None

    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    text = _FRACTION_RE.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), text, count=1)

    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        try:
            parsed = datetime.strptime(text, "%Y-%m-%d %H:%M:%S")
        except ValueError:
            return None

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def encode_blob(value: Any) -> str:
    """Serialize an opaque value into a versioned JSON envelope."""
    return json.dumps(
        {"version": BLOB_FORMAT_VERSION, "data": value},
        separators=(",", ":"),
    )


def decode_blob(text: Optional[str], default: Any = None) -> Any:
    """
    Deserialize a blob written by encode_blob.

    Bare JSON (no envelope) is accepted as-is. Returns default for NULL
    columns and for a JSON null payload.

    Raises:
        ValueError: If the text is not valid JSON or the envelope version
            is newer than this code understands.
    """
    if text is None:
        return default

    payload = json.loads(text)
    if isinstance(payload, dict) and "version" in payload and "data" in payload:
        version = payload["version"]
        if not isinstance(version, int) or version > BLOB_FORMAT_VERSION:
            raise ValueError(f"Unsupported blob format version: {version!r}")
        payload = payload["data"]

    if payload is None:
        return default
    return payload
