"""Canonical ISO-8601 timestamps.

All stored timestamps use one fixed-width UTC form so that string order matches
chronological order in every backend.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

_CANONICAL_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(value: datetime) -> str:
    """Render ``value`` in the canonical form; naive datetimes are taken as UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime(_CANONICAL_FORMAT)


def parse_timestamp(value: str) -> Optional[datetime]:
    """Parse an ISO-8601 string, returning None if it is not one."""
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def normalize_timestamp(value: str) -> Optional[str]:
    parsed = parse_timestamp(value)
    return format_timestamp(parsed) if parsed else None
