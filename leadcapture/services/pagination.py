"""Opaque, versioned pagination tokens.

A token records the sort key of the last item returned, so the next page can
resume strictly after it. Clients must treat the value as opaque.
"""
from __future__ import annotations

import base64
import binascii
import json
from dataclasses import dataclass

from leadcapture.core.exceptions import ValidationError

TOKEN_VERSION = 1


@dataclass(frozen=True)
class PageCursor:
    created_at: str
    lead_id: str


def encode_page_token(cursor: PageCursor) -> str:
    payload = {"v": TOKEN_VERSION, "c": cursor.created_at, "k": cursor.lead_id}
    raw = json.dumps(payload, separators=(",", ":"), sort_keys=True).encode("utf-8")
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def decode_page_token(token: str) -> PageCursor:
    """Decode a token produced by :func:`encode_page_token`.

    Raises ``ValidationError`` (field ``nextToken``) for anything else.
    """
    try:
        padded = token + "=" * (-len(token) % 4)
        payload = json.loads(base64.urlsafe_b64decode(padded.encode("ascii")))
    except (ValueError, binascii.Error, UnicodeError) as e:
        raise ValidationError("Invalid pagination token", field="nextToken") from e

    if not isinstance(payload, dict) or payload.get("v") != TOKEN_VERSION:
        raise ValidationError("Unsupported pagination token", field="nextToken")

    created_at, lead_id = payload.get("c"), payload.get("k")
    if not isinstance(created_at, str) or not isinstance(lead_id, str):
        raise ValidationError("Invalid pagination token", field="nextToken")
    return PageCursor(created_at=created_at, lead_id=lead_id)
