"""Opaque pagination cursors.

Cursors are URL-safe base64 over compact JSON. They are resume points, not a
security boundary: nothing is signed, and anything that fails to decode is
treated as "no cursor" so pagination restarts from the top.
"""

from __future__ import annotations

import base64
import binascii
import json
import math
from typing import Any, Optional

from feedcore.feeds.domain.models import Cursor


def encode_cursor(cursor: Cursor) -> str:
    payload: dict[str, Any] = {"id": cursor.id, "v": cursor.sort_key}
    if cursor.sort:
        payload["s"] = cursor.sort
    raw = json.dumps(payload, separators=(",", ":")).encode("utf-8")
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def decode_cursor(value: Any, *, sort: Optional[str] = None) -> Optional[Cursor]:
    """Decode a token produced by :func:`encode_cursor`.

    Returns ``None`` for empty, malformed or foreign tokens, and for cursors
    issued under a different ``sort`` than the one requested.
    """

    if not value or not isinstance(value, str):
        return None
    try:
        padded = value + "=" * (-len(value) % 4)
        raw = base64.urlsafe_b64decode(padded.encode("ascii"))
        payload = json.loads(raw.decode("utf-8"))
    except (ValueError, UnicodeError, binascii.Error, RecursionError):
        return None
    if not isinstance(payload, dict):
        return None
    item_id = payload.get("id")
    sort_key = payload.get("v")
    if not isinstance(item_id, str) or not item_id:
        return None
    if isinstance(sort_key, bool) or not isinstance(sort_key, (int, float)):
        return None
    try:
        numeric_key = float(sort_key)
    except OverflowError:
        return None
    if not math.isfinite(numeric_key):
        return None
    cursor_sort = payload.get("s")
    if cursor_sort is not None and not isinstance(cursor_sort, str):
        return None
    if sort is not None and cursor_sort is not None and cursor_sort != sort:
        return None
    return Cursor(id=item_id, sort_key=numeric_key, sort=cursor_sort)


__all__ = ["decode_cursor", "encode_cursor"]
