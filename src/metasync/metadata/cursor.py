"""Opaque scan cursors.

A cursor is urlsafe base64 of {"bucket": ..., "seq": ...}: the scan position
of the last record consumed. Positions are store-assigned sequence numbers
that only grow, so a cursor stays valid while records are inserted or
deleted around it.
"""

from __future__ import annotations

import base64
import binascii
import json

from metasync.errors import InvalidCursorError


def encode_cursor(bucket: str, seq: int) -> str:
    """Encode a scan position as an opaque cursor string."""
    payload = json.dumps({"bucket": bucket, "seq": seq}, separators=(",", ":"))
    return base64.urlsafe_b64encode(payload.encode("utf-8")).decode("ascii")


def decode_cursor(cursor: str | None, bucket: str) -> int:
    """Decode a cursor into the sequence number to resume after.

    Args:
        cursor: Cursor from a previous page, or None to start at the beginning.
        bucket: Bucket being scanned; the cursor must have been issued for it.

    Returns:
        Sequence number of the last consumed record (0 for a fresh scan).

    Raises:
        InvalidCursorError: If the cursor is malformed or from another bucket.
    """
    if not cursor:
        return 0
    try:
        data = json.loads(base64.urlsafe_b64decode(cursor.encode("ascii")).decode("utf-8"))
    except (binascii.Error, UnicodeError, ValueError) as e:
        raise InvalidCursorError("Malformed cursor", bucket=bucket) from e

    if not isinstance(data, dict) or not isinstance(data.get("seq"), int):
        raise InvalidCursorError("Malformed cursor", bucket=bucket)
    if data.get("bucket") != bucket:
        raise InvalidCursorError("Cursor was issued for a different bucket", bucket=bucket)
    seq: int = data["seq"]
    if seq < 0:
        raise InvalidCursorError("Malformed cursor", bucket=bucket)
    return seq
