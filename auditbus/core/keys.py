"""Storage key derivation and canonical JSON helpers.

Archive keys are derived from event identity and timestamp, not from the
payload content: ``{year}/{month:02}/{day:02}/{event_id}`` where the date
is the calendar day of ``ts`` in a fixed reference zone.
"""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Any

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def canonical_json_bytes(obj: Any) -> bytes:
    """Produce canonical JSON bytes (sorted keys, no whitespace)."""
    return json.dumps(
        obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False
    ).encode("utf-8")


def payload_json_bytes(obj: Any) -> bytes:
    """Serialize an event payload for the archive.

    Key order is preserved so the stored object reads like what the
    producer sent; only whitespace is normalized.
    """
    return json.dumps(obj, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def ts_to_datetime(ts_millis: int, tz: tzinfo = timezone.utc) -> datetime:
    """Interpret an epoch-millisecond timestamp in the zone *tz*."""
    return (_EPOCH + timedelta(milliseconds=ts_millis)).astimezone(tz)


def derive_key(event_id: str, ts_millis: int, tz: tzinfo = timezone.utc) -> str:
    """Return the archive key for an event.

    Examples
    --------
    >>> derive_key("473edc2b-a079-4fa9-8fb3-3ccf602f4957", 1603294852000)
    '2020/10/21/473edc2b-a079-4fa9-8fb3-3ccf602f4957'
    """
    d = ts_to_datetime(ts_millis, tz)
    return f"{d.year}/{d.month:02d}/{d.day:02d}/{event_id}"
