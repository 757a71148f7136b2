"""open311_shared.ids — Time-ordered unique identifiers (ULID).

A ULID is 128 bits: a 48-bit millisecond Unix timestamp followed by 80 bits
of randomness, written as 26 Crockford base32 characters. Identifiers created
in later milliseconds always sort after earlier ones; identifiers from the
same millisecond are ordered randomly. Independent Lambda containers need no
shared counter to avoid collisions.
"""

from __future__ import annotations

import datetime as dt
import os
import time

from open311_shared.errors import Open311Error

__all__ = ["id_timestamp", "new_id"]

_CROCKFORD = "0123456789ABCDEFGHJKMNPQRSTVWXYZ"
_DECODE = {ch: i for i, ch in enumerate(_CROCKFORD)}
_ULID_LENGTH = 26
_MAX_TIMESTAMP_MS = (1 << 48) - 1


def _encode(value: int) -> str:
    chars = []
    for _ in range(_ULID_LENGTH):
        chars.append(_CROCKFORD[value & 0x1F])
        value >>= 5
    return "".join(reversed(chars))


def new_id() -> str:
    """Return a new ULID string.

    Raises Open311Error(BACKEND) when the clock or the OS entropy source
    cannot be read.
    """
    try:
        timestamp_ms = int(time.time() * 1000)
        entropy = os.urandom(10)
    except (NotImplementedError, OSError) as exc:
        raise Open311Error.backend(f"Unable to generate identifier: {exc}") from exc

    if not 0 <= timestamp_ms <= _MAX_TIMESTAMP_MS:
        raise Open311Error.backend(f"Clock out of range for identifier: {timestamp_ms}")

    value = (timestamp_ms << 80) | int.from_bytes(entropy, "big")
    return _encode(value)


def id_timestamp(ulid: str) -> dt.datetime:
    """Decode the creation instant (UTC, millisecond precision) of a ULID."""
    text = (ulid or "").upper()
    if len(text) != _ULID_LENGTH or any(ch not in _DECODE for ch in text):
        raise ValueError(f"Not a ULID: {ulid!r}")
    value = 0
    for ch in text:
        value = (value << 5) | _DECODE[ch]
    timestamp_ms = value >> 80
    return dt.datetime.fromtimestamp(timestamp_ms / 1000, tz=dt.timezone.utc)
