"""
Duration and timestamp codecs for annotation values.

Requested token lifetimes are written by users in Go duration syntax
(``10m``, ``1h30m``, ``100h0m0s``) and renewal timestamps are RFC 3339
instants, so both need exact parsers instead of the looser ISO 8601
handling of the standard library.
"""

import re
from datetime import UTC, datetime, timedelta
from decimal import Decimal, InvalidOperation

# Nanoseconds per unit, following Go's time.ParseDuration
_UNIT_NANOSECONDS = {
    "ns": 1,
    "us": 1_000,
    "µs": 1_000,  # micro sign
    "μs": 1_000,  # greek mu
    "ms": 1_000_000,
    "s": 1_000_000_000,
    "m": 60 * 1_000_000_000,
    "h": 3600 * 1_000_000_000,
}

# Go durations are int64 nanoseconds
_MAX_NANOSECONDS = 2**63 - 1

_DURATION_COMPONENT = re.compile(r"(\d*(?:\.\d*)?)([a-zA-Zµμ]+)")

_RFC3339 = re.compile(
    r"^(?P<base>\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2})"
    r"(?:\.(?P<fraction>\d+))?"
    r"(?P<offset>Z|[+-]\d{2}:\d{2})$"
)


def parse_duration(value: str) -> timedelta:
    """
    Parse a Go-style duration string.

    A duration is an optionally signed sequence of decimal numbers, each with
    an optional fraction and a unit suffix, such as "300ms", "-1.5h" or
    "2h45m". Valid units are "ns", "us" (or "µs"), "ms", "s", "m", "h".

    Args:
        value: Duration string

    Returns:
        The parsed duration (sub-microsecond precision is truncated)

    Raises:
        ValueError: If the string is not a valid duration
    """
    original = value
    if not value:
        raise ValueError(f"invalid duration {original!r}")

    sign = 1
    if value[0] in "+-":
        sign = -1 if value[0] == "-" else 1
        value = value[1:]

    if value == "0":
        return timedelta(0)
    if not value:
        raise ValueError(f"invalid duration {original!r}")

    total_ns = Decimal(0)
    position = 0
    while position < len(value):
        match = _DURATION_COMPONENT.match(value, position)
        if match is None:
            raise ValueError(f"invalid duration {original!r}")
        number, unit = match.groups()
        if number in ("", "."):
            raise ValueError(f"invalid duration {original!r}")
        if unit not in _UNIT_NANOSECONDS:
            raise ValueError(f"unknown unit {unit!r} in duration {original!r}")
        try:
            total_ns += Decimal(number) * _UNIT_NANOSECONDS[unit]
        except InvalidOperation as e:
            raise ValueError(f"invalid duration {original!r}") from e
        position = match.end()

    if total_ns > _MAX_NANOSECONDS + (1 if sign < 0 else 0):
        raise ValueError(f"invalid duration {original!r}")

    try:
        return sign * timedelta(microseconds=int(total_ns // 1000))
    except OverflowError as e:
        raise ValueError(f"invalid duration {original!r}") from e


def parse_rfc3339(value: str) -> datetime:
    """
    Parse an RFC 3339 timestamp into an aware datetime.

    Args:
        value: Timestamp such as "2021-10-04T17:36:00Z"

    Returns:
        Timezone-aware datetime

    Raises:
        ValueError: If the value is not an RFC 3339 timestamp
    """
    match = _RFC3339.match(value)
    if match is None:
        raise ValueError(f"{value!r} is not an RFC 3339 timestamp")

    text = match.group("base")
    fraction = match.group("fraction")
    if fraction:
        # datetime carries microseconds only
        text += "." + fraction[:6].ljust(6, "0")
    offset = match.group("offset")
    text += "+00:00" if offset == "Z" else offset

    return datetime.fromisoformat(text)


def format_rfc3339(moment: datetime) -> str:
    """Format an aware datetime as UTC RFC 3339 with second precision."""
    return moment.astimezone(UTC).strftime("%Y-%m-%dT%H:%M:%SZ")
