"""Time conversion utilities for epoch milliseconds and stored cells."""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta, timezone
from typing import Final, Iterable

from zoneinfo import ZoneInfo

EPOCH: Final[datetime] = datetime(1970, 1, 1, tzinfo=UTC)
# Last millisecond a datetime can hold (9999-12-31T23:59:59.999Z).
MAX_EPOCH_MS: Final[int] = 253_402_300_799_999


def tzinfo_from_name(tz_name: str) -> timezone:
    """Create tzinfo from an IANA timezone name.

    Args:
        tz_name: Timezone name like "Europe/Berlin".

    Returns:
        tzinfo instance.

    Raises:
        ValueError: If timezone name is invalid on this system.
    """

    if tz_name.upper() == "UTC":
        return UTC
    try:
        return ZoneInfo(tz_name)
    except Exception as exc:  # ZoneInfo raises KeyError / ZoneInfoNotFoundError (platform dependent)
        raise ValueError(f"Invalid timezone: {tz_name!r}. Example: Europe/Berlin") from exc


def utc_now() -> datetime:
    return datetime.now(tz=UTC)


def dt_from_epoch_ms(epoch_ms: int, tz_name: str = "UTC") -> datetime:
    """Convert epoch milliseconds to timezone-aware datetime.

    Args:
        epoch_ms: Unix epoch milliseconds.
        tz_name: IANA timezone name.

    Returns:
        Timezone-aware datetime.
    """

    dt = EPOCH + timedelta(milliseconds=epoch_ms)
    return dt if tz_name == "UTC" else dt.astimezone(tzinfo_from_name(tz_name))


def epoch_ms_from_dt(dt: datetime) -> int:
    """Convert a datetime to epoch milliseconds.

    Args:
        dt: Datetime. If naive, will be treated as UTC.

    Returns:
        Epoch milliseconds.
    """

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return (dt - EPOCH) // timedelta(milliseconds=1)


def is_valid_epoch_ms(epoch_ms: int) -> bool:
    """True if ``epoch_ms`` is after the epoch and fits in a datetime."""

    return 0 < epoch_ms <= MAX_EPOCH_MS


def format_cell_timestamp(epoch_ms: int) -> str:
    """Render epoch milliseconds as the value stored in a timestamp cell.

    Example: 1700000000123 -> "2023-11-14T22:13:20.123+00:00"
    """

    return dt_from_epoch_ms(epoch_ms).isoformat(timespec="milliseconds")


def parse_cell_timestamp(value: object) -> int | None:
    """Parse a stored timestamp cell back to epoch milliseconds.

    Accepts ISO-8601 text (naive text is UTC), datetimes and bare epoch
    milliseconds. Returns None for empty or unparseable cells and for
    instants outside (epoch, MAX_EPOCH_MS].
    """

    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        try:
            ms = epoch_ms_from_dt(value)
        except OverflowError:
            return None
    elif isinstance(value, (int, float)):
        if not math.isfinite(value):
            return None
        ms = int(value)
    else:
        s = str(value).strip()
        if not s:
            return None
        if s.isdigit():
            ms = int(s)
        else:
            try:
                ms = epoch_ms_from_dt(datetime.fromisoformat(s))
            except (ValueError, OverflowError):
                return None
    return ms if is_valid_epoch_ms(ms) else None


@dataclass(frozen=True, slots=True)
class DeltaStats:
    """Gaps between consecutive stored samples (seconds)."""

    count: int
    min_s: float
    median_s: float
    p95_s: float
    max_s: float
    longest_gap_start_ms: int


def delta_stats(epoch_ms: Iterable[int]) -> DeltaStats | None:
    """Sampling-interval statistics over distinct timestamps.

    Input order does not matter; repeated timestamps count once.

    Returns:
        DeltaStats or None if less than 2 distinct timestamps.
    """

    ms = sorted(set(epoch_ms))
    if len(ms) < 2:
        return None
    gaps = [(ms[i] - ms[i - 1], ms[i - 1]) for i in range(1, len(ms))]
    deltas = sorted(g / 1000.0 for g, _ in gaps)
    n = len(deltas)
    median = deltas[n // 2] if n % 2 == 1 else 0.5 * (deltas[n // 2 - 1] + deltas[n // 2])
    _, longest_start = max(gaps)
    return DeltaStats(
        count=n,
        min_s=deltas[0],
        median_s=median,
        p95_s=deltas[int(0.95 * (n - 1))],
        max_s=deltas[-1],
        longest_gap_start_ms=longest_start,
    )
