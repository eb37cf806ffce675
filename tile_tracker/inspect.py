"""Summarize what a sheet holds."""

from __future__ import annotations

from dataclasses import dataclass

from tile_tracker.store import HEADER_ROWS, TabularStore
from tile_tracker.timeutils import DeltaStats, delta_stats, parse_cell_timestamp


@dataclass(frozen=True, slots=True)
class InspectResult:
    """High-level sheet inspection result."""

    header: list[str]
    rows_total: int
    rows_parsed: int
    rows_skipped: int
    min_time_ms: int | None
    max_time_ms: int | None
    delta: DeltaStats | None
    min_lat: float | None
    max_lat: float | None
    min_lon: float | None
    max_lon: float | None
    duplicate_timestamps: int
    ascending: bool


def _parse_row(row: list[str]) -> tuple[int, float, float] | None:
    if len(row) < 3:
        return None
    ms = parse_cell_timestamp(row[0])
    if ms is None:
        return None
    try:
        return ms, float(row[1]), float(row[2])
    except ValueError:
        return None


def inspect_store(store: TabularStore) -> InspectResult:
    """Inspect the rows of a sheet."""

    values = store.read_values()
    header = values[0] if values else []
    data = values[HEADER_ROWS:]
    parsed = [p for p in (_parse_row(r) for r in data) if p is not None]

    times_in_order = [p[0] for p in parsed]
    times = sorted(times_in_order)
    dupe = sum(1 for i in range(1, len(times)) if times[i] == times[i - 1])

    if not parsed:
        return InspectResult(
            header=header,
            rows_total=len(data),
            rows_parsed=0,
            rows_skipped=len(data),
            min_time_ms=None,
            max_time_ms=None,
            delta=None,
            min_lat=None,
            max_lat=None,
            min_lon=None,
            max_lon=None,
            duplicate_timestamps=0,
            ascending=True,
        )

    lats = [p[1] for p in parsed]
    lons = [p[2] for p in parsed]
    return InspectResult(
        header=header,
        rows_total=len(data),
        rows_parsed=len(parsed),
        rows_skipped=len(data) - len(parsed),
        min_time_ms=times[0],
        max_time_ms=times[-1],
        delta=delta_stats(times),
        min_lat=min(lats),
        max_lat=max(lats),
        min_lon=min(lons),
        max_lon=max(lons),
        duplicate_timestamps=dupe,
        ascending=times_in_order == times,
    )
