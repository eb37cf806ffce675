"""CSV-backed sheet store and incremental merge of new samples."""

from __future__ import annotations

import csv
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path
from typing import Final, Iterable, Protocol, Sequence

from tile_tracker.models import HEADER_ROW, FetchWindow, LocationSample
from tile_tracker.timeutils import dt_from_epoch_ms, format_cell_timestamp, parse_cell_timestamp

logger = logging.getLogger(__name__)

BACKWARD_BUFFER: Final[timedelta] = timedelta(minutes=5)
SHORT_LOOKBACK: Final[timedelta] = timedelta(hours=1)
DEFAULT_LOOKBACK: Final[timedelta] = timedelta(days=120)

HEADER_ROWS: Final[int] = 1


class TabularStore(Protocol):
    """A sheet: one header row followed by data rows."""

    def read_values(self) -> list[list[str]]: ...

    def append_rows(self, rows: Sequence[Sequence[str]]) -> None: ...

    def sort_data_rows(self) -> None: ...


def _sort_key(row: Sequence[str]) -> tuple[int, int]:
    # Rows with unreadable timestamps go last, keeping their relative order.
    ms = parse_cell_timestamp(row[0]) if row else None
    return (0, ms) if ms is not None else (1, 0)


class CsvSheetStore:
    """One sheet stored as ``<store_dir>/<sheet_name>.csv``."""

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def ensure_exists(self) -> bool:
        """Create the sheet with its header row if missing.

        Returns:
            True if the sheet was created by this call.
        """

        if self._path.exists():
            return False
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with self._path.open("w", encoding="utf-8", newline="") as f:
            csv.writer(f).writerow(HEADER_ROW)
        logger.info("Created new sheet: %s", self._path)
        return True

    def read_values(self) -> list[list[str]]:
        """All rows including the header; [] if the sheet does not exist."""

        if not self._path.exists():
            return []
        with self._path.open("r", encoding="utf-8", newline="") as f:
            return [row for row in csv.reader(f) if row]

    def append_rows(self, rows: Sequence[Sequence[str]]) -> None:
        self.ensure_exists()
        with self._path.open("a", encoding="utf-8", newline="") as f:
            csv.writer(f).writerows(rows)

    def sort_data_rows(self) -> None:
        """Sort data rows ascending by timestamp, header excluded (atomic rewrite)."""

        values = self.read_values()
        if len(values) <= HEADER_ROWS + 1:
            return
        header, data = values[:HEADER_ROWS], values[HEADER_ROWS:]
        data.sort(key=_sort_key)
        tmp = self._path.with_suffix(self._path.suffix + ".tmp")
        with tmp.open("w", encoding="utf-8", newline="") as f:
            w = csv.writer(f)
            w.writerows(header)
            w.writerows(data)
        tmp.replace(self._path)


def open_sheet(store_dir: str | Path, sheet_name: str) -> CsvSheetStore:
    """Open a sheet, provisioning it on first use."""

    store = CsvSheetStore(Path(store_dir) / f"{sheet_name}.csv")
    store.ensure_exists()
    return store


def stored_timestamps(store: TabularStore, values: Sequence[Sequence[str]] | None = None) -> list[int]:
    """Epoch ms of every data row with a readable timestamp, in row order.

    ``values`` is a snapshot from ``store.read_values()``; the store is read
    when it is omitted.
    """

    if values is None:
        values = store.read_values()
    out: list[int] = []
    for row in values[HEADER_ROWS:]:
        ms = parse_cell_timestamp(row[0]) if row else None
        if ms is not None:
            out.append(ms)
    return out


def latest_timestamp(store: TabularStore, values: Sequence[Sequence[str]] | None = None) -> datetime | None:
    """High-water mark of the store, or None when it holds no data."""

    timestamps = stored_timestamps(store, values)
    if not timestamps:
        logger.info("Sheet has no stored timestamps")
        return None
    latest = dt_from_epoch_ms(max(timestamps))
    logger.info("Latest stored timestamp: %s", latest.isoformat())
    return latest


def derive_fetch_window(latest: datetime | None, now: datetime) -> FetchWindow:
    """Compute the next fetch window from the high-water mark.

    Args:
        latest: Latest stored timestamp, or None for an empty store.
        now: Current time; becomes the window end.

    Returns:
        [latest - BACKWARD_BUFFER, now], clamped to [now - SHORT_LOOKBACK, now]
        if that start would be in the future; [now - DEFAULT_LOOKBACK, now]
        for an empty store.
    """

    if latest is None:
        return FetchWindow(start=now - DEFAULT_LOOKBACK, end=now)

    start = latest - BACKWARD_BUFFER
    if start > now:
        logger.warning("Computed start %s is after now; using the last %s", start.isoformat(), SHORT_LOOKBACK)
        start = now - SHORT_LOOKBACK
    return FetchWindow(start=start, end=now)


def sample_to_row(sample: LocationSample) -> list[str]:
    return [format_cell_timestamp(sample.timestamp_ms), repr(sample.latitude), repr(sample.longitude)]


@dataclass(frozen=True, slots=True)
class MergeResult:
    """Outcome of one merge."""

    existing: int
    appended: int
    duplicates: int


def merge_samples(
    store: TabularStore,
    samples: Iterable[LocationSample],
    values: Sequence[Sequence[str]] | None = None,
) -> MergeResult:
    """Append samples whose timestamp is not stored yet, then re-sort.

    Duplicates (against the store or within the batch) are dropped, never
    merged. New rows go in with a single append followed by a single sort.
    ``values`` is the snapshot the caller already read, if any.
    """

    seen = set(stored_timestamps(store, values))
    existing = len(seen)

    rows: list[list[str]] = []
    duplicates = 0
    for sample in samples:
        if sample.timestamp_ms in seen:
            duplicates += 1
            continue
        seen.add(sample.timestamp_ms)
        rows.append(sample_to_row(sample))

    if rows:
        store.append_rows(rows)
        store.sort_data_rows()
        logger.info("Appended %s new rows (%s duplicates skipped)", len(rows), duplicates)
    else:
        logger.info("No new unique rows to add (%s duplicates skipped)", duplicates)
    return MergeResult(existing=existing, appended=len(rows), duplicates=duplicates)
