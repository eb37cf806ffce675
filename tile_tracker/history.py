"""Fetch raw location history and normalize it into samples."""

from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass
from typing import Any, Final, Mapping

import requests

from tile_tracker.client import TileApiClient, body_sample, is_success
from tile_tracker.models import CredentialBundle, FailureKind, FetchWindow, LocationSample, Outcome
from tile_tracker.timeutils import epoch_ms_from_dt, is_valid_epoch_ms

logger = logging.getLogger(__name__)

# Accepted spellings per logical field, looked up in order.
FIELD_ALIASES: Final[dict[str, tuple[str, ...]]] = {
    "timestamp": ("location_timestamp", "timestamp"),
    "latitude": ("latitude", "lat"),
    "longitude": ("longitude", "lng", "lon"),
}

MAX_ENTRY_WARNINGS: Final[int] = 5


def empty_history() -> dict[str, Any]:
    return {"result": {"location_updates": []}}


def _location_updates(payload: Any) -> list[Any] | None:
    result = payload.get("result") if isinstance(payload, dict) else None
    if not isinstance(result, dict):
        return None
    updates = result.get("location_updates")
    return updates if isinstance(updates, list) else None


def fetch_history(
    api: TileApiClient,
    bundle: CredentialBundle,
    device_id: str,
    window: FetchWindow,
) -> Outcome[dict[str, Any]]:
    """GET the history of one device for ``window``.

    A 2xx body without ``result.location_updates`` yields an empty history
    instead of a failure. Non-2xx, transport and JSON errors are failures.
    """

    params = {
        "start_timestamp_ms": epoch_ms_from_dt(window.start),
        "end_timestamp_ms": epoch_ms_from_dt(window.end),
    }
    try:
        response = api.request(
            "GET",
            f"tiles/location/history/{device_id}",
            cookie_header=bundle.cookie_header,
            params=params,
        )
    except requests.RequestException as exc:
        logger.error("History fetch failed: %s", exc)
        return Outcome.fail(FailureKind.TRANSPORT, f"history fetch: {exc}")

    if not is_success(response.status_code):
        logger.error("History fetch failed: HTTP %s. Body: %s", response.status_code, body_sample(response))
        return Outcome.fail(FailureKind.HTTP_STATUS, "history fetch rejected", response.status_code)

    try:
        payload = response.json()
    except ValueError:
        logger.error("History fetch failed: body is not JSON. Body: %s", body_sample(response))
        return Outcome.fail(FailureKind.PROTOCOL, "history response is not JSON", response.status_code)

    updates = _location_updates(payload)
    if updates is None:
        logger.warning("History response has no result.location_updates; treating as empty. Body: %s",
                       body_sample(response))
        return Outcome.success(empty_history())

    logger.info("History fetch returned %s entries", len(updates))
    return Outcome.success(payload)


def lookup_field(entry: Mapping[str, Any], field: str) -> Any:
    """Return the first non-null value among the aliases of ``field``."""

    for alias in FIELD_ALIASES[field]:
        value = entry.get(alias)
        if value is not None:
            return value
    return None


def _finite(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def normalize_entry(entry: Any) -> LocationSample | None:
    """Validate one raw history entry. Returns None when it must be dropped."""

    if not isinstance(entry, dict):
        return None
    ts = _finite(lookup_field(entry, "timestamp"))
    lat = _finite(lookup_field(entry, "latitude"))
    lon = _finite(lookup_field(entry, "longitude"))
    if ts is None or lat is None or lon is None:
        return None
    # Whole milliseconds, positive and representable as a datetime.
    ms = int(ts)
    if not is_valid_epoch_ms(ms):
        return None
    if not -90.0 <= lat <= 90.0 or not -180.0 <= lon <= 180.0:
        return None
    return LocationSample(timestamp_ms=ms, latitude=lat, longitude=lon)


@dataclass(frozen=True, slots=True)
class NormalizeSummary:
    """Counts from one normalization pass."""

    entries_total: int
    samples: int
    dropped: int


def _describe(entry: Any) -> str:
    try:
        return json.dumps(entry, ensure_ascii=False, default=str)[:200]
    except (TypeError, ValueError):
        return repr(entry)[:200]


def normalize_history(payload: Any) -> tuple[list[LocationSample], NormalizeSummary]:
    """Convert a raw history payload into samples, keeping input order.

    Invalid entries are dropped; at most ``MAX_ENTRY_WARNINGS`` of them are
    logged individually. No dedup or sorting happens here.

    Returns:
        (samples, summary)
    """

    entries = _location_updates(payload)
    if entries is None:
        logger.warning("No result.location_updates array in history payload")
        return [], NormalizeSummary(entries_total=0, samples=0, dropped=0)

    samples: list[LocationSample] = []
    dropped = 0
    for index, entry in enumerate(entries):
        sample = normalize_entry(entry)
        if sample is None:
            dropped += 1
            if dropped <= MAX_ENTRY_WARNINGS:
                logger.warning("Dropping invalid history entry %s: %s", index, _describe(entry))
            continue
        samples.append(sample)

    if dropped > MAX_ENTRY_WARNINGS:
        logger.warning("... additional %s invalid entries suppressed", dropped - MAX_ENTRY_WARNINGS)
    logger.info("Normalized %s valid location samples (%s dropped)", len(samples), dropped)
    return samples, NormalizeSummary(entries_total=len(entries), samples=len(samples), dropped=dropped)
