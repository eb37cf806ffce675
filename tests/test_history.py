from __future__ import annotations

import logging
from datetime import UTC, datetime

import pytest
import requests
from conftest import FakeResponse

from tile_tracker.history import (
    FIELD_ALIASES,
    MAX_ENTRY_WARNINGS,
    fetch_history,
    lookup_field,
    normalize_entry,
    normalize_history,
)
from tile_tracker.models import FailureKind, FetchWindow, LocationSample

WINDOW = FetchWindow(
    start=datetime(2024, 1, 1, tzinfo=UTC),
    end=datetime(2024, 1, 2, tzinfo=UTC),
)
HISTORY_PATH = "tiles/location/history/tile-1"


def _payload(*entries: object) -> dict:
    return {"version": 1, "result": {"location_updates": list(entries)}}


def test_fetch_passes_payload_through(api, http, bundle) -> None:
    payload = _payload({"location_timestamp": 1704067200000, "latitude": 1.5, "longitude": 2.5})
    http.add("GET", HISTORY_PATH, FakeResponse(200, payload))

    outcome = fetch_history(api, bundle, "tile-1", WINDOW)

    assert outcome.ok
    assert outcome.value == payload
    call = http.calls[0]
    assert call.kwargs["params"] == {"start_timestamp_ms": 1704067200000, "end_timestamp_ms": 1704153600000}
    assert call.kwargs["headers"]["Cookie"] == bundle.cookie_header


def test_fetch_without_updates_field_yields_empty_history(api, http, bundle) -> None:
    http.add("GET", HISTORY_PATH, FakeResponse(200, {"result": {"something_else": []}}))

    outcome = fetch_history(api, bundle, "tile-1", WINDOW)

    assert outcome.ok
    assert outcome.value == {"result": {"location_updates": []}}


@pytest.mark.parametrize("status", [400, 401, 404, 500, 503])
def test_fetch_non_success_is_failure(api, http, bundle, status) -> None:
    http.add("GET", HISTORY_PATH, FakeResponse(status, {"error": "x"}))

    outcome = fetch_history(api, bundle, "tile-1", WINDOW)

    assert outcome.failure.kind is FailureKind.HTTP_STATUS
    assert outcome.failure.status_code == status


def test_fetch_transport_error_is_failure(api, http, bundle) -> None:
    http.add("GET", HISTORY_PATH, requests.ConnectionError("reset"))

    assert fetch_history(api, bundle, "tile-1", WINDOW).failure.kind is FailureKind.TRANSPORT


def test_fetch_non_json_is_failure(api, http, bundle) -> None:
    http.add("GET", HISTORY_PATH, FakeResponse(200, text="not json"))

    assert fetch_history(api, bundle, "tile-1", WINDOW).failure.kind is FailureKind.PROTOCOL


def test_alias_table_is_ordered() -> None:
    assert FIELD_ALIASES["timestamp"] == ("location_timestamp", "timestamp")
    assert FIELD_ALIASES["longitude"] == ("longitude", "lng", "lon")
    entry = {"timestamp": 2, "location_timestamp": 1}
    assert lookup_field(entry, "timestamp") == 1


@pytest.mark.parametrize(
    "entry",
    [
        {"location_timestamp": 1000, "latitude": 10.0, "longitude": 20.0},
        {"timestamp": 1000, "lat": 10.0, "lng": 20.0},
        {"timestamp": "1000", "lat": "10.0", "lon": "20.0"},
    ],
)
def test_aliases_are_accepted(entry) -> None:
    assert normalize_entry(entry) == LocationSample(timestamp_ms=1000, latitude=10.0, longitude=20.0)


@pytest.mark.parametrize("lat,lon", [(-90, 0), (90, 0), (0, -180), (0, 180), (90, 180), (-90, -180)])
def test_boundary_coordinates_are_accepted(lat, lon) -> None:
    sample = normalize_entry({"timestamp": 1, "latitude": lat, "longitude": lon})
    assert sample is not None
    assert (sample.latitude, sample.longitude) == (lat, lon)


@pytest.mark.parametrize("lat,lon", [(-91, 0), (91, 0), (0, -181), (0, 181)])
def test_out_of_range_coordinates_are_rejected(lat, lon) -> None:
    assert normalize_entry({"timestamp": 1, "latitude": lat, "longitude": lon}) is None


def test_zero_coordinates_are_valid() -> None:
    assert normalize_entry({"timestamp": 5, "latitude": 0, "longitude": 0.0}) == LocationSample(5, 0.0, 0.0)


@pytest.mark.parametrize(
    "entry",
    [
        None,
        "text",
        {},
        {"timestamp": 0, "latitude": 1, "longitude": 1},
        {"timestamp": -5, "latitude": 1, "longitude": 1},
        {"timestamp": 0.5, "latitude": 1, "longitude": 1},
        {"timestamp": 1e16, "latitude": 1, "longitude": 1},
        {"timestamp": 253402300800000, "latitude": 1, "longitude": 1},
        {"timestamp": "soon", "latitude": 1, "longitude": 1},
        {"timestamp": 1, "latitude": "north", "longitude": 1},
        {"timestamp": 1, "latitude": float("nan"), "longitude": 1},
        {"timestamp": 1, "latitude": 1, "longitude": float("inf")},
        {"timestamp": True, "latitude": 1, "longitude": 1},
        {"timestamp": 1, "latitude": 1},
    ],
)
def test_invalid_entries_are_rejected(entry) -> None:
    assert normalize_entry(entry) is None


def test_normalize_keeps_order_and_duplicates() -> None:
    payload = _payload(
        {"timestamp": 3, "latitude": 1, "longitude": 1},
        {"timestamp": 1, "latitude": 2, "longitude": 2},
        {"timestamp": 3, "latitude": 3, "longitude": 3},
    )

    samples, summary = normalize_history(payload)

    assert [s.timestamp_ms for s in samples] == [3, 1, 3]
    assert summary.samples == 3
    assert summary.dropped == 0


def test_latitude_91_is_dropped_with_warning(caplog) -> None:
    payload = _payload(
        {"timestamp": 1, "latitude": 91, "longitude": 0},
        {"timestamp": 2, "latitude": 45, "longitude": 0},
    )

    with caplog.at_level(logging.WARNING, logger="tile_tracker.history"):
        samples, summary = normalize_history(payload)

    assert [s.timestamp_ms for s in samples] == [2]
    assert summary.samples == 1
    assert summary.dropped == 1
    assert "Dropping invalid history entry 0" in caplog.text


def test_timestamp_beyond_datetime_range_is_dropped() -> None:
    payload = _payload(
        {"timestamp": 1e16, "latitude": 1, "longitude": 1},
        {"timestamp": 1704067200000, "latitude": 2, "longitude": 2},
    )

    samples, summary = normalize_history(payload)

    assert [s.timestamp_ms for s in samples] == [1704067200000]
    assert summary.dropped == 1


def test_largest_representable_timestamp_is_kept() -> None:
    sample = normalize_entry({"timestamp": 253402300799999, "latitude": 1, "longitude": 1})
    assert sample is not None
    assert sample.timestamp_ms == 253402300799999


def test_warnings_are_capped(caplog) -> None:
    bad = [{"timestamp": i + 1, "latitude": 500, "longitude": 0} for i in range(12)]

    with caplog.at_level(logging.WARNING, logger="tile_tracker.history"):
        samples, summary = normalize_history(_payload(*bad))

    assert samples == []
    assert summary.dropped == 12
    dropped_lines = [r for r in caplog.records if "Dropping invalid history entry" in r.getMessage()]
    assert len(dropped_lines) == MAX_ENTRY_WARNINGS
    assert "additional 7 invalid entries suppressed" in caplog.text


def test_payload_without_updates_gives_no_samples() -> None:
    samples, summary = normalize_history({"result": None})
    assert samples == []
    assert summary.entries_total == 0
