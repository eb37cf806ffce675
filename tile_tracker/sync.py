"""One run: window -> login -> resolve device -> fetch -> normalize -> merge."""

from __future__ import annotations

import csv
import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum

import requests

from tile_tracker.client import TileApiClient, TileApiConfig
from tile_tracker.config import Settings
from tile_tracker.devices import resolve_device
from tile_tracker.history import fetch_history, normalize_history
from tile_tracker.models import Failure, FetchWindow
from tile_tracker.session import establish_session
from tile_tracker.store import TabularStore, derive_fetch_window, latest_timestamp, merge_samples, open_sheet
from tile_tracker.timeutils import utc_now

logger = logging.getLogger(__name__)


class SyncStatus(str, Enum):
    OK = "ok"
    SESSION_FAILED = "session_failed"
    DEVICE_NOT_FOUND = "device_not_found"
    HISTORY_FAILED = "history_failed"
    STORE_ERROR = "store_error"


@dataclass(frozen=True, slots=True)
class SyncReport:
    """What one run did."""

    status: SyncStatus
    window: FetchWindow | None = None
    device_id: str | None = None
    fetched: int = 0
    appended: int = 0
    failure: Failure | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status is SyncStatus.OK


def sync_device(
    settings: Settings,
    client_uuid: str,
    *,
    store: TabularStore | None = None,
    http: requests.Session | None = None,
    api_config: TileApiConfig | None = None,
    now: datetime | None = None,
) -> SyncReport:
    """Bring the sheet up to date with the device's location history.

    Failures are reported in the returned SyncReport, never raised: remote
    failures stop the run before the store is written, store I/O errors are
    logged and end the run.
    """

    logger.info("Starting location update for %r", settings.device_name)
    try:
        if store is None:
            store = open_sheet(settings.store_dir, settings.sheet_name)
        values = store.read_values()
        window = derive_fetch_window(latest_timestamp(store, values), now or utc_now())
    except (OSError, csv.Error) as exc:
        logger.error("Could not read sheet %r: %s", settings.sheet_name, exc)
        return SyncReport(status=SyncStatus.STORE_ERROR, error=str(exc))
    logger.info("Fetch window: %s -> %s", window.start.isoformat(), window.end.isoformat())

    api = TileApiClient(client_uuid, config=api_config, http=http)

    session = establish_session(api, settings.email, settings.password)
    if not session.ok or session.value is None:
        logger.error("Session establishment failed; stopping")
        return SyncReport(status=SyncStatus.SESSION_FAILED, window=window, failure=session.failure)
    bundle = session.value

    resolved = resolve_device(api, bundle, settings.device_name)
    if not resolved.ok or resolved.value is None:
        logger.error("Could not resolve device %r; stopping", settings.device_name)
        return SyncReport(status=SyncStatus.DEVICE_NOT_FOUND, window=window, failure=resolved.failure)
    device_id = resolved.value.identifier

    history = fetch_history(api, bundle, device_id, window)
    if not history.ok:
        logger.error("History fetch failed; stopping without touching the sheet")
        return SyncReport(
            status=SyncStatus.HISTORY_FAILED,
            window=window,
            device_id=device_id,
            failure=history.failure,
        )

    samples, _ = normalize_history(history.value)

    try:
        merged = merge_samples(store, samples, values)
    except (OSError, csv.Error) as exc:
        logger.error("Could not update sheet %r: %s", settings.sheet_name, exc)
        return SyncReport(
            status=SyncStatus.STORE_ERROR,
            window=window,
            device_id=device_id,
            fetched=len(samples),
            error=str(exc),
        )

    logger.info("Location update finished: %s fetched, %s appended", len(samples), merged.appended)
    return SyncReport(
        status=SyncStatus.OK,
        window=window,
        device_id=device_id,
        fetched=len(samples),
        appended=merged.appended,
    )
