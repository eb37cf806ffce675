"""Resolve a human-readable device name to its API identifier."""

from __future__ import annotations

import logging
from typing import Any

import requests

from tile_tracker.client import TileApiClient, body_sample, is_success
from tile_tracker.models import CredentialBundle, DeviceRecord, FailureKind, Outcome

logger = logging.getLogger(__name__)

# Labels/groups answer the details call with 412 Precondition Failed.
HTTP_PRECONDITION_FAILED = 412


def list_device_ids(api: TileApiClient, bundle: CredentialBundle) -> Outcome[list[str]]:
    """GET /tiles/tile_states and collect every ``tile_id`` in list order."""

    try:
        response = api.request("GET", "tiles/tile_states", cookie_header=bundle.cookie_header)
    except requests.RequestException as exc:
        logger.error("List devices failed: %s", exc)
        return Outcome.fail(FailureKind.TRANSPORT, f"list devices: {exc}")

    if not is_success(response.status_code):
        logger.error("List devices failed: HTTP %s. Body: %s", response.status_code, body_sample(response))
        return Outcome.fail(FailureKind.HTTP_STATUS, "list devices rejected", response.status_code)

    try:
        payload = response.json()
    except ValueError:
        payload = None
    states = payload.get("result") if isinstance(payload, dict) else None
    if not isinstance(states, list):
        logger.error("List devices failed: 'result' array missing. Body: %s", body_sample(response))
        return Outcome.fail(FailureKind.PROTOCOL, "device list has no 'result' array")

    ids = [str(s["tile_id"]) for s in states if isinstance(s, dict) and s.get("tile_id")]
    logger.info("Found %s device ids", len(ids))
    return Outcome.success(ids)


def fetch_device(api: TileApiClient, bundle: CredentialBundle, device_id: str) -> DeviceRecord | None:
    """GET /tiles/{device_id}. Returns None for anything that is not a usable 2xx."""

    try:
        response = api.request("GET", f"tiles/{device_id}", cookie_header=bundle.cookie_header)
    except requests.RequestException as exc:
        logger.warning("Device details failed for %s: %s", device_id, exc)
        return None

    if response.status_code == HTTP_PRECONDITION_FAILED:
        logger.debug("Skipping %s (no details, likely a label)", device_id)
        return None
    if not is_success(response.status_code):
        logger.debug("Skipping %s: HTTP %s", device_id, response.status_code)
        return None

    try:
        payload: Any = response.json()
    except ValueError:
        logger.debug("Skipping %s: details body is not JSON", device_id)
        return None
    result = payload.get("result") if isinstance(payload, dict) else None
    if not isinstance(result, dict) or "name" not in result:
        return None
    return DeviceRecord(identifier=device_id, name=str(result["name"]))


def resolve_device(api: TileApiClient, bundle: CredentialBundle, device_name: str) -> Outcome[DeviceRecord]:
    """Find the first device whose name equals ``device_name`` exactly.

    Fetches each candidate's details in list order and stops at the first
    match. Candidates whose details cannot be fetched are skipped.
    """

    listed = list_device_ids(api, bundle)
    if not listed.ok:
        return Outcome(failure=listed.failure)

    device_ids = listed.value or []
    if not device_ids:
        logger.error("No devices on this account")
        return Outcome.fail(FailureKind.NOT_FOUND, "account has no devices")

    for device_id in device_ids:
        device = fetch_device(api, bundle, device_id)
        if device is not None and device.name == device_name:
            logger.info("Resolved device %r -> %s", device_name, device_id)
            return Outcome.success(device)

    logger.error("No device named %r among %s candidates", device_name, len(device_ids))
    return Outcome.fail(FailureKind.NOT_FOUND, f"no device named {device_name!r}")
