"""Two-step login: register the client identity, then create a session."""

from __future__ import annotations

import logging
from typing import Any

import requests

from tile_tracker.client import TileApiClient, body_sample, is_success
from tile_tracker.cookies import cookie_names, parse_set_cookie, set_cookie_material
from tile_tracker.models import CredentialBundle, FailureKind, Outcome

logger = logging.getLogger(__name__)


def _account_id(payload: Any) -> str | None:
    """Read ``result.user.user_uuid`` from the session response."""

    if not isinstance(payload, dict):
        return None
    result = payload.get("result")
    user = result.get("user") if isinstance(result, dict) else None
    user_uuid = user.get("user_uuid") if isinstance(user, dict) else None
    return str(user_uuid) if user_uuid else None


def register_client(api: TileApiClient) -> Outcome[None]:
    """PUT /clients/{client_uuid}. Any 2xx registers the client."""

    cfg = api.config
    data = {"app_id": cfg.app_id, "app_version": cfg.app_version, "locale": cfg.locale}
    try:
        response = api.request("PUT", f"clients/{api.client_uuid}", data=data)
    except requests.RequestException as exc:
        logger.error("Register client failed: %s", exc)
        return Outcome.fail(FailureKind.TRANSPORT, f"register client: {exc}")

    if not is_success(response.status_code):
        logger.error("Register client failed: HTTP %s. Body: %s", response.status_code, body_sample(response))
        return Outcome.fail(FailureKind.HTTP_STATUS, "register client rejected", response.status_code)

    logger.info("Registered client %s", api.client_uuid)
    return Outcome.success(None)


def create_session(api: TileApiClient, email: str, password: str) -> Outcome[CredentialBundle]:
    """POST /clients/{client_uuid}/sessions and capture the session cookies."""

    try:
        response = api.request(
            "POST",
            f"clients/{api.client_uuid}/sessions",
            data={"email": email, "password": password},
        )
    except requests.RequestException as exc:
        logger.error("Create session failed: %s", exc)
        return Outcome.fail(FailureKind.TRANSPORT, f"create session: {exc}")

    if not is_success(response.status_code):
        logger.error("Create session failed: HTTP %s. Body: %s", response.status_code, body_sample(response))
        return Outcome.fail(FailureKind.HTTP_STATUS, "create session rejected", response.status_code)

    try:
        payload = response.json()
    except ValueError:
        logger.error("Create session failed: body is not JSON. Body: %s", body_sample(response))
        return Outcome.fail(FailureKind.PROTOCOL, "session response is not JSON", response.status_code)

    account_id = _account_id(payload)
    if account_id is None:
        logger.error("Create session failed: result.user.user_uuid missing. Body: %s", body_sample(response))
        return Outcome.fail(FailureKind.PROTOCOL, "account identifier missing from session response")

    cookie_header = parse_set_cookie(set_cookie_material(response))
    if not cookie_header:
        logger.warning("Session created but no cookies were returned; authenticated calls may fail")
    else:
        logger.info("Session cookies captured: %s", ", ".join(cookie_names(cookie_header)))

    return Outcome.success(CredentialBundle(account_id=account_id, cookie_header=cookie_header))


def establish_session(api: TileApiClient, email: str, password: str) -> Outcome[CredentialBundle]:
    """Register the client identity and log in.

    Never raises for remote problems: a failed register step stops here and
    its failure is returned; otherwise the session outcome is returned.
    """

    registered = register_client(api)
    if not registered.ok:
        return Outcome(failure=registered.failure)
    return create_session(api, email, password)
