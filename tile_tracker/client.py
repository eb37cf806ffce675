"""Blocking HTTP access to the Tile API.

Every call carries the fixed application-identification headers the mobile
app sends. Requests are never retried; callers decide what a failure means.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping

import requests

logger = logging.getLogger(__name__)

BODY_SAMPLE_CHARS = 500


@dataclass(frozen=True, slots=True)
class TileApiConfig:
    """Configuration for the Tile API."""

    base_url: str = "https://production.tile-api.com/api/v1"
    api_version: str = "1.0"
    app_id: str = "ios-tile-production"
    app_version: str = "2.89.1.4774"
    locale: str = "en-US"
    user_agent: str = "Tile/4774 CFNetwork/1312 Darwin/21.0.0"
    timeout_seconds: float | None = None


def body_sample(response: requests.Response) -> str:
    """First characters of a response body for diagnostics."""

    try:
        text = response.text or ""
    except Exception:  # undecodable body
        return "<unreadable body>"
    return text[:BODY_SAMPLE_CHARS]


def is_success(status_code: int) -> bool:
    return 200 <= status_code < 300


class TileApiClient:
    """Issues requests on behalf of one client identity."""

    def __init__(
        self,
        client_uuid: str,
        config: TileApiConfig | None = None,
        http: requests.Session | None = None,
    ) -> None:
        self.client_uuid = client_uuid
        self.config = config or TileApiConfig()
        self._http = http if http is not None else requests.Session()

    def headers(self, cookie_header: str | None = None) -> dict[str, str]:
        cfg = self.config
        headers = {
            "User-Agent": cfg.user_agent,
            "tile_api_version": cfg.api_version,
            "tile_app_id": cfg.app_id,
            "tile_app_version": cfg.app_version,
            "tile_client_uuid": self.client_uuid,
        }
        if cookie_header is not None:
            headers["Cookie"] = cookie_header
        return headers

    def url(self, path: str) -> str:
        return f"{self.config.base_url}/{path.lstrip('/')}"

    def request(
        self,
        method: str,
        path: str,
        *,
        cookie_header: str | None = None,
        data: Mapping[str, str] | None = None,
        params: Mapping[str, Any] | None = None,
    ) -> requests.Response:
        """Send one request and return the response whatever its status.

        Raises:
            requests.RequestException: On transport failure.
        """

        url = self.url(path)
        logger.debug("%s %s", method, url)
        response = self._http.request(
            method,
            url,
            headers=self.headers(cookie_header),
            data=data,
            params=params,
            timeout=self.config.timeout_seconds,
        )
        logger.debug("%s %s -> HTTP %s", method, url, response.status_code)
        return response
