from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any

import pytest

from tile_tracker.client import TileApiClient, TileApiConfig
from tile_tracker.models import CredentialBundle

BASE = TileApiConfig().base_url + "/"
CLIENT_UUID = "client-0001"


class FakeResponse:
    """Just enough of requests.Response for the API code."""

    def __init__(
        self,
        status_code: int = 200,
        payload: Any = None,
        text: str | None = None,
        headers: dict[str, Any] | None = None,
    ) -> None:
        self.status_code = status_code
        if text is None:
            text = "" if payload is None else json.dumps(payload)
        self.text = text
        self.headers = headers or {}

    def json(self) -> Any:
        return json.loads(self.text)


@dataclass
class Call:
    method: str
    path: str
    kwargs: dict[str, Any] = field(default_factory=dict)


class FakeHttp:
    """Scripted stand-in for requests.Session.

    Each route holds a queue; the last queued item is repeated once the
    others are used up. Exceptions in the queue are raised.
    """

    def __init__(self) -> None:
        self.routes: dict[tuple[str, str], list[Any]] = {}
        self.calls: list[Call] = []

    def add(self, method: str, path: str, *responses: Any) -> None:
        self.routes.setdefault((method, path), []).extend(responses)

    def request(self, method: str, url: str, **kwargs: Any) -> Any:
        path = url.removeprefix(BASE)
        self.calls.append(Call(method, path, kwargs))
        queue = self.routes.get((method, path))
        if not queue:
            raise AssertionError(f"unexpected request {method} {path}")
        item = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(item, Exception):
            raise item
        return item

    def paths(self) -> list[str]:
        return [f"{c.method} {c.path}" for c in self.calls]


def session_payload(user_uuid: str = "user-0001") -> dict[str, Any]:
    return {"result": {"user": {"user_uuid": user_uuid, "email": "me@example.com"}}}


def script_login(http: FakeHttp, cookies: Any = ("sid=abc; Path=/; HttpOnly", "rid=xyz; Secure")) -> None:
    http.add("PUT", f"clients/{CLIENT_UUID}", FakeResponse(200, {"result": {}}))
    http.add(
        "POST",
        f"clients/{CLIENT_UUID}/sessions",
        FakeResponse(200, session_payload(), headers={"Set-Cookie": list(cookies)} if cookies else {}),
    )


def script_devices(http: FakeHttp, devices: dict[str, Any]) -> None:
    """devices: id -> name, or id -> int status for a failing details call."""

    http.add("GET", "tiles/tile_states", FakeResponse(200, {"result": [{"tile_id": d} for d in devices]}))
    for device_id, answer in devices.items():
        if isinstance(answer, int):
            http.add("GET", f"tiles/{device_id}", FakeResponse(answer, {"error": "nope"}))
        else:
            http.add("GET", f"tiles/{device_id}", FakeResponse(200, {"result": {"tile_uuid": device_id, "name": answer}}))


@pytest.fixture
def http() -> FakeHttp:
    return FakeHttp()


@pytest.fixture
def api(http: FakeHttp) -> TileApiClient:
    return TileApiClient(CLIENT_UUID, http=http)


@pytest.fixture
def bundle() -> CredentialBundle:
    return CredentialBundle(account_id="user-0001", cookie_header="sid=abc; rid=xyz")
