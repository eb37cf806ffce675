"""Data models for sessions, devices, location samples and fetch windows."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Final, Generic, TypeVar

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class CredentialBundle:
    """Result of a successful login, valid for one run.

    Attributes:
        account_id: Remote account identifier (``user_uuid``).
        cookie_header: Ready-to-send ``Cookie`` header value. May be empty.
    """

    account_id: str
    cookie_header: str


@dataclass(frozen=True, slots=True)
class DeviceRecord:
    """A device of the account, resolved fresh every run."""

    identifier: str
    name: str


@dataclass(frozen=True, slots=True)
class LocationSample:
    """A single location observation.

    Attributes:
        timestamp_ms: Unix epoch milliseconds. Unique within a store.
        latitude: Latitude in decimal degrees, [-90, 90].
        longitude: Longitude in decimal degrees, [-180, 180].
    """

    timestamp_ms: int
    latitude: float
    longitude: float


@dataclass(frozen=True, slots=True)
class FetchWindow:
    """Time range requested from the history endpoint."""

    start: datetime
    end: datetime


class FailureKind(str, Enum):
    """Why a remote step failed."""

    TRANSPORT = "transport"
    HTTP_STATUS = "http_status"
    PROTOCOL = "protocol"
    NOT_FOUND = "not_found"


@dataclass(frozen=True, slots=True)
class Failure:
    kind: FailureKind
    message: str
    status_code: int | None = None

    def __str__(self) -> str:
        if self.status_code is not None:
            return f"{self.kind.value} (HTTP {self.status_code}): {self.message}"
        return f"{self.kind.value}: {self.message}"


@dataclass(frozen=True, slots=True)
class Outcome(Generic[T]):
    """Either a value or a failure, never both.

    Remote steps return this instead of raising, so the pipeline decides
    which failures abort the run.
    """

    value: T | None = None
    failure: Failure | None = None

    @property
    def ok(self) -> bool:
        return self.failure is None

    @classmethod
    def success(cls, value: T) -> Outcome[T]:
        return cls(value=value)

    @classmethod
    def fail(cls, kind: FailureKind, message: str, status_code: int | None = None) -> Outcome[T]:
        return cls(failure=Failure(kind=kind, message=message, status_code=status_code))


HEADER_ROW: Final[tuple[str, str, str]] = ("timestamp", "latitude", "longitude")

DEFAULT_TZ: Final[str] = "UTC"
