"""Run configuration and the durable client identity.

Settings come from the environment, optionally layered over a dotenv file.
The client identity lives in a small JSON properties file so it survives
between runs; a new identity looks like an unregistered client to the API.
"""

from __future__ import annotations

import json
import logging
import os
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Final, Mapping

from dotenv import dotenv_values

logger = logging.getLogger(__name__)

REQUIRED_KEYS: Final[tuple[str, ...]] = (
    "TILE_EMAIL",
    "TILE_PASSWORD",
    "TILE_NAME",
    "TILE_STORE_DIR",
    "TILE_SHEET_NAME",
)
STATE_FILE_NAME: Final[str] = ".tile_tracker.json"
CLIENT_UUID_PROPERTY: Final[str] = "CLIENT_UUID"


class ConfigError(ValueError):
    """Required settings are missing or invalid."""


@dataclass(frozen=True, slots=True)
class Settings:
    """Everything one run needs, resolved before any network activity."""

    email: str
    password: str
    device_name: str
    store_dir: Path
    sheet_name: str
    state_file: Path
    client_uuid: str | None = None

    def __repr__(self) -> str:
        return (
            f"Settings(email={self.email!r}, password='***', device_name={self.device_name!r}, "
            f"store_dir={str(self.store_dir)!r}, sheet_name={self.sheet_name!r})"
        )


def load_settings(
    overrides: Mapping[str, str | None] | None = None,
    env: Mapping[str, str] | None = None,
    env_file: str | Path | None = ".env",
) -> Settings:
    """Resolve settings: overrides > environment > dotenv file.

    Raises:
        ConfigError: Naming every missing required key.
    """

    merged: dict[str, str] = {}
    if env_file is not None and Path(env_file).is_file():
        merged.update({k: v for k, v in dotenv_values(env_file).items() if v is not None})
    merged.update(os.environ if env is None else env)
    if overrides:
        merged.update({k: v for k, v in overrides.items() if v})

    values = {k: (merged.get(k) or "").strip() for k in REQUIRED_KEYS}
    missing = [k for k, v in values.items() if not v]
    if missing:
        raise ConfigError(f"Missing required settings: {', '.join(missing)}")

    store_dir = Path(values["TILE_STORE_DIR"]).expanduser()
    state_file = merged.get("TILE_STATE_FILE") or str(store_dir / STATE_FILE_NAME)
    return Settings(
        email=values["TILE_EMAIL"],
        password=values["TILE_PASSWORD"],
        device_name=values["TILE_NAME"],
        store_dir=store_dir,
        sheet_name=values["TILE_SHEET_NAME"],
        state_file=Path(state_file).expanduser(),
        client_uuid=(merged.get("TILE_CLIENT_UUID") or "").strip() or None,
    )


class PropertiesFile:
    """A tiny JSON key/value file persisted on disk."""

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._data: dict[str, Any] = {}
        self._loaded = False

    def load(self) -> None:
        """Load from disk (no-op if file not exists)."""

        if self._loaded:
            return
        self._loaded = True
        if not self._path.exists():
            return
        text = self._path.read_text(encoding="utf-8").strip()
        if not text:
            return
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            raise ConfigError(f"Properties file is not valid JSON: {self._path}") from exc
        if not isinstance(data, dict):
            raise ConfigError(f"Properties file must hold a JSON object: {self._path}")
        self._data = data

    def get(self, key: str) -> Any:
        self.load()
        return self._data.get(key)

    def set(self, key: str, value: Any) -> None:
        self.load()
        self._data[key] = value

    def flush(self) -> None:
        """Persist to disk (atomic-ish)."""

        self.load()
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self._path.with_suffix(self._path.suffix + ".tmp")
        tmp.write_text(json.dumps(self._data, ensure_ascii=False, indent=2), encoding="utf-8")
        tmp.replace(self._path)


def client_identity(properties: PropertiesFile) -> str:
    """Read the stored client identity, or generate and store one."""

    stored = properties.get(CLIENT_UUID_PROPERTY)
    if isinstance(stored, str) and stored:
        return stored
    client_uuid = str(uuid.uuid4())
    properties.set(CLIENT_UUID_PROPERTY, client_uuid)
    properties.flush()
    logger.info("Generated and stored new client identity %s", client_uuid)
    return client_uuid


def resolve_client_uuid(settings: Settings) -> str:
    """Explicit ``TILE_CLIENT_UUID`` wins; otherwise use the durable identity."""

    if settings.client_uuid:
        return settings.client_uuid
    return client_identity(PropertiesFile(settings.state_file))
