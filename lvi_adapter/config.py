"""Adapter configuration persisted as JSON in the working directory."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import voluptuous as vol

from .const import (
    CONF_ACCESS_KEY,
    CONF_AUTH,
    CONF_HOME_ID,
    CONF_HTTP_TIMEOUT,
    CONF_LOG_LEVEL,
    CONF_MQTT_HOST,
    CONF_MQTT_PASSWORD,
    CONF_MQTT_PORT,
    CONF_MQTT_USERNAME,
    CONF_PASSWORD,
    CONF_SECRET_TOKEN,
    CONF_USERNAME,
    CONFIG_FILE_NAME,
    DEFAULT_HTTP_TIMEOUT,
    DEFAULT_LOG_LEVEL,
    DEFAULT_MQTT_HOST,
    DEFAULT_MQTT_PORT,
    DEFAULT_WORK_DIR,
    ENV_WORK_DIR,
    LOG_LEVELS,
    MANIFEST_FILE_NAME,
)
from .models import Credentials, Session

_LOGGER = logging.getLogger(__name__)

_SECRET_KEYS = frozenset(
    {
        CONF_PASSWORD,
        CONF_SECRET_TOKEN,
        CONF_MQTT_PASSWORD,
        "access_token",
        "refresh_token",
        "authorization_code",
    }
)

LOG_LEVEL_SCHEMA = vol.All(vol.Lower, vol.In(LOG_LEVELS))

CONFIG_SCHEMA = vol.Schema(
    {
        vol.Optional(CONF_USERNAME, default=""): str,
        vol.Optional(CONF_PASSWORD, default=""): str,
        vol.Optional(CONF_ACCESS_KEY, default=""): str,
        vol.Optional(CONF_SECRET_TOKEN, default=""): str,
        vol.Optional(CONF_HOME_ID, default=""): vol.Coerce(str),
        vol.Optional(CONF_LOG_LEVEL, default=DEFAULT_LOG_LEVEL): LOG_LEVEL_SCHEMA,
        vol.Optional(CONF_HTTP_TIMEOUT, default=DEFAULT_HTTP_TIMEOUT): vol.All(
            vol.Coerce(float), vol.Range(min=1)
        ),
        vol.Optional(CONF_MQTT_HOST, default=DEFAULT_MQTT_HOST): str,
        vol.Optional(CONF_MQTT_PORT, default=DEFAULT_MQTT_PORT): vol.All(
            vol.Coerce(int), vol.Range(min=1, max=65535)
        ),
        vol.Optional(CONF_MQTT_USERNAME, default=""): str,
        vol.Optional(CONF_MQTT_PASSWORD, default=""): str,
        vol.Optional(CONF_AUTH, default=dict): dict,
    },
    extra=vol.REMOVE_EXTRA,
)

# Keys that cmd.config.extended_set is allowed to change.
EXTENDED_SET_SCHEMA = vol.Schema(
    {
        vol.Optional(CONF_LOG_LEVEL): LOG_LEVEL_SCHEMA,
        vol.Optional(CONF_HTTP_TIMEOUT): vol.All(vol.Coerce(float), vol.Range(min=1)),
    },
    extra=vol.REMOVE_EXTRA,
)


def redact_token_fragment(value: str | None) -> str:
    """Return a shortened representation of a token-like string."""
    if value is None:
        return ""
    trimmed = str(value).strip()
    if not trimmed:
        return ""
    if len(trimmed) <= 8:
        return "***"
    return f"{trimmed[:4]}...{trimmed[-4:]}"


def default_work_dir() -> Path:
    """Return the working directory from the environment or the default."""
    return Path(os.environ.get(ENV_WORK_DIR, DEFAULT_WORK_DIR))


def apply_log_level(level: str) -> None:
    """Set the level of every adapter logger."""
    logging.getLogger(__package__).setLevel(level.upper())


@dataclass
class AdapterConfig:
    """Persisted adapter settings, credentials and session."""

    username: str = ""
    password: str = ""
    access_key: str = ""
    secret_token: str = ""
    home_id: str = ""
    log_level: str = DEFAULT_LOG_LEVEL
    http_timeout: float = DEFAULT_HTTP_TIMEOUT
    mqtt_host: str = DEFAULT_MQTT_HOST
    mqtt_port: int = DEFAULT_MQTT_PORT
    mqtt_username: str = ""
    mqtt_password: str = ""
    auth: Session = field(default_factory=Session)
    work_dir: Path | None = None

    @property
    def path(self) -> Path | None:
        """Return the config file path, or None for an in-memory config."""
        if self.work_dir is None:
            return None
        return self.work_dir / CONFIG_FILE_NAME

    @property
    def credentials(self) -> Credentials:
        return Credentials(
            username=self.username,
            password=self.password,
            access_key=self.access_key,
            secret_token=self.secret_token,
            home_id=self.home_id,
        )

    def set_credentials(self, credentials: Credentials) -> None:
        self.username = credentials.username
        self.password = credentials.password
        self.access_key = credentials.access_key
        self.secret_token = credentials.secret_token
        self.home_id = credentials.home_id

    def clear_credentials(self) -> None:
        self.set_credentials(Credentials("", "", "", ""))

    def as_dict(self) -> dict[str, Any]:
        return {
            CONF_USERNAME: self.username,
            CONF_PASSWORD: self.password,
            CONF_ACCESS_KEY: self.access_key,
            CONF_SECRET_TOKEN: self.secret_token,
            CONF_HOME_ID: self.home_id,
            CONF_LOG_LEVEL: self.log_level,
            CONF_HTTP_TIMEOUT: self.http_timeout,
            CONF_MQTT_HOST: self.mqtt_host,
            CONF_MQTT_PORT: self.mqtt_port,
            CONF_MQTT_USERNAME: self.mqtt_username,
            CONF_MQTT_PASSWORD: self.mqtt_password,
            CONF_AUTH: self.auth.as_dict(),
        }

    def as_report(self) -> dict[str, Any]:
        """Return the config with every secret redacted."""
        report = self.as_dict()
        for key in report.keys() & _SECRET_KEYS:
            report[key] = redact_token_fragment(report[key])
        report[CONF_AUTH] = {
            key: redact_token_fragment(value) if key in _SECRET_KEYS else value
            for key, value in report[CONF_AUTH].items()
        }
        return report

    def save(self) -> None:
        """Write the config to disk; no-op for an in-memory config."""
        if self.path is None:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(self.as_dict(), indent=2), encoding="utf-8")
        _LOGGER.debug("Saved configuration to %s", self.path)

    @classmethod
    def from_dict(
        cls, data: dict[str, Any], work_dir: Path | None = None
    ) -> AdapterConfig:
        """Validate raw settings and build a config.

        Raises:
            vol.Invalid: If a value fails validation.

        """
        valid = CONFIG_SCHEMA(data)
        auth = Session.from_dict(valid.pop(CONF_AUTH))
        return cls(**valid, auth=auth, work_dir=work_dir)


def load_config(work_dir: Path | None = None) -> AdapterConfig:
    """Load the config from the working directory.

    A missing file yields a default config bound to ``work_dir``.

    Raises:
        vol.Invalid: If the stored config fails validation.
        ValueError: If the file is not valid JSON.

    """
    work_dir = work_dir or default_work_dir()
    path = work_dir / CONFIG_FILE_NAME
    if not path.exists():
        _LOGGER.info("No configuration at %s, using defaults", path)
        return AdapterConfig(work_dir=work_dir)

    data = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        error_msg = f"Configuration at {path} is not an object"
        raise ValueError(error_msg)
    _LOGGER.debug("Loaded configuration from %s", path)
    return AdapterConfig.from_dict(data, work_dir)


def load_manifest(work_dir: Path) -> dict[str, Any]:
    """Load the application manifest shipped in the working directory.

    Raises:
        OSError: If the file cannot be read.
        ValueError: If the file is not a JSON object.

    """
    path = work_dir / MANIFEST_FILE_NAME
    data = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        error_msg = f"Manifest at {path} is not an object"
        raise ValueError(error_msg)
    return data
