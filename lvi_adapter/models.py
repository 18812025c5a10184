"""Data models for the LVI heater adapter."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from typing import Any


def _to_millis(value: datetime | None) -> int:
    return int(value.timestamp() * 1000) if value is not None else 0


def from_millis(value: Any) -> datetime | None:
    """Convert epoch milliseconds to an aware datetime, None if unset or invalid."""
    try:
        millis = int(value)
    except (TypeError, ValueError):
        return None
    if millis <= 0:
        return None
    return datetime.fromtimestamp(millis / 1000, tz=UTC)


@dataclass
class Session:
    """Authentication state held against the vendor API.

    Expiry timestamps are absolute. ``None`` means "not set"; a non-empty
    access token always comes with an ``expire_at``.
    """

    authorization_code: str = ""
    access_token: str = ""
    refresh_token: str = ""
    expire_at: datetime | None = None
    refresh_expire_at: datetime | None = None

    @property
    def is_empty(self) -> bool:
        """Return True if no token has been obtained yet."""
        return not self.access_token and self.expire_at is None

    def clear(self) -> None:
        """Reset every field to its empty value."""
        self.authorization_code = ""
        self.access_token = ""
        self.refresh_token = ""
        self.expire_at = None
        self.refresh_expire_at = None

    def as_dict(self) -> dict[str, Any]:
        """Serialise with expiry timestamps as epoch milliseconds."""
        return {
            "authorization_code": self.authorization_code,
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "expire_time": _to_millis(self.expire_at),
            "refresh_expire_time": _to_millis(self.refresh_expire_at),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Session:
        return cls(
            authorization_code=data.get("authorization_code", ""),
            access_token=data.get("access_token", ""),
            refresh_token=data.get("refresh_token", ""),
            expire_at=from_millis(data.get("expire_time")),
            refresh_expire_at=from_millis(data.get("refresh_expire_time")),
        )


@dataclass(frozen=True)
class Credentials:
    """Account and API registration credentials used for login."""

    username: str
    password: str
    access_key: str
    secret_token: str
    home_id: str = ""

    @property
    def is_complete(self) -> bool:
        """Return True if every required field is non-empty."""
        return all(
            (self.username, self.password, self.access_key, self.secret_token)
        )


@dataclass(frozen=True, slots=True)
class Device:
    """Represents a single LVI heater as reported by the vendor."""

    id: str
    label: str
    home_id: str = ""
    room_id: str = ""
    current_temp: float | None = None
    comfort_temp: float | None = None
    frost_temp: float | None = None
    eco_temp: float | None = None
    boost_temp: float | None = None
    manual_temp: float | None = None
    min_set_point: float | None = None
    max_set_point: float | None = None
    air_temp: float | None = None
    floor_temp: float | None = None
    mode: str = ""
    power_status: bool = False
    heating_up: bool = False
    available: bool = False
    power: str = ""

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True, slots=True)
class Room:
    """Represents a zone within a home."""

    zone_id: str
    name: str
    home_id: str = ""
    zone_number: str = ""
    zone_type: str = ""
    position: str = ""
    devices: tuple[Device, ...] = ()


@dataclass(frozen=True, slots=True)
class Home:
    """Represents a home registered on the vendor account."""

    id: str
    mac_address: str = ""
    label: str = ""
    general_mode: str = ""
    holiday_mode: str = ""
    rooms: tuple[Room, ...] = ()


@dataclass(frozen=True, slots=True)
class Snapshot:
    """Homes, rooms and devices known at the last resync, held together."""

    homes: tuple[Home, ...] = ()
    rooms: tuple[Room, ...] = ()
    devices: tuple[Device, ...] = ()


@dataclass(frozen=True, slots=True)
class Found:
    """Outcome of a successful address lookup."""

    index: int


@dataclass(frozen=True, slots=True)
class NotFound:
    """Outcome of a failed address lookup."""

    address: str


@dataclass
class AuthStatus:
    """Payload of evt.auth.status_report."""

    status: str
    error_text: str = ""
    error_code: str = ""

    def as_dict(self) -> dict[str, str]:
        return asdict(self)


@dataclass
class ActionResult:
    """Payload of evt.app.config_action_report."""

    operation: str
    operation_status: str = "ok"
    next: str = "config"
    error_code: str = ""
    error_text: str = ""

    def as_dict(self) -> dict[str, str]:
        return asdict(self)


@dataclass
class ServiceInterface:
    """One message type supported by a service in an inclusion report."""

    msg_type: str
    name: str
    value_type: str
    version: str = "1"

    def as_dict(self) -> dict[str, str]:
        return {
            "intf_t": self.msg_type,
            "msg_t": self.name,
            "val_t": self.value_type,
            "ver": self.version,
        }


@dataclass
class InclusionService:
    """A bus service exposed by a device."""

    name: str
    address: str
    alias: str = ""
    props: dict[str, Any] = field(default_factory=dict)
    interfaces: list[ServiceInterface] = field(default_factory=list)

    def as_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "alias": self.alias or self.name,
            "address": self.address,
            "enabled": True,
            "groups": ["ch_0"],
            "props": self.props,
            "interfaces": [intf.as_dict() for intf in self.interfaces],
        }
