"""Device registry holding the home/room/device snapshot."""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import TYPE_CHECKING, Any

from . import api
from .const import (
    ADAPTER_ADDRESS,
    ADDRESS_DEVICE_PREFIX,
    ADDRESS_SERVICE_SUFFIX,
    MODE_HEAT,
    SERVICE_NAME,
    SERVICE_SENSOR_TEMP,
    SERVICE_THERMOSTAT,
    TEMPERATURE_UNIT,
)
from .models import (
    Device,
    Found,
    Home,
    InclusionService,
    NotFound,
    Room,
    ServiceInterface,
    Snapshot,
)

if TYPE_CHECKING:
    import httpx

    from .models import Session

_LOGGER = logging.getLogger(__name__)


class AddressNotFoundError(Exception):
    """Raised when a bus address does not match any known device."""


def normalize_address(address: str) -> str:
    """Strip bus-specific decorations from a device address.

    Removes the service suffix and the device prefix until neither is
    present, so applying it twice gives the same result as once.
    """
    normalized = address
    while True:
        stripped = normalized.strip()
        if stripped.endswith(ADDRESS_SERVICE_SUFFIX):
            stripped = stripped[: -len(ADDRESS_SERVICE_SUFFIX)]
        if stripped.startswith(ADDRESS_DEVICE_PREFIX):
            stripped = stripped[len(ADDRESS_DEVICE_PREFIX) :]
        if stripped == normalized:
            return normalized
        normalized = stripped


def service_topic(service: str, address: str) -> str:
    return f"/rt:dev/rn:{SERVICE_NAME}/ad:{ADAPTER_ADDRESS}/sv:{service}/ad:{address}"


class DeviceRegistry:
    """Owns the current snapshot and resolves bus addresses to devices.

    The snapshot is only ever replaced as a whole by ``async_resync_all``.
    """

    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client
        self._snapshot = Snapshot()

    @property
    def snapshot(self) -> Snapshot:
        return self._snapshot

    @property
    def homes(self) -> tuple[Home, ...]:
        return self._snapshot.homes

    @property
    def rooms(self) -> tuple[Room, ...]:
        return self._snapshot.rooms

    @property
    def devices(self) -> tuple[Device, ...]:
        return self._snapshot.devices

    async def async_resync_all(self, session: Session) -> Snapshot:
        """Rebuild the snapshot from the vendor and swap it in.

        A failing listing call is logged and its branch contributes nothing;
        the resync still completes with whatever was collected.
        """
        token = session.access_token
        homes: list[Home] = []
        rooms: list[Room] = []
        devices: list[Device] = []
        independent: list[Device] = []

        try:
            listed_homes = await api.async_get_homes(self._client, token)
        except api.LviApiClientError:
            _LOGGER.exception("Can't get home list")
            listed_homes = []

        for home in listed_homes:
            try:
                listed_rooms = await api.async_get_rooms(self._client, token, home.id)
            except api.LviApiClientError:
                _LOGGER.exception("Can't get room list for home %s", home.id)
                listed_rooms = []

            home_rooms = []
            for room in listed_rooms:
                try:
                    room_devices = await api.async_get_devices(
                        self._client, token, room.zone_id
                    )
                except api.LviApiClientError:
                    _LOGGER.exception("Can't get device list for room %s", room.zone_id)
                    room_devices = []
                home_rooms.append(replace(room, devices=tuple(room_devices)))
                devices.extend(room_devices)

            try:
                independent.extend(
                    await api.async_get_independent_devices(
                        self._client, token, home.id
                    )
                )
            except api.LviApiClientError:
                _LOGGER.exception(
                    "Can't get independent device list for home %s", home.id
                )

            rooms.extend(home_rooms)
            homes.append(replace(home, rooms=tuple(home_rooms)))

        snapshot = Snapshot(
            homes=tuple(homes),
            rooms=tuple(rooms),
            devices=tuple(devices + independent),
        )
        self._snapshot = snapshot
        _LOGGER.info(
            "Resynced %d homes, %d rooms, %d devices",
            len(snapshot.homes),
            len(snapshot.rooms),
            len(snapshot.devices),
        )
        return snapshot

    def resolve(self, address: str) -> Found | NotFound:
        """Find the index of the device matching ``address``."""
        wanted = normalize_address(address)
        for index, device in enumerate(self._snapshot.devices):
            if normalize_address(device.id) == wanted:
                return Found(index)
        return NotFound(wanted)

    def get_device(self, address: str) -> Device:
        """Return the device matching ``address``.

        Raises:
            AddressNotFoundError: If no device matches.

        """
        result = self.resolve(address)
        if isinstance(result, NotFound):
            error_msg = f"No device with address {result.address}"
            raise AddressNotFoundError(error_msg)
        return self._snapshot.devices[result.index]

    def inclusion_report(self, index: int) -> dict[str, Any]:
        """Build the capability descriptor of the device at ``index``."""
        device = self._snapshot.devices[index]
        address = normalize_address(device.id)

        thermostat_props: dict[str, Any] = {
            "sup_modes": [MODE_HEAT],
            "sup_setpoints": [MODE_HEAT],
        }
        if device.min_set_point is not None:
            thermostat_props["sup_range"] = {
                "min": device.min_set_point,
                "max": device.max_set_point,
            }

        thermostat = InclusionService(
            name=SERVICE_THERMOSTAT,
            alias="Thermostat",
            address=service_topic(SERVICE_THERMOSTAT, address),
            props=thermostat_props,
            interfaces=[
                ServiceInterface("in", "cmd.setpoint.set", "str_map"),
                ServiceInterface("in", "cmd.setpoint.get_report", "string"),
                ServiceInterface("out", "evt.setpoint.report", "str_map"),
                ServiceInterface("in", "cmd.mode.set", "string"),
                ServiceInterface("in", "cmd.mode.get_report", "null"),
                ServiceInterface("out", "evt.mode.report", "string"),
            ],
        )
        sensor = InclusionService(
            name=SERVICE_SENSOR_TEMP,
            alias="Temperature sensor",
            address=service_topic(SERVICE_SENSOR_TEMP, address),
            props={"sup_units": [TEMPERATURE_UNIT]},
            interfaces=[
                ServiceInterface("in", "cmd.sensor.get_report", "null"),
                ServiceInterface("out", "evt.sensor.report", "float"),
            ],
        )

        return {
            "address": address,
            "product_hash": f"{SERVICE_NAME}_{address}",
            "product_name": device.label or f"LVI heater {address}",
            "product_id": "lvi_heater",
            "manufacturer_id": SERVICE_NAME,
            "device_id": address,
            "hw_ver": "1",
            "sw_ver": "1",
            "comm_tech": SERVICE_NAME,
            "power_source": "ac",
            "wakeup_interval": "-1",
            "security": "tls",
            "category": "heater",
            "tags": [],
            "props": {"is_available": device.available},
            "services": [thermostat.as_dict(), sensor.as_dict()],
        }
