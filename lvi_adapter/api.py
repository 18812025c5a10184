"""API client for the LVI heater cloud.

This module provides functions to interact with the LVI API,
including authentication, token refresh, home/room/device listing
and device control.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from .const import (
    APPLY_ACCESS_TOKEN_URL,
    AUTH_URL,
    DEFAULT_HTTP_TIMEOUT,
    DEVICE_CONTROL_URL,
    DEVICE_LIST_URL,
    ERROR_EMPTY_TOKENS,
    HOME_LIST_URL,
    INDEPENDENT_DEVICES_URL,
    OPERATION_SETPOINT,
    REFRESH_TOKEN_URL,
    ROOM_LIST_URL,
)
from .models import Credentials, Device, Home, Room, Session, from_millis

_LOGGER = logging.getLogger(__name__)

HTTP_OK = 200


class LviApiClientError(Exception):
    """Base exception for LVI API client errors."""


class LviApiTransportError(LviApiClientError):
    """Exception raised when the API cannot be reached or returns a bad status."""


class LviApiVendorError(LviApiClientError):
    """Exception raised when the API reports a non-zero error code."""


class LviApiAuthError(LviApiClientError):
    """Exception raised for authentication errors."""


def create_headers(access_token: str | None = None) -> dict[str, str]:
    """Create HTTP headers for LVI API requests.

    Args:
        access_token: Optional access token to include in headers.

    Returns:
        Dictionary containing HTTP headers for API requests.

    """
    headers = {"accept": "*/*"}
    if access_token:
        headers["access_token"] = access_token
    return headers


def is_http_error(status: int) -> bool:
    """Check if HTTP status code indicates an error.

    Every status other than 200 is a failure for this API.
    """
    return status != HTTP_OK


def is_api_error(data: dict[str, Any]) -> bool:
    """Check if API response indicates an error.

    Args:
        data: API response data dictionary.

    Returns:
        True if errorCode is not 0 or success is false, False otherwise.

    """
    if data.get("success") is False:
        return True
    return data.get("errorCode", 0) not in (0, None)


def validate_response(response: httpx.Response) -> dict[str, Any]:
    """Validate HTTP response and return parsed JSON data.

    Args:
        response: HTTP response object to validate.

    Returns:
        Parsed JSON data from response.

    Raises:
        LviApiTransportError: If the HTTP status or body is unusable.
        LviApiVendorError: If the API reports an error code.

    """
    if is_http_error(response.status_code):
        error_msg = f"Bad HTTP return code {response.status_code}"
        raise LviApiTransportError(error_msg)

    try:
        data = response.json()
    except ValueError as err:
        error_msg = f"Invalid JSON in API response: {err}"
        raise LviApiTransportError(error_msg) from err

    if not isinstance(data, dict):
        error_msg = "Unexpected API response shape"
        raise LviApiTransportError(error_msg)

    if is_api_error(data):
        error_msg = (
            f"errorcode from request: {data.get('errorCode')} "
            f"({data.get('message') or 'Unknown API error'})"
        )
        raise LviApiVendorError(error_msg)

    return data


async def _async_post(
    session: httpx.AsyncClient,
    url: str,
    **kwargs: Any,
) -> dict[str, Any]:
    try:
        response = await session.post(url, **kwargs)
    except httpx.RequestError as err:
        error_msg = f"API does not respond: {err}"
        raise LviApiTransportError(error_msg) from err
    return validate_response(response)


def _data(data: dict[str, Any]) -> dict[str, Any]:
    body = data.get("data")
    return body if isinstance(body, dict) else {}


def _to_str(value: Any) -> str:
    return "" if value is None else str(value)


def _to_float(value: Any) -> float | None:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        _LOGGER.debug("Ignoring non-numeric value %r", value)
        return None


def _to_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "on", "yes")
    return bool(value)


def extract_authorization_code(data: dict[str, Any]) -> str:
    """Extract the authorization code from a user/auth response.

    Raises:
        LviApiAuthError: If no authorization code was returned.

    """
    code = _to_str(_data(data).get("authorization_code"))
    if not code:
        error_msg = "No authorization code received"
        raise LviApiAuthError(error_msg)
    return code


def extract_session(data: dict[str, Any], authorization_code: str = "") -> Session:
    """Extract a token pair with absolute expiry from a token response.

    Args:
        data: API response data dictionary.
        authorization_code: Code the tokens were exchanged for, if any.

    Returns:
        Populated Session.

    Raises:
        LviApiAuthError: If a token or the access token expiry is missing.

    """
    body = _data(data)
    access_token = _to_str(body.get("access_token"))
    refresh_token = _to_str(body.get("refresh_token"))
    expire_at = from_millis(body.get("expireTime"))
    if not access_token or not refresh_token or expire_at is None:
        raise LviApiAuthError(ERROR_EMPTY_TOKENS)

    return Session(
        authorization_code=authorization_code,
        access_token=access_token,
        refresh_token=refresh_token,
        expire_at=expire_at,
        refresh_expire_at=from_millis(body.get("refresh_expireTime")),
    )


def parse_device(raw: dict[str, Any], room_id: str = "") -> Device:
    """Build a Device from one entry of a vendor deviceList."""
    return Device(
        id=_to_str(raw.get("device_id") or raw.get("id")),
        label=_to_str(raw.get("nom_appareil")),
        home_id=_to_str(raw.get("smarthome_id")),
        room_id=room_id or _to_str(raw.get("num_zone")),
        current_temp=_to_float(raw.get("current_temp")),
        comfort_temp=_to_float(raw.get("consigne_confort")),
        frost_temp=_to_float(raw.get("consigne_hg")),
        eco_temp=_to_float(raw.get("consigne_eco")),
        boost_temp=_to_float(raw.get("consigne_boost")),
        manual_temp=_to_float(raw.get("consigne_manuel")),
        min_set_point=_to_float(raw.get("min_set_point")),
        max_set_point=_to_float(raw.get("max_set_point")),
        air_temp=_to_float(raw.get("temperature_air")),
        floor_temp=_to_float(raw.get("temperature_sol")),
        mode=_to_str(raw.get("gv_mode") or raw.get("nv_mode")),
        power_status=_to_bool(raw.get("power_status")),
        heating_up=_to_bool(raw.get("heating_up")),
        available=_to_bool(raw.get("available")),
        power=_to_str(raw.get("puissance_app")),
    )


def extract_homes(data: dict[str, Any]) -> list[Home]:
    """Extract the home list from a selectHomeList response."""
    return [
        Home(
            id=_to_str(h.get("smarthome_id")),
            mac_address=_to_str(h.get("mac_address")),
            label=_to_str(h.get("label")),
            general_mode=_to_str(h.get("general_mode")),
            holiday_mode=_to_str(h.get("holiday_mode")),
        )
        for h in _data(data).get("homeList") or []
    ]


def extract_rooms(data: dict[str, Any], home_id: str) -> list[Room]:
    """Extract the room list from a selectRoombyHome response."""
    return [
        Room(
            zone_id=_to_str(r.get("zone_id")),
            name=_to_str(r.get("name")),
            home_id=home_id,
            zone_number=_to_str(r.get("num_zone")),
            zone_type=_to_str(r.get("label_zone_type")),
            position=_to_str(r.get("address_position")),
        )
        for r in _data(data).get("roomList") or []
    ]


def extract_devices(data: dict[str, Any], room_id: str = "") -> list[Device]:
    """Extract the device list from a device listing response.

    Entries without a device id are skipped.
    """
    devices = [
        parse_device(raw, room_id) for raw in _data(data).get("deviceList") or []
    ]
    return [device for device in devices if device.id]


def create_session_client(timeout: float = DEFAULT_HTTP_TIMEOUT) -> httpx.AsyncClient:
    """Create the HTTP client used for every LVI API call.

    No retry transport is installed: each call is attempted once.
    """
    return httpx.AsyncClient(timeout=timeout)


async def async_get_authorization_code(
    session: httpx.AsyncClient,
    credentials: Credentials,
) -> str:
    """Obtain an authorization code for the account.

    Raises:
        LviApiAuthError: If no code is returned.
        LviApiClientError: If the API request fails.

    """
    form = {
        "email": credentials.username,
        "password": credentials.password,
        "token": credentials.secret_token,
        "smarthome_id": credentials.home_id,
    }
    headers = {
        **create_headers(),
        "content-type": "application/x-www-form-urlencoded",
    }

    _LOGGER.debug("Requesting authorization code from LVI API")
    data = await _async_post(session, AUTH_URL, headers=headers, data=form)
    return extract_authorization_code(data)


async def async_apply_access_token(
    session: httpx.AsyncClient,
    credentials: Credentials,
    authorization_code: str,
) -> Session:
    """Exchange an authorization code for an access/refresh token pair.

    Raises:
        LviApiAuthError: If the response carries no usable tokens.
        LviApiClientError: If the API request fails.

    """
    headers = {
        **create_headers(),
        "authorization_code": authorization_code,
        "access_key": credentials.access_key,
    }
    params = {"username": credentials.username, "password": credentials.password}

    _LOGGER.debug("Exchanging authorization code for tokens")
    data = await _async_post(
        session, APPLY_ACCESS_TOKEN_URL, headers=headers, params=params
    )
    return extract_session(data, authorization_code)


async def async_refresh_token(
    session: httpx.AsyncClient,
    refresh_token: str,
) -> Session:
    """Obtain a new token pair using the refresh token.

    The returned Session carries no authorization code.
    """
    _LOGGER.debug("Refreshing access token with LVI API")
    data = await _async_post(
        session,
        REFRESH_TOKEN_URL,
        headers=create_headers(),
        params={"refreshtoken": refresh_token},
    )
    return extract_session(data)


async def async_get_homes(
    session: httpx.AsyncClient,
    access_token: str,
) -> list[Home]:
    """Fetch the homes registered on the account."""
    data = await _async_post(
        session, HOME_LIST_URL, headers=create_headers(access_token)
    )
    homes = extract_homes(data)
    _LOGGER.debug("Retrieved %d homes from LVI API", len(homes))
    return homes


async def async_get_rooms(
    session: httpx.AsyncClient,
    access_token: str,
    home_id: str,
) -> list[Room]:
    """Fetch the rooms of one home."""
    data = await _async_post(
        session,
        ROOM_LIST_URL,
        headers=create_headers(access_token),
        params={"homeId": home_id},
    )
    rooms = extract_rooms(data, home_id)
    _LOGGER.debug("Retrieved %d rooms for home %s", len(rooms), home_id)
    return rooms


async def async_get_devices(
    session: httpx.AsyncClient,
    access_token: str,
    room_id: str,
) -> list[Device]:
    """Fetch the devices assigned to one room."""
    data = await _async_post(
        session,
        DEVICE_LIST_URL,
        headers=create_headers(access_token),
        params={"roomId": room_id},
    )
    devices = extract_devices(data, room_id)
    _LOGGER.debug("Retrieved %d devices for room %s", len(devices), room_id)
    return devices


async def async_get_independent_devices(
    session: httpx.AsyncClient,
    access_token: str,
    home_id: str,
) -> list[Device]:
    """Fetch the devices of a home that are not assigned to any room."""
    data = await _async_post(
        session,
        INDEPENDENT_DEVICES_URL,
        headers=create_headers(access_token),
        params={"homeId": home_id},
    )
    devices = extract_devices(data)
    _LOGGER.debug(
        "Retrieved %d independent devices for home %s", len(devices), home_id
    )
    return devices


async def async_set_temperature(
    session: httpx.AsyncClient,
    access_token: str,
    device_id: str,
    hold_temp: str,
) -> None:
    """Set the hold temperature of a device.

    Args:
        session: HTTP client session.
        access_token: Current access token.
        device_id: Target device identifier.
        hold_temp: Whole-degree temperature as a string.

    Raises:
        LviApiClientError: If the API request fails.

    """
    params = {
        "deviceId": device_id,
        "holdTemp": hold_temp,
        "operation": str(OPERATION_SETPOINT),
        "status": "1",
    }

    _LOGGER.debug("Setting temperature of device %s to %s", device_id, hold_temp)
    await _async_post(
        session,
        DEVICE_CONTROL_URL,
        headers=create_headers(access_token),
        params=params,
    )
