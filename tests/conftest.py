"""Pytest configuration and fixtures for LVI adapter tests."""

import re
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

import pytest

from lvi_adapter.config import AdapterConfig
from lvi_adapter.models import Credentials, Session


def url_pattern(url: str) -> re.Pattern[str]:
    """Match ``url`` with any query string."""
    return re.compile(rf"^{re.escape(url)}(\?.*)?$")


def to_millis(value: datetime) -> int:
    return int(value.timestamp() * 1000)


def vendor_response(data: dict[str, Any] | None = None, error_code: int = 0) -> dict:
    """Wrap ``data`` in the envelope every LVI API response carries.

    Args:
        data: Content of the ``data`` field.
        error_code: Vendor error code, 0 for success.

    Returns:
        A dictionary representing an LVI API response.

    """
    return {
        "errorCode": error_code,
        "message": "ok" if error_code == 0 else "failure",
        "statusCode": 200,
        "success": error_code == 0,
        "data": data or {},
    }


def raw_device(device_id: str, label: str, current_temp: str = "19.5") -> dict:
    return {
        "device_id": device_id,
        "nom_appareil": label,
        "smarthome_id": "home1",
        "current_temp": current_temp,
        "consigne_confort": "21",
        "consigne_hg": "7",
        "consigne_eco": "17",
        "consigne_boost": "24",
        "min_set_point": "7",
        "max_set_point": "30",
        "gv_mode": "0",
        "power_status": "1",
        "heating_up": "0",
        "available": 1,
        "puissance_app": "1000",
    }


@pytest.fixture
def credentials() -> Credentials:
    """Fixture providing complete login credentials."""
    return Credentials(
        username="user@example.com",
        password="password123",
        access_key="access-key-0001",
        secret_token="secret-token-0001",
        home_id="home1",
    )


@pytest.fixture
def config(tmp_path: Path) -> AdapterConfig:
    """Fixture providing a default config stored in a temporary directory."""
    return AdapterConfig(work_dir=tmp_path)


@pytest.fixture
def valid_session() -> Session:
    """Fixture providing a session whose access token is still valid."""
    now = datetime.now(UTC)
    return Session(
        authorization_code="auth-code",
        access_token="access-token-valid",
        refresh_token="refresh-token-valid",
        expire_at=now + timedelta(hours=2),
        refresh_expire_at=now + timedelta(days=30),
    )


@pytest.fixture
def sample_auth_response() -> dict:
    """Fixture providing a sample user/auth response."""
    return vendor_response({"authorization_code": "auth-code"})


@pytest.fixture
def sample_token_response() -> dict:
    """Fixture providing a sample token exchange or refresh response.

    Returns:
        A token response with a 2 hour access token and 30 day refresh token.

    """
    now = datetime.now(UTC)
    return vendor_response(
        {
            "access_token": "access-token-new",
            "refresh_token": "refresh-token-new",
            "expireTime": to_millis(now + timedelta(hours=2)),
            "refresh_expireTime": to_millis(now + timedelta(days=30)),
        }
    )


@pytest.fixture
def sample_homes_response() -> dict:
    """Fixture providing a sample selectHomeList response with two homes."""
    return vendor_response(
        {
            "homeList": [
                {
                    "smarthome_id": "home1",
                    "mac_address": "AA:BB:CC:DD:EE:01",
                    "label": "House",
                    "general_mode": "0",
                    "holiday_mode": "0",
                },
                {
                    "smarthome_id": "home2",
                    "mac_address": "AA:BB:CC:DD:EE:02",
                    "label": "Cabin",
                    "general_mode": "0",
                    "holiday_mode": "0",
                },
            ]
        }
    )


@pytest.fixture
def sample_rooms_response() -> dict:
    """Fixture providing a sample room list with a single room."""
    return vendor_response(
        {
            "roomList": [
                {
                    "zone_id": "room1",
                    "name": "Living room",
                    "num_zone": "1",
                    "label_zone_type": "living",
                    "address_position": "0",
                }
            ]
        }
    )


@pytest.fixture
def sample_devices_response() -> dict:
    """Fixture providing a sample device list for one room."""
    return vendor_response({"deviceList": [raw_device("1234", "Heater living")]})


@pytest.fixture
def sample_independent_devices_response() -> dict:
    """Fixture providing a sample list of devices outside any room."""
    return vendor_response({"deviceList": [raw_device("5678", "Heater hall", "18")]})


@pytest.fixture
def lvi_url():
    """Fixture providing a matcher for an LVI endpoint with any query string."""
    return url_pattern


@pytest.fixture
def make_response():
    """Fixture providing the LVI response envelope builder."""
    return vendor_response


@pytest.fixture
def make_device():
    """Fixture providing the raw vendor device builder."""
    return raw_device
