"""Constants for the LVI heater adapter.

This module contains all the constants used throughout the adapter,
including vendor API endpoints, bus topics, state names and config keys.
"""

SERVICE_NAME = "lvi"
ADAPTER_ADDRESS = "1"

BASE_URL = "https://e3.lvi.eu/api/v0.1/human"
AUTH_URL = f"{BASE_URL}/user/auth"
APPLY_ACCESS_TOKEN_URL = f"{BASE_URL}/share/applyAccessToken"
REFRESH_TOKEN_URL = f"{BASE_URL}/share/refreshtoken"
HOME_LIST_URL = f"{BASE_URL}/uds/selectHomeList"
ROOM_LIST_URL = f"{BASE_URL}/uds/selectRoombyHome2020"
DEVICE_LIST_URL = f"{BASE_URL}/uds/selectDevicebyRoom2020"
INDEPENDENT_DEVICES_URL = f"{BASE_URL}/uds/getIndependentDevices2020"
DEVICE_CONTROL_URL = f"{BASE_URL}/uds/deviceControlForOpenApi"

DEFAULT_HTTP_TIMEOUT = 10.0

# deviceControlForOpenApi "operation" values
OPERATION_MODE = 0
OPERATION_SETPOINT = 1

# Bus addressing
ADDRESS_DEVICE_PREFIX = "l"
ADDRESS_SERVICE_SUFFIX = "_0"
INBOUND_QUEUE_SIZE = 5
DEFAULT_MQTT_HOST = "localhost"
DEFAULT_MQTT_PORT = 1883
MQTT_CLIENT_ID = "lvi_adapter"
MQTT_RECONNECT_DELAY = 5

SERVICE_THERMOSTAT = "thermostat"
SERVICE_SENSOR_TEMP = "sensor_temp"

TEMPERATURE_UNIT = "C"
MODE_HEAT = "heat"

# Auth status values reported in evt.auth.status_report
AUTH_STATE_NOT_AUTHENTICATED = "not_authenticated"
AUTH_STATE_AUTHENTICATED = "authenticated"
AUTH_STATE_ERROR = "error"

APP_STATE_STARTING = "starting"
APP_STATE_NOT_CONFIGURED = "not_configured"
APP_STATE_RUNNING = "running"
APP_STATE_ERROR = "error"

CONFIG_STATE_NOT_CONFIGURED = "not_configured"
CONFIG_STATE_CONFIGURED = "configured"

CONN_STATE_CONNECTED = "connected"
CONN_STATE_DISCONNECTED = "disconnected"

EVENT_CONFIGURED = "configured"

ERROR_EMPTY_CREDENTIALS = "Empty username or password or access_key or secret_token"
ERROR_EMPTY_TOKENS = "Empty accessToken or refreshToken"
ERROR_SESSION_EXPIRED = "Session expired, send cmd.auth.login"

CONF_USERNAME = "username"
CONF_PASSWORD = "password"
CONF_ACCESS_KEY = "access_key"
CONF_SECRET_TOKEN = "secret_token"
CONF_HOME_ID = "home_id"
CONF_LOG_LEVEL = "log_level"
CONF_HTTP_TIMEOUT = "http_timeout"
CONF_MQTT_HOST = "mqtt_host"
CONF_MQTT_PORT = "mqtt_port"
CONF_MQTT_USERNAME = "mqtt_username"
CONF_MQTT_PASSWORD = "mqtt_password"
CONF_AUTH = "auth"

CONFIG_FILE_NAME = "config.json"
MANIFEST_FILE_NAME = "app-manifest.json"
MANIFEST_MODE_STATE = "manifest_state"
ENV_WORK_DIR = "LVI_ADAPTER_WORK_DIR"
DEFAULT_WORK_DIR = "./data"

LOG_LEVELS = ("debug", "info", "warning", "error", "critical")
DEFAULT_LOG_LEVEL = "info"
