"""Command router translating bus commands into LVI API calls.

Every inbound message passes through ``CommandRouter.async_route``, one at a
time: the session is checked first, then the message is dispatched on its
(service, type) pair and the handler publishes its reply, if any.
"""

from __future__ import annotations

import logging
import math
from typing import TYPE_CHECKING

import httpx
import voluptuous as vol

from . import api
from .config import (
    EXTENDED_SET_SCHEMA,
    LOG_LEVEL_SCHEMA,
    apply_log_level,
    default_work_dir,
    load_manifest,
)
from .const import (
    APP_STATE_NOT_CONFIGURED,
    APP_STATE_RUNNING,
    AUTH_STATE_AUTHENTICATED,
    AUTH_STATE_ERROR,
    AUTH_STATE_NOT_AUTHENTICATED,
    CONF_ACCESS_KEY,
    CONF_HOME_ID,
    CONF_HTTP_TIMEOUT,
    CONF_LOG_LEVEL,
    CONF_PASSWORD,
    CONF_SECRET_TOKEN,
    CONF_USERNAME,
    CONFIG_STATE_CONFIGURED,
    CONFIG_STATE_NOT_CONFIGURED,
    ERROR_EMPTY_CREDENTIALS,
    ERROR_SESSION_EXPIRED,
    EVENT_CONFIGURED,
    MANIFEST_MODE_STATE,
    MODE_HEAT,
    SERVICE_NAME,
    SERVICE_SENSOR_TEMP,
    SERVICE_THERMOSTAT,
    TEMPERATURE_UNIT,
)
from .fimp import (
    VTYPE_FLOAT,
    VTYPE_OBJECT,
    VTYPE_STR_MAP,
    VTYPE_STRING,
    FimpAddress,
    FimpMessage,
    MessageParseError,
    adapter_event_address,
    device_event_address,
    new_message,
)
from .models import ActionResult, AuthStatus, Credentials, NotFound
from .registry import AddressNotFoundError, normalize_address
from .session import RefreshOutcome, SessionState

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from .config import AdapterConfig
    from .fimp import InboundMessage
    from .lifecycle import Lifecycle
    from .registry import DeviceRegistry
    from .session import SessionManager
    from .transport import MqttTransport

    Handler = Callable[[InboundMessage, str], Awaitable[None]]

_LOGGER = logging.getLogger(__name__)

# Commands that cannot run without a usable vendor session.
_VENDOR_COMMANDS = frozenset({"cmd.setpoint.set", "cmd.network.get_all_nodes"})


class CommandRouter:
    """Single dispatch point for inbound bus messages."""

    def __init__(
        self,
        transport: MqttTransport,
        client: httpx.AsyncClient,
        config: AdapterConfig,
        lifecycle: Lifecycle,
        session_manager: SessionManager,
        registry: DeviceRegistry,
    ) -> None:
        self._transport = transport
        self._client = client
        self._config = config
        self._lifecycle = lifecycle
        self._session_manager = session_manager
        self._registry = registry
        self._handlers: dict[tuple[str, str], Handler] = {
            (SERVICE_THERMOSTAT, "cmd.setpoint.set"): self._async_setpoint_set,
            (SERVICE_THERMOSTAT, "cmd.setpoint.get_report"): (
                self._async_setpoint_get_report
            ),
            (SERVICE_THERMOSTAT, "cmd.mode.set"): self._async_mode_set,
            (SERVICE_THERMOSTAT, "cmd.mode.get_report"): self._async_mode_get_report,
            (SERVICE_SENSOR_TEMP, "cmd.sensor.get_report"): (
                self._async_sensor_get_report
            ),
            (SERVICE_NAME, "cmd.auth.login"): self._async_auth_login,
            (SERVICE_NAME, "cmd.network.get_all_nodes"): self._async_get_all_nodes,
            (SERVICE_NAME, "cmd.app.get_manifest"): self._async_get_manifest,
            (SERVICE_NAME, "cmd.app.get_state"): self._async_get_state,
            (SERVICE_NAME, "cmd.config.get_extended_report"): (
                self._async_config_get_report
            ),
            (SERVICE_NAME, "cmd.config.extended_set"): self._async_config_set,
            (SERVICE_NAME, "cmd.log.set_level"): self._async_log_set_level,
            (SERVICE_NAME, "cmd.system.reconnect"): self._async_system_reconnect,
            (SERVICE_NAME, "cmd.app.factory_reset"): self._async_factory_reset,
            (SERVICE_NAME, "cmd.thing.get_inclusion_report"): (
                self._async_get_inclusion_report
            ),
            (SERVICE_NAME, "cmd.thing.inclusion"): self._async_thing_inclusion,
            (SERVICE_NAME, "cmd.thing.delete"): self._async_thing_delete,
        }

    @property
    def supported_commands(self) -> frozenset[tuple[str, str]]:
        return frozenset(self._handlers)

    async def async_run(self) -> None:
        """Drain the transport queue forever, one message at a time."""
        while True:
            message = await self._transport.async_get_message()
            await self.async_route(message)

    async def async_reload_devices(self, *, check_session: bool = True) -> None:
        """Resync the registry with the stored session.

        Called at startup and by ``cmd.system.reconnect``, always from the
        task that consumes inbound messages.

        Args:
            check_session: Refresh the access token first if it has expired.

        """
        if self._config.auth.is_empty:
            _LOGGER.debug("Not logged in, skipping device load")
            return

        if check_session:
            await self._session_manager.async_refresh_if_needed()
        if self._session_manager.state is SessionState.EXPIRED:
            _LOGGER.warning("Session expired, waiting for cmd.auth.login")
            self._lifecycle.set_auth_state(AUTH_STATE_NOT_AUTHENTICATED)
            return

        await self._registry.async_resync_all(self._session_manager.session)
        self._lifecycle.set_auth_state(AUTH_STATE_AUTHENTICATED)
        self._lifecycle.set_config_state(CONFIG_STATE_CONFIGURED)
        self._lifecycle.set_app_state(APP_STATE_RUNNING)

    async def async_route(self, message: InboundMessage) -> None:
        """Check the session, then dispatch one inbound message."""
        payload = message.payload
        session_expired = False

        if self._session_manager.session.expire_at is not None:
            outcome = await self._session_manager.async_refresh_if_needed()
            if outcome is RefreshOutcome.EXPIRED:
                session_expired = True
                self._lifecycle.set_auth_state(AUTH_STATE_NOT_AUTHENTICATED)

        address = normalize_address(message.address.service_address)
        handler = self._handlers.get((payload.service, payload.type))
        if handler is None:
            _LOGGER.debug(
                "Dropping unsupported message %s/%s", payload.service, payload.type
            )
            return

        if session_expired and payload.type in _VENDOR_COMMANDS:
            _LOGGER.warning("Session expired, not running %s", payload.type)
            status = AuthStatus(AUTH_STATE_NOT_AUTHENTICATED, ERROR_SESSION_EXPIRED)
            await self._async_respond_adapter(
                message, "evt.auth.status_report", status.as_dict()
            )
            return

        _LOGGER.debug("Handling %s/%s for %r", payload.service, payload.type, address)
        try:
            await handler(message, address)
        except MessageParseError as err:
            _LOGGER.error("Declining %s: %s", payload.type, err)
        except AddressNotFoundError as err:
            _LOGGER.warning("Ignoring %s: %s", payload.type, err)
        except api.LviApiClientError:
            _LOGGER.exception("API error while handling %s", payload.type)
        except Exception:
            _LOGGER.exception("Unexpected error while handling %s", payload.type)

    async def _async_respond(
        self,
        message: InboundMessage,
        reply: FimpMessage,
        default_address: FimpAddress,
    ) -> None:
        """Reply to the requester if it asked for one, otherwise broadcast."""
        if not await self._transport.async_respond_to_request(message.payload, reply):
            await self._transport.async_publish(default_address, reply)

    async def _async_respond_adapter(
        self,
        message: InboundMessage,
        msg_type: str,
        value: object,
    ) -> None:
        reply = new_message(
            msg_type, SERVICE_NAME, VTYPE_OBJECT, value, request=message.payload
        )
        await self._async_respond(message, reply, adapter_event_address())

    # Thermostat and sensor services

    async def _async_setpoint_set(self, message: InboundMessage, address: str) -> None:
        value = message.payload.get_str_map_value()
        raw_temp = value.get("temp", "")
        try:
            temp = float(raw_temp)
        except ValueError as err:
            error_msg = f"setpoint value {raw_temp!r} is not a number"
            raise MessageParseError(error_msg) from err
        if not math.isfinite(temp):
            error_msg = f"setpoint value {raw_temp!r} is not finite"
            raise MessageParseError(error_msg)

        new_temp = str(math.ceil(temp))
        await api.async_set_temperature(
            self._client, self._session_manager.access_token, address, new_temp
        )

        # Echo the rounded value sent to the vendor, not the requested one.
        report = {
            "type": value.get("type") or MODE_HEAT,
            "temp": new_temp,
            "unit": TEMPERATURE_UNIT,
        }
        reply = new_message(
            "evt.setpoint.report",
            SERVICE_THERMOSTAT,
            VTYPE_STR_MAP,
            report,
            request=message.payload,
        )
        await self._async_respond(
            message, reply, device_event_address(SERVICE_THERMOSTAT, address)
        )
        _LOGGER.info("Temperature setpoint of %s updated to %s", address, new_temp)

    async def _async_setpoint_get_report(
        self, message: InboundMessage, address: str
    ) -> None:
        device = self._registry.get_device(address)
        if device.current_temp is None:
            _LOGGER.warning("Device %s reports no temperature", address)
            return

        report = {
            "type": MODE_HEAT,
            "temp": f"{device.current_temp:.2f}",
            "unit": TEMPERATURE_UNIT,
        }
        reply = new_message(
            "evt.setpoint.report",
            SERVICE_THERMOSTAT,
            VTYPE_STR_MAP,
            report,
            request=message.payload,
        )
        await self._async_respond(
            message, reply, device_event_address(SERVICE_THERMOSTAT, address)
        )

    async def _async_mode_set(self, message: InboundMessage, address: str) -> None:
        # Heaters only support heating, nothing to change.
        _LOGGER.debug(
            "Ignoring mode %r for %s, only %s is supported",
            message.payload.value,
            address,
            MODE_HEAT,
        )

    async def _async_mode_get_report(
        self, message: InboundMessage, address: str
    ) -> None:
        reply = new_message(
            "evt.mode.report",
            SERVICE_THERMOSTAT,
            VTYPE_STRING,
            MODE_HEAT,
            request=message.payload,
        )
        await self._async_respond(
            message, reply, device_event_address(SERVICE_THERMOSTAT, address)
        )

    async def _async_sensor_get_report(
        self, message: InboundMessage, address: str
    ) -> None:
        device = self._registry.get_device(address)
        if device.current_temp is None:
            _LOGGER.warning("Device %s reports no temperature", address)
            return

        reply = new_message(
            "evt.sensor.report",
            SERVICE_SENSOR_TEMP,
            VTYPE_FLOAT,
            device.current_temp,
            props={"unit": TEMPERATURE_UNIT},
            request=message.payload,
        )
        await self._async_respond(
            message, reply, device_event_address(SERVICE_SENSOR_TEMP, address)
        )

    # Adapter service

    async def _async_auth_login(self, message: InboundMessage, _address: str) -> None:
        props = message.payload.props
        credentials = Credentials(
            username=props.get(CONF_USERNAME, ""),
            password=props.get(CONF_PASSWORD, ""),
            access_key=props.get(CONF_ACCESS_KEY, ""),
            secret_token=props.get(CONF_SECRET_TOKEN, ""),
            home_id=props.get(CONF_HOME_ID, self._config.home_id),
        )

        if not credentials.is_complete:
            _LOGGER.warning(ERROR_EMPTY_CREDENTIALS)
            status = AuthStatus(AUTH_STATE_ERROR, ERROR_EMPTY_CREDENTIALS)
        else:
            try:
                await self._session_manager.async_login(credentials)
            except api.LviApiAuthError as err:
                # Vendor error codes reject the credentials, transport failures
                # are errors.
                failed_call = isinstance(err.__cause__, api.LviApiTransportError)
                status = AuthStatus(
                    AUTH_STATE_ERROR if failed_call else AUTH_STATE_NOT_AUTHENTICATED,
                    str(err),
                )
                self._lifecycle.set_auth_state(AUTH_STATE_NOT_AUTHENTICATED)
            else:
                status = AuthStatus(AUTH_STATE_AUTHENTICATED)
                self._lifecycle.set_auth_state(AUTH_STATE_AUTHENTICATED)
                self._lifecycle.set_config_state(CONFIG_STATE_CONFIGURED)
                self._lifecycle.set_app_state(APP_STATE_RUNNING)

        await self._async_respond_adapter(
            message, "evt.auth.status_report", status.as_dict()
        )

    async def _async_get_all_nodes(
        self, message: InboundMessage, _address: str
    ) -> None:
        snapshot = await self._registry.async_resync_all(
            self._session_manager.session
        )
        await self._async_respond_adapter(
            message,
            "evt.network.get_all_nodes_report",
            [device.as_dict() for device in snapshot.devices],
        )

    async def _async_get_manifest(self, message: InboundMessage, _address: str) -> None:
        mode = message.payload.get_string_value()
        work_dir = self._config.work_dir or default_work_dir()
        try:
            manifest = load_manifest(work_dir)
        except (OSError, ValueError):
            _LOGGER.exception("Failed to load manifest file")
            return

        if mode == MANIFEST_MODE_STATE:
            manifest["app_state"] = self._lifecycle.get_all_states()
            manifest["config_state"] = self._config.as_report()
        await self._async_respond_adapter(message, "evt.app.manifest_report", manifest)

    async def _async_get_state(self, message: InboundMessage, _address: str) -> None:
        await self._async_respond_adapter(
            message, "evt.app.manifest_report", self._lifecycle.get_all_states()
        )

    async def _async_config_get_report(
        self, message: InboundMessage, _address: str
    ) -> None:
        await self._async_respond_adapter(
            message, "evt.config.extended_report", self._config.as_report()
        )

    async def _async_config_set(self, message: InboundMessage, _address: str) -> None:
        try:
            changes = EXTENDED_SET_SCHEMA(message.payload.get_object_value())
        except vol.Invalid as err:
            error_msg = f"Can't parse configuration object: {err}"
            raise MessageParseError(error_msg) from err

        if CONF_LOG_LEVEL in changes:
            self._config.log_level = changes[CONF_LOG_LEVEL]
            apply_log_level(self._config.log_level)
        if CONF_HTTP_TIMEOUT in changes:
            self._config.http_timeout = changes[CONF_HTTP_TIMEOUT]
            self._client.timeout = httpx.Timeout(self._config.http_timeout)
        self._save_config()
        _LOGGER.info("Adapter reconfigured with %s", changes)

        await self._async_respond_adapter(
            message,
            "evt.app.config_report",
            {"op_status": "ok", "app_state": self._lifecycle.get_all_states()},
        )

    async def _async_log_set_level(
        self, message: InboundMessage, _address: str
    ) -> None:
        raw_level = message.payload.get_string_value()
        try:
            level = LOG_LEVEL_SCHEMA(raw_level)
        except vol.Invalid as err:
            error_msg = f"Unknown log level {raw_level!r}"
            raise MessageParseError(error_msg) from err

        apply_log_level(level)
        self._config.log_level = level
        self._save_config()
        _LOGGER.info("Log level updated to %s", level)

    async def _async_system_reconnect(
        self, message: InboundMessage, _address: str
    ) -> None:
        self._lifecycle.publish_event(EVENT_CONFIGURED)
        # The session was checked before dispatch.
        await self.async_reload_devices(check_session=False)
        result = ActionResult(operation="cmd.system.reconnect")
        await self._async_respond_adapter(
            message, "evt.app.config_action_report", result.as_dict()
        )

    async def _async_factory_reset(
        self, message: InboundMessage, _address: str
    ) -> None:
        self._session_manager.reset()
        self._config.clear_credentials()
        self._save_config()
        self._lifecycle.set_config_state(CONFIG_STATE_NOT_CONFIGURED)
        self._lifecycle.set_app_state(APP_STATE_NOT_CONFIGURED)
        self._lifecycle.set_auth_state(AUTH_STATE_NOT_AUTHENTICATED)
        _LOGGER.info("Factory reset done")

        result = ActionResult(operation="cmd.app.factory_reset")
        await self._async_respond_adapter(
            message, "evt.app.config_action_report", result.as_dict()
        )

    async def _async_get_inclusion_report(
        self, message: InboundMessage, _address: str
    ) -> None:
        device_id = message.payload.get_string_value()
        result = self._registry.resolve(device_id)
        if isinstance(result, NotFound):
            _LOGGER.warning(
                "No device %s known, inclusion report not sent", result.address
            )
            return

        await self._async_respond_adapter(
            message,
            "evt.thing.inclusion_report",
            self._registry.inclusion_report(result.index),
        )

    async def _async_thing_inclusion(
        self, message: InboundMessage, _address: str
    ) -> None:
        _LOGGER.debug(
            "Inclusion mode %r requested, nothing to do", message.payload.value
        )

    async def _async_thing_delete(self, message: InboundMessage, _address: str) -> None:
        value = message.payload.value
        device_id = value.get("address") if isinstance(value, dict) else None
        _LOGGER.info("Delete requested for device %s, nothing to do", device_id)

    def _save_config(self) -> None:
        try:
            self._config.save()
        except OSError:
            _LOGGER.exception("Failed to save configuration")
