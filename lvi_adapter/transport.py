"""MQTT transport connecting the adapter to the message bus.

Inbound messages are decoded and pushed onto a small bounded queue that a
single consumer drains. When the queue is full, new messages are dropped.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import TYPE_CHECKING, Any

import aiomqtt

from .const import (
    ADAPTER_ADDRESS,
    CONN_STATE_CONNECTED,
    CONN_STATE_DISCONNECTED,
    INBOUND_QUEUE_SIZE,
    MQTT_CLIENT_ID,
    MQTT_RECONNECT_DELAY,
    SERVICE_NAME,
)
from .fimp import MessageParseError, decode

if TYPE_CHECKING:
    from collections.abc import Callable

    from .config import AdapterConfig
    from .fimp import FimpAddress, FimpMessage, InboundMessage
    from .lifecycle import Lifecycle

_LOGGER = logging.getLogger(__name__)

SUBSCRIPTIONS = (
    f"pt:j1/+/rt:dev/rn:{SERVICE_NAME}/ad:{ADAPTER_ADDRESS}/#",
    f"pt:j1/+/rt:ad/rn:{SERVICE_NAME}/ad:{ADAPTER_ADDRESS}",
)


class MqttTransport:
    """Connection to the MQTT broker carrying FIMP messages.

    Connection loss is handled by ``async_run``, which reconnects after a
    fixed delay until ``async_disconnect`` is called.
    """

    def __init__(
        self,
        config: AdapterConfig,
        lifecycle: Lifecycle,
        queue_size: int = INBOUND_QUEUE_SIZE,
    ) -> None:
        """Initialize the transport.

        Args:
            config: Adapter config holding the broker settings.
            lifecycle: Lifecycle whose connection state is kept current.
            queue_size: Capacity of the inbound queue.

        """
        self._config = config
        self._lifecycle = lifecycle
        self._client: aiomqtt.Client | None = None
        self._connected = False
        self._shutdown = False
        self._queue: asyncio.Queue[InboundMessage] = asyncio.Queue(maxsize=queue_size)
        self._connect_callbacks: list[Callable[[], None]] = []

    @property
    def connected(self) -> bool:
        """Return True if connected to the broker."""
        return self._connected

    @property
    def pending(self) -> int:
        """Return the number of queued inbound messages."""
        return self._queue.qsize()

    def register_connect_callback(
        self,
        callback: Callable[[], None],
    ) -> Callable[[], None]:
        """Register a callback run after every successful (re)connection.

        Returns:
            A function to unregister the callback.

        """
        self._connect_callbacks.append(callback)

        def unregister() -> None:
            if callback in self._connect_callbacks:
                self._connect_callbacks.remove(callback)

        return unregister

    async def async_connect(self) -> bool:
        """Connect to the broker and subscribe to the adapter topics.

        Returns:
            True if connection was successful, False otherwise.

        """
        if self._client is not None and self._connected:
            _LOGGER.debug("Already connected to MQTT broker")
            return True

        client = aiomqtt.Client(
            hostname=self._config.mqtt_host,
            port=self._config.mqtt_port,
            username=self._config.mqtt_username or None,
            password=self._config.mqtt_password or None,
            identifier=MQTT_CLIENT_ID,
        )
        _LOGGER.info(
            "Connecting to MQTT broker at %s:%s",
            self._config.mqtt_host,
            self._config.mqtt_port,
        )
        try:
            await client.__aenter__()
        except aiomqtt.MqttError as err:
            _LOGGER.warning("Failed to connect to MQTT broker: %s", err)
            self._set_connected(False)
            return False

        try:
            for topic in SUBSCRIPTIONS:
                await client.subscribe(topic)
        except aiomqtt.MqttError as err:
            _LOGGER.warning("Failed to subscribe to adapter topics: %s", err)
            with contextlib.suppress(aiomqtt.MqttError):
                await client.__aexit__(None, None, None)
            self._set_connected(False)
            return False

        self._client = client
        self._set_connected(True)
        _LOGGER.info("Connected to MQTT broker, subscribed to %s", SUBSCRIPTIONS)

        for callback in list(self._connect_callbacks):
            try:
                callback()
            except Exception:
                _LOGGER.exception("Error in connect callback")
        return True

    async def async_run(self) -> None:
        """Keep the broker connection up and feed the inbound queue."""
        self._shutdown = False
        while not self._shutdown:
            if not await self.async_connect():
                await asyncio.sleep(MQTT_RECONNECT_DELAY)
                continue

            client = self._client
            try:
                async for message in client.messages:
                    self.enqueue(message.topic.value, message.payload)
            except aiomqtt.MqttError as err:
                _LOGGER.warning("Lost connection to MQTT broker: %s", err)

            self._client = None
            self._set_connected(False)
            if not self._shutdown:
                await asyncio.sleep(MQTT_RECONNECT_DELAY)

    async def async_disconnect(self) -> None:
        """Disconnect from the broker."""
        self._shutdown = True

        if self._client is not None:
            try:
                await self._client.__aexit__(None, None, None)
                _LOGGER.info("Disconnected from MQTT broker")
            except aiomqtt.MqttError as err:
                _LOGGER.warning("Error disconnecting from MQTT broker: %s", err)
            finally:
                self._client = None
                self._set_connected(False)

    def enqueue(self, topic: str, payload: Any) -> bool:
        """Decode a raw message and queue it for the consumer.

        Returns:
            True if the message was queued, False if it was dropped.

        """
        if isinstance(payload, bytearray):
            payload = bytes(payload)
        if not isinstance(payload, bytes | str):
            _LOGGER.warning("Dropping message on %s without a text payload", topic)
            return False

        try:
            message = decode(topic, payload)
        except MessageParseError as err:
            _LOGGER.warning("Dropping malformed message on %s: %s", topic, err)
            return False

        try:
            self._queue.put_nowait(message)
        except asyncio.QueueFull:
            _LOGGER.warning(
                "Inbound queue full, dropping %s on %s", message.payload.type, topic
            )
            return False
        return True

    async def async_get_message(self) -> InboundMessage:
        """Wait for the next inbound message."""
        return await self._queue.get()

    async def async_publish(self, address: FimpAddress, message: FimpMessage) -> bool:
        """Publish a message on the topic of ``address``."""
        return await self._async_publish_topic(address.to_topic(), message)

    async def async_respond_to_request(
        self, request: FimpMessage, message: FimpMessage
    ) -> bool:
        """Publish a reply on the topic the request asked for.

        Returns:
            False if the request carries no reply topic or publishing failed.

        """
        if not request.resp_to:
            return False
        return await self._async_publish_topic(request.resp_to, message)

    async def _async_publish_topic(self, topic: str, message: FimpMessage) -> bool:
        if self._client is None or not self._connected:
            _LOGGER.warning("Not connected, dropping %s for %s", message.type, topic)
            return False

        try:
            await self._client.publish(topic, message.to_json(), qos=1)
        except aiomqtt.MqttError as err:
            _LOGGER.warning("Failed to publish %s to %s: %s", message.type, topic, err)
            return False

        _LOGGER.debug("Published %s to %s", message.type, topic)
        return True

    def _set_connected(self, connected: bool) -> None:
        self._connected = connected
        self._lifecycle.set_connection_state(
            CONN_STATE_CONNECTED if connected else CONN_STATE_DISCONNECTED
        )
