"""LVI heater adapter for the FIMP message bus."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

import voluptuous as vol

from .api import create_session_client
from .config import apply_log_level, load_config
from .const import APP_STATE_NOT_CONFIGURED
from .lifecycle import Lifecycle
from .registry import DeviceRegistry
from .router import CommandRouter
from .session import SessionManager
from .transport import MqttTransport

if TYPE_CHECKING:
    from pathlib import Path

    import httpx

    from .config import AdapterConfig

_LOGGER = logging.getLogger(__name__)


@dataclass
class LviAdapter:
    """Components of a running adapter."""

    config: AdapterConfig
    client: httpx.AsyncClient
    lifecycle: Lifecycle
    session_manager: SessionManager
    registry: DeviceRegistry
    transport: MqttTransport
    router: CommandRouter


async def async_setup(work_dir: Path | None = None) -> LviAdapter | None:
    """Load the configuration and wire the adapter together.

    Returns:
        The adapter, or None if the configuration cannot be loaded.

    """
    try:
        config = load_config(work_dir)
    except vol.Invalid as err:
        _LOGGER.error("Invalid configuration: %s", err)
        return None
    except (OSError, ValueError) as err:
        _LOGGER.error("Can't load configuration: %s", err)
        return None

    apply_log_level(config.log_level)
    _LOGGER.info("Setting up LVI adapter, work dir %s", config.work_dir)

    client = create_session_client(config.http_timeout)
    lifecycle = Lifecycle()
    session_manager = SessionManager(client, config)
    registry = DeviceRegistry(client)
    transport = MqttTransport(config, lifecycle)
    router = CommandRouter(
        transport, client, config, lifecycle, session_manager, registry
    )
    adapter = LviAdapter(
        config=config,
        client=client,
        lifecycle=lifecycle,
        session_manager=session_manager,
        registry=registry,
        transport=transport,
        router=router,
    )

    if config.credentials.is_complete and not config.auth.is_empty:
        await router.async_reload_devices()
    else:
        _LOGGER.info("Adapter not configured, waiting for cmd.auth.login")
        lifecycle.set_app_state(APP_STATE_NOT_CONFIGURED)

    return adapter


async def async_run(adapter: LviAdapter) -> None:
    """Run the transport and the command consumer until cancelled."""
    transport_task = asyncio.create_task(adapter.transport.async_run())
    router_task = asyncio.create_task(adapter.router.async_run())
    try:
        await asyncio.gather(transport_task, router_task)
    finally:
        for task in (transport_task, router_task):
            task.cancel()
        for task in (transport_task, router_task):
            with contextlib.suppress(asyncio.CancelledError):
                await task


async def async_unload(adapter: LviAdapter) -> None:
    """Disconnect from the bus and close the HTTP client."""
    _LOGGER.info("Stopping LVI adapter")
    await adapter.transport.async_disconnect()
    await adapter.client.aclose()
