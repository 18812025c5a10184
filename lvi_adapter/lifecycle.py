"""Application lifecycle state reported to the bus."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .const import (
    APP_STATE_STARTING,
    AUTH_STATE_NOT_AUTHENTICATED,
    CONFIG_STATE_NOT_CONFIGURED,
    CONN_STATE_DISCONNECTED,
)

if TYPE_CHECKING:
    from collections.abc import Callable

_LOGGER = logging.getLogger(__name__)


class Lifecycle:
    """Tracks app, config, auth and connection states.

    Components may register callbacks for named lifecycle events such as
    ``configured``.
    """

    def __init__(self) -> None:
        self.app_state = APP_STATE_STARTING
        self.config_state = CONFIG_STATE_NOT_CONFIGURED
        self.auth_state = AUTH_STATE_NOT_AUTHENTICATED
        self.connection_state = CONN_STATE_DISCONNECTED
        self._event_callbacks: list[Callable[[str], None]] = []

    def set_app_state(self, state: str) -> None:
        if state != self.app_state:
            _LOGGER.debug("App state %s -> %s", self.app_state, state)
        self.app_state = state

    def set_config_state(self, state: str) -> None:
        self.config_state = state

    def set_auth_state(self, state: str) -> None:
        self.auth_state = state

    def set_connection_state(self, state: str) -> None:
        self.connection_state = state

    def get_all_states(self) -> dict[str, str]:
        return {
            "app": self.app_state,
            "config": self.config_state,
            "auth": self.auth_state,
            "connection": self.connection_state,
        }

    def register_event_callback(
        self,
        callback: Callable[[str], None],
    ) -> Callable[[], None]:
        """Register a callback for lifecycle events.

        Returns:
            A function to unregister the callback.

        """
        self._event_callbacks.append(callback)

        def unregister() -> None:
            if callback in self._event_callbacks:
                self._event_callbacks.remove(callback)

        return unregister

    def publish_event(self, event: str) -> None:
        _LOGGER.debug("Lifecycle event %s", event)
        for callback in list(self._event_callbacks):
            try:
                callback(event)
            except Exception:
                _LOGGER.exception("Error in lifecycle callback for %s", event)
