"""Session manager keeping the adapter authenticated against the LVI API."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from enum import StrEnum
from typing import TYPE_CHECKING

from . import api
from .config import redact_token_fragment
from .const import ERROR_EMPTY_CREDENTIALS

if TYPE_CHECKING:
    import httpx

    from .config import AdapterConfig
    from .models import Credentials, Session

_LOGGER = logging.getLogger(__name__)


class SessionState(StrEnum):
    """Authentication lifecycle of the adapter."""

    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATING = "authenticating"
    AUTHENTICATED = "authenticated"
    EXPIRED = "expired"


class RefreshOutcome(StrEnum):
    """Result of evaluating the session before a dispatch."""

    NOT_AUTHENTICATED = "not_authenticated"
    VALID = "valid"
    REFRESHED = "refreshed"
    REFRESH_FAILED = "refresh_failed"
    EXPIRED = "expired"


class SessionManager:
    """Owns the vendor session and decides when to refresh or re-login.

    The session object lives in the adapter config and is mutated in place,
    so the stored tokens always match what the manager uses.
    """

    def __init__(self, client: httpx.AsyncClient, config: AdapterConfig) -> None:
        """Initialize the session manager.

        Args:
            client: HTTP client used for vendor calls.
            config: Adapter config holding the persisted session.

        """
        self._client = client
        self._config = config
        self._state = (
            SessionState.UNAUTHENTICATED
            if config.auth.is_empty
            else SessionState.AUTHENTICATED
        )

    @property
    def session(self) -> Session:
        return self._config.auth

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def access_token(self) -> str:
        return self._config.auth.access_token

    async def async_login(self, credentials: Credentials) -> Session:
        """Authenticate with the two-step code/token exchange.

        Args:
            credentials: Account and API registration credentials.

        Returns:
            The populated session.

        Raises:
            LviApiAuthError: If a credential is empty or either step fails.

        """
        if not credentials.is_complete:
            raise api.LviApiAuthError(ERROR_EMPTY_CREDENTIALS)

        self._state = SessionState.AUTHENTICATING
        try:
            _LOGGER.info("Logging in to LVI API as %s", credentials.username)
            code = await api.async_get_authorization_code(self._client, credentials)
            new_session = await api.async_apply_access_token(
                self._client, credentials, code
            )
        except api.LviApiAuthError:
            self._state = SessionState.UNAUTHENTICATED
            _LOGGER.exception("Login rejected by LVI API")
            raise
        except api.LviApiClientError as err:
            self._state = SessionState.UNAUTHENTICATED
            _LOGGER.exception("API error during login")
            error_msg = f"Login failed: {err}"
            raise api.LviApiAuthError(error_msg) from err

        session = self._config.auth
        session.authorization_code = new_session.authorization_code
        self._update_tokens(new_session)
        self._config.set_credentials(credentials)
        self._persist()
        self._state = SessionState.AUTHENTICATED
        _LOGGER.info(
            "Successfully logged in, access token %s expires at %s",
            redact_token_fragment(session.access_token),
            session.expire_at.isoformat() if session.expire_at else "-",
        )
        return session

    async def async_refresh_if_needed(
        self, now: datetime | None = None
    ) -> RefreshOutcome:
        """Refresh the access token when it has expired.

        No network call is made while the access token is still valid.
        """
        session = self._config.auth
        now = now or datetime.now(UTC)

        if session.expire_at is None:
            return RefreshOutcome.NOT_AUTHENTICATED

        if now < session.expire_at:
            return RefreshOutcome.VALID

        if session.refresh_expire_at is not None and now >= session.refresh_expire_at:
            self._state = SessionState.EXPIRED
            _LOGGER.warning(
                "Refresh token expired at %s, send cmd.auth.login",
                session.refresh_expire_at.isoformat(),
            )
            return RefreshOutcome.EXPIRED

        _LOGGER.debug("Access token expired, refreshing using refresh token")
        try:
            new_session = await api.async_refresh_token(
                self._client, session.refresh_token
            )
        except api.LviApiClientError as err:
            _LOGGER.warning("Token refresh failed, keeping stale session: %s", err)
            return RefreshOutcome.REFRESH_FAILED

        self._update_tokens(new_session)
        self._persist()
        self._state = SessionState.AUTHENTICATED
        _LOGGER.info("Successfully refreshed access token")
        return RefreshOutcome.REFRESHED

    def reset(self) -> None:
        """Clear the session, forcing the unauthenticated state."""
        self._config.auth.clear()
        self._state = SessionState.UNAUTHENTICATED
        _LOGGER.info("Session cleared")

    def _update_tokens(self, new_session: Session) -> None:
        session = self._config.auth
        session.access_token = new_session.access_token
        session.refresh_token = new_session.refresh_token
        session.expire_at = new_session.expire_at
        session.refresh_expire_at = new_session.refresh_expire_at

    def _persist(self) -> None:
        try:
            self._config.save()
        except OSError:
            _LOGGER.exception("Failed to persist session")
