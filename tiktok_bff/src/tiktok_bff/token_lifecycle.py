# src/tiktok_bff/token_lifecycle.py

import logging
import time
import typing

from .errors import (
    NotAuthenticated,
    PlatformError,
    RefreshFailed,
    TokenExchangeFailed,
    UpstreamUnavailable,
)
from .platform_client import TikTokClient
from .session_data import SessionData
from .session_store import SessionStore

logger = logging.getLogger(__name__)


class TokenSet(typing.NamedTuple):
    access_token: str
    refresh_token: typing.Optional[str]
    open_id: typing.Optional[str]
    expires_in: int
    obtained_at: float


class TokenLifecycleManager:
    """
    Code exchange, expiry tracking, refresh and revocation for one session at a time.

    ensure_fresh_token() is the gate every authenticated call goes through. It
    holds the session lock, so concurrent callers on an expired session cause
    exactly one upstream refresh; the others see the refreshed token.
    """

    def __init__(
        self,
        client: TikTokClient,
        store: SessionStore,
        clock: typing.Callable[[], float] = time.time,
    ):
        self.client = client
        self.store = store
        self.clock = clock

    # --- Expiry ---

    def is_expired(self, session: SessionData, now: typing.Optional[float] = None) -> bool:
        """True once now is strictly past obtained_at + expires_in. Raises NotAuthenticated without a token."""
        if not session.is_authenticated:
            raise NotAuthenticated()
        now = self.clock() if now is None else now
        return now > session.expires_at

    # --- Code exchange ---

    async def exchange_code(self, session: SessionData, code: str, code_verifier: typing.Optional[str]) -> TokenSet:
        """
        Trade an authorization code for tokens. The caller holds the session lock.
        The verifier is cleared from the session whatever the outcome.
        """
        try:
            if not code_verifier:
                raise TokenExchangeFailed("No PKCE verifier for this authorization attempt.")
            try:
                data = await self.client.exchange_code(code, code_verifier)
            except (PlatformError, UpstreamUnavailable) as e:
                logger.warning("exchange_code - token exchange failed for session %s...: %s",
                               session.session_id[:8], e.message)
                raise TokenExchangeFailed(details=e.details) from e

            if not data.get("access_token"):
                raise TokenExchangeFailed("Token response did not include an access token.", details=data)

            tokens = self._apply(session, data)
            logger.info("exchange_code - tokens stored for open_id %s", tokens.open_id)
            return tokens
        finally:
            session.code_verifier = None
            await self.store.put(session)

    # --- Refresh ---

    async def ensure_fresh_token(self, session: SessionData) -> str:
        """Return a usable access token, refreshing at most once. Never hands back a stale token."""
        async with self.store.lock(session.session_id):
            current = await self.store.get(session.session_id) or session
            if not current.is_authenticated:
                raise NotAuthenticated()
            if not self.is_expired(current):
                return current.access_token
            if not current.refresh_token:
                logger.info("ensure_fresh_token - token expired and no refresh token for session %s...",
                            current.session_id[:8])
                raise NotAuthenticated("Session expired. Please log in again.")
            tokens = await self._refresh_locked(current)
            return tokens.access_token

    async def refresh(self, session: SessionData) -> TokenSet:
        """Force a refresh regardless of expiry (POST /api/auth/refresh)."""
        async with self.store.lock(session.session_id):
            current = await self.store.get(session.session_id) or session
            if not current.refresh_token or current.refresh_failed:
                raise NotAuthenticated("No refresh token available.")
            return await self._refresh_locked(current)

    async def _refresh_locked(self, session: SessionData) -> TokenSet:
        try:
            data = await self.client.refresh_token(session.refresh_token)
        except (PlatformError, UpstreamUnavailable) as e:
            logger.warning("refresh - failed for session %s...: %s", session.session_id[:8], e.message)
            await self._mark_refresh_failed(session)
            raise RefreshFailed(details=e.details) from e

        if not data.get("access_token"):
            await self._mark_refresh_failed(session)
            raise RefreshFailed("Refresh response did not include an access token.", details=data)

        tokens = self._apply(session, data)
        await self.store.put(session)
        logger.info("refresh - token refreshed for open_id %s", session.open_id)
        return tokens

    async def _mark_refresh_failed(self, session: SessionData) -> None:
        # The expired token stays in place but the session reads as unauthenticated until the next login
        session.refresh_failed = True
        await self.store.put(session)

    # --- Revoke ---

    async def revoke(self, session: SessionData) -> bool:
        """Best-effort revocation. Returns False on failure; session teardown never depends on it."""
        if not session.access_token:
            return False
        try:
            await self.client.revoke_token(session.access_token)
        except (PlatformError, UpstreamUnavailable) as e:
            logger.warning("revoke - failed for open_id %s: %s", session.open_id, e.message)
            return False
        logger.info("revoke - token revoked for open_id %s", session.open_id)
        return True

    def _apply(self, session: SessionData, data: dict) -> TokenSet:
        obtained_at = self.clock()
        session.set_tokens(
            access_token=data["access_token"],
            expires_in=data.get("expires_in") or 0,
            obtained_at=obtained_at,
            refresh_token=data.get("refresh_token"),
            refresh_expires_in=data.get("refresh_expires_in"),
            scope=data.get("scope"),
            open_id=data.get("open_id"),
        )
        return TokenSet(
            access_token=session.access_token,
            refresh_token=session.refresh_token,
            open_id=session.open_id,
            expires_in=session.expires_in,
            obtained_at=obtained_at,
        )
