# src/tiktok_bff/auth_flow.py

import logging
import typing
from urllib.parse import urlencode

from . import pkce
from .config import Settings
from .errors import AuthorizationDenied, CsrfMismatch, MissingCode
from .session_data import SessionData
from .session_store import SessionStore
from .token_lifecycle import TokenLifecycleManager

logger = logging.getLogger(__name__)


class AuthFlowController:
    """
    authorize -> callback -> exchange, bound to one session.

    Both callback bindings (the platform's redirect and the frontend's POST)
    call complete_authorization(), so validation and the one-time clearing of
    csrf_state/code_verifier happen in exactly one place.
    """

    def __init__(self, settings: Settings, store: SessionStore, tokens: TokenLifecycleManager):
        self.settings = settings
        self.store = store
        self.tokens = tokens

    async def begin_authorization(self, session: SessionData) -> str:
        """
        Store fresh CSRF/PKCE secrets on the session and return the authorize URL.
        Any previous in-flight attempt on this session is discarded.
        """
        async with self.store.lock(session.session_id):
            session.csrf_state = pkce.new_csrf_token()
            session.code_verifier = pkce.new_code_verifier()
            challenge = pkce.code_challenge(session.code_verifier)
            await self.store.put(session)

        auth_url = self.settings.AUTHORIZE_URL + "?" + urlencode({
            "client_key": self.settings.TIKTOK_CLIENT_KEY,
            "scope": ",".join(self.settings.TIKTOK_SCOPES),
            "response_type": "code",
            "redirect_uri": self.settings.TIKTOK_REDIRECT_URI,
            "state": session.csrf_state,
            "code_challenge": challenge,
            "code_challenge_method": pkce.CODE_CHALLENGE_METHOD,
        })
        logger.info("begin_authorization - new attempt for session %s..., redirect URI: %s",
                    session.session_id[:8], self.settings.TIKTOK_REDIRECT_URI)
        return auth_url

    async def complete_authorization(
        self,
        session: SessionData,
        received_state: typing.Optional[str],
        code: typing.Optional[str],
        auth_error: typing.Optional[str] = None,
        auth_error_description: typing.Optional[str] = None,
    ) -> typing.Optional[str]:
        """
        Validate the callback and exchange the code. Returns the platform open_id.

        Check order: upstream denial, missing code, CSRF state. None of these
        contact the platform. The attempt's secrets are consumed on every path.
        """
        async with self.store.lock(session.session_id):
            expected_state = session.csrf_state
            code_verifier = session.code_verifier
            session.clear_authorization_attempt()
            try:
                if auth_error:
                    logger.info("complete_authorization - denied upstream: %s", auth_error)
                    raise AuthorizationDenied(
                        auth_error_description or f"Authorization failed: {auth_error}",
                        details={"error": auth_error, "error_description": auth_error_description},
                    )
                if not code:
                    raise MissingCode()
                if not expected_state or not pkce.states_match(received_state or "", expected_state):
                    logger.warning("complete_authorization - state mismatch for session %s...",
                                   session.session_id[:8])
                    raise CsrfMismatch()

                tokens = await self.tokens.exchange_code(session, code, code_verifier)
                return tokens.open_id
            finally:
                await self.store.put(session)
