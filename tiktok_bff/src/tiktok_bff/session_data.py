# src/tiktok_bff/session_data.py

from typing import Optional

from pydantic import BaseModel, Field


class SessionData(BaseModel):
    """
    Represents the data stored server-side for one browser session.
    Only the opaque session_id travels in the browser cookie.

    access_token, token_obtained_at and expires_in are written and cleared
    together through set_tokens()/clear_tokens().
    """
    session_id: str

    # One in-flight authorization attempt at most
    csrf_state: Optional[str] = Field(default=None, repr=False)
    code_verifier: Optional[str] = Field(default=None, repr=False)

    access_token: Optional[str] = Field(default=None, repr=False)
    refresh_token: Optional[str] = Field(default=None, repr=False)
    token_obtained_at: Optional[float] = None  # epoch seconds
    expires_in: Optional[int] = None  # seconds
    refresh_expires_in: Optional[int] = None
    scope: Optional[str] = None
    open_id: Optional[str] = None
    # Set when a refresh was rejected; the stale tokens stay but no longer authenticate
    refresh_failed: bool = False

    last_seen_at: float = 0.0

    @property
    def is_authenticated(self) -> bool:
        return self.access_token is not None and not self.refresh_failed

    @property
    def expires_at(self) -> Optional[float]:
        if self.token_obtained_at is None or self.expires_in is None:
            return None
        return self.token_obtained_at + self.expires_in

    def set_tokens(
        self,
        access_token: str,
        expires_in: int,
        obtained_at: float,
        refresh_token: Optional[str] = None,
        refresh_expires_in: Optional[int] = None,
        scope: Optional[str] = None,
        open_id: Optional[str] = None,
    ) -> None:
        self.access_token = access_token
        self.expires_in = int(expires_in)
        self.token_obtained_at = obtained_at
        self.refresh_failed = False
        if refresh_token is not None:
            self.refresh_token = refresh_token
        if refresh_expires_in is not None:
            self.refresh_expires_in = refresh_expires_in
        if scope is not None:
            self.scope = scope
        if open_id is not None:
            self.open_id = open_id

    def clear_tokens(self) -> None:
        self.access_token = None
        self.refresh_token = None
        self.token_obtained_at = None
        self.expires_in = None
        self.refresh_expires_in = None
        self.scope = None
        self.refresh_failed = False

    def clear_authorization_attempt(self) -> None:
        self.csrf_state = None
        self.code_verifier = None
