"""Shared fixtures: a scripted TikTok platform behind httpx.MockTransport and a controllable clock."""

import asyncio
import json
import os
import typing
from urllib.parse import parse_qs

import httpx
import pytest

# config.py builds its Settings at import time
os.environ.setdefault("TIKTOK_CLIENT_KEY", "test-client-key")
os.environ.setdefault("TIKTOK_CLIENT_SECRET", "test-client-secret")

from tiktok_bff.config import Settings  # noqa: E402
from tiktok_bff.dependencies import Services, build_services  # noqa: E402
from tiktok_bff.session_data import SessionData  # noqa: E402
from tiktok_bff.session_store import InMemorySessionStore  # noqa: E402

TOKEN_PATH = "/v2/oauth/token/"
REVOKE_PATH = "/v2/oauth/revoke/"
USER_INFO_PATH = "/v2/user/info/"
VIDEO_LIST_PATH = "/v2/video/list/"
INBOX_INIT_PATH = "/v2/post/publish/inbox/video/init/"
PUBLISH_INIT_PATH = "/v2/post/publish/video/init/"
STATUS_FETCH_PATH = "/v2/post/publish/status/fetch/"

START_TIME = 1_700_000_000.0


def ok_envelope(data: dict) -> dict:
    return {"data": data, "error": {"code": "ok", "message": "", "log_id": "log-1"}}


def token_payload(access_token="act.1", refresh_token="rft.1", open_id="open-123", expires_in=3600) -> dict:
    return {
        "access_token": access_token,
        "refresh_token": refresh_token,
        "open_id": open_id,
        "expires_in": expires_in,
        "refresh_expires_in": 31536000,
        "scope": "user.info.basic,video.list,video.upload",
        "token_type": "Bearer",
    }


class RecordedCall(typing.NamedTuple):
    method: str
    path: str
    headers: httpx.Headers
    body: typing.Any


class FakeTikTok:
    """
    Scripted platform. Responses queue per path; the last one queued for a
    path keeps answering. An Exception instance in the queue is raised
    instead of answering.
    """

    def __init__(self):
        self.calls: typing.List[RecordedCall] = []
        self.responses: typing.Dict[str, list] = {}
        self.delay = 0.0

    def respond(self, path: str, payload: typing.Any, status_code: int = 200) -> None:
        self.responses.setdefault(path, []).append((status_code, payload))

    def calls_to(self, path: str) -> typing.List[RecordedCall]:
        return [c for c in self.calls if c.path == path]

    async def handler(self, request: httpx.Request) -> httpx.Response:
        raw = request.content.decode() if request.content else ""
        content_type = request.headers.get("content-type", "")
        if "application/x-www-form-urlencoded" in content_type:
            body = {k: v[0] for k, v in parse_qs(raw).items()}
        elif raw:
            body = json.loads(raw)
        else:
            body = None
        self.calls.append(RecordedCall(request.method, request.url.path, request.headers, body))

        if self.delay:
            await asyncio.sleep(self.delay)

        queue = self.responses.get(request.url.path)
        if not queue:
            return httpx.Response(404, json={"error": {"code": "not_found", "message": "unscripted"}})
        status_code, payload = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(payload, Exception):
            raise payload
        return httpx.Response(status_code, json=payload)


class FakeClock:
    def __init__(self, now: float = START_TIME):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def settings() -> Settings:
    return Settings(
        TIKTOK_CLIENT_KEY="test-client-key",
        TIKTOK_CLIENT_SECRET="test-client-secret",
        TIKTOK_REDIRECT_URI="http://localhost:5000/auth/tiktok/callback",
        FRONTEND_URL="http://localhost:3000",
    )


@pytest.fixture
def fake_tiktok() -> FakeTikTok:
    return FakeTikTok()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
async def http_client(fake_tiktok):
    async with httpx.AsyncClient(transport=httpx.MockTransport(fake_tiktok.handler)) as client:
        yield client


@pytest.fixture
def services(settings, http_client, clock) -> Services:
    store = InMemorySessionStore(max_age_seconds=settings.SESSION_MAX_AGE_SECONDS, clock=clock)
    services = build_services(settings, http_client=http_client, store=store)
    services.tokens.clock = clock
    return services


@pytest.fixture
async def session(services) -> SessionData:
    return await services.store.create()


async def authenticate(services: Services, session: SessionData, expires_in=3600, refresh_token="rft.1") -> None:
    session.set_tokens(
        access_token="act.1",
        expires_in=expires_in,
        obtained_at=services.tokens.clock(),
        refresh_token=refresh_token,
        open_id="open-123",
    )
    await services.store.put(session)


@pytest.fixture
async def authenticated_session(services, session) -> SessionData:
    await authenticate(services, session)
    return session
