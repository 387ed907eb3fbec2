# src/tiktok_bff/dependencies.py

import dataclasses
import typing

import httpx
from fastapi import Request

from .auth_flow import AuthFlowController
from .config import Settings
from .platform_client import TikTokClient
from .poller import PublishStatusPoller
from .session_data import SessionData
from .session_store import InMemorySessionStore, SessionStore
from .token_lifecycle import TokenLifecycleManager
from .upload import UploadOrchestrator


@dataclasses.dataclass
class Services:
    settings: Settings
    http_client: httpx.AsyncClient
    store: SessionStore
    client: TikTokClient
    tokens: TokenLifecycleManager
    auth_flow: AuthFlowController
    uploads: UploadOrchestrator
    poller: PublishStatusPoller


def build_services(
        settings: Settings,
        http_client: typing.Optional[httpx.AsyncClient] = None,
        store: typing.Optional[SessionStore] = None,
) -> Services:
    if http_client is None:
        http_client = httpx.AsyncClient(timeout=settings.HTTP_TIMEOUT_SECONDS)
    if store is None:
        store = InMemorySessionStore(max_age_seconds=settings.SESSION_MAX_AGE_SECONDS)
    client = TikTokClient(settings, http_client)
    tokens = TokenLifecycleManager(client, store)
    uploads = UploadOrchestrator(client, tokens)
    return Services(
        settings=settings,
        http_client=http_client,
        store=store,
        client=client,
        tokens=tokens,
        auth_flow=AuthFlowController(settings, store, tokens),
        uploads=uploads,
        poller=PublishStatusPoller(uploads),
    )


def get_services(request: Request) -> Services:
    return request.app.state.services


def get_session(request: Request) -> SessionData:
    return request.state.session
