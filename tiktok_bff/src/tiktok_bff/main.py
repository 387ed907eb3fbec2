# src/tiktok_bff/main.py

import logging
import typing

from fastapi import Depends, FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, RedirectResponse
from pydantic import BaseModel
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response as StarletteResponse

from .config import settings
from .dependencies import Services, build_services, get_services, get_session
from .errors import BffError
from .session_data import SessionData
from .upload import PostInfo, SourceInfo, UploadSession

logger = logging.getLogger(__name__)

API_VERSION = "1.0.0"


LOG_HANDLER_NAME = "tiktok_bff"


def configure_logging(level: str) -> None:
    root = logging.getLogger()
    if not any(h.get_name() == LOG_HANDLER_NAME for h in root.handlers):
        handler = logging.StreamHandler()
        handler.set_name(LOG_HANDLER_NAME)
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s [%(name)s] %(message)s"))
        root.addHandler(handler)
    root.setLevel(level.upper())


# --- Request bodies ---
# Required fields are Optional here so that a missing value reaches the
# orchestrators and comes back as the contractual 400, not FastAPI's 422.

class AuthCallbackRequest(BaseModel):
    code: typing.Optional[str] = None
    state: typing.Optional[str] = None
    error: typing.Optional[str] = None
    error_description: typing.Optional[str] = None


class UploadInitRequest(BaseModel):
    source_info: typing.Optional[SourceInfo] = None


class PublishRequest(BaseModel):
    media_id: typing.Optional[str] = None
    post_info: typing.Optional[PostInfo] = None


# --- Session cookie middleware ---

class SessionMiddlewareCustom(BaseHTTPMiddleware):
    async def dispatch(self, request, call_next):
        services: Services = request.app.state.services
        cookie_name = services.settings.SESSION_COOKIE_NAME

        session_id = request.cookies.get(cookie_name)
        session = await services.store.get(session_id) if session_id else None
        if session is None:
            # Stored only once a handler writes to it
            session = services.store.new_session()
        request.state.session = session
        request.state.session_destroyed = False

        response: StarletteResponse = await call_next(request)

        if request.state.session_destroyed:
            response.delete_cookie(cookie_name, path="/")
        elif await services.store.get(session.session_id) is not None:
            response.set_cookie(
                cookie_name,
                session.session_id,
                max_age=services.settings.SESSION_MAX_AGE_SECONDS,
                httponly=True,
                secure=services.settings.SESSION_COOKIE_SECURE,
                samesite="lax",
            )
        return response


# --- FastAPI App Setup ---
app = FastAPI(
    title="TikTok Integration API",
    description="Backend-for-frontend brokering TikTok OAuth (PKCE) and the video publishing pipeline.",
    version=API_VERSION,
)

app.add_middleware(SessionMiddlewareCustom)
# Added last so it wraps the session middleware and answers preflights first
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(BffError)
async def bff_error_handler(request: Request, exc: BffError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": "invalid_request", "message": "Malformed request body.", "details": jsonable_encoder(exc.errors())},
    )


# --- Service index ---

@app.get("/")
async def read_root():
    return {
        "message": "TikTok Integration API",
        "version": API_VERSION,
        "status": "running",
        "endpoints": {
            "auth": {
                "login": "GET /auth/tiktok",
                "callback": "GET /auth/tiktok/callback",
                "callbackPost": "POST /api/auth/callback",
                "refresh": "POST /api/auth/refresh",
                "status": "GET /api/auth/status",
                "logout": "POST /api/auth/logout",
            },
            "user": {
                "info": "GET /api/user/info",
                "videos": "GET /api/user/videos",
            },
            "video": {
                "uploadInit": "POST /api/video/upload/init",
                "publish": "POST /api/video/publish",
                "publishStatus": "GET /api/video/publish/status/{publish_id}",
            },
            "health": "GET /api/health",
        },
    }


@app.get("/api/health")
async def health():
    return {"status": "OK", "message": "TikTok Integration API is running"}


# --- Authentication Routes ---

@app.get("/auth/tiktok")
async def login(
        session: SessionData = Depends(get_session),
        services: Services = Depends(get_services),
):
    authorize_url = await services.auth_flow.begin_authorization(session)
    return {"authorizeUrl": authorize_url}


@app.get("/auth/tiktok/callback")
async def auth_callback_redirect(
        code: typing.Optional[str] = None,
        state: typing.Optional[str] = None,
        error: typing.Optional[str] = None,
        error_description: typing.Optional[str] = None,
        session: SessionData = Depends(get_session),
        services: Services = Depends(get_services),
):
    dashboard = f"{services.settings.FRONTEND_URL.rstrip('/')}/dashboard"
    try:
        await services.auth_flow.complete_authorization(session, state, code, error, error_description)
    except BffError as e:
        logger.warning("/auth/tiktok/callback - authorization failed: %s (%s)", e.code, e.message)
        return RedirectResponse(url=f"{dashboard}?auth=error", status_code=status.HTTP_302_FOUND)
    return RedirectResponse(url=f"{dashboard}?auth=success", status_code=status.HTTP_302_FOUND)


@app.post("/api/auth/callback")
async def auth_callback_post(
        body: AuthCallbackRequest,
        session: SessionData = Depends(get_session),
        services: Services = Depends(get_services),
):
    open_id = await services.auth_flow.complete_authorization(
        session, body.state, body.code, body.error, body.error_description
    )
    return {"success": True, "message": "Authentication successful", "openId": open_id}


@app.post("/api/auth/refresh")
async def refresh_token(
        session: SessionData = Depends(get_session),
        services: Services = Depends(get_services),
):
    await services.tokens.refresh(session)
    return {"success": True, "message": "Token refreshed successfully"}


@app.get("/api/auth/status")
async def auth_status(
        session: SessionData = Depends(get_session),
        services: Services = Depends(get_services),
):
    is_authenticated = session.is_authenticated
    return {
        "isAuthenticated": is_authenticated,
        "tokenExpired": services.tokens.is_expired(session) if is_authenticated else False,
        "openId": session.open_id,
    }


@app.post("/api/auth/logout")
async def logout(
        request: Request,
        session: SessionData = Depends(get_session),
        services: Services = Depends(get_services),
):
    await services.tokens.revoke(session)
    try:
        async with services.store.lock(session.session_id):
            await services.store.delete(session.session_id)
    except Exception as e:
        logger.exception("/api/auth/logout - failed to destroy session: %s", e)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "logout_failed", "message": "Failed to logout"},
        )
    request.state.session_destroyed = True
    return {"success": True, "message": "Logged out successfully"}


# --- Authenticated pass-through reads ---

@app.get("/api/user/info")
async def get_user_info(
        session: SessionData = Depends(get_session),
        services: Services = Depends(get_services),
):
    access_token = await services.tokens.ensure_fresh_token(session)
    return await services.client.get_user_info(access_token, services.settings.USER_INFO_FIELDS)


@app.get("/api/user/videos")
async def get_user_videos(
        cursor: int = 0,
        max_count: typing.Optional[int] = None,
        session: SessionData = Depends(get_session),
        services: Services = Depends(get_services),
):
    access_token = await services.tokens.ensure_fresh_token(session)
    return await services.client.list_videos(
        access_token, max_count=max_count or services.settings.VIDEO_LIST_MAX_COUNT, cursor=cursor
    )


# --- Video publishing ---

@app.post("/api/video/upload/init")
async def video_upload_init(
        body: UploadInitRequest,
        session: SessionData = Depends(get_session),
        services: Services = Depends(get_services),
):
    upload = await services.uploads.initiate(session, body.source_info or SourceInfo())
    return {**upload.init_response, "phase": upload.phase.value}


@app.post("/api/video/publish")
async def video_publish(
        body: PublishRequest,
        session: SessionData = Depends(get_session),
        services: Services = Depends(get_services),
):
    upload = UploadSession.awaiting_publish(body.media_id)
    publish_id = await services.uploads.publish(session, upload, body.post_info)
    return {"data": {"publish_id": publish_id}, "phase": upload.phase.value}


@app.get("/api/video/publish/status/{publish_id}")
async def video_publish_status(
        publish_id: str,
        session: SessionData = Depends(get_session),
        services: Services = Depends(get_services),
):
    upload = UploadSession.awaiting_status(publish_id)
    publish_status = await services.uploads.poll_status(session, upload)
    return {
        "data": publish_status.model_dump(exclude_none=True),
        "phase": upload.phase.value,
        "terminal": publish_status.is_terminal,
    }


# --- Startup / Shutdown ---

@app.on_event("startup")
async def startup_event():
    configure_logging(settings.LOG_LEVEL)
    if getattr(app.state, "services", None) is None:
        app.state.services = build_services(settings)
    logger.info("--- TikTok BFF (FastAPI) Starting Up ---")
    logger.info("Client key is set: %s", "Yes" if settings.TIKTOK_CLIENT_KEY else "NO")
    logger.info("Redirect URI: %s", settings.TIKTOK_REDIRECT_URI)
    logger.info("Scopes: %s", settings.TIKTOK_SCOPES)
    logger.info("Allowed origins: %s", settings.CORS_ORIGINS)
    logger.info("Platform API: %s (timeout %ss)", settings.TIKTOK_API_BASE_URL, settings.HTTP_TIMEOUT_SECONDS)


@app.on_event("shutdown")
async def shutdown_event():
    services: typing.Optional[Services] = getattr(app.state, "services", None)
    if services is not None:
        await services.http_client.aclose()


def run() -> None:
    import uvicorn

    uvicorn.run("tiktok_bff.main:app", host=settings.HOST, port=settings.PORT, log_level=settings.LOG_LEVEL.lower())
