# src/tiktok_bff/errors.py

from typing import Any, Dict, Optional

from fastapi import status

# Keys whose values must never leave the process in a log line or an error body
SECRET_KEYS = frozenset({
    "access_token",
    "refresh_token",
    "code_verifier",
    "client_secret",
    "token",
})


def redact(payload: Any) -> Any:
    """Return a copy of an upstream payload with secret values masked."""
    if isinstance(payload, dict):
        return {
            k: ("***" if k in SECRET_KEYS and v else redact(v))
            for k, v in payload.items()
        }
    if isinstance(payload, list):
        return [redact(item) for item in payload]
    return payload


class BffError(Exception):
    """Base class for every error this service reports to its callers."""

    code = "internal_error"
    message = "An unexpected error occurred."
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: Optional[str] = None, details: Any = None):
        self.message = message or self.message
        self.details = redact(details)
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"error": self.code, "message": self.message}
        if self.details is not None:
            body["details"] = self.details
        return body


# --- Upstream ---

class UpstreamUnavailable(BffError):
    """Network failure, timeout or 5xx from the platform. Never retried here."""

    code = "upstream_unavailable"
    message = "The video platform could not be reached."


class PlatformError(BffError):
    """The platform answered, but with an error payload."""

    code = "platform_error"
    message = "The video platform rejected the request."

    def __init__(self, message: Optional[str] = None, details: Any = None, upstream_status: Optional[int] = None):
        super().__init__(message, details)
        self.upstream_status = upstream_status


# --- Auth ---

class AuthError(BffError):
    code = "auth_error"


class AuthorizationDenied(AuthError):
    code = "authorization_denied"
    message = "Authorization was denied by the user or the platform."
    status_code = status.HTTP_400_BAD_REQUEST


class MissingCode(AuthError):
    code = "missing_code"
    message = "Authorization code not provided."
    status_code = status.HTTP_400_BAD_REQUEST


class CsrfMismatch(AuthError):
    code = "csrf_mismatch"
    message = "Invalid CSRF state parameter."
    status_code = status.HTTP_401_UNAUTHORIZED


class TokenExchangeFailed(AuthError):
    code = "token_exchange_failed"
    message = "Failed to exchange code for access token."


class NotAuthenticated(AuthError):
    code = "not_authenticated"
    message = "Not authenticated."
    status_code = status.HTTP_401_UNAUTHORIZED


class RefreshFailed(AuthError):
    code = "refresh_failed"
    message = "Failed to refresh token."


# --- Upload ---

class UploadError(BffError):
    code = "upload_error"
    upload = None  # the UploadSession that failed, when there is one


class InvalidSourceInfo(UploadError):
    code = "invalid_source_info"
    message = "Missing required video information."
    status_code = status.HTTP_400_BAD_REQUEST


class MissingMediaId(UploadError):
    code = "missing_media_id"
    message = "Media ID is required."
    status_code = status.HTTP_400_BAD_REQUEST


class InvalidUploadPhase(UploadError):
    code = "invalid_upload_phase"
    message = "The upload is not in a state that allows this step."
    status_code = status.HTTP_409_CONFLICT


class UploadInitFailed(UploadError):
    code = "upload_init_failed"
    message = "Failed to initialize video upload."


class PublishFailed(UploadError):
    code = "publish_failed"
    message = "Failed to publish video."


class PublishTimedOut(UploadError):
    code = "publish_timed_out"
    message = "Publishing did not reach a terminal status in time."
    status_code = status.HTTP_504_GATEWAY_TIMEOUT
