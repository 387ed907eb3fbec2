# src/tiktok_bff/platform_client.py

import logging
import typing

import httpx

from .config import Settings
from .errors import PlatformError, UpstreamUnavailable, redact

logger = logging.getLogger(__name__)

FORM_HEADERS = {
    "Content-Type": "application/x-www-form-urlencoded",
    "Cache-Control": "no-cache",
}


class TikTokClient:
    """
    Typed calls against the TikTok token, user and video endpoints.

    Holds no session state. Every call either returns the decoded JSON body or
    raises UpstreamUnavailable (network, timeout, 5xx) / PlatformError (the
    platform answered with an error payload).
    """

    def __init__(self, settings: Settings, http_client: httpx.AsyncClient):
        self.settings = settings
        self.http = http_client
        self.api_base = settings.TIKTOK_API_BASE_URL.rstrip("/")

    # --- OAuth ---

    async def exchange_code(self, code: str, code_verifier: str) -> dict:
        return await self._post_form(self.settings.TOKEN_URL, {
            "client_key": self.settings.TIKTOK_CLIENT_KEY,
            "client_secret": self.settings.TIKTOK_CLIENT_SECRET,
            "code": code,
            "grant_type": "authorization_code",
            "redirect_uri": self.settings.TIKTOK_REDIRECT_URI,
            "code_verifier": code_verifier,
        })

    async def refresh_token(self, refresh_token: str) -> dict:
        return await self._post_form(self.settings.TOKEN_URL, {
            "client_key": self.settings.TIKTOK_CLIENT_KEY,
            "client_secret": self.settings.TIKTOK_CLIENT_SECRET,
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
        })

    async def revoke_token(self, access_token: str) -> dict:
        return await self._post_form(self.settings.REVOKE_URL, {
            "client_key": self.settings.TIKTOK_CLIENT_KEY,
            "client_secret": self.settings.TIKTOK_CLIENT_SECRET,
            "token": access_token,
        })

    # --- User reads ---

    async def get_user_info(self, access_token: str, fields: str) -> dict:
        return await self._request(
            "GET", f"{self.api_base}/v2/user/info/",
            access_token=access_token,
            params={"fields": fields},
        )

    async def list_videos(self, access_token: str, max_count: int = 20, cursor: int = 0) -> dict:
        return await self._request(
            "POST", f"{self.api_base}/v2/video/list/",
            access_token=access_token,
            json={"max_count": max_count, "cursor": cursor},
        )

    # --- Content posting ---

    async def init_inbox_upload(self, access_token: str, source_info: dict) -> dict:
        return await self._request(
            "POST", f"{self.api_base}/v2/post/publish/inbox/video/init/",
            access_token=access_token,
            json={"source_info": source_info},
        )

    async def init_publish(self, access_token: str, media_id: str, post_info: dict) -> dict:
        return await self._request(
            "POST", f"{self.api_base}/v2/post/publish/video/init/",
            access_token=access_token,
            json={"media_id": media_id, "post_info": post_info},
        )

    async def fetch_publish_status(self, access_token: str, publish_id: str) -> dict:
        return await self._request(
            "POST", f"{self.api_base}/v2/post/publish/status/fetch/",
            access_token=access_token,
            json={"publish_id": publish_id},
        )

    # --- Transport ---

    async def _post_form(self, url: str, form: typing.Dict[str, str]) -> dict:
        data = await self._send("POST", url, headers=FORM_HEADERS, data=form)
        # The token endpoint reports failures as 200 + {"error": ..., "error_description": ...}
        if data.get("error"):
            logger.warning("TikTok OAuth error from %s: %s", url, redact(data))
            raise PlatformError(
                message=data.get("error_description") or str(data.get("error")),
                details=data,
            )
        return data

    async def _request(
        self,
        method: str,
        url: str,
        access_token: str,
        params: typing.Optional[dict] = None,
        json: typing.Optional[dict] = None,
    ) -> dict:
        headers = {"Authorization": f"Bearer {access_token}"}
        if json is not None:
            headers["Content-Type"] = "application/json"
        data = await self._send(method, url, headers=headers, params=params, json=json)
        # Open API envelope: {"data": {...}, "error": {"code": "ok", "message": "", "log_id": "..."}}
        error = data.get("error")
        if isinstance(error, dict) and error.get("code") not in (None, "ok"):
            logger.warning("TikTok API error from %s: %s", url, redact(error))
            raise PlatformError(message=error.get("message") or str(error.get("code")), details=data)
        return data

    async def _send(self, method: str, url: str, **kwargs: typing.Any) -> dict:
        try:
            response = await self.http.request(method, url, **kwargs)
            response.raise_for_status()
        except httpx.TimeoutException as e:
            logger.error("Timeout calling TikTok %s %s: %s", method, url, e)
            raise UpstreamUnavailable(f"Timed out calling {url}") from e
        except httpx.HTTPStatusError as e:
            status_code = e.response.status_code
            payload = _safe_json(e.response)
            logger.error("HTTP error calling TikTok %s %s: %s - %s", method, url, status_code, redact(payload))
            if status_code >= 500:
                raise UpstreamUnavailable(f"TikTok returned {status_code}", details=payload) from e
            raise PlatformError(f"TikTok returned {status_code}", details=payload, upstream_status=status_code) from e
        except httpx.RequestError as e:
            logger.error("Request error calling TikTok %s %s: %s", method, url, e)
            raise UpstreamUnavailable(f"Could not connect to {url}") from e

        payload = _safe_json(response)
        if not isinstance(payload, dict):
            raise PlatformError("Unexpected response body from TikTok", details={"body": payload})
        return payload


def _safe_json(response: httpx.Response) -> typing.Any:
    try:
        return response.json()
    except ValueError:
        return {"raw": response.text[:500]}
