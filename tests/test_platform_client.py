import httpx
import pytest

from tiktok_bff.errors import PlatformError, UpstreamUnavailable

from conftest import USER_INFO_PATH, VIDEO_LIST_PATH, ok_envelope


@pytest.fixture
def client(services):
    return services.client


@pytest.mark.asyncio
async def test_user_info_is_bearer_get_with_fields(client, fake_tiktok):
    fake_tiktok.respond(USER_INFO_PATH, ok_envelope({"user": {"open_id": "open-123", "display_name": "Ana"}}))

    body = await client.get_user_info("act.1", "open_id,display_name")

    assert body["data"]["user"]["display_name"] == "Ana"
    call = fake_tiktok.calls[0]
    assert call.method == "GET"
    assert call.headers["authorization"] == "Bearer act.1"


@pytest.mark.asyncio
async def test_video_list_is_json_post(client, fake_tiktok):
    fake_tiktok.respond(VIDEO_LIST_PATH, ok_envelope({"videos": [], "cursor": 0, "has_more": False}))

    await client.list_videos("act.1", max_count=5, cursor=10)

    call = fake_tiktok.calls_to(VIDEO_LIST_PATH)[0]
    assert call.method == "POST"
    assert call.headers["content-type"] == "application/json"
    assert call.body == {"max_count": 5, "cursor": 10}


@pytest.mark.asyncio
async def test_error_envelope_raises_platform_error(client, fake_tiktok):
    fake_tiktok.respond(USER_INFO_PATH, {
        "data": {},
        "error": {"code": "access_token_invalid", "message": "The access token is invalid", "log_id": "x"},
    })

    with pytest.raises(PlatformError) as exc_info:
        await client.get_user_info("act.1", "open_id")
    assert exc_info.value.message == "The access token is invalid"
    assert exc_info.value.details["error"]["code"] == "access_token_invalid"


@pytest.mark.asyncio
async def test_client_error_status_keeps_upstream_status(client, fake_tiktok):
    fake_tiktok.respond(USER_INFO_PATH, {"error": {"code": "scope_not_authorized"}}, status_code=403)

    with pytest.raises(PlatformError) as exc_info:
        await client.get_user_info("act.1", "open_id")
    assert exc_info.value.upstream_status == 403


@pytest.mark.asyncio
@pytest.mark.parametrize("failure", [
    httpx.ConnectTimeout("connect timed out"),
    httpx.ReadTimeout("read timed out"),
    httpx.ConnectError("connection refused"),
])
async def test_transport_failures_are_upstream_unavailable(client, fake_tiktok, failure):
    fake_tiktok.respond(USER_INFO_PATH, failure)
    with pytest.raises(UpstreamUnavailable):
        await client.get_user_info("act.1", "open_id")


@pytest.mark.asyncio
async def test_server_error_is_upstream_unavailable(client, fake_tiktok):
    fake_tiktok.respond(USER_INFO_PATH, {"message": "internal"}, status_code=502)
    with pytest.raises(UpstreamUnavailable):
        await client.get_user_info("act.1", "open_id")


@pytest.mark.asyncio
async def test_shared_http_client_uses_configured_timeout(settings):
    from tiktok_bff.dependencies import build_services

    services = build_services(settings.model_copy(update={"HTTP_TIMEOUT_SECONDS": 7}))
    try:
        assert services.http_client.timeout == httpx.Timeout(7)
        assert services.client.http is services.http_client
    finally:
        await services.http_client.aclose()
