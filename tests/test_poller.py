import pytest

from tiktok_bff.errors import PublishFailed, PublishTimedOut
from tiktok_bff.poller import PublishStatusPoller
from tiktok_bff.upload import UploadPhase, UploadSession

from conftest import STATUS_FETCH_PATH, ok_envelope


class RecordingSleep:
    def __init__(self):
        self.waits = []

    async def __call__(self, seconds: float) -> None:
        self.waits.append(seconds)


@pytest.fixture
def sleep():
    return RecordingSleep()


@pytest.fixture
def poller(services, sleep):
    return PublishStatusPoller(services.uploads, sleep=sleep)


@pytest.mark.asyncio
async def test_waits_until_publish_complete(poller, sleep, authenticated_session, fake_tiktok):
    for status in ("PROCESSING_UPLOAD", "PROCESSING_DOWNLOAD", "PUBLISH_COMPLETE"):
        fake_tiktok.respond(STATUS_FETCH_PATH, ok_envelope({"status": status}))
    upload = UploadSession.awaiting_status("p_1")

    result = await poller.wait(authenticated_session, upload, max_polls=10, interval_seconds=2.0)

    assert result.status == "PUBLISH_COMPLETE"
    assert upload.phase is UploadPhase.COMPLETE
    assert sleep.waits == [2.0, 2.0]


@pytest.mark.asyncio
async def test_exhausted_budget_is_timeout_not_failure(poller, sleep, authenticated_session, fake_tiktok):
    fake_tiktok.respond(STATUS_FETCH_PATH, ok_envelope({"status": "PROCESSING_UPLOAD"}))
    upload = UploadSession.awaiting_status("p_1")

    with pytest.raises(PublishTimedOut):
        await poller.wait(authenticated_session, upload, max_polls=3, interval_seconds=1.0)

    assert len(fake_tiktok.calls_to(STATUS_FETCH_PATH)) == 3
    assert sleep.waits == [1.0, 1.0]
    assert upload.phase is UploadPhase.POLLING


@pytest.mark.asyncio
async def test_upstream_failed_status_raises_publish_failed(poller, authenticated_session, fake_tiktok):
    fake_tiktok.respond(STATUS_FETCH_PATH, ok_envelope({"status": "FAILED", "fail_reason": "video_pull_failed"}))
    upload = UploadSession.awaiting_status("p_1")

    with pytest.raises(PublishFailed) as exc_info:
        await poller.wait(authenticated_session, upload, max_polls=5)

    assert exc_info.value.message == "video_pull_failed"
    assert upload.phase is UploadPhase.FAILED
