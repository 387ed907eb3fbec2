# src/tiktok_bff/poller.py

import asyncio
import logging
import typing

from .errors import PublishFailed, PublishTimedOut
from .session_data import SessionData
from .upload import PUBLISH_FAILED, PublishStatus, UploadOrchestrator, UploadSession

logger = logging.getLogger(__name__)

DEFAULT_MAX_POLLS = 30
DEFAULT_INTERVAL_SECONDS = 5.0


class PublishStatusPoller:
    """
    Caller-side loop over UploadOrchestrator.poll_status().

    The orchestrator never schedules anything itself; this helper owns the
    waiting and the poll budget. Running out of polls is PublishTimedOut, an
    upstream FAILED status is PublishFailed.
    """

    def __init__(
        self,
        orchestrator: UploadOrchestrator,
        sleep: typing.Callable[[float], typing.Awaitable[None]] = asyncio.sleep,
    ):
        self.orchestrator = orchestrator
        self.sleep = sleep

    async def wait(
        self,
        session: SessionData,
        upload: UploadSession,
        max_polls: int = DEFAULT_MAX_POLLS,
        interval_seconds: float = DEFAULT_INTERVAL_SECONDS,
    ) -> PublishStatus:
        for attempt in range(1, max_polls + 1):
            status = await self.orchestrator.poll_status(session, upload)
            if status.is_terminal:
                if status.status == PUBLISH_FAILED:
                    raise upload.error or PublishFailed(status.fail_reason)
                return status
            logger.debug("wait - publish_id %s still %s (poll %d/%d)",
                         upload.publish_id, status.status, attempt, max_polls)
            if attempt < max_polls:
                await self.sleep(interval_seconds)

        raise PublishTimedOut(details={"publish_id": upload.publish_id, "polls": max_polls})
