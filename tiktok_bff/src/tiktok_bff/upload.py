# src/tiktok_bff/upload.py

import dataclasses
import enum
import logging
import typing

from pydantic import BaseModel, ConfigDict, field_validator

from .errors import (
    BffError,
    InvalidSourceInfo,
    InvalidUploadPhase,
    MissingMediaId,
    PlatformError,
    PublishFailed,
    UploadError,
    UploadInitFailed,
    UpstreamUnavailable,
)
from .platform_client import TikTokClient
from .session_data import SessionData
from .token_lifecycle import TokenLifecycleManager

logger = logging.getLogger(__name__)


class UploadPhase(str, enum.Enum):
    INITIATED = "initiated"
    TRANSFERRING = "transferring"
    PUBLISHING = "publishing"
    POLLING = "polling"
    COMPLETE = "complete"
    FAILED = "failed"


class PrivacyLevel(str, enum.Enum):
    PUBLIC = "PUBLIC_TO_EVERYONE"
    MUTUAL_FOLLOW_FRIENDS = "MUTUAL_FOLLOW_FRIENDS"
    FOLLOWER_OF_CREATOR = "FOLLOWER_OF_CREATOR"
    SELF_ONLY = "SELF_ONLY"


PUBLISH_COMPLETE = "PUBLISH_COMPLETE"
PUBLISH_FAILED = "FAILED"
TERMINAL_STATUSES = frozenset({PUBLISH_COMPLETE, PUBLISH_FAILED})


class SourceInfo(BaseModel):
    """source_info as sent to the upload-init endpoint. Unknown keys pass through."""
    model_config = ConfigDict(extra="allow")

    source: typing.Optional[str] = None
    video_size: typing.Optional[int] = None
    chunk_size: typing.Optional[int] = None
    total_chunk_count: typing.Optional[int] = None


class PostInfo(BaseModel):
    """post_info for publish-init. privacy_level is forwarded as given, except that
    PrivacyLevel member names (e.g. PUBLIC) are translated to their wire values."""
    model_config = ConfigDict(extra="allow")

    title: typing.Optional[str] = None
    description: typing.Optional[str] = None
    privacy_level: str = PrivacyLevel.PUBLIC.value
    disable_duet: bool = False
    disable_comment: bool = False
    disable_stitch: bool = False
    video_cover_timestamp_ms: typing.Optional[int] = None

    @field_validator("privacy_level", mode="before")
    @classmethod
    def privacy_level_to_wire(cls, v: typing.Any) -> typing.Any:
        if isinstance(v, PrivacyLevel):
            return v.value
        if isinstance(v, str) and v in PrivacyLevel.__members__:
            return PrivacyLevel[v].value
        return v


class PublishStatus(BaseModel):
    model_config = ConfigDict(extra="allow")

    status: str
    fail_reason: typing.Optional[str] = None
    publicaly_available_post_id: typing.Optional[typing.List[typing.Any]] = None
    uploaded_bytes: typing.Optional[int] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


@dataclasses.dataclass
class UploadSession:
    """One trip through init -> transfer -> publish -> poll. Lives only as long as the caller holds it."""

    source_info: typing.Optional[SourceInfo] = None
    upload_id: typing.Optional[str] = None
    upload_url: typing.Optional[str] = None
    media_id: typing.Optional[str] = None
    publish_id: typing.Optional[str] = None
    phase: UploadPhase = UploadPhase.INITIATED
    error: typing.Optional[BffError] = None
    last_status: typing.Optional[PublishStatus] = None
    init_response: typing.Optional[dict] = None

    @classmethod
    def awaiting_publish(cls, media_id: typing.Optional[str]) -> "UploadSession":
        """An upload whose binary was transferred by the browser outside this process."""
        return cls(media_id=media_id, phase=UploadPhase.PUBLISHING)

    @classmethod
    def awaiting_status(cls, publish_id: str) -> "UploadSession":
        return cls(publish_id=publish_id, phase=UploadPhase.POLLING)

    @property
    def finished(self) -> bool:
        return self.phase in (UploadPhase.COMPLETE, UploadPhase.FAILED)


class UploadOrchestrator:
    """
    Drives an UploadSession through its phases:

        INITIATED -> TRANSFERRING -> PUBLISHING -> POLLING -> COMPLETE | FAILED

    No phase is skipped. A platform failure in any phase moves the upload
    straight to FAILED with the error attached. Duplicate publish calls for
    the same media_id are forwarded as-is.
    """

    def __init__(self, client: TikTokClient, tokens: TokenLifecycleManager):
        self.client = client
        self.tokens = tokens

    async def initiate(self, session: SessionData, source_info: SourceInfo) -> UploadSession:
        access_token = await self.tokens.ensure_fresh_token(session)
        upload = UploadSession(source_info=source_info)

        if not source_info.source or not source_info.video_size or source_info.video_size <= 0:
            raise InvalidSourceInfo(details={"source": source_info.source, "video_size": source_info.video_size})

        try:
            response = await self.client.init_inbox_upload(
                access_token, source_info.model_dump(mode="json", exclude_none=True)
            )
        except PlatformError as e:
            raise self._fail(upload, UploadInitFailed(details=e.details)) from e
        except UpstreamUnavailable as e:
            self._fail(upload, e)
            raise

        data = response.get("data") or {}
        upload.init_response = response
        upload.upload_url = data.get("upload_url")
        upload.upload_id = data.get("upload_id") or data.get("publish_id")
        if not upload.upload_url:
            raise self._fail(upload, UploadInitFailed("No upload URL returned.", details=response))

        self._advance(upload, UploadPhase.INITIATED, UploadPhase.TRANSFERRING)
        logger.info("initiate - upload %s ready for transfer (%s bytes)", upload.upload_id, source_info.video_size)
        return upload

    def mark_transferred(self, upload: UploadSession, media_id: str) -> None:
        if not media_id:
            raise MissingMediaId()
        self._require_phase(upload, UploadPhase.TRANSFERRING)
        upload.media_id = media_id
        self._advance(upload, UploadPhase.TRANSFERRING, UploadPhase.PUBLISHING)

    async def publish(
        self,
        session: SessionData,
        upload: UploadSession,
        post_info: typing.Optional[PostInfo] = None,
    ) -> str:
        if not upload.media_id:
            raise MissingMediaId()
        self._require_phase(upload, UploadPhase.PUBLISHING)
        access_token = await self.tokens.ensure_fresh_token(session)
        post_info = post_info or PostInfo()

        try:
            response = await self.client.init_publish(
                access_token, upload.media_id, post_info.model_dump(mode="json", exclude_none=True)
            )
        except PlatformError as e:
            raise self._fail(upload, PublishFailed(details=e.details)) from e
        except UpstreamUnavailable as e:
            self._fail(upload, e)
            raise

        publish_id = (response.get("data") or {}).get("publish_id")
        if not publish_id:
            raise self._fail(upload, PublishFailed("No publish_id returned.", details=response))

        upload.publish_id = publish_id
        self._advance(upload, UploadPhase.PUBLISHING, UploadPhase.POLLING)
        logger.info("publish - media %s accepted as publish_id %s", upload.media_id, publish_id)
        return publish_id

    async def poll_status(self, session: SessionData, upload: UploadSession) -> PublishStatus:
        """One status query. Once a terminal status was seen, returns it again without calling out."""
        if upload.finished and upload.last_status is not None:
            return upload.last_status
        self._require_phase(upload, UploadPhase.POLLING)
        access_token = await self.tokens.ensure_fresh_token(session)

        try:
            response = await self.client.fetch_publish_status(access_token, upload.publish_id)
        except PlatformError as e:
            raise self._fail(upload, PublishFailed(details=e.details)) from e
        except UpstreamUnavailable as e:
            self._fail(upload, e)
            raise

        data = response.get("data") or {}
        if not data.get("status"):
            raise self._fail(upload, PublishFailed("Status response carried no status.", details=response))

        status = PublishStatus(**data)
        upload.last_status = status
        if status.status == PUBLISH_COMPLETE:
            self._advance(upload, UploadPhase.POLLING, UploadPhase.COMPLETE)
        elif status.status == PUBLISH_FAILED:
            upload.error = PublishFailed(status.fail_reason or "Publishing failed on the platform.", details=data)
            self._advance(upload, UploadPhase.POLLING, UploadPhase.FAILED)
        logger.info("poll_status - publish_id %s is %s", upload.publish_id, status.status)
        return status

    # --- transitions ---

    @staticmethod
    def _require_phase(upload: UploadSession, expected: UploadPhase) -> None:
        if upload.phase is not expected:
            raise InvalidUploadPhase(
                f"Upload is {upload.phase.value}, expected {expected.value}.",
                details={"phase": upload.phase.value, "expected": expected.value},
            )

    def _advance(self, upload: UploadSession, current: UploadPhase, target: UploadPhase) -> None:
        self._require_phase(upload, current)
        upload.phase = target

    @staticmethod
    def _fail(upload: UploadSession, error: BffError) -> BffError:
        upload.phase = UploadPhase.FAILED
        upload.error = error
        if isinstance(error, UploadError):
            error.upload = upload
        logger.warning("upload %s failed: %s", upload.upload_id or upload.publish_id or upload.media_id, error.message)
        return error
