# src/tiktok_bff/config.py

import logging
from pathlib import Path
from typing import Any, List, Union

from dotenv import load_dotenv
from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

# Determine the base directory of this config file
# .env is at the service root, two levels up from src/tiktok_bff/
CONFIG_FILE_DIR = Path(__file__).resolve().parent
PROJECT_ROOT_DIR = CONFIG_FILE_DIR.parent.parent
ENV_FILE_PATH = PROJECT_ROOT_DIR / ".env"

if ENV_FILE_PATH.exists():
    load_dotenv(dotenv_path=ENV_FILE_PATH, override=False)
    logger.info("Loaded .env file from: %s", ENV_FILE_PATH)
else:
    logger.info(".env file not found at %s. Relying on environment variables.", ENV_FILE_PATH)


def _split_csv(v: Any, field_name: str) -> List[str]:
    if isinstance(v, str):
        if not v.strip():
            return []
        return [item.strip() for item in v.split(",") if item.strip()]
    if isinstance(v, list):
        return v
    raise TypeError(f"{field_name}: Expected a comma-separated string or a list, got {type(v)}")


class Settings(BaseSettings):
    # === TikTok application credentials ===
    TIKTOK_CLIENT_KEY: str
    TIKTOK_CLIENT_SECRET: str
    TIKTOK_REDIRECT_URI: str = "http://localhost:5000/auth/tiktok/callback"
    # Pydantic sees this as a string from the env first, the validator turns it into List[str]
    TIKTOK_SCOPES: Union[str, List[str]] = "user.info.basic,video.list,video.upload"

    # === Platform endpoints ===
    TIKTOK_AUTH_BASE_URL: str = "https://www.tiktok.com"
    TIKTOK_API_BASE_URL: str = "https://open.tiktokapis.com"
    HTTP_TIMEOUT_SECONDS: float = 10.0

    # === Read-only pass-through defaults ===
    USER_INFO_FIELDS: str = (
        "open_id,union_id,avatar_url,display_name,bio_description,profile_deep_link,"
        "is_verified,follower_count,following_count,likes_count,video_count"
    )
    VIDEO_LIST_MAX_COUNT: int = 20

    # === Frontend / CORS ===
    FRONTEND_URL: str = "http://localhost:3000"
    CORS_ORIGINS: Union[str, List[str]] = ""

    # === Session Management ===
    SESSION_COOKIE_NAME: str = "session_id"
    SESSION_MAX_AGE_SECONDS: int = 60 * 60 * 24  # 24 hours
    SESSION_COOKIE_SECURE: bool = False  # Set to True in production with HTTPS

    # === Process ===
    HOST: str = "0.0.0.0"
    PORT: int = 5000
    LOG_LEVEL: str = "INFO"

    @property
    def AUTHORIZE_URL(self) -> str:
        return f"{self.TIKTOK_AUTH_BASE_URL.rstrip('/')}/v2/auth/authorize/"

    @property
    def TOKEN_URL(self) -> str:
        return f"{self.TIKTOK_API_BASE_URL.rstrip('/')}/v2/oauth/token/"

    @property
    def REVOKE_URL(self) -> str:
        return f"{self.TIKTOK_API_BASE_URL.rstrip('/')}/v2/oauth/revoke/"

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE_PATH),
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
        validate_default=True,
    )

    @field_validator("TIKTOK_SCOPES", mode="before")
    @classmethod
    def parse_comma_separated_scopes(cls, v: Any) -> List[str]:
        if v is None:
            raise ValueError("TIKTOK_SCOPES must not be null.")
        return _split_csv(v, "TIKTOK_SCOPES")

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def parse_comma_separated_origins(cls, v: Any) -> List[str]:
        if v is None:
            return []
        return _split_csv(v, "CORS_ORIGINS")

    @model_validator(mode="after")
    def check_final_list_types(self) -> "Settings":
        if not isinstance(self.TIKTOK_SCOPES, list):
            raise ValueError(f"TIKTOK_SCOPES ended up as {type(self.TIKTOK_SCOPES)}, expected list.")
        if not self.TIKTOK_SCOPES:
            raise ValueError("TIKTOK_SCOPES must name at least one scope.")
        if not isinstance(self.CORS_ORIGINS, list):
            raise ValueError(f"CORS_ORIGINS ended up as {type(self.CORS_ORIGINS)}, expected list.")
        if not self.CORS_ORIGINS:
            self.CORS_ORIGINS = [self.FRONTEND_URL.rstrip("/")]
        return self


try:
    settings = Settings()
except Exception as e:
    logger.error("Error instantiating Settings: %s", e)
    raise
