"""cameleon.config

Application configuration loaded from environment variables (and optional `.env` file).

Prefer `get_settings()` for dependency injection and testability.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Values shipped in the example .env; treated as "not set".
PLACEHOLDER_VALUES = frozenset(
    {
        "your_api_key_here",
        "your_imgbb_api_key",
        "your_runpod_api_key",
        "your_runpod_endpoint_id",
    }
)

_PACKAGE_DIR = Path(__file__).resolve().parent


def is_configured(value: str | None) -> bool:
    """True when a credential is present and is not a template placeholder."""
    if not value:
        return False
    return value.strip() not in PLACEHOLDER_VALUES


def mask_secret(value: str | None) -> str:
    """Mask a credential for startup logs."""
    if not value:
        return "(not set)"
    return f"{value[:6]}***{value[-4:]}"


class Settings(BaseSettings):
    """Try-on service settings.

    Note:
        Values can be overridden via environment variables.
    """

    # ===== Credentials =====
    DECART_API_KEY: str = Field(default="")
    IMGBB_API_KEY: str = Field(default="")
    RUNPOD_API_KEY: str = Field(default="")
    RUNPOD_ENDPOINT_ID: str = Field(default="")

    # ===== Upstream providers =====
    IMGBB_UPLOAD_URL: str = Field(default="https://api.imgbb.com/1/upload")
    RUNPOD_API_URL: str = Field(default="https://api.runpod.ai/v2")
    # Base URL of the /api proxy used by the generation workflow (this service by default).
    PROXY_BASE_URL: str = Field(default="http://127.0.0.1:8000")
    API_TIMEOUT: float = Field(default=60.0, ge=0.1, le=600.0)

    # ===== Camera capture =====
    CAMERA_INDEX: int = Field(default=0, ge=0)
    # Acquire the camera at startup (live mode is the initial mode).
    CAMERA_AUTOSTART: bool = Field(default=False)
    CAPTURE_FPS: int = Field(default=25, ge=1, le=120)
    CAPTURE_WIDTH: int = Field(default=1280, ge=16, le=7680)
    CAPTURE_HEIGHT: int = Field(default=704, ge=16, le=4320)
    CAPTURE_AUDIO: bool = Field(default=True)
    AUDIO_SAMPLE_RATE: int = Field(default=48000, ge=8000, le=192000)

    # ===== Realtime editing =====
    REALTIME_MODEL_IMAGE: str = Field(default="lucy_2_rt")
    REALTIME_MODEL_TEXT: str = Field(default="lucy_v2v_720p_rt")
    RECONNECT_GRACE_SEC: float = Field(default=0.3, ge=0.0, le=10.0)
    REMOTE_STREAM_TIMEOUT_SEC: float = Field(default=20.0, ge=0.1, le=300.0)

    # ===== Recording =====
    RECORDING_START_DELAY_SEC: float = Field(default=1.0, ge=0.0, le=30.0)
    RECORDING_READY_RETRY_SEC: float = Field(default=0.3, ge=0.01, le=10.0)
    RECORDING_READY_MAX_ATTEMPTS: int = Field(default=100, ge=1, le=10000)
    RECORDING_MAX_WIDTH: int = Field(default=1280, ge=16, le=7680)
    RECORDING_FPS: int = Field(default=25, ge=1, le=120)
    RECORDING_BITRATE: int = Field(default=5_000_000, ge=100_000)
    RECORDING_TIMESLICE_SEC: float = Field(default=0.1, ge=0.01, le=10.0)

    # ===== Generation job =====
    POLL_INTERVAL_SEC: float = Field(default=3.0, ge=0.0, le=60.0)
    POLL_MAX_ATTEMPTS: int = Field(default=60, ge=1, le=10000)
    OUTPUT_FORMAT: str = Field(default="jpg")
    OUTPUT_QUALITY: int = Field(default=95, ge=1, le=100)
    URL_EXPIRATION_SEC: int = Field(default=96400, ge=60)
    PREMIUM_USER: bool = Field(default=True)

    # ===== Garments =====
    GARMENT_CATALOG_DIR: Path = Field(default=_PACKAGE_DIR / "assets" / "garments")

    # ===== API =====
    HOST: str = Field(default="0.0.0.0")
    PORT: int = Field(default=8000, ge=1, le=65535)
    LOG_LEVEL: str = Field(default="INFO")
    # Optional prefix for the control routes (e.g. "/v1"). The /api proxy routes are never prefixed.
    API_PREFIX: str = Field(default="")
    NOTIFICATION_LIMIT: int = Field(default=50, ge=1, le=1000)

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )

    @property
    def realtime_configured(self) -> bool:
        return is_configured(self.DECART_API_KEY)

    @property
    def imgbb_configured(self) -> bool:
        return is_configured(self.IMGBB_API_KEY)

    @property
    def runpod_configured(self) -> bool:
        return is_configured(self.RUNPOD_API_KEY) and is_configured(self.RUNPOD_ENDPOINT_ID)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
