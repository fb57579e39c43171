"""Application configuration using Pydantic Settings."""

from __future__ import annotations

import logging
from functools import lru_cache

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """clipchain settings.

    Loaded from environment variables or .env file.
    """

    # --- Application ---
    DEBUG: bool = False

    # --- Provider credentials ---
    GEMINI_API_KEY: str = ""
    REPLICATE_API_TOKEN: str = ""

    # --- Model defaults ---
    DEFAULT_VIDEO_MODEL: str = "veo-3.1-generate-preview"

    # --- Long-running operation polling ---
    POLL_INTERVAL_SECONDS: float = Field(default=10.0, gt=0)
    MAX_POLL_SECONDS: float = Field(default=480.0, gt=0)  # 8 minutes

    # --- Media download ---
    DOWNLOAD_MAX_ATTEMPTS: int = Field(default=4, ge=1)
    DOWNLOAD_BASE_DELAY_SECONDS: float = Field(default=5.0, ge=0)
    DOWNLOAD_JITTER_SECONDS: float = Field(default=0.0, ge=0)
    DOWNLOAD_TIMEOUT_SECONDS: float = Field(default=120.0, gt=0)

    # --- Clip chaining ---
    CHAIN_CLIP_SECONDS: int = Field(default=8, gt=0)
    CHAIN_OVERLAP_SECONDS: int = Field(default=2, ge=0)

    # --- Batch generation (sequential unless raised) ---
    BATCH_CONCURRENCY: int = Field(default=1, ge=1)

    # --- FFmpeg ---
    FFMPEG_BIN: str = "ffmpeg"
    FFPROBE_BIN: str = "ffprobe"
    CONCAT_TIMEOUT_SECONDS: float = Field(default=60.0, gt=0)
    PROBE_TIMEOUT_SECONDS: float = Field(default=10.0, gt=0)
    FRAME_EXTRACT_TIMEOUT_SECONDS: float = Field(default=30.0, gt=0)
    SCRATCH_DIR: str | None = None

    # --- Replicate ---
    REPLICATE_LAST_FRAME_GROUNDING: bool = True

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    @model_validator(mode="after")
    def _check_chain_overlap(self) -> "Settings":
        if self.CHAIN_OVERLAP_SECONDS >= self.CHAIN_CLIP_SECONDS:
            raise ValueError(
                "CHAIN_OVERLAP_SECONDS must be smaller than CHAIN_CLIP_SECONDS "
                f"(got {self.CHAIN_OVERLAP_SECONDS} >= {self.CHAIN_CLIP_SECONDS})"
            )
        return self


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings singleton."""
    return Settings()


def configure_logging(settings: Settings | None = None) -> None:
    """Configure root logging for processes that embed clipchain."""
    settings = settings or get_settings()
    logging.basicConfig(
        level=logging.DEBUG if settings.DEBUG else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
