"""Pydantic v2 schemas for inbound clip requests."""

from __future__ import annotations

import base64
import binascii
import enum

from pydantic import BaseModel, ConfigDict, Field, field_validator


class AspectRatio(str, enum.Enum):
    LANDSCAPE = "16:9"
    PORTRAIT = "9:16"
    SQUARE = "1:1"


class MediaInput(BaseModel):
    """Binary media supplied to a backend (grounding clip or reference image)."""

    model_config = ConfigDict(frozen=True)

    data: bytes = Field(min_length=1)
    mime_type: str = "video/mp4"

    @classmethod
    def from_base64(cls, value: str, mime_type: str | None = None) -> MediaInput:
        """Build from raw base64 or a ``data:<mime>;base64,`` URL."""
        if value.startswith("data:"):
            header, _, value = value.partition(",")
            mime_type = mime_type or header[5:].split(";")[0] or None
        try:
            raw = base64.b64decode(value, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise ValueError(f"invalid base64 media payload: {exc}") from exc
        return cls(data=raw, mime_type=mime_type or "video/mp4")

    def to_data_url(self) -> str:
        return f"data:{self.mime_type};base64,{base64.b64encode(self.data).decode('ascii')}"


class ClipRequest(BaseModel):
    """One clip generation request.

    ``duration_seconds`` is deliberately not range-checked here: the allowed
    interval depends on the model and is enforced by the backend, which
    clamps and logs.
    """

    prompt: str
    model: str | None = None
    duration_seconds: int = 8
    aspect_ratio: AspectRatio = AspectRatio.LANDSCAPE
    grounding_source: MediaInput | None = None
    reference_image: MediaInput | None = None

    @field_validator("prompt")
    @classmethod
    def _prompt_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("prompt must not be empty")
        return value

    @field_validator("model")
    @classmethod
    def _strip_model(cls, value: str | None) -> str | None:
        return value.strip() if value is not None else None
