"""Replicate-hosted video generation provider.

Uses the replicate SDK's ``async_run``, which creates the prediction and
waits for it, so ``submit`` returns an already finished operation.

Supported models:
  - minimax/video-01 (Hailuo): fixed 6s at 720p, chains via first_frame_image
  - wavespeedai/wan-2.1-t2v-480p: 5-8s at 480p
  - wan-video/wan-2.2-t2v-fast: 5-8s at 480p
"""

from __future__ import annotations

import base64
import logging
import time
from collections.abc import Awaitable, Callable
from typing import Any

import httpx
import replicate
from replicate.exceptions import ModelError, ReplicateError

from clipchain.errors import (
    FilteredError,
    PermanentError,
    ProviderError,
    ToolFailureError,
    TransientError,
    classify_status,
    looks_filtered,
)
from clipchain.schemas.clip import ClipRequest
from clipchain.schemas.media import Operation, OperationState
from clipchain.services.media_refs import to_media_refs
from clipchain.services.model_registry import GROUNDING_LAST_FRAME, ModelCapability, ModelRegistry
from clipchain.services.providers.base import MediaBackend, PreparedRequest

logger = logging.getLogger(__name__)

# Wan 2.1 renders 480p at 16 fps
WAN_FPS = 16
MIN_FRAMES = 17

FrameExtractor = Callable[[bytes, str], Awaitable[bytes]]


def duration_to_frames(duration_seconds: int) -> int:
    """Nearest valid ``4n + 1`` frame count for the requested duration."""
    raw = duration_seconds * WAN_FPS
    n = round((raw - 1) / 4)
    return max(4 * n + 1, MIN_FRAMES)


def aspect_to_resolution(aspect_ratio: str) -> str:
    if aspect_ratio == "9:16":
        return "480x832"
    return "832x480"


class ReplicateBackend(MediaBackend):
    """Sync run backend for Replicate (the secondary provider)."""

    name = "replicate"
    default_capability = ModelCapability("replicate", "replicate-default", 5, 8)

    def __init__(
        self,
        client: replicate.Client,
        *,
        frame_extractor: FrameExtractor | None = None,
        registry: ModelRegistry | None = None,
    ) -> None:
        super().__init__(registry)
        self._client = client
        self._frame_extractor = frame_extractor

    def handles(self, model: str) -> bool:
        return "/" in model and not model.startswith(("veo", "gemini"))

    async def submit(self, request: ClipRequest) -> Operation:
        prepared = self.prepare(request)
        model_input = await self._build_input(prepared)

        logger.info(
            "Submitting Replicate clip generation with %s (prompt=%d chars, duration=%ds, aspect=%s)",
            prepared.model, len(prepared.prompt), prepared.duration_seconds, prepared.aspect_ratio,
        )
        start = time.monotonic()
        try:
            output = await self._client.async_run(prepared.model, input=model_input)
        except ModelError as exc:
            raise _classify_model_error(exc) from exc
        except ReplicateError as exc:
            detail = getattr(exc, "detail", None) or str(exc)
            raise classify_status(getattr(exc, "status", None), detail, provider=self.name) from exc
        except httpx.HTTPError as exc:
            raise TransientError(None, f"transport error: {exc}", provider=self.name) from exc

        logger.info(
            "Replicate generation completed after %ds", round(time.monotonic() - start),
        )
        outputs = to_media_refs(output)
        if not outputs:
            logger.error(
                "Replicate returned no video data (output type %s)", type(output).__name__,
            )
        return Operation(
            name=self.new_operation_name(),
            backend=self.name,
            model=prepared.model,
            state=OperationState.DONE,
            duration_seconds=prepared.duration_seconds,
            outputs=tuple(outputs),
        )

    async def _build_input(self, prepared: PreparedRequest) -> dict[str, Any]:
        if prepared.model.startswith("minimax/"):
            model_input: dict[str, Any] = {"prompt": prepared.prompt, "prompt_optimizer": True}
            first_frame = await self._first_frame(prepared)
            if first_frame is not None:
                model_input["first_frame_image"] = first_frame
            return model_input

        return {
            "prompt": prepared.prompt,
            "num_frames": duration_to_frames(prepared.duration_seconds),
            "resolution": aspect_to_resolution(prepared.aspect_ratio),
        }

    async def _first_frame(self, prepared: PreparedRequest) -> str | None:
        """Data URL for ``first_frame_image``: the grounding clip's last frame or the reference image."""
        source = prepared.grounding_source
        if source is not None and prepared.capability.grounding == GROUNDING_LAST_FRAME:
            if self._frame_extractor is None:
                logger.warning(
                    "%s chains via last frame but no frame extractor is configured; grounding dropped",
                    prepared.model,
                )
                return None
            logger.warning(
                "%s cannot take a video as context; using the grounding clip's last frame as first_frame_image",
                prepared.model,
            )
            try:
                frame = await self._frame_extractor(source.data, source.mime_type)
            except ToolFailureError as exc:
                logger.warning("Last-frame extraction failed, grounding dropped: %s", exc)
                return None
            return "data:image/png;base64," + base64.b64encode(frame).decode("ascii")

        if prepared.reference_image is not None:
            return prepared.reference_image.to_data_url()
        return None


def _classify_model_error(exc: ModelError) -> ProviderError:
    prediction = getattr(exc, "prediction", None)
    message = getattr(prediction, "error", None) or str(exc)
    if looks_filtered(str(message)):
        return FilteredError([str(message)], provider=ReplicateBackend.name)
    return PermanentError(None, f"prediction failed: {message}", provider=ReplicateBackend.name)
