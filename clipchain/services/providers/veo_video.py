"""Google Veo video generation provider.

Supports Veo 3.1, 3.0, 2.0 models via the Gemini API, driven through the
google-genai SDK's async surface:

  generate_videos → operations.get (poll) → files.download

Completed operations may carry the video inline (``video_bytes``) or as a
file URI. URIs are downloaded with the SDK first and fall back to a plain
HTTP GET that authenticates with the ``x-goog-api-key`` header.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from dataclasses import replace
from typing import Any
from urllib.parse import parse_qsl, unquote, urlencode, urlsplit, urlunsplit

import httpx
from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from clipchain.errors import (
    FilteredError,
    PermanentError,
    ProviderError,
    TransientError,
    classify_status,
    looks_filtered,
)
from clipchain.schemas.clip import ClipRequest
from clipchain.schemas.media import (
    InlineMedia,
    MediaRef,
    Operation,
    OperationState,
    StreamMedia,
    UriMedia,
)
from clipchain.services.model_registry import GROUNDING_VIDEO, ModelCapability, ModelRegistry
from clipchain.services.providers.base import MediaBackend, PreparedRequest

logger = logging.getLogger(__name__)

# DEADLINE_EXCEEDED, RESOURCE_EXHAUSTED, INTERNAL, UNAVAILABLE
_TRANSIENT_GRPC_CODES = {4, 8, 13, 14}


class VeoBackend(MediaBackend):
    """Async polling backend for Veo (the primary provider)."""

    name = "veo"
    default_capability = ModelCapability(
        "veo", "veo-default", 4, 8, grounding=GROUNDING_VIDEO, reference_image=True,
    )

    def __init__(
        self,
        client: genai.Client,
        *,
        api_key: str,
        registry: ModelRegistry | None = None,
    ) -> None:
        super().__init__(registry)
        self._client = client
        self._api_key = api_key

    def handles(self, model: str) -> bool:
        return model.startswith(("veo", "gemini"))

    async def submit(self, request: ClipRequest) -> Operation:
        prepared = self.prepare(request)
        grounded = prepared.grounding_source is not None

        logger.info(
            "Submitting %s clip generation with %s (prompt=%d chars, duration=%ds, reference=%s)",
            "source-grounded" if grounded else "fresh",
            prepared.model,
            len(prepared.prompt),
            prepared.duration_seconds,
            prepared.reference_image is not None,
        )

        try:
            sdk_operation = await self._client.aio.models.generate_videos(**self._build_call(prepared))
        except genai_errors.APIError as exc:
            raise _classify_api_error(exc) from exc
        except httpx.HTTPError as exc:
            raise TransientError(None, f"submit transport error: {exc}", provider=self.name) from exc

        operation = Operation(
            name=sdk_operation.name or self.new_operation_name(),
            backend=self.name,
            model=prepared.model,
            state=OperationState.SUBMITTED,
            duration_seconds=prepared.duration_seconds,
        )
        logger.info("Veo operation submitted: %s", operation.name)
        return self._apply(operation, sdk_operation)

    async def poll(self, operation: Operation) -> Operation:
        if operation.done:
            return operation
        try:
            sdk_operation = await self._client.aio.operations.get(
                operation=types.GenerateVideosOperation(name=operation.name),
            )
        except genai_errors.APIError as exc:
            raise _classify_api_error(exc) from exc
        except httpx.HTTPError as exc:
            raise TransientError(None, f"poll transport error: {exc}", provider=self.name) from exc
        return self._apply(operation, sdk_operation)

    # ------------------------------------------------------------------
    # Request / response mapping
    # ------------------------------------------------------------------

    def _build_call(self, prepared: PreparedRequest) -> dict[str, Any]:
        config: dict[str, Any] = {
            "aspect_ratio": prepared.aspect_ratio,
            "duration_seconds": prepared.duration_seconds,
            "number_of_videos": 1,
        }
        call: dict[str, Any] = {"model": prepared.model, "prompt": prepared.prompt}
        if prepared.grounding_source is not None:
            # Veo uses the last ~2 seconds of the source clip as visual context
            call["video"] = types.Video(
                video_bytes=prepared.grounding_source.data,
                mime_type=prepared.grounding_source.mime_type,
            )
            config["resolution"] = "720p"
        elif prepared.reference_image is not None:
            call["image"] = types.Image(
                image_bytes=prepared.reference_image.data,
                mime_type=prepared.reference_image.mime_type,
            )
        call["config"] = types.GenerateVideosConfig(**config)
        return call

    def _apply(self, operation: Operation, sdk_operation: Any) -> Operation:
        """Fold an SDK operation snapshot into our Operation."""
        if not getattr(sdk_operation, "done", False):
            return replace(operation, state=OperationState.POLLING)

        error = getattr(sdk_operation, "error", None)
        if error:
            classified = _classify_operation_error(error)
            logger.error("Veo operation %s failed: %s", operation.name, classified)
            return replace(operation, state=OperationState.FAILED, error=classified)

        response = getattr(sdk_operation, "response", None) or getattr(sdk_operation, "result", None)
        if response is None:
            return replace(
                operation,
                state=OperationState.FAILED,
                error=PermanentError(None, "operation completed without a response", provider=self.name),
            )

        filtered_count = getattr(response, "rai_media_filtered_count", None) or 0
        filtered_reasons = tuple(getattr(response, "rai_media_filtered_reasons", None) or ())
        outputs: list[MediaRef] = []
        for generated in getattr(response, "generated_videos", None) or []:
            ref = self._to_media_ref(generated)
            if ref is not None:
                outputs.append(ref)

        if filtered_count:
            logger.warning(
                "Veo filtered %d sample(s) of operation %s: %s",
                filtered_count, operation.name, ", ".join(filtered_reasons) or "unspecified",
            )
        return replace(
            operation,
            state=OperationState.DONE,
            outputs=tuple(outputs),
            filtered_count=filtered_count,
            filtered_reasons=filtered_reasons,
        )

    def _to_media_ref(self, generated: Any) -> MediaRef | None:
        video = getattr(generated, "video", None)
        if video is None:
            return None
        mime_type = getattr(video, "mime_type", None) or "video/mp4"
        if getattr(video, "video_bytes", None):
            return InlineMedia(video.video_bytes, mime_type)
        uri = getattr(video, "uri", None)
        if not uri:
            return None
        return StreamMedia(
            source=self._sdk_download(video),
            mime_type=mime_type,
            fallback=UriMedia(
                build_download_url(uri),
                mime_type,
                headers={"x-goog-api-key": self._api_key},
            ),
        )

    def _sdk_download(self, video: Any):
        client = self._client

        async def chunks() -> AsyncIterator[bytes]:
            try:
                data = await client.aio.files.download(file=video)
            except genai_errors.APIError as exc:
                raise _classify_api_error(exc) from exc
            yield data

        return chunks


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def build_download_url(uri: str) -> str:
    """Ensure ``alt=media`` is present exactly once and drop inline API keys."""
    parts = urlsplit(unquote(uri))
    query = [(k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True) if k != "key"]
    if not any(k == "alt" for k, _ in query):
        query.append(("alt", "media"))
    return urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(query), parts.fragment))


def _classify_api_error(exc: genai_errors.APIError) -> ProviderError:
    message = getattr(exc, "message", None) or str(exc)
    return classify_status(getattr(exc, "code", None), message, provider=VeoBackend.name)


def _classify_operation_error(error: Any) -> ProviderError:
    if isinstance(error, dict):
        code = error.get("code")
        message = error.get("message") or str(error)
    else:
        code = getattr(error, "code", None)
        message = getattr(error, "message", None) or str(error)

    if looks_filtered(message):
        return FilteredError([message], provider=VeoBackend.name)
    if code in _TRANSIENT_GRPC_CODES:
        return TransientError(None, f"operation error {code}: {message}", provider=VeoBackend.name)
    return PermanentError(None, f"operation error {code}: {message}", provider=VeoBackend.name)
