"""Media downloader: turns a media reference into bytes in memory.

Strategy order:
1. Inline payloads are returned as-is.
2. Streams (SDK downloads, file outputs) are consumed fully, retried on
   failure or empty reads, then handed to their URI fallback if any.
3. URIs are fetched with httpx (bounded timeout, redirects followed, auth
   only in headers), retried on 403/404/408/429/5xx, transport errors and
   empty bodies. Other 4xx fail immediately.

Nothing is written to disk.
"""

from __future__ import annotations

import logging

import httpx

from clipchain.errors import (
    FilteredError,
    PermanentError,
    ProviderError,
    TransientError,
    is_retryable_status,
    truncate_uri,
)
from clipchain.schemas.media import InlineMedia, MediaRef, StreamMedia, UriMedia
from clipchain.services.retry_policy import RetryPolicy

logger = logging.getLogger(__name__)


class MediaDownloader:
    """Fetch generated media with retry and transport fallback.

    The httpx client is shared and read-only after construction, so one
    downloader can serve concurrent calls.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        *,
        retry_policy: RetryPolicy | None = None,
        timeout: float = 120.0,
    ) -> None:
        self._client = http_client
        self.retry_policy = retry_policy or RetryPolicy(max_attempts=4, base_delay=5.0)
        self.timeout = timeout

    async def fetch(self, ref: MediaRef) -> bytes:
        if isinstance(ref, InlineMedia):
            if not ref.data:
                raise TransientError(None, "inline payload was empty")
            return ref.data
        if isinstance(ref, StreamMedia):
            return await self._fetch_stream(ref)
        if isinstance(ref, UriMedia):
            return await self.fetch_uri(ref)
        raise TypeError(f"unsupported media reference: {type(ref).__name__}")

    # ------------------------------------------------------------------
    # Streams
    # ------------------------------------------------------------------

    async def _fetch_stream(self, ref: StreamMedia) -> bytes:
        try:
            return await self.retry_policy.run(
                lambda: self._read_stream_once(ref),
                label="stream download",
            )
        except FilteredError:
            raise
        except Exception as exc:
            if ref.fallback is None:
                if isinstance(exc, ProviderError):
                    raise
                raise TransientError(None, f"stream download failed: {exc}") from exc
            logger.warning(
                "Stream download failed (%s); falling back to URI fetch: %s",
                exc, truncate_uri(ref.fallback.uri),
            )
            return await self.fetch_uri(ref.fallback)

    async def _read_stream_once(self, ref: StreamMedia) -> bytes:
        chunks: list[bytes] = []
        try:
            async for chunk in ref.source():
                if chunk:
                    chunks.append(bytes(chunk))
        except ProviderError:
            raise
        except httpx.HTTPStatusError as exc:
            raise _status_error(exc.response.status_code, "stream read failed") from exc
        except (httpx.HTTPError, OSError) as exc:
            raise TransientError(None, f"stream read failed: {exc}") from exc

        data = b"".join(chunks)
        if not data:
            raise TransientError(None, "stream was empty")
        logger.info("Stream read complete: %.1fMB", len(data) / 1024 / 1024)
        return data

    # ------------------------------------------------------------------
    # URIs
    # ------------------------------------------------------------------

    async def fetch_uri(self, ref: UriMedia) -> bytes:
        short_uri = truncate_uri(ref.uri)
        last_status: int | None = None

        async def attempt() -> bytes:
            nonlocal last_status
            try:
                response = await self._client.get(
                    ref.uri,
                    headers=dict(ref.headers),
                    timeout=self.timeout,
                    follow_redirects=True,
                )
            except httpx.HTTPError as exc:
                raise TransientError(None, f"transport error: {exc.__class__.__name__}") from exc

            last_status = response.status_code
            if response.is_success:
                if not response.content:
                    raise TransientError(response.status_code, "empty response body")
                return response.content
            raise _status_error(response.status_code, response.text[:300])

        logger.info("Downloading %s", short_uri)
        try:
            data = await self.retry_policy.run(attempt, label=f"download {short_uri}")
        except TransientError as exc:
            raise TransientError(
                last_status,
                f"download failed after {self.retry_policy.max_attempts} attempts "
                f"from {short_uri}: {exc.detail}",
            ) from exc
        logger.info("Download succeeded: %.1fMB", len(data) / 1024 / 1024)
        return data


def _status_error(status: int, detail: str) -> ProviderError:
    # Download 4xx other than 403/404/408/429 are never content-filter signals.
    if is_retryable_status(status):
        return TransientError(status, detail)
    return PermanentError(status, detail)
