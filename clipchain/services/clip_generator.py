"""Single clip generation: route → submit → poll → download.

Polling loop (async polling backends):
1. submit once, get an Operation handle
2. sleep POLL_INTERVAL_SECONDS, refresh the handle
3. stop when the operation is DONE/FAILED or MAX_POLL_SECONDS elapsed

Sync run backends hand back a finished operation from ``submit`` and skip
straight to collection.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable

from clipchain.errors import (
    FilteredError,
    OperationTimeoutError,
    PermanentError,
    ProviderError,
    TransientError,
)
from clipchain.schemas.clip import ClipRequest
from clipchain.schemas.media import GeneratedClip, Operation, OperationState
from clipchain.services.downloader import MediaDownloader
from clipchain.services.providers.base import MediaBackend
from clipchain.services.router import ProviderRouter

logger = logging.getLogger(__name__)


class ClipGenerator:
    """Drive one clip request to a downloaded GeneratedClip."""

    def __init__(
        self,
        router: ProviderRouter,
        downloader: MediaDownloader,
        *,
        poll_interval: float = 10.0,
        max_poll_seconds: float = 480.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.router = router
        self.downloader = downloader
        self.poll_interval = poll_interval
        self.max_poll_seconds = max_poll_seconds
        self._sleep = sleep
        self._clock = clock

    async def generate(self, request: ClipRequest, *, timeout: float | None = None) -> GeneratedClip:
        """Generate one clip. ``timeout`` bounds the whole call."""
        if timeout is None:
            return await self._generate(request)
        return await asyncio.wait_for(self._generate(request), timeout)

    async def _generate(self, request: ClipRequest) -> GeneratedClip:
        backend, model = self.router.resolve(request.model)
        if model != request.model:
            request = request.model_copy(update={"model": model})

        start = self._clock()
        operation = await backend.submit(request)
        operation = await self.wait(backend, operation)
        clip = await self.collect(operation)
        logger.info(
            "Clip ready from %s after %ds: %.1fMB, %ds",
            operation.model, round(self._clock() - start), clip.size_mb, clip.duration_seconds,
        )
        return clip

    async def wait(self, backend: MediaBackend, operation: Operation) -> Operation:
        """Poll until the operation is done or the poll window closes."""
        start = self._clock()
        while not operation.done:
            elapsed = self._clock() - start
            if elapsed > self.max_poll_seconds:
                logger.error(
                    "Operation %s still running after %ds; giving up",
                    operation.name, round(elapsed),
                )
                raise OperationTimeoutError(operation.name, elapsed, provider=backend.name)

            await self._sleep(self.poll_interval)
            try:
                operation = await backend.poll(operation)
            except TransientError as exc:
                logger.warning("Poll of %s failed, retrying next interval: %s", operation.name, exc)
                continue
            logger.info(
                "Polling %s... (%ds elapsed, state=%s)",
                operation.name, round(self._clock() - start), operation.state.value,
            )
        return operation

    async def collect(self, operation: Operation) -> GeneratedClip:
        """Turn a finished operation into a clip, downloading outputs in order."""
        if not operation.done:
            raise ValueError(f"operation {operation.name} is not finished")

        if operation.state is OperationState.FAILED:
            raise operation.error or PermanentError(
                None, "operation failed without an error", provider=operation.backend,
            )

        if not operation.outputs:
            if operation.filtered:
                raise FilteredError(list(operation.filtered_reasons), provider=operation.backend)
            raise PermanentError(None, "provider returned no video", provider=operation.backend)

        last_error: ProviderError | None = None
        for index, ref in enumerate(operation.outputs):
            try:
                data = await self.downloader.fetch(ref)
            except (TransientError, PermanentError) as exc:
                logger.warning(
                    "Output %d/%d of %s failed to download: %s",
                    index + 1, len(operation.outputs), operation.name, exc,
                )
                last_error = exc
                continue
            return GeneratedClip(
                data=data,
                mime_type=ref.mime_type,
                duration_seconds=operation.duration_seconds,
            )
        if last_error is None:
            raise PermanentError(None, "no downloadable output", provider=operation.backend)
        raise last_error
