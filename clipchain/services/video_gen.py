"""Video generation service: the inbound surface of clipchain.

    async with create_video_service() as service:
        clip = await service.generate_clip(ClipRequest(prompt="..."))
        video = await service.generate_video(["shot 1", "shot 2", "shot 3"])
        clips = await service.generate_clips_batch([...])

Every collaborator (HTTP client, provider SDK clients, router, downloader,
ffmpeg adapter) is built once by ``create_video_service`` and shared by all
calls. Nothing here holds per-call state.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence

import httpx
import replicate
from google import genai

from clipchain.config import Settings, get_settings
from clipchain.errors import ClipChainError
from clipchain.schemas.clip import ClipRequest
from clipchain.schemas.media import ChainResult, GeneratedClip
from clipchain.services.base_compose_service import get_concatenator
from clipchain.services.chain_assembler import ChainAssembler, ChainOptions, ClipProgressCallback
from clipchain.services.clip_generator import ClipGenerator
from clipchain.services.downloader import MediaDownloader
from clipchain.services.ffmpeg_service import FFmpegService
from clipchain.services.providers.base import MediaBackend
from clipchain.services.providers.replicate_video import ReplicateBackend
from clipchain.services.providers.veo_video import VeoBackend
from clipchain.services.retry_policy import RetryPolicy
from clipchain.services.router import ProviderRouter

logger = logging.getLogger(__name__)


class VideoGenService:
    """Facade over clip generation, chaining and batch generation."""

    def __init__(
        self,
        generator: ClipGenerator,
        assembler: ChainAssembler,
        *,
        batch_concurrency: int = 1,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.generator = generator
        self.assembler = assembler
        self.batch_concurrency = batch_concurrency
        self._owned_http_client = http_client

    async def generate_clip(self, request: ClipRequest, *, timeout: float | None = None) -> GeneratedClip:
        """Generate a single clip; classified errors propagate."""
        return await self.generator.generate(request, timeout=timeout)

    async def generate_video(
        self,
        prompts: Sequence[str],
        options: ChainOptions | None = None,
        *,
        on_clip_progress: ClipProgressCallback | None = None,
    ) -> ChainResult:
        """Chain one clip per prompt and concatenate them."""
        return await self.assembler.assemble(prompts, options, on_clip_progress=on_clip_progress)

    async def generate_clips_batch(
        self,
        requests: Sequence[ClipRequest],
        *,
        concurrency: int | None = None,
    ) -> list[GeneratedClip | None]:
        """Generate independent clips; failures map to None, order is preserved."""
        limit = concurrency or self.batch_concurrency
        if limit < 1:
            raise ValueError("concurrency must be >= 1")
        semaphore = asyncio.Semaphore(limit)
        total = len(requests)
        logger.info("Generating %d clips (concurrency=%d)", total, limit)

        async def run_one(index: int, request: ClipRequest) -> GeneratedClip | None:
            async with semaphore:
                logger.info("Starting clip %d/%d", index + 1, total)
                try:
                    return await self.generator.generate(request)
                except ClipChainError as exc:
                    logger.warning("Clip %d/%d failed: %s", index + 1, total, exc)
                    return None
                except Exception:
                    logger.exception("Clip %d/%d failed unexpectedly", index + 1, total)
                    return None

        results = await asyncio.gather(*(run_one(i, r) for i, r in enumerate(requests)))
        succeeded = sum(1 for r in results if r is not None)
        logger.info("Batch complete: %d/%d clips", succeeded, total)
        return list(results)

    async def aclose(self) -> None:
        if self._owned_http_client is not None:
            await self._owned_http_client.aclose()
            self._owned_http_client = None

    async def __aenter__(self) -> VideoGenService:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------

def create_video_service(
    settings: Settings | None = None,
    *,
    http_client: httpx.AsyncClient | None = None,
    genai_client: genai.Client | None = None,
    replicate_client: replicate.Client | None = None,
) -> VideoGenService:
    """Wire a VideoGenService from settings.

    Providers without credentials (and without an injected client) are not
    registered, so requests for their models fail with a RoutingError.
    """
    settings = settings or get_settings()

    owned_http_client = None
    if http_client is None:
        http_client = httpx.AsyncClient(timeout=settings.DOWNLOAD_TIMEOUT_SECONDS)
        owned_http_client = http_client

    if genai_client is None and settings.GEMINI_API_KEY:
        genai_client = genai.Client(api_key=settings.GEMINI_API_KEY)
    if replicate_client is None and settings.REPLICATE_API_TOKEN:
        replicate_client = replicate.Client(api_token=settings.REPLICATE_API_TOKEN)

    ffmpeg = FFmpegService.from_settings(settings)

    backends: list[MediaBackend] = []
    if genai_client is not None:
        backends.append(VeoBackend(genai_client, api_key=settings.GEMINI_API_KEY))
    else:
        logger.warning("GEMINI_API_KEY not configured; Veo backend disabled")
    if replicate_client is not None:
        extractor = ffmpeg.extract_last_frame if settings.REPLICATE_LAST_FRAME_GROUNDING else None
        backends.append(ReplicateBackend(replicate_client, frame_extractor=extractor))
    else:
        logger.warning("REPLICATE_API_TOKEN not configured; Replicate backend disabled")

    router = ProviderRouter(backends, default_model=settings.DEFAULT_VIDEO_MODEL)
    downloader = MediaDownloader(
        http_client,
        retry_policy=RetryPolicy(
            max_attempts=settings.DOWNLOAD_MAX_ATTEMPTS,
            base_delay=settings.DOWNLOAD_BASE_DELAY_SECONDS,
            jitter=settings.DOWNLOAD_JITTER_SECONDS,
        ),
        timeout=settings.DOWNLOAD_TIMEOUT_SECONDS,
    )
    generator = ClipGenerator(
        router,
        downloader,
        poll_interval=settings.POLL_INTERVAL_SECONDS,
        max_poll_seconds=settings.MAX_POLL_SECONDS,
    )
    assembler = ChainAssembler(
        generator,
        get_concatenator(settings, ffmpeg),
        default_options=ChainOptions(
            clip_seconds=settings.CHAIN_CLIP_SECONDS,
            overlap_seconds=settings.CHAIN_OVERLAP_SECONDS,
        ),
    )

    logger.info(
        "Video service ready: backends=%s, default model=%s",
        [b.name for b in backends], settings.DEFAULT_VIDEO_MODEL,
    )
    return VideoGenService(
        generator,
        assembler,
        batch_concurrency=settings.BATCH_CONCURRENCY,
        http_client=owned_http_client,
    )
