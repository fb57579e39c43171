"""Multi-clip video assembly with overlapping grounding.

Each step after the first is grounded on the previous clip's bytes; the
provider uses the tail of that clip as visual context, so every extension
adds ``clip_seconds - overlap_seconds`` unique seconds:

    expected = L + (N - 1) * (L - O)

    L=8, O=2:  1 clip = 8s, 2 clips = 14s, 3 clips = 20s, 4 clips = 26s

Steps run strictly in order. The first failure stops the chain; clips that
already succeeded are kept and concatenated.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass

from clipchain.errors import ClipChainError, ToolFailureError
from clipchain.schemas.clip import AspectRatio, ClipRequest
from clipchain.schemas.media import ChainResult, GeneratedClip
from clipchain.services.base_compose_service import BaseConcatenator
from clipchain.services.clip_generator import ClipGenerator

logger = logging.getLogger(__name__)

# (clip_index, status, elapsed_seconds); status is one of
# "generating", "extending", "done", "error"
ClipProgressCallback = Callable[[int, str, float], None]


def expected_duration(n: int, clip_seconds: int, overlap_seconds: int) -> int:
    """Unique seconds produced by ``n`` chained clips."""
    if n <= 0:
        return 0
    return clip_seconds + (n - 1) * (clip_seconds - overlap_seconds)


@dataclass(frozen=True)
class ChainOptions:
    model: str | None = None
    aspect_ratio: AspectRatio = AspectRatio.LANDSCAPE
    clip_seconds: int = 8
    overlap_seconds: int = 2

    def __post_init__(self) -> None:
        if self.clip_seconds <= 0:
            raise ValueError("clip_seconds must be positive")
        if not 0 <= self.overlap_seconds < self.clip_seconds:
            raise ValueError(
                f"overlap_seconds must satisfy 0 <= O < L (got O={self.overlap_seconds}, "
                f"L={self.clip_seconds})"
            )

    @property
    def extension_seconds(self) -> int:
        return self.clip_seconds - self.overlap_seconds


class ChainAssembler:
    """Generate clips sequentially, each grounded on the last, then concat."""

    def __init__(
        self,
        generator: ClipGenerator,
        concatenator: BaseConcatenator,
        *,
        default_options: ChainOptions | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.generator = generator
        self.concatenator = concatenator
        self.default_options = default_options or ChainOptions()
        self._clock = clock

    async def assemble(
        self,
        prompts: Sequence[str],
        options: ChainOptions | None = None,
        *,
        on_clip_progress: ClipProgressCallback | None = None,
    ) -> ChainResult:
        if not prompts:
            raise ValueError("At least one prompt is required")
        options = options or self.default_options
        for i, prompt in enumerate(prompts):
            if not prompt or not prompt.strip():
                raise ValueError(f"Prompt {i + 1} of {len(prompts)} is empty")
        _, model = self.generator.router.resolve(options.model)

        total = len(prompts)
        expected = expected_duration(total, options.clip_seconds, options.overlap_seconds)
        per_clip: list[GeneratedClip | None] = [None] * total
        error: Exception | None = None
        failed_index: int | None = None
        previous: GeneratedClip | None = None
        start = self._clock()

        def report(index: int, status: str) -> None:
            if on_clip_progress is not None:
                on_clip_progress(index, status, self._clock() - start)

        logger.info(
            "Chaining %d clips with %s (%ds + %ds extensions, expected ~%ds)",
            total, model, options.clip_seconds, options.extension_seconds, expected,
        )

        for i, prompt in enumerate(prompts):
            grounded = previous is not None
            step_start = self._clock()
            try:
                request = ClipRequest(
                    prompt=prompt,
                    model=model,
                    aspect_ratio=options.aspect_ratio,
                    duration_seconds=options.extension_seconds if grounded else options.clip_seconds,
                    grounding_source=previous.as_media_input() if grounded else None,
                )
                report(i, "extending" if grounded else "generating")
                logger.info(
                    "Chain step %d/%d: %s clip (%ds)",
                    i + 1, total, "source-grounded" if grounded else "fresh", request.duration_seconds,
                )
                clip = await self.generator.generate(request)
            except ClipChainError as exc:
                logger.warning("Clip %d/%d failed: %s", i + 1, total, exc)
                error, failed_index = exc, i
                report(i, "error")
                break
            except Exception as exc:
                logger.exception("Clip %d/%d failed unexpectedly", i + 1, total)
                error, failed_index = exc, i
                report(i, "error")
                break

            per_clip[i] = clip
            previous = clip
            logger.info(
                "Clip %d/%d complete (%ds elapsed)", i + 1, total, round(self._clock() - step_start),
            )
            report(i, "done")

        result = await self._merge(per_clip, model, expected)
        result.error = error
        result.failed_index = failed_index
        logger.info(
            "Video complete: %d/%d clips, ~%ds total",
            result.succeeded, total, result.total_duration_seconds,
        )
        return result

    async def _merge(
        self,
        per_clip: list[GeneratedClip | None],
        model: str,
        expected: int,
    ) -> ChainResult:
        successes = [clip for clip in per_clip if clip is not None]
        if not successes:
            logger.info("No clips generated; skipping concatenation")
            return ChainResult(
                merged_clip=None,
                per_clip=per_clip,
                total_duration_seconds=0,
                expected_duration_seconds=expected,
                model=model,
            )

        summed = sum(clip.duration_seconds for clip in successes)
        try:
            merged = await self.concatenator.concat(successes)
        except ToolFailureError as exc:
            logger.error("Concatenation failed, returning last clip as fallback: %s", exc)
            return ChainResult(
                merged_clip=successes[-1],
                per_clip=per_clip,
                total_duration_seconds=summed,
                expected_duration_seconds=expected,
                model=model,
                duration_estimated=True,
                concat_error=exc,
            )

        if merged.probed:
            total, estimated = merged.duration_seconds, False
        else:
            total, estimated = summed, True

        if len(successes) == len(per_clip) and total != expected:
            logger.warning(
                "Merged duration %ds differs from expected %ds (%s)",
                total, expected, "estimated" if estimated else "probed",
            )

        return ChainResult(
            merged_clip=GeneratedClip(merged.data, merged.mime_type, total),
            per_clip=per_clip,
            total_duration_seconds=total,
            expected_duration_seconds=expected,
            model=model,
            duration_estimated=estimated,
        )
