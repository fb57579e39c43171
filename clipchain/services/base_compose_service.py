"""Abstract base for clip concatenation (Strategy Pattern).

One implementation today:
- FFmpegConcatenator: container-level concat demuxer, no re-encode

Selected through ``get_concatenator``.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import TYPE_CHECKING

from clipchain.config import Settings
from clipchain.schemas.media import ConcatResult, GeneratedClip

if TYPE_CHECKING:
    from clipchain.services.ffmpeg_service import FFmpegService

logger = logging.getLogger(__name__)


class BaseConcatenator(ABC):
    """Abstract concatenator, strategy interface."""

    provider_name: str = "unknown"

    @abstractmethod
    async def concat(self, clips: Sequence[GeneratedClip]) -> ConcatResult:
        """Join clips, in order, into a single clip.

        Args:
            clips: Ordered clips sharing codec settings.

        Returns:
            ConcatResult with the merged bytes and its duration.

        Raises:
            ValueError: ``clips`` is empty.
            ToolFailureError: the underlying tool failed.
        """


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------

def get_concatenator(settings: Settings, ffmpeg: FFmpegService | None = None) -> BaseConcatenator:
    """Build the concatenator for ``settings``, reusing ``ffmpeg`` when given."""
    from clipchain.services.ffmpeg_compose import FFmpegConcatenator
    from clipchain.services.ffmpeg_service import FFmpegService

    logger.info("Concat provider: ffmpeg (%s)", settings.FFMPEG_BIN)
    return FFmpegConcatenator(ffmpeg or FFmpegService.from_settings(settings))
