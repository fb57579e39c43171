"""FFmpeg concatenator: wraps ffmpeg_service.py as a Strategy.

Pure container-level concat: clips must share codec, resolution and
frame rate (every clip of one chain comes from the same model).
"""

from __future__ import annotations

import logging
import os
from collections.abc import Sequence

from clipchain.schemas.media import ConcatResult, GeneratedClip
from clipchain.services.base_compose_service import BaseConcatenator
from clipchain.services.ffmpeg_service import FFmpegService, extension_for

logger = logging.getLogger(__name__)


class FFmpegConcatenator(BaseConcatenator):
    """FFmpeg-based clip concatenation (concat demuxer)."""

    provider_name = "ffmpeg"

    def __init__(self, ffmpeg: FFmpegService) -> None:
        self.ffmpeg = ffmpeg

    async def concat(self, clips: Sequence[GeneratedClip]) -> ConcatResult:
        if not clips:
            raise ValueError("At least one clip is required for concatenation")

        if len(clips) == 1:
            clip = clips[0]
            duration = await self.ffmpeg.probe_bytes(clip.data, clip.mime_type)
            if duration is None:
                return ConcatResult(clip.data, clip.mime_type, clip.duration_seconds, probed=False)
            return ConcatResult(clip.data, clip.mime_type, duration)

        mime_type = clips[0].mime_type
        with self.ffmpeg.workdir("clipchain-concat-") as workdir:
            clip_paths = []
            for i, clip in enumerate(clips):
                path = os.path.join(workdir, f"clip_{i:04d}{extension_for(clip.mime_type)}")
                with open(path, "wb") as f:
                    f.write(clip.data)
                clip_paths.append(path)
                logger.info("Written clip %d/%d: %.1fMB", i + 1, len(clips), clip.size_mb)

            output_path = os.path.join(workdir, "output" + extension_for(mime_type))
            await self.ffmpeg.concat_files(clip_paths, output_path)

            with open(output_path, "rb") as f:
                data = f.read()
            duration = await self.ffmpeg.probe_duration(output_path)

        if duration is None:
            estimate = sum(c.duration_seconds for c in clips)
            logger.warning("Merged duration could not be probed; estimating %ds", estimate)
            result = ConcatResult(data, mime_type, estimate, probed=False)
        else:
            result = ConcatResult(data, mime_type, duration)
        logger.info(
            "Concatenated %d clips -> %.1fMB, ~%ds",
            len(clips), len(data) / 1024 / 1024, result.duration_seconds,
        )
        return result
