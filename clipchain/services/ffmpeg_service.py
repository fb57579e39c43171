"""FFmpeg / FFprobe subprocess adapter.

All media tooling goes through here:
- probe_duration: container duration in whole seconds (None when unknown)
- concat: container-level join via the concat demuxer (``-c copy``, no re-encode)
- extract_last_frame: last frame as PNG, used to chain first-frame models

Tools run with ``asyncio.create_subprocess_exec`` (argument lists, never a
shell) under a timeout. A timed-out or cancelled child is killed before the
error propagates. Scratch files live in a per-call temporary directory that
is removed on every exit path.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import tempfile
from collections.abc import Sequence

from clipchain.config import Settings
from clipchain.errors import ToolFailureError

logger = logging.getLogger(__name__)

_STDERR_TAIL = 500


def extension_for(mime_type: str) -> str:
    return ".webm" if "webm" in mime_type else ".mp4"


class FFmpegService:
    """Thin async wrapper around the ffmpeg and ffprobe binaries."""

    def __init__(
        self,
        *,
        ffmpeg_bin: str = "ffmpeg",
        ffprobe_bin: str = "ffprobe",
        concat_timeout: float = 60.0,
        probe_timeout: float = 10.0,
        frame_timeout: float = 30.0,
        scratch_dir: str | None = None,
    ) -> None:
        self.ffmpeg_bin = ffmpeg_bin
        self.ffprobe_bin = ffprobe_bin
        self.concat_timeout = concat_timeout
        self.probe_timeout = probe_timeout
        self.frame_timeout = frame_timeout
        self.scratch_dir = scratch_dir

    @classmethod
    def from_settings(cls, settings: Settings) -> FFmpegService:
        return cls(
            ffmpeg_bin=settings.FFMPEG_BIN,
            ffprobe_bin=settings.FFPROBE_BIN,
            concat_timeout=settings.CONCAT_TIMEOUT_SECONDS,
            probe_timeout=settings.PROBE_TIMEOUT_SECONDS,
            frame_timeout=settings.FRAME_EXTRACT_TIMEOUT_SECONDS,
            scratch_dir=settings.SCRATCH_DIR,
        )

    def workdir(self, prefix: str) -> tempfile.TemporaryDirectory:
        return tempfile.TemporaryDirectory(prefix=prefix, dir=self.scratch_dir)

    # ------------------------------------------------------------------
    # Subprocess runner
    # ------------------------------------------------------------------

    async def run(self, tool: str, args: Sequence[str], *, timeout: float) -> bytes:
        """Run one tool invocation and return its stdout.

        Raises:
            ToolFailureError: binary missing, non-zero exit or timeout.
        """
        binary = self.ffmpeg_bin if tool == "ffmpeg" else self.ffprobe_bin
        try:
            proc = await asyncio.create_subprocess_exec(
                binary, *args,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as exc:
            raise ToolFailureError(tool, None, f"{binary} not found on PATH") from exc
        except OSError as exc:
            raise ToolFailureError(tool, None, f"could not start {binary}: {exc}") from exc

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout)
        except asyncio.TimeoutError as exc:
            await _kill(proc)
            raise ToolFailureError(tool, None, f"timed out after {timeout:.0f}s") from exc
        except asyncio.CancelledError:
            await _kill(proc)
            raise

        if proc.returncode != 0:
            tail = stderr.decode("utf-8", errors="replace")[-_STDERR_TAIL:]
            logger.error("%s exited with %s: %s", tool, proc.returncode, tail)
            raise ToolFailureError(tool, proc.returncode, tail)
        return stdout

    # ------------------------------------------------------------------
    # Probe
    # ------------------------------------------------------------------

    async def probe_duration(self, path: str) -> int | None:
        """Container duration rounded to whole seconds, or None if unknown."""
        try:
            stdout = await self.run(
                "ffprobe",
                [
                    "-v", "quiet",
                    "-show_entries", "format=duration",
                    "-of", "json",
                    path,
                ],
                timeout=self.probe_timeout,
            )
        except ToolFailureError as exc:
            logger.warning("FFprobe duration detection failed: %s", exc)
            return None
        try:
            duration = float(json.loads(stdout)["format"]["duration"])
        except (ValueError, KeyError, TypeError) as exc:
            logger.warning("FFprobe returned no usable duration: %s", exc)
            return None
        return round(duration)

    async def probe_bytes(self, data: bytes, mime_type: str = "video/mp4") -> int | None:
        with self.workdir("clipchain-probe-") as workdir:
            path = os.path.join(workdir, "input" + extension_for(mime_type))
            with open(path, "wb") as f:
                f.write(data)
            return await self.probe_duration(path)

    # ------------------------------------------------------------------
    # Concat
    # ------------------------------------------------------------------

    async def concat_files(self, clip_paths: Sequence[str], output_path: str) -> None:
        """Concatenate clips using the FFmpeg concat demuxer (stream copy)."""
        list_path = output_path + ".concat.txt"
        with open(list_path, "w") as f:
            for path in clip_paths:
                escaped = os.path.abspath(path).replace("'", "'\\''")
                f.write(f"file '{escaped}'\n")

        logger.info("Running FFmpeg concat: %d clips", len(clip_paths))
        await self.run(
            "ffmpeg",
            [
                "-y",
                "-f", "concat", "-safe", "0",
                "-i", list_path,
                "-c", "copy",
                output_path,
            ],
            timeout=self.concat_timeout,
        )
        if not os.path.exists(output_path):
            raise ToolFailureError("ffmpeg", 0, "concat produced no output file")

    # ------------------------------------------------------------------
    # Last frame
    # ------------------------------------------------------------------

    async def extract_last_frame(self, data: bytes, mime_type: str = "video/mp4") -> bytes:
        """Return the final frame of a clip as PNG bytes."""
        with self.workdir("clipchain-frame-") as workdir:
            input_path = os.path.join(workdir, "input" + extension_for(mime_type))
            output_path = os.path.join(workdir, "last-frame.png")
            with open(input_path, "wb") as f:
                f.write(data)
            logger.info("Extracting last frame from %.1fMB video", len(data) / 1024 / 1024)

            await self.run(
                "ffmpeg",
                [
                    "-sseof", "-1",
                    "-i", input_path,
                    "-vsync", "0",
                    "-update", "1",
                    "-frames:v", "1",
                    "-y",
                    output_path,
                ],
                timeout=self.frame_timeout,
            )
            if not os.path.exists(output_path):
                raise ToolFailureError("ffmpeg", 0, "frame extraction produced no output")
            with open(output_path, "rb") as f:
                frame = f.read()
        logger.info("Last frame extracted: %dKB PNG", len(frame) // 1024)
        return frame


async def _kill(proc: asyncio.subprocess.Process) -> None:
    if proc.returncode is None:
        try:
            proc.kill()
        except ProcessLookupError:
            return
        await proc.wait()
