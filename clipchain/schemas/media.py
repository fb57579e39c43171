"""Value objects passed between the generation components."""

from __future__ import annotations

import enum
from collections.abc import AsyncIterator, Callable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Union

from clipchain.schemas.clip import MediaInput

if TYPE_CHECKING:
    from clipchain.errors import ProviderError, ToolFailureError


# ---------------------------------------------------------------------------
# Media references: where a finished operation's payload lives
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class InlineMedia:
    """Payload already in memory (inline bytes / base64 in the response)."""
    data: bytes
    mime_type: str = "video/mp4"


@dataclass(frozen=True)
class UriMedia:
    """Payload behind an HTTP(S) URI; auth travels in ``headers`` only."""
    uri: str
    mime_type: str = "video/mp4"
    headers: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class StreamMedia:
    """Payload readable as a byte stream (SDK download, FileOutput).

    ``source`` re-opens the stream on every call so a failed read can be
    retried. ``fallback`` is tried once the stream retries are exhausted.
    """
    source: Callable[[], AsyncIterator[bytes]]
    mime_type: str = "video/mp4"
    fallback: UriMedia | None = None


MediaRef = Union[InlineMedia, StreamMedia, UriMedia]


# ---------------------------------------------------------------------------
# Clips
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class GeneratedClip:
    """A single finished clip. Immutable; owned by whoever receives it."""

    data: bytes
    mime_type: str
    duration_seconds: int

    @property
    def size_mb(self) -> float:
        return len(self.data) / 1024 / 1024

    def as_media_input(self) -> MediaInput:
        """Wrap this clip so it can ground the next request."""
        return MediaInput(data=self.data, mime_type=self.mime_type)


# ---------------------------------------------------------------------------
# Long-running operations
# ---------------------------------------------------------------------------

class OperationState(str, enum.Enum):
    SUBMITTED = "submitted"
    POLLING = "polling"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class Operation:
    """One in-flight (or finished) remote generation job."""

    name: str
    backend: str
    model: str
    state: OperationState
    duration_seconds: int
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    error: ProviderError | None = None
    outputs: tuple[MediaRef, ...] = ()
    filtered_count: int = 0
    filtered_reasons: tuple[str, ...] = ()

    @property
    def done(self) -> bool:
        return self.state in (OperationState.DONE, OperationState.FAILED)

    @property
    def filtered(self) -> bool:
        return self.filtered_count > 0 or bool(self.filtered_reasons)


# ---------------------------------------------------------------------------
# Assembly results
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ConcatResult:
    data: bytes
    mime_type: str
    duration_seconds: int
    probed: bool = True  # False when duration is a nominal estimate


@dataclass
class ChainResult:
    """Outcome of a chained multi-clip generation.

    ``per_clip`` always has one entry per prompt and is a strict prefix of
    successes: once an entry is None every later entry is None too.
    """

    merged_clip: GeneratedClip | None
    per_clip: list[GeneratedClip | None]
    total_duration_seconds: int
    expected_duration_seconds: int
    model: str
    duration_estimated: bool = False
    error: Exception | None = None
    failed_index: int | None = None
    concat_error: ToolFailureError | None = None

    @property
    def succeeded(self) -> int:
        return sum(1 for clip in self.per_clip if clip is not None)

    @property
    def complete(self) -> bool:
        return self.succeeded == len(self.per_clip)
