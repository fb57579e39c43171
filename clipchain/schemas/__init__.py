"""Request schemas and media value objects."""

from clipchain.schemas.clip import AspectRatio, ClipRequest, MediaInput
from clipchain.schemas.media import (
    ChainResult,
    ConcatResult,
    GeneratedClip,
    InlineMedia,
    MediaRef,
    Operation,
    OperationState,
    StreamMedia,
    UriMedia,
)

__all__ = [
    "AspectRatio",
    "ClipRequest",
    "MediaInput",
    "ChainResult",
    "ConcatResult",
    "GeneratedClip",
    "InlineMedia",
    "MediaRef",
    "Operation",
    "OperationState",
    "StreamMedia",
    "UriMedia",
]
