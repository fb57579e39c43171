"""clipchain: video clip generation, chaining and concatenation."""

from clipchain.config import Settings, configure_logging, get_settings
from clipchain.errors import (
    ClipChainError,
    FilteredError,
    OperationTimeoutError,
    PermanentError,
    ProviderError,
    RoutingError,
    ToolFailureError,
    TransientError,
)
from clipchain.schemas import AspectRatio, ChainResult, ClipRequest, GeneratedClip, MediaInput
from clipchain.services.chain_assembler import ChainOptions, expected_duration
from clipchain.services.video_gen import VideoGenService, create_video_service

__version__ = "0.1.0"

__all__ = [
    "Settings",
    "configure_logging",
    "get_settings",
    "ClipChainError",
    "FilteredError",
    "OperationTimeoutError",
    "PermanentError",
    "ProviderError",
    "RoutingError",
    "ToolFailureError",
    "TransientError",
    "AspectRatio",
    "ChainResult",
    "ClipRequest",
    "GeneratedClip",
    "MediaInput",
    "ChainOptions",
    "expected_duration",
    "VideoGenService",
    "create_video_service",
]
