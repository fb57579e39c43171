"""Declarative video model capability registry.

Defines every known video model's duration interval, aspect ratios and
which conditioning inputs (grounding clip, reference image) it accepts, in a
single source of truth. Backends consult it before anything reaches the
network.

Usage:
    from clipchain.services.model_registry import MODEL_REGISTRY
    model = MODEL_REGISTRY.resolve("veo-3.1")            # → veo-3.1-generate-preview
    cap = MODEL_REGISTRY.get(model)
    seconds = cap.clamp_duration(12)                      # → 8
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Types
# ---------------------------------------------------------------------------

GROUNDING_NONE = "none"              # grounding clips are dropped
GROUNDING_VIDEO = "video"            # the clip itself is sent as context
GROUNDING_LAST_FRAME = "last_frame"  # the clip's last frame becomes the first frame


@dataclass(frozen=True)
class ModelCapability:
    """Capability descriptor for a single video model."""
    backend: str
    model: str
    min_duration: int
    max_duration: int
    aspect_ratios: tuple[str, ...] = ("16:9", "9:16")
    grounding: str = GROUNDING_NONE
    reference_image: bool = False

    @property
    def fixed_duration(self) -> bool:
        return self.min_duration == self.max_duration

    def clamp_duration(self, requested: float) -> int:
        """Round and clamp into the closed [min_duration, max_duration] interval."""
        return int(round(max(self.min_duration, min(self.max_duration, requested))))


# ---------------------------------------------------------------------------
# Registry class
# ---------------------------------------------------------------------------

class ModelRegistry:
    """In-memory registry of supported video models and their aliases."""

    def __init__(self) -> None:
        self._models: dict[str, ModelCapability] = {}
        self._aliases: dict[str, str] = {}

    def register(self, cap: ModelCapability, *aliases: str) -> None:
        self._models[cap.model] = cap
        for alias in aliases:
            self._aliases[alias] = cap.model

    def resolve(self, model: str) -> str:
        """Map a short alias (``veo-3.1``) onto the provider's model id."""
        return self._aliases.get(model, model)

    def get(self, model: str) -> ModelCapability | None:
        return self._models.get(self.resolve(model))

    def list_models(self, backend: str | None = None) -> list[ModelCapability]:
        caps = list(self._models.values())
        if backend:
            caps = [c for c in caps if c.backend == backend]
        return caps


# ---------------------------------------------------------------------------
# Build the global registry
# ---------------------------------------------------------------------------

MODEL_REGISTRY = ModelRegistry()

# ================== Google Veo ==================

MODEL_REGISTRY.register(ModelCapability(
    "veo", "veo-3.1-generate-preview", 4, 8,
    grounding=GROUNDING_VIDEO, reference_image=True,
), "veo-3.1")

MODEL_REGISTRY.register(ModelCapability(
    "veo", "veo-3.1-fast-generate-preview", 4, 8,
    grounding=GROUNDING_VIDEO, reference_image=True,
), "veo-3.1-fast")

MODEL_REGISTRY.register(ModelCapability(
    "veo", "veo-3.0-generate-001", 4, 8, reference_image=True,
), "veo-3", "veo-3.0")

MODEL_REGISTRY.register(ModelCapability(
    "veo", "veo-3.0-fast-generate-001", 4, 8, reference_image=True,
), "veo-3-fast", "veo-3.0-fast")

MODEL_REGISTRY.register(ModelCapability(
    "veo", "veo-2.0-generate-001", 5, 8, reference_image=True,
), "veo-2", "veo-2.0")

# ================== Replicate-hosted ==================

# Hailuo: always 6s at 720p; chains through first_frame_image
MODEL_REGISTRY.register(ModelCapability(
    "replicate", "minimax/video-01", 6, 6,
    aspect_ratios=("16:9",),
    grounding=GROUNDING_LAST_FRAME, reference_image=True,
))

MODEL_REGISTRY.register(ModelCapability(
    "replicate", "wavespeedai/wan-2.1-t2v-480p", 5, 8,
))

MODEL_REGISTRY.register(ModelCapability(
    "replicate", "wan-video/wan-2.2-t2v-fast", 5, 8,
))

logger.debug("Model registry initialized: %d models", len(MODEL_REGISTRY.list_models()))
