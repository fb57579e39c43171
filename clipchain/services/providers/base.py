"""Abstract media backend (one remote video provider).

Two flavours share this interface:
- async polling backends return a SUBMITTED operation from ``submit`` and
  advance it through ``poll``;
- sync run backends block inside ``submit`` and return a finished operation.

Callers drive both through the Operation state machine only.
"""

from __future__ import annotations

import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass

from clipchain.schemas.clip import AspectRatio, ClipRequest, MediaInput
from clipchain.schemas.media import Operation
from clipchain.services.model_registry import (
    GROUNDING_NONE,
    MODEL_REGISTRY,
    ModelCapability,
    ModelRegistry,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PreparedRequest:
    """A ClipRequest after capability checks: what actually goes on the wire."""
    prompt: str
    model: str
    duration_seconds: int
    aspect_ratio: str
    capability: ModelCapability
    grounding_source: MediaInput | None = None
    reference_image: MediaInput | None = None


class MediaBackend(ABC):
    """Strategy interface for one remote provider."""

    name: str = "unknown"
    default_capability: ModelCapability

    def __init__(self, registry: ModelRegistry | None = None) -> None:
        self.registry = registry or MODEL_REGISTRY

    @abstractmethod
    def handles(self, model: str) -> bool:
        """Whether this backend serves the model identifier (pure)."""

    @abstractmethod
    async def submit(self, request: ClipRequest) -> Operation:
        """Submit one generation request."""

    async def poll(self, operation: Operation) -> Operation:
        """Refresh an operation. Finished operations are returned unchanged."""
        return operation

    def new_operation_name(self) -> str:
        return f"{self.name}-{uuid.uuid4().hex[:12]}"

    # ------------------------------------------------------------------
    # Capability enforcement
    # ------------------------------------------------------------------

    def capability_for(self, model: str) -> ModelCapability:
        cap = self.registry.get(model)
        if cap is None:
            return ModelCapability(
                backend=self.name,
                model=model,
                min_duration=self.default_capability.min_duration,
                max_duration=self.default_capability.max_duration,
                aspect_ratios=self.default_capability.aspect_ratios,
                grounding=self.default_capability.grounding,
                reference_image=self.default_capability.reference_image,
            )
        return cap

    def prepare(self, request: ClipRequest) -> PreparedRequest:
        """Resolve aliases, clamp duration and drop unsupported inputs.

        Every adjustment is logged; nothing is substituted silently.
        """
        if not request.model:
            raise ValueError("request.model must be resolved before prepare()")
        model = self.registry.resolve(request.model)
        cap = self.capability_for(model)

        duration = cap.clamp_duration(request.duration_seconds)
        if duration != request.duration_seconds:
            if cap.fixed_duration:
                logger.warning(
                    "durationSeconds clamped for %s: requested %s -> sending %s (fixed duration)",
                    model, request.duration_seconds, duration,
                )
            else:
                logger.warning(
                    "durationSeconds clamped for %s: requested %s -> sending %s (allowed %d-%d)",
                    model, request.duration_seconds, duration, cap.min_duration, cap.max_duration,
                )

        aspect_ratio = AspectRatio(request.aspect_ratio).value
        if cap.aspect_ratios and aspect_ratio not in cap.aspect_ratios:
            logger.warning(
                "aspectRatio %s not supported by %s; sending %s",
                aspect_ratio, model, cap.aspect_ratios[0],
            )
            aspect_ratio = cap.aspect_ratios[0]

        grounding = request.grounding_source
        reference = request.reference_image

        if grounding is not None and cap.grounding == GROUNDING_NONE:
            logger.warning("%s does not support grounding clips; grounding source dropped", model)
            grounding = None
        if reference is not None and not cap.reference_image:
            logger.warning("%s does not support reference images; reference image dropped", model)
            reference = None
        if grounding is not None and reference is not None:
            logger.warning(
                "%s accepts one conditioning input; keeping grounding source, reference image dropped",
                model,
            )
            reference = None

        return PreparedRequest(
            prompt=request.prompt,
            model=model,
            duration_seconds=duration,
            aspect_ratio=aspect_ratio,
            capability=cap,
            grounding_source=grounding,
            reference_image=reference,
        )
