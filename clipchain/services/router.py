"""Provider selection by model identifier."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from clipchain.errors import RoutingError
from clipchain.services.providers.base import MediaBackend

logger = logging.getLogger(__name__)


class ProviderRouter:
    """Pick the backend for a model id.

    Backends are checked in registration order; the first whose ``handles()``
    matches wins.
    """

    def __init__(self, backends: Iterable[MediaBackend], *, default_model: str) -> None:
        self._backends = list(backends)
        self.default_model = default_model

    @property
    def backends(self) -> list[MediaBackend]:
        return list(self._backends)

    def route(self, model: str) -> MediaBackend:
        model = (model or "").strip()
        if not model:
            raise RoutingError("model identifier must not be empty")
        for backend in self._backends:
            if backend.handles(model):
                return backend
        configured = ", ".join(b.name for b in self._backends) or "none"
        raise RoutingError(f"No configured backend accepts model {model!r} (configured: {configured})")

    def resolve(self, model: str | None) -> tuple[MediaBackend, str]:
        """Route ``model``, substituting the default model when it is None."""
        if model is None:
            logger.info("No model specified; assuming default %s", self.default_model)
            model = self.default_model
        backend = self.route(model)
        return backend, model.strip()
