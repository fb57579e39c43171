"""Pytest configuration helpers.

This conftest ensures the project root is on `sys.path` so tests can import
the `clipchain` package regardless of how pytest is invoked in different CI
or IDE environments. It also provides the shared fakes: a recording sleep, a
manual clock and scriptable backends.
"""
import os
import sys
from dataclasses import replace

import pytest

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from clipchain.config import Settings  # noqa: E402
from clipchain.schemas.clip import ClipRequest  # noqa: E402
from clipchain.schemas.media import InlineMedia, Operation, OperationState  # noqa: E402
from clipchain.services.model_registry import GROUNDING_VIDEO, ModelCapability  # noqa: E402
from clipchain.services.providers.base import MediaBackend  # noqa: E402


class ManualClock:
    """Monotonic clock advanced only by FakeSleep."""

    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class FakeSleep:
    """Records requested delays and advances the paired clock."""

    def __init__(self, clock: ManualClock | None = None) -> None:
        self.clock = clock
        self.calls: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.calls.append(delay)
        if self.clock is not None:
            self.clock.now += delay


class ScriptedBackend(MediaBackend):
    """Async polling backend whose poll results come from a script.

    Each ``poll`` pops the next entry: an Exception is raised, ``"pending"``
    keeps the operation polling, anything else is used as the finished
    operation's outputs (bytes become InlineMedia).
    """

    name = "scripted"
    default_capability = ModelCapability(
        "scripted", "scripted-default", 4, 8, grounding=GROUNDING_VIDEO, reference_image=True,
    )

    def __init__(self, script=None, *, prefix: str = "veo") -> None:
        super().__init__()
        self.script = list(script or [])
        self.prefix = prefix
        self.submitted: list[ClipRequest] = []
        self.prepared = []
        self.poll_calls = 0

    def handles(self, model: str) -> bool:
        return model.startswith(self.prefix)

    async def submit(self, request: ClipRequest) -> Operation:
        prepared = self.prepare(request)
        self.submitted.append(request)
        self.prepared.append(prepared)
        return Operation(
            name=self.new_operation_name(),
            backend=self.name,
            model=prepared.model,
            state=OperationState.SUBMITTED,
            duration_seconds=prepared.duration_seconds,
        )

    async def poll(self, operation: Operation) -> Operation:
        if operation.done:
            return operation
        self.poll_calls += 1
        step = self.script.pop(0) if self.script else b"video-bytes"
        if isinstance(step, Exception):
            raise step
        if step == "pending":
            return replace(operation, state=OperationState.POLLING)
        if isinstance(step, Operation):
            return replace(step, name=operation.name, duration_seconds=operation.duration_seconds)
        if isinstance(step, bytes):
            step = (InlineMedia(step),)
        return replace(operation, state=OperationState.DONE, outputs=tuple(step))


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        GEMINI_API_KEY="test-gemini-key",
        REPLICATE_API_TOKEN="r8_test",
        POLL_INTERVAL_SECONDS=10.0,
        MAX_POLL_SECONDS=60.0,
        DOWNLOAD_BASE_DELAY_SECONDS=0.0,
    )


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def fake_sleep(clock):
    return FakeSleep(clock)


@pytest.fixture
def scripted_backend():
    return ScriptedBackend()
