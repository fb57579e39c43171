"""Tests for ChainAssembler sequencing, partial failure and concat fallback."""

import logging
from unittest.mock import AsyncMock, MagicMock

import pytest

from clipchain.errors import FilteredError, PermanentError, ToolFailureError
from clipchain.schemas.media import ConcatResult
from clipchain.services.base_compose_service import BaseConcatenator
from clipchain.services.chain_assembler import ChainAssembler, ChainOptions, expected_duration
from clipchain.services.clip_generator import ClipGenerator
from clipchain.services.router import ProviderRouter
from conftest import ScriptedBackend

PROMPTS = ["a fox wakes up", "the fox runs", "the fox jumps"]


class FakeConcatenator(BaseConcatenator):
    provider_name = "fake"

    def __init__(self, probed=True, error=None):
        self.probed = probed
        self.error = error
        self.calls = []

    async def concat(self, clips):
        self.calls.append(list(clips))
        if self.error is not None:
            raise self.error
        total = sum(c.duration_seconds for c in clips)
        return ConcatResult(b"".join(c.data for c in clips), "video/mp4", total, probed=self.probed)


def make_assembler(backend, concatenator, clock, fake_sleep):
    downloader = MagicMock()
    downloader.fetch = AsyncMock(side_effect=lambda ref: ref.data)
    router = ProviderRouter([backend], default_model="veo-3.1-generate-preview")
    generator = ClipGenerator(router, downloader, sleep=fake_sleep, clock=clock)
    return ChainAssembler(generator, concatenator, clock=clock)


@pytest.mark.parametrize("n,expected", [(1, 8), (2, 14), (3, 20), (4, 26), (0, 0)])
def test_expected_duration(n, expected):
    assert expected_duration(n, 8, 2) == expected


class TestChainOptions:

    def test_overlap_must_be_smaller_than_clip(self):
        with pytest.raises(ValueError):
            ChainOptions(clip_seconds=8, overlap_seconds=8)

    def test_negative_overlap_rejected(self):
        with pytest.raises(ValueError):
            ChainOptions(overlap_seconds=-1)


class TestAssemble:

    @pytest.mark.asyncio
    async def test_three_prompts_total_twenty(self, clock, fake_sleep):
        backend = ScriptedBackend([b"C0", b"C1", b"C2"])
        concatenator = FakeConcatenator()
        assembler = make_assembler(backend, concatenator, clock, fake_sleep)

        result = await assembler.assemble(PROMPTS)

        assert result.complete
        assert [c.duration_seconds for c in result.per_clip] == [8, 6, 6]
        assert result.total_duration_seconds == 20
        assert result.expected_duration_seconds == 20
        assert not result.duration_estimated
        assert result.merged_clip.data == b"C0C1C2"
        assert result.model == "veo-3.1-generate-preview"

    @pytest.mark.asyncio
    async def test_each_step_grounded_on_previous_clip(self, clock, fake_sleep):
        backend = ScriptedBackend([b"C0", b"C1", b"C2"])
        assembler = make_assembler(backend, FakeConcatenator(), clock, fake_sleep)

        await assembler.assemble(PROMPTS)

        sent = backend.submitted
        assert sent[0].grounding_source is None
        assert sent[0].duration_seconds == 8
        assert sent[1].grounding_source.data == b"C0"
        assert sent[2].grounding_source.data == b"C1"
        assert [r.duration_seconds for r in sent[1:]] == [6, 6]

    @pytest.mark.asyncio
    async def test_failure_keeps_successful_prefix(self, clock, fake_sleep):
        backend = ScriptedBackend([b"C0", FilteredError(["violence"])])
        concatenator = FakeConcatenator()
        assembler = make_assembler(backend, concatenator, clock, fake_sleep)

        result = await assembler.assemble(PROMPTS)

        assert result.per_clip[0].data == b"C0"
        assert result.per_clip[1:] == [None, None]
        assert result.failed_index == 1
        assert isinstance(result.error, FilteredError)
        assert result.merged_clip.data == b"C0"
        assert result.total_duration_seconds == 8
        assert len(backend.submitted) == 2

    @pytest.mark.asyncio
    async def test_first_clip_failure_yields_nothing(self, clock, fake_sleep):
        backend = ScriptedBackend([PermanentError(None, "operation error 3: invalid argument")])
        concatenator = FakeConcatenator()
        assembler = make_assembler(backend, concatenator, clock, fake_sleep)

        result = await assembler.assemble(PROMPTS)

        assert result.merged_clip is None
        assert result.per_clip == [None, None, None]
        assert result.total_duration_seconds == 0
        assert result.failed_index == 0
        assert concatenator.calls == []

    @pytest.mark.asyncio
    async def test_concat_failure_falls_back_to_last_clip(self, clock, fake_sleep, caplog):
        backend = ScriptedBackend([b"C0", b"C1", b"C2"])
        concatenator = FakeConcatenator(error=ToolFailureError("ffmpeg", 1, "codec mismatch"))
        assembler = make_assembler(backend, concatenator, clock, fake_sleep)

        with caplog.at_level(logging.ERROR):
            result = await assembler.assemble(PROMPTS)

        assert result.merged_clip.data == b"C2"
        assert result.total_duration_seconds == 20
        assert result.duration_estimated
        assert isinstance(result.concat_error, ToolFailureError)
        assert result.error is None
        assert "fallback" in caplog.text

    @pytest.mark.asyncio
    async def test_unprobed_total_marked_estimated(self, clock, fake_sleep):
        backend = ScriptedBackend([b"C0", b"C1"])
        assembler = make_assembler(backend, FakeConcatenator(probed=False), clock, fake_sleep)

        result = await assembler.assemble(PROMPTS[:2])

        assert result.total_duration_seconds == 14
        assert result.duration_estimated

    @pytest.mark.asyncio
    async def test_progress_callback_sequence(self, clock, fake_sleep):
        backend = ScriptedBackend([b"C0", PermanentError(400, "invalid grounding clip")])
        events = []
        assembler = make_assembler(backend, FakeConcatenator(), clock, fake_sleep)

        await assembler.assemble(
            PROMPTS,
            on_clip_progress=lambda i, status, elapsed: events.append((i, status)),
        )

        assert events == [(0, "generating"), (0, "done"), (1, "extending"), (1, "error")]

    @pytest.mark.asyncio
    async def test_empty_prompts_rejected(self, clock, fake_sleep):
        assembler = make_assembler(ScriptedBackend(), FakeConcatenator(), clock, fake_sleep)
        with pytest.raises(ValueError):
            await assembler.assemble([])

    @pytest.mark.asyncio
    async def test_custom_clip_and_overlap(self, clock, fake_sleep):
        backend = ScriptedBackend([b"C0", b"C1"])
        assembler = make_assembler(backend, FakeConcatenator(), clock, fake_sleep)

        result = await assembler.assemble(
            PROMPTS[:2], ChainOptions(clip_seconds=6, overlap_seconds=1),
        )

        assert [r.duration_seconds for r in backend.submitted] == [6, 5]
        assert result.expected_duration_seconds == 11
        assert result.total_duration_seconds == 11

    @pytest.mark.asyncio
    async def test_default_options_used_when_none_given(self, clock, fake_sleep):
        backend = ScriptedBackend([b"C0", b"C1"])
        downloader = MagicMock()
        downloader.fetch = AsyncMock(side_effect=lambda ref: ref.data)
        router = ProviderRouter([backend], default_model="veo-3.1-generate-preview")
        generator = ClipGenerator(router, downloader, sleep=fake_sleep, clock=clock)
        assembler = ChainAssembler(
            generator,
            FakeConcatenator(),
            default_options=ChainOptions(clip_seconds=6, overlap_seconds=1),
            clock=clock,
        )

        result = await assembler.assemble(PROMPTS[:2])

        assert [r.duration_seconds for r in backend.submitted] == [6, 5]
        assert result.expected_duration_seconds == 11

    @pytest.mark.asyncio
    async def test_blank_prompt_rejected_before_any_generation(self, clock, fake_sleep):
        backend = ScriptedBackend([b"C0", b"C1", b"C2"])
        concatenator = FakeConcatenator()
        assembler = make_assembler(backend, concatenator, clock, fake_sleep)

        with pytest.raises(ValueError, match="Prompt 2 of 3"):
            await assembler.assemble(["a fox wakes up", "   ", "the fox jumps"])

        assert backend.submitted == []
        assert concatenator.calls == []

    @pytest.mark.asyncio
    async def test_unexpected_step_error_keeps_successful_prefix(self, clock, fake_sleep, caplog):
        backend = ScriptedBackend([b"C0", RuntimeError("sdk bug")])
        events = []
        assembler = make_assembler(backend, FakeConcatenator(), clock, fake_sleep)

        with caplog.at_level(logging.ERROR):
            result = await assembler.assemble(
                PROMPTS,
                on_clip_progress=lambda i, status, elapsed: events.append((i, status)),
            )

        assert result.per_clip[0].data == b"C0"
        assert result.per_clip[1:] == [None, None]
        assert result.failed_index == 1
        assert isinstance(result.error, RuntimeError)
        assert result.merged_clip.data == b"C0"
        assert events[-1] == (1, "error")
        assert "failed unexpectedly" in caplog.text
        assert len(backend.submitted) == 2
