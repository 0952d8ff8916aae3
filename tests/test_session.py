from __future__ import annotations

import asyncio

import pytest

from adgenius.core import RequestPipeline
from adgenius.errors import GenerationCancelled, GenerationFailed, PipelineBusyError, TierExhaustedError
from adgenius.models import AdStyle, AspectRatio, GenerationRequest, PipelineState
from adgenius.render import FontSet
from adgenius.session import AdSession

from conftest import FakeProvider, png_bytes

REQUEST = GenerationRequest(style=AdStyle.ELEGANT, aspect_ratio=AspectRatio.SQUARE)


class GatedProvider(FakeProvider):
    """Blocks every text call until `release` is set."""

    def __init__(self) -> None:
        super().__init__()
        self.started = asyncio.Event()
        self.release = asyncio.Event()

    async def generate_text(self, prompt, **kwargs):
        self.started.set()
        await self.release.wait()
        return await super().generate_text(prompt, **kwargs)


def test_generate_stores_record(source, retry_policy):
    session = AdSession(RequestPipeline(FakeProvider(), retry_policy=retry_policy))

    record = asyncio.run(session.generate(source, REQUEST))

    assert session.record is record
    assert session.plan.copy.headline == "Run Wild"
    assert session.error is None
    assert not session.busy


def test_failed_transform_keeps_plan_and_retry_reuses_it(source, retry_policy):
    outcomes = [RuntimeError("blocked"), png_bytes()]
    provider = FakeProvider(image=lambda call: outcomes.pop(0))
    session = AdSession(RequestPipeline(provider, retry_policy=retry_policy))

    with pytest.raises(TierExhaustedError):
        asyncio.run(session.generate(source, REQUEST))

    assert session.error == "Something went wrong during generation. Please try again."
    assert session.record is None
    assert session.plan is not None
    text_calls = len(provider.text_calls)

    record = asyncio.run(session.retry())

    assert len(provider.text_calls) == text_calls
    assert record.headline == "Run Wild"
    assert session.record is record
    assert session.error is None


def test_retry_without_plan_fails(retry_policy):
    session = AdSession(RequestPipeline(FakeProvider(), retry_policy=retry_policy))

    with pytest.raises(GenerationFailed):
        asyncio.run(session.retry())


def test_new_generation_cancels_the_one_in_flight(source, retry_policy):
    async def scenario():
        provider = GatedProvider()
        session = AdSession(RequestPipeline(provider, retry_policy=retry_policy))

        first = asyncio.ensure_future(session.generate(source, REQUEST))
        await provider.started.wait()

        second = asyncio.ensure_future(session.generate(source, REQUEST))
        await asyncio.sleep(0)
        provider.release.set()

        results = await asyncio.gather(first, second, return_exceptions=True)
        return session, results

    session, (first, second) = asyncio.run(scenario())

    assert isinstance(first, GenerationCancelled)
    assert session.record is second
    assert not session.busy


def test_superseded_run_does_not_overwrite_live_state(source, retry_policy):
    states = []

    async def scenario():
        provider = GatedProvider()
        pipeline = RequestPipeline(provider, retry_policy=retry_policy, on_state_change=states.append)
        session = AdSession(pipeline)

        first = asyncio.ensure_future(session.generate(source, REQUEST))
        await provider.started.wait()

        second = asyncio.ensure_future(session.generate(source, REQUEST))
        for _ in range(20):
            await asyncio.sleep(0)

        assert first.done()
        assert pipeline.state is PipelineState.ANALYZING

        provider.release.set()
        await asyncio.gather(first, second, return_exceptions=True)
        return pipeline

    pipeline = asyncio.run(scenario())

    assert pipeline.state is PipelineState.COMPLETE
    assert PipelineState.CANCELLED not in states
    assert states == [
        PipelineState.ANALYZING,
        PipelineState.ANALYZING,
        PipelineState.RESEARCHING,
        PipelineState.STRATEGIZING,
        PipelineState.WRITING,
        PipelineState.TRANSFORMING,
        PipelineState.COMPLETE,
    ]


def test_reject_mode_refuses_concurrent_generation(source, retry_policy):
    async def scenario():
        provider = GatedProvider()
        session = AdSession(RequestPipeline(provider, retry_policy=retry_policy), on_conflict="reject")

        first = asyncio.ensure_future(session.generate(source, REQUEST))
        await provider.started.wait()

        with pytest.raises(PipelineBusyError):
            await session.generate(source, REQUEST)

        provider.release.set()
        return await first

    record = asyncio.run(scenario())
    assert record.headline == "Run Wild"


def test_reset_cancels_and_clears(source, retry_policy):
    async def scenario():
        provider = GatedProvider()
        session = AdSession(RequestPipeline(provider, retry_policy=retry_policy))

        task = asyncio.ensure_future(session.generate(source, REQUEST))
        await provider.started.wait()
        session.reset()

        with pytest.raises(GenerationCancelled):
            await task
        return session

    session = asyncio.run(scenario())
    assert session.source is None
    assert session.plan is None
    assert session.record is None
    assert not session.busy


def test_deadline_aborts_slow_provider(source, retry_policy):
    async def scenario():
        session = AdSession(RequestPipeline(GatedProvider(), retry_policy=retry_policy))
        await session.generate(source, REQUEST, timeout=0.05)

    with pytest.raises(GenerationCancelled):
        asyncio.run(asyncio.wait_for(scenario(), timeout=5))


def test_export_renders_the_record(source, retry_policy):
    session = AdSession(
        RequestPipeline(FakeProvider(), retry_policy=retry_policy),
        fonts=FontSet.load(),
    )
    asyncio.run(session.generate(source, REQUEST))

    exported = session.export()

    assert exported.filename.startswith("adgenius-")
    assert exported.filename.endswith(".png")
    assert exported.data[:8] == b"\x89PNG\r\n\x1a\n"


def test_export_without_record_fails(retry_policy):
    session = AdSession(RequestPipeline(FakeProvider(), retry_policy=retry_policy))

    with pytest.raises(GenerationFailed):
        session.export()


def test_unknown_conflict_policy_is_rejected(retry_policy):
    with pytest.raises(ValueError):
        AdSession(RequestPipeline(FakeProvider(), retry_policy=retry_policy), on_conflict="queue")
