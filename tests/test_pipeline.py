"""
Tests for the scene pipeline orchestration
"""

import asyncio

import httpx
import pytest

from conftest import FakeAnalyzer, FakeGenerator, FakeHistory, oversized_png, wait_until
from models.pipeline_models import PipelineOutcome, PipelineStage
from services.errors import GenerationFailedError, GenerationTimeoutError, ValidationError
from services.music.suno_client import MusicGenerationClient
from services.pipeline import fit_to_length


def test_first_image_generates_and_stores_music(make_pipeline, white_jpeg):
    generator = FakeGenerator()
    history = FakeHistory()
    pipeline = make_pipeline(generator=generator, history=history)

    result = asyncio.run(pipeline.process(white_jpeg, "glasses-1", user_id="user-7"))

    assert result.outcome == PipelineOutcome.SUCCESS
    assert result.success and result.scene_changed
    assert result.music_url == "https://cdn.example.com/clip-1.mp3"
    assert generator.submitted == [
        {"tags": "ambient piano, calm, slow tempo", "topic": "ambient piano, calm, slow tempo", "instrumental": True}
    ]

    entry = pipeline.store.latest("glasses-1")
    assert entry.music_url == result.music_url
    assert entry.user_id == "user-7"
    assert entry.image_id == result.image_id
    assert history.results[0][0] is result
    assert history.results[0][1] == "user-7"
    assert pipeline.stage("glasses-1") == PipelineStage.IDLE
    assert not pipeline.is_processing("glasses-1")


def test_unchanged_scene_skips_analysis(make_pipeline, white_jpeg):
    analyzer = FakeAnalyzer()
    pipeline = make_pipeline(analyzer=analyzer)

    async def scenario():
        await pipeline.process(white_jpeg, "glasses-1")
        return await pipeline.process(white_jpeg, "glasses-1")

    result = asyncio.run(scenario())
    assert result.outcome == PipelineOutcome.UNCHANGED
    assert result.success is True
    assert result.scene_changed is False
    assert analyzer.calls == 1
    assert len(pipeline.buffer) == 2


def test_second_image_during_run_is_buffered_but_not_processed(make_pipeline, white_jpeg, black_jpeg):
    """At most one generation is in flight per device."""

    async def scenario():
        gate = asyncio.Event()
        analyzer = FakeAnalyzer(gate=gate)
        generator = FakeGenerator()
        pipeline = make_pipeline(analyzer=analyzer, generator=generator)

        first = asyncio.create_task(pipeline.process(white_jpeg, "glasses-1"))
        await wait_until(lambda: analyzer.calls == 1)
        assert pipeline.is_processing("glasses-1")
        assert pipeline.stage("glasses-1") == PipelineStage.ANALYZING

        busy = await pipeline.process(black_jpeg, "glasses-1")
        other_device = asyncio.create_task(pipeline.process(black_jpeg, "glasses-2"))
        await wait_until(lambda: analyzer.calls == 2)
        gate.set()
        return pipeline, analyzer, generator, await first, busy, await other_device

    pipeline, analyzer, generator, first, busy, other_device = asyncio.run(scenario())
    assert first.outcome == PipelineOutcome.SUCCESS
    assert busy.outcome == PipelineOutcome.BUSY
    assert busy.success is True and busy.scene_changed is False
    assert pipeline.buffer.get(busy.image_id) is not None
    assert other_device.outcome == PipelineOutcome.SUCCESS
    assert analyzer.calls == 2
    assert len(generator.submitted) == 2


def test_undecodable_image_is_a_warning(make_pipeline):
    analyzer = FakeAnalyzer()
    pipeline = make_pipeline(analyzer=analyzer)

    result = asyncio.run(pipeline.process(b"not an image at all", "glasses-1"))

    assert result.outcome == PipelineOutcome.WARNING
    assert result.success is False
    assert result.error
    assert analyzer.calls == 0
    assert pipeline.stage("glasses-1") == PipelineStage.IDLE


def test_decompression_bomb_is_a_warning(make_pipeline):
    analyzer = FakeAnalyzer()
    pipeline = make_pipeline(analyzer=analyzer)

    result = asyncio.run(pipeline.process(oversized_png(), "glasses-1"))

    assert result.outcome == PipelineOutcome.WARNING
    assert result.success is False
    assert analyzer.calls == 0
    assert len(pipeline.buffer) == 0


@pytest.mark.parametrize(
    "body",
    [
        {"status": "submitted"},
        ["not", "a", "clip"],
    ],
)
def test_malformed_music_api_payload_fails_the_run(make_pipeline, white_jpeg, body):
    def api(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=body)

    history = FakeHistory()

    async def scenario():
        client = MusicGenerationClient(
            "secret-key", base_url="https://music.example.com/api", transport=httpx.MockTransport(api)
        )
        try:
            pipeline = make_pipeline(generator=client, history=history)
            return pipeline, await pipeline.process(white_jpeg, "glasses-1")
        finally:
            await client.aclose()

    pipeline, result = asyncio.run(scenario())

    assert result.outcome == PipelineOutcome.FAILED
    assert "unexpected payload" in result.error
    assert result.timestamp
    assert not pipeline.store.has("glasses-1")
    assert len(history.results) == 1
    assert history.results[0][0] is result


def test_missing_bytes_raise_validation_error(make_pipeline):
    with pytest.raises(ValidationError):
        asyncio.run(make_pipeline().process(b"", "glasses-1"))


@pytest.mark.parametrize(
    "error", [GenerationTimeoutError("Timeout waiting for clip"), GenerationFailedError("Generation failed: boom")]
)
def test_generation_errors_fail_the_run(make_pipeline, white_jpeg, error):
    history = FakeHistory()
    pipeline = make_pipeline(generator=FakeGenerator(error=error), history=history)

    result = asyncio.run(pipeline.process(white_jpeg, "glasses-1"))

    assert result.outcome == PipelineOutcome.FAILED
    assert result.success is False
    assert result.error == str(error)
    assert result.clip_id == "clip-1"
    assert not pipeline.store.has("glasses-1")
    assert history.results[0][0].outcome == PipelineOutcome.FAILED
    assert not pipeline.is_processing("glasses-1")


def test_cancel_stops_waiting_for_audio(make_pipeline, white_jpeg):
    async def scenario():
        pipeline = make_pipeline(generator=FakeGenerator(wait_for_cancel=True))
        assert pipeline.cancel("glasses-1") is False

        task = asyncio.create_task(pipeline.process(white_jpeg, "glasses-1"))
        await wait_until(lambda: pipeline.stage("glasses-1") == PipelineStage.AWAITING_AUDIO)
        assert pipeline.cancel("glasses-1") is True
        return pipeline, await task

    pipeline, result = asyncio.run(scenario())
    assert result.outcome == PipelineOutcome.FAILED
    assert "cancelled" in result.error
    assert pipeline.cancel("glasses-1") is False


def test_long_prompts_are_trimmed_for_submission(make_pipeline, white_jpeg):
    prompt = ", ".join(["warm analog synth pads"] * 10)
    generator = FakeGenerator()
    pipeline = make_pipeline(analyzer=FakeAnalyzer(prompt=prompt), generator=generator)

    result = asyncio.run(pipeline.process(white_jpeg, "glasses-1"))

    assert result.outcome == PipelineOutcome.SUCCESS
    submitted = generator.submitted[0]
    assert len(submitted["tags"]) <= 100
    assert not submitted["tags"].endswith(",")
    assert submitted["topic"] == prompt


def test_fit_to_length():
    assert fit_to_length("short", 10) == "short"
    assert fit_to_length("alpha, beta, gamma", 12) == "alpha, beta"
    assert fit_to_length("abcdefghij", 4) == "abcd"
