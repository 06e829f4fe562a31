"""Shared fixtures: in-memory test images and stand-ins for the external APIs."""

import asyncio
import io
import struct
import zlib

import pytest
from PIL import Image

from models.music_models import GeneratedTrack, SceneAnalysisResult, TrackStatus
from services.errors import GenerationCancelledError
from services.image_buffer import ImageBuffer
from services.music_store import MusicStore
from services.pipeline import ScenePipeline
from services.scene_change import SceneChangeDetector


def solid_image(color, size=(64, 48), fmt="JPEG") -> bytes:
    out = io.BytesIO()
    Image.new("RGB", size, color).save(out, format=fmt)
    return out.getvalue()


def _png_chunk(kind: bytes, payload: bytes) -> bytes:
    body = kind + payload
    return struct.pack(">I", len(payload)) + body + struct.pack(">I", zlib.crc32(body) & 0xFFFFFFFF)


def oversized_png(width=40000, height=40000) -> bytes:
    """A few dozen bytes whose header claims a huge RGB image."""
    header = struct.pack(">IIBBBBB", width, height, 8, 2, 0, 0, 0)
    return (
        b"\x89PNG\r\n\x1a\n"
        + _png_chunk(b"IHDR", header)
        + _png_chunk(b"IDAT", zlib.compress(b"\x00"))
        + _png_chunk(b"IEND", b"")
    )


class FakeAnalyzer:
    """Scene analyzer stand-in; optionally blocks until `gate` is set."""

    def __init__(self, prompt="ambient piano, calm, slow tempo", make_instrumental=True, gate=None):
        self.prompt = prompt
        self.make_instrumental = make_instrumental
        self.gate = gate
        self.calls = 0

    async def analyze(self, image_base64, mime_type="image/jpeg"):
        self.calls += 1
        if self.gate is not None:
            await self.gate.wait()
        return SceneAnalysisResult(
            prompt=self.prompt,
            scene_description="quiet study room",
            make_instrumental=self.make_instrumental,
            confidence=0.85,
            generated_at="2024-01-01T00:00:00+00:00",
            processing_time_ms=12,
        )


class FakeGenerator:
    """Music client stand-in recording submissions.

    `error` is raised from `await_audio_url`; `wait_for_cancel` makes it block
    until the pipeline's cancel event fires.
    """

    def __init__(self, error=None, wait_for_cancel=False):
        self.error = error
        self.wait_for_cancel = wait_for_cancel
        self.submitted = []

    async def submit(self, style_tags, topic=None, instrumental=False):
        self.submitted.append({"tags": style_tags, "topic": topic, "instrumental": instrumental})
        return GeneratedTrack(id=f"clip-{len(self.submitted)}", status=TrackStatus.SUBMITTED)

    async def await_audio_url(self, track_id, timeout=60.0, poll_interval=2.0, cancel_event=None):
        if self.wait_for_cancel:
            await cancel_event.wait()
            raise GenerationCancelledError(f"Polling for clip {track_id} was cancelled")
        if self.error is not None:
            raise self.error
        return GeneratedTrack(
            id=track_id,
            status=TrackStatus.GENERATING,
            title="Quiet Pages",
            audio_url=f"https://cdn.example.com/{track_id}.mp3",
            image_url=f"https://cdn.example.com/{track_id}.jpg",
        )


class FakeHistory:
    def __init__(self):
        self.results = []

    async def record(self, result, user_id=None):
        self.results.append((result, user_id))
        return len(self.results)


@pytest.fixture
def white_jpeg():
    return solid_image((255, 255, 255))


@pytest.fixture
def black_jpeg():
    return solid_image((0, 0, 0))


@pytest.fixture
def make_pipeline():
    """Factory building a pipeline over real buffer/detector/store and fake APIs."""

    def factory(analyzer=None, generator=None, history=None, max_size=20, **kwargs):
        buffer = ImageBuffer(max_size=max_size)
        return ScenePipeline(
            buffer=buffer,
            detector=SceneChangeDetector(buffer),
            analyzer=analyzer or FakeAnalyzer(),
            generator=generator or FakeGenerator(),
            store=MusicStore(),
            history=history,
            processing_options=None,
            **kwargs,
        )

    return factory


async def wait_until(predicate, attempts=300, delay=0.01):
    """Yield to the loop until `predicate()` holds."""
    for _ in range(attempts):
        if predicate():
            return
        await asyncio.sleep(delay)
    raise AssertionError("condition was never met")
