"""Per-image pipeline: buffer, detect change, analyze, generate, store.

Runs are serialized per device with an `asyncio.Lock` and unconstrained
across devices. A frame that arrives while its device already has a run in
flight is still buffered, so history is kept, but it does not start a
second run.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Dict, Optional

from models.image_record import ImageRecord, ProcessingOptions
from models.music_models import StoredMusicEntry
from models.pipeline_models import PipelineOutcome, PipelineResult, PipelineStage, utc_now_iso
from services.errors import (
    GenerationCancelledError,
    GenerationFailedError,
    GenerationTimeoutError,
    ImageProcessingError,
    NotFoundError,
    ValidationError,
)
from services.image_buffer import ImageBuffer
from services.music.suno_client import MAX_TAGS_LENGTH, MAX_TOPIC_LENGTH, MusicGenerationClient
from services.music_store import MusicStore
from services.scene_change import SceneChangeDetector
from services.vision.scene_analyzer import SceneAnalyzer

LOGGER = logging.getLogger(__name__)

DEFAULT_PROCESSING_OPTIONS = ProcessingOptions(resize=(1024, 768), format="jpeg", quality=85)

_RUN_ERRORS = (
    ValidationError,
    GenerationFailedError,
    GenerationTimeoutError,
    GenerationCancelledError,
    NotFoundError,
)


def fit_to_length(text: str, limit: int) -> str:
    """Trim text to `limit` characters, preferring to cut at a comma."""
    if len(text) <= limit:
        return text
    cut = text[:limit]
    comma = cut.rfind(",")
    return (cut[:comma] if comma > 0 else cut).strip()


class ScenePipeline:
    """Coordinate the services that turn one inbound image into music.

    Args:
        buffer: Image buffer shared with the detector.
        detector: Scene-change detector over `buffer`.
        analyzer: Vision adapter producing the music prompt.
        generator: Music generation client.
        store: Latest-track-per-device store.
        history: Optional run-history DAL; every success and failure is appended.
        change_threshold: Detector threshold (0.3 means change below 0.7 similarity).
        audio_timeout: Seconds to wait for an audio URL.
        poll_interval: Seconds between status polls.
        processing_options: Resize/recompression applied when buffering.
    """

    def __init__(
        self,
        buffer: ImageBuffer,
        detector: SceneChangeDetector,
        analyzer: SceneAnalyzer,
        generator: MusicGenerationClient,
        store: MusicStore,
        history=None,
        *,
        change_threshold: float = 0.3,
        audio_timeout: float = 60.0,
        poll_interval: float = 2.0,
        processing_options: Optional[ProcessingOptions] = DEFAULT_PROCESSING_OPTIONS,
    ) -> None:
        self.buffer = buffer
        self.detector = detector
        self.analyzer = analyzer
        self.generator = generator
        self.store = store
        self.history = history
        self.change_threshold = change_threshold
        self.audio_timeout = audio_timeout
        self.poll_interval = poll_interval
        self.processing_options = processing_options
        self._locks: Dict[str, asyncio.Lock] = {}
        self._stages: Dict[str, PipelineStage] = {}
        self._cancel_events: Dict[str, asyncio.Event] = {}

    def stage(self, device_id: str) -> PipelineStage:
        return self._stages.get(device_id, PipelineStage.IDLE)

    def is_processing(self, device_id: str) -> bool:
        lock = self._locks.get(device_id)
        return bool(lock and lock.locked())

    def cancel(self, device_id: str) -> bool:
        """Stop polling for the device's in-flight run. Returns False if none is running."""
        event = self._cancel_events.get(device_id)
        if event is None:
            return False
        event.set()
        LOGGER.info("Cancellation requested for device: %s", device_id)
        return True

    async def process(
        self,
        data: bytes,
        device_id: str,
        mime_type: str = "image/jpeg",
        user_id: Optional[str] = None,
    ) -> PipelineResult:
        """Run one inbound image through the pipeline.

        Raises:
            ValidationError: If the image bytes or device id are missing.
        """
        lock = self._locks.setdefault(device_id, asyncio.Lock())
        if not lock.locked():
            self._stages[device_id] = PipelineStage.BUFFERING

        try:
            record = await self.buffer.add(data, device_id, mime_type, user_id, self.processing_options)
        except ImageProcessingError as exc:
            LOGGER.warning("Skipping undecodable frame from %s: %s", device_id, exc)
            if not lock.locked():
                self._stages[device_id] = PipelineStage.IDLE
            return PipelineResult(
                outcome=PipelineOutcome.WARNING,
                device_id=device_id,
                message="Image could not be processed; waiting for the next frame",
                error=str(exc),
            )
        except ValidationError:
            if not lock.locked():
                self._stages[device_id] = PipelineStage.IDLE
            raise

        # No await between the check and the acquire, so this is atomic on the event loop.
        if lock.locked():
            LOGGER.info("Run already in flight for %s; buffered %s only", device_id, record.id)
            return PipelineResult(
                outcome=PipelineOutcome.BUSY,
                device_id=device_id,
                image_id=record.id,
                message="Processing already in progress for this device",
            )

        async with lock:
            cancel_event = asyncio.Event()
            self._cancel_events[device_id] = cancel_event
            try:
                return await self._run(record, user_id, cancel_event)
            finally:
                self._stages[device_id] = PipelineStage.IDLE
                self._cancel_events.pop(device_id, None)

    async def _run(self, record: ImageRecord, user_id: Optional[str], cancel_event: asyncio.Event) -> PipelineResult:
        device_id = record.device_id

        self._stages[device_id] = PipelineStage.DETECTING
        if not await self.detector.has_changed(device_id, self.change_threshold):
            LOGGER.info("Scene unchanged for %s, skipping analysis", device_id)
            return PipelineResult(
                outcome=PipelineOutcome.UNCHANGED,
                device_id=device_id,
                image_id=record.id,
                message="Scene unchanged, no new music generated",
            )

        self._stages[device_id] = PipelineStage.ANALYZING
        analysis = await self.analyzer.analyze(record.base64, record.mime_type)

        self._stages[device_id] = PipelineStage.GENERATING
        clip_id = None
        try:
            submitted = await self.generator.submit(
                style_tags=fit_to_length(analysis.prompt, MAX_TAGS_LENGTH),
                topic=fit_to_length(analysis.prompt, MAX_TOPIC_LENGTH),
                instrumental=analysis.make_instrumental,
            )
            clip_id = submitted.id

            self._stages[device_id] = PipelineStage.AWAITING_AUDIO
            track = await self.generator.await_audio_url(
                submitted.id,
                timeout=self.audio_timeout,
                poll_interval=self.poll_interval,
                cancel_event=cancel_event,
            )
        except _RUN_ERRORS as exc:
            LOGGER.error("Pipeline failed for %s: %s", device_id, exc)
            failed = PipelineResult(
                outcome=PipelineOutcome.FAILED,
                device_id=device_id,
                scene_changed=True,
                image_id=record.id,
                prompt=analysis.prompt,
                scene_description=analysis.scene_description,
                make_instrumental=analysis.make_instrumental,
                clip_id=clip_id,
                processing_time_ms=analysis.processing_time_ms,
                message="Failed to process scene",
                error=str(exc),
            )
            await self._record_history(failed, user_id)
            return failed

        entry = StoredMusicEntry(
            device_id=device_id,
            user_id=user_id,
            music_url=track.audio_url,
            image_url=track.image_url,
            scene_description=analysis.scene_description,
            prompt=analysis.prompt,
            title=track.title,
            make_instrumental=analysis.make_instrumental,
            clip_id=track.id,
            image_id=record.id,
            processing_time_ms=analysis.processing_time_ms,
            timestamp=utc_now_iso(),
        )
        self.store.store(entry)

        result = PipelineResult(
            outcome=PipelineOutcome.SUCCESS,
            device_id=device_id,
            scene_changed=True,
            image_id=record.id,
            music_url=entry.music_url,
            image_url=entry.image_url,
            prompt=entry.prompt,
            scene_description=entry.scene_description,
            make_instrumental=entry.make_instrumental,
            clip_id=entry.clip_id,
            title=entry.title,
            processing_time_ms=entry.processing_time_ms,
        )
        LOGGER.info("Full pipeline completed for device: %s", device_id)
        await self._record_history(result, user_id)
        return result

    async def _record_history(self, result: PipelineResult, user_id: Optional[str]) -> None:
        if self.history is None:
            return
        try:
            await self.history.record(result, user_id=user_id)
        except Exception as exc:  # pylint: disable=broad-exception-caught
            LOGGER.error("Failed to record run history for %s: %s", result.device_id, exc)
