from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass
class GenerationRun:
    """In-memory representation of a row in the GENERATION_RUN table.

    Attributes:
        id: Primary key (None for new records).
        device_id: Device the run belonged to.
        outcome: Pipeline outcome value ("success" or "failed").
        created_at: ISO-8601 timestamp of the run result.
        user_id: Optional owner of the device.
        image_id: Buffered image that triggered the run.
        clip_id: Remote track id, when generation was submitted.
        prompt: Music prompt produced by scene analysis.
        scene_description: Human-readable scene description.
        make_instrumental: Whether an instrumental track was requested.
        music_url: Audio URL of the finished track.
        title: Track title, if known.
        error: Failure message for failed runs.
        processing_time_ms: Analysis time in milliseconds.
    """

    id: Optional[int]
    device_id: str
    outcome: str
    created_at: str
    user_id: Optional[str] = None
    image_id: Optional[str] = None
    clip_id: Optional[str] = None
    prompt: Optional[str] = None
    scene_description: Optional[str] = None
    make_instrumental: Optional[bool] = None
    music_url: Optional[str] = None
    title: Optional[str] = None
    error: Optional[str] = None
    processing_time_ms: Optional[int] = None

    def to_response(self) -> dict:
        return {
            "id": self.id,
            "deviceId": self.device_id,
            "userId": self.user_id,
            "outcome": self.outcome,
            "imageId": self.image_id,
            "clipId": self.clip_id,
            "prompt": self.prompt,
            "sceneDescription": self.scene_description,
            "makeInstrumental": self.make_instrumental,
            "musicUrl": self.music_url,
            "title": self.title,
            "error": self.error,
            "processingTime": self.processing_time_ms,
            "timestamp": self.created_at,
        }
