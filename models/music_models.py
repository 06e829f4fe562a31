"""Domain models for scene analysis and music generation."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional


class TrackStatus(str, Enum):
	"""Lifecycle values reported by the music generation service."""

	SUBMITTED = "submitted"
	QUEUED = "queued"
	GENERATING = "generating"
	COMPLETE = "complete"
	ERROR = "error"

	@classmethod
	def parse(cls, value: Optional[str]) -> "TrackStatus":
		"""Map a remote status string; unknown in-progress values count as generating."""
		if not value:
			return cls.SUBMITTED
		try:
			return cls(value)
		except ValueError:
			return cls.GENERATING


@dataclass
class SceneAnalysisResult:
	"""Music prompt derived from one image."""

	prompt: str
	scene_description: str
	make_instrumental: bool
	confidence: float
	generated_at: str
	processing_time_ms: int


@dataclass
class GeneratedTrack:
	"""Remote view of a generated clip."""

	id: str
	status: TrackStatus
	title: Optional[str] = None
	audio_url: Optional[str] = None
	image_url: Optional[str] = None
	error_message: Optional[str] = None
	created_at: Optional[str] = None
	tags: Optional[str] = None

	@classmethod
	def from_payload(cls, payload: Dict[str, Any]) -> "GeneratedTrack":
		"""Build a track from one clip object of the music API."""
		metadata = payload.get("metadata") or {}
		return cls(
			id=str(payload["id"]),
			status=TrackStatus.parse(payload.get("status")),
			title=payload.get("title"),
			audio_url=payload.get("audio_url"),
			image_url=payload.get("image_url"),
			error_message=payload.get("error_message"),
			created_at=payload.get("created_at"),
			tags=metadata.get("tags"),
		)


@dataclass
class StoredMusicEntry:
	"""Latest generated track for a device."""

	device_id: str
	music_url: str
	scene_description: str
	prompt: str
	make_instrumental: bool
	clip_id: str
	image_id: str
	processing_time_ms: int
	timestamp: str
	title: Optional[str] = None
	image_url: Optional[str] = None
	user_id: Optional[str] = None

	def to_response(self) -> Dict[str, Any]:
		return {
			"deviceId": self.device_id,
			"userId": self.user_id,
			"musicUrl": self.music_url,
			"imageUrl": self.image_url,
			"sceneDescription": self.scene_description,
			"prompt": self.prompt,
			"title": self.title,
			"makeInstrumental": self.make_instrumental,
			"clipId": self.clip_id,
			"imageId": self.image_id,
			"processingTime": self.processing_time_ms,
			"timestamp": self.timestamp,
		}
