"""Pipeline state and result models."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


def utc_now_iso() -> str:
	return datetime.now(timezone.utc).isoformat()


class PipelineStage(str, Enum):
	"""Where a device's current run is."""

	IDLE = "idle"
	BUFFERING = "buffering"
	DETECTING = "detecting"
	ANALYZING = "analyzing"
	GENERATING = "generating"
	AWAITING_AUDIO = "awaiting_audio"


class PipelineOutcome(str, Enum):
	"""How a single inbound image was resolved."""

	SUCCESS = "success"
	UNCHANGED = "unchanged"
	BUSY = "busy"
	WARNING = "warning"
	FAILED = "failed"


@dataclass
class PipelineResult:
	"""Result surface returned to the device or UI for one inbound image."""

	outcome: PipelineOutcome
	device_id: str
	scene_changed: bool = False
	image_id: Optional[str] = None
	music_url: Optional[str] = None
	image_url: Optional[str] = None
	prompt: Optional[str] = None
	scene_description: Optional[str] = None
	make_instrumental: Optional[bool] = None
	clip_id: Optional[str] = None
	title: Optional[str] = None
	processing_time_ms: Optional[int] = None
	message: Optional[str] = None
	error: Optional[str] = None
	timestamp: str = field(default_factory=utc_now_iso)

	@property
	def success(self) -> bool:
		return self.outcome in (PipelineOutcome.SUCCESS, PipelineOutcome.UNCHANGED, PipelineOutcome.BUSY)

	def to_response(self) -> Dict[str, Any]:
		"""Render the camelCase response body, omitting unset optional fields."""
		body: Dict[str, Any] = {
			"success": self.success,
			"sceneChanged": self.scene_changed,
			"outcome": self.outcome.value,
			"deviceId": self.device_id,
			"timestamp": self.timestamp,
		}
		optional = {
			"imageId": self.image_id,
			"musicUrl": self.music_url,
			"imageUrl": self.image_url,
			"prompt": self.prompt,
			"sceneDescription": self.scene_description,
			"makeInstrumental": self.make_instrumental,
			"clipId": self.clip_id,
			"title": self.title,
			"processingTime": self.processing_time_ms,
			"message": self.message,
			"error": self.error,
		}
		body.update({key: value for key, value in optional.items() if value is not None})
		return body
