"""Environment-driven configuration for the scene soundtrack service."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from services.music.suno_client import DEFAULT_BASE_URL
from services.vision.scene_analyzer import DEFAULT_MODEL


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise RuntimeError(f"{name} must be an integer, got {raw!r}") from exc


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise RuntimeError(f"{name} must be a number, got {raw!r}") from exc


@dataclass
class Settings:
    """Runtime settings; see `from_env` for the variable names."""

    openai_api_key: Optional[str] = None
    openai_model: str = DEFAULT_MODEL
    suno_api_key: Optional[str] = None
    suno_base_url: str = DEFAULT_BASE_URL
    max_image_buffer_size: int = 20
    image_compression_quality: int = 80
    max_music_entries: int = 100
    scene_change_threshold: float = 0.3
    audio_wait_timeout: float = 60.0
    poll_interval: float = 2.0
    database_dir: Optional[str] = None
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            openai_api_key=os.getenv("OPENAI_API_KEY"),
            openai_model=os.getenv("OPENAI_MODEL", cls.openai_model),
            suno_api_key=os.getenv("SUNO_API_KEY"),
            suno_base_url=os.getenv("SUNO_BASE_URL", cls.suno_base_url),
            max_image_buffer_size=_int_env("MAX_IMAGE_BUFFER_SIZE", cls.max_image_buffer_size),
            image_compression_quality=_int_env("IMAGE_COMPRESSION_QUALITY", cls.image_compression_quality),
            max_music_entries=_int_env("MAX_MUSIC_ENTRIES", cls.max_music_entries),
            scene_change_threshold=_float_env("SCENE_CHANGE_THRESHOLD", cls.scene_change_threshold),
            audio_wait_timeout=_float_env("AUDIO_WAIT_TIMEOUT", cls.audio_wait_timeout),
            poll_interval=_float_env("POLL_INTERVAL", cls.poll_interval),
            database_dir=os.getenv("DATABASE_DIR") or None,
            log_level=os.getenv("LOG_LEVEL", cls.log_level).upper(),
        )

    def require_api_keys(self) -> None:
        """Raise RuntimeError when either external API key is missing."""
        if not self.openai_api_key:
            raise RuntimeError("OPENAI_API_KEY environment variable is not set")
        if not self.suno_api_key:
            raise RuntimeError("SUNO_API_KEY environment variable is not set")
