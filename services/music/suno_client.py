"""Async client for the music generation REST API.

Submits generation requests and polls clip status until a track is ready.
Polling deadlines are local: an abandoned or cancelled poll simply stops
asking, and the remote job is left to finish on its own.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional, Sequence

import httpx

from models.music_models import GeneratedTrack, TrackStatus
from services.errors import (
    GenerationCancelledError,
    GenerationFailedError,
    GenerationTimeoutError,
    NotFoundError,
    ValidationError,
)

LOGGER = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://studio-api.prod.suno.com/api/v2/external/hackmit"
MAX_TOPIC_LENGTH = 500
MAX_TAGS_LENGTH = 100


class MusicGenerationClient:
    """Thin wrapper over the generate and clips endpoints.

    Args:
        api_key: Bearer token for the music API.
        base_url: API root; endpoint paths are appended to it.
        timeout: Per-request HTTP timeout in seconds.
        transport: Optional httpx transport, used by tests to stub the API.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        if not api_key:
            raise ValueError("Music API key is required.")
        self.base_url = base_url.rstrip("/")
        self._http = httpx.AsyncClient(
            base_url=self.base_url,
            headers={"Authorization": f"Bearer {api_key}", "Content-Type": "application/json"},
            timeout=timeout,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._http.aclose()

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        """Send a request and return decoded JSON, raising on transport or HTTP errors."""
        try:
            response = await self._http.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            raise GenerationFailedError(f"Music API request failed: {exc}") from exc

        if response.is_error:
            raise GenerationFailedError(
                f"Music API request failed: HTTP {response.status_code}: {response.text}"
            )
        try:
            return response.json()
        except ValueError as exc:
            raise GenerationFailedError("Music API returned a non-JSON body.") from exc

    @staticmethod
    def _decode_track(item: Any) -> GeneratedTrack:
        try:
            return GeneratedTrack.from_payload(item)
        except (KeyError, TypeError, AttributeError) as exc:
            raise GenerationFailedError(f"Music API returned an unexpected payload: {item!r}") from exc

    async def submit(self, style_tags: str, topic: Optional[str] = None, instrumental: bool = False) -> GeneratedTrack:
        """Start a generation job and return its initial handle.

        Raises:
            ValidationError: If the topic exceeds 500 or the tags exceed 100
                characters. Checked before any request is sent.
        """
        if topic and len(topic) > MAX_TOPIC_LENGTH:
            raise ValidationError(f"Topic must be {MAX_TOPIC_LENGTH} characters or less")
        if style_tags and len(style_tags) > MAX_TAGS_LENGTH:
            raise ValidationError(f"Tags must be {MAX_TAGS_LENGTH} characters or less")

        body: Dict[str, Any] = {"tags": style_tags, "make_instrumental": bool(instrumental)}
        if topic:
            body["topic"] = topic

        payload = await self._request("POST", "/generate", json=body)
        track = self._decode_track(payload)
        LOGGER.info("Submitted music generation %s (status %s)", track.id, track.status.value)
        return track

    async def fetch_status(self, ids: Sequence[str]) -> List[GeneratedTrack]:
        """Return the current state of each requested track, in request order.

        Raises:
            ValidationError: If no ids are given.
            NotFoundError: If any id is missing from the response.
        """
        if not ids:
            raise ValidationError("Clip IDs are required for status lookup.")

        payload = await self._request("GET", "/clips", params={"ids": ",".join(ids)})
        if isinstance(payload, dict):
            payload = payload.get("clips") or []
        if not isinstance(payload, list):
            raise GenerationFailedError(f"Music API returned an unexpected payload: {payload!r}")
        tracks = {track.id: track for track in (self._decode_track(item) for item in payload)}

        missing = [track_id for track_id in ids if track_id not in tracks]
        if missing:
            raise NotFoundError(f"Clip with ID {', '.join(missing)} not found")
        return [tracks[track_id] for track_id in ids]

    async def get_track(self, track_id: str) -> GeneratedTrack:
        tracks = await self.fetch_status([track_id])
        return tracks[0]

    async def await_completion(
        self,
        track_id: str,
        timeout: float = 120.0,
        poll_interval: float = 2.0,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> GeneratedTrack:
        """Poll until the track is complete.

        Raises:
            GenerationFailedError: If the remote job reports an error.
            GenerationTimeoutError: If `timeout` seconds pass first.
            GenerationCancelledError: If `cancel_event` is set.
        """
        return await self._poll(
            track_id, timeout, poll_interval, cancel_event,
            ready=lambda track: track.status == TrackStatus.COMPLETE,
        )

    async def await_audio_url(
        self,
        track_id: str,
        timeout: float = 60.0,
        poll_interval: float = 2.0,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> GeneratedTrack:
        """Poll until an audio URL is available, even if the job is not complete.

        The returned track may still lack its final title or cover image.
        Raises the same errors as `await_completion`, plus
        `GenerationFailedError` when the job completes without an audio URL.
        """
        track = await self._poll(
            track_id, timeout, poll_interval, cancel_event,
            ready=lambda track: bool(track.audio_url) or track.status == TrackStatus.COMPLETE,
        )
        if not track.audio_url:
            raise GenerationFailedError(f"Track {track_id} completed without an audio URL")
        return track

    async def generate_and_wait(
        self,
        style_tags: str,
        topic: Optional[str] = None,
        instrumental: bool = False,
        timeout: float = 120.0,
    ) -> GeneratedTrack:
        track = await self.submit(style_tags, topic=topic, instrumental=instrumental)
        return await self.await_completion(track.id, timeout=timeout)

    async def _poll(
        self,
        track_id: str,
        timeout: float,
        poll_interval: float,
        cancel_event: Optional[asyncio.Event],
        ready: Callable[[GeneratedTrack], bool],
    ) -> GeneratedTrack:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout

        while True:
            if cancel_event is not None and cancel_event.is_set():
                raise GenerationCancelledError(f"Polling for clip {track_id} was cancelled")

            track = await self.get_track(track_id)
            if track.status == TrackStatus.ERROR:
                raise GenerationFailedError(f"Generation failed: {track.error_message or 'Unknown error'}")
            if ready(track):
                return track

            remaining = deadline - loop.time()
            if remaining <= 0:
                raise GenerationTimeoutError(f"Timeout waiting for clip {track_id} to complete")

            LOGGER.debug("Clip %s status: %s", track_id, track.status.value)
            await self._sleep(min(poll_interval, remaining), cancel_event)

    @staticmethod
    async def _sleep(delay: float, cancel_event: Optional[asyncio.Event]) -> None:
        if cancel_event is None:
            await asyncio.sleep(delay)
            return
        try:
            await asyncio.wait_for(cancel_event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            pass
