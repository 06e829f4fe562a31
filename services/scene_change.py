"""Coarse scene-change detection over buffered images.

Each image is fit to a small fixed resolution and its raw interleaved channel
bytes are counted into a 256-bucket histogram. Two histograms are compared by
intersection over union. This is a cheap proxy for visual similarity rather
than a perceptual hash; false positives are expected.
"""

from __future__ import annotations

import asyncio
import io
import logging
from typing import Dict, List, Sequence

from PIL import Image, ImageOps

from services.image_buffer import ImageBuffer

LOGGER = logging.getLogger(__name__)

HISTOGRAM_SIZE = (64, 64)
BUCKETS = 256


def compute_histogram(data: bytes, size=HISTOGRAM_SIZE) -> List[int]:
    """Return a 256-bucket byte-value histogram of the downsampled image."""
    with Image.open(io.BytesIO(data)) as src:
        if src.mode not in ("L", "RGB", "RGBA"):
            src = src.convert("RGB")
        pixels = ImageOps.fit(src, size, Image.LANCZOS).tobytes()

    histogram = [0] * BUCKETS
    for value in pixels:
        histogram[value] += 1
    return histogram


def compare_histograms(first: Sequence[int], second: Sequence[int]) -> float:
    """Intersection over union of two histograms; 0.0 when both are empty."""
    intersection = 0
    union = 0
    for a, b in zip(first, second):
        intersection += min(a, b)
        union += max(a, b)
    return intersection / union if union else 0.0


class SceneChangeDetector:
    """Decide whether a device's two newest images differ enough to matter."""

    def __init__(self, buffer: ImageBuffer, threshold: float = 0.3) -> None:
        self.buffer = buffer
        self.threshold = threshold
        self._histograms: Dict[str, List[int]] = {}

    async def has_changed(self, device_id: str, threshold: float | None = None) -> bool:
        """Return True when the scene changed, or when there is no prior image.

        Changed means `similarity < 1 - threshold`. Processing errors report a
        change so the pipeline keeps regenerating instead of going quiet.
        """
        threshold = self.threshold if threshold is None else threshold
        recent = self.buffer.recent(device_id, 2)
        if len(recent) < 2:
            return True

        current, previous = recent
        try:
            similarity = await self._similarity(current.id, current.data, previous.id, previous.data)
        except Exception as exc:  # pylint: disable=broad-exception-caught
            LOGGER.error("Scene change detection failed for %s: %s", device_id, exc)
            return True

        changed = similarity < (1 - threshold)
        LOGGER.info("Scene change detection: %.3f similarity, changed: %s", similarity, changed)
        return changed

    async def similarity(self, first_id: str, second_id: str) -> float:
        """Similarity of two buffered images by id.

        Raises:
            KeyError: If either image is no longer buffered.
        """
        first = self.buffer.get(first_id)
        second = self.buffer.get(second_id)
        if first is None or second is None:
            raise KeyError("Both images must still be buffered.")
        return await self._similarity(first.id, first.data, second.id, second.data)

    async def _similarity(self, first_id: str, first_data: bytes, second_id: str, second_data: bytes) -> float:
        first_hist = await self._histogram(first_id, first_data)
        second_hist = await self._histogram(second_id, second_data)
        return compare_histograms(first_hist, second_hist)

    async def _histogram(self, image_id: str, data: bytes) -> List[int]:
        cached = self._histograms.get(image_id)
        if cached is not None:
            return cached
        histogram = await asyncio.to_thread(compute_histogram, data)
        self._histograms[image_id] = histogram
        self._prune_cache()
        return histogram

    def _prune_cache(self) -> None:
        # Drop histograms for records the buffer has already evicted.
        stale = [image_id for image_id in self._histograms if self.buffer.get(image_id) is None]
        for image_id in stale:
            del self._histograms[image_id]
