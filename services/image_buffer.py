"""In-memory buffer of recently captured images.

Images are decoded (and optionally resized/recompressed) with Pillow in a
worker thread, hashed, and kept in one process-wide mapping. The buffer is
bounded by a global cap: once the total count exceeds it, the oldest records
across all devices are evicted, so a busy device can push a quiet device's
history out.
"""

from __future__ import annotations

import asyncio
import hashlib
import io
import itertools
import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Tuple

from PIL import Image, ImageOps, UnidentifiedImageError

from models.image_record import ImageRecord, ProcessingOptions
from services.errors import ImageProcessingError, ValidationError

LOGGER = logging.getLogger(__name__)

_FORMATS = {"jpeg": "JPEG", "png": "PNG", "webp": "WEBP"}


def _process_image(data: bytes, mime_type: str, options: Optional[ProcessingOptions], default_quality: int) -> Tuple[bytes, str, int, int]:
    """Decode, optionally transform, and re-encode image bytes.

    Returns:
        A tuple of `(bytes, mime_type, width, height)` for the processed image.

    Raises:
        ImageProcessingError: If the bytes are not a decodable image.
    """
    try:
        with Image.open(io.BytesIO(data)) as src:
            src.load()
            if options is None:
                return data, mime_type, src.width, src.height

            fmt = (options.format or "jpeg").lower()
            if fmt not in _FORMATS:
                raise ImageProcessingError(f"Unsupported output format '{options.format}'")

            img = src
            if options.resize:
                img = ImageOps.fit(img, options.resize, Image.LANCZOS, centering=(0.5, 0.5))

            quality = options.quality or default_quality
            if fmt == "jpeg" and img.mode not in ("RGB", "L"):
                img = img.convert("RGB")

            out = io.BytesIO()
            if fmt == "jpeg":
                img.save(out, format="JPEG", quality=quality, progressive=True)
            elif fmt == "png":
                img.save(out, format="PNG", compress_level=max(0, min(9, round(quality / 10))))
            else:
                img.save(out, format="WEBP", quality=quality)
            return out.getvalue(), f"image/{fmt}", img.width, img.height
    except ImageProcessingError:
        raise
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as exc:
        raise ImageProcessingError(f"Image buffer processing failed: {exc}") from exc


class ImageBuffer:
    """Bounded store of recent images, queried per device.

    Args:
        max_size: Global cap on buffered records across all devices.
        compression_quality: Default encoder quality when options omit one.
    """

    def __init__(self, max_size: int = 20, compression_quality: int = 80) -> None:
        if max_size < 1:
            raise ValueError("max_size must be at least 1.")
        self.max_size = max_size
        self.compression_quality = compression_quality
        self._records: Dict[str, ImageRecord] = {}
        self._counter = itertools.count()
        self._last_timestamp: Optional[datetime] = None

    async def add(
        self,
        data: bytes,
        device_id: str,
        mime_type: str = "image/jpeg",
        user_id: Optional[str] = None,
        options: Optional[ProcessingOptions] = None,
    ) -> ImageRecord:
        """Process and buffer an image, evicting the oldest records if over the cap.

        Raises:
            ValidationError: If `data` is empty or `device_id` is blank.
            ImageProcessingError: If the bytes cannot be decoded as an image.
        """
        if not data:
            raise ValidationError("Image bytes are required.")
        if not device_id or not device_id.strip():
            raise ValidationError("Device ID is required.")

        processed, processed_mime, width, height = await asyncio.to_thread(
            _process_image, data, mime_type or "image/jpeg", options, self.compression_quality
        )

        timestamp = self._next_timestamp()
        digest = hashlib.md5(processed).hexdigest()
        record = ImageRecord(
            id=f"{device_id}_{timestamp}_{digest[:8]}",
            device_id=device_id,
            user_id=user_id,
            timestamp=timestamp,
            mime_type=processed_mime,
            size=len(processed),
            width=width,
            height=height,
            hash=digest,
            data=processed,
            sequence=next(self._counter),
        )

        self._records[record.id] = record
        self._evict_overflow()

        LOGGER.info("Added image to buffer: %s (%d bytes)", record.id, record.size)
        return record

    def get(self, image_id: str) -> Optional[ImageRecord]:
        return self._records.get(image_id)

    def recent(self, device_id: str, limit: int = 5) -> List[ImageRecord]:
        """Return up to `limit` records for a device, newest first."""
        records = [r for r in self._records.values() if r.device_id == device_id]
        records.sort(key=self._age_key, reverse=True)
        return records[: max(limit, 0)]

    def all(self) -> List[ImageRecord]:
        return sorted(self._records.values(), key=self._age_key, reverse=True)

    def clear(self, device_id: str) -> int:
        """Remove every record for a device and return how many were removed."""
        doomed = [image_id for image_id, r in self._records.items() if r.device_id == device_id]
        for image_id in doomed:
            del self._records[image_id]
        LOGGER.info("Cleared %d images for device: %s", len(doomed), device_id)
        return len(doomed)

    def stats(self) -> Dict[str, object]:
        records = sorted(self._records.values(), key=self._age_key)
        device_counts: Dict[str, int] = {}
        for record in records:
            device_counts[record.device_id] = device_counts.get(record.device_id, 0) + 1
        return {
            "total_images": len(records),
            "total_size": sum(r.size for r in records),
            "device_counts": device_counts,
            "oldest_image": records[0].timestamp if records else None,
            "newest_image": records[-1].timestamp if records else None,
        }

    def __len__(self) -> int:
        return len(self._records)

    def _next_timestamp(self) -> str:
        # Strictly increasing so record ids stay unique on coarse clocks.
        now = datetime.now(timezone.utc)
        if self._last_timestamp is not None and now <= self._last_timestamp:
            now = self._last_timestamp + timedelta(microseconds=1)
        self._last_timestamp = now
        return now.isoformat(timespec="microseconds")

    @staticmethod
    def _age_key(record: ImageRecord) -> Tuple[str, int]:
        return record.timestamp, record.sequence

    def _evict_overflow(self) -> None:
        overflow = len(self._records) - self.max_size
        if overflow <= 0:
            return
        oldest = sorted(self._records.values(), key=self._age_key)[:overflow]
        for record in oldest:
            del self._records[record.id]
            LOGGER.debug("Removed old image from buffer: %s", record.id)
