from __future__ import annotations

import base64
from dataclasses import dataclass, field
from typing import Optional, Tuple


@dataclass
class ProcessingOptions:
    """Resize/recompression applied to an image before it is buffered.

    Attributes:
        resize: Optional (width, height); the image is cover-fitted and centre-cropped.
        format: Output format, one of "jpeg", "png" or "webp".
        quality: Encoder quality (1-100). None uses the buffer's configured quality.
    """

    resize: Optional[Tuple[int, int]] = None
    format: str = "jpeg"
    quality: Optional[int] = None


@dataclass
class ImageRecord:
    """One captured image held in the in-memory buffer.

    Attributes:
        id: `{device_id}_{timestamp}_{hash[:8]}`.
        device_id: Capturing device.
        timestamp: ISO-8601 UTC capture time.
        mime_type: MIME type of `data` after processing.
        size: Byte length of `data`.
        hash: MD5 hex digest of `data`.
        data: Post-processing image bytes.
        user_id: Optional owner of the device.
        width: Pixel width, when known.
        height: Pixel height, when known.
        sequence: Insertion counter used to order records sharing a timestamp.
    """

    id: str
    device_id: str
    timestamp: str
    mime_type: str
    size: int
    hash: str
    data: bytes = field(repr=False)
    user_id: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None
    sequence: int = 0
    _base64: Optional[str] = field(default=None, repr=False, compare=False)

    @property
    def base64(self) -> str:
        """Base64 text of `data`, encoded on first access."""
        if self._base64 is None:
            self._base64 = base64.b64encode(self.data).decode("utf-8")
        return self._base64

    def metadata(self) -> dict:
        """Return the JSON-friendly metadata view used by the buffer endpoints."""
        return {
            "id": self.id,
            "deviceId": self.device_id,
            "userId": self.user_id,
            "timestamp": self.timestamp,
            "mimeType": self.mime_type,
            "size": self.size,
            "width": self.width,
            "height": self.height,
            "hash": self.hash,
        }
