"""PNG preview thumbnails for buffered frames.

Used by the buffer inspection endpoint so a UI can show what a device last
captured without downloading the full frame.
"""
from __future__ import annotations

import io
from typing import Tuple

from PIL import Image, UnidentifiedImageError

from services.errors import ImageProcessingError


class ThumbnailGenerator:
    """Shrink image bytes into a PNG that fits inside `max_size`.

    Args:
        max_size: Bounding box for the thumbnail; aspect ratio is preserved.
        background: RGB color that transparent pixels are flattened onto. White by default.
    """

    def __init__(self, max_size: Tuple[int, int] = (160, 160), background: Tuple[int, int, int] | None = None):
        self.max_size = max_size
        self.background = background or (255, 255, 255)

    def create_thumbnail(self, data: bytes) -> bytes:
        """Return PNG thumbnail bytes for `data`.

        Raises:
            ImageProcessingError: If `data` is not a decodable image.
        """
        try:
            with Image.open(io.BytesIO(data)) as src:
                rgba = src.convert("RGBA")
        except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as exc:
            raise ImageProcessingError("Buffered bytes are not a decodable image") from exc

        rgba.thumbnail(self.max_size, Image.LANCZOS)
        flat = Image.new("RGB", rgba.size, self.background)
        flat.paste(rgba, mask=rgba.getchannel("A"))

        out = io.BytesIO()
        flat.save(out, format="PNG", optimize=True)
        return out.getvalue()
