"""Validation helpers for inbound image payloads."""

import base64
import binascii
from typing import Tuple

from services.errors import ValidationError

ALLOWED_IMAGE_TYPES = {
    "image/jpeg",
    "image/jpg",
    "image/png",
    "image/webp",
    "image/bmp",
    "image/gif",
}


# Sent by many device HTTP clients for any binary part; Pillow sniffs the real format.
GENERIC_BINARY_TYPES = {"application/octet-stream", "binary/octet-stream"}


def normalize_mime_type(mime_type: str | None) -> str:
    """Return a lowercase MIME type without parameters, defaulting to JPEG.

    Generic binary types also map to JPEG.
    """
    mime = (mime_type or "").lower().split(";", 1)[0].strip()
    if not mime or mime in GENERIC_BINARY_TYPES:
        return "image/jpeg"
    if mime not in ALLOWED_IMAGE_TYPES:
        raise ValidationError(f"Unsupported image content type: {mime_type}")
    return "image/jpeg" if mime == "image/jpg" else mime


def decode_image_base64(payload: str) -> Tuple[bytes, str | None]:
    """Decode base64 image text, accepting an optional `data:` URL prefix.

    Returns:
        A tuple of `(image_bytes, mime_type_from_data_url_or_None)`.

    Raises:
        ValidationError: If the payload is empty or not valid base64.
    """
    text = (payload or "").strip()
    mime_type = None
    if text.startswith("data:"):
        header, _, text = text.partition(",")
        mime_type = header[len("data:"):].split(";", 1)[0] or None

    # Some clients wrap long base64 lines.
    text = "".join(text.split())
    if not text:
        raise ValidationError("No image data provided")
    try:
        data = base64.b64decode(text, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValidationError("Image data is not valid base64") from exc
    if not data:
        raise ValidationError("No image data provided")
    return data, mime_type
