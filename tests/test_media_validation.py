"""
Tests for inbound image payload validation
"""

import pytest

from services.errors import ValidationError
from utils.media_validation import decode_image_base64, normalize_mime_type


@pytest.mark.parametrize(
    "mime, expected",
    [
        (None, "image/jpeg"),
        ("", "image/jpeg"),
        ("image/jpg", "image/jpeg"),
        ("IMAGE/PNG; charset=binary", "image/png"),
        ("application/octet-stream", "image/jpeg"),
        ("binary/octet-stream", "image/jpeg"),
    ],
)
def test_normalize_mime_type(mime, expected):
    assert normalize_mime_type(mime) == expected


def test_non_image_types_are_rejected():
    with pytest.raises(ValidationError):
        normalize_mime_type("text/plain")


def test_data_url_prefix_is_stripped():
    data, mime = decode_image_base64("data:image/png;base64,aGVs\nbG8=")
    assert data == b"hello"
    assert mime == "image/png"


def test_invalid_base64_is_rejected():
    with pytest.raises(ValidationError):
        decode_image_base64("***")
