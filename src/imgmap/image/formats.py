"""Content-based detection of image container formats."""

from __future__ import annotations

import os

from imgmap.core.models import ImageFormat

HEADER_SIZE = 6

ZIP_SIGNATURES = (
    b"PK\x03\x04",  # local file header
    b"PK\x05\x06",  # end of central directory (empty archive)
    b"PK\x07\x08",  # spanned archive marker
)
XZ_SIGNATURE = b"\xfd7zXZ\x00"


def detect_format_from_header(header: bytes) -> ImageFormat:
    """Classify an image by its first bytes."""
    if header.startswith(XZ_SIGNATURE):
        return ImageFormat.XZ
    if header.startswith(ZIP_SIGNATURES):
        return ImageFormat.ZIP
    return ImageFormat.RAW


def detect_format(path: str | os.PathLike[str]) -> ImageFormat:
    """Classify the image at ``path``. The file name plays no part."""
    with open(path, "rb") as fh:
        return detect_format_from_header(fh.read(HEADER_SIZE))
