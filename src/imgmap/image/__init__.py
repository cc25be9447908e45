"""
imgmap Image Decoding.

Opens raw, zip-wrapped and xz-compressed disk images as one stream.
"""

from imgmap.image.decoder import Image, ImageDecoder, open_image
from imgmap.image.formats import detect_format
from imgmap.image.writer import write_raw_image

__all__ = [
    "Image",
    "ImageDecoder",
    "open_image",
    "detect_format",
    "write_raw_image",
]
