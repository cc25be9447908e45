"""
imgmap - Disk image preparation for image-build pipelines.

Decodes raw, zip and xz disk images and attaches them as loop devices,
returning the partitions and LVM volumes they expose.
"""

__version__ = "1.0.0"

from imgmap.core.config import ImgMapConfig
from imgmap.image.decoder import Image, ImageDecoder, open_image
from imgmap.platform.linux.mapper import LoopbackPartitionMapper

__all__ = [
    "ImgMapConfig",
    "Image",
    "ImageDecoder",
    "LoopbackPartitionMapper",
    "open_image",
    "__version__",
]
