"""Writes decoded image content to a raw file the mapper can attach."""

from __future__ import annotations

import os
from collections.abc import Callable
from pathlib import Path
from typing import BinaryIO

from imgmap.core.logging import get_logger

logger = get_logger(__name__)

DEFAULT_CHUNK_SIZE = 4 * 1024 * 1024

ProgressCallback = Callable[[int, int], None]


def write_raw_image(
    image: BinaryIO,
    destination: str | Path,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    progress: ProgressCallback | None = None,
) -> int:
    """
    Copy ``image`` into ``destination`` and return the number of bytes written.

    ``progress`` is called after every chunk with the bytes written so far
    and the image's size estimate (0 when unknown).
    """
    size_estimate = getattr(image, "size_estimate", 0)
    written = 0

    with open(destination, "wb") as out:
        while True:
            data = image.read(chunk_size)
            if not data:
                break
            out.write(data)
            written += len(data)
            if progress:
                progress(written, size_estimate)
        out.flush()
        os.fsync(out.fileno())

    logger.info("Raw image written", destination=str(destination), bytes_written=written)
    return written
