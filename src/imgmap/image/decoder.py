"""
Image decoder.

Opens a disk image that may be stored raw, wrapped in a single-entry zip
archive or compressed with xz, and exposes the decoded bytes as one
readable stream with a size estimate.
"""

from __future__ import annotations

import io
import lzma
import os
import subprocess
import zipfile
from contextlib import ExitStack
from typing import IO, Any

from imgmap.core.config import DecoderConfig
from imgmap.core.exceptions import FormatError, ToolInvocationError
from imgmap.core.logging import get_logger
from imgmap.core.models import ImageFormat
from imgmap.core.reporting import Reporter, ensure_reporter
from imgmap.image.formats import HEADER_SIZE, detect_format_from_header
from imgmap.platform.base import CommandRunner

logger = get_logger(__name__)


class Image(io.RawIOBase):
    """
    Decoded image content.

    ``size_estimate`` is the decoded size in bytes, or 0 when it cannot be
    known up front. Closing the image closes everything that was opened to
    produce it, innermost first.
    """

    def __init__(
        self,
        stream: IO[bytes],
        resources: ExitStack,
        size_estimate: int,
        image_format: ImageFormat,
        name: str = "",
    ) -> None:
        super().__init__()
        self._stream = stream
        self._resources = resources
        self.size_estimate = size_estimate
        self.format = image_format
        self.name = name

    def readable(self) -> bool:
        return True

    def readinto(self, b: Any) -> int:
        return self._stream.readinto(b)

    def close(self) -> None:
        if self.closed:
            return
        try:
            self._resources.close()
        finally:
            super().close()

    def __repr__(self) -> str:
        return (
            f"Image(name={self.name!r}, format={self.format.value}, "
            f"size_estimate={self.size_estimate})"
        )


class _DecompressorOutput(io.RawIOBase):
    """Reads a decompressor's stdout and checks its exit status at EOF."""

    def __init__(self, proc: subprocess.Popen[bytes], command: list[str]) -> None:
        super().__init__()
        self._proc = proc
        self._command = command

    def readable(self) -> bool:
        return True

    def readinto(self, b: Any) -> int:
        n = self._proc.stdout.readinto(b)  # type: ignore[union-attr]
        if n == 0:
            returncode = self._proc.wait()
            if returncode != 0:
                stderr = self._proc.stderr.read().decode(errors="replace")  # type: ignore[union-attr]
                raise ToolInvocationError(
                    self._command, returncode, stderr, "decompression failed"
                )
        return n


def _reap_process(proc: subprocess.Popen[bytes], timeout: float) -> None:
    """Wait for ``proc`` to exit, killing it if it takes longer than ``timeout``."""
    try:
        proc.wait(timeout=timeout)
    except subprocess.TimeoutExpired:
        logger.warning("Decompressor still running, killing it", pid=proc.pid)
        proc.kill()
        proc.wait()
    logger.debug("Decompressor reaped", pid=proc.pid, returncode=proc.returncode)


class ImageDecoder:
    """Opens raw, zip and xz images as a uniform byte stream."""

    def __init__(
        self,
        reporter: Reporter | None = None,
        runner: CommandRunner | None = None,
        config: DecoderConfig | None = None,
    ) -> None:
        self.reporter = ensure_reporter(reporter)
        self.runner = runner or CommandRunner()
        self.config = config or DecoderConfig()

    def open(self, path: str | os.PathLike[str]) -> Image:
        """
        Open the image at ``path``.

        I/O errors from opening the file propagate unchanged. Zip archives
        that are malformed or do not hold exactly one file raise FormatError.
        """
        with ExitStack() as stack:
            fh = stack.enter_context(open(path, "rb"))
            image_format = detect_format_from_header(fh.read(HEADER_SIZE))
            fh.seek(0)

            stream: IO[bytes]
            if image_format is ImageFormat.ZIP:
                self.reporter.say("Image is a zip file.")
                stream, size_estimate = self._open_zip(fh, stack)
            elif image_format is ImageFormat.XZ:
                self.reporter.say("Image is a xz file.")
                stream, size_estimate = self._open_xz(fh, stack)
            else:
                stream, size_estimate = fh, os.fstat(fh.fileno()).st_size

            image = Image(stream, stack.pop_all(), size_estimate, image_format, name=str(path))

        logger.info(
            "Image opened",
            path=str(path),
            format=image_format.value,
            size_estimate=size_estimate,
        )
        return image

    def _open_zip(self, fh: IO[bytes], stack: ExitStack) -> tuple[IO[bytes], int]:
        try:
            archive = stack.enter_context(zipfile.ZipFile(fh))
        except zipfile.BadZipFile as e:
            raise FormatError(f"Malformed zip archive: {e}") from e

        entries = archive.infolist()
        if len(entries) != 1:
            raise FormatError(
                f"Zip archive holds {len(entries)} entries; exactly one file supported"
            )

        entry = entries[0]
        if entry.flag_bits & 0x1:
            raise FormatError(f"{entry.filename} is encrypted; encrypted zip entries not supported")

        self.reporter.say(f"Unzipping {entry.filename}")
        try:
            stream = stack.enter_context(archive.open(entry))
        except (zipfile.BadZipFile, NotImplementedError, RuntimeError) as e:
            raise FormatError(f"Cannot read {entry.filename} from zip archive: {e}") from e
        return stream, entry.file_size

    def _open_xz(self, fh: IO[bytes], stack: ExitStack) -> tuple[IO[bytes], int]:
        command = self.config.xz_command
        if self.config.prefer_external_xz and self.runner.is_available(command):
            try:
                return self._spawn_decompressor(fh, stack), 0
            except OSError as e:
                logger.warning("Cannot start external decompressor", command=command, error=str(e))

        logger.debug("Using in-process xz decoder")
        return stack.enter_context(lzma.LZMAFile(fh)), 0

    def _spawn_decompressor(self, fh: IO[bytes], stack: ExitStack) -> IO[bytes]:
        command = [self.config.xz_command]
        # The child reads the descriptor directly; the header read left the
        # kernel offset past the buffered block
        os.lseek(fh.fileno(), 0, os.SEEK_SET)
        proc = subprocess.Popen(
            command,
            stdin=fh,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
        )
        logger.debug("Decompressor started", command=command, pid=proc.pid)

        # Unwinds in reverse: pipes are closed before the child is reaped
        stack.callback(_reap_process, proc, self.config.reap_timeout_seconds)
        stack.callback(proc.stderr.close)  # type: ignore[union-attr]
        stack.callback(proc.stdout.close)  # type: ignore[union-attr]
        return _DecompressorOutput(proc, command)  # type: ignore[return-value]


def open_image(
    path: str | os.PathLike[str],
    reporter: Reporter | None = None,
    config: DecoderConfig | None = None,
) -> Image:
    """Open an image with a default decoder."""
    return ImageDecoder(reporter=reporter, config=config).open(path)
