"""Exceptions raised while decoding and mapping disk images.

Exception Hierarchy:
    ImgMapError (base)
        ├── ToolInvocationError
        ├── FormatError
        ├── LayoutDetectionError
        ├── ResourceError
        ├── MapperStateError
        └── ReporterUnavailableError

Opening an image that does not exist is not wrapped: the decoder lets
``FileNotFoundError`` and friends propagate unchanged.
"""

from __future__ import annotations

from collections.abc import Sequence


class ImgMapError(Exception):
    """Base exception for all imgmap operations."""


class ToolInvocationError(ImgMapError):
    """An external command failed or printed output we could not use."""

    def __init__(
        self,
        command: Sequence[str],
        returncode: int,
        output: str = "",
        reason: str = "",
    ):
        self.command = list(command)
        self.returncode = returncode
        self.output = output
        self.reason = reason
        msg = f"Command '{' '.join(self.command)}' failed (rc={returncode})"
        if reason:
            msg += f": {reason}"
        if output.strip():
            msg += f"\n{output.strip()}"
        super().__init__(msg)


class FormatError(ImgMapError):
    """The image container is not in a shape we can decode."""


class LayoutDetectionError(ImgMapError):
    """A loop device was created but no partitions or volumes appeared."""

    def __init__(self, loop_device: str, attempts: int):
        self.loop_device = loop_device
        self.attempts = attempts
        super().__init__(
            f"No partitions or LVM volumes found on {loop_device} after "
            f"{attempts} attempts. GPT or LVM layout may not be detected."
        )


class ResourceError(ImgMapError):
    """A file or directory needed by the mapper could not be used."""

    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"{path}: {reason}")


class MapperStateError(ImgMapError):
    """The mapper was asked to do something its current state forbids."""


class ReporterUnavailableError(ImgMapError):
    """The reporter cannot answer interactive questions."""
