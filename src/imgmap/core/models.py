"""
imgmap data models.

Defines the image formats, the mapper state machine and the mapping result.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any


class ImageFormat(Enum):
    """Container format of an image file, detected from its content."""

    ZIP = "zip"
    XZ = "xz"
    RAW = "raw"


class MapperState(Enum):
    """Lifecycle of a loopback attachment."""

    UNATTACHED = auto()
    ATTACHING = auto()
    ATTACHED = auto()
    FAILED = auto()
    DETACHING = auto()


@dataclass
class MappingResult:
    """Block devices exposed by an attached image, in deterministic order."""

    loop_device: str
    paths: list[str] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.paths)

    def __iter__(self) -> Iterator[str]:
        return iter(self.paths)

    def __getitem__(self, index: int) -> str:
        return self.paths[index]

    @property
    def partitions(self) -> list[str]:
        """Numbered partitions of the loop device."""
        prefix = f"{self.loop_device}p"
        return [p for p in self.paths if p.startswith(prefix)]

    @property
    def volumes(self) -> list[str]:
        """Device-mapper nodes (LVM logical volumes)."""
        prefix = f"{self.loop_device}p"
        return [p for p in self.paths if not p.startswith(prefix)]

    def to_dict(self) -> dict[str, Any]:
        return {
            "loop_device": self.loop_device,
            "paths": list(self.paths),
            "partitions": self.partitions,
            "volumes": self.volumes,
        }
