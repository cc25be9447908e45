"""
imgmap Platform Layer.

Command execution and the Linux loopback mapper.
"""

from __future__ import annotations

import os
import platform
from typing import TYPE_CHECKING, Any

from imgmap.platform.base import CommandResult, CommandRunner

if TYPE_CHECKING:
    from imgmap.platform.linux.mapper import LoopbackPartitionMapper


def get_platform_name() -> str:
    """Get the current platform name."""
    return platform.system().lower()


def is_linux() -> bool:
    """Check if running on Linux."""
    return platform.system().lower() == "linux"


def is_admin() -> bool:
    """Check if running with root privileges."""
    if hasattr(os, "geteuid"):
        return os.geteuid() == 0
    return False


def get_mapper(**kwargs: Any) -> LoopbackPartitionMapper:
    """Get the loopback mapper for the current OS."""
    system = get_platform_name()

    if system == "linux":
        from imgmap.platform.linux import LoopbackPartitionMapper

        return LoopbackPartitionMapper(**kwargs)
    raise RuntimeError(f"Unsupported platform: {system}")


__all__ = [
    "CommandResult",
    "CommandRunner",
    "get_mapper",
    "get_platform_name",
    "is_linux",
    "is_admin",
]
