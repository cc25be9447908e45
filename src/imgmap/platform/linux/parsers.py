"""
Linux output parsers.

Parsers for losetup and lsblk output, and the ordering rule for the
block devices an attached image exposes.
"""

from __future__ import annotations

import re
from collections.abc import Iterable

LOOP_DEVICE_RE = re.compile(r"/dev/loop[0-9]+")


def parse_losetup_output(output: str) -> str | None:
    """
    Parse the output of ``losetup --show``.

    Example input:
    /dev/loop10
    """
    path = output.strip()
    if not LOOP_DEVICE_RE.fullmatch(path):
        return None
    return path


def loop_name(loop_device: str) -> str:
    """``/dev/loop7`` -> ``loop7``."""
    return loop_device.rstrip("/").rsplit("/", 1)[-1]


def parse_lsblk_partitions(output: str, loop_device: str) -> list[str]:
    """
    Parse ``lsblk -ln -o NAME,TYPE`` output into partition device paths.

    Example input:
    loop7    loop
    loop7p1  part
    loop7p2  part

    Only rows with exactly two fields, a name carrying the loop device's
    partition prefix and type ``part`` are kept.
    """
    prefix = f"{loop_name(loop_device)}p"
    partitions: list[str] = []

    for line in output.splitlines():
        fields = line.split()
        if len(fields) != 2:
            continue
        name, device_type = fields
        if name.startswith(prefix) and device_type == "part":
            partitions.append(f"/dev/{name}")

    return partitions


def partition_sort_key(path: str, loop_device: str) -> tuple[int, int, str]:
    """
    Sort key for mapped block devices.

    Numbered partitions of ``loop_device`` sort first by index, everything
    else sorts lexicographically after them.
    """
    match = re.fullmatch(re.escape(f"/dev/{loop_name(loop_device)}p") + r"(\d+)", path)
    if match:
        return (0, int(match.group(1)), "")
    return (1, 0, path)


def sort_partition_paths(paths: Iterable[str], loop_device: str) -> list[str]:
    """Order ``paths`` deterministically; equal keys keep their input order."""
    return sorted(paths, key=lambda p: partition_sort_key(p, loop_device))


def loop_device_from_path(path: str) -> str | None:
    """Extract the owning loop device from a partition path.

    ``/dev/loop10p1`` -> ``/dev/loop10``
    """
    match = LOOP_DEVICE_RE.search(path)
    return match.group(0) if match else None
