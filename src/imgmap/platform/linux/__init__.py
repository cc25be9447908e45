"""
imgmap Linux Platform Support.

Attaches disk images using standard Linux tools:
- losetup for loop devices
- udevadm to let device nodes settle
- lsblk for partition enumeration
- /dev/mapper and sysfs for LVM volume discovery
"""

from imgmap.platform.linux.mapper import LoopbackPartitionMapper, detach_loop_device
from imgmap.platform.linux.parsers import (
    loop_device_from_path,
    parse_losetup_output,
    parse_lsblk_partitions,
    sort_partition_paths,
)

__all__ = [
    "LoopbackPartitionMapper",
    "detach_loop_device",
    "loop_device_from_path",
    "parse_losetup_output",
    "parse_lsblk_partitions",
    "sort_partition_paths",
]
