"""
Loopback partition mapper.

Attaches a raw disk image as a partition-scanning loop device, waits for
the kernel to expose its partitions, picks up LVM logical volumes stacked
on top of them and detaches the loop device again when done.
"""

from __future__ import annotations

import os
import re
import stat
import time
from pathlib import Path
from typing import Any

from imgmap.core.config import MapperConfig
from imgmap.core.exceptions import (
    LayoutDetectionError,
    MapperStateError,
    ResourceError,
    ToolInvocationError,
)
from imgmap.core.logging import OperationLogger, get_logger
from imgmap.core.models import MapperState, MappingResult
from imgmap.core.reporting import Reporter, ensure_reporter
from imgmap.platform.base import CommandRunner
from imgmap.platform.linux.parsers import (
    loop_device_from_path,
    loop_name,
    parse_losetup_output,
    parse_lsblk_partitions,
    sort_partition_paths,
)

logger = get_logger(__name__)


class LoopbackPartitionMapper:
    """Maps a raw disk image to block-device paths through a loop device."""

    # Tool paths (can be overridden for testing)
    LOSETUP = "losetup"
    UDEVADM = "udevadm"
    LSBLK = "lsblk"

    def __init__(
        self,
        reporter: Reporter | None = None,
        runner: CommandRunner | None = None,
        config: MapperConfig | None = None,
    ) -> None:
        self.reporter = ensure_reporter(reporter)
        self.runner = runner or CommandRunner()
        self.config = config or MapperConfig()
        self._state = MapperState.UNATTACHED
        self._result: MappingResult | None = None

    @property
    def state(self) -> MapperState:
        return self._state

    @property
    def result(self) -> MappingResult | None:
        return self._result

    def __enter__(self) -> LoopbackPartitionMapper:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.detach()

    # ==================== Attach ====================

    def attach(self, image_path: str | Path) -> MappingResult:
        """
        Attach ``image_path`` and return its partitions and volumes.

        Raises ToolInvocationError, LayoutDetectionError or ResourceError.
        Whenever attach raises after the loop device was created, the loop
        device has already been detached again.
        """
        if self._state is MapperState.ATTACHED:
            raise MapperStateError(
                f"Already attached to {self._result.loop_device if self._result else '?'}; "
                "detach first"
            )

        image = str(image_path)
        if not os.path.exists(image):
            raise ResourceError(image, "image does not exist")

        self._state = MapperState.ATTACHING
        self.reporter.message(f"mapping {image}")

        with OperationLogger("attach", logger, image=image) as op:
            try:
                loop_device = self._create_loop_device(image)
            except ToolInvocationError:
                self._state = MapperState.FAILED
                self._release(None)
                raise

            op.update(loop_device=loop_device)

            try:
                paths = self._discover(loop_device)
            except BaseException:
                self._state = MapperState.FAILED
                self._release(loop_device)
                raise

            op.update(paths=paths)

        self._result = MappingResult(loop_device=loop_device, paths=paths)
        self._state = MapperState.ATTACHED
        self.reporter.message(f"Mapped partitions and volumes: {paths}")
        return self._result

    def _create_loop_device(self, image: str) -> str:
        #   -P (--partscan) creates a partitioned loop device
        #   -f (--find) finds first unused loop device
        #   --show outputs used loop device path
        command = [self.LOSETUP, "--show", "-f", "-P", image]
        self.reporter.say(" ".join(command))

        result = self.runner.run(command, timeout=self.config.command_timeout_seconds)
        if not result.success:
            self.reporter.error(f"error {' '.join(command)}: {result.output}")
            raise ToolInvocationError(command, result.returncode, result.output)

        loop_device = parse_losetup_output(result.stdout)
        if loop_device is None:
            self.reporter.error(f"unexpected output from losetup: {result.output!r}")
            raise ToolInvocationError(
                command, result.returncode, result.output, "no loop device in output"
            )

        logger.info("Loop device created", image=image, loop_device=loop_device)
        return loop_device

    def _discover(self, loop_device: str) -> list[str]:
        if self.config.settle_udev:
            # Advisory only
            self.runner.run(
                [self.UDEVADM, "settle"],
                timeout=self.config.command_timeout_seconds,
                check=False,
            )

        partitions, lsblk_error = self._scan_partitions(loop_device)
        volumes = self._find_mapper_volumes(loop_device)
        found = partitions + volumes

        if not found:
            if lsblk_error is not None:
                raise lsblk_error
            self.reporter.error(
                "No partitions or LVM volumes found. GPT or LVM layout may not be detected."
            )
            raise LayoutDetectionError(loop_device, self.config.partition_scan_attempts)

        return sort_partition_paths(found, loop_device)

    def _scan_partitions(
        self, loop_device: str
    ) -> tuple[list[str], ToolInvocationError | None]:
        """Poll lsblk until the kernel has exposed at least one partition."""
        attempts = self.config.partition_scan_attempts
        command = [self.LSBLK, "-ln", "-o", "NAME,TYPE", loop_device]

        for attempt in range(1, attempts + 1):
            result = self.runner.run(
                command, timeout=self.config.command_timeout_seconds, check=False
            )
            if not result.success:
                self.reporter.error(f"lsblk failed: {result.output}")
                return [], ToolInvocationError(
                    command, result.returncode, result.output, "could not list partitions"
                )

            partitions = [
                path
                for path in parse_lsblk_partitions(result.stdout, loop_device)
                if self._is_block_device(path)
            ]
            if partitions:
                logger.debug(
                    "Partitions detected",
                    loop_device=loop_device,
                    attempt=attempt,
                    partitions=partitions,
                )
                return partitions, None

            if attempt < attempts:
                time.sleep(self.config.partition_scan_interval_seconds)

        logger.warning("No partitions detected", loop_device=loop_device, attempts=attempts)
        return [], None

    def _find_mapper_volumes(self, loop_device: str) -> list[str]:
        """Device-mapper nodes that belong to ``loop_device``."""
        directory = self.config.mapper_directory
        try:
            names = sorted(os.listdir(directory))
        except FileNotFoundError:
            return []
        except OSError as e:
            raise ResourceError(str(directory), e.strerror or str(e)) from e

        loop = loop_name(loop_device)
        name_re = re.compile(re.escape(loop) + r"(?!\d)")
        volumes: list[str] = []

        for name in names:
            if name == "control":
                continue
            node = directory / name
            associated = (
                name_re.match(name) is not None
                or any(hint in name for hint in self.config.volume_group_hints)
                or self._node_depends_on(node, loop)
            )
            if associated and self._is_block_device(str(node)):
                volumes.append(str(node))

        if volumes:
            logger.debug("Device-mapper volumes found", loop_device=loop_device, volumes=volumes)
        return volumes

    def _node_depends_on(self, node: Path, loop: str) -> bool:
        """Check whether a /dev/mapper node sits on top of ``loop``."""
        dm_name = os.path.basename(os.path.realpath(node))
        if not dm_name.startswith("dm-"):
            return False
        return self._dm_slaves_include(dm_name, loop, set())

    def _dm_slaves_include(self, dm_name: str, loop: str, seen: set[str]) -> bool:
        seen.add(dm_name)
        slaves_dir = self.config.sysfs_block_directory / dm_name / "slaves"
        try:
            slaves = os.listdir(slaves_dir)
        except OSError:
            return False

        for slave in slaves:
            if slave == loop or re.fullmatch(re.escape(loop) + r"p\d+", slave):
                return True
            # Stacked mappings, e.g. an LV on top of a dm-crypt volume
            if slave.startswith("dm-") and slave not in seen:
                if self._dm_slaves_include(slave, loop, seen):
                    return True
        return False

    def _is_block_device(self, path: str) -> bool:
        try:
            return stat.S_ISBLK(os.stat(path).st_mode)
        except OSError:
            return False

    # ==================== Detach ====================

    def detach(self) -> None:
        """
        Detach the loop device behind the recorded result.

        Safe to call any number of times; only the first call after a
        successful attach removes anything. Failures are reported, not raised.
        """
        result = self._result
        self._result = None

        if result is None or not result.paths:
            return

        loop_device = loop_device_from_path(result.paths[0]) or result.loop_device
        self._release(loop_device)

    def _release(self, loop_device: str | None) -> None:
        if loop_device is None:
            self._state = MapperState.UNATTACHED
            return

        self._state = MapperState.DETACHING
        command = [self.LOSETUP, "-d", loop_device]
        self.reporter.say(" ".join(command))

        result = self.runner.run(command, timeout=self.config.command_timeout_seconds)
        if result.success:
            logger.info("Loop device detached", loop_device=loop_device)
        else:
            self.reporter.error(f"error detaching {loop_device}: {result.output}")
        self._state = MapperState.UNATTACHED


def detach_loop_device(
    path: str,
    reporter: Reporter | None = None,
    runner: CommandRunner | None = None,
) -> bool:
    """Detach the loop device owning ``path`` (a loop device or one of its partitions)."""
    reporter = ensure_reporter(reporter)
    loop_device = loop_device_from_path(path)
    if loop_device is None:
        reporter.error(f"{path} does not belong to a loop device")
        return False

    runner = runner or CommandRunner()
    command = [LoopbackPartitionMapper.LOSETUP, "-d", loop_device]
    reporter.say(" ".join(command))
    result = runner.run(command)
    if not result.success:
        reporter.error(f"error detaching {loop_device}: {result.output}")
    return result.success
