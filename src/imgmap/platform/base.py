"""
imgmap command execution.

Every external tool the decoder and the mapper rely on is invoked
through ``CommandRunner`` so that tests can substitute canned results.
"""

from __future__ import annotations

import subprocess
import time

from imgmap.core.exceptions import ToolInvocationError
from imgmap.core.logging import get_logger

logger = get_logger(__name__)


class CommandResult:
    """Result of a command execution."""

    def __init__(
        self,
        returncode: int,
        stdout: str,
        stderr: str,
        command: str | list[str],
        duration_seconds: float = 0.0,
    ) -> None:
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        self.command = command
        self.duration_seconds = duration_seconds

    @property
    def success(self) -> bool:
        return self.returncode == 0

    @property
    def command_line(self) -> str:
        return self.command if isinstance(self.command, str) else " ".join(self.command)

    @property
    def output(self) -> str:
        """Combined stdout and stderr, for diagnostics."""
        return "\n".join(part for part in (self.stdout, self.stderr) if part)

    def check(self, reason: str = "") -> CommandResult:
        """Raise ``ToolInvocationError`` unless the command succeeded."""
        if not self.success:
            command = self.command.split() if isinstance(self.command, str) else self.command
            raise ToolInvocationError(command, self.returncode, self.output, reason)
        return self

    def __repr__(self) -> str:
        return f"CommandResult(rc={self.returncode}, cmd='{self.command_line[:50]}...')"


class CommandRunner:
    """Runs system commands and captures their output."""

    def run(
        self,
        command: list[str],
        timeout: int = 300,
        check: bool = True,
    ) -> CommandResult:
        """Run a system command.

        Never raises: a command that cannot be spawned or times out is
        reported as a result with returncode -1. With ``check`` set, a
        non-zero exit status is logged as a warning.
        """
        logger.debug("Running command", command=command)
        start_time = time.time()

        try:
            result = subprocess.run(
                command,
                capture_output=True,
                text=True,
                timeout=timeout,
            )
        except subprocess.TimeoutExpired:
            return CommandResult(
                returncode=-1,
                stdout="",
                stderr=f"Command timed out after {timeout}s",
                command=command,
                duration_seconds=timeout,
            )
        except OSError as e:
            return CommandResult(
                returncode=-1,
                stdout="",
                stderr=str(e),
                command=command,
                duration_seconds=time.time() - start_time,
            )

        cmd_result = CommandResult(
            returncode=result.returncode,
            stdout=result.stdout,
            stderr=result.stderr,
            command=command,
            duration_seconds=time.time() - start_time,
        )

        if check and result.returncode != 0:
            logger.warning(
                "Command failed",
                command=command,
                returncode=result.returncode,
                stderr=result.stderr[:500] if result.stderr else "",
            )

        return cmd_result

    def is_available(self, tool: str) -> bool:
        """Check if ``tool`` is on PATH by asking ``which``."""
        return self.run(["which", tool], check=False).success
