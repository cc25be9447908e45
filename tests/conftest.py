"""
Pytest configuration and fixtures for imgmap tests.
"""

import sys
import tempfile
from pathlib import Path
from typing import Generator
from unittest.mock import Mock

import pytest

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from imgmap.core.reporting import Reporter  # noqa: E402
from imgmap.platform.base import CommandResult, CommandRunner  # noqa: E402


class FakeRunner(CommandRunner):
    """Command runner that replays canned results per tool.

    Each tool has a queue of results; the last one repeats once the
    queue is down to a single entry. Unknown tools succeed silently.
    """

    def __init__(self) -> None:
        self.calls: list[list[str]] = []
        self._responses: dict[str, list[CommandResult]] = {}

    def add(self, tool: str, *results: tuple[int, str] | CommandResult) -> "FakeRunner":
        queue = self._responses.setdefault(tool, [])
        for result in results:
            if isinstance(result, CommandResult):
                queue.append(result)
            else:
                returncode, stdout = result
                queue.append(CommandResult(returncode, stdout, "", [tool]))
        return self

    def run(self, command: list[str], timeout: int = 300, check: bool = True) -> CommandResult:
        self.calls.append(list(command))
        queue = self._responses.get(command[0])
        if not queue:
            return CommandResult(0, "", "", command)
        result = queue.pop(0) if len(queue) > 1 else queue[0]
        return CommandResult(
            result.returncode, result.stdout, result.stderr, command, result.duration_seconds
        )

    def calls_for(self, tool: str) -> list[list[str]]:
        return [call for call in self.calls if call[0] == tool]


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def fake_runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def mock_reporter() -> Mock:
    """Reporter that records every call."""
    return Mock(spec=Reporter)


@pytest.fixture
def sample_config(temp_dir: Path) -> "ImgMapConfig":
    """Create a sample configuration for testing."""
    from imgmap.core.config import ImgMapConfig

    config = ImgMapConfig(temp_directory=temp_dir / "tmp")
    config.logging.log_directory = temp_dir / "logs"
    config.ensure_directories()
    return config


def pytest_configure(config: pytest.Config) -> None:
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests")
    config.addinivalue_line("markers", "root: Tests that attach real loop devices")
