"""
Pytest configuration and fixtures for FormatForge tests.

No test starts a real Windows tool: the process runner is built over fake
launchers that record every command and answer with scripted replies.
"""

import json
import sys
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Generator

import pytest
import structlog.testing

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from formatforge.core.status import StatusChannel, StatusKind  # noqa: E402
from formatforge.platform.process import (  # noqa: E402
    STDERR_PREFIX,
    ProcessRunner,
    RunResult,
    RunStatus,
)


@dataclass
class Reply:
    """Scripted answer of a fake launcher."""

    status: RunStatus = RunStatus.OK
    returncode: int | None = 0
    lines: list[str] = field(default_factory=list)
    timed_out: bool = False
    message: str = ""


class _RecordingLauncher:
    """Shared routing: replies are chosen by a substring of the command line."""

    elevated = False

    def __init__(self) -> None:
        self.calls: list[dict] = []
        self.scripts: list[bytes] = []
        self._routes: list[tuple[str, list[Reply]]] = []

    def reply(self, match: str, *replies: Reply) -> "_RecordingLauncher":
        """Answer commands containing ``match``; the last reply repeats."""
        self._routes.append((match, list(replies)))
        return self

    def commands(self, match: str | None = None) -> list[list[str]]:
        return [
            c["command"]
            for c in self.calls
            if match is None or match in " ".join(c["command"])
        ]

    def _next_reply(self, command: list[str]) -> Reply:
        line = " ".join(command)
        for match, replies in self._routes:
            if match in line and replies:
                return replies.pop(0) if len(replies) > 1 else replies[0]
        return Reply()

    def _capture_script(self, command: list[str]) -> None:
        if "/s" in command:
            path = Path(command[command.index("/s") + 1])
            if path.exists():
                self.scripts.append(path.read_bytes())

    def _result(self, command: list[str], reply: Reply, output: list[str]) -> RunResult:
        return RunResult(
            status=reply.status,
            command=list(command),
            returncode=reply.returncode,
            output=output,
            elevated=self.elevated,
            timed_out=reply.timed_out,
            message=reply.message,
        )


class FakeLauncher(_RecordingLauncher):
    """Stands in for the unelevated streaming launcher."""

    def run(self, command, on_line, timeout, input_text=None) -> RunResult:
        self.calls.append(
            {"command": list(command), "timeout": timeout, "input_text": input_text}
        )
        self._capture_script(command)
        reply = self._next_reply(command)
        for line in reply.lines:
            kind = StatusKind.ERROR_OUTPUT if line.startswith(STDERR_PREFIX) else StatusKind.OUTPUT
            on_line(line, kind)
        return self._result(command, reply, list(reply.lines))


class FakeElevator(_RecordingLauncher):
    """Stands in for the UAC launcher; produces no output."""

    elevated = True

    def run(self, command, timeout) -> RunResult:
        self.calls.append({"command": list(command), "timeout": timeout})
        self._capture_script(command)
        return self._result(command, self._next_reply(command), [])


def volume_json(*records: dict) -> str:
    """Win32_Volume query output as PowerShell's ConvertTo-Json writes it."""
    return json.dumps(list(records))


def volume_record(
    letter: str | None,
    guid: str = "11111111-2222-3333-4444-555555555555",
    drive_type: int = 2,
    label: str = "",
    filesystem: str = "NTFS",
) -> dict:
    return {
        "DeviceID": f"\\\\?\\Volume{{{guid}}}\\",
        "DriveLetter": letter,
        "Label": label,
        "FileSystem": filesystem,
        "Capacity": 32 * 1024**3,
        "FreeSpace": 16 * 1024**3,
        "DriveType": drive_type,
    }


UNLETTERED_ID = "\\\\?\\Volume{aaaaaaaa-bbbb-cccc-dddd-eeeeeeeeeeee}\\"


@pytest.fixture(autouse=True)
def captured_logs() -> Generator[list[dict], None, None]:
    """Collect structlog events instead of printing them."""
    with structlog.testing.capture_logs() as logs:
        yield logs


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def launcher() -> FakeLauncher:
    return FakeLauncher()


@pytest.fixture
def elevator() -> FakeElevator:
    return FakeElevator()


@pytest.fixture
def runner(launcher: FakeLauncher, elevator: FakeElevator) -> ProcessRunner:
    """Process runner over the fake launchers."""
    return ProcessRunner(launcher=launcher, elevator=elevator, timeout=120, elevated_timeout=300)


@pytest.fixture
def channel() -> StatusChannel:
    return StatusChannel()


@pytest.fixture
def no_local_partitions(mocker) -> None:
    """Keep psutil from reporting the test machine's own drives."""
    mocker.patch(
        "formatforge.platform.windows.volumes.psutil.disk_partitions",
        return_value=[],
    )


@pytest.fixture
def sample_config(temp_dir: Path) -> "FormatForgeConfig":
    """Create a sample configuration for testing."""
    from formatforge.core.config import FormatForgeConfig

    config = FormatForgeConfig(session_directory=temp_dir / "sessions")
    config.logging.log_directory = temp_dir / "logs"
    config.logging.console_enabled = False
    config.logging.file_enabled = False
    config.ensure_directories()
    return config


def pytest_configure(config: pytest.Config) -> None:
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests")
    config.addinivalue_line("markers", "slow: Slow running tests")
