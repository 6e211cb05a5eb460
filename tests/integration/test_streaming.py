"""
Integration tests for StreamingLauncher with real child processes.

The current Python interpreter stands in for the Windows tools.
"""

import sys

import pytest

from formatforge.core.status import StatusChannel, StatusKind
from formatforge.platform.process import ProcessRunner, RunStatus, StreamingLauncher

pytestmark = pytest.mark.integration


def python(code: str) -> list[str]:
    return [sys.executable, "-c", code]


@pytest.fixture
def streaming_runner() -> ProcessRunner:
    return ProcessRunner(launcher=StreamingLauncher(encoding="utf-8"), timeout=30)


class TestStreamingLauncher:
    """Tests for output streaming and exit code handling."""

    def test_lines_streamed_in_order(self, streaming_runner: ProcessRunner) -> None:
        channel = StatusChannel()

        result = streaming_runner.run(
            python("import sys\nfor i in range(3): print(f'line {i}', flush=True)"),
            status=channel,
        )

        assert result.success
        assert result.output == ["line 0", "line 1", "line 2"]
        assert channel.messages[0].kind is StatusKind.COMMAND
        assert [m.text for m in channel.messages if m.kind is StatusKind.OUTPUT] == result.output

    def test_stderr_tagged(self, streaming_runner: ProcessRunner) -> None:
        channel = StatusChannel()

        result = streaming_runner.run(
            python("import sys; sys.stderr.write('Access is denied.\\n'); sys.exit(1)"),
            status=channel,
        )

        assert result.status is RunStatus.FAILED
        assert result.returncode == 1
        assert result.error_text == "Access is denied."
        assert any(m.kind is StatusKind.ERROR_OUTPUT for m in channel.messages)

    def test_exit_740_requests_elevation(self) -> None:
        launcher = StreamingLauncher(encoding="utf-8")
        result = launcher.run(python("import sys; sys.exit(740)"), lambda line, kind: None, timeout=30)
        assert result.status is RunStatus.ELEVATION_REQUIRED

    def test_input_fed_to_stdin(self, streaming_runner: ProcessRunner) -> None:
        result = streaming_runner.run(
            python("import sys; print('label: ' + repr(sys.stdin.readline()))"),
            input_text="\r\n",
        )
        assert result.success
        assert result.output[0].startswith("label: ")

    def test_non_utf8_output_replaced(self, streaming_runner: ProcessRunner) -> None:
        result = streaming_runner.run(
            python("import sys; sys.stdout.buffer.write(b'caf\\xe9\\n')"),
        )
        assert result.success
        assert result.output[0].startswith("caf")

    def test_missing_program(self, streaming_runner: ProcessRunner) -> None:
        result = streaming_runner.run(["definitely-not-a-real-tool-xyz"], allow_elevation=False)
        assert result.status is RunStatus.FAILED
        assert result.returncode is None
        assert result.message

    @pytest.mark.slow
    def test_timeout_kills_process(self, streaming_runner: ProcessRunner) -> None:
        channel = StatusChannel()

        result = streaming_runner.run(
            python("import time; print('started', flush=True); time.sleep(30)"),
            status=channel,
            timeout=1,
            allow_elevation=False,
        )

        assert result.timed_out
        assert result.status is RunStatus.FAILED
        assert result.output == ["started"]
        assert "Command timed out after 1s" in channel.lines
