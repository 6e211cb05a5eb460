"""
Tests for formatforge.platform.process module.
"""

import errno

import pytest

from conftest import Reply

from formatforge.core.status import StatusChannel, StatusKind
from formatforge.platform.process import (
    ERROR_CANCELLED,
    ERROR_ELEVATION_REQUIRED,
    ElevatedLauncher,
    ProcessRunner,
    RunResult,
    RunStatus,
    classify_exit_code,
    classify_launch_error,
    format_command_line,
)


def _os_error(code: int) -> OSError:
    error = OSError(code, "simulated")
    error.winerror = code  # type: ignore[attr-defined]
    return error


class TestClassification:
    """Tests for exit code and launch error classification."""

    def test_zero_is_ok(self) -> None:
        assert classify_exit_code(0, elevated=False) is RunStatus.OK

    def test_740_requires_elevation(self) -> None:
        assert classify_exit_code(ERROR_ELEVATION_REQUIRED, elevated=False) is RunStatus.ELEVATION_REQUIRED

    def test_740_after_elevation_is_failure(self) -> None:
        assert classify_exit_code(ERROR_ELEVATION_REQUIRED, elevated=True) is RunStatus.FAILED

    def test_1223_elevated_is_declined(self) -> None:
        assert classify_exit_code(ERROR_CANCELLED, elevated=True) is RunStatus.ELEVATION_DECLINED

    def test_other_codes_fail(self) -> None:
        assert classify_exit_code(1, elevated=False) is RunStatus.FAILED
        assert classify_exit_code(5, elevated=False) is RunStatus.FAILED

    @pytest.mark.parametrize("code", [5, 740])
    def test_launch_errors_require_elevation(self, code: int) -> None:
        assert classify_launch_error(_os_error(code), elevated=False) is RunStatus.ELEVATION_REQUIRED

    def test_launch_cancelled_is_declined(self) -> None:
        assert classify_launch_error(_os_error(ERROR_CANCELLED), elevated=True) is RunStatus.ELEVATION_DECLINED

    def test_missing_program_fails(self) -> None:
        error = FileNotFoundError(errno.ENOENT, "not found")
        assert classify_launch_error(error, elevated=False) is RunStatus.FAILED


class TestRunResult:
    """Tests for RunResult."""

    def test_error_text_prefers_message(self) -> None:
        result = RunResult(status=RunStatus.FAILED, command=["x"], message="timed out")
        assert result.error_text == "timed out"

    def test_error_text_uses_stderr(self) -> None:
        result = RunResult(
            status=RunStatus.FAILED,
            command=["x"],
            returncode=1,
            output=["some output", "[STDERR] Access is denied."],
        )
        assert result.error_text == "Access is denied."
        assert result.stdout_text == "some output"

    def test_elevated_output_unavailable(self) -> None:
        result = RunResult(status=RunStatus.OK, command=["x"], returncode=0, elevated=True)
        assert result.output_available is False

    def test_format_command_line_quotes(self) -> None:
        assert format_command_line(["format.com", "E:", "/V:My Disk"]) == 'format.com E: "/V:My Disk"'


class TestProcessRunner:
    """Tests for the unelevated-then-elevated fallback."""

    def test_command_line_emitted_before_run(self, runner: ProcessRunner, launcher, channel: StatusChannel) -> None:
        launcher.reply("diskpart.exe", Reply(lines=["ok"]))
        runner.run(["diskpart.exe", "/s", "none.txt"], status=channel)

        assert channel.messages[0].kind is StatusKind.COMMAND
        assert channel.messages[0].text == "> diskpart.exe /s none.txt"
        assert channel.messages[1].text == "ok"

    def test_success_without_elevation(self, runner: ProcessRunner, launcher, elevator) -> None:
        result = runner.run(["mountvol.exe", "E:", "/D"])
        assert result.success
        assert len(launcher.calls) == 1
        assert elevator.calls == []

    def test_elevation_required_retries_once(
        self, runner: ProcessRunner, launcher, elevator, channel: StatusChannel
    ) -> None:
        launcher.reply("mountvol.exe", Reply(status=RunStatus.ELEVATION_REQUIRED, returncode=740))
        elevator.reply("mountvol.exe", Reply(status=RunStatus.OK, returncode=0))

        result = runner.run(["mountvol.exe", "E:", "/D"], status=channel)

        assert result.success
        assert result.elevated is True
        assert result.output_available is False
        assert len(launcher.calls) == 1
        assert len(elevator.calls) == 1
        assert any("Output will not be available" in line for line in channel.lines)

    def test_no_second_elevated_retry(self, runner: ProcessRunner, launcher, elevator) -> None:
        launcher.reply("x", Reply(status=RunStatus.ELEVATION_REQUIRED, returncode=740))
        elevator.reply("x", Reply(status=RunStatus.ELEVATION_REQUIRED, returncode=740))

        result = runner.run(["x.exe"])

        assert result.status is RunStatus.FAILED
        assert len(elevator.calls) == 1

    def test_declined_is_reported_not_retried(
        self, runner: ProcessRunner, launcher, elevator, channel: StatusChannel
    ) -> None:
        launcher.reply("x", Reply(status=RunStatus.ELEVATION_REQUIRED, returncode=740))
        elevator.reply("x", Reply(status=RunStatus.ELEVATION_DECLINED, returncode=ERROR_CANCELLED))

        result = runner.run(["x.exe"], status=channel)

        assert result.status is RunStatus.ELEVATION_DECLINED
        assert len(launcher.calls) == 1
        assert len(elevator.calls) == 1
        assert any("declined" in line for line in channel.lines)

    def test_command_logged(self, runner: ProcessRunner, launcher, captured_logs: list[dict]) -> None:
        launcher.reply("x", Reply(status=RunStatus.FAILED, returncode=3))
        runner.run(["x.exe", "/Y"])

        finished = [e for e in captured_logs if e["event"] == "Command finished"]
        assert finished[0]["command"] == ["x.exe", "/Y"]
        assert finished[0]["status"] == "FAILED"
        assert finished[0]["log_level"] == "warning"

    def test_elevation_not_allowed(self, runner: ProcessRunner, launcher, elevator) -> None:
        launcher.reply("x", Reply(status=RunStatus.ELEVATION_REQUIRED, returncode=740))
        result = runner.run(["x.exe"], allow_elevation=False)
        assert result.status is RunStatus.ELEVATION_REQUIRED
        assert elevator.calls == []

    def test_failure_is_not_elevated(self, runner: ProcessRunner, launcher, elevator) -> None:
        launcher.reply("x", Reply(status=RunStatus.FAILED, returncode=1))
        result = runner.run(["x.exe"])
        assert result.status is RunStatus.FAILED
        assert elevator.calls == []

    def test_timeouts_passed_through(self, runner: ProcessRunner, launcher, elevator) -> None:
        launcher.reply("x", Reply(status=RunStatus.ELEVATION_REQUIRED, returncode=740))
        runner.run(["x.exe"])
        assert launcher.calls[0]["timeout"] == 120
        assert elevator.calls[0]["timeout"] == 300

    def test_explicit_timeout_bounds_elevated_wait(self, runner: ProcessRunner, launcher, elevator) -> None:
        launcher.reply("x", Reply(status=RunStatus.ELEVATION_REQUIRED, returncode=740))
        runner.run(["x.exe"], timeout=42)
        assert elevator.calls[0]["timeout"] == 42

    def test_input_warning_when_elevating(self, runner: ProcessRunner, launcher, channel: StatusChannel) -> None:
        launcher.reply("format.com", Reply(status=RunStatus.ELEVATION_REQUIRED, returncode=740))
        runner.run(["format.com", "E:"], status=channel, input_text="\r\n")
        assert launcher.calls[0]["input_text"] == "\r\n"
        assert any("Interactive input" in line for line in channel.lines)

    def test_timeout_reported(self, runner: ProcessRunner, launcher, channel: StatusChannel) -> None:
        launcher.reply(
            "x",
            Reply(status=RunStatus.FAILED, returncode=None, timed_out=True, message="Command timed out after 120s"),
        )
        result = runner.run(["x.exe"], status=channel)
        assert result.timed_out
        assert "Command timed out after 120s" in channel.lines


class TestElevatedLauncher:
    """Tests for ElevatedLauncher off Windows."""

    def test_unavailable_off_windows(self, mocker) -> None:
        mocker.patch("formatforge.platform.process.sys.platform", "linux")
        result = ElevatedLauncher().run(["diskpart.exe"], timeout=1)
        assert result.status is RunStatus.FAILED
        assert result.elevated is True
        assert "only available on Windows" in result.message
