"""
Privileged process execution.

Commands first run unelevated with their output streamed line by line to the
status channel. When Windows reports that the command needs administrator
rights, the runner retries it exactly once through the UAC ``runas`` verb.
An elevated process cannot have its output captured, so that mode trades
observability for capability and says so on the channel.

Results are tagged (``RunStatus``) rather than signalled through exceptions.
"""

from __future__ import annotations

import subprocess
import sys
import threading
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field, replace
from enum import Enum, auto
from typing import Protocol

from formatforge.core.logging import get_logger
from formatforge.core.status import StatusChannel, StatusKind

logger = get_logger(__name__)

ERROR_ACCESS_DENIED = 5
ERROR_ELEVATION_REQUIRED = 740
ERROR_CANCELLED = 1223  # UAC prompt dismissed

ELEVATION_REQUIRED_CODES = frozenset({ERROR_ACCESS_DENIED, ERROR_ELEVATION_REQUIRED})
ELEVATION_REQUIRED_EXIT_CODES = frozenset({ERROR_ELEVATION_REQUIRED})

STDERR_PREFIX = "[STDERR] "

LineCallback = Callable[[str, StatusKind], None]


class RunStatus(Enum):
    """Tagged outcome of running an external command."""

    OK = auto()
    ELEVATION_REQUIRED = auto()
    ELEVATION_DECLINED = auto()
    FAILED = auto()


@dataclass
class RunResult:
    """Result of a command execution."""

    status: RunStatus
    command: list[str]
    returncode: int | None = None
    output: list[str] = field(default_factory=list)
    elevated: bool = False
    timed_out: bool = False
    message: str = ""
    duration_seconds: float = 0.0

    @property
    def success(self) -> bool:
        return self.status is RunStatus.OK

    @property
    def output_available(self) -> bool:
        return not self.elevated

    @property
    def text(self) -> str:
        return "\n".join(self.output)

    @property
    def stdout_text(self) -> str:
        return "\n".join(line for line in self.output if not line.startswith(STDERR_PREFIX))

    @property
    def error_text(self) -> str:
        """Best human-readable reason for a failure."""
        if self.message:
            return self.message
        errors = [line[len(STDERR_PREFIX):] for line in self.output if line.startswith(STDERR_PREFIX)]
        if errors:
            return "\n".join(errors).strip()
        if self.output:
            return self.text.strip()
        return f"exit code {self.returncode}"

    def __repr__(self) -> str:
        cmd = format_command_line(self.command)
        return f"RunResult({self.status.name}, rc={self.returncode}, cmd='{cmd[:50]}...')"


def format_command_line(command: Sequence[str]) -> str:
    """Render a command the way Windows will parse it."""
    return subprocess.list2cmdline(list(command))


def native_error_code(exc: OSError) -> int | None:
    """The Win32 error code of a launch failure, or errno elsewhere."""
    code = getattr(exc, "winerror", None)
    return code if code is not None else exc.errno


def classify_exit_code(returncode: int, elevated: bool) -> RunStatus:
    if returncode == 0:
        return RunStatus.OK
    if elevated and returncode == ERROR_CANCELLED:
        return RunStatus.ELEVATION_DECLINED
    if not elevated and returncode in ELEVATION_REQUIRED_EXIT_CODES:
        return RunStatus.ELEVATION_REQUIRED
    return RunStatus.FAILED


def classify_launch_error(exc: OSError, elevated: bool) -> RunStatus:
    code = native_error_code(exc)
    if code == ERROR_CANCELLED:
        return RunStatus.ELEVATION_DECLINED
    if not elevated and code in ELEVATION_REQUIRED_CODES:
        return RunStatus.ELEVATION_REQUIRED
    return RunStatus.FAILED


def _hidden_window_kwargs() -> dict[str, object]:
    if sys.platform != "win32":
        return {}
    # Hide the console window of the child tool
    startupinfo = subprocess.STARTUPINFO()
    startupinfo.dwFlags |= subprocess.STARTF_USESHOWWINDOW
    startupinfo.wShowWindow = subprocess.SW_HIDE
    return {"startupinfo": startupinfo, "creationflags": subprocess.CREATE_NO_WINDOW}


class Launcher(Protocol):
    def run(
        self,
        command: list[str],
        on_line: LineCallback,
        timeout: float | None,
        input_text: str | None = None,
    ) -> RunResult: ...


class Elevator(Protocol):
    def run(self, command: list[str], timeout: float | None) -> RunResult: ...


class StreamingLauncher:
    """Runs a command unelevated and streams its output."""

    def __init__(self, encoding: str | None = None) -> None:
        self.encoding = encoding

    def _encoding(self) -> str:
        if self.encoding:
            return self.encoding
        from formatforge.platform import oem_encoding

        return oem_encoding()

    def run(
        self,
        command: list[str],
        on_line: LineCallback,
        timeout: float | None,
        input_text: str | None = None,
    ) -> RunResult:
        encoding = self._encoding()
        start_time = time.monotonic()

        try:
            process = subprocess.Popen(
                command,
                stdin=subprocess.PIPE if input_text is not None else subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                **_hidden_window_kwargs(),
            )
        except OSError as e:
            return RunResult(
                status=classify_launch_error(e, elevated=False),
                command=list(command),
                message=str(e),
                duration_seconds=time.monotonic() - start_time,
            )

        output: list[str] = []
        lock = threading.Lock()

        def pump(stream: object, kind: StatusKind) -> None:
            prefix = STDERR_PREFIX if kind is StatusKind.ERROR_OUTPUT else ""
            for raw in iter(stream.readline, b""):  # type: ignore[attr-defined]
                line = prefix + raw.decode(encoding, errors="replace").rstrip("\r\n")
                with lock:
                    output.append(line)
                on_line(line, kind)
            stream.close()  # type: ignore[attr-defined]

        readers = [
            threading.Thread(target=pump, args=(process.stdout, StatusKind.OUTPUT), daemon=True),
            threading.Thread(target=pump, args=(process.stderr, StatusKind.ERROR_OUTPUT), daemon=True),
        ]
        for reader in readers:
            reader.start()

        if input_text is not None and process.stdin is not None:
            try:
                process.stdin.write(input_text.encode(encoding, errors="replace"))
                process.stdin.close()
            except BrokenPipeError:
                logger.debug("Process closed stdin before input was written", command=command)

        try:
            returncode = process.wait(timeout=timeout)
        except subprocess.TimeoutExpired:
            process.kill()
            process.wait()
            for reader in readers:
                reader.join()
            return RunResult(
                status=RunStatus.FAILED,
                command=list(command),
                returncode=process.returncode,
                output=output,
                timed_out=True,
                message=f"Command timed out after {timeout}s",
                duration_seconds=time.monotonic() - start_time,
            )

        for reader in readers:
            reader.join()

        return RunResult(
            status=classify_exit_code(returncode, elevated=False),
            command=list(command),
            returncode=returncode,
            output=output,
            duration_seconds=time.monotonic() - start_time,
        )


class ElevatedLauncher:
    """Runs a command through ``ShellExecuteExW`` with the ``runas`` verb."""

    def run(self, command: list[str], timeout: float | None) -> RunResult:
        start_time = time.monotonic()

        if sys.platform != "win32":
            return RunResult(
                status=RunStatus.FAILED,
                command=list(command),
                elevated=True,
                message="Elevation is only available on Windows",
            )

        try:
            returncode = _shell_execute_runas(command, timeout)
        except TimeoutError as e:
            return RunResult(
                status=RunStatus.FAILED,
                command=list(command),
                elevated=True,
                timed_out=True,
                message=str(e),
                duration_seconds=time.monotonic() - start_time,
            )
        except OSError as e:
            return RunResult(
                status=classify_launch_error(e, elevated=True),
                command=list(command),
                elevated=True,
                message=str(e),
                duration_seconds=time.monotonic() - start_time,
            )

        return RunResult(
            status=classify_exit_code(returncode, elevated=True),
            command=list(command),
            returncode=returncode,
            elevated=True,
            duration_seconds=time.monotonic() - start_time,
        )


def _shell_execute_runas(command: list[str], timeout: float | None) -> int:
    """Start ``command`` elevated and wait for its exit code."""
    import ctypes
    from ctypes import wintypes

    class SHELLEXECUTEINFOW(ctypes.Structure):
        _fields_ = [
            ("cbSize", wintypes.DWORD),
            ("fMask", ctypes.c_ulong),
            ("hwnd", wintypes.HWND),
            ("lpVerb", wintypes.LPCWSTR),
            ("lpFile", wintypes.LPCWSTR),
            ("lpParameters", wintypes.LPCWSTR),
            ("lpDirectory", wintypes.LPCWSTR),
            ("nShow", ctypes.c_int),
            ("hInstApp", wintypes.HINSTANCE),
            ("lpIDList", ctypes.c_void_p),
            ("lpClass", wintypes.LPCWSTR),
            ("hkeyClass", wintypes.HKEY),
            ("dwHotKey", wintypes.DWORD),
            ("hIconOrMonitor", wintypes.HANDLE),
            ("hProcess", wintypes.HANDLE),
        ]

    SEE_MASK_NOCLOSEPROCESS = 0x00000040
    SEE_MASK_FLAG_NO_UI = 0x00000400
    SW_HIDE = 0
    INFINITE = 0xFFFFFFFF
    WAIT_TIMEOUT = 0x00000102
    WAIT_FAILED = 0xFFFFFFFF

    shell32 = ctypes.WinDLL("shell32", use_last_error=True)
    kernel32 = ctypes.WinDLL("kernel32", use_last_error=True)

    shell32.ShellExecuteExW.argtypes = [ctypes.POINTER(SHELLEXECUTEINFOW)]
    shell32.ShellExecuteExW.restype = wintypes.BOOL
    kernel32.WaitForSingleObject.argtypes = [wintypes.HANDLE, wintypes.DWORD]
    kernel32.WaitForSingleObject.restype = wintypes.DWORD
    kernel32.GetExitCodeProcess.argtypes = [wintypes.HANDLE, ctypes.POINTER(wintypes.DWORD)]
    kernel32.GetExitCodeProcess.restype = wintypes.BOOL
    kernel32.CloseHandle.argtypes = [wintypes.HANDLE]
    kernel32.CloseHandle.restype = wintypes.BOOL

    info = SHELLEXECUTEINFOW()
    info.cbSize = ctypes.sizeof(info)
    info.fMask = SEE_MASK_NOCLOSEPROCESS | SEE_MASK_FLAG_NO_UI
    info.lpVerb = "runas"
    info.lpFile = command[0]
    info.lpParameters = format_command_line(command[1:])
    info.nShow = SW_HIDE

    if not shell32.ShellExecuteExW(ctypes.byref(info)):
        raise ctypes.WinError(ctypes.get_last_error())
    if not info.hProcess:
        raise OSError("Elevated process started without a process handle")

    try:
        wait_ms = INFINITE if timeout is None else int(timeout * 1000)
        waited = kernel32.WaitForSingleObject(info.hProcess, wait_ms)
        if waited == WAIT_TIMEOUT:
            raise TimeoutError(
                f"Elevated command did not finish within {timeout}s; it may still be running"
            )
        if waited == WAIT_FAILED:
            raise ctypes.WinError(ctypes.get_last_error())

        exit_code = wintypes.DWORD()
        if not kernel32.GetExitCodeProcess(info.hProcess, ctypes.byref(exit_code)):
            raise ctypes.WinError(ctypes.get_last_error())
        return exit_code.value
    finally:
        kernel32.CloseHandle(info.hProcess)


class ProcessRunner:
    """Runs external tools with the unelevated-then-elevated fallback."""

    def __init__(
        self,
        launcher: Launcher | None = None,
        elevator: Elevator | None = None,
        timeout: float | None = 3600,
        elevated_timeout: float | None = 3600,
    ) -> None:
        self.launcher = launcher or StreamingLauncher()
        self.elevator = elevator or ElevatedLauncher()
        self.timeout = timeout
        self.elevated_timeout = elevated_timeout

    def run(
        self,
        command: Sequence[str],
        *,
        status: StatusChannel | None = None,
        timeout: float | None = None,
        input_text: str | None = None,
        allow_elevation: bool = True,
    ) -> RunResult:
        """
        Run ``command`` and return a tagged result.

        The command line is written to ``status`` before anything starts.
        At most one elevated retry happens, and only when the unelevated
        attempt reported that elevation is required.
        """
        channel = status or StatusChannel()
        argv = list(command)
        effective_timeout = timeout if timeout is not None else self.timeout

        channel.command(f"> {format_command_line(argv)}")
        logger.info("Running command", command=argv, timeout=effective_timeout)

        def on_line(line: str, kind: StatusKind) -> None:
            channel.emit(line, kind)

        result = self.launcher.run(argv, on_line, effective_timeout, input_text)

        if result.status is RunStatus.ELEVATION_REQUIRED and allow_elevation:
            channel.warning(
                "Administrator rights required: retrying elevated (UAC). "
                "Output will not be available."
            )
            if input_text is not None:
                channel.warning("Interactive input cannot be passed to the elevated process.")
            elevated_timeout = timeout if timeout is not None else self.elevated_timeout
            result = self.elevator.run(argv, elevated_timeout)
            if result.status is RunStatus.ELEVATION_REQUIRED:
                result = replace(
                    result,
                    status=RunStatus.FAILED,
                    message=result.message or "Elevated attempt still reported elevation required",
                )

        if result.status is RunStatus.ELEVATION_DECLINED:
            channel.warning("The operator declined the elevation prompt.")
        elif result.timed_out:
            channel.warning(result.message)

        log = logger.info if result.success else logger.warning
        log(
            "Command finished",
            command=argv,
            status=result.status.name,
            returncode=result.returncode,
            elevated=result.elevated,
            duration_seconds=round(result.duration_seconds, 3),
        )
        return result
