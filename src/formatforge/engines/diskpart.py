"""
diskpart engine.

The most reliable path: a two-line script selects the volume by letter and
formats it. diskpart never prompts, so no input has to be fed to it.
"""

from __future__ import annotations

import os
import tempfile

from formatforge.core.logging import get_logger
from formatforge.core.models import FileSystemKind, FormatOutcome
from formatforge.core.status import StatusChannel
from formatforge.engines.base import FormatEngine, drive_letter
from formatforge.platform.windows.commands import DISKPART
from formatforge.platform.windows.parsers import diskpart_reported_error

logger = get_logger(__name__)


def build_diskpart_script(
    letter: str,
    filesystem: FileSystemKind,
    label: str,
    quick: bool,
    allocation_unit: int = 0,
) -> str:
    """Script text with CRLF line endings, as diskpart reads it."""
    format_line = f'format fs={filesystem.tool_name} label="{label}"'
    if allocation_unit:
        format_line += f" unit={allocation_unit}"
    if quick:
        format_line += " quick"

    lines = [f"select volume {drive_letter(letter)}", format_line]
    return "".join(f"{line}\r\n" for line in lines)


class DiskPartEngine(FormatEngine):
    """Formats through ``diskpart /s <script>``."""

    name = "diskpart"
    requires_letter = True

    def __init__(
        self,
        runner,
        timeout: float | None = 3600,
        script_encoding: str | None = None,
        temp_dir: str | None = None,
    ) -> None:
        super().__init__(runner, timeout)
        self.script_encoding = script_encoding
        self.temp_dir = temp_dir

    def _encoding(self) -> str:
        if self.script_encoding:
            return self.script_encoding
        from formatforge.platform import oem_encoding

        return oem_encoding()

    def _attempt(
        self,
        target: str,
        filesystem: FileSystemKind,
        label: str,
        quick: bool,
        allocation_unit: int,
        status: StatusChannel,
    ) -> FormatOutcome:
        letter = drive_letter(target)
        script = build_diskpart_script(letter, filesystem, label, quick, allocation_unit)

        fd, script_path = tempfile.mkstemp(
            prefix=f"format_{letter}_",
            suffix=".txt",
            dir=self.temp_dir,
        )
        try:
            with os.fdopen(fd, "w", encoding=self._encoding(), errors="replace", newline="") as f:
                f.write(script)

            status.info("[DiskPart script]")
            for line in script.splitlines():
                status.info(f"  {line}")

            result = self.runner.run(
                [DISKPART, "/s", script_path],
                status=status,
                timeout=self.timeout,
            )
        finally:
            try:
                os.unlink(script_path)
            except FileNotFoundError:
                pass
            except OSError as e:
                logger.warning("Could not delete diskpart script", path=script_path, error=str(e))

        succeeded = result.success and not diskpart_reported_error(result.text)
        reason = None
        if result.success and not succeeded:
            reason = "diskpart reported an error"
        elif not result.success and result.returncode is not None and not result.message:
            reason = f"diskpart exited with code {result.returncode}"
            if result.output_available and result.output:
                reason += f": {result.error_text}"
        return self._outcome(result, target, filesystem, succeeded, reason)
