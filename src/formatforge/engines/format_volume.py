"""
Storage module engine: the ``Format-Volume`` cmdlet.
"""

from __future__ import annotations

import re

from formatforge.core.models import FileSystemKind, FormatOutcome
from formatforge.core.resolver import is_letter_selector
from formatforge.core.status import StatusChannel
from formatforge.engines.base import FormatEngine, drive_letter
from formatforge.platform.process import STDERR_PREFIX
from formatforge.platform.windows.commands import powershell_command, ps_quote

_ERROR_PATTERN = re.compile(r"error|hiba", re.IGNORECASE)


def build_format_volume_script(
    target: str,
    filesystem: FileSystemKind,
    label: str,
    quick: bool,
    allocation_unit: int = 0,
) -> str:
    if is_letter_selector(target):
        parts = [f"Format-Volume -DriveLetter {drive_letter(target)}"]
    else:
        parts = [f"Format-Volume -Path {ps_quote(target)}"]

    parts.append(f"-FileSystem {filesystem.tool_name}")
    parts.append(f"-NewFileSystemLabel {ps_quote(label)}")
    if allocation_unit:
        parts.append(f"-AllocationUnitSize {allocation_unit}")
    if not quick:
        parts.append("-Full")
    parts.append("-Force -Confirm:$false -ErrorAction Stop")
    return " ".join(parts)


class FormatVolumeEngine(FormatEngine):
    """Formats through ``Format-Volume``."""

    name = "format-volume"
    requires_letter = False

    def _attempt(
        self,
        target: str,
        filesystem: FileSystemKind,
        label: str,
        quick: bool,
        allocation_unit: int,
        status: StatusChannel,
    ) -> FormatOutcome:
        script = build_format_volume_script(target, filesystem, label, quick, allocation_unit)
        result = self.runner.run(
            powershell_command(script),
            status=status,
            timeout=self.timeout,
        )

        stderr = [line for line in result.output if line.startswith(STDERR_PREFIX)]
        reported_error = any(_ERROR_PATTERN.search(line) for line in stderr)
        succeeded = result.success and not reported_error

        reason = None
        if result.success and reported_error:
            reason = result.error_text
        return self._outcome(result, target, filesystem, succeeded, reason)
