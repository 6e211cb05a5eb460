"""
Legacy engine: ``format.com``.

format.com asks for a volume label when ``/V`` is not given; a blank line on
stdin answers it. It cannot create ReFS volumes.
"""

from __future__ import annotations

from formatforge.core.models import FileSystemKind, FormatOutcome
from formatforge.core.status import StatusChannel
from formatforge.engines.base import FormatEngine, drive_letter
from formatforge.platform.windows.commands import FORMAT_COM
from formatforge.platform.windows.parsers import format_com_completed

PROMPT_ANSWER = "\r\n"


def build_format_com_command(
    target: str,
    filesystem: FileSystemKind,
    label: str,
    quick: bool,
    allocation_unit: int = 0,
) -> list[str]:
    command = [FORMAT_COM, f"{drive_letter(target)}:", f"/FS:{filesystem.tool_name}"]
    if quick:
        command.append("/Q")
    command.extend(["/X", "/Y"])
    if label:
        command.append(f"/V:{label}")
    if allocation_unit:
        command.append(f"/A:{allocation_unit}")
    return command


class FormatComEngine(FormatEngine):
    """Formats through ``format.com``."""

    name = "format.com"
    requires_letter = True
    supported_filesystems = frozenset(
        {FileSystemKind.NTFS, FileSystemKind.EXFAT, FileSystemKind.FAT32}
    )

    def _attempt(
        self,
        target: str,
        filesystem: FileSystemKind,
        label: str,
        quick: bool,
        allocation_unit: int,
        status: StatusChannel,
    ) -> FormatOutcome:
        command = build_format_com_command(target, filesystem, label, quick, allocation_unit)
        result = self.runner.run(
            command,
            status=status,
            timeout=self.timeout,
            input_text=PROMPT_ANSWER,
        )

        succeeded = result.success or (
            result.output_available
            and not result.timed_out
            and format_com_completed(result.text)
        )
        return self._outcome(result, target, filesystem, succeeded)
