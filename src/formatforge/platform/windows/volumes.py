"""
Volume enumeration and BitLocker status queries.

Both go through PowerShell CIM cmdlets with a short timeout and never ask
for elevation; they are auxiliary to the format itself.
"""

from __future__ import annotations

import re

import psutil

from formatforge.core.errors import VolumeQueryError
from formatforge.core.logging import get_logger
from formatforge.core.models import EncryptionStatus, VolumeEntry
from formatforge.platform.process import ProcessRunner
from formatforge.platform.windows.commands import powershell_command
from formatforge.platform.windows.parsers import (
    parse_encryption_status,
    parse_volume_records,
)

logger = get_logger(__name__)

_LETTER_ROOT = re.compile(r"^([A-Za-z]):")

VOLUME_QUERY = (
    "Get-CimInstance -ClassName Win32_Volume | "
    "Select-Object DeviceID, DriveLetter, Label, FileSystem, Capacity, FreeSpace, DriveType | "
    "ConvertTo-Json -Compress"
)

ENCRYPTION_QUERY = (
    "$v = Get-CimInstance -Namespace 'root/CIMV2/Security/MicrosoftVolumeEncryption' "
    "-ClassName Win32_EncryptableVolume -Filter \"DriveLetter='{letter}'\" -ErrorAction Stop; "
    "if ($v) {{ $l = Invoke-CimMethod -InputObject $v -MethodName GetLockStatus; "
    "[pscustomobject]@{{ProtectionStatus=$v.ProtectionStatus; LockStatus=$l.LockStatus}} | "
    "ConvertTo-Json -Compress }}"
)


class VolumeEnumerator:
    """Lists volumes known to Windows."""

    def __init__(self, runner: ProcessRunner, timeout: float = 15) -> None:
        self.runner = runner
        self.timeout = timeout

    def query_volumes(
        self,
        include_unlettered: bool = True,
        formattable_only: bool = True,
    ) -> list[VolumeEntry]:
        """Return volumes from Win32_Volume; raises VolumeQueryError on failure."""
        result = self.runner.run(
            powershell_command(VOLUME_QUERY),
            timeout=self.timeout,
            allow_elevation=False,
        )
        if not result.success:
            raise VolumeQueryError(f"Win32_Volume query failed: {result.error_text}")

        return parse_volume_records(
            result.stdout_text,
            include_unlettered=include_unlettered,
            formattable_only=formattable_only,
        )

    def used_letters(self) -> set[str]:
        """Every drive letter currently taken, including network and optical drives."""
        used = {
            volume.drive_letter[0]
            for volume in self.query_volumes(include_unlettered=False, formattable_only=False)
            if volume.drive_letter
        }

        for partition in psutil.disk_partitions(all=True):
            match = _LETTER_ROOT.match(partition.mountpoint or partition.device or "")
            if match:
                used.add(match.group(1).upper())

        logger.debug("Drive letters in use", letters=sorted(used))
        return used


class EncryptionProbe:
    """Reads BitLocker protection and lock state; never changes it."""

    def __init__(self, runner: ProcessRunner, timeout: float = 15) -> None:
        self.runner = runner
        self.timeout = timeout

    def query(self, letter: str) -> EncryptionStatus:
        letter = f"{letter.strip().rstrip(':').upper()}:"
        result = self.runner.run(
            powershell_command(ENCRYPTION_QUERY.format(letter=letter)),
            timeout=self.timeout,
            allow_elevation=False,
        )
        if not result.success:
            return EncryptionStatus(
                letter=letter,
                success=False,
                message=result.error_text or "Failed to query BitLocker status.",
            )

        return parse_encryption_status(result.stdout_text, letter)
