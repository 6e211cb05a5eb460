"""
Windows output parsers.

Parsers for PowerShell JSON, diskpart and format.com output.
"""

from __future__ import annotations

import json
import re
from typing import Any

from formatforge.core.models import EncryptionStatus, VolumeEntry

# Win32_Volume.DriveType values offered for formatting
DRIVE_TYPE_REMOVABLE = 2
DRIVE_TYPE_FIXED = 3
FORMATTABLE_DRIVE_TYPES = frozenset({DRIVE_TYPE_REMOVABLE, DRIVE_TYPE_FIXED})

_DISKPART_SUCCESS = re.compile(r"DiskPart successfully formatted", re.IGNORECASE)
_DISKPART_ERROR = re.compile(
    r"DiskPart has encountered an error|Virtual Disk Service error|"
    r"There is no volume selected|The volume you selected is not valid",
    re.IGNORECASE,
)
_FORMAT_COMPLETE = re.compile(r"Format complete|A formázás befejeződött", re.IGNORECASE)


def parse_powershell_json(output: str) -> list[dict[str, Any]]:
    """Parse JSON output from PowerShell commands."""
    output = output.strip()
    if not output:
        return []

    try:
        data = json.loads(output)
        if isinstance(data, list):
            return [item for item in data if isinstance(item, dict)]
        if isinstance(data, dict):
            return [data]
        return []
    except json.JSONDecodeError:
        return []


def _to_int(value: Any, default: int = 0) -> int:
    try:
        return int(value) if value is not None else default
    except (TypeError, ValueError):
        return default


def parse_volume_record(record: dict[str, Any]) -> VolumeEntry:
    """Build a VolumeEntry from one Win32_Volume record."""
    letter = str(record.get("DriveLetter") or "").strip()
    return VolumeEntry(
        device_id=str(record.get("DeviceID") or "").strip(),
        drive_letter=f"{letter[0].upper()}:" if letter else None,
        label=str(record.get("Label") or ""),
        filesystem=str(record.get("FileSystem") or ""),
        capacity_bytes=_to_int(record.get("Capacity")),
        free_bytes=_to_int(record.get("FreeSpace")),
        drive_type=_to_int(record.get("DriveType"), default=-1),
    )


def parse_volume_records(
    output: str,
    include_unlettered: bool = True,
    formattable_only: bool = True,
) -> list[VolumeEntry]:
    """
    Parse ``Get-CimInstance Win32_Volume | ConvertTo-Json`` output.

    Network, optical and RAM drives are dropped when ``formattable_only``.
    Volumes sort by drive letter, then by device id.
    """
    volumes = []
    for record in parse_powershell_json(output):
        volume = parse_volume_record(record)
        if not volume.device_id and not volume.drive_letter:
            continue
        if formattable_only and volume.drive_type not in FORMATTABLE_DRIVE_TYPES:
            continue
        if not include_unlettered and not volume.has_letter:
            continue
        volumes.append(volume)

    return sorted(volumes, key=lambda v: v.drive_letter or v.device_id)


def parse_encryption_status(output: str, letter: str) -> EncryptionStatus:
    """Parse the JSON written by the BitLocker status query."""
    records = parse_powershell_json(output)
    if not records:
        return EncryptionStatus(
            letter=letter,
            protection_status=0,
            lock_status=0,
            message="Volume is not BitLocker-capable or not encrypted",
        )

    record = records[0]
    return EncryptionStatus(
        letter=letter,
        protection_status=_to_int(record.get("ProtectionStatus"), default=2),
        lock_status=_to_int(record.get("LockStatus"), default=2),
        details=record,
    )


def diskpart_reported_success(output: str) -> bool:
    return bool(_DISKPART_SUCCESS.search(output))


def diskpart_reported_error(output: str) -> bool:
    return bool(_DISKPART_ERROR.search(output))


def format_com_completed(output: str) -> bool:
    return bool(_FORMAT_COMPLETE.search(output))
