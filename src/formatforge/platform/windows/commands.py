"""
Command lines for the Windows tools FormatForge drives.
"""

from __future__ import annotations

POWERSHELL = "powershell.exe"
DISKPART = "diskpart.exe"
MOUNTVOL = "mountvol.exe"
FORMAT_COM = "format.com"


def powershell_command(script: str) -> list[str]:
    """Wrap a PowerShell script in a non-interactive invocation."""
    return [
        POWERSHELL,
        "-NoProfile",
        "-NonInteractive",
        "-ExecutionPolicy", "Bypass",
        "-Command", script,
    ]


def ps_quote(value: str) -> str:
    """Quote a value as a PowerShell single-quoted string literal."""
    return "'" + value.replace("'", "''") + "'"


def wql_quote(value: str) -> str:
    """Quote a value for a WQL ``-Filter`` string (backslashes doubled)."""
    return value.replace("\\", "\\\\").replace("'", "\\'")


def mountvol_assign(letter: str, device_id: str) -> list[str]:
    """``mountvol E: \\\\?\\Volume{...}\\``"""
    return [MOUNTVOL, f"{letter.rstrip(':')}:", device_id]


def mountvol_remove(letter: str) -> list[str]:
    """``mountvol E: /D``"""
    return [MOUNTVOL, f"{letter.rstrip(':')}:", "/D"]
