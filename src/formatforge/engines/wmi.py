"""
WMI engine: ``Win32_Volume.Format`` through PowerShell CIM cmdlets.

Works on volumes without a drive letter, since the instance can be found by
its device id.
"""

from __future__ import annotations

from formatforge.core.models import FileSystemKind, FormatOutcome
from formatforge.core.resolver import is_letter_selector
from formatforge.core.status import StatusChannel
from formatforge.engines.base import FormatEngine, drive_letter
from formatforge.platform.process import ERROR_ELEVATION_REQUIRED
from formatforge.platform.windows.commands import powershell_command, ps_quote, wql_quote

VOLUME_NOT_FOUND = 404
WMI_ACCESS_DENIED = 3

# Win32_Volume.Format return values
WMI_RETURN_CODES = {
    0: "Success",
    1: "Unsupported file system",
    2: "Incompatible media in drive",
    3: "Access denied",
    4: "Call canceled",
    5: "Call cancellation request too late",
    6: "Volume write protected",
    7: "Volume lock failed",
    8: "Unable to quick format",
    9: "Input/Output (I/O) error",
    10: "Invalid volume label",
    11: "No media in drive",
    12: "Volume is too small",
    13: "Volume is too large",
    14: "Volume is not mounted",
    15: "Cluster size is too small",
    16: "Cluster size is too large",
    17: "Cluster size is beyond 32 bits",
    18: "Unknown error",
    VOLUME_NOT_FOUND: "Win32_Volume instance not found",
    ERROR_ELEVATION_REQUIRED: "Access denied (administrator rights required)",
}


def describe_return_code(code: int | None) -> str:
    if code is None:
        return "no return code"
    return WMI_RETURN_CODES.get(code, f"return code {code}")


def build_wmi_script(
    target: str,
    filesystem: FileSystemKind,
    label: str,
    quick: bool,
    allocation_unit: int = 0,
) -> str:
    """PowerShell script that formats ``target`` and exits with the WMI return value."""
    if is_letter_selector(target):
        wql = f"DriveLetter='{drive_letter(target)}:'"
    else:
        wql = f"DeviceID='{wql_quote(target)}'"

    arguments = [
        f"FileSystem={ps_quote(filesystem.tool_name)}",
        f"QuickFormat=${'true' if quick else 'false'}",
        f"Label={ps_quote(label)}",
        "EnableCompression=$false",
    ]
    if allocation_unit:
        arguments.append(f"ClusterSize=[uint32]{allocation_unit}")

    # WMI reports access denied as return value 3; exiting with 740 lets the
    # runner retry elevated.
    return (
        "$ErrorActionPreference = 'Stop'; "
        f'$v = Get-CimInstance -ClassName Win32_Volume -Filter "{wql}"; '
        f"if (-not $v) {{ [Console]::Error.WriteLine('Win32_Volume not found'); exit {VOLUME_NOT_FOUND} }}; "
        "$r = Invoke-CimMethod -InputObject $v -MethodName Format "
        f"-Arguments @{{{'; '.join(arguments)}}}; "
        "Write-Output \"[WMI] ReturnValue=$($r.ReturnValue)\"; "
        f"if ($r.ReturnValue -eq {WMI_ACCESS_DENIED}) {{ exit {ERROR_ELEVATION_REQUIRED} }}; "
        "exit [int]$r.ReturnValue"
    )


class WmiEngine(FormatEngine):
    """Formats through ``Invoke-CimMethod Win32_Volume Format``."""

    name = "wmi"
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
        script = build_wmi_script(target, filesystem, label, quick, allocation_unit)
        result = self.runner.run(
            powershell_command(script),
            status=status,
            timeout=self.timeout,
        )

        reason = None
        if not result.success and not result.message:
            reason = f"Win32_Volume.Format: {describe_return_code(result.returncode)}"
        return self._outcome(result, target, filesystem, result.success, reason)
