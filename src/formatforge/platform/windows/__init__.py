"""
FormatForge Windows services.

Wraps the Windows tools used around a format:
- PowerShell CIM (Win32_Volume, Win32_EncryptableVolume) for queries
- mountvol for temporary drive letters
"""

from formatforge.platform.windows.letters import LetterLeaseManager
from formatforge.platform.windows.parsers import (
    parse_powershell_json,
    parse_volume_records,
)
from formatforge.platform.windows.volumes import EncryptionProbe, VolumeEnumerator

__all__ = [
    "EncryptionProbe",
    "LetterLeaseManager",
    "VolumeEnumerator",
    "parse_powershell_json",
    "parse_volume_records",
]
