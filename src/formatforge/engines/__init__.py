"""
FormatForge format engines.

Each engine wraps one Windows mechanism:
- diskpart: script-driven, needs a drive letter
- wmi: Win32_Volume.Format via PowerShell CIM
- format-volume: the Storage module cmdlet
- format.com: the legacy command-line formatter
"""

from formatforge.engines.base import FormatEngine
from formatforge.engines.diskpart import DiskPartEngine, build_diskpart_script
from formatforge.engines.format_com import FormatComEngine, build_format_com_command
from formatforge.engines.format_volume import FormatVolumeEngine, build_format_volume_script
from formatforge.engines.selector import ENGINE_CLASSES, EngineSelector
from formatforge.engines.wmi import WmiEngine, build_wmi_script

__all__ = [
    "ENGINE_CLASSES",
    "DiskPartEngine",
    "EngineSelector",
    "FormatComEngine",
    "FormatEngine",
    "FormatVolumeEngine",
    "WmiEngine",
    "build_diskpart_script",
    "build_format_com_command",
    "build_format_volume_script",
    "build_wmi_script",
]
