"""
FormatForge Platform Layer.

Process execution plus the Windows volume and drive-letter services the
format engines depend on.
"""

from __future__ import annotations

import os
import sys
from functools import lru_cache
from pathlib import Path

from formatforge.platform.process import ProcessRunner, RunResult, RunStatus


def is_windows() -> bool:
    """Check if running on Windows."""
    return sys.platform == "win32"


@lru_cache(maxsize=1)
def oem_encoding() -> str:
    """Code page the console tools (diskpart, format.com) write in."""
    if is_windows():
        import ctypes

        code_page = ctypes.windll.kernel32.GetOEMCP()
        if code_page:
            return f"cp{code_page}"
        return "cp850"
    return "utf-8"


def system_drive_letter() -> str | None:
    """Drive letter of the running Windows installation, e.g. ``C:``."""
    drive = os.environ.get("SystemDrive", "")
    if len(drive) >= 2 and drive[1] == ":":
        return drive[:2].upper()
    return None


def refs_driver_available(system_root: str | None = None) -> bool:
    """Whether ``ReFS.sys`` is installed, i.e. ReFS volumes can be created."""
    root = system_root or os.environ.get("SystemRoot", r"C:\Windows")
    return (Path(root) / "System32" / "drivers" / "ReFS.sys").exists()


__all__ = [
    "ProcessRunner",
    "RunResult",
    "RunStatus",
    "is_windows",
    "oem_encoding",
    "system_drive_letter",
    "refs_driver_available",
]
