"""
FormatForge - Windows volume formatting with elevation fallback.

Formats a volume (by drive letter or volume device id) through diskpart,
WMI, Format-Volume or format.com, attaching a temporary drive letter when
the chosen tool needs one.
"""

__version__ = "1.0.0"
__author__ = "FormatForge Team"

from formatforge.core.config import FormatForgeConfig
from formatforge.core.session import Session

__all__ = ["FormatForgeConfig", "Session", "__version__"]
