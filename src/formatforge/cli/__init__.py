"""
FormatForge CLI Module.

Provides the command-line interface for FormatForge operations.
"""

from formatforge.cli.main import cli, main

__all__ = ["main", "cli"]
