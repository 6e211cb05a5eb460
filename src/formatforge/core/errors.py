"""
FormatForge exceptions.

Only conditions that are raised somewhere live here. Elevation and engine
results travel as tagged values (see ``RunStatus`` and ``OutcomeKind``).
"""

from __future__ import annotations


class FormatForgeError(Exception):
    """Base class for FormatForge errors."""


class InvalidSelector(FormatForgeError, ValueError):
    """The volume selector is neither a drive letter nor a device identifier."""

    def __init__(self, selector: str, reason: str | None = None) -> None:
        self.selector = selector
        self.reason = reason or "expected a drive letter (E, E:, E:\\) or a volume device id"
        super().__init__(f"Invalid volume selector {selector!r}: {self.reason}")


class EngineNotApplicable(FormatForgeError):
    """The engine cannot produce the requested result and was not started."""

    def __init__(self, engine: str, reason: str) -> None:
        self.engine = engine
        self.reason = reason
        super().__init__(f"{engine}: {reason}")


class ResourceLeakWarning(FormatForgeError):
    """A temporary drive letter could not be removed after formatting."""

    def __init__(self, letter: str, device_id: str, detail: str) -> None:
        self.letter = letter
        self.device_id = device_id
        self.detail = detail
        super().__init__(
            f"Temporary drive letter {letter} is still attached to {device_id}: {detail}"
        )


class VolumeQueryError(FormatForgeError):
    """The system volume table could not be read."""
