"""
FormatForge data models.

Defines the value types that flow through a format operation: the volume
selector, the request, the temporary letter lease and the final outcome.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field, replace
from enum import Enum, auto
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from formatforge.core.errors import ResourceLeakWarning

MAX_LABEL_LENGTH = 32
MIN_ALLOCATION_UNIT = 512
MAX_ALLOCATION_UNIT = 2 * 1024 * 1024

_LABEL_REPLACE = re.compile(r"[\\/:*?<>|]")


class FileSystemKind(Enum):
    """File systems the Windows format tools can produce."""

    NTFS = "NTFS"
    EXFAT = "exFAT"
    FAT32 = "FAT32"
    REFS = "ReFS"

    @classmethod
    def from_string(cls, value: str) -> FileSystemKind:
        """Create FileSystemKind from string value."""
        value_lower = value.lower().strip()
        for fs in cls:
            if fs.value.lower() == value_lower or fs.name.lower() == value_lower:
                return fs
        aliases = {
            "fat": cls.FAT32,
            "vfat": cls.FAT32,
        }
        if value_lower in aliases:
            return aliases[value_lower]
        raise ValueError(f"Unsupported file system: {value!r}")

    @property
    def tool_name(self) -> str:
        """Spelling understood by diskpart, format.com and Format-Volume."""
        return self.value


class OutcomeKind(Enum):
    """Classification of a finished format operation."""

    SUCCESS = auto()
    CANCELLED = auto()
    INVALID_SELECTOR = auto()
    PREFLIGHT_FAILED = auto()
    LEASE_FAILED = auto()
    ELEVATION_DECLINED = auto()
    ENGINE_NOT_APPLICABLE = auto()
    ENGINE_FAILURE = auto()
    BUSY = auto()


class OrchestratorState(Enum):
    """States of a single format orchestration."""

    IDLE = auto()
    RESOLVING = auto()
    LEASING_LETTER = auto()
    AWAITING_CONFIRMATION = auto()
    FORMATTING = auto()
    RELEASING_LEASE = auto()
    DONE = auto()


def sanitize_label(raw: str | None, fallback: str | None = None) -> str:
    """
    Make a volume label safe for the format tools.

    Empty input falls back to ``fallback`` (usually the current label).
    Quotes are stripped, path separators and wildcards become ``_`` and the
    result is capped at 32 characters. Applying it twice changes nothing.
    """
    return _clean_label(raw) or _clean_label(fallback)


def _clean_label(text: str | None) -> str:
    label = _LABEL_REPLACE.sub("_", (text or "").replace('"', "")).strip()
    # Truncation can expose inner whitespace at the end
    return label[:MAX_LABEL_LENGTH].rstrip()


@dataclass(frozen=True)
class VolumeSelector:
    """A resolved volume: either a drive letter or a device identifier."""

    letter: str | None = None
    device_id: str | None = None

    def __post_init__(self) -> None:
        if (self.letter is None) == (self.device_id is None):
            raise ValueError("VolumeSelector needs exactly one of letter or device_id")

    @property
    def has_letter(self) -> bool:
        return self.letter is not None

    @property
    def target(self) -> str:
        """The form passed to engines: ``E:`` or ``\\\\?\\Volume{...}\\``."""
        return self.letter if self.letter is not None else self.device_id  # type: ignore[return-value]

    def __str__(self) -> str:
        return self.target


@dataclass(frozen=True)
class FormatRequest:
    """A confirmed request to format one volume. Read-only once built."""

    target: str
    filesystem: FileSystemKind
    label: str = ""
    quick: bool = True
    allocation_unit: int = 0
    engine: str | None = None
    temp_letter: str | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.filesystem, FileSystemKind):
            raise ValueError(f"Unsupported file system: {self.filesystem!r}")
        object.__setattr__(self, "label", sanitize_label(self.label))
        if self.allocation_unit != 0 and not is_valid_allocation_unit(self.allocation_unit):
            raise ValueError(
                f"Allocation unit must be 0 or a power of two between "
                f"{MIN_ALLOCATION_UNIT} and {MAX_ALLOCATION_UNIT}: {self.allocation_unit}"
            )
        if self.temp_letter:
            letter = self.temp_letter.strip().rstrip(":\\").upper()
            if len(letter) != 1 or not "A" <= letter <= "Z":
                raise ValueError(f"Temporary drive letter must be a single letter A-Z: {self.temp_letter}")
            object.__setattr__(self, "temp_letter", f"{letter}:")
        else:
            object.__setattr__(self, "temp_letter", None)

    def to_dict(self) -> dict[str, Any]:
        return {
            "target": self.target,
            "filesystem": self.filesystem.value,
            "label": self.label,
            "quick": self.quick,
            "allocation_unit": self.allocation_unit,
            "engine": self.engine,
            "temp_letter": self.temp_letter,
        }


def is_valid_allocation_unit(value: int) -> bool:
    """Check a cluster size is a power of two within what Windows accepts."""
    return (
        MIN_ALLOCATION_UNIT <= value <= MAX_ALLOCATION_UNIT
        and (value & (value - 1)) == 0
    )


@dataclass
class LetterLease:
    """A drive letter temporarily attached to an unlettered volume."""

    device_id: str
    letter: str
    active: bool = True


@dataclass(frozen=True)
class FormatOutcome:
    """Final result of a format operation."""

    success: bool
    summary: str
    kind: OutcomeKind
    engine: str = ""
    raw_output: str = ""
    output_available: bool = True
    release_warning: ResourceLeakWarning | None = None

    @classmethod
    def succeeded(
        cls,
        summary: str,
        engine: str,
        raw_output: str = "",
        output_available: bool = True,
    ) -> FormatOutcome:
        return cls(
            success=True,
            summary=summary,
            kind=OutcomeKind.SUCCESS,
            engine=engine,
            raw_output=raw_output,
            output_available=output_available,
        )

    @classmethod
    def failed(
        cls,
        kind: OutcomeKind,
        summary: str,
        engine: str = "",
        raw_output: str = "",
        output_available: bool = True,
    ) -> FormatOutcome:
        return cls(
            success=False,
            summary=summary,
            kind=kind,
            engine=engine,
            raw_output=raw_output,
            output_available=output_available,
        )

    def with_release_warning(self, warning: ResourceLeakWarning) -> FormatOutcome:
        return replace(self, release_warning=warning)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "summary": self.summary,
            "kind": self.kind.name,
            "engine": self.engine,
            "output_available": self.output_available,
            "raw_output": self.raw_output,
            "release_warning": str(self.release_warning) if self.release_warning else None,
        }


@dataclass
class VolumeEntry:
    """A volume as reported by Win32_Volume."""

    device_id: str
    drive_letter: str | None = None
    label: str = ""
    filesystem: str = ""
    capacity_bytes: int = 0
    free_bytes: int = 0
    drive_type: int = -1

    @property
    def has_letter(self) -> bool:
        return bool(self.drive_letter)

    @property
    def root(self) -> str:
        """``E:\\`` for lettered volumes, the device id otherwise."""
        if self.drive_letter:
            return f"{self.drive_letter.rstrip(':')}:\\"
        return self.device_id

    @property
    def short_id(self) -> str:
        start = self.device_id.find("{")
        end = self.device_id.find("}")
        if 0 <= start < end:
            return "Volume" + self.device_id[start : end + 1]
        return self.device_id

    @property
    def display_name(self) -> str:
        left = self.root if self.has_letter else self.short_id
        label = self.label or "(no label)"
        filesystem = self.filesystem or "-"
        return f"{left}  {label} - {filesystem}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "device_id": self.device_id,
            "drive_letter": self.drive_letter,
            "label": self.label,
            "filesystem": self.filesystem,
            "capacity_bytes": self.capacity_bytes,
            "free_bytes": self.free_bytes,
            "drive_type": self.drive_type,
        }


@dataclass
class EncryptionStatus:
    """BitLocker state of a lettered volume."""

    letter: str
    protection_status: int = -1  # 0=off, 1=on, 2=unknown
    lock_status: int = -1  # 0=unlocked, 1=locked, 2=unknown
    success: bool = True
    message: str = ""
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def is_locked(self) -> bool:
        return self.lock_status == 1

    @property
    def is_protected(self) -> bool:
        return self.protection_status == 1
