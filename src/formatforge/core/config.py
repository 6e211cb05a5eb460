"""
FormatForge configuration management.

Provides centralized configuration with validation using Pydantic.
"""

from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator, model_validator

EngineName = Literal["diskpart", "wmi", "format-volume", "format.com"]


class LoggingConfig(BaseModel):
    """Configuration for structured logging."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    file_enabled: bool = True
    console_enabled: bool = True
    json_format: bool = False
    log_directory: Path = Field(default_factory=lambda: Path.home() / ".formatforge" / "logs")

    @field_validator("log_directory", mode="before")
    @classmethod
    def expand_path(cls, v: str | Path) -> Path:
        return Path(v).expanduser().resolve()


class SafetyConfig(BaseModel):
    """Configuration for safety features."""

    require_confirmation: bool = True
    typed_confirmation: bool = True
    preflight_checks_enabled: bool = True
    system_volume_protection: bool = True
    power_check_enabled: bool = True
    encryption_check_enabled: bool = True


class ProcessConfig(BaseModel):
    """Timeouts and decoding for external tools."""

    format_timeout_seconds: int = Field(default=3600, ge=60, le=86400)
    elevated_timeout_seconds: int = Field(default=3600, ge=60, le=86400)
    query_timeout_seconds: int = Field(default=15, ge=1, le=300)
    output_encoding: str | None = None


class EngineConfig(BaseModel):
    """Which format engine runs, and whether failures fall through."""

    primary: EngineName = "diskpart"
    escalate: bool = False
    order: list[EngineName] = Field(
        default_factory=lambda: ["diskpart", "wmi", "format-volume", "format.com"]
    )

    @model_validator(mode="after")
    def primary_in_order(self) -> EngineConfig:
        if self.primary not in self.order:
            raise ValueError(f"Primary engine {self.primary!r} is not in the engine order")
        if len(set(self.order)) != len(self.order):
            raise ValueError("Engine order contains duplicates")
        return self


class LeaseConfig(BaseModel):
    """Range of drive letters usable for temporary mounts."""

    first_letter: str = "D"
    last_letter: str = "Z"

    @field_validator("first_letter", "last_letter", mode="before")
    @classmethod
    def normalize_letter(cls, v: str) -> str:
        letter = str(v).strip().rstrip(":\\").upper()
        if len(letter) != 1 or not ("A" <= letter <= "Z"):
            raise ValueError(f"Not a drive letter: {v!r}")
        return letter

    @model_validator(mode="after")
    def ordered_range(self) -> LeaseConfig:
        if self.first_letter > self.last_letter:
            raise ValueError("first_letter must not come after last_letter")
        return self

    @property
    def letters(self) -> list[str]:
        return [chr(c) for c in range(ord(self.first_letter), ord(self.last_letter) + 1)]


class FormatForgeConfig(BaseModel):
    """Main FormatForge configuration."""

    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    safety: SafetyConfig = Field(default_factory=SafetyConfig)
    process: ProcessConfig = Field(default_factory=ProcessConfig)
    engines: EngineConfig = Field(default_factory=EngineConfig)
    leases: LeaseConfig = Field(default_factory=LeaseConfig)
    session_directory: Path = Field(
        default_factory=lambda: Path.home() / ".formatforge" / "sessions"
    )

    @field_validator("session_directory", mode="before")
    @classmethod
    def expand_session_path(cls, v: str | Path) -> Path:
        return Path(v).expanduser().resolve()

    @classmethod
    def load(cls, config_path: Path | None = None) -> FormatForgeConfig:
        """Load configuration from file or create default."""
        if config_path is None:
            config_path = Path.home() / ".formatforge" / "config.json"

        if config_path.exists():
            with open(config_path) as f:
                data = json.load(f)
            return cls.model_validate(data)

        return cls()

    def save(self, config_path: Path | None = None) -> None:
        """Save configuration to file."""
        if config_path is None:
            config_path = Path.home() / ".formatforge" / "config.json"

        config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(config_path, "w") as f:
            json.dump(self.model_dump(mode="json"), f, indent=2, default=str)

    def ensure_directories(self) -> None:
        """Create all required directories."""
        self.logging.log_directory.mkdir(parents=True, exist_ok=True)
        self.session_directory.mkdir(parents=True, exist_ok=True)

    def get_session_file(self) -> Path:
        """Get path for a new session report file."""
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        return self.session_directory / f"session_{timestamp}.json"


def load_config(config_path: Path | None = None) -> FormatForgeConfig:
    """Load or create configuration."""
    config = FormatForgeConfig.load(config_path)
    config.ensure_directories()
    return config
