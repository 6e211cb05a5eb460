"""
FormatForge Safety Manager.

Implements the safety features around a format: preflight checks, the
human-readable plan shown before confirmation and the typed confirmation
string.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any

from formatforge.core.logging import get_logger
from formatforge.core.models import EncryptionStatus, FileSystemKind, FormatRequest

if TYPE_CHECKING:
    from formatforge.core.config import SafetyConfig

logger = get_logger(__name__)

PreflightFunc = Callable[[dict[str, Any]], "PreflightCheck | bool"]


@dataclass
class PreflightCheck:
    """Result of a single preflight check."""

    name: str
    passed: bool
    message: str
    severity: str = "info"  # info, warning, error, critical
    details: dict[str, Any] = field(default_factory=dict)


@dataclass
class PreflightReport:
    """Complete preflight check report."""

    checks: list[PreflightCheck] = field(default_factory=list)
    timestamp: datetime = field(default_factory=datetime.now)

    @property
    def all_passed(self) -> bool:
        return all(c.passed for c in self.checks)

    @property
    def has_errors(self) -> bool:
        return any(c.severity in ("error", "critical") and not c.passed for c in self.checks)

    @property
    def has_warnings(self) -> bool:
        return any(c.severity == "warning" and not c.passed for c in self.checks)

    @property
    def errors(self) -> list[PreflightCheck]:
        return [c for c in self.checks if c.severity in ("error", "critical") and not c.passed]

    def get_summary(self) -> str:
        """Get human-readable summary."""
        lines = [f"Preflight Check Report ({self.timestamp.isoformat(timespec='seconds')})"]

        passed = sum(1 for c in self.checks if c.passed)
        total = len(self.checks)
        lines.append(f"Results: {passed}/{total} checks passed")

        for check in self.checks:
            status = "✓" if check.passed else "✗"
            lines.append(f"[{status}] {check.name}: {check.message}")

        return "\n".join(lines)


@dataclass
class FormatPlan:
    """What is about to happen, shown to the operator before confirmation."""

    request: FormatRequest
    target: str
    engines: list[str]
    needs_lease: bool = False
    leased_letter: str | None = None
    warnings: list[str] = field(default_factory=list)
    preflight_report: PreflightReport | None = None
    confirmation_string: str | None = None

    @property
    def steps(self) -> list[str]:
        steps = []
        if self.needs_lease:
            letter = self.leased_letter or self.request.temp_letter or "a free drive letter"
            steps.append(f"Attach {letter} to {self.target} with mountvol")

        volume = self.leased_letter or self.target
        mode = "Quick" if self.request.quick else "Full"
        label = f' labelled "{self.request.label}"' if self.request.label else ""
        steps.append(
            f"{mode} format {volume} as {self.request.filesystem.value}{label} "
            f"using {self.engines[0]}"
        )
        for name in self.engines[1:]:
            steps.append(f"On failure, retry with {name}")

        if self.needs_lease:
            steps.append("Remove the temporary drive letter")
        return steps

    def get_plan_text(self) -> str:
        """Get human-readable plan text."""
        lines = ["=" * 60]
        lines.append(f"FORMAT: {self.target}")
        lines.append(f"FILE SYSTEM: {self.request.filesystem.value}")
        lines.append(f"LABEL: {self.request.label or '(none)'}")
        if self.request.allocation_unit:
            lines.append(f"ALLOCATION UNIT: {self.request.allocation_unit} bytes")
        lines.append("=" * 60)

        lines.append("")
        lines.append("ALL DATA ON THE VOLUME WILL BE LOST.")

        if self.warnings:
            lines.append("")
            lines.append("WARNINGS:")
            for warning in self.warnings:
                lines.append(f"   • {warning}")

        lines.append("")
        lines.append("EXECUTION STEPS:")
        for i, step in enumerate(self.steps, 1):
            lines.append(f"   {i}. {step}")

        if self.preflight_report:
            lines.append("")
            lines.append(self.preflight_report.get_summary())

        if self.confirmation_string:
            lines.append("")
            lines.append("=" * 60)
            lines.append("To proceed, type the following confirmation string:")
            lines.append(f"  {self.confirmation_string}")
            lines.append("=" * 60)

        return "\n".join(lines)


def generate_confirmation_string(target: str) -> str:
    """``FORMAT-E`` for ``E:``; device ids keep only their safe characters."""
    safe_target = re.sub(r"[^a-zA-Z0-9_-]", "", target)
    return f"FORMAT-{safe_target.upper()}"


class SafetyManager:
    """Confirmation strings and preflight setup driven by SafetyConfig."""

    def __init__(self, config: SafetyConfig) -> None:
        self.config = config

    def generate_confirmation_string(self, target: str) -> str:
        return generate_confirmation_string(target)

    def verify_confirmation(self, target: str, user_input: str) -> tuple[bool, str]:
        """
        Verify the operator typed the confirmation string.
        Returns (verified, message).
        """
        expected = self.generate_confirmation_string(target)

        if user_input.strip() != expected:
            logger.warning(
                "Confirmation verification failed",
                expected=expected,
                received=user_input,
            )
            return False, f"Confirmation mismatch. Expected: {expected}"

        logger.info("Format confirmed", target=target)
        return True, "Confirmation verified"

    def create_preflight_checker(self) -> PreflightChecker | None:
        """Checker with the checks enabled in the configuration."""
        if not self.config.preflight_checks_enabled:
            return None

        checker = PreflightChecker()
        if self.config.system_volume_protection:
            checker.add_check("System Volume", check_not_system_volume)
        checker.add_check("ReFS Support", check_refs_available)
        if self.config.encryption_check_enabled:
            checker.add_check("BitLocker", check_volume_unlocked)
        if self.config.power_check_enabled:
            checker.add_check("Power Status", check_power_status)
        return checker


class PreflightChecker:
    """Performs preflight checks before a format."""

    def __init__(self) -> None:
        self._checks: list[tuple[str, PreflightFunc]] = []

    def add_check(self, name: str, check_func: PreflightFunc) -> None:
        """Add a preflight check function."""
        self._checks.append((name, check_func))

    @property
    def check_names(self) -> list[str]:
        return [name for name, _ in self._checks]

    def run_checks(self, context: dict[str, Any]) -> PreflightReport:
        """Run all preflight checks and return report."""
        report = PreflightReport()

        for name, check_func in self._checks:
            try:
                result = check_func(context)
                if isinstance(result, PreflightCheck):
                    report.checks.append(result)
                elif isinstance(result, bool):
                    report.checks.append(
                        PreflightCheck(
                            name=name,
                            passed=result,
                            message="Passed" if result else "Failed",
                            severity="info" if result else "error",
                        )
                    )
            except Exception as e:
                logger.warning("Preflight check raised", check=name, error=str(e))
                report.checks.append(
                    PreflightCheck(
                        name=name,
                        passed=False,
                        message=f"Check failed with error: {e}",
                        severity="error",
                    )
                )

        return report


def check_not_system_volume(context: dict[str, Any]) -> PreflightCheck:
    """Refuse to format the drive Windows is running from."""
    letter = context.get("letter")
    system_drive = context.get("system_drive")

    if letter and system_drive and letter.upper() == system_drive.upper():
        return PreflightCheck(
            name="System Volume",
            passed=False,
            message=f"{letter} holds the running Windows installation",
            severity="error",
            details={"system_drive": system_drive},
        )

    return PreflightCheck(
        name="System Volume",
        passed=True,
        message="Target is not the system volume",
    )


def check_refs_available(context: dict[str, Any]) -> PreflightCheck:
    """ReFS can only be created when the ReFS driver is installed."""
    if context.get("filesystem") is not FileSystemKind.REFS:
        return PreflightCheck(
            name="ReFS Support",
            passed=True,
            message="ReFS not requested",
        )

    available = context.get("refs_available")
    if available is None:
        from formatforge.platform import refs_driver_available

        available = refs_driver_available()

    if not available:
        return PreflightCheck(
            name="ReFS Support",
            passed=False,
            message="ReFS.sys is not installed; this Windows edition cannot create ReFS volumes",
            severity="error",
        )

    return PreflightCheck(
        name="ReFS Support",
        passed=True,
        message="ReFS driver present",
    )


def check_volume_unlocked(context: dict[str, Any]) -> PreflightCheck:
    """A BitLocker-locked volume cannot be formatted until it is unlocked."""
    status: EncryptionStatus | None = context.get("encryption")

    if status is None:
        return PreflightCheck(
            name="BitLocker",
            passed=True,
            message="Encryption state not checked",
        )

    if not status.success:
        return PreflightCheck(
            name="BitLocker",
            passed=True,
            message=f"Could not query BitLocker: {status.message}",
            severity="warning",
        )

    if status.is_locked:
        return PreflightCheck(
            name="BitLocker",
            passed=False,
            message=f"{status.letter} is locked by BitLocker; unlock it first",
            severity="error",
            details={"lock_status": status.lock_status},
        )

    if status.is_protected:
        return PreflightCheck(
            name="BitLocker",
            passed=True,
            message=f"{status.letter} is BitLocker-protected; formatting removes the encryption",
            details={"protection_status": status.protection_status},
        )

    return PreflightCheck(
        name="BitLocker",
        passed=True,
        message="Volume is not encrypted",
    )


def check_power_status(context: dict[str, Any]) -> PreflightCheck:
    """A full format can take hours; warn when running on battery."""
    if context.get("quick", True):
        return PreflightCheck(
            name="Power Status",
            passed=True,
            message="Quick format; power not checked",
        )

    try:
        import psutil

        battery = psutil.sensors_battery()
        if battery is None:
            return PreflightCheck(
                name="Power Status",
                passed=True,
                message="No battery detected (desktop/server)",
            )

        if battery.power_plugged:
            return PreflightCheck(
                name="Power Status",
                passed=True,
                message="System is on AC power",
                details={"battery_percent": battery.percent},
            )
        else:
            return PreflightCheck(
                name="Power Status",
                passed=battery.percent > 50,
                message=f"System on battery ({battery.percent}%)",
                severity="warning" if battery.percent > 50 else "error",
                details={"battery_percent": battery.percent},
            )
    except Exception as e:
        return PreflightCheck(
            name="Power Status",
            passed=True,
            message=f"Could not check power status: {e}",
            severity="info",
        )


def create_standard_preflight_checker() -> PreflightChecker:
    """Create a preflight checker with standard checks."""
    checker = PreflightChecker()
    checker.add_check("System Volume", check_not_system_volume)
    checker.add_check("ReFS Support", check_refs_available)
    checker.add_check("BitLocker", check_volume_unlocked)
    checker.add_check("Power Status", check_power_status)
    return checker
