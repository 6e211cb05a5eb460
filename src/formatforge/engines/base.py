"""
Format engine base class.

An engine is one Windows mechanism that can format a volume. Engines never
raise to their caller: every attempt ends in a populated ``FormatOutcome``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from formatforge.core.errors import EngineNotApplicable
from formatforge.core.logging import get_logger
from formatforge.core.models import FileSystemKind, FormatOutcome, OutcomeKind
from formatforge.core.resolver import is_letter_selector
from formatforge.core.status import StatusChannel
from formatforge.platform.process import ProcessRunner, RunResult, RunStatus

logger = get_logger(__name__)


class FormatEngine(ABC):
    """Base class for all format engines."""

    name: str = ""
    requires_letter: bool = True
    supported_filesystems: frozenset[FileSystemKind] = frozenset(FileSystemKind)

    def __init__(self, runner: ProcessRunner, timeout: float | None = 3600) -> None:
        self.runner = runner
        self.timeout = timeout

    def supports(self, filesystem: FileSystemKind) -> bool:
        return filesystem in self.supported_filesystems

    def check_applicable(self, target: str, filesystem: FileSystemKind) -> None:
        """Raise EngineNotApplicable when the attempt cannot work."""
        if not self.supports(filesystem):
            raise EngineNotApplicable(self.name, f"cannot create {filesystem.value} volumes")
        if self.requires_letter and not is_letter_selector(target):
            raise EngineNotApplicable(self.name, f"needs a drive letter, got {target}")

    def attempt(
        self,
        target: str,
        filesystem: FileSystemKind,
        label: str = "",
        quick: bool = True,
        allocation_unit: int = 0,
        status: StatusChannel | None = None,
    ) -> FormatOutcome:
        """Format ``target``; always returns an outcome."""
        channel = status or StatusChannel()
        try:
            self.check_applicable(target, filesystem)
            return self._attempt(target, filesystem, label, quick, allocation_unit, channel)
        except EngineNotApplicable as e:
            logger.info("Engine not applicable", engine=self.name, reason=e.reason)
            return FormatOutcome.failed(
                OutcomeKind.ENGINE_NOT_APPLICABLE,
                str(e),
                engine=self.name,
            )
        except Exception as e:
            logger.exception("Engine raised", engine=self.name, target=target)
            return FormatOutcome.failed(
                OutcomeKind.ENGINE_FAILURE,
                f"{self.name} failed on {target}: {e}",
                engine=self.name,
            )

    @abstractmethod
    def _attempt(
        self,
        target: str,
        filesystem: FileSystemKind,
        label: str,
        quick: bool,
        allocation_unit: int,
        status: StatusChannel,
    ) -> FormatOutcome:
        """Run the engine. Subclasses must implement this."""

    def _outcome(
        self,
        result: RunResult,
        target: str,
        filesystem: FileSystemKind,
        succeeded: bool,
        failure_reason: str | None = None,
    ) -> FormatOutcome:
        """Map a finished command to an outcome."""
        raw_output = result.text if result.output_available else ""

        if result.status is RunStatus.ELEVATION_DECLINED:
            return FormatOutcome.failed(
                OutcomeKind.ELEVATION_DECLINED,
                f"{self.name}: the operator declined the elevation prompt",
                engine=self.name,
                raw_output=raw_output,
                output_available=result.output_available,
            )

        if succeeded:
            summary = f"Formatted {target} as {filesystem.value} ({self.name})"
            if not result.output_available:
                summary += "; tool output unavailable (ran elevated)"
            return FormatOutcome.succeeded(
                summary,
                engine=self.name,
                raw_output=raw_output,
                output_available=result.output_available,
            )

        reason = failure_reason or result.error_text
        return FormatOutcome.failed(
            OutcomeKind.ENGINE_FAILURE,
            f"{self.name} failed on {target}: {reason}",
            engine=self.name,
            raw_output=raw_output,
            output_available=result.output_available,
        )


def drive_letter(target: str) -> str:
    """``F`` from ``F:`` or ``F:\\``."""
    return target.strip().rstrip("\\/").rstrip(":").upper()
