"""
FormatForge Session Management.

Wires configuration, logging, process execution, the Windows volume services,
the engines and the orchestrator together, and keeps an audit report of every
format attempted during the session.
"""

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any

from formatforge.core.config import FormatForgeConfig, load_config
from formatforge.core.job import JobResult, JobRunner, JobStatus
from formatforge.core.logging import SessionLogger, get_logger, setup_logging
from formatforge.core.models import FormatOutcome, FormatRequest
from formatforge.core.orchestrator import Confirmation, FormatOrchestrator, FormatVolumeJob
from formatforge.core.safety import SafetyManager
from formatforge.core.status import StatusChannel
from formatforge.engines.selector import EngineSelector
from formatforge.platform.process import ElevatedLauncher, ProcessRunner, StreamingLauncher
from formatforge.platform.windows.letters import LetterLeaseManager
from formatforge.platform.windows.volumes import EncryptionProbe, VolumeEnumerator

logger = get_logger(__name__)


@dataclass
class SessionReport:
    """Complete session report for audit and review."""

    session_id: str
    started_at: datetime
    ended_at: datetime | None = None
    operations: list[dict[str, Any]] = field(default_factory=list)
    errors: list[dict[str, Any]] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    config_snapshot: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "started_at": self.started_at.isoformat(),
            "ended_at": self.ended_at.isoformat() if self.ended_at else None,
            "duration_seconds": (
                (self.ended_at - self.started_at).total_seconds()
                if self.ended_at
                else None
            ),
            "operations": self.operations,
            "errors": self.errors,
            "warnings": self.warnings,
            "config_snapshot": self.config_snapshot,
            "summary": {
                "total_operations": len(self.operations),
                "successful_operations": sum(
                    1 for op in self.operations if op.get("success", False)
                ),
                "failed_operations": sum(
                    1 for op in self.operations if not op.get("success", True)
                ),
                "total_errors": len(self.errors),
                "total_warnings": len(self.warnings),
            },
        }

    def save(self, path: Path) -> None:
        """Save report to file."""
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            json.dump(self.to_dict(), f, indent=2, default=str)


class Session:
    """
    A FormatForge session.

    This is the main entry point for front ends. Collaborators can be
    injected (tests pass a runner with fake launchers); otherwise they are
    built from the configuration.
    """

    def __init__(
        self,
        config: FormatForgeConfig | None = None,
        session_id: str | None = None,
        runner: ProcessRunner | None = None,
        configure_logging: bool = True,
    ) -> None:
        self.id = session_id or str(uuid.uuid4())
        self.config = config or load_config()
        self.started_at = datetime.now()

        if configure_logging:
            setup_logging(self.config.logging)

        process = self.config.process
        self.runner = runner or ProcessRunner(
            launcher=StreamingLauncher(encoding=process.output_encoding),
            elevator=ElevatedLauncher(),
            timeout=process.format_timeout_seconds,
            elevated_timeout=process.elevated_timeout_seconds,
        )

        self.safety = SafetyManager(self.config.safety)
        self.volumes = VolumeEnumerator(self.runner, timeout=process.query_timeout_seconds)
        self.encryption = EncryptionProbe(self.runner, timeout=process.query_timeout_seconds)
        self.leases = LetterLeaseManager(
            self.runner,
            self.volumes,
            letters=self.config.leases.letters,
            timeout=process.query_timeout_seconds * 4,
        )
        self.engines = EngineSelector.from_config(self.runner, self.config.engines, process)
        self.orchestrator = FormatOrchestrator(
            self.engines,
            self.leases,
            preflight=self.safety.create_preflight_checker(),
            encryption_probe=(
                self.encryption if self.config.safety.encryption_check_enabled else None
            ),
        )

        self.job_runner = JobRunner()
        self.session_logger = SessionLogger(
            self.config.get_session_file(),
            get_logger(f"session.{self.id[:8]}"),
        )

        self._report = SessionReport(
            session_id=self.id,
            started_at=self.started_at,
            config_snapshot=self.config.model_dump(mode="json"),
        )

        logger.info("Session started", session_id=self.id, primary_engine=self.engines.primary)
        self.session_logger.info("Session started", session_id=self.id)

    def create_format_job(
        self,
        request: FormatRequest,
        confirm: Confirmation = True,
        status: StatusChannel | None = None,
    ) -> FormatVolumeJob:
        return FormatVolumeJob(self.orchestrator, request, confirm, status)

    def format_volume(
        self,
        request: FormatRequest,
        confirm: Confirmation = True,
        status: StatusChannel | None = None,
    ) -> FormatOutcome:
        """Format synchronously on the calling thread."""
        job = self.create_format_job(request, confirm, status)
        self.session_logger.info(
            "Executing job",
            job_id=job.id,
            job_name=job.name,
            request=request.to_dict(),
        )
        result = self.job_runner.run_sync(job)
        return self._record(job, result)

    def submit_format(
        self,
        request: FormatRequest,
        confirm: Confirmation = True,
        status: StatusChannel | None = None,
    ) -> FormatVolumeJob:
        """Start a format on a background thread; use ``wait_format`` for the outcome."""
        job = self.create_format_job(request, confirm, status)
        self.session_logger.info(
            "Submitting job",
            job_id=job.id,
            job_name=job.name,
            request=request.to_dict(),
        )
        self.job_runner.submit(job)
        self.job_runner.start(job.id)
        return job

    def wait_format(self, job: FormatVolumeJob, timeout: float | None = None) -> FormatOutcome | None:
        result = self.job_runner.wait(job.id, timeout)
        if result is None or job.status in (JobStatus.PENDING, JobStatus.RUNNING):
            return None
        return self._record(job, result)

    def _record(self, job: FormatVolumeJob, result: JobResult[FormatOutcome]) -> FormatOutcome:
        """Track an operation in the session report and return its outcome."""
        if result.data is not None:
            outcome = result.data
        else:
            from formatforge.core.models import OutcomeKind

            outcome = FormatOutcome.failed(
                OutcomeKind.ENGINE_FAILURE,
                result.error or "Format job failed",
            )

        operation_record: dict[str, Any] = {
            "timestamp": datetime.now().isoformat(),
            "job_id": job.id,
            "job_name": job.name,
            "job_description": job.description,
            "request": job.request.to_dict(),
            "success": outcome.success,
            "outcome": outcome.kind.name,
            "engine": outcome.engine,
            "summary": outcome.summary,
            "duration_seconds": result.duration_seconds,
        }

        if not outcome.success:
            self._report.errors.append(
                {
                    "timestamp": datetime.now().isoformat(),
                    "job_id": job.id,
                    "error": outcome.summary,
                }
            )

        if result.warnings:
            operation_record["warnings"] = result.warnings
            self._report.warnings.extend(result.warnings)

        self._report.operations.append(operation_record)

        if outcome.success:
            self.session_logger.info(
                "Format completed",
                job_id=job.id,
                target=job.request.target,
                engine=outcome.engine,
            )
        else:
            self.session_logger.error(
                "Format failed",
                job_id=job.id,
                target=job.request.target,
                outcome=outcome.kind.name,
                error=outcome.summary,
            )
        return outcome

    def close(self) -> Path:
        """Close the session and save reports."""
        self._report.ended_at = datetime.now()

        self.session_logger.save()

        report_path = self.config.session_directory / f"report_{self.id[:8]}.json"
        self._report.save(report_path)

        logger.info(
            "Session closed",
            session_id=self.id,
            duration_seconds=(self._report.ended_at - self.started_at).total_seconds(),
            report_path=str(report_path),
        )

        return report_path

    def get_report(self) -> SessionReport:
        """Get the current session report."""
        return self._report

    def __enter__(self) -> Session:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()
