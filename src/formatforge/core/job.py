"""
FormatForge Job Runner.

Runs operations on a background thread with proper error handling, so a
front end can keep presenting status while a format is in progress.
"""

from __future__ import annotations

import threading
import traceback
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum, auto
from typing import Any, Generic, TypeVar

from formatforge.core.logging import get_logger
from formatforge.core.status import StatusChannel

T = TypeVar("T")
logger = get_logger(__name__)


class JobStatus(Enum):
    """Status of a job execution."""

    PENDING = auto()
    RUNNING = auto()
    COMPLETED = auto()
    FAILED = auto()


@dataclass
class JobResult(Generic[T]):
    """Result of a completed job."""

    success: bool
    data: T | None = None
    error: str | None = None
    error_traceback: str | None = None
    warnings: list[str] = field(default_factory=list)
    start_time: datetime | None = None
    end_time: datetime | None = None

    @property
    def duration_seconds(self) -> float | None:
        if self.start_time and self.end_time:
            return (self.end_time - self.start_time).total_seconds()
        return None


class JobContext:
    """
    Context passed to job execution.

    Carries the status channel the job writes its lines to and the warnings
    collected for the result. The runner closes the channel when the job ends.
    """

    def __init__(self, status: StatusChannel | None = None) -> None:
        self.status = status or StatusChannel()
        self._lock = threading.Lock()
        self._warnings: list[str] = []

    def add_warning(self, warning: str) -> None:
        """Add a warning to the job result."""
        with self._lock:
            self._warnings.append(warning)

    def get_warnings(self) -> list[str]:
        """Get all warnings."""
        with self._lock:
            return self._warnings.copy()


class Job(ABC, Generic[T]):
    """Base class for all FormatForge jobs."""

    def __init__(
        self,
        name: str,
        description: str,
        status: StatusChannel | None = None,
    ) -> None:
        self.id = str(uuid.uuid4())
        self.name = name
        self.description = description
        self.status = JobStatus.PENDING
        self.context = JobContext(status)
        self.result: JobResult[T] | None = None
        self.created_at = datetime.now()
        self.started_at: datetime | None = None
        self.completed_at: datetime | None = None

    @abstractmethod
    def execute(self, context: JobContext) -> T:
        """Execute the job. Subclasses must implement this."""

    @abstractmethod
    def get_plan(self) -> str:
        """Return a human-readable execution plan."""

    def validate(self) -> list[str]:
        """
        Validate job parameters before execution.
        Returns a list of validation errors (empty if valid).
        """
        return []


class JobRunner:
    """Executes jobs with proper lifecycle management."""

    def __init__(self) -> None:
        self._jobs: dict[str, Job[Any]] = {}
        self._running_threads: dict[str, threading.Thread] = {}
        self._lock = threading.Lock()

    def submit(self, job: Job[T]) -> str:
        """Submit a job for execution. Returns job ID."""
        with self._lock:
            self._jobs[job.id] = job

        logger.info("Job submitted", job_id=job.id, job_name=job.name)
        return job.id

    def _fail_validation(self, job: Job[Any], errors: list[str]) -> None:
        job.status = JobStatus.FAILED
        job.result = JobResult(
            success=False,
            error="Validation failed: " + "; ".join(errors),
            start_time=datetime.now(),
            end_time=datetime.now(),
        )
        job.context.status.close()
        logger.warning("Job validation failed", job_id=job.id, errors=errors)

    def start(self, job_id: str) -> None:
        """Start executing a submitted job."""
        job = self._get_job(job_id)

        # Validate first
        errors = job.validate()
        if errors:
            self._fail_validation(job, errors)
            return

        thread = threading.Thread(
            target=self._execute_job,
            args=(job,),
            name=f"job-{job_id[:8]}",
            daemon=True,
        )

        with self._lock:
            self._running_threads[job_id] = thread

        thread.start()

    def run_sync(self, job: Job[T]) -> JobResult[T]:
        """Run a job synchronously and return result."""
        self.submit(job)

        errors = job.validate()
        if errors:
            self._fail_validation(job, errors)
            return job.result  # type: ignore[return-value]

        self._execute_job(job)
        return job.result  # type: ignore[return-value]

    def _execute_job(self, job: Job[Any]) -> None:
        """Internal job execution."""
        job.status = JobStatus.RUNNING
        job.started_at = datetime.now()

        logger.info("Job started", job_id=job.id, job_name=job.name)

        try:
            result_data = job.execute(job.context)
            job.status = JobStatus.COMPLETED
            job.result = JobResult(
                success=True,
                data=result_data,
                warnings=job.context.get_warnings(),
                start_time=job.started_at,
                end_time=datetime.now(),
            )
            logger.info(
                "Job completed",
                job_id=job.id,
                job_name=job.name,
                duration_seconds=job.result.duration_seconds,
            )

        except Exception as e:
            job.status = JobStatus.FAILED
            job.result = JobResult(
                success=False,
                error=str(e),
                error_traceback=traceback.format_exc(),
                warnings=job.context.get_warnings(),
                start_time=job.started_at,
                end_time=datetime.now(),
            )
            logger.error(
                "Job failed",
                job_id=job.id,
                job_name=job.name,
                error=str(e),
            )

        finally:
            job.completed_at = datetime.now()
            job.context.status.close()

            with self._lock:
                self._running_threads.pop(job.id, None)

    def wait(self, job_id: str, timeout: float | None = None) -> JobResult[Any] | None:
        """Wait for a job to complete."""
        with self._lock:
            thread = self._running_threads.get(job_id)
        if thread:
            thread.join(timeout)

        job = self._jobs.get(job_id)
        return job.result if job else None

    def _get_job(self, job_id: str) -> Job[Any]:
        """Get a job or raise KeyError."""
        job = self._jobs.get(job_id)
        if job is None:
            raise KeyError(f"Job not found: {job_id}")
        return job
