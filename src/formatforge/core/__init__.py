"""
FormatForge Core - Backend service layer.

Contains the format orchestration, job execution, configuration, safety
checks and session management.
"""

from formatforge.core.config import FormatForgeConfig
from formatforge.core.errors import (
    EngineNotApplicable,
    FormatForgeError,
    InvalidSelector,
    ResourceLeakWarning,
)
from formatforge.core.job import Job, JobResult, JobRunner, JobStatus
from formatforge.core.logging import get_logger, setup_logging
from formatforge.core.models import (
    FileSystemKind,
    FormatOutcome,
    FormatRequest,
    OrchestratorState,
    OutcomeKind,
    VolumeSelector,
)
from formatforge.core.resolver import resolve_selector
from formatforge.core.safety import SafetyManager
from formatforge.core.status import StatusChannel, StatusKind

__all__ = [
    "EngineNotApplicable",
    "FileSystemKind",
    "FormatForgeConfig",
    "FormatForgeError",
    "FormatOutcome",
    "FormatRequest",
    "InvalidSelector",
    "Job",
    "JobResult",
    "JobRunner",
    "JobStatus",
    "OrchestratorState",
    "OutcomeKind",
    "ResourceLeakWarning",
    "SafetyManager",
    "StatusChannel",
    "StatusKind",
    "VolumeSelector",
    "get_logger",
    "resolve_selector",
    "setup_logging",
]
