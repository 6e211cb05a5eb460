"""
FormatForge orchestrator.

Drives one format operation end to end:

    IDLE -> RESOLVING -> (LEASING_LETTER) -> AWAITING_CONFIRMATION
         -> FORMATTING -> (RELEASING_LEASE) -> DONE

Every path ends in exactly one ``FormatOutcome`` and exactly one summary
line on the status channel. A temporary drive letter, once attached, is
detached exactly once whatever happens in between.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from typing import Any, Union

from formatforge.core.errors import InvalidSelector, ResourceLeakWarning
from formatforge.core.job import Job, JobContext
from formatforge.core.logging import OperationLogger, get_logger
from formatforge.core.models import (
    FormatOutcome,
    FormatRequest,
    LetterLease,
    OrchestratorState,
    OutcomeKind,
    VolumeSelector,
)
from formatforge.core.resolver import resolve_selector
from formatforge.core.safety import (
    FormatPlan,
    PreflightChecker,
    check_volume_unlocked,
    generate_confirmation_string,
)
from formatforge.core.status import StatusChannel
from formatforge.engines.selector import EngineSelector
from formatforge.platform.windows.letters import LetterLeaseManager
from formatforge.platform.windows.volumes import EncryptionProbe

logger = get_logger(__name__)

ConfirmCallback = Callable[[FormatPlan], bool]
Confirmation = Union[bool, ConfirmCallback]


class FormatOrchestrator:
    """Runs a format request through resolution, leasing, confirmation and formatting."""

    def __init__(
        self,
        engines: EngineSelector,
        leases: LetterLeaseManager,
        preflight: PreflightChecker | None = None,
        encryption_probe: EncryptionProbe | None = None,
        status: StatusChannel | None = None,
    ) -> None:
        self.engines = engines
        self.leases = leases
        self.preflight = preflight
        self.encryption_probe = encryption_probe
        self.status = status
        self.state = OrchestratorState.IDLE
        self.transitions: list[OrchestratorState] = []
        self._busy = threading.Lock()

    @property
    def busy(self) -> bool:
        return self._busy.locked()

    def _transition(self, state: OrchestratorState) -> None:
        logger.debug("Orchestrator state", previous=self.state.name, state=state.name)
        self.state = state
        self.transitions.append(state)

    def _preflight_context(self, selector: VolumeSelector, request: FormatRequest) -> dict[str, Any]:
        from formatforge.platform import system_drive_letter

        context: dict[str, Any] = {
            "target": selector.target,
            "letter": selector.letter,
            "filesystem": request.filesystem,
            "quick": request.quick,
            "system_drive": system_drive_letter(),
        }
        if self.encryption_probe is not None and selector.letter:
            context["encryption"] = self.encryption_probe.query(selector.letter)
        return context

    def build_plan(self, request: FormatRequest, selector: VolumeSelector | None = None) -> FormatPlan:
        """
        Resolve the target and run preflight checks without changing anything.

        Raises InvalidSelector for an unusable target and KeyError for an
        unknown engine name.
        """
        selector = selector or resolve_selector(request.target)
        order = self.engines.plan(request.engine)
        primary = order[0]

        plan = FormatPlan(
            request=request,
            target=selector.target,
            engines=[engine.name for engine in order],
            needs_lease=not selector.has_letter and primary.requires_letter,
            confirmation_string=generate_confirmation_string(selector.target),
        )

        if not selector.has_letter and not primary.requires_letter:
            plan.warnings.append(
                f"{selector.target} has no drive letter; {primary.name} formats it by device id"
            )

        if self.preflight is not None:
            report = self.preflight.run_checks(self._preflight_context(selector, request))
            plan.preflight_report = report
            plan.warnings.extend(
                check.message
                for check in report.checks
                if check.severity == "warning" or not check.passed
            )
        return plan

    def run(
        self,
        request: FormatRequest,
        confirm: Confirmation = True,
        status: StatusChannel | None = None,
    ) -> FormatOutcome:
        """
        Format the volume named by ``request.target``.

        ``confirm`` is either a fixed answer or a callable that is shown the
        plan (after any temporary letter is attached) and returns the answer.
        Never raises; a concurrent call returns a BUSY outcome at once.
        """
        channel = status or self.status or StatusChannel()

        if not self._busy.acquire(blocking=False):
            outcome = FormatOutcome.failed(
                OutcomeKind.BUSY,
                "Another format operation is already in progress",
            )
            channel.summary(outcome.summary)
            return outcome

        try:
            self.state = OrchestratorState.IDLE
            self.transitions = [OrchestratorState.IDLE]
            with OperationLogger(
                "format",
                logger,
                target=request.target,
                filesystem=request.filesystem.value,
                quick=request.quick,
            ) as op:
                outcome = self._run(request, confirm, channel)
                op.update(outcome=outcome.kind.name, engine=outcome.engine)
                if not outcome.success:
                    op.fail(outcome.summary)
            return outcome
        finally:
            self._busy.release()

    def _run(
        self,
        request: FormatRequest,
        confirm: Confirmation,
        channel: StatusChannel,
    ) -> FormatOutcome:
        self._transition(OrchestratorState.RESOLVING)
        try:
            selector = resolve_selector(request.target)
        except InvalidSelector as e:
            return self._finish(
                FormatOutcome.failed(OutcomeKind.INVALID_SELECTOR, str(e)),
                channel,
            )

        lease: LetterLease | None = None
        outcome: FormatOutcome | None = None
        try:
            try:
                plan = self.build_plan(request, selector)
            except KeyError as e:
                return self._finish(
                    FormatOutcome.failed(OutcomeKind.ENGINE_NOT_APPLICABLE, str(e).strip("\"'")),
                    channel,
                )

            outcome = self._check_plan(plan, request)
            if outcome is not None:
                return self._finish(outcome, channel)

            target = selector.target
            if plan.needs_lease:
                self._transition(OrchestratorState.LEASING_LETTER)
                lease, message = self.leases.lease_free_letter(
                    selector.target,
                    channel,
                    preferred=request.temp_letter,
                )
                if lease is None:
                    return self._finish(
                        FormatOutcome.failed(OutcomeKind.LEASE_FAILED, message),
                        channel,
                    )
                channel.info(message)
                plan.leased_letter = lease.letter
                plan.confirmation_string = generate_confirmation_string(lease.letter)
                target = lease.letter
                outcome = self._check_leased_volume(plan)

            if outcome is None:
                self._transition(OrchestratorState.AWAITING_CONFIRMATION)
                if not self._confirmed(confirm, plan):
                    outcome = FormatOutcome.failed(
                        OutcomeKind.CANCELLED,
                        f"Format of {selector.target} cancelled; nothing was changed",
                    )
                else:
                    self._transition(OrchestratorState.FORMATTING)
                    outcome = self.engines.attempt(request, target=target, status=channel)
        except Exception as e:
            logger.exception("Unexpected error during format", target=request.target)
            outcome = FormatOutcome.failed(
                OutcomeKind.ENGINE_FAILURE,
                f"Unexpected error while formatting {request.target}: {e}",
            )
        finally:
            if lease is not None:
                interrupted = outcome is None
                if interrupted:
                    # KeyboardInterrupt or SystemExit is on its way out
                    outcome = FormatOutcome.failed(
                        OutcomeKind.CANCELLED,
                        f"Format of {request.target} interrupted",
                    )
                outcome = self._release(lease, outcome, channel)
                if interrupted:
                    self._finish(outcome, channel)

        assert outcome is not None
        return self._finish(outcome, channel)

    def _check_leased_volume(self, plan: FormatPlan) -> FormatOutcome | None:
        """Probe BitLocker on a volume that only became reachable through the lease."""
        if self.preflight is None or self.encryption_probe is None or plan.leased_letter is None:
            return None

        check = check_volume_unlocked({"encryption": self.encryption_probe.query(plan.leased_letter)})
        if plan.preflight_report is not None:
            plan.preflight_report.checks.append(check)
        if check.severity == "warning" or not check.passed:
            plan.warnings.append(check.message)
        if not check.passed:
            return FormatOutcome.failed(
                OutcomeKind.PREFLIGHT_FAILED,
                f"Preflight checks failed for {plan.target}: {check.message}",
            )
        return None

    def _check_plan(self, plan: FormatPlan, request: FormatRequest) -> FormatOutcome | None:
        """Outcome that stops the operation before any change, or None."""
        report = plan.preflight_report
        if report is not None and report.has_errors:
            reasons = "; ".join(check.message for check in report.errors)
            return FormatOutcome.failed(
                OutcomeKind.PREFLIGHT_FAILED,
                f"Preflight checks failed for {plan.target}: {reasons}",
            )

        primary = self.engines.get(plan.engines[0])
        if not primary.supports(request.filesystem):
            return FormatOutcome.failed(
                OutcomeKind.ENGINE_NOT_APPLICABLE,
                f"{primary.name} cannot create {request.filesystem.value} volumes",
                engine=primary.name,
            )
        return None

    @staticmethod
    def _confirmed(confirm: Confirmation, plan: FormatPlan) -> bool:
        if callable(confirm):
            return bool(confirm(plan))
        return bool(confirm)

    def _release(
        self,
        lease: LetterLease,
        outcome: FormatOutcome,
        channel: StatusChannel,
    ) -> FormatOutcome:
        self._transition(OrchestratorState.RELEASING_LEASE)
        try:
            released, message = self.leases.release_lease(lease, channel)
        except Exception as e:
            logger.exception("Releasing drive letter raised", letter=lease.letter)
            released, message = False, str(e)

        if released:
            channel.info(message)
            return outcome

        warning = ResourceLeakWarning(lease.letter, lease.device_id, message)
        channel.warning(str(warning))
        logger.warning(
            "Temporary drive letter left attached",
            letter=lease.letter,
            device_id=lease.device_id,
            detail=message,
        )
        return outcome.with_release_warning(warning)

    def _finish(self, outcome: FormatOutcome, channel: StatusChannel) -> FormatOutcome:
        self._transition(OrchestratorState.DONE)
        channel.summary(outcome.summary)
        return outcome


class FormatVolumeJob(Job[FormatOutcome]):
    """Runs one orchestration on a JobRunner thread."""

    def __init__(
        self,
        orchestrator: FormatOrchestrator,
        request: FormatRequest,
        confirm: Confirmation = True,
        status: StatusChannel | None = None,
    ) -> None:
        super().__init__(
            name="Format Volume",
            description=f"Format {request.target} as {request.filesystem.value}",
            status=status,
        )
        self.orchestrator = orchestrator
        self.request = request
        self.confirm = confirm

    def validate(self) -> list[str]:
        try:
            resolve_selector(self.request.target)
        except InvalidSelector as e:
            return [str(e)]
        return []

    def get_plan(self) -> str:
        try:
            return self.orchestrator.build_plan(self.request).get_plan_text()
        except (InvalidSelector, KeyError) as e:
            return f"Cannot plan format: {e}"

    def execute(self, context: JobContext) -> FormatOutcome:
        outcome = self.orchestrator.run(self.request, self.confirm, status=context.status)
        if outcome.release_warning is not None:
            context.add_warning(str(outcome.release_warning))
        return outcome
