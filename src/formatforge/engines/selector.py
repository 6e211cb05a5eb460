"""
Engine selection.

The operator (or configuration) picks a primary engine. With escalation
enabled the selector falls through the remaining engines in order after a
failure. A declined elevation prompt always stops the chain.
"""

from __future__ import annotations

from collections.abc import Sequence

from formatforge.core.config import EngineConfig, ProcessConfig
from formatforge.core.errors import EngineNotApplicable
from formatforge.core.logging import get_logger
from formatforge.core.models import FormatOutcome, FormatRequest, OutcomeKind
from formatforge.core.status import StatusChannel
from formatforge.engines.base import FormatEngine
from formatforge.engines.diskpart import DiskPartEngine
from formatforge.engines.format_com import FormatComEngine
from formatforge.engines.format_volume import FormatVolumeEngine
from formatforge.engines.wmi import WmiEngine
from formatforge.platform.process import ProcessRunner

logger = get_logger(__name__)

ENGINE_CLASSES: dict[str, type[FormatEngine]] = {
    DiskPartEngine.name: DiskPartEngine,
    WmiEngine.name: WmiEngine,
    FormatVolumeEngine.name: FormatVolumeEngine,
    FormatComEngine.name: FormatComEngine,
}


class EngineSelector:
    """Ordered set of engines with a primary choice."""

    def __init__(
        self,
        engines: Sequence[FormatEngine],
        primary: str | None = None,
        escalate: bool = False,
    ) -> None:
        if not engines:
            raise ValueError("At least one format engine is required")

        self._engines: dict[str, FormatEngine] = {}
        for engine in engines:
            if engine.name in self._engines:
                raise ValueError(f"Duplicate engine name: {engine.name}")
            self._engines[engine.name] = engine

        self.primary = primary or engines[0].name
        if self.primary not in self._engines:
            raise ValueError(f"Unknown primary engine: {self.primary}")
        self.escalate = escalate

    @classmethod
    def from_config(
        cls,
        runner: ProcessRunner,
        engine_config: EngineConfig,
        process_config: ProcessConfig,
    ) -> EngineSelector:
        engines = [
            ENGINE_CLASSES[name](runner, timeout=process_config.format_timeout_seconds)
            for name in engine_config.order
        ]
        return cls(engines, primary=engine_config.primary, escalate=engine_config.escalate)

    @property
    def names(self) -> list[str]:
        return list(self._engines)

    @property
    def engines(self) -> list[FormatEngine]:
        return list(self._engines.values())

    def get(self, name: str) -> FormatEngine:
        try:
            return self._engines[name]
        except KeyError:
            raise KeyError(f"Unknown format engine: {name}") from None

    def plan(self, engine: str | None = None) -> list[FormatEngine]:
        """Engines in the order they would be tried."""
        first = self.get(engine or self.primary)
        if not self.escalate:
            return [first]
        return [first] + [e for e in self._engines.values() if e is not first]

    def attempt(
        self,
        request: FormatRequest,
        target: str | None = None,
        status: StatusChannel | None = None,
    ) -> FormatOutcome:
        """
        Format with the chosen engine, escalating if configured.

        ``target`` overrides ``request.target`` (used for a leased letter).
        Fallback engines that cannot handle the target or file system are
        skipped, so the outcome returned is from the last engine that ran.
        """
        channel = status or StatusChannel()
        volume = target or request.target
        order = self.plan(request.engine)

        outcome: FormatOutcome | None = None
        for index, engine in enumerate(order):
            if index:
                try:
                    engine.check_applicable(volume, request.filesystem)
                except EngineNotApplicable as e:
                    channel.info(f"Skipping {e}")
                    logger.info("Fallback engine skipped", engine=engine.name, reason=e.reason)
                    continue
                channel.warning(f"Falling back to the {engine.name} engine")

            outcome = engine.attempt(
                volume,
                request.filesystem,
                label=request.label,
                quick=request.quick,
                allocation_unit=request.allocation_unit,
                status=channel,
            )
            logger.info(
                "Engine attempt finished",
                engine=engine.name,
                target=volume,
                kind=outcome.kind.name,
            )

            if outcome.success or outcome.kind is OutcomeKind.ELEVATION_DECLINED:
                break

        assert outcome is not None
        return outcome
