"""Shared batch-transform base for the six intelligence units.

Every unit follows the same loop: validate its config, read a bounded
window of upstream data, derive records, append them to the ledger.
Sub-steps are isolated so one failure never blocks its siblings.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional

from ..analysis import AnalysisBatch, AnalysisReader
from ..errors import ValidationError
from ..ledger import LedgerStore
from ..models.analysis import Analysis
from ..models.ledger import Module, NewLedgerRecord, Severity
from ..models.results import UnitResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UnitConfig:
    """Per-run knobs; subclasses add fields and checks."""

    def validate(self) -> None:
        return None


def require_positive(value: int, *, name: str) -> None:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValidationError(f"Invalid config: {name} must be a positive int (got {value!r})")


class Unit:
    """Base class for units.

    Subclasses set name, module, count_kinds and config_class, and
    implement execute().
    """

    name: str = "unit"
    module: Module
    count_kinds: tuple[str, ...] = ()
    config_class: type[UnitConfig] = UnitConfig

    def __init__(
        self,
        store: LedgerStore,
        analyses: Optional[AnalysisReader] = None,
        *,
        config: Optional[UnitConfig] = None,
        resonance: float = 1.67,
    ):
        """Initialize unit.

        Args:
            store: Ledger the unit appends to (and, for some units, reads)
            analyses: Read-only analysis source, for units that consume it
            config: Default config used when run() gets none
            resonance: Cosmetic resonance tag stamped on results and records
        """
        self.store = store
        self.analyses = analyses
        self.default_config = config or self.config_class()
        self.resonance = resonance

    @property
    def resonance_score(self) -> int:
        return int(round(self.resonance * 100))

    def new_result(self) -> UnitResult:
        return UnitResult(
            unit=self.name,
            counts={kind: 0 for kind in self.count_kinds},
            resonance=self.resonance,
        )

    def run(self, config: Optional[UnitConfig] = None) -> UnitResult:
        """Run the unit once. Never raises; failures land in result.errors."""
        cfg = config or self.default_config
        result = self.new_result()
        try:
            cfg.validate()
        except ValidationError as e:
            result.fail(str(e), step="config")
            logger.warning(f"{self.name}: rejected config: {e}")
            return result

        logger.info(f"{self.name}: run started")
        self.execute(cfg, result)
        logger.info(f"{self.name}: run finished success={result.success} counts={result.counts}")
        return result

    def execute(self, config: Any, result: UnitResult) -> None:
        raise NotImplementedError

    def step(
        self,
        result: UnitResult,
        name: str,
        fn: Callable[..., Any],
        *args: Any,
        failure: str,
    ) -> Any:
        """Run one independent sub-step.

        Returns the sub-step's value, or None if it raised; the error is
        recorded on result and the caller carries on with its siblings.
        """
        try:
            value = fn(*args)
        except Exception as e:
            logger.warning(f"{self.name}: {name} failed: {e}")
            result.fail(f"{failure}: {e}", step=name)
            return None
        result.steps.setdefault(name, True)
        return value

    def idempotency_key(self, discriminator: str) -> str:
        millis = int(self.store.clock().timestamp() * 1000)
        return f"{self.name.replace('_', '-')}-{discriminator}-{millis}"

    def emit(
        self,
        record_type: str,
        payload: Any,
        *,
        severity: Severity,
        source_reference: str,
        discriminator: str,
    ) -> int:
        """Append one derived record with a fresh idempotency key."""
        return self.store.append(
            NewLedgerRecord(
                module=self.module,
                type=record_type,
                severity=severity,
                payload=payload,
                source_reference=source_reference,
                idempotency_key=self.idempotency_key(discriminator),
                resonance_score=self.resonance_score,
            )
        )

    def require_analyses(self) -> AnalysisReader:
        if self.analyses is None:
            raise RuntimeError(f"{self.name} needs an analysis source")
        return self.analyses

    def usable(self, result: UnitResult, batch: AnalysisBatch) -> list[Analysis]:
        """Record each unreadable row as its own failed step; return the rest."""
        for analysis_id, reason in batch.unreadable:
            logger.warning(f"{self.name}: skipping unreadable analysis {analysis_id}: {reason}")
            result.fail(f"Unreadable analysis {analysis_id}: {reason}", step=f"row:{analysis_id}")
        return batch.analyses
