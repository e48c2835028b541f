"""SOUL REAPER: semantic essence extraction.

Reads the most recent analyses and writes one SEMANTIC_SUMMARY per
analysis. Source analyses are never modified.

Payload (SEMANTIC_SUMMARY):
    {"analysisId", "truthIndex", "integrityIndex", "riskIndex",
     "awakeningIndex", "keyPatterns": [...], "anomalies": [...],
     "essence": {"status", "riskLevel", "consistency", "drift"}}
"""

from __future__ import annotations

from dataclasses import dataclass

from ..errors import NotFoundError
from ..models.analysis import Analysis
from ..models.ledger import Module, Severity
from ..models.results import UnitResult
from .base import Unit, UnitConfig, require_positive


def reaper_severity(risk_index: float) -> Severity:
    if risk_index > 70:
        return Severity.HIGH
    if risk_index > 40:
        return Severity.MEDIUM
    return Severity.LOW


@dataclass(frozen=True)
class ReaperConfig(UnitConfig):
    max_batch_size: int = 50

    def validate(self) -> None:
        require_positive(self.max_batch_size, name="max_batch_size")


class Reaper(Unit):
    name = "reaper"
    module = Module.REAPER
    count_kinds = ("entries_created", "semantic_signals")
    config_class = ReaperConfig

    def execute(self, config: ReaperConfig, result: UnitResult) -> None:
        batch = self.step(
            result,
            "read_batch",
            lambda: self.require_analyses().recent(config.max_batch_size),
            failure="Batch extraction failed",
        )
        if batch is None:
            return
        for analysis in self.usable(result, batch):
            self.step(
                result,
                f"extract:{analysis.analysis_id}",
                self._reap,
                analysis,
                result,
                failure=f"Semantic extraction failed for {analysis.analysis_id}",
            )

    def extract(self, analysis_id: str) -> UnitResult:
        """Extract a single analysis by id; a missing id is reported, not raised."""
        result = self.new_result()

        def _extract_one() -> int:
            analysis = self.require_analyses().get(analysis_id)
            if analysis is None:
                raise NotFoundError(f"Analysis not found: {analysis_id}")
            return self._reap(analysis, result)

        self.step(result, f"extract:{analysis_id}", _extract_one, failure="Semantic extraction failed")
        return result

    def _reap(self, analysis: Analysis, result: UnitResult) -> int:
        payload = {
            "analysisId": analysis.analysis_id,
            "truthIndex": analysis.truth_index,
            "integrityIndex": analysis.integrity_index,
            "riskIndex": analysis.risk_index,
            "awakeningIndex": analysis.awakening_index,
            "keyPatterns": analysis.patterns(),
            "anomalies": analysis.anomaly_list(),
            "essence": {
                "status": analysis.status,
                "riskLevel": analysis.risk_level,
                "consistency": analysis.consistency,
                "drift": analysis.drift,
            },
        }
        record_id = self.emit(
            "SEMANTIC_SUMMARY",
            payload,
            severity=reaper_severity(analysis.risk_index),
            source_reference=analysis.analysis_id,
            discriminator=analysis.analysis_id,
        )
        result.bump("entries_created")
        result.bump("semantic_signals")
        return record_id
