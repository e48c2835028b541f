"""HUNTER: pattern and anomaly detection over analyses (read-only).

Three independent scans run over the same window of recent analyses.
Each writes at most one record carrying the matching set:

    DRIFT_ANOMALY      drift > drift_threshold            HIGH
    CONTRADICTION      truth > 70 and risk > 60           MEDIUM
    HIGH_VALUE_SIGNAL  awakening > 75 and truth > 75      CRITICAL

Payload: {"count": n, "analyses": [{"id", ...scan fields}]}; drift also
carries "threshold", which must be positive. Pattern hunts write
PATTERN_HUNT (MEDIUM) with {"pattern", "matches", "analyses"}.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional

from ..errors import ValidationError
from ..models.analysis import Analysis
from ..models.ledger import Module, Severity
from ..models.results import UnitResult
from .base import Unit, UnitConfig, require_positive


@dataclass(frozen=True)
class HunterConfig(UnitConfig):
    window: int = 100
    drift_threshold: float = 30
    contradiction_truth_min: float = 70
    contradiction_risk_min: float = 60
    signal_min: float = 75
    pattern_limit: int = 50

    def validate(self) -> None:
        require_positive(self.window, name="window")
        require_positive(self.pattern_limit, name="pattern_limit")
        threshold = self.drift_threshold
        if isinstance(threshold, bool) or not isinstance(threshold, (int, float)) or threshold <= 0:
            raise ValidationError(f"Invalid config: drift_threshold must be a positive number (got {threshold!r})")


def _slug(text: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", text.lower()).strip("-") or "pattern"


class Hunter(Unit):
    name = "hunter"
    module = Module.HUNTER
    count_kinds = ("anomalies_detected", "contradictions_found", "high_value_signals")
    config_class = HunterConfig

    def execute(self, config: HunterConfig, result: UnitResult) -> None:
        batch = self.step(
            result,
            "read_window",
            lambda: self.require_analyses().recent(config.window),
            failure="Anomaly detection failed",
        )
        if batch is None:
            return
        window = self.usable(result, batch)
        self.step(result, "drift", self._scan_drift, window, config, result, failure="Drift scan failed")
        self.step(
            result,
            "contradiction",
            self._scan_contradictions,
            window,
            config,
            result,
            failure="Contradiction scan failed",
        )
        self.step(
            result,
            "high_value_signal",
            self._scan_signals,
            window,
            config,
            result,
            failure="High-value signal scan failed",
        )

    def _scan_drift(self, window: list[Analysis], config: HunterConfig, result: UnitResult) -> Optional[int]:
        hits = [a for a in window if a.drift > config.drift_threshold]
        if not hits:
            return None
        record_id = self.emit(
            "DRIFT_ANOMALY",
            {
                "count": len(hits),
                "threshold": config.drift_threshold,
                "analyses": [
                    {"id": a.analysis_id, "drift": a.drift, "driftDirection": a.drift_direction} for a in hits
                ],
            },
            severity=Severity.HIGH,
            source_reference="drift-analysis",
            discriminator="drift",
        )
        result.bump("anomalies_detected", len(hits))
        return record_id

    def _scan_contradictions(
        self, window: list[Analysis], config: HunterConfig, result: UnitResult
    ) -> Optional[int]:
        hits = [
            a
            for a in window
            if a.truth_index > config.contradiction_truth_min and a.risk_index > config.contradiction_risk_min
        ]
        if not hits:
            return None
        record_id = self.emit(
            "CONTRADICTION",
            {
                "count": len(hits),
                "analyses": [
                    {"id": a.analysis_id, "truthIndex": a.truth_index, "riskIndex": a.risk_index, "status": a.status}
                    for a in hits
                ],
            },
            severity=Severity.MEDIUM,
            source_reference="contradiction-analysis",
            discriminator="contradiction",
        )
        result.bump("contradictions_found", len(hits))
        return record_id

    def _scan_signals(self, window: list[Analysis], config: HunterConfig, result: UnitResult) -> Optional[int]:
        hits = [a for a in window if a.awakening_index > config.signal_min and a.truth_index > config.signal_min]
        if not hits:
            return None
        record_id = self.emit(
            "HIGH_VALUE_SIGNAL",
            {
                "count": len(hits),
                "analyses": [
                    {
                        "id": a.analysis_id,
                        "awakeningIndex": a.awakening_index,
                        "truthIndex": a.truth_index,
                        "status": a.status,
                    }
                    for a in hits
                ],
            },
            severity=Severity.CRITICAL,
            source_reference="signal-analysis",
            discriminator="signal",
        )
        result.bump("high_value_signals", len(hits))
        return record_id

    def hunt_patterns(self, pattern: str, config: Optional[HunterConfig] = None) -> UnitResult:
        """Search analyses for a detected pattern and record the matches."""
        cfg = config or self.default_config
        result = self.new_result()
        try:
            cfg.validate()
            if not pattern or not pattern.strip():
                raise ValidationError("Pattern must be a non-empty string")
        except ValidationError as e:
            result.fail(str(e), step="config")
            return result

        def _hunt() -> Optional[int]:
            matches = self.usable(result, self.require_analyses().search_patterns(pattern, cfg.pattern_limit))
            if not matches:
                return None
            record_id = self.emit(
                "PATTERN_HUNT",
                {
                    "pattern": pattern,
                    "matches": len(matches),
                    "analyses": [
                        {"id": a.analysis_id, "status": a.status, "riskLevel": a.risk_level} for a in matches
                    ],
                },
                severity=Severity.MEDIUM,
                source_reference=f"pattern-{pattern}"[:255],
                discriminator=f"pattern-{_slug(pattern)}",
            )
            result.bump("anomalies_detected", len(matches))
            return record_id

        self.step(result, "pattern_hunt", _hunt, failure="Pattern hunt failed")
        return result
