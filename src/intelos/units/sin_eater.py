"""SIN EATER: entropy and error quarantine (witness mode only).

Records corruption and pipeline dissonance for human review; never
repairs anything. Every witness record has the payload

    {"timestamp": iso, "details": {...}, "witnessed": true,
     "autoFixed": false, "requiresReview": true}

with details per type:
    JSON_CORRUPTION      {"ledgerId", "module", "type", "reason"}   HIGH
    PIPELINE_DISSONANCE  {"latestMinerTime", "latestReaperTime", "lagMs"}   MEDIUM
Review happens through unreviewed() and mark_reviewed().
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Optional

from ..errors import MalformedPayloadError, ValidationError
from ..models.ledger import LedgerRecord, Module, Severity, decode_payload
from ..models.results import UnitResult
from .base import Unit, UnitConfig, require_positive


@dataclass(frozen=True)
class SinEaterConfig(UnitConfig):
    scan_limit: int = 100

    def validate(self) -> None:
        require_positive(self.scan_limit, name="scan_limit")


class SinEater(Unit):
    name = "sin_eater"
    module = Module.SIN_EATER
    count_kinds = ("errors_logged", "corruption_detected", "dissonance_found")
    config_class = SinEaterConfig

    def execute(self, config: SinEaterConfig, result: UnitResult) -> None:
        self.step(result, "corruption", self._scan_corruption, config, result, failure="Corruption detection failed")
        self.step(result, "dissonance", self._scan_dissonance, result, failure="Dissonance detection failed")

    def _witness(self, error_type: str, details: dict[str, Any], severity: Severity) -> int:
        return self.emit(
            error_type,
            {
                "timestamp": self.store.clock().isoformat(),
                "details": details,
                "witnessed": True,
                "autoFixed": False,
                "requiresReview": True,
            },
            severity=severity,
            source_reference=error_type,
            discriminator=error_type,
        )

    def log_error(
        self,
        error_type: str,
        details: dict[str, Any],
        severity: Severity | str = Severity.MEDIUM,
    ) -> UnitResult:
        """Witness an arbitrary error event for later review."""
        result = self.new_result()
        try:
            if not error_type or len(error_type) > 64 or not re.fullmatch(r"[A-Za-z0-9_\-]+", error_type):
                raise ValidationError(f"Invalid error type: {error_type!r}")
            severity = Severity(str(severity.value if isinstance(severity, Severity) else severity).upper())
        except ValueError as e:
            result.fail(str(e), step="config")
            return result

        if self.step(result, "log", self._witness, error_type, details, severity, failure="Error logging failed") is not None:
            result.bump("errors_logged")
        return result

    def detect_corruption(self, config: Optional[SinEaterConfig] = None) -> UnitResult:
        cfg = config or self.default_config
        result = self.new_result()
        try:
            cfg.validate()
        except ValidationError as e:
            result.fail(str(e), step="config")
            return result
        self.step(result, "corruption", self._scan_corruption, cfg, result, failure="Corruption detection failed")
        return result

    def detect_dissonance(self) -> UnitResult:
        result = self.new_result()
        self.step(result, "dissonance", self._scan_dissonance, result, failure="Dissonance detection failed")
        return result

    def _scan_corruption(self, config: SinEaterConfig, result: UnitResult) -> int:
        corrupt: list[tuple[LedgerRecord, str]] = []
        for record in self.store.query(limit=config.scan_limit):
            try:
                decode_payload(record.data)
            except MalformedPayloadError as e:
                corrupt.append((record, str(e)))

        for record, reason in corrupt:
            details = {
                "ledgerId": record.id,
                "module": record.module.value,
                "type": record.type,
                "reason": reason,
            }
            if self.step(
                result,
                f"corruption:{record.id}",
                self._witness,
                "JSON_CORRUPTION",
                details,
                Severity.HIGH,
                failure=f"Logging corruption of ledger #{record.id} failed",
            ) is not None:
                result.bump("corruption_detected")
                result.bump("errors_logged")
        return len(corrupt)

    def _scan_dissonance(self, result: UnitResult) -> Optional[int]:
        latest_miner = self.store.latest(Module.MINER)
        latest_reaper = self.store.latest(Module.REAPER)
        if latest_miner is None or latest_reaper is None:
            return None
        if latest_reaper.processed_at >= latest_miner.processed_at:
            return None

        lag_ms = int(round((latest_miner.processed_at - latest_reaper.processed_at).total_seconds() * 1000))
        record_id = self._witness(
            "PIPELINE_DISSONANCE",
            {
                "latestMinerTime": latest_miner.processed_at.isoformat(),
                "latestReaperTime": latest_reaper.processed_at.isoformat(),
                "lagMs": lag_ms,
            },
            Severity.MEDIUM,
        )
        result.bump("dissonance_found")
        result.bump("errors_logged")
        return record_id

    def unreviewed(self, limit: int = 50) -> list[LedgerRecord]:
        """Witness records awaiting review, most urgent first."""
        return self.store.unreviewed(module=Module.SIN_EATER, limit=limit)

    def mark_reviewed(self, record_id: int) -> bool:
        """Flag a record reviewed. Idempotent; unknown ids raise NotFoundError."""
        return self.store.mark_processed(record_id)
