"""ANALYST: synthesis of briefings and timelines from the ledger.

STRATEGIC_BRIEFING payload:
    {"generatedAt", "timeWindow": "7 days",
     "summary": {"totalIntelligenceEntries", "moduleBreakdown": {module: n}},
     "keyFindings": [str], "criticalAlerts": [{"module", "type", "time"}] (<= 10),
     "recommendations": [str]}
TIMELINE payload:
    {"period": "30 days", "eventsByDay": {"YYYY-MM-DD": [{"module", "type",
     "severity", "time"}]}, "totalEvents": n}
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from ..models.ledger import LedgerRecord, Module, Severity
from ..models.results import UnitResult
from .base import Unit, UnitConfig, require_positive

CRITICAL_ALERTS_KEPT = 10


@dataclass(frozen=True)
class AnalystConfig(UnitConfig):
    briefing_days: int = 7
    timeline_days: int = 30

    def validate(self) -> None:
        require_positive(self.briefing_days, name="briefing_days")
        require_positive(self.timeline_days, name="timeline_days")


def _group_by_module(entries: list[LedgerRecord]) -> dict[Module, list[LedgerRecord]]:
    grouped: dict[Module, list[LedgerRecord]] = {}
    for entry in entries:
        grouped.setdefault(entry.module, []).append(entry)
    return grouped


def synthesize_key_findings(by_module: dict[Module, list[LedgerRecord]]) -> list[str]:
    findings: list[str] = []
    if by_module.get(Module.MINER):
        findings.append(f"{len(by_module[Module.MINER])} discovery events detected")
    if by_module.get(Module.REAPER):
        findings.append(f"{len(by_module[Module.REAPER])} semantic extractions completed")
    critical = sum(1 for e in by_module.get(Module.HUNTER, []) if e.severity == Severity.CRITICAL)
    if critical:
        findings.append(f"{critical} critical anomalies detected")
    if by_module.get(Module.SEEKER):
        findings.append(f"{len(by_module[Module.SEEKER])} relationship mappings created")
    return findings


def extract_critical_alerts(entries: list[LedgerRecord]) -> list[dict[str, str]]:
    alerts = [
        {"module": e.module.value, "type": e.type, "time": e.created_at.isoformat()}
        for e in entries
        if e.severity == Severity.CRITICAL
    ]
    return alerts[:CRITICAL_ALERTS_KEPT]


def generate_recommendations(by_module: dict[Module, list[LedgerRecord]]) -> list[str]:
    recommendations: list[str] = []
    if any(e.severity in (Severity.HIGH, Severity.CRITICAL) for e in by_module.get(Module.HUNTER, [])):
        recommendations.append("Review detected anomalies immediately")
    if by_module.get(Module.SIN_EATER):
        recommendations.append("Address logged errors and corruption issues")
    recommendations.append("Continue monitoring intelligence pipeline")
    recommendations.append("Review relationship mappings for strategic insights")
    return recommendations


class Analyst(Unit):
    name = "analyst"
    module = Module.ANALYST
    count_kinds = ("briefings_generated", "timelines_created", "insights_produced")
    config_class = AnalystConfig

    def execute(self, config: AnalystConfig, result: UnitResult) -> None:
        self.step(result, "briefing", self._brief, config, result, failure="Briefing generation failed")
        self.step(result, "timeline", self._timeline, config, result, failure="Timeline creation failed")

    def generate_briefing(self, config: Optional[AnalystConfig] = None) -> UnitResult:
        return self._single("briefing", self._brief, config, failure="Briefing generation failed")

    def create_timeline(self, config: Optional[AnalystConfig] = None) -> UnitResult:
        return self._single("timeline", self._timeline, config, failure="Timeline creation failed")

    def _single(self, step_name, fn, config: Optional[AnalystConfig], *, failure: str) -> UnitResult:
        cfg = config or self.default_config
        result = self.new_result()
        try:
            cfg.validate()
        except ValueError as e:
            result.fail(str(e), step="config")
            return result
        self.step(result, step_name, fn, cfg, result, failure=failure)
        return result

    def _brief(self, config: AnalystConfig, result: UnitResult) -> int:
        now = self.store.clock()
        cutoff = now - timedelta(days=config.briefing_days)
        entries = self.store.query(created_after=cutoff, limit=None, order="desc")
        by_module = _group_by_module(entries)
        findings = synthesize_key_findings(by_module)

        briefing = {
            "generatedAt": now.isoformat(),
            "timeWindow": f"{config.briefing_days} days",
            "summary": {
                "totalIntelligenceEntries": len(entries),
                "moduleBreakdown": {module.value: len(rows) for module, rows in by_module.items()},
            },
            "keyFindings": findings,
            "criticalAlerts": extract_critical_alerts(entries),
            "recommendations": generate_recommendations(by_module),
        }
        record_id = self.emit(
            "STRATEGIC_BRIEFING",
            briefing,
            severity=Severity.INFO,
            source_reference="briefing",
            discriminator="briefing",
        )
        result.bump("briefings_generated")
        result.bump("insights_produced", len(findings))
        return record_id

    def _timeline(self, config: AnalystConfig, result: UnitResult) -> int:
        cutoff = self.store.clock() - timedelta(days=config.timeline_days)
        entries = self.store.query(created_after=cutoff, limit=None, order="asc")

        events_by_day: dict[str, list[dict[str, str]]] = {}
        for entry in entries:
            day = entry.created_at.date().isoformat()
            events_by_day.setdefault(day, []).append(
                {
                    "module": entry.module.value,
                    "type": entry.type,
                    "severity": entry.severity.value,
                    "time": entry.created_at.isoformat(),
                }
            )

        record_id = self.emit(
            "TIMELINE",
            {
                "period": f"{config.timeline_days} days",
                "eventsByDay": events_by_day,
                "totalEvents": len(entries),
            },
            severity=Severity.INFO,
            source_reference="timeline",
            discriminator="timeline",
        )
        result.bump("timelines_created")
        return record_id
