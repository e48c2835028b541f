"""Tests for the Analyst's briefings and timelines."""

from intelos.models.ledger import Module, NewLedgerRecord, Severity
from intelos.units import Analyst, AnalystConfig
from intelos.units.analyst import extract_critical_alerts, generate_recommendations


def _append(store, module, type="EVENT", severity=Severity.INFO):
    return store.append(NewLedgerRecord(module=module, type=type, severity=severity, payload={}))


def test_briefing_summarises_recent_activity(store, clock):
    clock.advance(days=-10)
    _append(store, Module.MINER, "OLD_SCAN")
    clock.advance(days=10)
    _append(store, Module.MINER, "GITHUB_SCAN")
    _append(store, Module.MINER, "DRIVE_SCAN")
    _append(store, Module.REAPER, "SEMANTIC_SUMMARY")
    _append(store, Module.HUNTER, "HIGH_VALUE_SIGNAL", Severity.CRITICAL)
    _append(store, Module.SEEKER, "RELATIONSHIP_MAP")

    result = Analyst(store).generate_briefing()

    assert result.success is True
    assert result.counts == {"briefings_generated": 1, "timelines_created": 0, "insights_produced": 4}
    row = store.latest(Module.ANALYST)
    assert row.type == "STRATEGIC_BRIEFING"
    briefing = row.payload
    assert briefing["timeWindow"] == "7 days"
    assert briefing["summary"]["totalIntelligenceEntries"] == 5
    assert briefing["summary"]["moduleBreakdown"] == {"MINER": 2, "REAPER": 1, "HUNTER": 1, "SEEKER": 1}
    assert briefing["keyFindings"] == [
        "2 discovery events detected",
        "1 semantic extractions completed",
        "1 critical anomalies detected",
        "1 relationship mappings created",
    ]
    assert briefing["criticalAlerts"] == [
        {"module": "HUNTER", "type": "HIGH_VALUE_SIGNAL", "time": clock.now.isoformat()}
    ]
    assert briefing["recommendations"][0] == "Review detected anomalies immediately"


def test_briefing_on_empty_ledger(store):
    result = Analyst(store).generate_briefing()

    assert result.success is True
    assert result.counts["insights_produced"] == 0
    briefing = store.latest(Module.ANALYST).payload
    assert briefing["summary"]["totalIntelligenceEntries"] == 0
    assert briefing["keyFindings"] == []
    assert briefing["recommendations"] == [
        "Continue monitoring intelligence pipeline",
        "Review relationship mappings for strategic insights",
    ]


def test_critical_alerts_capped_at_ten(store, clock):
    for _ in range(12):
        _append(store, Module.HUNTER, "HIGH_VALUE_SIGNAL", Severity.CRITICAL)
        clock.advance(seconds=1)

    assert len(extract_critical_alerts(store.query(limit=None))) == 10


def test_recommendations_follow_module_activity(store):
    _append(store, Module.SIN_EATER, "JSON_CORRUPTION", Severity.HIGH)
    by_module = {Module.SIN_EATER: store.query()}
    assert "Address logged errors and corruption issues" in generate_recommendations(by_module)


def test_timeline_groups_events_by_day(store, clock):
    clock.advance(days=-2)
    first = _append(store, Module.MINER, "GITHUB_SCAN")
    clock.advance(hours=1)
    _append(store, Module.REAPER, "SEMANTIC_SUMMARY", Severity.HIGH)
    clock.advance(days=2)
    _append(store, Module.HUNTER, "DRIFT_ANOMALY", Severity.HIGH)

    result = Analyst(store).create_timeline()

    assert result.success is True
    assert result.counts["timelines_created"] == 1
    timeline = store.latest(Module.ANALYST).payload
    assert timeline["period"] == "30 days"
    assert timeline["totalEvents"] == 3
    assert list(timeline["eventsByDay"]) == ["2026-01-31", "2026-02-02"]
    day_one = timeline["eventsByDay"]["2026-01-31"]
    assert [e["module"] for e in day_one] == ["MINER", "REAPER"]
    assert day_one[1]["severity"] == "HIGH"
    assert store.get(first).processed is False


def test_full_run_writes_briefing_then_timeline(store):
    _append(store, Module.MINER, "GITHUB_SCAN")

    result = Analyst(store).run(AnalystConfig(briefing_days=1, timeline_days=1))

    assert result.success is True
    assert result.steps == {"briefing": True, "timeline": True}
    types = [r.type for r in store.query(module=Module.ANALYST, order="asc")]
    assert types == ["STRATEGIC_BRIEFING", "TIMELINE"]
    timeline = store.latest(Module.ANALYST).payload
    # the briefing written in the same run is part of the timeline
    assert timeline["totalEvents"] == 2


def test_invalid_window(store):
    result = Analyst(store).generate_briefing(AnalystConfig(briefing_days=0))
    assert result.success is False
    assert store.count() == 0
