"""Tests for the Reaper's semantic extraction."""

import pytest

from intelos.models.ledger import Module, Severity
from intelos.units import Reaper, ReaperConfig
from intelos.units.reaper import reaper_severity


def test_zero_analyses_is_a_successful_noop(store, analyses):
    result = Reaper(store, analyses).run()

    assert result.success is True
    assert result.counts == {"entries_created": 0, "semantic_signals": 0}
    assert result.errors == []
    assert store.count() == 0


def test_one_summary_per_analysis(store, analyses, seed_analyses):
    seed_analyses(
        [
            {"risk_index": 80, "patterns_detected": ["fear", "urgency"], "anomalies": ["spike"]},
            {"risk_index": 50},
            {"risk_index": 10, "status": "DORMANT"},
        ]
    )

    result = Reaper(store, analyses).run()

    assert result.success is True
    assert result.counts == {"entries_created": 3, "semantic_signals": 3}
    rows = store.query(module=Module.REAPER, order="asc")
    assert [r.type for r in rows] == ["SEMANTIC_SUMMARY"] * 3
    by_source = {r.source_reference: r for r in rows}
    assert by_source["a-0"].severity == Severity.HIGH
    assert by_source["a-1"].severity == Severity.MEDIUM
    assert by_source["a-2"].severity == Severity.LOW

    payload = by_source["a-0"].payload
    assert payload["analysisId"] == "a-0"
    assert payload["keyPatterns"] == ["fear", "urgency"]
    assert payload["anomalies"] == ["spike"]
    assert payload["essence"]["riskLevel"] == "LOW"
    assert by_source["a-2"].payload["essence"]["status"] == "DORMANT"
    assert by_source["a-0"].idempotency_key.startswith("reaper-a-0-")


def test_batch_is_most_recent_first_and_bounded(store, analyses, seed_analyses):
    seed_analyses([{} for _ in range(5)])

    result = Reaper(store, analyses).run(ReaperConfig(max_batch_size=2))

    assert result.counts["entries_created"] == 2
    assert {r.source_reference for r in store.query(module=Module.REAPER)} == {"a-3", "a-4"}


@pytest.mark.parametrize("risk, expected", [(71, Severity.HIGH), (70, Severity.MEDIUM), (41, Severity.MEDIUM), (40, Severity.LOW)])
def test_severity_thresholds(risk, expected):
    assert reaper_severity(risk) == expected


def test_malformed_analysis_fails_only_its_own_step(store, analyses, seed_analyses):
    seed_analyses([{}, {"patterns_detected": "not json"}, {}])

    result = Reaper(store, analyses).run()

    assert result.success is False
    assert len(result.errors) == 1
    assert "a-1" in result.errors[0]
    assert result.steps["extract:a-1"] is False
    assert result.counts["entries_created"] == 2


@pytest.mark.parametrize("bad", [{"truth_index": "n/a"}, {"created_at": "yesterday"}])
def test_type_invalid_row_does_not_block_its_siblings(store, analyses, seed_analyses, bad):
    seed_analyses([{}, bad, {}])

    result = Reaper(store, analyses).run()

    assert result.success is False
    assert result.counts["entries_created"] == 2
    assert result.steps["read_batch"] is True
    assert result.steps["row:a-1"] is False
    assert len(result.errors) == 1
    assert result.errors[0].startswith("Unreadable analysis a-1")
    assert sorted(r.source_reference for r in store.query(module=Module.REAPER)) == ["a-0", "a-2"]


def test_invalid_config_touches_nothing(store, analyses, seed_analyses):
    seed_analyses([{}])

    result = Reaper(store, analyses).run(ReaperConfig(max_batch_size=0))

    assert result.success is False
    assert result.steps == {"config": False}
    assert "max_batch_size" in result.errors[0]
    assert store.count() == 0


def test_extract_single_analysis(store, analyses, seed_analyses):
    seed_analyses([{}, {"risk_index": 90}])

    result = Reaper(store, analyses).extract("a-1")

    assert result.success is True
    assert result.counts["entries_created"] == 1
    assert store.latest(Module.REAPER).severity == Severity.HIGH


def test_extract_missing_analysis_reports_not_found(store, analyses):
    result = Reaper(store, analyses).extract("nope")

    assert result.success is False
    assert "Analysis not found: nope" in result.errors[0]
    assert store.count() == 0


def test_missing_analyses_table_is_reported(store, tmp_path):
    from intelos.analysis import AnalysisReader

    empty = tmp_path / "empty.sqlite"
    empty.touch()
    result = Reaper(store, AnalysisReader(empty)).run()

    assert result.success is False
    assert result.steps == {"read_batch": False}
    assert result.errors[0].startswith("Batch extraction failed")
