"""Tests for the read-only analysis reader."""

import sqlite3

import pytest

from intelos.errors import MalformedPayloadError, ValidationError


def test_recent_is_newest_first(analyses, seed_analyses):
    seed_analyses([{}, {}, {}])

    assert [a.analysis_id for a in analyses.recent(2).analyses] == ["a-2", "a-1"]
    with pytest.raises(ValidationError):
        analyses.recent(0)


def test_get_and_decode(analyses, seed_analyses):
    seed_analyses([{"patterns_detected": ["x"], "anomalies": "{bad"}])

    analysis = analyses.get("a-0")
    assert analysis.patterns() == ["x"]
    with pytest.raises(MalformedPayloadError, match="anomalies"):
        analysis.anomaly_list()
    assert analyses.get("missing") is None


def test_count_by(analyses, seed_analyses):
    seed_analyses([{"risk_level": "HIGH"}, {"risk_level": "HIGH"}, {"risk_level": None}])

    assert analyses.count_by("risk_level") == [{"risk_level": None, "count": 1}, {"risk_level": "HIGH", "count": 2}]
    with pytest.raises(ValidationError):
        analyses.count_by("drift")


def test_connections_are_read_only(analyses, seed_analyses):
    seed_analyses([{}])

    conn = analyses._connect()
    try:
        with pytest.raises(sqlite3.OperationalError, match="readonly"):
            conn.execute("DELETE FROM analyses")
    finally:
        conn.close()


def test_unreadable_rows_are_split_out(analyses, seed_analyses):
    seed_analyses([{}, {"truth_index": "n/a"}, {"created_at": "yesterday"}, {}])

    batch = analyses.recent(10)

    assert [a.analysis_id for a in batch.analyses] == ["a-3", "a-0"]
    assert sorted(analysis_id for analysis_id, _ in batch.unreadable) == ["a-1", "a-2"]
    assert all(reason for _, reason in batch.unreadable)
