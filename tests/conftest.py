"""Pytest fixtures for Intelligence OS tests."""

import json
import sqlite3
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from intelos.analysis import ANALYSES_SCHEMA, AnalysisReader
from intelos.config import IntelConfig
from intelos.ledger import LedgerStore
from intelos.service import IntelligenceOS

START = datetime(2026, 2, 2, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Deterministic clock; tests move it forward explicitly."""

    def __init__(self, start: datetime = START):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock():
    """Fixed clock starting at 2026-02-02T12:00:00Z."""
    return FakeClock()


@pytest.fixture
def ledger_path(tmp_path):
    return tmp_path / "state" / "intelos.sqlite"


@pytest.fixture
def store(ledger_path, clock):
    """Empty ledger on a temp sqlite file.

    Args:
        ledger_path: Temp database path
        clock: Fake clock shared with the test

    Returns:
        LedgerStore instance
    """
    return LedgerStore(ledger_path, clock=clock)


@pytest.fixture
def analyses_path(tmp_path):
    """Separate sqlite file holding an empty analyses table."""
    path = tmp_path / "analyses.sqlite"
    conn = sqlite3.connect(str(path))
    try:
        conn.executescript(ANALYSES_SCHEMA)
        conn.commit()
    finally:
        conn.close()
    return path


@pytest.fixture
def analyses(analyses_path):
    return AnalysisReader(analyses_path)


@pytest.fixture
def seed_analyses(analyses_path):
    """Insert analysis rows; each dict overrides the defaults below.

    Rows get ids a-0, a-1, ... and created_at one minute apart, so the
    last row seeded is the most recent. List values for patterns_detected
    and anomalies are JSON-encoded; strings are stored as given.
    """

    def _seed(rows: list[dict]) -> list[str]:
        conn = sqlite3.connect(str(analyses_path))
        try:
            existing = conn.execute("SELECT COUNT(1) FROM analyses").fetchone()[0]
            ids = []
            for offset, overrides in enumerate(rows):
                i = existing + offset
                row = {
                    "analysis_id": f"a-{i}",
                    "truth_index": 50,
                    "integrity_index": 50,
                    "risk_index": 30,
                    "awakening_index": 50,
                    "consistency": 0.8,
                    "drift": 0,
                    "drift_direction": "stable",
                    "status": "ACTIVE",
                    "risk_level": "LOW",
                    "patterns_detected": [],
                    "anomalies": [],
                    "created_at": (START - timedelta(days=1) + timedelta(minutes=i)).isoformat(),
                }
                row.update(overrides)
                for column in ("patterns_detected", "anomalies"):
                    if isinstance(row[column], list):
                        row[column] = json.dumps(row[column])
                columns = ", ".join(row)
                marks = ", ".join("?" for _ in row)
                conn.execute(f"INSERT INTO analyses({columns}) VALUES({marks})", list(row.values()))
                ids.append(row["analysis_id"])
            conn.commit()
        finally:
            conn.close()
        return ids

    return _seed


@pytest.fixture
def intel_config(ledger_path, analyses_path):
    return IntelConfig(db_path=ledger_path, analyses_db_path=analyses_path)


@pytest.fixture
def service(intel_config, clock):
    """Fully wired pipeline over temp ledger and analyses files."""
    return IntelligenceOS(intel_config, clock=clock)


def insert_raw_row(db_path: Path, *, module: str, type: str, data: str, created_at: str) -> int:
    """Write a ledger row bypassing the store (simulates corruption from another writer)."""
    conn = sqlite3.connect(str(db_path))
    try:
        cur = conn.execute(
            """
            INSERT INTO intelligence_ledger(module, type, data, severity, resonance_score,
              processed_at, processed, created_at, updated_at)
            VALUES(?, ?, ?, 'INFO', 167, ?, 0, ?, ?)
            """,
            (module, type, data, created_at, created_at, created_at),
        )
        conn.commit()
        return int(cur.lastrowid)
    finally:
        conn.close()


@pytest.fixture
def raw_row(ledger_path, store):
    """Callable inserting an unvalidated ledger row into the store's file."""

    def _insert(*, module: str = "MINER", type: str = "GITHUB_SCAN", data: str = "{}", created_at=None) -> int:
        ts = created_at or store.clock().isoformat(timespec="microseconds")
        return insert_raw_row(ledger_path, module=module, type=type, data=data, created_at=ts)

    return _insert
