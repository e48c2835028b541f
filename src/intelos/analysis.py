"""Read-only access to the externally-owned analyses table."""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Literal, Optional

from .errors import ValidationError
from .models.analysis import Analysis

# Contract of the table another system owns. Shipped for fixtures and
# `intelos init --analyses-schema`; the reader never executes it.
ANALYSES_SCHEMA = """
CREATE TABLE IF NOT EXISTS analyses(
  id INTEGER PRIMARY KEY,
  analysis_id TEXT UNIQUE NOT NULL,
  truth_index REAL NOT NULL DEFAULT 0,
  integrity_index REAL NOT NULL DEFAULT 0,
  risk_index REAL NOT NULL DEFAULT 0,
  awakening_index REAL NOT NULL DEFAULT 0,
  consistency REAL,
  drift REAL NOT NULL DEFAULT 0,
  drift_direction TEXT,
  status TEXT,
  risk_level TEXT,
  patterns_detected TEXT,
  anomalies TEXT,
  created_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_analyses_created ON analyses(created_at);
"""

_GROUPABLE = {"status": "status", "risk_level": "risk_level"}


def _parse_ts(value: str) -> datetime:
    dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


@dataclass
class AnalysisBatch:
    """Rows read in one query, split into usable analyses and rejects.

    unreadable holds (analysis_id, reason) for rows whose values do not
    fit the Analysis model; the remaining rows are still returned.
    """

    analyses: list[Analysis] = field(default_factory=list)
    unreadable: list[tuple[str, str]] = field(default_factory=list)


def _rows_to_batch(rows: list[sqlite3.Row]) -> AnalysisBatch:
    batch = AnalysisBatch()
    for row in rows:
        try:
            batch.analyses.append(_row_to_analysis(row))
        except (ValueError, TypeError) as e:
            # pydantic's ValidationError is a ValueError
            batch.unreadable.append((str(row["analysis_id"]), str(e)))
    return batch


def _row_to_analysis(row: sqlite3.Row) -> Analysis:
    return Analysis(
        analysis_id=str(row["analysis_id"]),
        truth_index=row["truth_index"] or 0,
        integrity_index=row["integrity_index"] or 0,
        risk_index=row["risk_index"] or 0,
        awakening_index=row["awakening_index"] or 0,
        consistency=row["consistency"],
        drift=row["drift"] or 0,
        drift_direction=row["drift_direction"],
        status=row["status"],
        risk_level=row["risk_level"],
        patterns_detected=row["patterns_detected"],
        anomalies=row["anomalies"],
        created_at=_parse_ts(str(row["created_at"])),
    )


class AnalysisReader:
    """SELECT-only view over the analyses table.

    Connections open the database with a read-only URI so no code path
    here can mutate upstream data.
    """

    def __init__(self, db_path: Path):
        self.db_path = db_path

    def _connect(self) -> sqlite3.Connection:
        uri = f"{self.db_path.resolve().as_uri()}?mode=ro"
        conn = sqlite3.connect(uri, uri=True)
        conn.row_factory = sqlite3.Row
        return conn

    def recent(self, limit: int) -> AnalysisBatch:
        """Most recent analyses first, capped at limit.

        A row that fails conversion lands in the batch's unreadable list
        instead of failing the whole read.
        """
        if limit <= 0:
            raise ValidationError(f"Invalid limit: {limit} (must be > 0)")
        conn = self._connect()
        try:
            rows = conn.execute(
                "SELECT * FROM analyses ORDER BY created_at DESC, id DESC LIMIT ?",
                (int(limit),),
            ).fetchall()
        finally:
            conn.close()
        return _rows_to_batch(rows)

    def get(self, analysis_id: str) -> Optional[Analysis]:
        conn = self._connect()
        try:
            row = conn.execute("SELECT * FROM analyses WHERE analysis_id = ?", (analysis_id,)).fetchone()
        finally:
            conn.close()
        return _row_to_analysis(row) if row is not None else None

    def search_patterns(self, pattern: str, limit: int = 50) -> AnalysisBatch:
        """Analyses whose patterns_detected text contains pattern."""
        if not pattern:
            raise ValidationError("Pattern must be a non-empty string")
        if limit <= 0:
            raise ValidationError(f"Invalid limit: {limit} (must be > 0)")
        escaped = pattern.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        conn = self._connect()
        try:
            rows = conn.execute(
                "SELECT * FROM analyses WHERE patterns_detected LIKE ? ESCAPE '\\' "
                "ORDER BY created_at DESC, id DESC LIMIT ?",
                (f"%{escaped}%", int(limit)),
            ).fetchall()
        finally:
            conn.close()
        return _rows_to_batch(rows)

    def count_by(self, field: Literal["status", "risk_level"]) -> list[dict[str, object]]:
        """Row counts grouped by status or risk_level, ordered by key."""
        column = _GROUPABLE.get(field)
        if column is None:
            raise ValidationError(f"Cannot group analyses by {field!r}")
        conn = self._connect()
        try:
            rows = conn.execute(
                f"SELECT {column} AS key, COUNT(1) AS n FROM analyses GROUP BY {column} ORDER BY {column}"
            ).fetchall()
        finally:
            conn.close()
        return [{field: r["key"], "count": int(r["n"])} for r in rows]
