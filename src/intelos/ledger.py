"""Append-only intelligence ledger store for Intelligence OS."""

from __future__ import annotations

import logging
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Literal, Optional

from .errors import NotFoundError, ValidationError, WriteError
from .models.ledger import (
    DEFAULT_RESONANCE_SCORE,
    LedgerRecord,
    Module,
    NewLedgerRecord,
    Severity,
    encode_payload,
)

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

_MODULE_VALUES = ", ".join(f"'{m.value}'" for m in Module)
_SEVERITY_VALUES = ", ".join(f"'{s.value}'" for s in Severity)
_SEVERITY_RANK_SQL = "CASE severity " + " ".join(f"WHEN '{s.value}' THEN {s.rank}" for s in Severity) + " END"

SCHEMA = f"""
CREATE TABLE IF NOT EXISTS intelligence_ledger(
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  module TEXT NOT NULL CHECK(module IN ({_MODULE_VALUES})),
  type TEXT NOT NULL,
  data TEXT NOT NULL,
  severity TEXT NOT NULL DEFAULT 'INFO' CHECK(severity IN ({_SEVERITY_VALUES})),
  resonance_score INTEGER NOT NULL DEFAULT {DEFAULT_RESONANCE_SCORE},
  processed_at TEXT NOT NULL,
  idempotency_key TEXT,
  source_reference TEXT,
  processed INTEGER NOT NULL DEFAULT 0,
  created_at TEXT NOT NULL,
  updated_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_ledger_created ON intelligence_ledger(created_at);
CREATE INDEX IF NOT EXISTS idx_ledger_module_created ON intelligence_ledger(module, created_at);
CREATE INDEX IF NOT EXISTS idx_ledger_idempotency_key ON intelligence_ledger(idempotency_key);

CREATE TRIGGER IF NOT EXISTS trg_ledger_immutable
BEFORE UPDATE OF module, type, data, severity, resonance_score, processed_at, idempotency_key,
  source_reference, created_at ON intelligence_ledger
BEGIN
  SELECT RAISE(ABORT, 'ledger rows are immutable');
END;

CREATE TRIGGER IF NOT EXISTS trg_ledger_append_only
BEFORE DELETE ON intelligence_ledger
BEGIN
  SELECT RAISE(ABORT, 'ledger is append-only');
END;
"""


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_ts(dt: datetime) -> str:
    """Canonical stored timestamp: UTC ISO-8601 with microseconds.

    A fixed format keeps lexical order equal to chronological order.
    """
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _coerce_module(module: Module | str | None) -> Optional[Module]:
    if module is None or isinstance(module, Module):
        return module
    try:
        return Module(str(module).upper())
    except ValueError as e:
        raise ValidationError(f"Unknown module: {module}") from e


def _coerce_severity(severity: Severity | str | None) -> Optional[Severity]:
    if severity is None or isinstance(severity, Severity):
        return severity
    try:
        return Severity(str(severity).upper())
    except ValueError as e:
        raise ValidationError(f"Unknown severity: {severity}") from e


def _row_to_record(row: sqlite3.Row) -> LedgerRecord:
    return LedgerRecord(
        id=int(row["id"]),
        module=Module(row["module"]),
        type=str(row["type"]),
        severity=Severity(row["severity"]),
        data=str(row["data"]),
        resonance_score=int(row["resonance_score"]),
        source_reference=row["source_reference"],
        idempotency_key=row["idempotency_key"],
        processed=bool(row["processed"]),
        processed_at=datetime.fromisoformat(row["processed_at"]),
        created_at=datetime.fromisoformat(row["created_at"]),
        updated_at=datetime.fromisoformat(row["updated_at"]),
    )


class LedgerStore:
    """Append-only ledger over a single sqlite table.

    Rows are never rewritten or deleted; the processed review flag
    (and its updated_at) is the only mutable state. Idempotency keys are
    indexed for lookups but not enforced unique.
    """

    def __init__(
        self,
        db_path: Path,
        *,
        clock: Optional[Clock] = None,
        default_resonance_score: int = DEFAULT_RESONANCE_SCORE,
    ):
        """Initialize the store and create the schema if needed.

        Args:
            db_path: Path to the sqlite database file
            clock: Callable returning the current UTC datetime (injectable for tests)
            default_resonance_score: Resonance tag (x100) applied when a draft has none
        """
        self.db_path = db_path
        self.clock = clock or _utc_now
        self.default_resonance_score = default_resonance_score
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self.db_path))
        conn.row_factory = sqlite3.Row
        return conn

    def _ensure_schema(self) -> None:
        conn = self._connect()
        try:
            conn.executescript(SCHEMA)
            conn.commit()
        finally:
            conn.close()

    def append(self, record: NewLedgerRecord) -> int:
        """Append one record and return its id.

        Raises:
            WriteError: If sqlite rejects the insert
        """
        now = format_ts(self.clock())
        processed_at = format_ts(record.processed_at) if record.processed_at else now
        resonance = (
            record.resonance_score if record.resonance_score is not None else self.default_resonance_score
        )
        try:
            conn = self._connect()
            try:
                with conn:
                    cur = conn.execute(
                        """
                        INSERT INTO intelligence_ledger(
                          module, type, data, severity, resonance_score, processed_at,
                          idempotency_key, source_reference, processed, created_at, updated_at
                        )
                        VALUES(?, ?, ?, ?, ?, ?, ?, ?, 0, ?, ?)
                        """,
                        (
                            record.module.value,
                            record.type,
                            encode_payload(record.payload),
                            record.severity.value,
                            resonance,
                            processed_at,
                            record.idempotency_key,
                            record.source_reference,
                            now,
                            now,
                        ),
                    )
                    record_id = int(cur.lastrowid)
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise WriteError(f"Ledger append failed for {record.module.value}/{record.type}: {e}") from e

        logger.debug(f"Appended ledger #{record_id} {record.module.value}/{record.type} ({record.severity.value})")
        return record_id

    def query(
        self,
        *,
        module: Module | str | None = None,
        severity: Severity | str | None = None,
        created_after: Optional[datetime] = None,
        processed: Optional[bool] = None,
        limit: Optional[int] = 50,
        order: Literal["asc", "desc"] = "desc",
    ) -> list[LedgerRecord]:
        """Filtered listing ordered by created_at (id breaks ties).

        Args:
            module: Only rows from this producer
            severity: Only rows with this severity
            created_after: Only rows created strictly after this instant
            processed: Only rows with this review flag
            limit: Maximum rows; None means unbounded (timeline replay)
            order: "desc" (newest first) or "asc" (chronological)

        Raises:
            ValidationError: For a non-positive limit or unknown order/module/severity
        """
        if order not in ("asc", "desc"):
            raise ValidationError(f"Invalid order: {order!r} (expected 'asc' or 'desc')")
        if limit is not None and limit <= 0:
            raise ValidationError(f"Invalid limit: {limit} (must be > 0)")

        module_value = _coerce_module(module)
        severity_value = _coerce_severity(severity)

        clauses: list[str] = []
        params: list[object] = []
        if module_value is not None:
            clauses.append("module = ?")
            params.append(module_value.value)
        if severity_value is not None:
            clauses.append("severity = ?")
            params.append(severity_value.value)
        if created_after is not None:
            clauses.append("created_at > ?")
            params.append(format_ts(created_after))
        if processed is not None:
            clauses.append("processed = ?")
            params.append(1 if processed else 0)

        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        direction = "ASC" if order == "asc" else "DESC"
        sql = f"SELECT * FROM intelligence_ledger {where} ORDER BY created_at {direction}, id {direction}"
        if limit is not None:
            sql += " LIMIT ?"
            params.append(int(limit))

        conn = self._connect()
        try:
            rows = conn.execute(sql, params).fetchall()
        finally:
            conn.close()
        return [_row_to_record(r) for r in rows]

    def get(self, record_id: int) -> Optional[LedgerRecord]:
        conn = self._connect()
        try:
            row = conn.execute("SELECT * FROM intelligence_ledger WHERE id = ?", (record_id,)).fetchone()
        finally:
            conn.close()
        return _row_to_record(row) if row is not None else None

    def latest(self, module: Module | str) -> Optional[LedgerRecord]:
        """Newest row written by a producer, or None."""
        rows = self.query(module=module, limit=1)
        return rows[0] if rows else None

    def find_by_idempotency_key(self, key: str) -> list[LedgerRecord]:
        """Advisory de-duplication lookup; the store never rejects duplicates."""
        conn = self._connect()
        try:
            rows = conn.execute(
                "SELECT * FROM intelligence_ledger WHERE idempotency_key = ? ORDER BY id ASC",
                (key,),
            ).fetchall()
        finally:
            conn.close()
        return [_row_to_record(r) for r in rows]

    def unreviewed(self, *, module: Module | str | None = None, limit: int = 50) -> list[LedgerRecord]:
        """Unprocessed rows, most urgent severity first, then newest first."""
        if limit <= 0:
            raise ValidationError(f"Invalid limit: {limit} (must be > 0)")
        module_value = _coerce_module(module)
        sql = "SELECT * FROM intelligence_ledger WHERE processed = 0"
        params: list[object] = []
        if module_value is not None:
            sql += " AND module = ?"
            params.append(module_value.value)
        sql += f" ORDER BY {_SEVERITY_RANK_SQL} ASC, created_at DESC, id DESC LIMIT ?"
        params.append(int(limit))

        conn = self._connect()
        try:
            rows = conn.execute(sql, params).fetchall()
        finally:
            conn.close()
        return [_row_to_record(r) for r in rows]

    def mark_processed(self, record_id: int) -> bool:
        """Set the review flag. Idempotent.

        Returns:
            True if the flag changed, False if the record was already processed

        Raises:
            NotFoundError: If no record has this id
            WriteError: If sqlite rejects the update
        """
        try:
            conn = self._connect()
            try:
                with conn:
                    row = conn.execute(
                        "SELECT processed FROM intelligence_ledger WHERE id = ?",
                        (record_id,),
                    ).fetchone()
                    if row is None:
                        raise NotFoundError(f"Ledger record not found: {record_id}")
                    if int(row["processed"]):
                        return False
                    conn.execute(
                        "UPDATE intelligence_ledger SET processed = 1, updated_at = ? WHERE id = ? AND processed = 0",
                        (format_ts(self.clock()), record_id),
                    )
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise WriteError(f"Marking ledger record {record_id} processed failed: {e}") from e

        logger.info(f"Ledger record #{record_id} marked reviewed")
        return True

    def count(self) -> int:
        conn = self._connect()
        try:
            row = conn.execute("SELECT COUNT(1) AS n FROM intelligence_ledger").fetchone()
        finally:
            conn.close()
        return int(row["n"])

    def aggregate_counts(self, group_by: Literal["module", "severity"]) -> dict[str, int]:
        """Row counts grouped by producer module or severity.

        Raises:
            ValidationError: For any other group_by column
        """
        if group_by not in ("module", "severity"):
            raise ValidationError(f"Invalid group_by: {group_by!r} (expected 'module' or 'severity')")
        conn = self._connect()
        try:
            rows = conn.execute(
                f"SELECT {group_by} AS key, COUNT(1) AS n FROM intelligence_ledger GROUP BY {group_by} ORDER BY {group_by}"
            ).fetchall()
        finally:
            conn.close()
        return {str(r["key"]): int(r["n"]) for r in rows}
