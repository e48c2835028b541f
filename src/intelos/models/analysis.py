"""Pydantic model for externally-owned analysis rows."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from ..errors import MalformedPayloadError
from .ledger import decode_payload


class Analysis(BaseModel):
    """A scored analysis row read from the `analyses` table.

    Owned by another system; the core only ever reads these.
    """

    analysis_id: str = Field(description="External analysis identifier")
    truth_index: float = 0
    integrity_index: float = 0
    risk_index: float = 0
    awakening_index: float = 0
    consistency: float | None = None
    drift: float = 0
    drift_direction: str | None = None
    status: str | None = None
    risk_level: str | None = None
    patterns_detected: str | None = Field(default=None, description="JSON-encoded list of pattern names")
    anomalies: str | None = Field(default=None, description="JSON-encoded list")
    created_at: datetime

    model_config = {"frozen": True}

    def patterns(self) -> list[Any]:
        """Decoded patterns_detected (empty when unset)."""
        return _decode_list(self.patterns_detected, "patterns_detected", self.analysis_id)

    def anomaly_list(self) -> list[Any]:
        """Decoded anomalies (empty when unset)."""
        return _decode_list(self.anomalies, "anomalies", self.analysis_id)


def _decode_list(text: str | None, column: str, analysis_id: str) -> list[Any]:
    if not text:
        return []
    try:
        value = decode_payload(text)
    except MalformedPayloadError as e:
        raise MalformedPayloadError(f"Analysis {analysis_id}: {column} {e}") from e
    if not isinstance(value, list):
        raise MalformedPayloadError(f"Analysis {analysis_id}: {column} must be a JSON list")
    return value
