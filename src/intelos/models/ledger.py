"""Pydantic models for intelligence ledger records."""

import json
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from ..errors import MalformedPayloadError

# 1.67 scaled by 100; the column stores integers only.
DEFAULT_RESONANCE_SCORE = 167


class Module(str, Enum):
    """Producer identity of a ledger record."""

    MINER = "MINER"
    REAPER = "REAPER"
    HUNTER = "HUNTER"
    SEEKER = "SEEKER"
    SIN_EATER = "SIN_EATER"
    ANALYST = "ANALYST"


class Severity(str, Enum):
    """Triage severity, declared from most to least urgent."""

    CRITICAL = "CRITICAL"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"
    INFO = "INFO"

    @property
    def rank(self) -> int:
        """Urgency rank: 0 is most urgent."""
        return list(Severity).index(self)


def encode_payload(payload: Any) -> str:
    """Serialize a payload to the JSON text stored in the ledger."""
    return json.dumps(payload, ensure_ascii=False, default=str)


def decode_payload(text: str | None) -> Any:
    """Parse stored JSON text.

    Raises:
        MalformedPayloadError: If the text is missing or not valid JSON
    """
    if text is None:
        raise MalformedPayloadError("Payload is empty")
    try:
        return json.loads(text)
    except (TypeError, json.JSONDecodeError) as e:
        raise MalformedPayloadError(f"Payload is not valid JSON: {e}") from e


class NewLedgerRecord(BaseModel):
    """Draft of a record handed to LedgerStore.append.

    The store assigns id and timestamps; processed always starts False.
    """

    module: Module = Field(description="Producing unit")
    type: str = Field(min_length=1, max_length=64, description="Semantic kind, e.g. DRIFT_ANOMALY")
    severity: Severity = Field(default=Severity.INFO)
    payload: Any = Field(default_factory=dict, description="Producer-defined structured data")
    source_reference: str | None = Field(default=None, max_length=255)
    idempotency_key: str | None = Field(default=None, max_length=255)
    resonance_score: int | None = Field(
        default=None,
        description="Resonance tag scaled by 100; store default applies when None",
    )
    processed_at: datetime | None = Field(
        default=None,
        description="When the producer processed its input; defaults to append time",
    )

    model_config = {"frozen": True}


class LedgerRecord(BaseModel):
    """A persisted ledger row.

    Immutable except for the processed review flag, which only the
    review workflow flips (and which bumps updated_at).
    """

    id: int
    module: Module
    type: str
    severity: Severity
    data: str = Field(description="Raw JSON payload text as stored")
    resonance_score: int
    source_reference: str | None = None
    idempotency_key: str | None = None
    processed: bool = False
    processed_at: datetime
    created_at: datetime
    updated_at: datetime

    model_config = {"frozen": True}

    @property
    def payload(self) -> Any:
        """Decoded payload; raises MalformedPayloadError on corrupt text."""
        return decode_payload(self.data)

    @property
    def resonance(self) -> float:
        return self.resonance_score / 100

    def to_api_dict(self) -> dict[str, Any]:
        """Shape served to the dashboard (camelCase, decimal resonance)."""
        try:
            payload = self.payload
        except MalformedPayloadError:
            payload = self.data
        return {
            "id": self.id,
            "module": self.module.value,
            "type": self.type,
            "severity": self.severity.value,
            "payload": payload,
            "resonanceScore": self.resonance,
            "sourceReference": self.source_reference,
            "idempotencyKey": self.idempotency_key,
            "processed": self.processed,
            "processedAt": self.processed_at.isoformat(),
            "createdAt": self.created_at.isoformat(),
            "updatedAt": self.updated_at.isoformat(),
        }
