"""Pydantic models for Intelligence OS."""

from .analysis import Analysis
from .ledger import (
    DEFAULT_RESONANCE_SCORE,
    LedgerRecord,
    Module,
    NewLedgerRecord,
    Severity,
    decode_payload,
    encode_payload,
)
from .results import CycleResult, LedgerListing, StatusReport, UnitResult

__all__ = [
    # Ledger
    "DEFAULT_RESONANCE_SCORE",
    "LedgerRecord",
    "Module",
    "NewLedgerRecord",
    "Severity",
    "decode_payload",
    "encode_payload",
    # Analysis (read-only)
    "Analysis",
    # Results
    "CycleResult",
    "LedgerListing",
    "StatusReport",
    "UnitResult",
]
