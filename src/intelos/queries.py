"""Read-side aggregation for the dashboard. No caching; every call re-reads the store."""

from typing import Optional

from .errors import ValidationError
from .ledger import LedgerStore
from .models.ledger import Module, Severity
from .models.results import LedgerListing, StatusReport

MAX_LISTING_LIMIT = 500


def status(store: LedgerStore, resonance: float = 1.67) -> StatusReport:
    """Total rows plus per-module and per-severity counts."""
    return StatusReport(
        total_entries=store.count(),
        by_module=store.aggregate_counts("module"),
        by_severity=store.aggregate_counts("severity"),
        resonance=resonance,
    )


def list_entries(
    store: LedgerStore,
    module: Module | str | None = None,
    severity: Severity | str | None = None,
    limit: int = 50,
) -> LedgerListing:
    """Newest-first filtered listing."""
    if limit > MAX_LISTING_LIMIT:
        raise ValidationError(f"Invalid limit: {limit} (max {MAX_LISTING_LIMIT})")
    entries = store.query(module=module, severity=severity, limit=limit, order="desc")
    return LedgerListing(count=len(entries), entries=entries)


def unreviewed_errors(store: LedgerStore, limit: int = 50) -> LedgerListing:
    """Sin-Eater witness records still awaiting review, most urgent first."""
    if limit > MAX_LISTING_LIMIT:
        raise ValidationError(f"Invalid limit: {limit} (max {MAX_LISTING_LIMIT})")
    entries = store.unreviewed(module=Module.SIN_EATER, limit=limit)
    return LedgerListing(count=len(entries), entries=entries)
