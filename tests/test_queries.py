"""Tests for the dashboard query layer."""

import pytest

from intelos import queries
from intelos.errors import ValidationError
from intelos.models.ledger import Module, NewLedgerRecord, Severity


def _append(store, module, severity=Severity.INFO, payload=None):
    return store.append(NewLedgerRecord(module=module, type="EVENT", severity=severity, payload=payload or {}))


def test_status_counts(store):
    _append(store, Module.MINER)
    _append(store, Module.MINER)
    _append(store, Module.HUNTER, Severity.CRITICAL)

    report = queries.status(store)

    assert report.total_entries == 3
    assert report.by_module == {"HUNTER": 1, "MINER": 2}
    assert report.by_severity == {"CRITICAL": 1, "INFO": 2}
    assert report.to_api_dict() == {
        "totalEntries": 3,
        "byModule": {"HUNTER": 1, "MINER": 2},
        "bySeverity": {"CRITICAL": 1, "INFO": 2},
        "lambda": 1.67,
    }


def test_status_reads_fresh_each_call(store):
    assert queries.status(store).total_entries == 0
    _append(store, Module.SEEKER)
    assert queries.status(store).total_entries == 1


def test_list_entries_newest_first_with_filters(store, clock):
    first = _append(store, Module.MINER, payload={"i": 1})
    clock.advance(seconds=1)
    second = _append(store, Module.MINER, payload={"i": 2})
    _append(store, Module.REAPER, Severity.HIGH)

    listing = queries.list_entries(store, module="MINER")
    assert listing.count == 2
    assert [e.id for e in listing.entries] == [second, first]

    entry = listing.to_api_dict()["entries"][0]
    assert entry["payload"] == {"i": 2}
    assert entry["resonanceScore"] == 1.67
    assert entry["module"] == "MINER"

    assert queries.list_entries(store, severity="HIGH").count == 1
    assert queries.list_entries(store, limit=1).count == 1


def test_list_entries_limit_bounds(store):
    with pytest.raises(ValidationError):
        queries.list_entries(store, limit=0)
    with pytest.raises(ValidationError):
        queries.list_entries(store, limit=10_000)


def test_malformed_payload_served_raw(store, raw_row):
    raw_row(data="{oops")

    entry = queries.list_entries(store).to_api_dict()["entries"][0]

    assert entry["payload"] == "{oops"


def test_unreviewed_errors_only_sin_eater(store):
    _append(store, Module.MINER, Severity.CRITICAL)
    witness = _append(store, Module.SIN_EATER, Severity.HIGH)

    listing = queries.unreviewed_errors(store)

    assert [e.id for e in listing.entries] == [witness]
