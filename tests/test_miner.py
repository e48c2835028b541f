"""Tests for the Miner's discovery sources."""

import pytest

from intelos.errors import ValidationError
from intelos.models.ledger import Module, Severity
from intelos.units import DeltaSource, DiscoverySource, Miner, MinerConfig, build_sources


def test_default_sources_write_one_record_each(store, clock):
    result = Miner(store).run()

    assert result.success is True
    assert result.counts == {"entries_created": 2, "entries_updated": 0}
    rows = store.query(module=Module.MINER, order="asc")
    assert [r.type for r in rows] == ["GITHUB_SCAN", "DRIVE_SCAN"]
    assert all(r.severity == Severity.INFO for r in rows)
    github = rows[0]
    assert github.source_reference == "github-scan"
    assert github.payload["source"] == "github"
    assert github.payload["since"] is None
    assert github.payload["newCommits"] == 0
    assert github.idempotency_key == f"miner-github-{int(clock.now.timestamp() * 1000)}"


def test_delta_sources_relay_caller_payloads(store, clock):
    delta = DeltaSource("webhook", "GITHUB_PUSH", {"repository": "org/repo", "newCommits": 4})
    since = clock.now.replace(hour=0)

    result = Miner(store, sources=[]).run(MinerConfig(last_mine_time=since, extra_sources=(delta,)))

    assert result.counts["entries_created"] == 1
    row = store.latest(Module.MINER)
    assert row.type == "GITHUB_PUSH"
    assert row.payload["repository"] == "org/repo"
    assert row.payload["newCommits"] == 4
    assert row.payload["since"] == since.isoformat()


def test_delta_cannot_overwrite_provenance_fields(store, clock):
    delta = DeltaSource("gh-hook", "GITHUB_PUSH", {"source": "spoof", "timestamp": "x", "since": "y", "newCommits": 1})

    Miner(store, sources=[]).run(MinerConfig(extra_sources=(delta,)))

    payload = store.latest(Module.MINER).payload
    assert payload["source"] == "gh-hook"
    assert payload["timestamp"] == clock.now.isoformat()
    assert payload["since"] is None
    assert payload["newCommits"] == 1


def test_failing_source_does_not_block_others(store):
    class BrokenSource(DiscoverySource):
        name = "broken"
        record_type = "BROKEN_SCAN"

        def scan(self, since):
            raise ConnectionError("upstream unavailable")

    result = Miner(store, sources=[BrokenSource(), DeltaSource("drive", "DRIVE_SCAN", {})]).run()

    assert result.success is False
    assert result.errors == ["broken mining failed: upstream unavailable"]
    assert result.steps == {"broken": False, "drive": True}
    assert [r.type for r in store.query()] == ["DRIVE_SCAN"]


def test_invalid_extra_source_rejected_before_any_write(store):
    result = Miner(store).run(MinerConfig(extra_sources=(DeltaSource("x", "", {}),)))

    assert result.success is False
    assert store.count() == 0


def test_build_sources():
    assert [s.name for s in build_sources(["GitHub", "drive"])] == ["github", "drive"]
    with pytest.raises(ValidationError, match="Unknown discovery source"):
        build_sources(["dropbox"])
