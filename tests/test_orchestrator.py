"""Tests for cycle orchestration."""

import pytest

from intelos.errors import ValidationError
from intelos.models.ledger import Module
from intelos.orchestrator import UNIT_ORDER, CycleRunner, normalize_selection, selection_from_flags
from intelos.units import Hunter, Miner, Reaper


def test_full_cycle_has_six_results_in_order(service, seed_analyses):
    seed_analyses([{"drift": 45}, {}])

    result = service.cycle()

    assert list(result.per_unit_results) == ["miner", "reaper", "hunter", "seeker", "sin_eater", "analyst"]
    assert result.success is True
    assert result.elapsed_ms >= 0
    assert result.per_unit_results["reaper"].counts["entries_created"] == 2
    assert result.per_unit_results["hunter"].counts["anomalies_detected"] == 1
    assert service.store.latest(Module.ANALYST) is not None

    api = result.to_api_dict()
    assert list(api["results"]) == ["miner", "reaper", "hunter", "seeker", "sinEater", "analyst"]
    assert api["lambda"] == 1.67
    assert api["results"]["reaper"]["entriesCreated"] == 2


def test_selection_runs_in_pipeline_order(service):
    result = service.cycle(["analyst", "Sin-Eater", "miner"])

    assert list(result.per_unit_results) == ["miner", "sin_eater", "analyst"]


def test_unknown_unit_rejected_before_anything_runs(service):
    with pytest.raises(ValidationError, match="oracle"):
        service.cycle(["miner", "oracle"])
    assert service.store.count() == 0


def test_unit_failure_does_not_stop_the_cycle(store, tmp_path):
    from intelos.analysis import AnalysisReader

    missing = AnalysisReader(tmp_path / "no-analyses.sqlite")
    runner = CycleRunner(
        {"miner": Miner(store), "reaper": Reaper(store, missing), "hunter": Hunter(store, missing)}
    )

    result = runner.run_cycle(["miner", "reaper", "hunter"])

    assert result.success is False
    assert result.per_unit_results["miner"].success is True
    assert result.per_unit_results["reaper"].success is False
    assert result.per_unit_results["hunter"].success is False
    assert store.count() == 2


def test_crashing_unit_is_contained(store, monkeypatch):
    def explode(self, config=None):
        raise RuntimeError("boom")

    monkeypatch.setattr(Reaper, "run", explode)
    runner = CycleRunner({"miner": Miner(store), "reaper": Reaper(store)})

    result = runner.run_cycle()

    assert list(result.per_unit_results) == ["miner", "reaper"]
    assert result.per_unit_results["reaper"].errors == ["reaper crashed: boom"]
    assert result.success is False


def test_unregistered_unit_is_rejected(store):
    runner = CycleRunner({"miner": Miner(store)})
    with pytest.raises(ValidationError, match="not available"):
        runner.run_cycle(["reaper"])


def test_normalize_selection():
    assert normalize_selection(None) == list(UNIT_ORDER)
    assert normalize_selection("Hunter") == ["hunter"]
    assert normalize_selection([]) == []
    with pytest.raises(ValidationError):
        normalize_selection(["ghost"])


def test_selection_from_flags():
    assert selection_from_flags({}) == list(UNIT_ORDER)
    assert selection_from_flags({"includeMiner": False, "includeSinEater": False}) == [
        "reaper",
        "hunter",
        "seeker",
        "analyst",
    ]
    with pytest.raises(ValidationError):
        selection_from_flags({"includeOracle": True})
    with pytest.raises(ValidationError):
        selection_from_flags({"includeMiner": "no"})
