"""Pydantic models for unit, cycle and query results."""

from typing import Any

from pydantic import BaseModel, Field

from .ledger import LedgerRecord


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


class UnitResult(BaseModel):
    """Outcome of one unit invocation.

    counts holds the unit's kinds (all present, zero-initialised);
    steps maps each independent sub-step to whether it succeeded.
    """

    unit: str
    success: bool = True
    counts: dict[str, int] = Field(default_factory=dict)
    steps: dict[str, bool] = Field(default_factory=dict)
    errors: list[str] = Field(default_factory=list)
    resonance: float = 1.67

    model_config = {"frozen": False}

    def bump(self, kind: str, n: int = 1) -> None:
        self.counts[kind] = self.counts.get(kind, 0) + n

    def fail(self, message: str, step: str | None = None) -> None:
        """Record an error; marks the step (if any) and the result failed."""
        self.errors.append(message)
        self.success = False
        if step is not None:
            self.steps[step] = False

    def to_api_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"unit": self.unit, "success": self.success}
        for kind, value in self.counts.items():
            data[_camel(kind)] = value
        data["steps"] = {_camel(k): v for k, v in self.steps.items()}
        data["errors"] = list(self.errors)
        data["lambda"] = self.resonance
        return data


class CycleResult(BaseModel):
    """Outcome of one orchestrated cycle; per_unit_results is in execution order."""

    success: bool
    elapsed_ms: int
    per_unit_results: dict[str, UnitResult] = Field(default_factory=dict)
    resonance: float = 1.67

    def to_api_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "cycleTime": self.elapsed_ms,
            "results": {_camel(name): r.to_api_dict() for name, r in self.per_unit_results.items()},
            "lambda": self.resonance,
        }


class StatusReport(BaseModel):
    """Ledger-wide counts for the dashboard status panel."""

    total_entries: int
    by_module: dict[str, int]
    by_severity: dict[str, int]
    resonance: float = 1.67

    def to_api_dict(self) -> dict[str, Any]:
        return {
            "totalEntries": self.total_entries,
            "byModule": dict(self.by_module),
            "bySeverity": dict(self.by_severity),
            "lambda": self.resonance,
        }


class LedgerListing(BaseModel):
    """A filtered, newest-first slice of the ledger."""

    count: int
    entries: list[LedgerRecord]

    def to_api_dict(self) -> dict[str, Any]:
        return {
            "count": self.count,
            "entries": [e.to_api_dict() for e in self.entries],
        }
