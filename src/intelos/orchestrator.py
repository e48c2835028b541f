"""Cycle runner: chains selected units in the fixed pipeline order."""

from __future__ import annotations

import logging
import time
from typing import Iterable, Mapping, Optional

from .errors import ValidationError
from .models.results import CycleResult, UnitResult
from .units.base import Unit, UnitConfig

logger = logging.getLogger(__name__)

# Reaper consumes what discovery feeds; Sin-Eater compares Miner and
# Reaper timestamps, so it must follow both; Analyst summarises everything.
UNIT_ORDER: tuple[str, ...] = ("miner", "reaper", "hunter", "seeker", "sin_eater", "analyst")

# Cycle request flags accepted from the dashboard.
INCLUDE_FLAGS: dict[str, str] = {
    "includeMiner": "miner",
    "includeReaper": "reaper",
    "includeHunter": "hunter",
    "includeSeeker": "seeker",
    "includeSinEater": "sin_eater",
    "includeAnalyst": "analyst",
}


def normalize_unit_name(name: str) -> str:
    return name.strip().lower().replace("-", "_")


def normalize_selection(selection: Optional[Iterable[str]]) -> list[str]:
    """Selected unit names in execution order.

    Raises:
        ValidationError: For an unknown unit name
    """
    if selection is None:
        return list(UNIT_ORDER)
    if isinstance(selection, str):
        selection = [selection]
    wanted = {normalize_unit_name(n) for n in selection}
    unknown = sorted(wanted - set(UNIT_ORDER))
    if unknown:
        raise ValidationError(f"Unknown unit(s): {', '.join(unknown)} (expected any of {', '.join(UNIT_ORDER)})")
    return [name for name in UNIT_ORDER if name in wanted]


def selection_from_flags(flags: Mapping[str, object]) -> list[str]:
    """Translate includeX flags (default True when absent) into a selection."""
    unknown = sorted(set(flags) - set(INCLUDE_FLAGS))
    if unknown:
        raise ValidationError(f"Unknown cycle flag(s): {', '.join(unknown)}")
    for flag, value in flags.items():
        if not isinstance(value, bool):
            raise ValidationError(f"Cycle flag {flag} must be a boolean")
    return [unit for flag, unit in INCLUDE_FLAGS.items() if flags.get(flag, True) is not False]


class CycleRunner:
    """Runs units strictly in UNIT_ORDER; no rollback, no abort on failure."""

    def __init__(self, units: Mapping[str, Unit], *, resonance: float = 1.67):
        unknown = sorted(set(units) - set(UNIT_ORDER))
        if unknown:
            raise ValidationError(f"Unknown unit(s) registered: {', '.join(unknown)}")
        self.units = dict(units)
        self.resonance = resonance

    def run_cycle(
        self,
        selection: Optional[Iterable[str]] = None,
        configs: Optional[Mapping[str, UnitConfig]] = None,
    ) -> CycleResult:
        """Run the selected units once each.

        Args:
            selection: Unit names to run (default: all registered, in order)
            configs: Optional per-unit config overrides keyed by unit name

        Returns:
            CycleResult whose per_unit_results has one entry per selected unit

        Raises:
            ValidationError: For unknown or unregistered unit names (before anything runs)
        """
        if selection is None:
            names = [name for name in UNIT_ORDER if name in self.units]
        else:
            names = normalize_selection(selection)
        missing = [n for n in names if n not in self.units]
        if missing:
            raise ValidationError(f"Unit(s) not available: {', '.join(missing)}")

        configs = configs or {}
        logger.info(f"Cycle started: {', '.join(names)}")
        start = time.monotonic()

        results: dict[str, UnitResult] = {}
        for name in names:
            unit = self.units[name]
            try:
                results[name] = unit.run(configs.get(name))
            except Exception as e:
                # Units isolate their own sub-steps; this only catches a broken unit.
                logger.exception(f"Unit {name} raised out of run()")
                failed = unit.new_result()
                failed.fail(f"{name} crashed: {e}")
                results[name] = failed

        elapsed_ms = int((time.monotonic() - start) * 1000)
        success = all(r.success for r in results.values())
        logger.info(f"Cycle finished in {elapsed_ms}ms success={success}")
        return CycleResult(
            success=success,
            elapsed_ms=elapsed_ms,
            per_unit_results=results,
            resonance=self.resonance,
        )
