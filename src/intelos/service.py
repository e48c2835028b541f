"""Wiring: builds the store, the analysis reader, the units and the cycle runner from config."""

from __future__ import annotations

import logging
from typing import Iterable, Mapping, Optional

from .analysis import AnalysisReader
from .config import IntelConfig
from .ledger import Clock, LedgerStore
from .models.ledger import Module, Severity
from .models.results import CycleResult, LedgerListing, StatusReport
from .orchestrator import CycleRunner
from . import queries
from .units import (
    Analyst,
    AnalystConfig,
    Hunter,
    HunterConfig,
    Miner,
    MinerConfig,
    Reaper,
    ReaperConfig,
    Seeker,
    SeekerConfig,
    SinEater,
    SinEaterConfig,
    Unit,
    UnitConfig,
    build_sources,
)

logger = logging.getLogger(__name__)


class IntelligenceOS:
    """One configured instance of the pipeline, shared by the CLI and the HTTP API."""

    def __init__(self, config: IntelConfig, *, clock: Optional[Clock] = None):
        self.config = config
        self.store = LedgerStore(
            config.db_path,
            clock=clock,
            default_resonance_score=config.resonance_score,
        )
        self.analyses = AnalysisReader(config.analyses_db_path or config.db_path)

        common = {"resonance": config.resonance}
        self.miner = Miner(
            self.store,
            sources=build_sources(config.miner.sources),
            config=MinerConfig(),
            **common,
        )
        self.reaper = Reaper(
            self.store,
            self.analyses,
            config=ReaperConfig(max_batch_size=config.reaper.max_batch_size),
            **common,
        )
        self.hunter = Hunter(
            self.store,
            self.analyses,
            config=HunterConfig(
                window=config.hunter.window,
                drift_threshold=config.hunter.drift_threshold,
                pattern_limit=config.hunter.pattern_limit,
            ),
            **common,
        )
        self.seeker = Seeker(
            self.store,
            self.analyses,
            config=SeekerConfig(
                window=config.seeker.window,
                min_similarity=config.seeker.min_similarity,
                max_relationships=config.seeker.max_relationships,
            ),
            **common,
        )
        self.sin_eater = SinEater(
            self.store,
            config=SinEaterConfig(scan_limit=config.sin_eater.scan_limit),
            **common,
        )
        self.analyst = Analyst(
            self.store,
            config=AnalystConfig(
                briefing_days=config.analyst.briefing_days,
                timeline_days=config.analyst.timeline_days,
            ),
            **common,
        )
        self.runner = CycleRunner(self.units, resonance=config.resonance)
        logger.debug(f"Intelligence OS ready (ledger={config.db_path})")

    @property
    def units(self) -> dict[str, Unit]:
        return {
            "miner": self.miner,
            "reaper": self.reaper,
            "hunter": self.hunter,
            "seeker": self.seeker,
            "sin_eater": self.sin_eater,
            "analyst": self.analyst,
        }

    def status(self) -> StatusReport:
        return queries.status(self.store, self.config.resonance)

    def ledger(
        self,
        module: Module | str | None = None,
        severity: Severity | str | None = None,
        limit: int = 50,
    ) -> LedgerListing:
        return queries.list_entries(self.store, module=module, severity=severity, limit=limit)

    def unreviewed(self, limit: int = 50) -> LedgerListing:
        return queries.unreviewed_errors(self.store, limit=limit)

    def review(self, record_id: int) -> bool:
        """Mark a ledger record reviewed; False if it already was."""
        return self.store.mark_processed(record_id)

    def cycle(
        self,
        selection: Optional[Iterable[str]] = None,
        configs: Optional[Mapping[str, UnitConfig]] = None,
    ) -> CycleResult:
        return self.runner.run_cycle(selection, configs)
