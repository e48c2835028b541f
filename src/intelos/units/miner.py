"""MINER: discovery and ingestion.

Turns commit/file deltas from discovery sources into INFO ledger records,
one per source per run. Shipped sources do not call any external API:
GitHub and Drive report empty deltas, and DeltaSource relays a delta a
caller (webhook, manual call) already holds.

Payload (GITHUB_SCAN / DRIVE_SCAN / source-defined type):
    {"timestamp": iso, "since": iso | null, "source": name, ...delta}
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable, Optional

from ..errors import ValidationError
from ..models.ledger import Module, Severity
from ..models.results import UnitResult
from .base import Unit, UnitConfig


class DiscoverySource:
    """Base class for discovery sources."""

    name: str = "source"
    record_type: str = "SCAN"

    def scan(self, since: Optional[datetime]) -> dict[str, Any]:
        """Return the delta observed since the given instant."""
        raise NotImplementedError


class GitHubSource(DiscoverySource):
    """Repository commit scan (no API integration; empty delta)."""

    name = "github"
    record_type = "GITHUB_SCAN"

    def scan(self, since: Optional[datetime]) -> dict[str, Any]:
        return {"repositories": [], "newCommits": 0, "changedFiles": 0}


class DriveSource(DiscoverySource):
    """Drive file-change scan (no API integration; empty delta)."""

    name = "drive"
    record_type = "DRIVE_SCAN"

    def scan(self, since: Optional[datetime]) -> dict[str, Any]:
        return {"files": [], "newFiles": 0, "modifiedFiles": 0}


class DeltaSource(DiscoverySource):
    """Relays a delta delivered by a webhook or manual call."""

    def __init__(self, name: str, record_type: str, delta: dict[str, Any]):
        self.name = name
        self.record_type = record_type
        self.delta = dict(delta)

    def scan(self, since: Optional[datetime]) -> dict[str, Any]:
        return dict(self.delta)


BUILTIN_SOURCES: dict[str, type[DiscoverySource]] = {
    GitHubSource.name: GitHubSource,
    DriveSource.name: DriveSource,
}


def build_sources(names: Iterable[str]) -> list[DiscoverySource]:
    """Instantiate built-in sources by name.

    Raises:
        ValidationError: For an unknown source name
    """
    sources: list[DiscoverySource] = []
    for name in names:
        source_cls = BUILTIN_SOURCES.get(name.strip().lower())
        if source_cls is None:
            raise ValidationError(
                f"Unknown discovery source: {name!r} (expected one of {', '.join(sorted(BUILTIN_SOURCES))})"
            )
        sources.append(source_cls())
    return sources


@dataclass(frozen=True)
class MinerConfig(UnitConfig):
    last_mine_time: Optional[datetime] = None
    extra_sources: tuple[DiscoverySource, ...] = field(default_factory=tuple)

    def validate(self) -> None:
        for source in self.extra_sources:
            if not source.name or not source.name.strip():
                raise ValidationError("Invalid config: discovery source name must be non-empty")
            if not source.record_type or len(source.record_type) > 64:
                raise ValidationError(
                    f"Invalid config: record type for source {source.name!r} must be 1-64 characters"
                )


class Miner(Unit):
    name = "miner"
    module = Module.MINER
    count_kinds = ("entries_created", "entries_updated")
    config_class = MinerConfig

    def __init__(self, *args: Any, sources: Optional[Iterable[DiscoverySource]] = None, **kwargs: Any):
        super().__init__(*args, **kwargs)
        self.sources = list(sources) if sources is not None else [GitHubSource(), DriveSource()]

    def execute(self, config: MinerConfig, result: UnitResult) -> None:
        for source in [*self.sources, *config.extra_sources]:
            self.step(
                result,
                source.name,
                self._mine_source,
                source,
                config.last_mine_time,
                result,
                failure=f"{source.name} mining failed",
            )

    def _mine_source(self, source: DiscoverySource, since: Optional[datetime], result: UnitResult) -> int:
        delta = source.scan(since)
        # Caller deltas cannot override the record's own provenance fields.
        payload = {
            **delta,
            "timestamp": self.store.clock().isoformat(),
            "since": since.isoformat() if since else None,
            "source": source.name,
        }
        record_id = self.emit(
            source.record_type,
            payload,
            severity=Severity.INFO,
            source_reference=f"{source.name}-scan",
            discriminator=source.name,
        )
        result.bump("entries_created")
        return record_id
