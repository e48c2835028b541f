"""SOUL SEEKER: relationship and cluster mapping over analyses (read-only).

RELATIONSHIP_MAP payload:
    {"totalRelationships": n, "relationships": [{"analysisA", "analysisB",
     "similarity", "commonPatterns"}]}   (first 20 kept)
CLUSTER_ANALYSIS payload:
    {"byStatus": [{"status", "count"}], "byRisk": [{"risk_level", "count"}],
     "totalClusters": n}
"""

from __future__ import annotations

from dataclasses import dataclass
from itertools import combinations
from typing import Callable, Optional

from ..errors import MalformedPayloadError, ValidationError
from ..models.analysis import Analysis
from ..models.ledger import Module, Severity
from ..models.results import UnitResult
from .base import Unit, UnitConfig, require_positive

RELATIONSHIPS_KEPT = 20
COMMON_PATTERNS_KEPT = 5

# (weight, predicate); similarity is the matched weight over the evaluated weight.
SIMILARITY_RULES: tuple[tuple[float, Callable[[Analysis, Analysis], bool]], ...] = (
    (0.3, lambda a, b: a.status == b.status),
    (0.3, lambda a, b: a.risk_level == b.risk_level),
    (0.2, lambda a, b: abs(a.truth_index - b.truth_index) < 20),
    (0.2, lambda a, b: abs(a.integrity_index - b.integrity_index) < 20),
)


def similarity(a: Analysis, b: Analysis) -> float:
    """Weighted closeness of two analyses in [0, 1]. Symmetric."""
    matched = 0.0
    evaluated = 0.0
    for weight, predicate in SIMILARITY_RULES:
        evaluated += weight
        if predicate(a, b):
            matched += weight
    if evaluated <= 0:
        return 0.0
    return round(matched / evaluated, 4)


def common_patterns(a: Analysis, b: Analysis) -> list:
    """Patterns both analyses report, in a's order; empty if either is unreadable."""
    try:
        patterns_b = b.patterns()
        return [p for p in a.patterns() if p in patterns_b][:COMMON_PATTERNS_KEPT]
    except MalformedPayloadError:
        return []


@dataclass(frozen=True)
class SeekerConfig(UnitConfig):
    window: int = 50
    min_similarity: float = 0.6
    max_relationships: int = 100

    def validate(self) -> None:
        require_positive(self.window, name="window")
        require_positive(self.max_relationships, name="max_relationships")
        if not 0.0 < float(self.min_similarity) <= 1.0:
            raise ValidationError(f"Invalid config: min_similarity must be within (0, 1] (got {self.min_similarity!r})")


class Seeker(Unit):
    name = "seeker"
    module = Module.SEEKER
    count_kinds = ("relationships_found", "clusters_identified")
    config_class = SeekerConfig

    def execute(self, config: SeekerConfig, result: UnitResult) -> None:
        self.step(result, "relationships", self.map_relationships, config, result, failure="Relationship mapping failed")
        self.step(result, "clusters", self.identify_clusters, result, failure="Cluster identification failed")

    def map_relationships(self, config: SeekerConfig, result: UnitResult) -> Optional[int]:
        window = self.usable(result, self.require_analyses().recent(config.window))
        relationships = []
        for a, b in combinations(window, 2):
            if len(relationships) >= config.max_relationships:
                break
            score = similarity(a, b)
            if score >= config.min_similarity:
                relationships.append(
                    {
                        "analysisA": a.analysis_id,
                        "analysisB": b.analysis_id,
                        "similarity": score,
                        "commonPatterns": common_patterns(a, b),
                    }
                )
        if not relationships:
            return None
        record_id = self.emit(
            "RELATIONSHIP_MAP",
            {
                "totalRelationships": len(relationships),
                "relationships": relationships[:RELATIONSHIPS_KEPT],
            },
            severity=Severity.INFO,
            source_reference="relationship-map",
            discriminator="relationships",
        )
        result.bump("relationships_found", len(relationships))
        return record_id

    def identify_clusters(self, result: UnitResult) -> Optional[int]:
        analyses = self.require_analyses()
        by_status = analyses.count_by("status")
        by_risk = analyses.count_by("risk_level")
        total = len(by_status) + len(by_risk)
        if total == 0:
            return None
        record_id = self.emit(
            "CLUSTER_ANALYSIS",
            {"byStatus": by_status, "byRisk": by_risk, "totalClusters": total},
            severity=Severity.INFO,
            source_reference="cluster-analysis",
            discriminator="clusters",
        )
        result.bump("clusters_identified", total)
        return record_id
