"""The six intelligence units of the Phase 6 batch pipeline."""

from .analyst import Analyst, AnalystConfig
from .base import Unit, UnitConfig
from .hunter import Hunter, HunterConfig
from .miner import DeltaSource, DiscoverySource, DriveSource, GitHubSource, Miner, MinerConfig, build_sources
from .reaper import Reaper, ReaperConfig
from .seeker import Seeker, SeekerConfig, similarity
from .sin_eater import SinEater, SinEaterConfig

__all__ = [
    "Analyst",
    "AnalystConfig",
    "DeltaSource",
    "DiscoverySource",
    "DriveSource",
    "GitHubSource",
    "Hunter",
    "HunterConfig",
    "Miner",
    "MinerConfig",
    "Reaper",
    "ReaperConfig",
    "Seeker",
    "SeekerConfig",
    "SinEater",
    "SinEaterConfig",
    "Unit",
    "UnitConfig",
    "build_sources",
    "similarity",
]
