"""Configuration management for Intelligence OS."""

import logging
import os
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, Field

from .errors import ValidationError

try:
    import tomllib  # Python 3.11+
except ImportError:
    import tomli as tomllib  # Python < 3.11

logger = logging.getLogger(__name__)

CONFIG_DIR_NAME = ".intelos"
DEFAULT_DB_PATH = "state/intelos.sqlite"


def _find_repo_root(start_dir: Path) -> Path:
    """Find repository root by walking upward looking for .git or pyproject.toml."""
    current_dir = start_dir

    while True:
        if (current_dir / ".git").exists() or (current_dir / "pyproject.toml").exists():
            return current_dir

        parent_dir = current_dir.parent

        # Stop if we reach filesystem root
        if parent_dir == current_dir:
            return start_dir

        current_dir = parent_dir


def repo_config_path(start_dir: Optional[Path] = None) -> Path:
    """Location of the repo-local config file (which may not exist yet)."""
    return _find_repo_root(start_dir or Path.cwd()) / CONFIG_DIR_NAME / "config.toml"


def _load_repo_config_data(repo_root: Path) -> Optional[dict]:
    """Load repo config data from .intelos/config.toml if it exists."""
    config_file = repo_root / CONFIG_DIR_NAME / "config.toml"

    if not config_file.exists():
        return None

    try:
        with open(config_file, "rb") as f:
            return tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        logger.warning(f"Ignoring malformed {config_file}: {e}")
        return None


def _nested_get(data: Optional[dict[str, Any]], path: list[str]) -> Any:
    cur: Any = data or {}
    for key in path:
        if not isinstance(cur, dict) or key not in cur:
            return None
        cur = cur[key]
    return cur


def _as_int(value: Any, *, name: str) -> int:
    if isinstance(value, bool):
        raise ValidationError(f"Invalid config: {name} must be an int")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            pass
    raise ValidationError(f"Invalid config: {name} must be an int")


def _as_float(value: Any, *, name: str) -> float:
    if isinstance(value, bool):
        raise ValidationError(f"Invalid config: {name} must be a number")
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            pass
    raise ValidationError(f"Invalid config: {name} must be a number")


def _pick(env_name: str, repo_data: Optional[dict], path: list[str], default: Any) -> Any:
    """Resolve one setting: repo config.toml, then environment, then default."""
    repo_value = _nested_get(repo_data, path)
    if repo_value is not None:
        return repo_value
    env_value = os.environ.get(env_name)
    if env_value is not None and env_value.strip():
        return env_value
    return default


class MinerSettings(BaseModel):
    """Discovery sources the Miner scans each run."""

    sources: list[str] = Field(default_factory=lambda: ["github", "drive"])


class ReaperSettings(BaseModel):
    max_batch_size: int = Field(default=50)


class HunterSettings(BaseModel):
    window: int = Field(default=100)
    drift_threshold: float = Field(default=30)
    pattern_limit: int = Field(default=50)


class SeekerSettings(BaseModel):
    window: int = Field(default=50)
    min_similarity: float = Field(default=0.6)
    max_relationships: int = Field(default=100)


class SinEaterSettings(BaseModel):
    scan_limit: int = Field(default=100)


class AnalystSettings(BaseModel):
    briefing_days: int = Field(default=7)
    timeline_days: int = Field(default=30)


class IntelConfig(BaseModel):
    """Configuration for the ledger, its units and the dashboard API."""

    db_path: Path = Field(default_factory=lambda: Path(DEFAULT_DB_PATH))
    analyses_db_path: Optional[Path] = Field(
        default=None,
        description="Separate sqlite file holding the analyses table; None means the ledger file",
    )
    resonance: float = Field(default=1.67)
    api_host: str = Field(default="127.0.0.1")
    api_port: int = Field(default=8080)

    miner: MinerSettings = Field(default_factory=MinerSettings)
    reaper: ReaperSettings = Field(default_factory=ReaperSettings)
    hunter: HunterSettings = Field(default_factory=HunterSettings)
    seeker: SeekerSettings = Field(default_factory=SeekerSettings)
    sin_eater: SinEaterSettings = Field(default_factory=SinEaterSettings)
    analyst: AnalystSettings = Field(default_factory=AnalystSettings)

    model_config = {"frozen": False}

    @property
    def resonance_score(self) -> int:
        """Resonance scaled by 100, as stored on ledger rows."""
        return int(round(self.resonance * 100))

    @classmethod
    def from_env(
        cls,
        cli_db_path: Optional[str] = None,
        start_dir: Optional[Path] = None,
    ) -> "IntelConfig":
        """Load configuration with the following precedence:

        1. CLI --db option (database path only)
        2. repo-local .intelos/config.toml (walk upward from CWD)
        3. INTELOS_* environment variables
        4. Defaults

        Relative database paths resolve against the repo root.

        Raises:
            ValidationError: If a configured value has the wrong type
        """
        repo_root = _find_repo_root(start_dir or Path.cwd())
        data = _load_repo_config_data(repo_root)

        db_value = cli_db_path or _pick("INTELOS_DB", data, ["ledger", "db_path"], DEFAULT_DB_PATH)
        db_path = Path(str(db_value)).expanduser()
        if not db_path.is_absolute():
            db_path = (repo_root / db_path).resolve()

        analyses_value = _pick("INTELOS_ANALYSES_DB", data, ["ledger", "analyses_db_path"], None)
        analyses_db_path: Optional[Path] = None
        if analyses_value:
            analyses_db_path = Path(str(analyses_value)).expanduser()
            if not analyses_db_path.is_absolute():
                analyses_db_path = (repo_root / analyses_db_path).resolve()

        sources = _pick("INTELOS_MINER_SOURCES", data, ["units", "miner", "sources"], ["github", "drive"])
        if isinstance(sources, str):
            sources = [s.strip() for s in sources.split(",") if s.strip()]
        if not isinstance(sources, list) or not all(isinstance(s, str) for s in sources):
            raise ValidationError("Invalid config: [units.miner].sources must be a list of strings")

        return cls(
            db_path=db_path,
            analyses_db_path=analyses_db_path,
            resonance=_as_float(
                _pick("INTELOS_RESONANCE", data, ["ledger", "resonance"], 1.67), name="[ledger].resonance"
            ),
            api_host=str(_pick("INTELOS_API_HOST", data, ["api", "host"], "127.0.0.1")),
            api_port=_as_int(
                _pick("INTELOS_API_PORT", data, ["api", "port"], os.environ.get("PORT", 8080)),
                name="[api].port",
            ),
            miner=MinerSettings(sources=sources),
            reaper=ReaperSettings(
                max_batch_size=_as_int(
                    _pick("INTELOS_REAPER_BATCH_SIZE", data, ["units", "reaper", "max_batch_size"], 50),
                    name="[units.reaper].max_batch_size",
                ),
            ),
            hunter=HunterSettings(
                window=_as_int(
                    _pick("INTELOS_HUNTER_WINDOW", data, ["units", "hunter", "window"], 100),
                    name="[units.hunter].window",
                ),
                drift_threshold=_as_float(
                    _pick("INTELOS_HUNTER_DRIFT_THRESHOLD", data, ["units", "hunter", "drift_threshold"], 30),
                    name="[units.hunter].drift_threshold",
                ),
                pattern_limit=_as_int(
                    _pick("INTELOS_HUNTER_PATTERN_LIMIT", data, ["units", "hunter", "pattern_limit"], 50),
                    name="[units.hunter].pattern_limit",
                ),
            ),
            seeker=SeekerSettings(
                window=_as_int(
                    _pick("INTELOS_SEEKER_WINDOW", data, ["units", "seeker", "window"], 50),
                    name="[units.seeker].window",
                ),
                min_similarity=_as_float(
                    _pick("INTELOS_SEEKER_MIN_SIMILARITY", data, ["units", "seeker", "min_similarity"], 0.6),
                    name="[units.seeker].min_similarity",
                ),
                max_relationships=_as_int(
                    _pick("INTELOS_SEEKER_MAX_RELATIONSHIPS", data, ["units", "seeker", "max_relationships"], 100),
                    name="[units.seeker].max_relationships",
                ),
            ),
            sin_eater=SinEaterSettings(
                scan_limit=_as_int(
                    _pick("INTELOS_SIN_EATER_SCAN_LIMIT", data, ["units", "sin_eater", "scan_limit"], 100),
                    name="[units.sin_eater].scan_limit",
                ),
            ),
            analyst=AnalystSettings(
                briefing_days=_as_int(
                    _pick("INTELOS_ANALYST_BRIEFING_DAYS", data, ["units", "analyst", "briefing_days"], 7),
                    name="[units.analyst].briefing_days",
                ),
                timeline_days=_as_int(
                    _pick("INTELOS_ANALYST_TIMELINE_DAYS", data, ["units", "analyst", "timeline_days"], 30),
                    name="[units.analyst].timeline_days",
                ),
            ),
        )

    def to_toml_str(self) -> str:
        """Generate a .intelos/config.toml reflecting this configuration."""
        sources = ", ".join(f'"{s}"' for s in self.miner.sources)
        analyses_line = f'analyses_db_path = "{self.analyses_db_path}"\n' if self.analyses_db_path else ""
        return f"""# Intelligence OS configuration

[ledger]
db_path = "{self.db_path}"
{analyses_line}resonance = {self.resonance}

[api]
host = "{self.api_host}"
port = {self.api_port}

[units.miner]
sources = [{sources}]

[units.reaper]
max_batch_size = {self.reaper.max_batch_size}

[units.hunter]
window = {self.hunter.window}
drift_threshold = {self.hunter.drift_threshold}
pattern_limit = {self.hunter.pattern_limit}

[units.seeker]
window = {self.seeker.window}
min_similarity = {self.seeker.min_similarity}
max_relationships = {self.seeker.max_relationships}

[units.sin_eater]
scan_limit = {self.sin_eater.scan_limit}

[units.analyst]
briefing_days = {self.analyst.briefing_days}
timeline_days = {self.analyst.timeline_days}
"""
