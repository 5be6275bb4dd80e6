"""
BotSight settings.

Settings are layered, later layers winning:
1. Dataclass defaults
2. A config file (YAML, TOML or JSON), given explicitly or found on the search path
3. BOTSIGHT_* environment variables
4. CLI options, applied by the caller

Detection thresholds are not settings. They are fixed in
botsight.core.constants.THRESHOLDS.
"""

import json
import logging
import logging.handlers
import os
import tomllib
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)


# ============================================================================
# Configuration Dataclasses
# ============================================================================


@dataclass
class StoreConfig:
    """Configuration for the baseline store."""

    db_path: str = str(Path.home() / ".botsight" / "analysis.db")
    # Log every SQL statement (SQLAlchemy echo)
    echo: bool = False


@dataclass
class AnalysisConfig:
    """Configuration for per-game analysis."""

    # Players with fewer logged actions are left out of the game result
    min_actions: int = 20

    # Compare each player against a baseline that leaves out their own history
    exclude_subject_from_baseline: bool = True

    # Accounts confirmed human; reported, never used to alter scores
    verified_humans: list[int] = field(default_factory=list)


@dataclass
class BatchConfig:
    """Configuration for multi-replay batch analysis."""

    max_workers: int = max(1, (os.cpu_count() or 4) - 1)
    replay_suffix: str = ".json"


@dataclass
class LoggingConfig:
    """Root logger settings."""

    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    file: str | None = None
    file_max_bytes: int = 10 * 1024 * 1024  # 10MB
    file_backup_count: int = 5


@dataclass
class BotSightConfig:
    """All BotSight settings, one dataclass per section."""

    store: StoreConfig = field(default_factory=StoreConfig)
    analysis: AnalysisConfig = field(default_factory=AnalysisConfig)
    batch: BatchConfig = field(default_factory=BatchConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    # Version of the config format
    config_version: str = "1.0"


# ============================================================================
# Configuration Loading
# ============================================================================


def get_default_config_paths() -> list[Path]:
    """Candidate config locations, checked in order."""
    home = Path.home()
    xdg_config = Path(os.environ.get("XDG_CONFIG_HOME", str(home / ".config")))

    return [
        Path.cwd() / "botsight.yaml",
        Path.cwd() / "botsight.toml",
        Path.cwd() / "botsight.json",
        Path.cwd() / ".botsight.yaml",
        xdg_config / "botsight" / "config.yaml",
        xdg_config / "botsight" / "config.toml",
        home / ".botsight.yaml",
    ]


def load_config_file(path: Path) -> dict[str, Any]:
    """Read one config file; the suffix picks the parser."""
    if not path.exists():
        return {}

    suffix = path.suffix.lower()
    if suffix in (".yaml", ".yml"):
        with open(path) as f:
            return yaml.safe_load(f) or {}
    elif suffix == ".toml":
        with open(path, "rb") as f:
            return tomllib.load(f)
    elif suffix == ".json":
        with open(path) as f:
            return json.load(f)
    else:
        logger.warning(f"Unknown config file format: {suffix}")
        return {}


ENV_MAPPINGS = {
    "BOTSIGHT_DB_PATH": ("store", "db_path"),
    "BOTSIGHT_DB_ECHO": ("store", "echo"),
    "BOTSIGHT_MIN_ACTIONS": ("analysis", "min_actions"),
    "BOTSIGHT_EXCLUDE_SUBJECT": ("analysis", "exclude_subject_from_baseline"),
    "BOTSIGHT_MAX_WORKERS": ("batch", "max_workers"),
    "BOTSIGHT_LOG_LEVEL": ("logging", "level"),
    "BOTSIGHT_LOG_FILE": ("logging", "file"),
}


def _coerce_env_value(value: str) -> Any:
    if value.lower() in ("true", "false"):
        return value.lower() == "true"
    if value.isdigit():
        return int(value)
    try:
        return float(value)
    except ValueError:
        return value


def load_env_config() -> dict[str, Any]:
    """Collect BOTSIGHT_* overrides into a nested settings dict."""
    config: dict[str, Any] = {}

    for env_var, (section, key) in ENV_MAPPINGS.items():
        value = os.environ.get(env_var)
        if value is None:
            continue
        config.setdefault(section, {})[key] = _coerce_env_value(value)

    return config


def merge_configs(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Merge override into base, descending into nested sections."""
    result = base.copy()

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = merge_configs(result[key], value)
        else:
            result[key] = value

    return result


def dict_to_config(data: dict[str, Any]) -> BotSightConfig:
    """Convert a dictionary to BotSightConfig, ignoring unknown keys."""
    config = BotSightConfig()

    for section in fields(config):
        values = data.get(section.name)
        if not isinstance(values, dict):
            continue
        target = getattr(config, section.name)
        for key, value in values.items():
            if hasattr(target, key):
                setattr(target, key, value)
            else:
                logger.warning(f"Ignoring unknown config key: {section.name}.{key}")

    return config


def load_config(config_file: Path | None = None, include_env: bool = True) -> BotSightConfig:
    """
    Build settings from a config file and the environment.

    Args:
        config_file: File to read; when omitted the first existing default path is used
        include_env: Apply BOTSIGHT_* overrides on top of the file

    Returns:
        Merged BotSightConfig
    """
    config_data: dict[str, Any] = {}

    if config_file:
        config_data = load_config_file(config_file)
        logger.info(f"Loaded config from: {config_file}")
    else:
        for path in get_default_config_paths():
            if path.exists():
                config_data = load_config_file(path)
                logger.info(f"Loaded config from: {path}")
                break

    if include_env:
        config_data = merge_configs(config_data, load_env_config())

    return dict_to_config(config_data)


# ============================================================================
# Configuration Saving
# ============================================================================


def config_to_dict(config: BotSightConfig) -> dict[str, Any]:
    """Convert BotSightConfig to a dictionary."""
    return asdict(config)


def save_config(config: BotSightConfig, path: Path) -> None:
    """
    Write settings out as YAML or JSON.

    Args:
        config: Settings to write
        path: Path to save to (.yaml, .yml or .json)
    """
    data = config_to_dict(config)
    suffix = path.suffix.lower()

    if suffix in (".yaml", ".yml"):
        with open(path, "w") as f:
            yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False)
    elif suffix == ".json":
        with open(path, "w") as f:
            json.dump(data, f, indent=2)
    else:
        raise ValueError(f"Unsupported config format for saving: {suffix}")

    logger.info(f"Saved config to: {path}")


# ============================================================================
# Logging Setup
# ============================================================================


def configure_logging(log_config: LoggingConfig, verbose: bool = False) -> None:
    """Configure the root logger from a LoggingConfig."""
    level = logging.DEBUG if verbose else getattr(logging, log_config.level.upper(), logging.INFO)

    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_config.file:
        Path(log_config.file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(
            logging.handlers.RotatingFileHandler(
                log_config.file,
                maxBytes=log_config.file_max_bytes,
                backupCount=log_config.file_backup_count,
            )
        )

    logging.basicConfig(level=level, format=log_config.format, handlers=handlers, force=True)


# ============================================================================
# Global Configuration
# ============================================================================

_global_config: BotSightConfig | None = None


def get_config() -> BotSightConfig:
    """Return the process-wide settings, loading them on first use."""
    global _global_config

    if _global_config is None:
        _global_config = load_config()

    return _global_config


def set_config(config: BotSightConfig) -> None:
    """Replace the process-wide settings."""
    global _global_config
    _global_config = config


def reset_config() -> None:
    """Forget the process-wide settings so the next get_config reloads."""
    global _global_config
    _global_config = None


# ============================================================================
# Configuration Templates
# ============================================================================

DEFAULT_CONFIG_YAML = """# BotSight Configuration

# Baseline store
store:
  # db_path: ~/.botsight/analysis.db
  echo: false

# Per-game analysis
analysis:
  min_actions: 20
  exclude_subject_from_baseline: true
  verified_humans: []

# Batch analysis of replay folders
batch:
  # max_workers: 4
  replay_suffix: .json

# Logging settings
logging:
  level: INFO
  # file: /path/to/botsight.log
"""


def generate_default_config(path: Path) -> None:
    """Write a commented starter config to path."""
    if path.suffix.lower() in (".yaml", ".yml"):
        path.write_text(DEFAULT_CONFIG_YAML)
    else:
        save_config(BotSightConfig(), path)

    logger.info(f"Wrote default config: {path}")
