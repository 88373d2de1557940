"""
Configuration management for sql_insight.

Supports:
- TOML config files
- Environment variables
- Command-line overrides
- Defaults

Priority (highest to lowest):
1. Command-line arguments
2. Environment variables
3. Config file
4. Defaults

The collector core only ever sees the materialized Config; nothing below
the CLI reads the environment.
"""

import logging
import os
from pathlib import Path
from dataclasses import dataclass, field, asdict
from typing import Optional, Dict, Any, List, Mapping

try:
    import tomllib  # Python 3.11+
except ImportError:
    try:
        import tomli as tomllib  # Fallback for older Python
    except ImportError:
        tomllib = None

from .protocol.levels import CollectionLevel

logger = logging.getLogger(__name__)


# Default config file locations (searched in order)
CONFIG_SEARCH_PATHS = [
    Path.cwd() / "sql-insight.toml",
    Path.cwd() / "config.toml",
    Path.home() / ".sql_insight" / "config.toml",
    Path.home() / ".config" / "sql_insight" / "config.toml",
]

ENGINES = ("mysql", "postgres")
RUN_MODES = ("once", "daemon")
BACKOFF_POLICIES = ("fixed", "exponential")
OUTPUT_FORMATS = ("json", "pretty-json")

MAX_JITTER_PCT = 0.9


class ConfigError(ValueError):
    """A configuration value could not be interpreted."""


@dataclass
class DatabaseConfig:
    """Connection URLs; only the selected engine's URL is required."""
    mysql_url: Optional[str] = None
    postgres_url: Optional[str] = None

    def url_for(self, engine: str) -> Optional[str]:
        return self.mysql_url if engine == "mysql" else self.postgres_url


@dataclass
class LimitsConfig:
    """Per-resource bounds."""
    table_limit: int = 200
    index_limit: int = 500
    max_slow_log_bytes: int = 2_000_000
    max_error_log_bytes: int = 2_000_000
    max_error_log_lines: int = 2_000


@dataclass
class Level1Config:
    """Windowed capture settings."""
    slow_log_window_secs: int = 30
    long_query_time_secs: float = 0.2
    slow_log_path: Optional[str] = None
    error_log_path: Optional[str] = None
    hot_switch: bool = True
    restore_settings: bool = True


@dataclass
class ScheduleConfig:
    """How often and how persistently a collection cycle runs."""
    mode: str = "once"
    interval_secs: int = 60
    jitter_pct: float = 0.1
    timeout_secs: int = 120
    retry_times: int = 1
    retry_backoff_ms: int = 1000
    backoff_policy: str = "fixed"
    max_backoff_ms: int = 30_000
    max_cycles: Optional[int] = None

    @property
    def is_daemon(self) -> bool:
        return self.mode == "daemon"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class OutputConfig:
    """Output configuration."""
    format: str = "json"
    summary: bool = False
    verbose: bool = False
    quiet: bool = False


# (env var, section, field, converter)
ENV_OVERRIDES = [
    ("DB_ENGINE", None, "engine", str),
    ("MYSQL_URL", "database", "mysql_url", str),
    ("POSTGRES_URL", "database", "postgres_url", str),
    ("LEVEL0_TABLE_LIMIT", "limits", "table_limit", int),
    ("LEVEL0_INDEX_LIMIT", "limits", "index_limit", int),
    ("LEVEL1_SLOW_LOG_WINDOW_SECS", "level1", "slow_log_window_secs", int),
    ("LEVEL1_LONG_QUERY_TIME_SECS", "level1", "long_query_time_secs", float),
    ("LEVEL1_SLOW_LOG_PATH", "level1", "slow_log_path", str),
    ("LEVEL1_ERROR_LOG_PATH", "level1", "error_log_path", str),
    ("LEVEL1_MAX_SLOW_LOG_BYTES", "limits", "max_slow_log_bytes", int),
    ("LEVEL1_MAX_ERROR_LOG_BYTES", "limits", "max_error_log_bytes", int),
    ("LEVEL1_MAX_ERROR_LOG_LINES", "limits", "max_error_log_lines", int),
    ("RUN_MODE", "schedule", "mode", str),
    ("SCHEDULE_INTERVAL_SECS", "schedule", "interval_secs", int),
    ("SCHEDULE_JITTER_PCT", "schedule", "jitter_pct", float),
    ("SCHEDULE_TIMEOUT_SECS", "schedule", "timeout_secs", int),
    ("SCHEDULE_RETRY_TIMES", "schedule", "retry_times", int),
    ("SCHEDULE_RETRY_BACKOFF_MS", "schedule", "retry_backoff_ms", int),
    ("SCHEDULE_MAX_CYCLES", "schedule", "max_cycles", int),
]

# argparse dest -> (section, field)
ARG_OVERRIDES = {
    "mysql_url": ("database", "mysql_url"),
    "postgres_url": ("database", "postgres_url"),
    "table_limit": ("limits", "table_limit"),
    "index_limit": ("limits", "index_limit"),
    "max_slow_log_bytes": ("limits", "max_slow_log_bytes"),
    "max_error_log_bytes": ("limits", "max_error_log_bytes"),
    "max_error_log_lines": ("limits", "max_error_log_lines"),
    "slow_log_window_secs": ("level1", "slow_log_window_secs"),
    "long_query_time_secs": ("level1", "long_query_time_secs"),
    "slow_log_path": ("level1", "slow_log_path"),
    "error_log_path": ("level1", "error_log_path"),
    "run_mode": ("schedule", "mode"),
    "interval_secs": ("schedule", "interval_secs"),
    "jitter_pct": ("schedule", "jitter_pct"),
    "timeout_secs": ("schedule", "timeout_secs"),
    "retry_times": ("schedule", "retry_times"),
    "retry_backoff_ms": ("schedule", "retry_backoff_ms"),
    "backoff_policy": ("schedule", "backoff_policy"),
    "max_cycles": ("schedule", "max_cycles"),
    "output": ("output", "format"),
}


@dataclass
class Config:
    """Main configuration container."""
    engine: str = "mysql"
    collect_level: CollectionLevel = CollectionLevel.LEVEL1
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    limits: LimitsConfig = field(default_factory=LimitsConfig)
    level1: Level1Config = field(default_factory=Level1Config)
    schedule: ScheduleConfig = field(default_factory=ScheduleConfig)
    output: OutputConfig = field(default_factory=OutputConfig)

    # Source tracking
    _config_file: Optional[Path] = None

    @classmethod
    def load(cls, config_path: Optional[str] = None) -> "Config":
        """
        Load configuration from file.

        Args:
            config_path: Explicit path to config file. If None, searches default locations.

        Returns:
            Config instance with loaded values
        """
        config = cls()

        if config_path:
            path = Path(config_path)
            if not path.exists():
                raise FileNotFoundError(f"Config file not found: {config_path}")
        else:
            path = cls._find_config_file()

        if path:
            config = cls._load_from_file(path)
            config._config_file = path

        return config

    @classmethod
    def _find_config_file(cls) -> Optional[Path]:
        """Find config file in default locations."""
        for path in CONFIG_SEARCH_PATHS:
            if path.exists():
                return path
        return None

    @classmethod
    def _load_from_file(cls, path: Path) -> "Config":
        """Load config from TOML file."""
        if tomllib is None:
            raise ImportError(
                "TOML support requires Python 3.11+ or 'tomli' package. "
                "Install with: pip install tomli"
            )

        with open(path, "rb") as f:
            data = tomllib.load(f)

        return cls._from_dict(data)

    @classmethod
    def _from_dict(cls, data: Dict[str, Any]) -> "Config":
        """Create Config from dictionary."""
        config = cls()

        if "engine" in data:
            config.engine = str(data["engine"])
        if "collect_level" in data:
            config.collect_level = _parse_level(data["collect_level"])

        sections = {
            "database": config.database,
            "limits": config.limits,
            "level1": config.level1,
            "schedule": config.schedule,
            "output": config.output,
        }
        for name, target in sections.items():
            values = data.get(name) or {}
            for key, value in values.items():
                if not hasattr(target, key):
                    logger.warning("ignoring unknown config key [%s].%s", name, key)
                    continue
                setattr(target, key, value)

        return config

    def apply_env(self, environ: Optional[Mapping[str, str]] = None) -> "Config":
        """
        Override values from environment variables.

        Empty variables are ignored.

        Raises:
            ConfigError: a variable holds a value of the wrong type
        """
        environ = os.environ if environ is None else environ
        for var, section, name, convert in ENV_OVERRIDES:
            raw = environ.get(var)
            if raw is None or raw.strip() == "":
                continue
            try:
                value = convert(raw.strip())
            except ValueError:
                raise ConfigError(f"{var}={raw!r} is not a valid {convert.__name__}")
            target = self if section is None else getattr(self, section)
            setattr(target, name, value)
        return self

    def override_from_args(self, args) -> "Config":
        """
        Override config values from argparse namespace.

        Args with value None are ignored (keeping config file values).
        """
        if getattr(args, "engine", None):
            self.engine = args.engine
        if getattr(args, "collect_level", None):
            self.collect_level = _parse_level(args.collect_level)

        for dest, (section, name) in ARG_OVERRIDES.items():
            value = getattr(args, dest, None)
            if value is not None:
                setattr(getattr(self, section), name, value)

        if getattr(args, "no_slow_log_hot_switch", False):
            self.level1.hot_switch = False
        if getattr(args, "no_restore_slow_log_settings", False):
            self.level1.restore_settings = False

        if getattr(args, "summary", False):
            self.output.summary = True
        if getattr(args, "verbose", False):
            self.output.verbose = True
        if getattr(args, "quiet", False):
            self.output.quiet = True
            self.output.verbose = False

        return self

    def normalize(self) -> List[str]:
        """
        Replace out-of-range values with defaults.

        Returns:
            One warning per adjusted field (also logged)
        """
        warnings = []
        defaults = Config()

        def fallback(section: str, name: str, value, default):
            setattr(getattr(self, section), name, default)
            message = f"{section}.{name}={value} is invalid; falling back to {default}"
            warnings.append(message)
            logger.warning(message)

        for name in ("table_limit", "index_limit", "max_slow_log_bytes",
                     "max_error_log_bytes", "max_error_log_lines"):
            value = getattr(self.limits, name)
            if value <= 0:
                fallback("limits", name, value, getattr(defaults.limits, name))

        if self.level1.slow_log_window_secs <= 0:
            fallback("level1", "slow_log_window_secs", self.level1.slow_log_window_secs,
                     defaults.level1.slow_log_window_secs)
        if self.level1.long_query_time_secs <= 0:
            fallback("level1", "long_query_time_secs", self.level1.long_query_time_secs,
                     defaults.level1.long_query_time_secs)

        jitter = self.schedule.jitter_pct
        clamped = min(max(jitter, 0.0), MAX_JITTER_PCT)
        if clamped != jitter:
            fallback("schedule", "jitter_pct", jitter, clamped)

        if self.schedule.interval_secs <= 0:
            fallback("schedule", "interval_secs", self.schedule.interval_secs,
                     defaults.schedule.interval_secs)

        for name in ("slow_log_path", "error_log_path"):
            value = getattr(self.level1, name)
            if value is not None and not value.strip():
                setattr(self.level1, name, None)

        return warnings

    def validate(self) -> list:
        """
        Validate configuration.

        Returns:
            List of validation error messages (empty if valid)
        """
        errors = []

        if self.engine not in ENGINES:
            errors.append(f"Unknown engine '{self.engine}' (expected one of: {', '.join(ENGINES)})")
        elif not self.database.url_for(self.engine):
            var = "MYSQL_URL" if self.engine == "mysql" else "POSTGRES_URL"
            errors.append(f"No connection URL for {self.engine}. Set --{self.engine}-url or {var}")

        if self.collect_level < CollectionLevel.LEVEL0:
            errors.append("Collect level must be level0 or higher")

        if self.schedule.mode not in RUN_MODES:
            errors.append(f"Unknown run mode '{self.schedule.mode}' (expected once or daemon)")
        if self.schedule.backoff_policy not in BACKOFF_POLICIES:
            errors.append(f"Unknown backoff policy '{self.schedule.backoff_policy}'")
        if self.schedule.timeout_secs <= 0:
            errors.append("Schedule timeout must be at least 1 second")
        if self.schedule.retry_times < 0:
            errors.append("Retry times cannot be negative")
        if self.schedule.retry_backoff_ms < 0:
            errors.append("Retry backoff cannot be negative")
        if self.schedule.max_cycles is not None and self.schedule.max_cycles < 1:
            errors.append("Max cycles must be at least 1")

        if self.output.format not in OUTPUT_FORMATS:
            errors.append(f"Unknown output format '{self.output.format}'")

        return errors

    def summary(self, include_config_path: bool = True) -> str:
        """Generate human-readable config summary."""
        lines = []

        if include_config_path:
            if self._config_file:
                lines.append(f"Config: {self._config_file}")
            else:
                lines.append("Config: (defaults)")

        lines.append(f"Engine: {self.engine}, requested {self.collect_level.label}")
        lines.append(
            f"URLs: mysql={'set' if self.database.mysql_url else 'unset'}, "
            f"postgres={'set' if self.database.postgres_url else 'unset'}"
        )
        lines.append(
            f"Level 1: window {self.level1.slow_log_window_secs}s, "
            f"long_query_time {self.level1.long_query_time_secs}s, "
            f"hot-switch {'on' if self.level1.hot_switch else 'off'}"
        )
        lines.append(
            f"Schedule: {self.schedule.mode}, timeout {self.schedule.timeout_secs}s, "
            f"retries {self.schedule.retry_times} ({self.schedule.backoff_policy} {self.schedule.retry_backoff_ms}ms)"
        )

        return "\n".join(lines)


def _parse_level(value) -> CollectionLevel:
    if isinstance(value, CollectionLevel):
        return value
    try:
        return CollectionLevel.parse(str(value))
    except ValueError as e:
        raise ConfigError(str(e)) from e
