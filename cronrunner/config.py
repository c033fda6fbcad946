"""
Runner configuration management.

Handles loading and validating the runner configuration. Values are read
once at startup; only the crontab file content is reloaded at runtime.

Resolution order (highest to lowest priority):
1. Explicit overrides (command-line flags)
2. Environment variables (a .env file is loaded if present)
3. JSON configuration file
4. Defaults
"""

import json
import logging
import os
from dataclasses import dataclass, field, asdict, fields
from pathlib import Path
from typing import Optional, Dict, List, Any

from dotenv import load_dotenv

from cronrunner.buffer import LOG_BUFFER_SIZE

load_dotenv()

logger = logging.getLogger(__name__)

# Executer values selecting direct argv invocation instead of a shell
DIRECT_EXECUTER = "go"
DIRECT_EXECUTERS = (DIRECT_EXECUTER, "direct")
SHELL_EXECUTER = "shell"

DEFAULT_CRONTAB = "/etc/crontab"
DEFAULT_SHELL = "/bin/sh"

ENV_CONFIG_PATH = "CRONRUNNER_CONFIG_PATH"

# Environment variable -> (config field, type)
ENV_OVERRIDES = {
    'CRONRUNNER_CRONTAB': ('crontab', str),
    'CRONRUNNER_EXEC': ('executer', str),
    'SHELL': ('shell', str),
    'CRONRUNNER_FLUSH_INTERVAL': ('flush_interval', float),
    'CRONRUNNER_MAX_WORKERS': ('max_workers', int),
    'CRONRUNNER_TIMEZONE': ('timezone', str),
}


@dataclass
class LoggingConfig:
    """Logging configuration."""
    level: str = "INFO"
    file: Optional[str] = None

    def __post_init__(self):
        if os.environ.get('CRONRUNNER_LOG_LEVEL'):
            self.level = os.environ['CRONRUNNER_LOG_LEVEL']
        if os.environ.get('CRONRUNNER_LOG_FILE'):
            self.file = os.environ['CRONRUNNER_LOG_FILE']


@dataclass
class RunnerConfig:
    """
    Job runner configuration.

    The executer selects how commands are invoked: ``go`` (or ``direct``) runs the
    command with its arguments split on spaces, anything else runs
    ``<shell> -c "<command> <args>"``.
    """
    crontab: str = DEFAULT_CRONTAB
    executer: str = SHELL_EXECUTER
    shell: str = DEFAULT_SHELL
    flush_interval: float = 1.0  # seconds between periodic stdout flushes
    buffer_size: int = LOG_BUFFER_SIZE
    max_workers: int = 20
    misfire_grace_time: int = 60
    timezone: Optional[str] = None  # None = local time
    watch_debounce: float = 0.5
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    config_path: Optional[str] = None

    @classmethod
    def load(cls, config_path: Optional[str] = None, **overrides) -> 'RunnerConfig':
        """
        Build the effective configuration.

        Args:
            config_path: Path to a JSON config file. If None, uses the
                CRONRUNNER_CONFIG_PATH environment variable when set.
            **overrides: Explicit values (None values are ignored)

        Returns:
            Resolved RunnerConfig
        """
        config = cls()

        if not config_path and os.environ.get(ENV_CONFIG_PATH):
            config_path = os.environ[ENV_CONFIG_PATH]

        if config_path:
            config.config_path = str(Path(config_path).expanduser())
            config._load_file(Path(config.config_path))

        config._load_env()

        for key, value in overrides.items():
            if value is None:
                continue
            if not hasattr(config, key):
                raise ValueError(f"Unknown configuration option: {key}")
            setattr(config, key, value)

        return config

    def _load_file(self, path: Path):
        """Load values from a JSON config file."""
        try:
            with open(path, 'r') as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Failed to load config from {path}: {e}")
            raise

        known = {f.name for f in fields(self)}
        for key, value in data.items():
            if key == 'logging':
                self._load_logging(value, path)
            elif key in known:
                setattr(self, key, value)
            else:
                logger.warning(f"Ignoring unknown config option '{key}' in {path}")

        logger.debug(f"Loaded configuration from {path}")

    def _load_logging(self, data: Dict[str, Any], path: Path):
        if not isinstance(data, dict):
            raise ValueError(f"'logging' must be an object in {path}")
        known = {f.name for f in fields(LoggingConfig)}
        for key in data:
            if key not in known:
                logger.warning(f"Ignoring unknown logging option '{key}' in {path}")
        self.logging = LoggingConfig(**{k: v for k, v in data.items() if k in known})

    def _load_env(self):
        """Apply environment variable overrides."""
        for env_name, (attr, cast) in ENV_OVERRIDES.items():
            raw = os.environ.get(env_name)
            if not raw:
                continue
            try:
                setattr(self, attr, cast(raw))
            except ValueError:
                logger.warning(f"Ignoring invalid value for {env_name}: {raw!r}")

    @property
    def direct(self) -> bool:
        """True when commands are run without a shell."""
        return self.executer in DIRECT_EXECUTERS

    def validate(self) -> List[str]:
        """
        Validate configuration.

        Returns:
            List of validation errors (empty if valid)
        """
        errors = []

        if not self.crontab:
            errors.append("'crontab' cannot be empty")
        if not self.direct and not self.shell:
            errors.append("'shell' is required unless executer is 'go'")
        if self.flush_interval <= 0:
            errors.append("'flush_interval' must be positive")
        if self.buffer_size <= 0:
            errors.append("'buffer_size' must be positive")
        if self.max_workers <= 0:
            errors.append("'max_workers' must be positive")
        if self.watch_debounce < 0:
            errors.append("'watch_debounce' cannot be negative")

        return errors

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
