"""Configuration discovery and runtime paths.

Configuration is a small YAML file. Every field has a default, so sven works
without one.
"""

import os
import tempfile
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError

from sven.exceptions import ConfigError

DEFAULT_DATA_DIR = Path.home() / ".config" / "sven"

SOCKET_NAME = "sven.sock"
PID_FILE_NAME = "sven.pid"
DB_FILE_NAME = "envs.sqlite"
KEY_FILE_NAME = "key.pem"
LOG_FILE_NAME = "daemon.log"


def default_runtime_dir() -> Path:
    """Get the per-user runtime directory, falling back to the temp dir."""
    runtime_dir = os.environ.get("XDG_RUNTIME_DIR")
    if runtime_dir:
        return Path(runtime_dir)
    return Path(tempfile.gettempdir())


class SvenConfig(BaseModel):
    """Resolved sven configuration."""

    data_dir: Path = Field(default=DEFAULT_DATA_DIR, description="Database, key and log directory")
    runtime_dir: Path = Field(
        default_factory=default_runtime_dir,
        description="Directory holding the daemon socket and PID file",
    )
    key_file: Path | None = Field(default=None, description="Private key path override")

    key_size: int = Field(default=3072, ge=2048)
    request_timeout: float = Field(default=10.0, gt=0)
    startup_attempts: int = Field(default=5, ge=1)
    startup_delay: float = Field(default=1.0, ge=0)

    @property
    def db_path(self) -> Path:
        """Get the SQLite database path."""
        return self.data_dir / DB_FILE_NAME

    @property
    def key_path(self) -> Path:
        """Get the private key path."""
        return self.key_file or self.data_dir / KEY_FILE_NAME

    @property
    def log_path(self) -> Path:
        """Get the daemon log file path."""
        return self.data_dir / LOG_FILE_NAME

    @property
    def socket_path(self) -> Path:
        """Get the daemon socket path."""
        return self.runtime_dir / SOCKET_NAME

    @property
    def pid_path(self) -> Path:
        """Get the daemon PID file path."""
        return self.runtime_dir / PID_FILE_NAME


def _read_config_file(config_path: Path) -> dict[str, Any]:
    """Read a YAML config file into a dictionary."""
    try:
        with open(config_path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise ConfigError(f"Cannot read config file {config_path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {config_path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {config_path} must contain a mapping")
    return data


def load_config(config_path: Path | None = None) -> SvenConfig:
    """Load the configuration.

    Search order:
    1. Explicit config_path argument
    2. SVEN_CONFIG environment variable
    3. ~/.config/sven/config.yaml
    4. Built-in defaults

    SVEN_DATA_DIR, SVEN_RUNTIME_DIR and SVEN_KEY_PATH override the
    corresponding values from any file.

    Args:
        config_path: Optional explicit path to a YAML config file.

    Returns:
        The resolved configuration.

    Raises:
        ConfigError: If a config file is unreadable or invalid.
    """
    if config_path is None:
        env_path = os.environ.get("SVEN_CONFIG")
        if env_path:
            config_path = Path(env_path).expanduser()
            if not config_path.exists():
                raise ConfigError(f"SVEN_CONFIG is set but file does not exist: {config_path}")
        else:
            default_path = DEFAULT_DATA_DIR / "config.yaml"
            if default_path.exists():
                config_path = default_path

    data: dict[str, Any] = {}
    if config_path is not None:
        data = _read_config_file(config_path)

    overrides = {
        "data_dir": "SVEN_DATA_DIR",
        "runtime_dir": "SVEN_RUNTIME_DIR",
        "key_file": "SVEN_KEY_PATH",
    }
    for field, env_var in overrides.items():
        value = os.environ.get(env_var)
        if value:
            data[field] = value

    for field in overrides:
        if isinstance(data.get(field), str):
            data[field] = Path(data[field]).expanduser()

    try:
        return SvenConfig(**data)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration: {e}") from e
