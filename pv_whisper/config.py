"""
Configuration management for pv-whisper
"""

import logging
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_NAME = "config.yml"


class ConfigError(Exception):
    """Raised when the configuration file cannot be read or is invalid"""


@dataclass(frozen=True)
class WhisperConfig:
    """Whisper channel configuration"""
    proximity_percent: int = 50
    activation_weight: int = 11
    sourceline_weight: int = 11
    visualize_distance_hex_color: int = 0x81ECEC

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WhisperConfig":
        """
        Build a validated config from a mapping

        Raises:
            ConfigError: On unknown keys or out-of-range values
        """
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ConfigError(f"Unknown whisper option(s): {', '.join(sorted(unknown))}")

        for name, value in data.items():
            if not isinstance(value, int) or isinstance(value, bool):
                raise ConfigError(f"whisper.{name} must be an integer, got {value!r}")

        config = cls(**data)
        if not 1 <= config.proximity_percent <= 100:
            raise ConfigError(
                f"whisper.proximity_percent must be in [1, 100], got {config.proximity_percent}"
            )
        if config.activation_weight < 0:
            raise ConfigError("whisper.activation_weight must not be negative")
        if config.sourceline_weight < 0:
            raise ConfigError("whisper.sourceline_weight must not be negative")
        if not 0 <= config.visualize_distance_hex_color <= 0xFFFFFF:
            raise ConfigError("whisper.visualize_distance_hex_color must be a 24-bit color")
        return config


@dataclass
class ServerConfig:
    """Bridge server configuration"""
    socket_path: str = "pv-whisper.sock"


@dataclass
class Config:
    """Main configuration container"""
    whisper: WhisperConfig = field(default_factory=WhisperConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    config_path: Path = field(default_factory=Path.cwd)

    @classmethod
    def load(cls, config_path: Optional[Path] = None) -> "Config":
        """
        Load configuration from YAML file

        A missing file is created with the default values so operators have
        something to edit.

        Args:
            config_path: Path to config file. If None, uses config.yml
                        in the current directory.

        Returns:
            Config object

        Raises:
            ConfigError: If the file is unreadable or holds invalid values
        """
        resolved_path = Path(config_path) if config_path is not None else Path.cwd() / DEFAULT_CONFIG_NAME

        if not resolved_path.exists():
            config = cls(config_path=resolved_path.parent)
            config.save(resolved_path)
            logger.info(f"Wrote default config to {resolved_path}")
            return config

        config_data = _load_yaml(resolved_path)

        server_data = config_data.get("server") or {}
        if not isinstance(server_data, dict):
            raise ConfigError("'server' section must be a mapping")
        try:
            server = ServerConfig(**server_data)
        except TypeError as e:
            raise ConfigError(f"Invalid server section: {e}") from e

        whisper_data = config_data.get("whisper") or {}
        if not isinstance(whisper_data, dict):
            raise ConfigError("'whisper' section must be a mapping")

        config = cls(
            whisper=WhisperConfig.from_dict(whisper_data),
            server=server,
            config_path=resolved_path.parent,
        )
        logger.info(f"Loaded config from {resolved_path}")
        return config

    def save(self, path: Path) -> None:
        """Write the config back as YAML"""
        path = Path(path)
        data = {"whisper": asdict(self.whisper), "server": asdict(self.server)}
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, "w") as f:
                yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False)
        except OSError as e:
            raise ConfigError(f"Error writing config file {path}: {e}") from e

    def get_socket_path(self) -> Path:
        """Get the absolute path to the socket file"""
        socket_path = Path(self.server.socket_path)
        if socket_path.is_absolute():
            return socket_path
        return self.config_path / socket_path


def _load_yaml(path: Path) -> Dict[str, Any]:
    """Load YAML file and return as dict"""
    try:
        with open(path, "r") as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Error loading config file {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping")
    return data
