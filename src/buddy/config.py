import logging
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml

from buddy.errors import ConfigError
from buddy.sources.local import DEFAULT_MODELS_DIR

logger = logging.getLogger(__name__)

DEFAULT_SERVER_URL = "http://localhost:1234"
DEFAULT_CONFIG_DIR = "~/.config/buddy"
CONFIG_FILENAME = "config.yaml"


def get_optional_env(name: str, default: str) -> str:
    return os.environ.get(name, default)


@dataclass
class BuddyConfig:
    server_url: str = field(
        default_factory=lambda: get_optional_env("BUDDY_SERVER_URL", DEFAULT_SERVER_URL)
    )
    models_dir: str = field(
        default_factory=lambda: get_optional_env("BUDDY_MODELS_DIR", DEFAULT_MODELS_DIR)
    )
    config_dir: str = field(
        default_factory=lambda: get_optional_env("BUDDY_CONFIG_DIR", DEFAULT_CONFIG_DIR)
    )
    request_timeout: float = 300.0
    command_timeout: float | None = None
    max_tool_iterations: int | None = 20
    max_tokens: int = 4096
    temperature: float = 0.7
    enable_local: bool = True

    @property
    def config_path(self) -> Path:
        return Path(self.config_dir).expanduser()

    @property
    def settings_file(self) -> Path:
        return self.config_path / "settings.json"

    @classmethod
    def load(cls, path: str | Path | None = None) -> "BuddyConfig":
        """Environment defaults, overridden by the YAML file when it exists."""
        config = cls()
        config_file = Path(path).expanduser() if path else config.config_path / CONFIG_FILENAME
        config.apply(read_config_file(config_file))
        return config

    def apply(self, overrides: dict[str, Any]) -> None:
        known = {f.name for f in fields(self)}
        for key, value in overrides.items():
            if key not in known:
                raise ConfigError(f"Unknown config option: {key}")
            if value is not None:
                setattr(self, key, value)

    def validate(self) -> None:
        if not self.server_url.startswith(("http://", "https://")):
            raise ConfigError("server_url must start with http:// or https://")
        if self.request_timeout <= 0:
            raise ConfigError("request_timeout must be positive")
        if self.command_timeout is not None and self.command_timeout <= 0:
            raise ConfigError("command_timeout must be positive")
        if self.max_tool_iterations is not None and self.max_tool_iterations < 1:
            raise ConfigError("max_tool_iterations must be at least 1")
        if self.max_tokens < 1:
            raise ConfigError("max_tokens must be at least 1")
        if not 0 <= self.temperature <= 2:
            raise ConfigError("temperature must be between 0 and 2")


def read_config_file(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid config file {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping")
    logger.debug(f"Loaded config from {path}")
    return data
