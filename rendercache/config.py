"""
Configuration management for rendercache.

Loads $RENDERCACHE_HOME/config.yaml (default ~/.config/rendercache):

    store_dir: ~/.config/rendercache/store
    blobstore_dir: ~/.config/rendercache/blobs
    work_dir: ~/.config/rendercache/work
    renderer: rendercache.renderers:SubstitutionArchivesCompiler
    logging:
      level: INFO
      format: pretty
      console: true
      output: null
"""

import os
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

import yaml

DEFAULT_RENDERER = "rendercache.renderers:SubstitutionArchivesCompiler"
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
LOG_FORMATS = ("pretty", "structured")


class ConfigError(Exception):
    """Configuration validation error."""
    pass


def get_rendercache_home() -> Path:
    """Directory holding config.yaml, overridable with RENDERCACHE_HOME."""
    env_home = os.environ.get("RENDERCACHE_HOME")
    if env_home:
        return Path(env_home).expanduser()
    return Path("~/.config/rendercache").expanduser()


@dataclass
class LoggingConfig:
    """Logging settings."""
    level: str = "INFO"
    format: str = "pretty"
    console: bool = True
    output: Optional[str] = None

    def get_log_file_path(self) -> Optional[Path]:
        """Log file path with {date} interpolated, or None when file logging is off."""
        if not self.output:
            return None
        output = self.output.replace("{date}", datetime.now().strftime("%Y-%m-%d"))
        return Path(output).expanduser()

    def validate(self) -> None:
        if self.level.upper() not in LOG_LEVELS:
            raise ConfigError(f"logging.level must be one of {', '.join(LOG_LEVELS)}: {self.level}")
        if self.format not in LOG_FORMATS:
            raise ConfigError(f"logging.format must be one of {', '.join(LOG_FORMATS)}: {self.format}")


@dataclass
class RenderCacheConfig:
    """Complete rendercache configuration."""
    store_dir: Path
    blobstore_dir: Path
    work_dir: Path
    renderer: str = DEFAULT_RENDERER
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def defaults(cls, home: Optional[Path] = None) -> "RenderCacheConfig":
        home = home or get_rendercache_home()
        return cls(
            store_dir=home / "store",
            blobstore_dir=home / "blobs",
            work_dir=home / "work",
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any], home: Optional[Path] = None) -> "RenderCacheConfig":
        """
        Build a config, filling missing keys from defaults under home.

        Raises:
            ConfigError: If values have the wrong type
        """
        base = cls.defaults(home)

        logging_data = data.get("logging") or {}
        if not isinstance(logging_data, dict):
            raise ConfigError("logging must be a mapping")

        def _path(key: str, default: Path) -> Path:
            value = data.get(key)
            if value is None:
                return default
            if not isinstance(value, str):
                raise ConfigError(f"{key} must be a path string")
            return Path(value).expanduser()

        config = cls(
            store_dir=_path("store_dir", base.store_dir),
            blobstore_dir=_path("blobstore_dir", base.blobstore_dir),
            work_dir=_path("work_dir", base.work_dir),
            renderer=data.get("renderer") or DEFAULT_RENDERER,
            logging=LoggingConfig(
                level=str(logging_data.get("level", "INFO")),
                format=str(logging_data.get("format", "pretty")),
                console=bool(logging_data.get("console", True)),
                output=logging_data.get("output"),
            ),
        )
        config.validate()
        return config

    def to_dict(self) -> dict[str, Any]:
        return {
            "store_dir": str(self.store_dir),
            "blobstore_dir": str(self.blobstore_dir),
            "work_dir": str(self.work_dir),
            "renderer": self.renderer,
            "logging": {
                "level": self.logging.level,
                "format": self.logging.format,
                "console": self.logging.console,
                "output": self.logging.output,
            },
        }

    def validate(self) -> None:
        if ":" not in self.renderer:
            raise ConfigError(f"renderer must be 'module:attribute': {self.renderer}")
        self.logging.validate()


def load_config(config_path: Optional[Path] = None) -> RenderCacheConfig:
    """
    Load rendercache configuration from YAML file.

    Args:
        config_path: Path to config file. Defaults to $RENDERCACHE_HOME/config.yaml

    Returns:
        RenderCacheConfig instance

    Raises:
        FileNotFoundError: If the config file does not exist
        ConfigError: If config is invalid
    """
    home = get_rendercache_home()
    if config_path is None:
        config_path = home / "config.yaml"

    if not config_path.exists():
        raise FileNotFoundError(
            f"rendercache config.yaml not found at {config_path}. Run 'rendercache init'."
        )

    try:
        with open(config_path, "r") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML syntax: {e}")

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(f"Configuration file must contain a mapping: {config_path}")

    return RenderCacheConfig.from_dict(data, home=home)
