"""
imgmap configuration management.

Provides centralized configuration with validation using Pydantic.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator


DEFAULT_CONFIG_PATH = Path.home() / ".imgmap" / "config.json"


class LoggingConfig(BaseModel):
    """Configuration for structured logging."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "WARNING"
    file_enabled: bool = False
    console_enabled: bool = True
    json_format: bool = False
    log_directory: Path = Field(default_factory=lambda: Path.home() / ".imgmap" / "logs")

    @field_validator("log_directory", mode="before")
    @classmethod
    def expand_path(cls, v: str | Path) -> Path:
        return Path(v).expanduser().resolve()


class DecoderConfig(BaseModel):
    """Configuration for image decoding."""

    prefer_external_xz: bool = True
    xz_command: str = "xzcat"
    reap_timeout_seconds: float = Field(default=5.0, ge=0)
    chunk_size_mb: int = Field(default=4, ge=1, le=1024)

    @property
    def chunk_size_bytes(self) -> int:
        return self.chunk_size_mb * 1024 * 1024


class MapperConfig(BaseModel):
    """Configuration for loopback attachment and partition discovery."""

    partition_scan_attempts: int = Field(default=30, ge=1)
    partition_scan_interval_seconds: float = Field(default=1.0, ge=0)
    settle_udev: bool = True
    command_timeout_seconds: int = Field(default=120, ge=1)
    mapper_directory: Path = Path("/dev/mapper")
    sysfs_block_directory: Path = Path("/sys/block")
    # Substrings that mark a device-mapper node as belonging to the image,
    # e.g. "ubuntu--vg" for stock Ubuntu server images.
    volume_group_hints: list[str] = Field(default_factory=list)


class ImgMapConfig(BaseModel):
    """Main imgmap configuration."""

    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    decoder: DecoderConfig = Field(default_factory=DecoderConfig)
    mapper: MapperConfig = Field(default_factory=MapperConfig)
    temp_directory: Path | None = None

    @field_validator("temp_directory", mode="before")
    @classmethod
    def expand_temp_path(cls, v: str | Path | None) -> Path | None:
        if v is None:
            return None
        return Path(v).expanduser().resolve()

    @classmethod
    def load(cls, config_path: Path | None = None) -> ImgMapConfig:
        """Load configuration from file or create default."""
        if config_path is None:
            config_path = DEFAULT_CONFIG_PATH

        if config_path.exists():
            with open(config_path) as f:
                data = json.load(f)
            return cls.model_validate(data)

        return cls()

    def save(self, config_path: Path | None = None) -> None:
        """Save configuration to file."""
        if config_path is None:
            config_path = DEFAULT_CONFIG_PATH

        config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(config_path, "w") as f:
            json.dump(self.model_dump(mode="json"), f, indent=2, default=str)

    def ensure_directories(self) -> None:
        """Create all required directories."""
        if self.logging.file_enabled:
            self.logging.log_directory.mkdir(parents=True, exist_ok=True)
        if self.temp_directory:
            self.temp_directory.mkdir(parents=True, exist_ok=True)


def get_default_config() -> ImgMapConfig:
    """Get the default configuration."""
    return ImgMapConfig()


def load_config(config_path: Path | None = None) -> ImgMapConfig:
    """Load or create configuration."""
    config = ImgMapConfig.load(config_path)
    config.ensure_directories()
    return config
