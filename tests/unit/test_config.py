"""
Tests for imgmap.core.config module.
"""

import json
from pathlib import Path

import pytest
from pydantic import ValidationError

from imgmap.core.config import (
    DecoderConfig,
    ImgMapConfig,
    LoggingConfig,
    MapperConfig,
    load_config,
)


class TestLoggingConfig:
    """Tests for LoggingConfig."""

    def test_default_values(self) -> None:
        config = LoggingConfig()
        assert config.level == "WARNING"
        assert config.file_enabled is False
        assert config.console_enabled is True
        assert config.json_format is False

    def test_custom_values(self) -> None:
        config = LoggingConfig(level="DEBUG", json_format=True)
        assert config.level == "DEBUG"
        assert config.json_format is True

    def test_invalid_level(self) -> None:
        with pytest.raises(ValidationError):
            LoggingConfig(level="CHATTY")

    def test_path_expansion(self) -> None:
        config = LoggingConfig(log_directory="~/logs")
        assert "~" not in str(config.log_directory)


class TestDecoderConfig:
    """Tests for DecoderConfig."""

    def test_default_values(self) -> None:
        config = DecoderConfig()
        assert config.prefer_external_xz is True
        assert config.xz_command == "xzcat"
        assert config.reap_timeout_seconds == 5.0

    def test_chunk_size_bytes(self) -> None:
        config = DecoderConfig(chunk_size_mb=2)
        assert config.chunk_size_bytes == 2 * 1024 * 1024

    def test_chunk_size_bounds(self) -> None:
        with pytest.raises(ValidationError):
            DecoderConfig(chunk_size_mb=0)


class TestMapperConfig:
    """Tests for MapperConfig."""

    def test_default_values(self) -> None:
        config = MapperConfig()
        assert config.partition_scan_attempts == 30
        assert config.partition_scan_interval_seconds == 1.0
        assert config.settle_udev is True
        assert config.mapper_directory == Path("/dev/mapper")
        assert config.volume_group_hints == []

    def test_attempts_must_be_positive(self) -> None:
        with pytest.raises(ValidationError):
            MapperConfig(partition_scan_attempts=0)

    def test_negative_interval_rejected(self) -> None:
        with pytest.raises(ValidationError):
            MapperConfig(partition_scan_interval_seconds=-1)


class TestImgMapConfig:
    """Tests for the main ImgMapConfig."""

    def test_default_sections(self) -> None:
        config = ImgMapConfig()
        assert isinstance(config.logging, LoggingConfig)
        assert isinstance(config.decoder, DecoderConfig)
        assert isinstance(config.mapper, MapperConfig)
        assert config.temp_directory is None

    def test_save_and_load(self, temp_dir: Path) -> None:
        config_path = temp_dir / "config.json"
        config = ImgMapConfig()
        config.mapper.partition_scan_attempts = 5
        config.mapper.volume_group_hints = ["ubuntu--vg"]
        config.save(config_path)

        loaded = ImgMapConfig.load(config_path)
        assert loaded.mapper.partition_scan_attempts == 5
        assert loaded.mapper.volume_group_hints == ["ubuntu--vg"]

    def test_load_missing_file_returns_defaults(self, temp_dir: Path) -> None:
        config = ImgMapConfig.load(temp_dir / "missing.json")
        assert config.mapper.partition_scan_attempts == 30

    def test_load_partial_file(self, temp_dir: Path) -> None:
        config_path = temp_dir / "config.json"
        config_path.write_text(json.dumps({"decoder": {"prefer_external_xz": False}}))

        config = ImgMapConfig.load(config_path)
        assert config.decoder.prefer_external_xz is False
        assert config.mapper.settle_udev is True

    def test_load_config_creates_temp_directory(self, temp_dir: Path) -> None:
        config_path = temp_dir / "config.json"
        ImgMapConfig(temp_directory=temp_dir / "scratch").save(config_path)

        config = load_config(config_path)
        assert config.temp_directory is not None
        assert config.temp_directory.is_dir()
