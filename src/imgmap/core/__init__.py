"""
imgmap Core.

Configuration, logging, error types, reporting sinks and data models
shared by the decoder and the mapper.
"""

from imgmap.core.config import ImgMapConfig, load_config
from imgmap.core.exceptions import (
    FormatError,
    ImgMapError,
    LayoutDetectionError,
    MapperStateError,
    ReporterUnavailableError,
    ResourceError,
    ToolInvocationError,
)
from imgmap.core.logging import get_logger, setup_logging
from imgmap.core.models import ImageFormat, MapperState, MappingResult
from imgmap.core.reporting import LoggingReporter, NullReporter, Reporter

__all__ = [
    "ImgMapConfig",
    "load_config",
    "FormatError",
    "ImgMapError",
    "LayoutDetectionError",
    "MapperStateError",
    "ReporterUnavailableError",
    "ResourceError",
    "ToolInvocationError",
    "get_logger",
    "setup_logging",
    "ImageFormat",
    "MapperState",
    "MappingResult",
    "LoggingReporter",
    "NullReporter",
    "Reporter",
]
