"""
Core module: Configuration, logging, and exception handling.
"""

from .config import Config, IntervalConfig, SlicingConfig, config
from .enums import ApproximationKind, DetectionMode
from .exceptions import (
    ConfigurationError,
    DataValidationError,
    DegenerateInputError,
    IntervalDetectionError,
    InvalidIntervalError,
    SliceIndexError,
)

__all__ = [
    "Config",
    "IntervalConfig",
    "SlicingConfig",
    "config",
    "ApproximationKind",
    "DetectionMode",
    "IntervalDetectionError",
    "SliceIndexError",
    "InvalidIntervalError",
    "DegenerateInputError",
    "DataValidationError",
    "ConfigurationError",
]
