"""
Custom exceptions for slicewatch.

These exceptions provide clear error semantics across the system.
Use them to distinguish between index problems, degenerate numeric input,
data issues and configuration errors.
"""


class IntervalDetectionError(Exception):
    """Base exception for interval detection failures."""
    pass


class SliceIndexError(IntervalDetectionError, IndexError):
    """Raised when a point index falls outside a slice."""
    pass


class InvalidIntervalError(IntervalDetectionError, ValueError):
    """Raised when interval bounds are not strictly ordered (pos1 >= pos2)."""
    pass


class DegenerateInputError(IntervalDetectionError, ArithmeticError):
    """Raised when input has no spread to fit against (e.g. equal timestamps)."""
    pass


class DataValidationError(Exception):
    """Raised when input data fails validation or ingestion."""
    pass


class ConfigurationError(Exception):
    """Raised when configuration is invalid or missing."""
    pass
