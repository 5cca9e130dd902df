"""
Enumerations shared by configuration, slices and the interval finder.
"""

from enum import Enum


class ApproximationKind(str, Enum):
    """Trend functions a slice can be fitted with."""

    EMPTY = "empty"
    LINEAR = "linear"
    AVERAGES = "averages"


class DetectionMode(str, Enum):
    """Kinds of suspicious intervals the finder searches for."""

    DECREASING = "decreasing"
    CONSTANT = "constant"
