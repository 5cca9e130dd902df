"""
Intervals module: trend approximations, suspicious interval scoring and search.
"""

from slicewatch.core.enums import ApproximationKind, DetectionMode

from .approximations import (
    Approximation,
    AveragesApproximation,
    EmptyApproximation,
    LinearRegression,
    build_approximation,
)
from .finder import IntervalFinder, remove_intersecting_intervals
from .schema import IntervalRecord, SuspiciousInterval

__all__ = [
	"ApproximationKind",
	"DetectionMode",
	"Approximation",
	"EmptyApproximation",
	"LinearRegression",
	"AveragesApproximation",
	"build_approximation",
	"IntervalFinder",
	"remove_intersecting_intervals",
	"IntervalRecord",
	"SuspiciousInterval",
]
