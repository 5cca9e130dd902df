"""
Trend approximations fitted to a slice.

Each approximation gives a fitted value per point and a sigma, the RMS
residual between the signal and the fit over all points. Implements:
- Empty (no smoothing, sigma is 0)
- Linear regression against elapsed time
- Moving average
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from math import isqrt, sqrt
from typing import TYPE_CHECKING, List, Sequence

from slicewatch.core.enums import ApproximationKind
from slicewatch.core.exceptions import ConfigurationError, DegenerateInputError

if TYPE_CHECKING:
    from slicewatch.data.schema import Slice

MIN_AVERAGE_WINDOW = 8


def _rms_residual(signals: Sequence[int], fitted: Sequence[float]) -> float:
    if not signals:
        return 0.0
    total = sum((s - f) ** 2 for s, f in zip(signals, fitted))
    return sqrt(total / len(signals))


def _endpoint_slope(slice: "Slice") -> float:
    if len(slice.points) < 2 or slice.date_range == 0:
        return 0.0
    return (slice.points[-1].signal - slice.points[0].signal) / slice.date_range


class Approximation(ABC):
    """Fitted trend of a slice."""

    kind: ApproximationKind

    @property
    @abstractmethod
    def sigma(self) -> float:
        """RMS residual of the signal around the fit."""

    @property
    @abstractmethod
    def slope(self) -> float:
        """Signal change per millisecond; the sign gives the direction."""

    @abstractmethod
    def fitted(self, pos: int) -> float:
        """Fitted value at point index pos."""


@dataclass
class EmptyApproximation(Approximation):
    """
    Baseline without smoothing: the fit equals the signal.
    """

    slice: "Slice"
    kind: ApproximationKind = field(default=ApproximationKind.EMPTY, init=False)

    @property
    def sigma(self) -> float:
        return 0.0

    @property
    def slope(self) -> float:
        return _endpoint_slope(self.slice)

    def fitted(self, pos: int) -> float:
        return float(self.slice.signal(pos))


@dataclass
class LinearRegression(Approximation):
    """
    Ordinary least squares fit of the signal against elapsed milliseconds.

    Fitted values use the closed form intercept + slope * elapsed. Slices
    without time spread (no points, or all timestamps equal) cannot be
    fitted and raise DegenerateInputError.
    """

    slice: "Slice"
    kind: ApproximationKind = field(default=ApproximationKind.LINEAR, init=False)
    _slope: float = field(default=0.0, init=False, repr=False)
    _intercept: float = field(default=0.0, init=False, repr=False)
    _sigma: float = field(default=0.0, init=False, repr=False)

    def __post_init__(self) -> None:
        points = self.slice.points
        n = len(points)
        if n == 0:
            raise DegenerateInputError(f"Cannot fit a regression to empty slice {self.slice.describe()}")

        xs = [self.slice.get_date_distance(0, i) for i in range(n)]
        ys = self.slice.signals()
        sum_x = float(sum(xs))
        sum_y = float(sum(ys))
        sum_xx = float(sum(x * x for x in xs))
        sum_xy = float(sum(x * y for x, y in zip(xs, ys)))

        denominator = n * sum_xx - sum_x * sum_x
        if denominator == 0:
            raise DegenerateInputError(
                f"All timestamps of slice {self.slice.describe()} are equal; "
                "linear regression is undefined"
            )

        self._slope = (n * sum_xy - sum_x * sum_y) / denominator
        self._intercept = (sum_y * sum_xx - sum_x * sum_xy) / denominator
        self._sigma = _rms_residual(ys, [self._at(x) for x in xs])

    def _at(self, elapsed: float) -> float:
        return self._intercept + self._slope * elapsed

    @property
    def sigma(self) -> float:
        return self._sigma

    @property
    def slope(self) -> float:
        return self._slope

    def fitted(self, pos: int) -> float:
        return self._at(self.slice.get_date_distance(0, pos))


@dataclass
class AveragesApproximation(Approximation):
    """
    Centered moving average of the signal.

    Half-width k = max(8, floor(sqrt(n))). The window of point i is
    [max(i - k, 0), min(i + k, n - 1)], inclusive on both ends, so it
    shrinks near the ends of the slice. The fitted series is precomputed.
    """

    slice: "Slice"
    kind: ApproximationKind = field(default=ApproximationKind.AVERAGES, init=False)
    half_width: int = field(default=0, init=False)
    _values: List[float] = field(default_factory=list, init=False, repr=False)
    _sigma: float = field(default=0.0, init=False, repr=False)

    def __post_init__(self) -> None:
        signals = self.slice.signals()
        n = len(signals)
        self.half_width = max(MIN_AVERAGE_WINDOW, isqrt(n))

        # prefix[j] = sum of signals[0:j]
        prefix = [0]
        for s in signals:
            prefix.append(prefix[-1] + s)

        values: List[float] = []
        for i in range(n):
            lo = max(i - self.half_width, 0)
            hi = min(i + self.half_width, n - 1)
            count = hi - lo + 1
            values.append((prefix[hi + 1] - prefix[lo]) / count if count > 0 else 0.0)
        self._values = values
        self._sigma = _rms_residual(signals, values)

    @property
    def sigma(self) -> float:
        return self._sigma

    @property
    def slope(self) -> float:
        return _endpoint_slope(self.slice)

    def fitted(self, pos: int) -> float:
        return self._values[pos]


_APPROXIMATIONS = {
    ApproximationKind.EMPTY: EmptyApproximation,
    ApproximationKind.LINEAR: LinearRegression,
    ApproximationKind.AVERAGES: AveragesApproximation,
}


def build_approximation(kind: ApproximationKind | str, slice: "Slice") -> Approximation:
    """
    Fit the approximation of the given kind to a slice.

    Raises:
        ConfigurationError: If the kind is unknown
        DegenerateInputError: If the slice cannot be fitted
    """
    try:
        cls = _APPROXIMATIONS[ApproximationKind(kind)]
    except ValueError as exc:
        raise ConfigurationError(f"Unknown approximation kind: {kind}") from exc
    return cls(slice)
