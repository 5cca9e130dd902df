"""
Canonical slice schema for the interval detection pipeline.

This module defines the time-series representation every detector works on:
a Slice is the ordered sequence of observations recorded for one combination
of category labels (e.g. ``region=north, channel=web``) in one value column.

Design rationale:
- Points and slices are immutable once built (frozen models)
- The "signal" of a point is value * amount
- Summary statistics are derived once after construction
- The trend approximation is built lazily and cached for the slice lifetime
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any, Dict, List, Tuple

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, model_validator

from slicewatch.core.enums import ApproximationKind
from slicewatch.core.exceptions import InvalidIntervalError, SliceIndexError

if TYPE_CHECKING:
    from slicewatch.intervals.approximations import Approximation

_MILLISECOND = timedelta(milliseconds=1)


class SlicePoint(BaseModel):
    """
    A single observation of a slice.

    Attributes:
        value: Observed value (e.g. price, balance)
        amount: Number of items the value was recorded for
        timestamp: Moment the value was recorded

    Notes:
        - Equality is structural
        - signal = value * amount is what every score is computed on
    """

    model_config = ConfigDict(frozen=True)

    value: int = Field(..., description="Observed value")
    amount: int = Field(..., description="Number of items observed")
    timestamp: datetime = Field(..., description="Time of the observation")

    @property
    def signal(self) -> int:
        return self.value * self.amount


class Slice(BaseModel):
    """
    Time series of one category combination.

    Attributes:
        source_table: Table the points were read from
        value_column: Name of the value series
        category_names: Columns the slice is grouped by
        category_labels: Label of each category column (same order)
        points: Observations in time-ascending order
        approximation_kind: Trend function used for sigma and fitted values

    Notes:
        - value_range, date_range and total_amount are derived after
          construction and are 0 for an empty slice
        - date distances are measured in whole milliseconds
        - Two slices are equal when their identity and points are equal;
          the approximation kind is not part of the identity
    """

    model_config = ConfigDict(frozen=True)

    source_table: str = Field(..., description="Source table name")
    value_column: str = Field(..., description="Value series name")
    category_names: Tuple[str, ...] = Field(default=(), description="Grouping columns")
    category_labels: Tuple[str, ...] = Field(default=(), description="Labels of the grouping columns")
    points: Tuple[SlicePoint, ...] = Field(default=(), description="Time-ascending observations")
    approximation_kind: ApproximationKind = Field(
        default=ApproximationKind.EMPTY,
        description="Trend function fitted to the slice",
    )

    _value_range: int = PrivateAttr(default=0)
    _date_range: int = PrivateAttr(default=0)
    _total_amount: int = PrivateAttr(default=0)
    _approximation: Any = PrivateAttr(default=None)

    @model_validator(mode="after")
    def _check_layout(self) -> "Slice":
        if len(self.category_names) != len(self.category_labels):
            raise ValueError(
                f"{len(self.category_names)} category names but "
                f"{len(self.category_labels)} labels"
            )
        if len({point.timestamp.tzinfo is None for point in self.points}) > 1:
            raise ValueError("Slice points mix naive and timezone-aware timestamps")
        for previous, current in zip(self.points, self.points[1:]):
            if current.timestamp < previous.timestamp:
                raise ValueError("Slice points must be in time-ascending order")
        return self

    def model_post_init(self, __context: object) -> None:
        if not self.points:
            return
        signals = [point.signal for point in self.points]
        self._value_range = max(signals) - min(signals)
        self._date_range = self._milliseconds(self.points[0].timestamp, self.points[-1].timestamp)
        self._total_amount = sum(point.amount for point in self.points)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Slice):
            return NotImplemented
        return self._identity() == other._identity()

    def __hash__(self) -> int:
        return hash(self._identity())

    def __len__(self) -> int:
        return len(self.points)

    def _identity(self) -> tuple:
        return (
            self.source_table,
            self.value_column,
            self.category_names,
            self.category_labels,
            self.points,
        )

    @staticmethod
    def _milliseconds(start: datetime, end: datetime) -> int:
        return (end - start) // _MILLISECOND

    def _check_index(self, pos: int) -> None:
        if not 0 <= pos < len(self.points):
            raise SliceIndexError(
                f"Index {pos} out of range for slice {self.describe()} "
                f"with {len(self.points)} points"
            )

    @property
    def value_range(self) -> int:
        """Spread of the signal over the whole slice."""
        return self._value_range

    @property
    def date_range(self) -> int:
        """Milliseconds between the first and the last point."""
        return self._date_range

    @property
    def total_amount(self) -> int:
        return self._total_amount

    @property
    def approximation(self) -> "Approximation":
        """
        Trend approximation of the slice, built on first access.

        Raises:
            DegenerateInputError: If the chosen approximation cannot be fitted
        """
        if self._approximation is None:
            from slicewatch.intervals.approximations import build_approximation

            self._approximation = build_approximation(self.approximation_kind, self)
        return self._approximation

    @property
    def sigma(self) -> float:
        return self.approximation.sigma

    @property
    def relative_sigma(self) -> float:
        """Sigma as a share of the value range (0.0 for a zero-range slice)."""
        if self._value_range == 0:
            return 0.0
        return self.sigma / self._value_range

    def signal(self, pos: int) -> int:
        self._check_index(pos)
        return self.points[pos].signal

    def signals(self) -> List[int]:
        return [point.signal for point in self.points]

    def get_approximate(self, pos: int) -> float:
        self._check_index(pos)
        return self.approximation.fitted(pos)

    def get_local_value_range(self, pos1: int, pos2: int) -> int:
        """
        Spread of the signal between two points.

        Args:
            pos1: Index of the first point
            pos2: Index of the last point (inclusive)

        Returns:
            max - min of the signal over points [pos1, pos2]

        Raises:
            SliceIndexError: If an index is outside the slice
            InvalidIntervalError: If pos1 > pos2
        """
        self._check_index(pos1)
        self._check_index(pos2)
        if pos1 > pos2:
            raise InvalidIntervalError(f"pos1={pos1} is after pos2={pos2}")
        window = [point.signal for point in self.points[pos1:pos2 + 1]]
        return max(window) - min(window)

    def get_date_distance(self, pos1: int, pos2: int) -> int:
        """
        Milliseconds elapsed between two points.

        Raises:
            SliceIndexError: If an index is outside the slice
        """
        self._check_index(pos1)
        self._check_index(pos2)
        return self._milliseconds(self.points[pos1].timestamp, self.points[pos2].timestamp)

    def get_accumulation(self) -> "Slice":
        """
        Build the accumulated version of this slice.

        Point i of the result carries the sum of the signal over points
        0..i, with amount fixed to 1 since the amount is already folded in.

        Returns:
            New Slice with the same identity, timestamps and approximation kind
        """
        accumulated: List[SlicePoint] = []
        running = 0
        for point in self.points:
            running += point.signal
            accumulated.append(SlicePoint(value=running, amount=1, timestamp=point.timestamp))
        return Slice(
            source_table=self.source_table,
            value_column=self.value_column,
            category_names=self.category_names,
            category_labels=self.category_labels,
            points=tuple(accumulated),
            approximation_kind=self.approximation_kind,
        )

    def with_approximation(self, kind: ApproximationKind) -> "Slice":
        """Return the same slice fitted with another approximation kind."""
        return Slice(
            source_table=self.source_table,
            value_column=self.value_column,
            category_names=self.category_names,
            category_labels=self.category_labels,
            points=self.points,
            approximation_kind=kind,
        )

    def label_map(self) -> Dict[str, str]:
        return dict(zip(self.category_names, self.category_labels))

    def describe(self) -> str:
        labels = ", ".join(f"{name}={label}" for name, label in self.label_map().items())
        return f"{self.source_table}.{self.value_column}[{labels or 'all'}]"
