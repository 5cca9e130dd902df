"""
Schema definitions for suspicious intervals.

A SuspiciousInterval is a candidate sub-range [pos1, pos2] of a slice. All
scores are recomputed from the slice on every access and are always finite:
normalisations by a zero range fall back to documented constants.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from slicewatch.core.enums import DetectionMode
from slicewatch.core.exceptions import DegenerateInputError, InvalidIntervalError
from slicewatch.data.schema import Slice, SlicePoint


@dataclass(frozen=True, eq=False)
class SuspiciousInterval:
    """
    Candidate decrease or flat region of a slice.

    The slice is referenced, not owned. Intervals compare by identity of the
    slice and by their bounds.
    """

    slice: Slice
    pos1: int
    pos2: int
    width_threshold: float = 0.2

    def __post_init__(self) -> None:
        # raises SliceIndexError for out-of-range bounds
        self.slice.get_date_distance(self.pos1, self.pos2)
        if self.pos1 >= self.pos2:
            raise InvalidIntervalError(f"Interval bounds must satisfy pos1 < pos2, got ({self.pos1}, {self.pos2})")
        if self.width_threshold <= 0:
            raise InvalidIntervalError(f"width_threshold must be positive, got {self.width_threshold}")

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SuspiciousInterval):
            return NotImplemented
        return self.slice is other.slice and (self.pos1, self.pos2) == (other.pos1, other.pos2)

    def __hash__(self) -> int:
        return hash((id(self.slice), self.pos1, self.pos2))

    def __repr__(self) -> str:
        return f"SuspiciousInterval({self.slice.describe()}, {self.pos1}, {self.pos2})"

    @property
    def start(self) -> datetime:
        return self.slice.points[self.pos1].timestamp

    @property
    def end(self) -> datetime:
        return self.slice.points[self.pos2].timestamp

    @property
    def diff(self) -> int:
        """Signed signal change between the endpoints."""
        return self.slice.signal(self.pos2) - self.slice.signal(self.pos1)

    @property
    def is_decreasing(self) -> bool:
        return self.diff < 0

    @property
    def local_value_range(self) -> int:
        return self.slice.get_local_value_range(self.pos1, self.pos2)

    @property
    def relative_width(self) -> float:
        """Interval duration as a share of the slice's date range (0.0 if the range is 0)."""
        if self.slice.date_range == 0:
            return 0.0
        return self.slice.get_date_distance(self.pos1, self.pos2) / self.slice.date_range

    @property
    def relative_diff(self) -> float:
        """
        Endpoint difference as a share of the slice's value range.

        Negative for decreases. A zero-range slice has no difference, so the
        sign of the difference (0.0) is returned instead of dividing.
        """
        diff = self.diff
        if self.slice.value_range == 0:
            return float((diff > 0) - (diff < 0))
        return diff / self.slice.value_range

    @property
    def relative_value_range(self) -> float:
        """Share of the slice's value spread found inside the interval."""
        if self.slice.value_range == 0:
            return 0.0
        return self.local_value_range / self.slice.value_range

    @property
    def drop_ratio(self) -> float:
        """
        Endpoint drop relative to the local spread.

        1.0 when the interval starts at its maximum and ends at its minimum;
        0.0 or less when the interval does not decrease.
        """
        local = self.local_value_range
        if local == 0:
            return 0.0
        return -self.diff / local

    @property
    def decrease_score(self) -> float:
        """Squared relative drop; 0.0 for intervals that do not decrease."""
        if not self.is_decreasing:
            return 0.0
        return self.relative_diff ** 2

    @property
    def flatness_score(self) -> float:
        """Grows with the relative width and shrinks with the relative value range."""
        return self.relative_width / (self.relative_value_range + self.width_threshold)

    def score(self, mode: DetectionMode) -> float:
        if DetectionMode(mode) is DetectionMode.DECREASING:
            return self.decrease_score
        return self.flatness_score

    def intersects(self, other: "SuspiciousInterval") -> bool:
        """
        True when both intervals belong to the same slice and overlap.

        Intervals that only share an endpoint do not intersect.
        """
        return (
            self.slice is other.slice
            and self.pos1 < other.pos2
            and other.pos1 < self.pos2
        )

    def chart_points(self) -> List[SlicePoint]:
        """Points of the slice within [pos1, pos2]."""
        return list(self.slice.points[self.pos1:self.pos2 + 1])

    def to_record(self, mode: DetectionMode) -> "IntervalRecord":
        mode = DetectionMode(mode)
        decreasing = mode is DetectionMode.DECREASING
        return IntervalRecord(
            source_table=self.slice.source_table,
            value_column=self.slice.value_column,
            labels=self.slice.label_map(),
            mode=mode,
            pos1=self.pos1,
            pos2=self.pos2,
            start=self.start,
            end=self.end,
            score=self.score(mode),
            relative_width=self.relative_width,
            relative_diff=self.relative_diff if decreasing else None,
            relative_value_range=None if decreasing else self.relative_value_range,
            relative_sigma=self._relative_sigma(),
            slope=self._slope(),
        )

    def _relative_sigma(self) -> float:
        try:
            return self.slice.relative_sigma
        except DegenerateInputError:
            return 0.0

    def _slope(self) -> float:
        try:
            return self.slice.approximation.slope
        except DegenerateInputError:
            return 0.0


class IntervalRecord(BaseModel):
    """
    Serialisable row describing one detected interval.

    Fields:
    - labels: category name -> label of the owning slice
    - score: decrease_score or flatness_score depending on mode
    - relative_diff: set for decreasing intervals
    - relative_value_range: set for constant intervals
    - relative_sigma: sigma of the slice approximation / value range
    - slope: trend of the slice approximation per millisecond (sign gives direction)
    """

    source_table: str
    value_column: str
    labels: Dict[str, str] = Field(default_factory=dict)
    mode: DetectionMode
    pos1: int = Field(ge=0)
    pos2: int = Field(ge=1)
    start: datetime
    end: datetime
    score: float = Field(ge=0.0)
    relative_width: float = Field(ge=0.0, le=1.0)
    relative_diff: Optional[float] = None
    relative_value_range: Optional[float] = None
    relative_sigma: float = Field(ge=0.0)
    slope: float = 0.0
