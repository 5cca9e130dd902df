"""
Interval search engine.

Scans slices for decreasing or flat intervals on a coarse grid of start and
end points, ranks every admitted candidate by the score of the detection
mode, and greedily removes candidates that overlap a better one.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from functools import partial
from typing import Iterable, Iterator, List, Optional, Tuple

from slicewatch.core.config import IntervalConfig, config
from slicewatch.core.enums import DetectionMode
from slicewatch.core.exceptions import IntervalDetectionError
from slicewatch.data.schema import Slice

from .schema import SuspiciousInterval

logger = logging.getLogger(__name__)


def remove_intersecting_intervals(intervals: Iterable[SuspiciousInterval]) -> List[SuspiciousInterval]:
    """
    Keep each interval only if it overlaps none of the intervals kept before it.

    The input should already be sorted best first. Applying the function to
    its own output returns the same list.
    """
    kept: List[SuspiciousInterval] = []
    for interval in intervals:
        if not any(interval.intersects(other) for other in kept):
            kept.append(interval)
    return kept


@dataclass
class IntervalFinder:
    """
    Stateless interval finder.

    Notes:
    - Settings default to the global config and can be passed explicitly.
    - Each slice is scanned independently; a slice that fails is logged and
      skipped without affecting the rest of the batch.
    - Ranking and overlap removal always run on the merged candidate list.
    """

    settings: Optional[IntervalConfig] = None

    def __post_init__(self) -> None:
        if self.settings is None:
            self.settings = config.intervals

    def find_decreasing_intervals(
        self, slices: Iterable[Slice], max_results: Optional[int] = None
    ) -> List[SuspiciousInterval]:
        return self.find_intervals(slices, DetectionMode.DECREASING, max_results)

    def find_constant_intervals(
        self, slices: Iterable[Slice], max_results: Optional[int] = None
    ) -> List[SuspiciousInterval]:
        return self.find_intervals(slices, DetectionMode.CONSTANT, max_results)

    def find_intervals(
        self,
        slices: Iterable[Slice],
        mode: DetectionMode,
        max_results: Optional[int] = None,
    ) -> List[SuspiciousInterval]:
        mode = DetectionMode(mode)
        slices = list(slices)
        limit = self.settings.max_results if max_results is None else max_results

        candidates: List[SuspiciousInterval] = []
        for batch in self._scan(slices, mode):
            candidates.extend(batch)

        # sorted() is stable, so equal scores keep scan order
        ranked = sorted(candidates, key=lambda interval: interval.score(mode), reverse=True)
        if self.settings.remove_intersections:
            ranked = remove_intersecting_intervals(ranked)

        result = ranked[:limit]
        logger.info(
            "Found %d %s intervals (%d candidates) in %d slices",
            len(result),
            mode.value,
            len(candidates),
            len(slices),
        )
        return result

    def _scan(self, slices: List[Slice], mode: DetectionMode) -> Iterator[List[SuspiciousInterval]]:
        if self.settings.max_workers > 1 and len(slices) > 1:
            with ThreadPoolExecutor(max_workers=self.settings.max_workers) as pool:
                yield from pool.map(lambda s: self._safe_collect(s, mode), slices)
        else:
            for slice in slices:
                yield self._safe_collect(slice, mode)

    def _safe_collect(self, slice: Slice, mode: DetectionMode) -> List[SuspiciousInterval]:
        try:
            return self.collect_candidates(slice, mode)
        except IntervalDetectionError as exc:
            logger.warning("Skipping slice %s: %s", slice.describe(), exc)
            return []

    def collect_candidates(self, slice: Slice, mode: DetectionMode) -> List[SuspiciousInterval]:
        """
        Enumerate admitted intervals of one slice in scan order.

        Slices shorter than max_length_divisor points have no intervals.
        """
        mode = DetectionMode(mode)
        n = len(slice.points)
        if n < 2:
            return []
        if mode is DetectionMode.DECREASING:
            if slice.value_range == 0:
                return []
            noise_floor = slice.sigma * self.settings.decrease_sigma_multiplier
            admit = partial(self._is_decreasing, noise_floor=noise_floor)
        else:
            admit = self._is_constant

        candidates: List[SuspiciousInterval] = []
        for pos1, pos2 in self._grid(n):
            interval = SuspiciousInterval(slice, pos1, pos2, self.settings.width_threshold)
            if admit(interval):
                candidates.append(interval)
        return candidates

    def _grid(self, n: int) -> Iterator[Tuple[int, int]]:
        chunk = max(n // self.settings.chunk_divisor, 1)
        max_length = n // self.settings.max_length_divisor
        for pos1 in range(0, n - 1, chunk):
            last = min(n - 1, pos1 + max_length)
            for pos2 in range(pos1 + 1, last + 1, chunk):
                yield pos1, pos2

    def _is_decreasing(self, interval: SuspiciousInterval, noise_floor: float) -> bool:
        drop = -interval.diff
        if drop <= 0 or drop <= noise_floor:
            return False
        width = interval.relative_width
        if width < self.settings.min_interval_width_fraction:
            return False
        return interval.drop_ratio > self.settings.decrease_threshold_fraction * width

    def _is_constant(self, interval: SuspiciousInterval) -> bool:
        if interval.relative_width < self.settings.min_interval_width_fraction:
            return False
        return interval.relative_value_range < self.settings.flatness_threshold_fraction
