"""
Unit tests for the interval finder.
"""

import logging

import pytest

from slicewatch.core.enums import ApproximationKind, DetectionMode
from slicewatch.intervals import IntervalFinder, SuspiciousInterval, remove_intersecting_intervals


def _bounds(intervals):
    return [(i.pos1, i.pos2) for i in intervals]


class TestRemoveIntersectingIntervals:

    def test_keeps_best_of_overlapping(self, accumulated_slice):
        ranked = [
            SuspiciousInterval(accumulated_slice, 1, 2),
            SuspiciousInterval(accumulated_slice, 0, 2),
            SuspiciousInterval(accumulated_slice, 2, 4),
        ]

        assert _bounds(remove_intersecting_intervals(ranked)) == [(1, 2), (2, 4)]

    def test_idempotent(self, accumulated_slice):
        ranked = [
            SuspiciousInterval(accumulated_slice, 0, 3),
            SuspiciousInterval(accumulated_slice, 1, 2),
            SuspiciousInterval(accumulated_slice, 3, 4),
        ]
        once = remove_intersecting_intervals(ranked)

        assert remove_intersecting_intervals(once) == once

    def test_intervals_of_other_slices_survive(self, make_slice):
        a = make_slice([3, 2, 1], labels=("north",))
        b = make_slice([3, 2, 1], labels=("south",))

        kept = remove_intersecting_intervals([SuspiciousInterval(a, 0, 2), SuspiciousInterval(b, 0, 2)])

        assert len(kept) == 2


class TestFindDecreasingIntervals:

    def test_finds_the_drop(self, make_slice, decreasing_signals, interval_settings):
        s = make_slice(decreasing_signals)

        found = IntervalFinder(interval_settings).find_decreasing_intervals([s])

        assert _bounds(found) == [(20, 29)]
        assert found[0].decrease_score == pytest.approx(0.2025)

    def test_results_sorted_by_score(self, make_slice, interval_settings):
        a = make_slice([0, 100, 200, 300, 250, 200, 150, 100, 50, 100], labels=("north",))
        b = make_slice([0, 100, 200, 300, 290, 280, 270, 260, 250, 260], labels=("south",))

        found = IntervalFinder(interval_settings).find_decreasing_intervals([b, a])
        scores = [i.decrease_score for i in found]

        assert scores == sorted(scores, reverse=True)
        assert found[0].slice is a

    def test_no_results_without_overlap(self, make_slice, decreasing_signals, interval_settings):
        s = make_slice(decreasing_signals)

        found = IntervalFinder(interval_settings).find_decreasing_intervals([s])

        for i, first in enumerate(found):
            for second in found[i + 1:]:
                assert not first.intersects(second)

    def test_keeps_overlaps_when_disabled(self, make_slice, decreasing_signals, interval_settings):
        settings = interval_settings.model_copy(update={"remove_intersections": False})
        s = make_slice(decreasing_signals)

        found = IntervalFinder(settings).find_decreasing_intervals([s])

        assert len(found) > 1
        assert found[0].decrease_score == pytest.approx(0.2025)

    def test_max_results_truncates(self, make_slice, decreasing_signals, interval_settings):
        settings = interval_settings.model_copy(update={"remove_intersections": False})
        s = make_slice(decreasing_signals)

        found = IntervalFinder(settings).find_decreasing_intervals([s], max_results=3)

        assert len(found) == 3

    def test_constant_slice_has_no_decrease(self, make_slice, interval_settings):
        s = make_slice([5] * 40)

        assert IntervalFinder(interval_settings).find_decreasing_intervals([s]) == []

    def test_sigma_noise_floor_rejects_small_drops(self, make_slice, interval_settings):
        settings = interval_settings.model_copy(update={"decrease_sigma_multiplier": 100.0})
        s = make_slice([0, 10, 5, 15, 10, 20, 15, 25, 20, 30], kind=ApproximationKind.LINEAR)

        assert IntervalFinder(settings).find_decreasing_intervals([s]) == []

    def test_degenerate_slice_is_skipped(self, make_slice, decreasing_signals, interval_settings, caplog):
        broken = make_slice([10, 5], offsets_ms=[0, 0], kind=ApproximationKind.LINEAR, labels=("east",))
        healthy = make_slice(decreasing_signals, kind=ApproximationKind.LINEAR)

        with caplog.at_level(logging.WARNING):
            found = IntervalFinder(interval_settings).find_decreasing_intervals([broken, healthy])

        assert _bounds(found) == [(20, 29)]
        assert all(i.slice is healthy for i in found)
        assert "Skipping slice" in caplog.text


class TestFindConstantIntervals:

    def test_finds_the_plateau(self, make_slice, plateau_signals, interval_settings):
        s = make_slice(plateau_signals)

        found = IntervalFinder(interval_settings).find_constant_intervals([s])

        assert _bounds(found) == [(10, 19), (20, 29)]
        assert found[0].flatness_score == pytest.approx((9 / 39) / 0.2)

    def test_constant_slice_is_flat(self, make_slice, interval_settings):
        s = make_slice([5] * 40)

        found = IntervalFinder(interval_settings).find_constant_intervals([s])

        assert found
        assert all(i.relative_value_range == 0.0 for i in found)

    def test_steady_rise_is_not_flat(self, make_slice, interval_settings):
        # on a straight line the relative value range equals the relative width
        settings = interval_settings.model_copy(update={"min_interval_width_fraction": 0.1})
        s = make_slice([i * 10 for i in range(40)])

        assert IntervalFinder(settings).find_constant_intervals([s]) == []


class TestBoundaries:

    @pytest.mark.parametrize("mode", list(DetectionMode))
    def test_single_point_slice(self, make_slice, interval_settings, mode):
        s = make_slice([42])

        assert IntervalFinder(interval_settings).find_intervals([s], mode) == []

    @pytest.mark.parametrize("mode", list(DetectionMode))
    def test_empty_batch(self, interval_settings, mode):
        assert IntervalFinder(interval_settings).find_intervals([], mode) == []

    def test_grid_is_coarse_for_long_slices(self, interval_settings):
        finder = IntervalFinder(interval_settings)

        grid = list(finder._grid(64))

        # chunk 4, max length 16
        assert grid[0] == (0, 1)
        assert all((p2 - p1) % 4 == 1 for p1, p2 in grid)
        assert all(p2 - p1 <= 16 for p1, p2 in grid)
        assert all(p2 <= 63 for _, p2 in grid)

    def test_grid_for_two_points(self, interval_settings):
        assert list(IntervalFinder(interval_settings)._grid(2)) == []

    def test_grid_for_four_points(self, interval_settings):
        assert list(IntervalFinder(interval_settings)._grid(4)) == [(0, 1), (1, 2), (2, 3)]

    @pytest.mark.parametrize("mode", list(DetectionMode))
    def test_three_point_slice_has_no_intervals(self, make_slice, interval_settings, mode):
        s = make_slice([30, 20, 10])

        assert IntervalFinder(interval_settings).find_intervals([s], mode) == []

    def test_thread_pool_matches_sequential(self, make_slice, decreasing_signals, plateau_signals, interval_settings):
        slices = [
            make_slice(decreasing_signals, labels=("north",)),
            make_slice(plateau_signals, labels=("south",)),
        ]
        threaded = interval_settings.model_copy(update={"max_workers": 4})

        sequential = IntervalFinder(interval_settings).find_decreasing_intervals(slices)
        parallel = IntervalFinder(threaded).find_decreasing_intervals(slices)

        assert parallel == sequential
