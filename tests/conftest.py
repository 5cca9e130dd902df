"""
Pytest configuration and shared fixtures.

Provides interval settings, slice builders and sample tables for unit and
integration tests.
"""

import pytest
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence

from slicewatch.core.config import IntervalConfig
from slicewatch.core.enums import ApproximationKind
from slicewatch.data.schema import Slice, SlicePoint

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


@pytest.fixture
def interval_settings() -> IntervalConfig:
    """
    Fixture providing interval settings independent of .env overrides.

    The sigma noise floor is disabled so that tests control admission
    through the width and drop thresholds only.
    """
    return IntervalConfig(
        approximation_kind=ApproximationKind.EMPTY,
        min_interval_width_fraction=0.05,
        decrease_threshold_fraction=0.5,
        decrease_sigma_multiplier=0.0,
        flatness_threshold_fraction=0.1,
        width_threshold=0.2,
        max_results=32,
        remove_intersections=True,
    )


@pytest.fixture
def make_slice() -> Callable[..., Slice]:
    """
    Factory building a slice from a list of signals.

    Points are one minute apart unless explicit millisecond offsets are given;
    every point has amount 1, so the value equals the signal.
    """

    def _make(
        signals: Sequence[int],
        offsets_ms: Optional[Sequence[int]] = None,
        kind: ApproximationKind = ApproximationKind.EMPTY,
        labels: Sequence[str] = ("north",),
        table: str = "sales",
    ) -> Slice:
        if offsets_ms is None:
            offsets_ms = [i * 60_000 for i in range(len(signals))]
        points = tuple(
            SlicePoint(value=s, amount=1, timestamp=EPOCH + timedelta(milliseconds=ms))
            for s, ms in zip(signals, offsets_ms)
        )
        return Slice(
            source_table=table,
            value_column="value_1",
            category_names=("region",)[:len(labels)],
            category_labels=tuple(labels),
            points=points,
            approximation_kind=kind,
        )

    return _make


@pytest.fixture
def raw_slice() -> Slice:
    """
    Five observations between 10000 and 10050 ms.

    Signals are 500, 450, -800, 1000, 500; accumulated they become
    500, 950, 150, 1150, 1650.
    """
    rows = [(100, 5, 10000), (150, 3, 10010), (-200, 4, 10030), (50, 20, 10040), (250, 2, 10050)]
    return Slice(
        source_table="sales",
        value_column="value_1",
        category_names=("region",),
        category_labels=("north",),
        points=tuple(
            SlicePoint(value=v, amount=a, timestamp=EPOCH + timedelta(milliseconds=ms))
            for v, a, ms in rows
        ),
    )


@pytest.fixture
def accumulated_slice(raw_slice) -> Slice:
    return raw_slice.get_accumulation()


@pytest.fixture
def decreasing_signals() -> List[int]:
    """
    40 signals: rise to 200, a drop to 110 over points 20..29, a slow recovery.
    """
    signals = []
    for i in range(40):
        if i < 20:
            signals.append(i * 10)
        elif i < 30:
            signals.append(200 - (i - 20) * 10)
        else:
            signals.append(110 + (i - 30) * 5)
    return signals


@pytest.fixture
def plateau_signals() -> List[int]:
    """
    40 signals: rise to 100, flat at 100 over points 10..29, rise to 200.
    """
    signals = []
    for i in range(40):
        if i < 10:
            signals.append(i * 10)
        elif i < 30:
            signals.append(100)
        else:
            signals.append(100 + (i - 29) * 10)
    return signals


@pytest.fixture
def sample_rows() -> List[Dict[str, Any]]:
    """
    Raw table rows for two regions and two channels over ten hours.

    The north region stops selling after hour 5, so its accumulated
    series flattens; the south region keeps growing.
    """
    base = datetime(2025, 2, 7, 0, 0, tzinfo=timezone.utc)
    rows = []
    for hour in range(10):
        for region in ("north", "south"):
            for channel in ("web", "store"):
                if region == "north" and hour >= 5:
                    amount = 0
                else:
                    amount = 2 if channel == "web" else 1
                rows.append({
                    "first_date": (base + timedelta(hours=hour)).isoformat(),
                    "region": region,
                    "channel": channel,
                    "value_1": str(100 + hour),
                    "amount": str(amount),
                })
    return rows


def pytest_configure(config):
    """
    Pytest hook for custom configuration.

    Registers custom markers used throughout tests.
    """
    config.addinivalue_line(
        "markers", "unit: mark test as a unit test"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as an integration test"
    )
    config.addinivalue_line(
        "markers", "slow: mark test as slow running (deferred CI)"
    )
