"""
Detection jobs shared by the HTTP backend and the export CLI.
"""

from __future__ import annotations

import csv
import logging
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Union

from slicewatch.core.config import IntervalConfig, config
from slicewatch.core.enums import ApproximationKind, DetectionMode
from slicewatch.data.slicing import SliceRetriever, TableStore
from slicewatch.intervals import IntervalFinder, IntervalRecord, SuspiciousInterval

logger = logging.getLogger(__name__)

MISSING_LABEL = "-"
RECORD_FIELDS = [
    "source_table",
    "value_column",
    "mode",
    "pos1",
    "pos2",
    "start",
    "end",
    "score",
    "relative_width",
    "relative_diff",
    "relative_value_range",
    "relative_sigma",
    "slope",
]


def detect_intervals(
    store: TableStore,
    value_column: str,
    mode: DetectionMode,
    max_categories: Optional[int] = None,
    max_slices_per_combo: Optional[int] = None,
    min_date: Optional[datetime] = None,
    max_date: Optional[datetime] = None,
    settings: Optional[IntervalConfig] = None,
    approximation_kind: Optional[ApproximationKind] = None,
) -> List[SuspiciousInterval]:
    """
    Fetch accumulated slices of every category combination and rank their intervals.
    """
    settings = settings or config.intervals
    retriever = SliceRetriever(store, approximation_kind or settings.approximation_kind)
    slices = retriever.get_slices_accumulated(
        value_column,
        max_categories=max_categories,
        max_slices=max_slices_per_combo,
        min_date=min_date,
        max_date=max_date,
    )
    return IntervalFinder(settings).find_intervals(slices, mode)


def _series(points) -> List[Dict[str, object]]:
    return [{"timestamp": p.timestamp.isoformat(), "value": p.signal} for p in points]


def interval_to_payload(interval: SuspiciousInterval, mode: DetectionMode) -> Dict[str, object]:
    """
    JSON-ready view of an interval: the record plus the series needed to chart it.
    """
    payload = interval.to_record(mode).model_dump(mode="json")
    payload["interval_series"] = _series(interval.chart_points())
    payload["slice_series"] = _series(interval.slice.points)
    return payload


def write_records_csv(
    records: Sequence[IntervalRecord],
    path: Union[str, Path],
    category_columns: Optional[Sequence[str]] = None,
) -> Path:
    """
    Write interval records as CSV rows, one label column per category.

    Categories a record was not grouped by are written as MISSING_LABEL.
    """
    path = Path(path)
    if category_columns is None:
        category_columns = sorted({name for record in records for name in record.labels})
    fieldnames = list(category_columns) + RECORD_FIELDS

    with open(path, "w", encoding="utf-8", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=fieldnames)
        writer.writeheader()
        for record in records:
            row = record.model_dump(mode="json", exclude={"labels"})
            for column in category_columns:
                row[column] = record.labels.get(column, MISSING_LABEL)
            writer.writerow(row)

    logger.info("Wrote %d interval records to %s", len(records), path)
    return path
