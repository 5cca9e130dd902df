"""
Slice retrieval from a tabular data source.

The table store holds ingested rows in a pandas DataFrame and answers the
queries slice retrieval needs: which columns are categories and which are
value series, which label combinations carry the most volume, and the
time-ordered points of one combination.

Design:
- Rows with an unparseable date or amount are dropped at load time
- Columns whose non-empty cells are all numeric are value columns,
  the remaining columns (except date) are categories
- Slices of a combination are ordered by date; values are rounded to integers
- A slice that cannot be built is logged and skipped
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from itertools import combinations
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union

import pandas as pd
from pydantic import ValidationError

from slicewatch.core.config import config
from slicewatch.core.enums import ApproximationKind
from slicewatch.core.exceptions import DataValidationError
from slicewatch.data.ingestion import ingest_rows
from slicewatch.data.schema import Slice, SlicePoint

logger = logging.getLogger(__name__)


def _as_utc(value: Union[datetime, str, pd.Timestamp]) -> pd.Timestamp:
    ts = pd.Timestamp(value)
    if ts.tzinfo is None:
        return ts.tz_localize("UTC")
    return ts.tz_convert("UTC")


def category_combinations(
    category_names: Iterable[str],
    max_categories: int
) -> List[Tuple[str, ...]]:
    """
    List every distinct combination of up to max_categories category names.

    Names inside a combination are sorted, so each set appears once.

    Example:
        category_combinations(["b", "a", "c"], 2)
        -> [("a",), ("b",), ("c",), ("a", "b"), ("a", "c"), ("b", "c")]
    """
    names = sorted(set(category_names))
    result: List[Tuple[str, ...]] = []
    for size in range(1, max_categories + 1):
        result.extend(combinations(names, size))
    return result


@dataclass(eq=False)
class TableStore:
    """
    In-memory table of observations backed by a pandas DataFrame.

    Attributes:
        table_name: Name reported as the source table of every slice
        frame: Typed rows, sorted by date
        date_column: Column with observation timestamps (UTC)
        amount_column: Column with item counts
    """

    table_name: str
    frame: pd.DataFrame
    date_column: str = field(default_factory=lambda: config.slicing.date_column)
    amount_column: str = field(default_factory=lambda: config.slicing.amount_column)
    value_columns: List[str] = field(default_factory=list, init=False)

    def __post_init__(self) -> None:
        missing = [c for c in (self.date_column, self.amount_column) if c not in self.frame.columns]
        if missing:
            raise DataValidationError(f"Table {self.table_name} lacks required columns: {missing}")
        self.frame = self._typed(self.frame)

    @classmethod
    def from_rows(
        cls,
        table_name: str,
        rows: Iterable[Dict[str, Any]],
        date_column: Optional[str] = None,
        amount_column: Optional[str] = None,
    ) -> "TableStore":
        """
        Build a store from raw row dicts.

        Raises:
            DataValidationError: If there are no rows or required columns are missing
        """
        frame = pd.DataFrame(list(rows))
        if frame.empty:
            raise DataValidationError(f"Table {table_name} has no rows")
        return cls(
            table_name=table_name,
            frame=frame,
            date_column=date_column or config.slicing.date_column,
            amount_column=amount_column or config.slicing.amount_column,
        )

    @classmethod
    def from_csv(
        cls,
        filepath: Union[str, Path],
        table_name: Optional[str] = None,
        date_column: Optional[str] = None,
        amount_column: Optional[str] = None,
    ) -> "TableStore":
        """Load a CSV file; the table name defaults to the file stem."""
        filepath = Path(filepath)
        return cls.from_rows(
            table_name or filepath.stem,
            ingest_rows(filepath),
            date_column=date_column,
            amount_column=amount_column,
        )

    def _typed(self, frame: pd.DataFrame) -> pd.DataFrame:
        frame = frame.copy()
        frame[self.date_column] = pd.to_datetime(frame[self.date_column], utc=True, errors="coerce")
        frame[self.amount_column] = pd.to_numeric(frame[self.amount_column], errors="coerce")

        invalid = frame[self.date_column].isna() | frame[self.amount_column].isna()
        if invalid.any():
            logger.warning(
                "Dropping %d rows of %s with invalid %s or %s",
                int(invalid.sum()),
                self.table_name,
                self.date_column,
                self.amount_column,
            )
            frame = frame.loc[~invalid].copy()
        if frame.empty:
            raise DataValidationError(f"Table {self.table_name} has no valid rows")

        self.value_columns = []
        for column in frame.columns:
            if column in (self.date_column, self.amount_column):
                continue
            raw = frame[column]
            present = raw.notna() & (raw.astype(str).str.strip() != "")
            numeric = pd.to_numeric(raw, errors="coerce")
            if present.any() and numeric[present].notna().all():
                frame[column] = numeric
                self.value_columns.append(column)
            else:
                frame[column] = raw.fillna("").astype(str)

        frame[self.amount_column] = frame[self.amount_column].round().astype("int64")
        return frame.sort_values(self.date_column, kind="mergesort").reset_index(drop=True)

    def _check_columns(self, columns: Sequence[str]) -> None:
        unknown = [c for c in columns if c not in self.frame.columns]
        if unknown:
            raise DataValidationError(f"Unknown columns for table {self.table_name}: {unknown}")

    def get_category_names(self) -> List[str]:
        return sorted(
            c for c in self.frame.columns
            if c != self.date_column and c != self.amount_column and c not in self.value_columns
        )

    def get_value_names(self) -> List[str]:
        return sorted(self.value_columns)

    def get_border_dates(self) -> Tuple[datetime, datetime]:
        dates = self.frame[self.date_column]
        return dates.min().to_pydatetime(), dates.max().to_pydatetime()

    def get_label_combinations(
        self,
        categories: Sequence[str],
        max_count: int
    ) -> List[Tuple[str, ...]]:
        """
        Label combinations of the given categories, largest total amount first.

        Args:
            categories: Category columns to group by
            max_count: Maximum number of combinations returned

        Returns:
            Tuples of labels, positionally matching categories

        Raises:
            DataValidationError: If a column is unknown
        """
        categories = list(categories)
        self._check_columns(categories)
        if not categories:
            return []
        totals = self.frame.groupby(categories, sort=True)[self.amount_column].sum()
        totals = totals.sort_values(ascending=False, kind="mergesort").head(max_count)
        combos = []
        for key in totals.index:
            labels = key if isinstance(key, tuple) else (key,)
            combos.append(tuple(str(label) for label in labels))
        return combos

    def get_slice(
        self,
        value_column: str,
        categories: Sequence[str],
        labels: Sequence[str],
        approximation_kind: ApproximationKind = ApproximationKind.EMPTY,
        min_date: Optional[datetime] = None,
        max_date: Optional[datetime] = None,
    ) -> Slice:
        """
        Build the slice of one label combination.

        Args:
            value_column: Numeric column used as point value
            categories: Category columns
            labels: Label per category column
            approximation_kind: Trend function of the slice
            min_date: Inclusive lower date bound (optional)
            max_date: Inclusive upper date bound (optional)

        Returns:
            Slice ordered by date; empty when no row matches

        Raises:
            DataValidationError: If a column is unknown or not numeric
        """
        categories = list(categories)
        labels = [str(label) for label in labels]
        self._check_columns(categories + [value_column])
        if value_column not in self.value_columns:
            raise DataValidationError(f"Column {value_column} of {self.table_name} is not numeric")
        if len(categories) != len(labels):
            raise DataValidationError(f"{len(categories)} categories but {len(labels)} labels")

        mask = pd.Series(True, index=self.frame.index)
        for category, label in zip(categories, labels):
            mask &= self.frame[category] == label
        dates = self.frame[self.date_column]
        if min_date is not None:
            mask &= dates >= _as_utc(min_date)
        if max_date is not None:
            mask &= dates <= _as_utc(max_date)

        rows = self.frame.loc[mask, [self.date_column, value_column, self.amount_column]]
        rows = rows.dropna(subset=[value_column])
        points = tuple(
            SlicePoint(value=int(round(value)), amount=int(amount), timestamp=ts.to_pydatetime())
            for ts, value, amount in rows.itertuples(index=False, name=None)
        )
        return Slice(
            source_table=self.table_name,
            value_column=value_column,
            category_names=tuple(categories),
            category_labels=tuple(labels),
            points=points,
            approximation_kind=approximation_kind,
        )


@dataclass
class SliceRetriever:
    """
    Fetches slices of a table for category combinations.

    Notes:
    - Slices are ordered by total amount, largest first
    - Equal slices fetched for different combinations are kept once
    """

    store: TableStore
    approximation_kind: Optional[ApproximationKind] = None

    def __post_init__(self) -> None:
        if self.approximation_kind is None:
            self.approximation_kind = config.intervals.approximation_kind

    def get_category_slices(
        self,
        value_column: str,
        categories: Sequence[str],
        max_slices: Optional[int] = None,
        min_date: Optional[datetime] = None,
        max_date: Optional[datetime] = None,
    ) -> List[Slice]:
        max_slices = max_slices or config.slicing.max_slices_per_combo
        logger.info("Fetching slices of %s by %s", value_column, list(categories))

        slices: List[Slice] = []
        for labels in self.store.get_label_combinations(categories, max_slices):
            try:
                slices.append(
                    self.store.get_slice(
                        value_column,
                        categories,
                        labels,
                        self.approximation_kind,
                        min_date=min_date,
                        max_date=max_date,
                    )
                )
            except (DataValidationError, ValidationError) as exc:
                logger.warning("Skipping slice %s=%s: %s", list(categories), list(labels), exc)

        slices.sort(key=lambda s: -s.total_amount)
        logger.info("Fetched %d slices by %s", len(slices), list(categories))
        return slices

    def get_category_slices_accumulated(
        self,
        value_column: str,
        categories: Sequence[str],
        max_slices: Optional[int] = None,
        min_date: Optional[datetime] = None,
        max_date: Optional[datetime] = None,
    ) -> List[Slice]:
        return [
            s.get_accumulation()
            for s in self.get_category_slices(value_column, categories, max_slices, min_date, max_date)
        ]

    def get_slices_accumulated(
        self,
        value_column: str,
        max_categories: Optional[int] = None,
        max_slices: Optional[int] = None,
        min_date: Optional[datetime] = None,
        max_date: Optional[datetime] = None,
    ) -> List[Slice]:
        """
        Accumulated slices for every combination of up to max_categories categories.

        Returns:
            Distinct slices, in combination order
        """
        max_categories = max_categories or config.slicing.max_categories
        slices: List[Slice] = []
        for categories in category_combinations(self.store.get_category_names(), max_categories):
            slices.extend(
                self.get_category_slices_accumulated(value_column, categories, max_slices, min_date, max_date)
            )
        # dict.fromkeys keeps first occurrence of equal slices
        return list(dict.fromkeys(slices))
