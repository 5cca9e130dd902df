"""
Batch export of suspicious intervals to CSV.

Example:
    python -m backend.export data.csv --value value_1 --mode decreasing --output decreases.csv
"""

from __future__ import annotations

import argparse
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from backend.jobs import detect_intervals, write_records_csv
from slicewatch.core.config import config
from slicewatch.core.enums import ApproximationKind, DetectionMode
from slicewatch.core.logging_config import setup_logging
from slicewatch.data.slicing import TableStore


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Export suspicious intervals of a CSV table")
    parser.add_argument("input", type=Path, help="CSV file with one observation per row")
    parser.add_argument("--value", required=True, help="Numeric value column to analyse")
    parser.add_argument(
        "--mode",
        choices=[m.value for m in DetectionMode],
        default=DetectionMode.DECREASING.value,
    )
    parser.add_argument("--output", type=Path, required=True)
    parser.add_argument("--table", default=None, help="Table name (defaults to the file stem)")
    parser.add_argument("--date-column", default=config.slicing.date_column)
    parser.add_argument("--amount-column", default=config.slicing.amount_column)
    parser.add_argument(
        "--approximation",
        choices=[k.value for k in ApproximationKind],
        default=config.intervals.approximation_kind.value,
    )
    parser.add_argument("--max-categories", type=int, default=config.slicing.max_categories)
    parser.add_argument("--max-slices", type=int, default=config.slicing.max_slices_per_combo)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    load_dotenv()
    logger = setup_logging()
    args = build_parser().parse_args(argv)

    store = TableStore.from_csv(
        args.input,
        table_name=args.table,
        date_column=args.date_column,
        amount_column=args.amount_column,
    )
    mode = DetectionMode(args.mode)
    intervals = detect_intervals(
        store,
        args.value,
        mode,
        max_categories=args.max_categories,
        max_slices_per_combo=args.max_slices,
        approximation_kind=ApproximationKind(args.approximation),
    )
    records = [interval.to_record(mode) for interval in intervals]
    write_records_csv(records, args.output, category_columns=store.get_category_names())
    logger.info("Exported %d %s intervals of %s", len(records), mode.value, store.table_name)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
