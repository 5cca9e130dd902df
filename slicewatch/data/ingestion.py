"""
Row ingestion from CSV files.

The source table is a flat CSV file: one observation per row, with a date
column, an amount column, one or more numeric value columns and any number
of categorical columns. Ingested rows are returned as raw dictionaries;
typing and grouping are done by the table store.

Design:
- Iterator-based for memory efficiency with large files
- Empty rows logged and skipped, they don't crash the pipeline
- Returns raw dicts, not typed records
"""

import csv
import logging
from pathlib import Path
from typing import Any, Dict, Iterator, Union

logger = logging.getLogger(__name__)


class RowIngestionError(Exception):
    """Raised when a source file cannot be read."""
    pass


class CSVRowSource:
    """
    Ingests CSV-formatted tables.

    Assumes first row contains headers.

    Example:
        first_date,region,channel,value_1,amount
        2024-01-01T00:00:00Z,north,web,100,5
        2024-01-01T01:00:00Z,north,web,150,3
    """

    def __init__(
        self,
        filepath: Union[str, Path],
        encoding: str = "utf-8",
        delimiter: str = ","
    ):
        """
        Initialize CSV row source.

        Args:
            filepath: Path to CSV file
            encoding: File encoding
            delimiter: CSV delimiter (default comma)

        Raises:
            RowIngestionError: If file doesn't exist
        """
        self.filepath = Path(filepath)
        self.encoding = encoding
        self.delimiter = delimiter

        if not self.filepath.exists():
            raise RowIngestionError(f"Data file not found: {self.filepath}")

    def ingest(self) -> Iterator[Dict[str, Any]]:
        """
        Read the CSV file.

        First row must contain headers.
        Empty rows are logged and skipped.

        Yields:
            Dict mapping column names to raw string values
        """
        try:
            with open(self.filepath, "r", encoding=self.encoding, newline="") as f:
                reader = csv.DictReader(f, delimiter=self.delimiter)

                if reader.fieldnames is None:
                    raise RowIngestionError("CSV file is empty")

                # Normalize BOM in header if present
                reader.fieldnames = [
                    name.lstrip("\ufeff").strip() if isinstance(name, str) else name
                    for name in reader.fieldnames
                ]

                for line_num, row in enumerate(reader, start=2):  # row 1 is the header
                    if row is None or all(v in (None, "") for v in row.values()):
                        logger.warning(f"Empty row at line {line_num}")
                        continue
                    row.pop(None, None)  # surplus cells of ragged rows
                    yield row

        except RowIngestionError:
            raise
        except Exception as e:
            logger.error(f"Error reading CSV file {self.filepath}: {e}")
            raise RowIngestionError(f"Failed to read CSV file: {e}") from e


def ingest_rows(
    filepath: Union[str, Path],
    delimiter: str = ","
) -> Iterator[Dict[str, Any]]:
    """
    Convenience function to ingest rows from a CSV file.

    Args:
        filepath: Path to the CSV file
        delimiter: Column delimiter

    Yields:
        Raw row dict

    Raises:
        RowIngestionError: If the file is missing or unreadable
    """
    yield from CSVRowSource(filepath, delimiter=delimiter).ingest()
