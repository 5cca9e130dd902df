"""
Data module: Row ingestion, slice schema, and slice retrieval.

Converts a raw table into time-ordered slices ready for interval detection:

    Raw rows (CSV)
        ↓
    Ingestion (slicewatch/data/ingestion.py)
        ↓
    Table store (slicewatch/data/slicing.py) → TableStore
        ↓
    Slice retrieval per category combination → Slice
        ↓
    Accumulation (Slice.get_accumulation) → ready for interval detection
"""

from slicewatch.data.ingestion import (
    CSVRowSource,
    RowIngestionError,
    ingest_rows,
)
from slicewatch.data.schema import Slice, SlicePoint
from slicewatch.data.slicing import (
    SliceRetriever,
    TableStore,
    category_combinations,
)

__all__ = [
    # Schema
    "Slice",
    "SlicePoint",

    # Ingestion
    "ingest_rows",
    "CSVRowSource",
    "RowIngestionError",

    # Slicing
    "TableStore",
    "SliceRetriever",
    "category_combinations",
]
