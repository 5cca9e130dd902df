"""
Integration test for the full interval detection pipeline.

Tests end-to-end flow from a CSV table to exported interval records.
"""

import csv

import pytest

from backend import export
from backend.jobs import detect_intervals
from slicewatch.core.enums import DetectionMode
from slicewatch.data.slicing import TableStore


def _write_table(path, rows):
    with open(path, "w", encoding="utf-8", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=list(rows[0]))
        writer.writeheader()
        writer.writerows(rows)
    return path


@pytest.mark.integration
class TestFullPipeline:
    """Test end-to-end pipeline from CSV rows to ranked intervals."""

    def test_csv_to_constant_intervals(self, tmp_path, sample_rows, interval_settings):
        path = _write_table(tmp_path / "sales.csv", sample_rows)

        # Step 1: Load
        store = TableStore.from_csv(path)
        assert store.table_name == "sales"
        assert len(store.frame) == 40

        # Step 2: Detect
        found = detect_intervals(store, "value_1", DetectionMode.CONSTANT, settings=interval_settings)
        assert 0 < len(found) <= interval_settings.max_results

        # Step 3: Ranking and overlap removal
        scores = [i.flatness_score for i in found]
        assert scores == sorted(scores, reverse=True)
        for i, first in enumerate(found):
            for second in found[i + 1:]:
                assert not first.intersects(second)

    def test_falling_balance_detected(self, tmp_path, interval_settings):
        # daily balance deltas: steady deposits, then a run of withdrawals
        deltas = [50] * 20 + [-40] * 10 + [10] * 10
        rows = [
            {
                "first_date": f"2025-01-{day + 1:02d}T00:00:00Z",
                "account": "a-1",
                "delta": str(delta),
                "amount": "1",
            }
            for day, delta in enumerate(deltas[:31])
        ]
        path = _write_table(tmp_path / "ledger.csv", rows)

        store = TableStore.from_csv(path)
        found = detect_intervals(store, "delta", DetectionMode.DECREASING, settings=interval_settings)

        assert found
        top = found[0]
        assert top.is_decreasing
        assert 19 <= top.pos1 < top.pos2 <= 30

    def test_export_cli(self, tmp_path, sample_rows):
        source = _write_table(tmp_path / "sales.csv", sample_rows)
        output = tmp_path / "flat.csv"

        code = export.main([
            str(source),
            "--value", "value_1",
            "--mode", "constant",
            "--approximation", "empty",
            "--output", str(output),
        ])

        assert code == 0
        with open(output, encoding="utf-8", newline="") as f:
            rows = list(csv.DictReader(f))
        assert rows
        assert rows[0]["mode"] == "constant"
        assert rows[0]["source_table"] == "sales"
