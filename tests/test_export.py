"""Tests for CSV export."""

from __future__ import annotations

import csv
from datetime import UTC, datetime
from pathlib import Path

import pytest

from onboarding.export import (
    CSV_COLUMNS,
    ExportError,
    record_to_row,
    render_summary_csv,
    write_summary_csv,
)
from onboarding.models import DeploymentOutcome, ResultRecord, RunStatus, RunSummary

TS = datetime(2024, 1, 2, 3, 4, 5, tzinfo=UTC)


def make_summary() -> RunSummary:
    return RunSummary(
        records=(
            ResultRecord(
                TS,
                "aaaaaaaa-0000-0000-0000-000000000001",
                "delegation-aaaaaaaa-20240102030405",
                "Succeeded",
                "tenant",
                DeploymentOutcome.SUCCEEDED,
                "Deployment succeeded.",
            ),
            ResultRecord(
                TS,
                "bbbbbbbb-0000-0000-0000-000000000002",
                None,
                None,
                "tenant",
                DeploymentOutcome.FAILED,
                "Provider registration failed or timed out.",
            ),
        ),
        status=RunStatus.FAILED,
    )


class TestRecordToRow:
    def test_timestamp_is_utc_iso(self) -> None:
        row = record_to_row(make_summary().records[0])
        assert row["Timestamp"] == "2024-01-02T03:04:05Z"

    def test_missing_values_are_empty(self) -> None:
        row = record_to_row(make_summary().records[1])

        assert row["DeploymentName"] == ""
        assert row["ProvisioningState"] == ""
        assert row["Outcome"] == "Failed"
        assert set(row) == set(CSV_COLUMNS)


class TestWriteSummaryCsv:
    """Tests for write_summary_csv."""

    def test_one_row_per_record_in_order(self, tmp_path: Path) -> None:
        path = write_summary_csv(make_summary(), tmp_path / "results.csv")

        with path.open(newline="", encoding="utf-8") as handle:
            rows = list(csv.DictReader(handle))

        assert [r["TargetId"] for r in rows] == [
            "aaaaaaaa-0000-0000-0000-000000000001",
            "bbbbbbbb-0000-0000-0000-000000000002",
        ]
        assert rows[0]["Outcome"] == "Succeeded"
        assert rows[1]["Message"] == "Provider registration failed or timed out."

    def test_header_columns(self, tmp_path: Path) -> None:
        path = write_summary_csv(make_summary(), tmp_path / "results.csv")

        header = path.read_text(encoding="utf-8").splitlines()[0]
        assert header.split(",") == list(CSV_COLUMNS)

    def test_creates_parent_directories(self, tmp_path: Path) -> None:
        path = write_summary_csv(make_summary(), tmp_path / "nested" / "dir" / "results.csv")
        assert path.exists()

    def test_empty_summary_writes_header_only(self, tmp_path: Path) -> None:
        summary = RunSummary(records=(), status=RunStatus.SUCCESS)

        path = write_summary_csv(summary, tmp_path / "results.csv")

        assert path.read_text(encoding="utf-8").splitlines() == [",".join(CSV_COLUMNS)]

    def test_unwritable_location_raises_export_error(self, tmp_path: Path) -> None:
        blocker = tmp_path / "blocker"
        blocker.write_text("")
        summary = make_summary()

        with pytest.raises(ExportError) as exc_info:
            write_summary_csv(summary, blocker / "results.csv")

        assert exc_info.value.summary is summary
        assert exc_info.value.path == blocker / "results.csv"
        assert "Failed to write run summary" in str(exc_info.value)


class TestRenderSummaryCsv:
    def test_matches_written_file(self, tmp_path: Path) -> None:
        path = write_summary_csv(make_summary(), tmp_path / "results.csv")

        assert path.read_bytes().decode("utf-8") == render_summary_csv(make_summary())
