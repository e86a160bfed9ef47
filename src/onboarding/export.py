"""CSV export of a run summary."""

from __future__ import annotations

import csv
import io
import logging
from pathlib import Path

from .models import ResultRecord, RunSummary

logger = logging.getLogger(__name__)

CSV_COLUMNS: tuple[str, ...] = (
    "Timestamp",
    "TargetId",
    "DeploymentName",
    "ProvisioningState",
    "CapabilityOwnerId",
    "Outcome",
    "Message",
)


class ExportError(Exception):
    """Raised when the run summary cannot be written.

    Carries the summary so the caller can still report the records.
    """

    def __init__(self, summary: RunSummary, path: Path, reason: str) -> None:
        super().__init__(f"Failed to write run summary to {path}: {reason}")
        self.summary = summary
        self.path = path


def record_to_row(record: ResultRecord) -> dict[str, str]:
    """Flatten a record into export columns. Missing values become empty cells."""
    return {
        "Timestamp": record.timestamp.isoformat().replace("+00:00", "Z"),
        "TargetId": record.target_id,
        "DeploymentName": record.deployment_name or "",
        "ProvisioningState": record.provisioning_state or "",
        "CapabilityOwnerId": record.capability_owner_id or "",
        "Outcome": record.outcome.value,
        "Message": record.message,
    }


def render_summary_csv(summary: RunSummary) -> str:
    """Render the header and one row per record, in summary order."""
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=CSV_COLUMNS)
    writer.writeheader()
    for record in summary.records:
        writer.writerow(record_to_row(record))
    return buffer.getvalue()


def write_summary_csv(summary: RunSummary, path: Path) -> Path:
    """Write the rendered summary to ``path``.

    Returns:
        The path written.

    Raises:
        ExportError: If the file or its parent directories cannot be written.
    """
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(render_summary_csv(summary), encoding="utf-8", newline="")
    except OSError as e:
        raise ExportError(summary, path, str(e)) from e

    logger.info(
        "Exported run summary",
        extra={"path": str(path), "rows": len(summary.records)},
    )
    return path
