"""Result records and run summaries. Pure data assembly, no I/O."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import UTC, datetime

from .models import (
    DeploymentOutcome,
    DeploymentResult,
    ResultRecord,
    RunStatus,
    RunSummary,
    Target,
)


def record(
    target: Target,
    result: DeploymentResult,
    *,
    deployment_name: str | None = None,
    capability_owner_id: str | None = None,
    timestamp: datetime | None = None,
) -> ResultRecord:
    """Build the record for one target."""
    return ResultRecord(
        timestamp=timestamp or datetime.now(UTC),
        target_id=target.subscription_id,
        deployment_name=deployment_name,
        provisioning_state=result.provisioning_state,
        capability_owner_id=capability_owner_id,
        outcome=result.outcome,
        message=result.message,
    )


def overall_status(records: Iterable[ResultRecord]) -> RunStatus:
    """Failed if any record failed, else Success."""
    if any(r.outcome == DeploymentOutcome.FAILED for r in records):
        return RunStatus.FAILED
    return RunStatus.SUCCESS


def summarize(
    records: Iterable[ResultRecord],
    started_at: datetime | None = None,
) -> RunSummary:
    """Freeze the ordered records into a RunSummary."""
    frozen = tuple(records)
    finished_at = datetime.now(UTC)
    return RunSummary(
        records=frozen,
        status=overall_status(frozen),
        started_at=started_at or finished_at,
        finished_at=finished_at,
    )
