"""Data model for onboarding runs.

Runtime records are plain dataclasses; the selection file read from disk is
a Pydantic model so it is validated at the boundary (fail fast, fail loudly).
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Annotated, Any

from pydantic import BaseModel, Field, field_validator

from .config import VALID_SUBSCRIPTION_ID_PATTERN

# =============================================================================
# Run-time types
# =============================================================================


@dataclass(frozen=True)
class Target:
    """One subscription selected for onboarding."""

    subscription_id: str
    display_name: str = ""

    @property
    def scope(self) -> str:
        """ARM scope of the subscription."""
        return f"/subscriptions/{self.subscription_id}"

    def __str__(self) -> str:
        if self.display_name:
            return f"{self.display_name} ({self.subscription_id})"
        return self.subscription_id


class ProviderRegistrationState(str, Enum):
    """Registration state of a resource provider in one subscription."""

    UNREGISTERED = "Unregistered"
    REGISTERING = "Registering"
    REGISTERED = "Registered"
    TIMED_OUT = "TimedOut"

    @classmethod
    def from_azure(cls, value: str | None) -> ProviderRegistrationState:
        """Map an ARM registrationState string onto the enum.

        ARM also reports NotRegistered and Unregistering; both count as
        unregistered for onboarding purposes.
        """
        if value is None:
            return cls.UNREGISTERED
        normalized = value.strip().lower()
        if normalized == "registered":
            return cls.REGISTERED
        if normalized == "registering":
            return cls.REGISTERING
        return cls.UNREGISTERED


class DeploymentOutcome(str, Enum):
    """Resolved outcome of one subscription."""

    SIMULATED = "Simulated"
    SUCCEEDED = "Succeeded"
    FAILED = "Failed"
    UNKNOWN = "Unknown"

    @classmethod
    def from_provisioning_state(cls, state: str | None) -> DeploymentOutcome:
        """Classify an ARM provisioning state.

        Only terminal states map to SUCCEEDED or FAILED; anything still in
        flight (or missing) is UNKNOWN.
        """
        if state is None:
            return cls.UNKNOWN
        normalized = state.strip().lower()
        if normalized == "succeeded":
            return cls.SUCCEEDED
        if normalized in ("failed", "canceled", "cancelled"):
            return cls.FAILED
        return cls.UNKNOWN


class RunStatus(str, Enum):
    """Overall status of a run."""

    SUCCESS = "Success"
    FAILED = "Failed"

    @property
    def exit_code(self) -> int:
        return 0 if self is RunStatus.SUCCESS else 1


@dataclass(frozen=True)
class DeploymentRequest:
    """A single subscription-scope deployment, built fresh per target."""

    name: str
    location: str
    template: dict[str, Any]
    parameters: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class DeploymentResult:
    """Normalized result of submitting one deployment."""

    outcome: DeploymentOutcome
    provisioning_state: str | None
    message: str


@dataclass(frozen=True)
class ResultRecord:
    """One row of the run summary.

    Every field is always present so the export has stable columns no matter
    which branch produced the record.
    """

    timestamp: datetime
    target_id: str
    deployment_name: str | None
    provisioning_state: str | None
    capability_owner_id: str | None
    outcome: DeploymentOutcome
    message: str

    @property
    def failed(self) -> bool:
        return self.outcome == DeploymentOutcome.FAILED


@dataclass(frozen=True)
class RunSummary:
    """Ordered records of one run plus the derived overall status."""

    records: tuple[ResultRecord, ...]
    status: RunStatus
    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    finished_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def duration_seconds(self) -> float:
        return (self.finished_at - self.started_at).total_seconds()

    def count(self, outcome: DeploymentOutcome) -> int:
        return sum(1 for r in self.records if r.outcome == outcome)


# =============================================================================
# Selection file
# =============================================================================


class SubscriptionSelection(BaseModel):
    """A subscription listed in a selection file."""

    model_config = {"extra": "ignore"}

    id: Annotated[str, Field(min_length=1)]
    name: str | None = None

    @field_validator("id")
    @classmethod
    def validate_id(cls, v: str) -> str:
        if not re.match(VALID_SUBSCRIPTION_ID_PATTERN, v.lower()):
            raise ValueError(f"subscription id must be a GUID: {v}")
        return v.lower()


class TargetSelection(BaseModel):
    """Selection file contents.

    Example:
        subscriptions:
          - id: 00000000-0000-0000-0000-000000000001
            name: prod-workloads
        all: false
    """

    model_config = {"extra": "ignore", "populate_by_name": True}

    subscriptions: list[SubscriptionSelection] = Field(default_factory=list)
    select_all: bool = Field(False, alias="all")

    @property
    def subscription_ids(self) -> list[str]:
        return [s.id for s in self.subscriptions]
