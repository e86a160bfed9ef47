"""Run controller: applies the delegation template to each selected subscription.

Per target the controller walks the state machine

    Pending -> Registering -> Deploying -> Succeeded | Failed | Simulated

and records exactly one ResultRecord for every target it enters. Targets
are processed strictly one after another; each gets its own
ExecutionContext. With continue_on_error disabled the run stops after the
first failed record, and later targets produce no record at all.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from datetime import UTC, datetime
from enum import Enum

from azure.core.exceptions import AzureError

from .context import ContextActivationError, ContextSelector
from .deployer import DeploymentExecutor, build_request
from .models import DeploymentOutcome, DeploymentResult, ResultRecord, RunSummary, Target
from .providers import ProviderRegistrationPoller
from .recorder import record, summarize
from .template_source import TemplateBundle

logger = logging.getLogger(__name__)

REGISTRATION_FAILED_MESSAGE = "Provider registration failed or timed out."


class TargetState(str, Enum):
    """Lifecycle of one target within a run."""

    PENDING = "Pending"
    REGISTERING = "Registering"
    DEPLOYING = "Deploying"
    SUCCEEDED = "Succeeded"
    FAILED = "Failed"
    SIMULATED = "Simulated"


_TERMINAL_STATES = {
    DeploymentOutcome.SUCCEEDED: TargetState.SUCCEEDED,
    DeploymentOutcome.FAILED: TargetState.FAILED,
    DeploymentOutcome.SIMULATED: TargetState.SIMULATED,
}


class RunController:
    """Sequential onboarding of a list of targets."""

    def __init__(
        self,
        *,
        context_selector: ContextSelector,
        poller: ProviderRegistrationPoller,
        executor: DeploymentExecutor,
        bundle: TemplateBundle,
        region: str,
        provider_namespace: str,
        continue_on_error: bool = False,
        simulate: bool = False,
        on_record: Callable[[Target, ResultRecord], None] | None = None,
        now: Callable[[], datetime] = lambda: datetime.now(UTC),
    ) -> None:
        self._context_selector = context_selector
        self._poller = poller
        self._executor = executor
        self._bundle = bundle
        self._region = region
        self._provider_namespace = provider_namespace
        self._continue_on_error = continue_on_error
        self._simulate = simulate
        self._on_record = on_record
        self._now = now

    def run(self, targets: Iterable[Target]) -> RunSummary:
        """Onboard ``targets`` in order and return the run summary."""
        targets = list(targets)
        started_at = self._now()
        records: list[ResultRecord] = []

        logger.info(
            "Starting onboarding run",
            extra={
                "target_count": len(targets),
                "region": self._region,
                "provider_namespace": self._provider_namespace,
                "continue_on_error": self._continue_on_error,
                "simulate": self._simulate,
            },
        )

        for index, target in enumerate(targets):
            result_record = self._process(target)
            records.append(result_record)

            if self._on_record is not None:
                self._on_record(target, result_record)

            if result_record.failed and not self._continue_on_error:
                skipped = len(targets) - index - 1
                logger.error(
                    "Stopping run after failure",
                    extra={
                        "subscription_id": target.subscription_id,
                        "skipped_targets": skipped,
                    },
                )
                break

        summary = summarize(records, started_at=started_at)
        logger.info(
            "Onboarding run complete",
            extra={
                "status": summary.status.value,
                "records": len(summary.records),
                "succeeded": summary.count(DeploymentOutcome.SUCCEEDED),
                "failed": summary.count(DeploymentOutcome.FAILED),
                "simulated": summary.count(DeploymentOutcome.SIMULATED),
                "duration_seconds": summary.duration_seconds,
            },
        )
        return summary

    def _process(self, target: Target) -> ResultRecord:
        """Walk one target through the state machine. Never raises."""
        self._transition(target, TargetState.PENDING)

        try:
            context = self._context_selector.select(target)
        except ContextActivationError as e:
            return self._fail(target, str(e))

        self._transition(target, TargetState.REGISTERING)
        try:
            registered = self._poller.ensure_registered(
                context, self._provider_namespace, simulate=self._simulate
            )
        except AzureError as e:
            logger.error(
                f"Reading provider state failed for {target.subscription_id}: {e}",
                extra={"subscription_id": target.subscription_id},
            )
            return self._fail(target, f"Provider registration state unavailable: {e}")
        except Exception as e:
            logger.exception(
                "Unexpected error during provider registration",
                extra={"subscription_id": target.subscription_id},
            )
            return self._fail(target, str(e) or type(e).__name__)

        if not registered:
            return self._fail(target, REGISTRATION_FAILED_MESSAGE)

        self._transition(target, TargetState.DEPLOYING)
        request = build_request(
            target,
            self._bundle.template,
            self._region,
            self._bundle.parameters,
            now=self._now(),
        )
        result = self._executor.deploy(context, request, simulate=self._simulate)

        self._transition(target, _TERMINAL_STATES.get(result.outcome, TargetState.FAILED))
        return record(
            target,
            result,
            deployment_name=request.name,
            capability_owner_id=self._bundle.managing_tenant_id,
            timestamp=self._now(),
        )

    def _fail(self, target: Target, message: str) -> ResultRecord:
        self._transition(target, TargetState.FAILED, message=message)
        return record(
            target,
            DeploymentResult(DeploymentOutcome.FAILED, provisioning_state=None, message=message),
            capability_owner_id=self._bundle.managing_tenant_id,
            timestamp=self._now(),
        )

    def _transition(self, target: Target, state: TargetState, message: str | None = None) -> None:
        extra = {"subscription_id": target.subscription_id, "target_state": state.value}
        if message:
            extra["error"] = message
        if state == TargetState.FAILED:
            logger.error(f"{target}: {state.value}", extra=extra)
        else:
            logger.info(f"{target}: {state.value}", extra=extra)
