"""Subscription-scope deployment of the delegation template.

Submission errors never leave this module: every failure is normalized into
a DeploymentResult with outcome FAILED and the underlying message.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any

from azure.core.exceptions import AzureError, HttpResponseError
from azure.mgmt.resource.resources.models import (
    Deployment,
    DeploymentMode,
    DeploymentProperties,
    DeploymentWhatIf,
    DeploymentWhatIfProperties,
)

from .config import DEFAULT_DEPLOYMENT_TIMEOUT_SECONDS, MAX_DEPLOYMENT_NAME_LENGTH
from .context import ExecutionContext
from .models import DeploymentOutcome, DeploymentRequest, DeploymentResult, Target
from .security import log_security_audit_event

logger = logging.getLogger(__name__)

# Deployment name prefix for tracking
DEPLOYMENT_NAME_PREFIX = "delegation"
# Characters of the subscription id kept in the deployment name
TARGET_ID_PREFIX_LENGTH = 8

WHATIF_PROVISIONING_STATE = "WhatIf"
WHATIF_MESSAGE = "No changes applied (WhatIf)."
SUCCEEDED_MESSAGE = "Deployment succeeded."


def build_deployment_name(subscription_id: str, now: datetime | None = None) -> str:
    """Build a deployment name unique per subscription and second.

    Format: {prefix}-{first 8 chars of subscription id}-{YYYYmmddHHMMSS}
    """
    timestamp = (now or datetime.now(UTC)).strftime("%Y%m%d%H%M%S")
    name = f"{DEPLOYMENT_NAME_PREFIX}-{subscription_id[:TARGET_ID_PREFIX_LENGTH]}-{timestamp}"

    # SECURITY: Validate deployment name length against ARM limit
    if len(name) > MAX_DEPLOYMENT_NAME_LENGTH:
        raise ValueError(
            f"Deployment name '{name}' exceeds maximum length of "
            f"{MAX_DEPLOYMENT_NAME_LENGTH} characters"
        )
    return name


def build_request(
    target: Target,
    template: dict[str, Any],
    location: str,
    parameters: dict[str, Any] | None = None,
    now: datetime | None = None,
) -> DeploymentRequest:
    """Build the deployment request for one target."""
    return DeploymentRequest(
        name=build_deployment_name(target.subscription_id, now),
        location=location,
        template=template,
        parameters=dict(parameters or {}),
    )


def _state_value(state: Any) -> str | None:
    if state is None:
        return None
    return str(getattr(state, "value", state))


class DeploymentExecutor:
    """Submits deployment requests at subscription scope."""

    def __init__(self, timeout_seconds: int = DEFAULT_DEPLOYMENT_TIMEOUT_SECONDS) -> None:
        self._timeout_seconds = timeout_seconds

    def deploy(
        self,
        context: ExecutionContext,
        request: DeploymentRequest,
        simulate: bool = False,
    ) -> DeploymentResult:
        """Submit ``request`` against the context's subscription.

        In simulate mode only the What-If preview is called. Errors are
        converted into a FAILED result and never raised.
        """
        action = "whatif" if simulate else "deploy"
        try:
            if simulate:
                result = self._what_if(context, request)
            else:
                result = self._apply(context, request)

        except TimeoutError as e:
            logger.error(
                f"Deployment {request.name} timed out after {self._timeout_seconds}s",
                extra={"subscription_id": context.subscription_id},
            )
            result = DeploymentResult(
                outcome=DeploymentOutcome.FAILED,
                provisioning_state=None,
                message=str(e) or f"Deployment timeout after {self._timeout_seconds}s",
            )

        except HttpResponseError as e:
            error_code = e.error.code if e.error else None
            logger.error(
                f"Azure API error deploying {request.name}: {e}",
                extra={
                    "subscription_id": context.subscription_id,
                    "status_code": e.status_code,
                    "error_code": error_code,
                },
            )
            result = DeploymentResult(
                outcome=DeploymentOutcome.FAILED,
                provisioning_state=None,
                message=e.message or str(e),
            )

        except AzureError as e:
            logger.error(
                f"Azure error deploying {request.name}: {e}",
                extra={"subscription_id": context.subscription_id},
            )
            result = DeploymentResult(
                outcome=DeploymentOutcome.FAILED,
                provisioning_state=None,
                message=str(e),
            )

        except Exception as e:
            logger.exception(
                f"Unexpected error deploying {request.name}",
                extra={"subscription_id": context.subscription_id, "error_type": type(e).__name__},
            )
            result = DeploymentResult(
                outcome=DeploymentOutcome.FAILED,
                provisioning_state=None,
                message=str(e) or type(e).__name__,
            )

        log_security_audit_event(
            "deployment",
            target_resource=context.target.scope,
            action=action,
            result=result.outcome.value.lower(),
            deployment_name=request.name,
        )
        return result

    def _what_if(self, context: ExecutionContext, request: DeploymentRequest) -> DeploymentResult:
        whatif = DeploymentWhatIf(
            location=request.location,
            properties=DeploymentWhatIfProperties(
                template=request.template,
                parameters=request.parameters or None,
                mode=DeploymentMode.INCREMENTAL,
            ),
        )
        poller = context.resource_client.deployments.begin_what_if_at_subscription_scope(
            request.name, whatif
        )
        whatif_result = self._wait(poller, request.name)

        changes = getattr(whatif_result, "changes", None)
        if changes is None and getattr(whatif_result, "properties", None) is not None:
            changes = whatif_result.properties.changes
        logger.info(
            f"What-If completed for {request.name}",
            extra={
                "subscription_id": context.subscription_id,
                "change_count": len(changes or []),
            },
        )
        return DeploymentResult(
            outcome=DeploymentOutcome.SIMULATED,
            provisioning_state=WHATIF_PROVISIONING_STATE,
            message=WHATIF_MESSAGE,
        )

    def _apply(self, context: ExecutionContext, request: DeploymentRequest) -> DeploymentResult:
        deployment = Deployment(
            location=request.location,
            properties=DeploymentProperties(
                template=request.template,
                parameters=request.parameters or None,
                mode=DeploymentMode.INCREMENTAL,
            ),
        )
        poller = context.resource_client.deployments.begin_create_or_update_at_subscription_scope(
            request.name, deployment
        )
        deployment_result = self._wait(poller, request.name)

        properties = getattr(deployment_result, "properties", None)
        state = _state_value(getattr(properties, "provisioning_state", None))
        outcome = DeploymentOutcome.from_provisioning_state(state)

        if outcome == DeploymentOutcome.SUCCEEDED:
            logger.info(
                f"Deployment {request.name} succeeded",
                extra={"subscription_id": context.subscription_id},
            )
            return DeploymentResult(outcome, state, SUCCEEDED_MESSAGE)

        error = getattr(properties, "error", None)
        error_message = getattr(error, "message", None)
        if outcome == DeploymentOutcome.FAILED:
            message = error_message or f"Deployment finished with provisioning state {state}."
        else:
            message = error_message or f"Deployment did not reach a terminal state ({state})."

        logger.error(
            f"Deployment {request.name} did not succeed",
            extra={"subscription_id": context.subscription_id, "provisioning_state": state},
        )
        return DeploymentResult(DeploymentOutcome.FAILED, state, message)

    def _wait(self, poller: Any, deployment_name: str) -> Any:
        """Wait for a long-running operation, bounded by the deployment timeout.

        Raises:
            TimeoutError: If the operation is still running at the bound.
        """
        result = poller.result(timeout=self._timeout_seconds)
        if not poller.done():
            raise TimeoutError(
                f"Deployment {deployment_name} still running after {self._timeout_seconds}s"
            )
        return result
