"""Execution context for a single subscription.

The management APIs act on one subscription at a time. Instead of mutating
a process-wide "current subscription", each target gets its own
ExecutionContext holding a client bound to that subscription, and the
context is passed explicitly to every provider and deployment call.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass

from azure.core.credentials import TokenCredential
from azure.core.exceptions import AzureError, HttpResponseError
from azure.mgmt.resource import ResourceManagementClient
from azure.mgmt.subscription import SubscriptionClient

from .models import Target

logger = logging.getLogger(__name__)

# Subscription states that accept deployments
ACTIVE_SUBSCRIPTION_STATES = frozenset({"enabled"})


class ContextActivationError(Exception):
    """Raised when a target subscription cannot be activated."""

    def __init__(self, target: Target, reason: str) -> None:
        super().__init__(f"Cannot access subscription {target.subscription_id}: {reason}")
        self.target = target
        self.reason = reason


@dataclass(frozen=True)
class ExecutionContext:
    """Everything needed to act on one subscription."""

    target: Target
    resource_client: ResourceManagementClient

    @property
    def subscription_id(self) -> str:
        return self.target.subscription_id


class ContextSelector:
    """Builds an ExecutionContext per target after verifying access."""

    def __init__(
        self,
        credential: TokenCredential,
        subscription_client: SubscriptionClient | None = None,
        client_factory: Callable[..., ResourceManagementClient] | None = None,
    ) -> None:
        self._credential = credential
        self._subscription_client = subscription_client or SubscriptionClient(credential)
        self._client_factory = client_factory or ResourceManagementClient

    def select(self, target: Target) -> ExecutionContext:
        """Activate ``target`` and return its context.

        Raises:
            ContextActivationError: If the subscription is missing, disabled
                or not accessible with the current credential.
        """
        try:
            subscription = self._subscription_client.subscriptions.get(target.subscription_id)
        except HttpResponseError as e:
            logger.error(
                f"Subscription lookup failed for {target.subscription_id}: {e}",
                extra={"subscription_id": target.subscription_id, "status_code": e.status_code},
            )
            raise ContextActivationError(target, e.message or str(e)) from e
        except AzureError as e:
            raise ContextActivationError(target, str(e)) from e

        state = getattr(subscription, "state", None)
        state_value = getattr(state, "value", state)
        if state_value is not None and str(state_value).lower() not in ACTIVE_SUBSCRIPTION_STATES:
            raise ContextActivationError(target, f"subscription state is {state_value}")

        client = self._client_factory(
            credential=self._credential,
            subscription_id=target.subscription_id,
        )
        logger.info(
            "Activated subscription context",
            extra={"subscription_id": target.subscription_id},
        )
        return ExecutionContext(target=target, resource_client=client)
