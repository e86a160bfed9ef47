"""Azure API Mock for Integration Testing.

In-memory stand-ins for the Azure management APIs used by onboarding runs,
so runs can be exercised end to end without Azure connectivity.

Key Features:
- Per-subscription provider registration state with configurable delays
- What-If and subscription-scope deployment simulation
- Subscription listing and access failures
- Error injection for failure scenarios

Usage:
    from azure_mock import MockAzureContext, MockSubscription

    with MockAzureContext(subscriptions=[MockSubscription(SUB_A, "a")]) as ctx:
        summary = run_onboarding(config)
        assert ctx.get_deployment_count() == 1
"""

from .context import MockAzureContext
from .credential import MockCredential, create_mock_credential
from .resources import (
    DeploymentProvisioningState,
    MockLROPoller,
    MockResourceClient,
    MockResourceState,
)
from .subscriptions import MockSubscription, MockSubscriptionClient

__all__ = [
    "DeploymentProvisioningState",
    "MockAzureContext",
    "MockCredential",
    "MockLROPoller",
    "MockResourceClient",
    "MockResourceState",
    "MockSubscription",
    "MockSubscriptionClient",
    "create_mock_credential",
]
