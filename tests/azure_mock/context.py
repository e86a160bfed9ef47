"""Azure Mock Context for integration testing.

Provides a context manager that patches Azure SDK components with mock
implementations.
"""

from __future__ import annotations

from typing import Any
from unittest import mock

from .credential import MockCredential, create_mock_credential
from .resources import MockResourceClient, MockResourceState
from .subscriptions import MockSubscription, MockSubscriptionClient


class MockAzureContext:
    """Context manager for Azure API mocking in integration tests.

    Patches:
    - onboarding.security.AzureCliCredential / ManagedIdentityCredential
    - onboarding.context.ResourceManagementClient -> MockResourceClient
    - onboarding.main.SubscriptionClient -> MockSubscriptionClient

    Usage:
        with MockAzureContext(subscriptions=[...]) as ctx:
            summary = run_onboarding(config)
            assert ctx.get_deployment_count() == 1
    """

    def __init__(
        self,
        *,
        subscriptions: list[MockSubscription] | None = None,
        forbidden: set[str] | None = None,
        registered: bool = True,
        fail_deployments: set[str] | None = None,
    ) -> None:
        """Initialize mock context.

        Args:
            subscriptions: Subscriptions visible to the credential.
            forbidden: Subscription ids that are listed but cannot be activated.
            registered: Whether the provider starts out registered everywhere.
            fail_deployments: Subscription ids whose deployment submission fails.
        """
        self._subscriptions = subscriptions or []
        self._forbidden = forbidden or set()
        self._registered = registered
        self._fail_deployments = fail_deployments or set()

        self._state: MockResourceState | None = None
        self._patches: list[Any] = []

    @property
    def state(self) -> MockResourceState:
        """Get the mock resource state.

        Raises:
            RuntimeError: If accessed outside of context.
        """
        if self._state is None:
            raise RuntimeError("MockAzureContext must be used as a context manager")
        return self._state

    def get_deployment_count(self) -> int:
        """Get number of deployments executed."""
        return self.state.deployment_count

    def __enter__(self) -> MockAzureContext:
        """Enter the mock context, applying patches."""
        self._state = MockResourceState()
        cli_credential = create_mock_credential()
        subscription_client = MockSubscriptionClient(
            self._subscriptions, forbidden=self._forbidden
        )

        for subscription in self._subscriptions:
            if self._registered:
                self._state.set_registration_state(
                    subscription.subscription_id, "Microsoft.ManagedServices", "Registered"
                )
            if subscription.subscription_id in self._fail_deployments:
                self._state.failing_deployments[subscription.subscription_id] = (
                    "Simulated deployment failure"
                )

        def create_mock_client(credential: Any, subscription_id: str) -> MockResourceClient:
            return MockResourceClient(state=self._state, subscription_id=subscription_id)

        def create_managed_identity(client_id: str | None = None) -> MockCredential:
            return create_mock_credential(kind="managed_identity", client_id=client_id)

        self._patches = [
            mock.patch("onboarding.security.AzureCliCredential", return_value=cli_credential),
            mock.patch(
                "onboarding.security.ManagedIdentityCredential",
                side_effect=create_managed_identity,
            ),
            mock.patch(
                "onboarding.context.ResourceManagementClient",
                side_effect=create_mock_client,
            ),
            mock.patch(
                "onboarding.main.SubscriptionClient",
                return_value=subscription_client,
            ),
        ]

        for patch in self._patches:
            patch.start()

        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Exit the mock context, removing patches."""
        for patch in reversed(self._patches):
            patch.stop()
        self._patches.clear()
