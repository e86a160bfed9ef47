"""Tests for per-subscription execution contexts."""

from __future__ import annotations

from unittest import mock

import pytest
from azure.core.exceptions import ServiceRequestError
from azure_mock import MockResourceClient, MockResourceState, MockSubscription, MockSubscriptionClient
from conftest import SUB_A, SUB_B

from onboarding.context import ContextActivationError, ContextSelector
from onboarding.models import Target


@pytest.fixture
def state() -> MockResourceState:
    return MockResourceState()


def make_selector(
    subscription_client: MockSubscriptionClient, state: MockResourceState
) -> ContextSelector:
    return ContextSelector(
        credential=mock.Mock(),
        subscription_client=subscription_client,
        client_factory=lambda credential, subscription_id: MockResourceClient(state, subscription_id),
    )


class TestContextSelector:
    """Tests for ContextSelector.select."""

    def test_select_binds_client_to_target(self, state: MockResourceState) -> None:
        client = MockSubscriptionClient([MockSubscription(SUB_A, "a"), MockSubscription(SUB_B, "b")])
        selector = make_selector(client, state)

        context_a = selector.select(Target(SUB_A))
        context_b = selector.select(Target(SUB_B))

        assert context_a.subscription_id == SUB_A
        assert context_a.resource_client.subscription_id == SUB_A
        assert context_b.resource_client.subscription_id == SUB_B
        assert client.get_calls == [SUB_A, SUB_B]

    def test_inaccessible_subscription(self, state: MockResourceState) -> None:
        client = MockSubscriptionClient([MockSubscription(SUB_A, "a")], forbidden={SUB_A})
        selector = make_selector(client, state)

        with pytest.raises(ContextActivationError) as exc_info:
            selector.select(Target(SUB_A))

        assert SUB_A in str(exc_info.value)
        assert "authorization" in str(exc_info.value)

    def test_unknown_subscription(self, state: MockResourceState) -> None:
        selector = make_selector(MockSubscriptionClient([]), state)

        with pytest.raises(ContextActivationError) as exc_info:
            selector.select(Target(SUB_A))

        assert "not found" in str(exc_info.value)

    def test_disabled_subscription(self, state: MockResourceState) -> None:
        client = MockSubscriptionClient([MockSubscription(SUB_A, "a", state="Disabled")])
        selector = make_selector(client, state)

        with pytest.raises(ContextActivationError) as exc_info:
            selector.select(Target(SUB_A))

        assert "Disabled" in str(exc_info.value)

    def test_transport_error(self, state: MockResourceState) -> None:
        client = mock.Mock()
        client.subscriptions.get.side_effect = ServiceRequestError("connection reset")
        selector = make_selector(client, state)

        with pytest.raises(ContextActivationError) as exc_info:
            selector.select(Target(SUB_A))

        assert "connection reset" in exc_info.value.reason
