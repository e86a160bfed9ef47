"""Resource provider registration.

Delegation templates only deploy once the managing provider is registered in
the target subscription. Registration is per subscription and is always
re-read for every target; nothing is cached across targets.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from .config import DEFAULT_POLL_INTERVAL_SECONDS, DEFAULT_REGISTRATION_TIMEOUT_SECONDS
from .context import ExecutionContext
from .models import ProviderRegistrationState
from .polling import poll_until
from .security import log_security_audit_event

logger = logging.getLogger(__name__)


def get_registration_state(context: ExecutionContext, namespace: str) -> ProviderRegistrationState:
    """Read the registration state of ``namespace`` in the context's subscription.

    Raises:
        AzureError: If the provider lookup fails.
    """
    provider = context.resource_client.providers.get(namespace)
    return ProviderRegistrationState.from_azure(provider.registration_state)


class ProviderRegistrationPoller:
    """Ensures a resource provider is registered before deploying."""

    def __init__(
        self,
        interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS,
        timeout_seconds: float = DEFAULT_REGISTRATION_TIMEOUT_SECONDS,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._interval_seconds = interval_seconds
        self._timeout_seconds = timeout_seconds
        self._clock = clock
        self._sleep = sleep

    def ensure_registered(
        self,
        context: ExecutionContext,
        namespace: str,
        simulate: bool = False,
    ) -> bool:
        """Make sure ``namespace`` is registered in the context's subscription.

        Issues at most one register call. In simulate mode nothing is
        registered and the state is reported as satisfied.

        Returns:
            True if registered (or simulating), False if the wait timed out.

        Raises:
            AzureError: If reading the registration state fails.
        """
        # The deadline covers the initial read and the register call
        start = self._clock()
        state = get_registration_state(context, namespace)
        if state == ProviderRegistrationState.REGISTERED:
            logger.info(
                f"Provider {namespace} already registered",
                extra={"subscription_id": context.subscription_id, "namespace": namespace},
            )
            return True

        if simulate:
            logger.info(
                f"Simulate mode: skipping registration of {namespace}",
                extra={
                    "subscription_id": context.subscription_id,
                    "namespace": namespace,
                    "registration_state": state.value,
                },
            )
            return True

        logger.info(
            f"Registering provider {namespace}",
            extra={
                "subscription_id": context.subscription_id,
                "namespace": namespace,
                "registration_state": state.value,
            },
        )
        context.resource_client.providers.register(namespace)
        log_security_audit_event(
            "provider_registration",
            target_resource=context.target.scope,
            action="register",
            result="requested",
            namespace=namespace,
        )

        attempts = 0
        remaining = self._timeout_seconds - (self._clock() - start)
        if remaining > 0:
            result = poll_until(
                lambda: get_registration_state(context, namespace)
                == ProviderRegistrationState.REGISTERED,
                interval_seconds=self._interval_seconds,
                timeout_seconds=remaining,
                clock=self._clock,
                sleep=self._sleep,
            )
            attempts = result.attempts

            if result.satisfied:
                logger.info(
                    f"Provider {namespace} registered",
                    extra={
                        "subscription_id": context.subscription_id,
                        "attempts": result.attempts,
                        "elapsed_seconds": self._clock() - start,
                    },
                )
                return True

        logger.warning(
            f"Timed out waiting for provider {namespace}",
            extra={
                "subscription_id": context.subscription_id,
                "registration_state": ProviderRegistrationState.TIMED_OUT.value,
                "attempts": attempts,
                "timeout_seconds": self._timeout_seconds,
            },
        )
        return False
