"""Credential acquisition for the secretless onboarding model.

Onboarding runs either under the operator's signed-in Azure CLI session or
under a managed identity. Service principal secrets, certificates and
passwords are never accepted.

SECURITY INVARIANTS:
1. No credential secret may be present in the environment
2. Only AzureCliCredential and ManagedIdentityCredential are handed out
3. Every mutating action is written to the audit log
"""

from __future__ import annotations

import logging
import os

from azure.core.credentials import TokenCredential
from azure.identity import AzureCliCredential, ManagedIdentityCredential

from .config import CredentialSource

logger = logging.getLogger(__name__)

# Environment variables that indicate credential leakage
FORBIDDEN_CREDENTIAL_ENV_VARS: tuple[str, ...] = (
    "AZURE_CLIENT_SECRET",
    "AZURE_CLIENT_CERTIFICATE_PATH",
    "AZURE_CLIENT_CERTIFICATE_PASSWORD",
    "AZURE_USERNAME",
    "AZURE_PASSWORD",
)

SECRETLESS_VIOLATION_MESSAGE = """
SECURITY VIOLATION DETECTED

Detected: {env_var}

This environment variable indicates service principal or password-based
authentication, which is NOT ALLOWED for onboarding runs.

RESOLUTION:
  1. Remove all credential environment variables
  2. Sign in with 'az login' or run under a managed identity
  3. Make sure the identity holds Owner (or equivalent) on each target subscription
"""


class SecretlessViolationError(Exception):
    """Raised when a credential secret is found in the environment.

    This is fatal: the run MUST NOT start.
    """

    pass


def enforce_secretless_architecture() -> None:
    """Refuse to continue when credential secrets are present.

    Raises:
        SecretlessViolationError: If any credential environment variable is set.
    """
    for env_var in FORBIDDEN_CREDENTIAL_ENV_VARS:
        if os.environ.get(env_var):
            logger.critical(
                "Secretless architecture violation",
                extra={
                    "security_event": "credential_detected",
                    "env_var": env_var,
                    "action": "startup_blocked",
                },
            )
            raise SecretlessViolationError(SECRETLESS_VIOLATION_MESSAGE.format(env_var=env_var))

    logger.info("Secretless architecture verified", extra={"security_event": "secretless_verified"})


def get_credential(
    source: CredentialSource = CredentialSource.CLI,
    client_id: str | None = None,
) -> TokenCredential:
    """Get a credential after verifying the secretless invariant.

    This is the ONLY way to obtain credentials in this codebase.

    Args:
        source: Which credential type to build.
        client_id: Client ID of a user-assigned managed identity. Only valid
            with CredentialSource.MANAGED_IDENTITY.

    Returns:
        A token credential usable by the Azure management clients.

    Raises:
        SecretlessViolationError: If credential environment variables are detected.
        ValueError: If client_id is combined with the CLI credential.
    """
    enforce_secretless_architecture()

    if source == CredentialSource.CLI:
        if client_id:
            raise ValueError("client_id is only supported for managed identity credentials")
        logger.info("Using Azure CLI credential")
        return AzureCliCredential()

    if client_id:
        logger.info(
            "Using user-assigned managed identity",
            extra={"client_id": client_id[:8] + "..." if len(client_id) > 8 else client_id},
        )
        return ManagedIdentityCredential(client_id=client_id)

    logger.info("Using system-assigned managed identity")
    return ManagedIdentityCredential()


def log_security_audit_event(
    event_type: str,
    target_resource: str | None = None,
    action: str | None = None,
    result: str | None = None,
    **details: str | None,
) -> None:
    """Log a security-relevant audit event.

    Args:
        event_type: Type of event (provider_registration, deployment, ...).
        target_resource: ARM scope being acted on.
        action: Action being performed.
        result: Result of the action (success, failure, simulated).
        **details: Extra structured fields.
    """
    logger.info(
        f"Security audit: {event_type}",
        extra={
            "security_audit": True,
            "event_type": event_type,
            "target_resource": target_resource,
            "action": action,
            "result": result,
            **details,
        },
    )
