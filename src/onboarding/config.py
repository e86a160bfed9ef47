"""Configuration management with validation.

All options are validated when the run configuration is built so a bad
invocation fails before any subscription is touched.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path


class CredentialSource(str, Enum):
    """Supported ways of obtaining an Azure credential."""

    CLI = "cli"
    MANAGED_IDENTITY = "managed_identity"


class ConfigurationError(Exception):
    """Raised when configuration validation fails."""

    pass


# Configuration constants with documented bounds
DEFAULT_REGION = "eastus"
DEFAULT_PROVIDER_NAMESPACE = "Microsoft.ManagedServices"

DEFAULT_POLL_INTERVAL_SECONDS = 5
MIN_POLL_INTERVAL_SECONDS = 1
MAX_POLL_INTERVAL_SECONDS = 60

DEFAULT_REGISTRATION_TIMEOUT_SECONDS = 120
MIN_REGISTRATION_TIMEOUT_SECONDS = 5
MAX_REGISTRATION_TIMEOUT_SECONDS = 1800

DEFAULT_DEPLOYMENT_TIMEOUT_SECONDS = 1800

# Security constraints - enforced limits to prevent abuse
MAX_TEMPLATE_FILE_SIZE_BYTES = 10 * 1024 * 1024  # 10MB max ARM template
MAX_PARAMETERS_FILE_SIZE_BYTES = 1024 * 1024
MAX_SELECTION_FILE_SIZE_BYTES = 1024 * 1024
MAX_DEPLOYMENT_NAME_LENGTH = 64

# Input validation patterns
VALID_SUBSCRIPTION_ID_PATTERN = r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$"
VALID_LOCATION_PATTERN = r"^[a-z]{2,}[a-z0-9]*$"
VALID_PROVIDER_NAMESPACE_PATTERN = r"^[A-Za-z][A-Za-z0-9]*(\.[A-Za-z][A-Za-z0-9]*)+$"


def default_output_path(now: datetime | None = None) -> Path:
    """Build the default export path from the current time."""
    stamp = (now or datetime.now(UTC)).strftime("%Y%m%d-%H%M%S")
    return Path(f"onboarding-results-{stamp}.csv")


def _output_path_error(path: Path) -> str | None:
    """Check that the export can be created at ``path`` without writing it."""
    if path.is_dir():
        return f"ONBOARD_OUTPUT must be a file path, not a directory: {path}"

    # Missing directories are created at export time; check the nearest existing one
    ancestor = path.parent
    while not ancestor.exists() and ancestor != ancestor.parent:
        ancestor = ancestor.parent
    if not ancestor.is_dir():
        return f"ONBOARD_OUTPUT location is not a directory: {ancestor}"
    if not os.access(ancestor, os.W_OK | os.X_OK):
        return f"ONBOARD_OUTPUT location is not writable: {ancestor}"
    return None


@dataclass(frozen=True)
class RunConfig:
    """Onboarding run configuration.

    All fields are validated at construction time. Invalid configurations
    raise ConfigurationError immediately rather than failing mid-run.
    """

    # Template source
    template_path: Path
    parameters_path: Path | None = None

    # Deployment
    region: str = DEFAULT_REGION
    provider_namespace: str = DEFAULT_PROVIDER_NAMESPACE

    # Output
    output_path: Path = field(default_factory=default_output_path)

    # Failure policy
    continue_on_error: bool = False
    simulate: bool = False

    # Target selection
    subscription_ids: tuple[str, ...] = ()
    select_all: bool = False
    selection_file: Path | None = None

    # Timing
    registration_poll_interval_seconds: int = DEFAULT_POLL_INTERVAL_SECONDS
    registration_timeout_seconds: int = DEFAULT_REGISTRATION_TIMEOUT_SECONDS
    deployment_timeout_seconds: int = DEFAULT_DEPLOYMENT_TIMEOUT_SECONDS

    # Credentials
    credential_source: CredentialSource = CredentialSource.CLI
    managed_identity_client_id: str | None = None

    def __post_init__(self) -> None:
        """Validate configuration after initialization.

        SECURITY: All inputs are validated at the boundary (fail-fast).
        """
        errors: list[str] = []

        if not self.template_path.is_file():
            errors.append(f"Template file does not exist: {self.template_path}")

        if self.parameters_path is not None and not self.parameters_path.exists():
            errors.append(f"Parameters file does not exist: {self.parameters_path}")

        if self.selection_file is not None and not self.selection_file.exists():
            errors.append(f"Selection file does not exist: {self.selection_file}")

        output_error = _output_path_error(self.output_path)
        if output_error:
            errors.append(output_error)

        if not self.region:
            errors.append("ONBOARD_REGION is required")
        elif not re.match(VALID_LOCATION_PATTERN, self.region.lower()):
            errors.append(f"ONBOARD_REGION must be a valid Azure region: {self.region}")

        if not re.match(VALID_PROVIDER_NAMESPACE_PATTERN, self.provider_namespace or ""):
            errors.append(
                f"ONBOARD_PROVIDER_NAMESPACE must look like 'Microsoft.Name': "
                f"{self.provider_namespace}"
            )

        for subscription_id in self.subscription_ids:
            if not re.match(VALID_SUBSCRIPTION_ID_PATTERN, subscription_id.lower()):
                errors.append(f"Subscription id must be a valid GUID: {subscription_id}")

        # Timing validation
        if not (
            MIN_POLL_INTERVAL_SECONDS
            <= self.registration_poll_interval_seconds
            <= MAX_POLL_INTERVAL_SECONDS
        ):
            errors.append(
                f"ONBOARD_POLL_INTERVAL must be between {MIN_POLL_INTERVAL_SECONDS} "
                f"and {MAX_POLL_INTERVAL_SECONDS} seconds"
            )

        if not (
            MIN_REGISTRATION_TIMEOUT_SECONDS
            <= self.registration_timeout_seconds
            <= MAX_REGISTRATION_TIMEOUT_SECONDS
        ):
            errors.append(
                f"ONBOARD_REGISTRATION_TIMEOUT must be between "
                f"{MIN_REGISTRATION_TIMEOUT_SECONDS} and {MAX_REGISTRATION_TIMEOUT_SECONDS} seconds"
            )
        elif self.registration_poll_interval_seconds > self.registration_timeout_seconds:
            errors.append("ONBOARD_POLL_INTERVAL cannot exceed ONBOARD_REGISTRATION_TIMEOUT")

        if self.deployment_timeout_seconds < 1:
            errors.append("ONBOARD_DEPLOYMENT_TIMEOUT must be at least 1 second")

        if (
            self.credential_source == CredentialSource.CLI
            and self.managed_identity_client_id is not None
        ):
            errors.append("AZURE_CLIENT_ID is only valid with the managed_identity credential")

        if errors:
            error_msg = "Configuration validation failed:\n  - " + "\n  - ".join(errors)
            raise ConfigurationError(error_msg)

    @classmethod
    def from_env(cls) -> RunConfig:
        """Load configuration from environment variables.

        Environment Variables:
            ONBOARD_TEMPLATE: Path to the ARM delegation template (required)
            ONBOARD_PARAMETERS: Path to an ARM parameters file
            ONBOARD_REGION: Deployment metadata location (default: eastus)
            ONBOARD_OUTPUT: CSV export path (default: onboarding-results-<time>.csv)
            ONBOARD_CONTINUE_ON_ERROR: If "true", keep going after a failed subscription
            ONBOARD_SIMULATE: If "true", run What-If only and apply nothing
            ONBOARD_PROVIDER_NAMESPACE: Provider to register (default: Microsoft.ManagedServices)
            ONBOARD_SUBSCRIPTIONS: Comma separated subscription ids to onboard
            ONBOARD_SELECT_ALL: If "true", onboard every enabled subscription
            ONBOARD_SELECTION_FILE: YAML file listing subscriptions to onboard
            ONBOARD_POLL_INTERVAL: Seconds between registration polls (default: 5)
            ONBOARD_REGISTRATION_TIMEOUT: Registration wait bound in seconds (default: 120)
            ONBOARD_DEPLOYMENT_TIMEOUT: Deployment wait bound in seconds (default: 1800)
            ONBOARD_CREDENTIAL_SOURCE: One of cli, managed_identity (default: cli)
            AZURE_CLIENT_ID: User-assigned managed identity client id
        """

        def get_int(key: str, default: int) -> int:
            value = os.environ.get(key)
            if value is None:
                return default
            try:
                return int(value)
            except ValueError as e:
                raise ConfigurationError(f"{key} must be an integer: {value}") from e

        def get_bool(key: str, default: bool) -> bool:
            value = os.environ.get(key, "").lower()
            if not value:
                return default
            return value in ("true", "1", "yes")

        def get_path(key: str) -> Path | None:
            value = os.environ.get(key)
            return Path(value) if value else None

        def get_credential_source(value: str | None) -> CredentialSource:
            if not value:
                return CredentialSource.CLI
            try:
                return CredentialSource(value)
            except ValueError as e:
                valid = [s.value for s in CredentialSource]
                raise ConfigurationError(
                    f"ONBOARD_CREDENTIAL_SOURCE must be one of {valid}: {value}"
                ) from e

        template = os.environ.get("ONBOARD_TEMPLATE")
        if not template:
            raise ConfigurationError("ONBOARD_TEMPLATE is required")

        credential_source = get_credential_source(os.environ.get("ONBOARD_CREDENTIAL_SOURCE"))
        client_id = None
        if credential_source == CredentialSource.MANAGED_IDENTITY:
            client_id = os.environ.get("AZURE_CLIENT_ID") or None

        subscriptions = tuple(
            s.strip() for s in os.environ.get("ONBOARD_SUBSCRIPTIONS", "").split(",") if s.strip()
        )
        output_path = get_path("ONBOARD_OUTPUT")

        return cls(
            template_path=Path(template),
            parameters_path=get_path("ONBOARD_PARAMETERS"),
            region=os.environ.get("ONBOARD_REGION", DEFAULT_REGION),
            provider_namespace=os.environ.get(
                "ONBOARD_PROVIDER_NAMESPACE", DEFAULT_PROVIDER_NAMESPACE
            ),
            output_path=output_path or default_output_path(),
            continue_on_error=get_bool("ONBOARD_CONTINUE_ON_ERROR", False),
            simulate=get_bool("ONBOARD_SIMULATE", False),
            subscription_ids=subscriptions,
            select_all=get_bool("ONBOARD_SELECT_ALL", False),
            selection_file=get_path("ONBOARD_SELECTION_FILE"),
            registration_poll_interval_seconds=get_int(
                "ONBOARD_POLL_INTERVAL", DEFAULT_POLL_INTERVAL_SECONDS
            ),
            registration_timeout_seconds=get_int(
                "ONBOARD_REGISTRATION_TIMEOUT", DEFAULT_REGISTRATION_TIMEOUT_SECONDS
            ),
            deployment_timeout_seconds=get_int(
                "ONBOARD_DEPLOYMENT_TIMEOUT", DEFAULT_DEPLOYMENT_TIMEOUT_SECONDS
            ),
            credential_source=credential_source,
            managed_identity_client_id=client_id,
        )
