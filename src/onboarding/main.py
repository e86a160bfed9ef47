"""Main entry point for bulk delegation onboarding.

A run loads the delegation template, resolves the selected subscriptions,
onboards them one by one and exports the summary as CSV. The overall run
status maps to the process exit code:

    0  every subscription succeeded (or was simulated)
    1  at least one subscription failed, or the run could not start
    2  secretless violation (credential secrets found in the environment)
"""

from __future__ import annotations

import json
import logging
import sys
from collections.abc import Callable
from datetime import UTC, datetime
from typing import IO

from azure.core.credentials import TokenCredential
from azure.core.exceptions import AzureError
from azure.mgmt.subscription import SubscriptionClient

from .config import ConfigurationError, RunConfig
from .context import ContextSelector
from .controller import RunController
from .deployer import DeploymentExecutor
from .export import ExportError, render_summary_csv, write_summary_csv
from .models import ResultRecord, RunSummary, Target
from .providers import ProviderRegistrationPoller
from .security import SecretlessViolationError, get_credential
from .selection import RunSetupError, list_candidate_targets, load_selection_file, select_targets
from .template_source import TemplateSourceError, prepare_template

EXIT_SUCCESS = 0
EXIT_FAILURE = 1
EXIT_SECURITY_VIOLATION = 2

_RESERVED_RECORD_ATTRS = frozenset(
    {
        "name",
        "msg",
        "args",
        "created",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "stack_info",
        "exc_info",
        "exc_text",
        "thread",
        "threadName",
        "taskName",
        "message",
    }
)


class JsonFormatter(logging.Formatter):
    """Format logs as JSON for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(UTC).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
        }

        # Add extra fields from the record
        for key, value in record.__dict__.items():
            if key not in _RESERVED_RECORD_ATTRS:
                log_data[key] = value

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def setup_logging(level: str = "INFO", stream: IO[str] | None = None) -> None:
    """Configure structured JSON logging.

    Logs go to stderr by default so stdout stays free for operator feedback.
    """
    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(JsonFormatter())

    root_logger = logging.getLogger()
    for existing in list(root_logger.handlers):
        root_logger.removeHandler(existing)
    root_logger.addHandler(handler)
    root_logger.setLevel(level.upper())

    # Reduce noise from Azure SDK
    logging.getLogger("azure").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def resolve_targets(config: RunConfig, subscription_client: SubscriptionClient) -> list[Target]:
    """Resolve the run's targets from the command line and the selection file.

    Raises:
        RunSetupError: If no usable selection results.
    """
    requested = list(config.subscription_ids)
    select_all = config.select_all

    if config.selection_file is not None:
        selection = load_selection_file(config.selection_file)
        requested.extend(selection.subscription_ids)
        select_all = select_all or selection.select_all

    try:
        candidates = list_candidate_targets(subscription_client)
    except AzureError as e:
        raise RunSetupError(f"Failed to list subscriptions: {e}") from e

    return select_targets(candidates, requested, select_all=select_all)


def run_onboarding(
    config: RunConfig,
    *,
    credential: TokenCredential | None = None,
    subscription_client: SubscriptionClient | None = None,
    on_record: Callable[[Target, ResultRecord], None] | None = None,
) -> RunSummary:
    """Execute one onboarding run and export its summary.

    Raises:
        SecretlessViolationError: If credential secrets are in the environment.
        TemplateSourceError: If the template cannot be loaded or resolved.
        RunSetupError: If no targets are available or selected.
        ExportError: If the summary cannot be written after the run.
    """
    logger = logging.getLogger(__name__)

    bundle = prepare_template(config.template_path, config.parameters_path, config.simulate)

    if credential is None:
        credential = get_credential(config.credential_source, config.managed_identity_client_id)
    if subscription_client is None:
        subscription_client = SubscriptionClient(credential)

    targets = resolve_targets(config, subscription_client)
    logger.info(
        "Resolved onboarding targets",
        extra={"targets": [t.subscription_id for t in targets]},
    )

    controller = RunController(
        context_selector=ContextSelector(credential, subscription_client=subscription_client),
        poller=ProviderRegistrationPoller(
            interval_seconds=config.registration_poll_interval_seconds,
            timeout_seconds=config.registration_timeout_seconds,
        ),
        executor=DeploymentExecutor(timeout_seconds=config.deployment_timeout_seconds),
        bundle=bundle,
        region=config.region,
        provider_namespace=config.provider_namespace,
        continue_on_error=config.continue_on_error,
        simulate=config.simulate,
        on_record=on_record,
    )
    summary = controller.run(targets)
    write_summary_csv(summary, config.output_path)
    return summary


def main(
    config: RunConfig | None = None,
    on_record: Callable[[Target, ResultRecord], None] | None = None,
) -> int:
    """Run onboarding and map the outcome to an exit code."""
    logger = logging.getLogger(__name__)

    try:
        if config is None:
            config = RunConfig.from_env()
    except ConfigurationError as e:
        logger.error("Configuration error", extra={"error": str(e)})
        return EXIT_FAILURE

    try:
        summary = run_onboarding(config, on_record=on_record)
    except SecretlessViolationError as e:
        # SECURITY: Credential detected in environment - fatal security error
        logger.critical(
            "Security violation: credentials detected in environment",
            extra={"error": str(e)},
        )
        return EXIT_SECURITY_VIOLATION
    except TemplateSourceError as e:
        logger.error(
            "Template loading failed",
            extra={"error": str(e), "template": str(config.template_path)},
        )
        return EXIT_FAILURE
    except RunSetupError as e:
        logger.error("Run setup failed", extra={"error": str(e)})
        return EXIT_FAILURE
    except ExportError as e:
        logger.error(
            "Run summary export failed",
            extra={"error": str(e), "status": e.summary.status.value},
        )
        # The targets were already onboarded; keep the records on stdout
        sys.stdout.write(render_summary_csv(e.summary))
        return EXIT_FAILURE

    logger.info(
        "Onboarding finished",
        extra={"status": summary.status.value, "output_path": str(config.output_path)},
    )
    return summary.status.exit_code


def run() -> None:
    """Entry point driven entirely by environment variables."""
    setup_logging()
    sys.exit(main())


if __name__ == "__main__":
    run()
