"""Onboarding CLI (onboard).

Usage:
    onboard run --template delegation.json --subscription <id> --subscription <id>
    onboard run --template delegation.json --all --simulate
    onboard run --template delegation.json --selection-file targets.yaml --continue-on-error
    onboard list-targets
"""

from __future__ import annotations

from pathlib import Path

import click
from click.core import ParameterSource
from azure.core.exceptions import AzureError
from azure.mgmt.subscription import SubscriptionClient

from .config import (
    DEFAULT_DEPLOYMENT_TIMEOUT_SECONDS,
    DEFAULT_POLL_INTERVAL_SECONDS,
    DEFAULT_PROVIDER_NAMESPACE,
    DEFAULT_REGION,
    DEFAULT_REGISTRATION_TIMEOUT_SECONDS,
    ConfigurationError,
    CredentialSource,
    RunConfig,
    default_output_path,
)
from .export import ExportError, render_summary_csv
from .main import EXIT_FAILURE, EXIT_SECURITY_VIOLATION, run_onboarding, setup_logging
from .models import DeploymentOutcome, ResultRecord, RunStatus, Target
from .security import SecretlessViolationError, get_credential
from .selection import RunSetupError, list_candidate_targets
from .template_source import TemplateSourceError

OUTCOME_COLORS = {
    DeploymentOutcome.SUCCEEDED: "green",
    DeploymentOutcome.SIMULATED: "yellow",
    DeploymentOutcome.FAILED: "red",
    DeploymentOutcome.UNKNOWN: "red",
}

CREDENTIAL_CHOICES = [s.value for s in CredentialSource]


def split_subscription_ids(
    ctx: click.Context, param: click.Parameter, value: tuple[str, ...]
) -> tuple[str, ...]:
    """Accept repeated options as well as comma separated lists."""
    return tuple(part.strip() for item in value for part in item.split(",") if part.strip())


def _given_on_command_line(ctx: click.Context, name: str) -> bool:
    return ctx.get_parameter_source(name) == ParameterSource.COMMANDLINE


def echo_record(target: Target, record: ResultRecord) -> None:
    """Print live per-subscription feedback."""
    color = OUTCOME_COLORS.get(record.outcome, "white")
    line = f"[{record.outcome.value}] {target}"
    if record.deployment_name:
        line += f" deployment={record.deployment_name}"
    click.secho(line, fg=color)
    if record.failed:
        click.secho(f"    {record.message}", fg=color, err=True)


# =============================================================================
# Main CLI Group
# =============================================================================


@click.group()
@click.version_option(version="0.1.0", prog_name="onboard")
@click.option(
    "--log-level",
    default="WARNING",
    envvar="ONBOARD_LOG_LEVEL",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    help="Level of the JSON log stream written to stderr",
)
def cli(log_level: str) -> None:
    """Bulk delegation onboarding.

    \b
    Quick Start:
        onboard list-targets
        onboard run -t delegation.json -s <subscription-id> --simulate
    """
    setup_logging(log_level)


# =============================================================================
# Run Command
# =============================================================================


@cli.command()
@click.option(
    "--template",
    "-t",
    "template_path",
    envvar="ONBOARD_TEMPLATE",
    required=True,
    type=click.Path(dir_okay=False, path_type=Path),
    help="ARM delegation template (JSON)",
)
@click.option(
    "--parameters",
    "-p",
    "parameters_path",
    envvar="ONBOARD_PARAMETERS",
    type=click.Path(dir_okay=False, path_type=Path),
    help="ARM parameters file (JSON)",
)
@click.option("--region", "-r", envvar="ONBOARD_REGION", default=DEFAULT_REGION, show_default=True)
@click.option(
    "--output",
    "-o",
    "output_path",
    envvar="ONBOARD_OUTPUT",
    type=click.Path(dir_okay=False, path_type=Path),
    help="CSV export path (default: onboarding-results-<time>.csv)",
)
@click.option(
    "--continue-on-error/--stop-on-error",
    envvar="ONBOARD_CONTINUE_ON_ERROR",
    default=False,
    help="Keep onboarding after a subscription fails (default: stop)",
)
@click.option(
    "--simulate/--apply",
    envvar="ONBOARD_SIMULATE",
    default=False,
    help="Run What-If only; nothing is registered or deployed",
)
@click.option(
    "--subscription",
    "-s",
    "subscription_ids",
    multiple=True,
    envvar="ONBOARD_SUBSCRIPTIONS",
    callback=split_subscription_ids,
    help="Subscription id to onboard (repeatable)",
)
@click.option(
    "--all",
    "select_all",
    is_flag=True,
    envvar="ONBOARD_SELECT_ALL",
    help="Onboard every enabled subscription",
)
@click.option(
    "--selection-file",
    envvar="ONBOARD_SELECTION_FILE",
    type=click.Path(dir_okay=False, path_type=Path),
    help="YAML file listing subscriptions to onboard",
)
@click.option(
    "--provider-namespace",
    envvar="ONBOARD_PROVIDER_NAMESPACE",
    default=DEFAULT_PROVIDER_NAMESPACE,
    show_default=True,
)
@click.option(
    "--registration-timeout",
    envvar="ONBOARD_REGISTRATION_TIMEOUT",
    type=int,
    default=DEFAULT_REGISTRATION_TIMEOUT_SECONDS,
    show_default=True,
    help="Seconds to wait for provider registration",
)
@click.option(
    "--poll-interval",
    envvar="ONBOARD_POLL_INTERVAL",
    type=int,
    default=DEFAULT_POLL_INTERVAL_SECONDS,
    show_default=True,
    help="Seconds between provider registration checks",
)
@click.option(
    "--deployment-timeout",
    envvar="ONBOARD_DEPLOYMENT_TIMEOUT",
    type=int,
    default=DEFAULT_DEPLOYMENT_TIMEOUT_SECONDS,
    show_default=True,
    help="Seconds to wait for each deployment",
)
@click.option(
    "--credential",
    "credential_source",
    envvar="ONBOARD_CREDENTIAL_SOURCE",
    type=click.Choice(CREDENTIAL_CHOICES),
    default=CredentialSource.CLI.value,
    show_default=True,
)
@click.option(
    "--client-id",
    envvar="AZURE_CLIENT_ID",
    help="User-assigned managed identity client id",
)
@click.pass_context
def run(
    ctx: click.Context,
    template_path: Path,
    parameters_path: Path | None,
    region: str,
    output_path: Path | None,
    continue_on_error: bool,
    simulate: bool,
    subscription_ids: tuple[str, ...],
    select_all: bool,
    selection_file: Path | None,
    provider_namespace: str,
    registration_timeout: int,
    poll_interval: int,
    deployment_timeout: int,
    credential_source: str,
    client_id: str | None,
) -> None:
    """Apply the delegation template to the selected subscriptions.

    \b
    Examples:
        onboard run -t delegation.json -s 0000... -s 1111...
        onboard run -t delegation.json --all --simulate
        onboard run -t delegation.json --selection-file targets.yaml --continue-on-error
    """
    source = CredentialSource(credential_source)
    if source == CredentialSource.CLI and not _given_on_command_line(ctx, "client_id"):
        # AZURE_CLIENT_ID in the environment only applies to managed identity
        client_id = None

    try:
        config = RunConfig(
            template_path=template_path,
            parameters_path=parameters_path,
            region=region,
            output_path=output_path or default_output_path(),
            continue_on_error=continue_on_error,
            simulate=simulate,
            subscription_ids=tuple(s.lower() for s in subscription_ids),
            select_all=select_all,
            selection_file=selection_file,
            provider_namespace=provider_namespace,
            registration_timeout_seconds=registration_timeout,
            registration_poll_interval_seconds=poll_interval,
            deployment_timeout_seconds=deployment_timeout,
            credential_source=source,
            managed_identity_client_id=client_id,
        )
    except ConfigurationError as e:
        raise click.ClickException(str(e)) from e

    mode = "SIMULATE (What-If)" if config.simulate else "APPLY"
    click.echo(f"Onboarding mode: {mode}")
    click.echo(f"  Template: {config.template_path}")
    click.echo(f"  Region: {config.region}")
    click.echo(f"  Provider: {config.provider_namespace}")
    click.echo(f"  On error: {'continue' if config.continue_on_error else 'stop'}")

    try:
        summary = run_onboarding(config, on_record=echo_record)
    except SecretlessViolationError as e:
        click.secho(str(e), fg="red", err=True)
        ctx.exit(EXIT_SECURITY_VIOLATION)
    except (TemplateSourceError, RunSetupError) as e:
        raise click.ClickException(str(e)) from e
    except ExportError as e:
        click.secho(str(e), fg="red", err=True)
        click.echo(render_summary_csv(e.summary), nl=False)
        ctx.exit(EXIT_FAILURE)

    color = "green" if summary.status == RunStatus.SUCCESS else "red"
    click.secho(
        f"\nRun {summary.status.value}: "
        f"{summary.count(DeploymentOutcome.SUCCEEDED)} succeeded, "
        f"{summary.count(DeploymentOutcome.SIMULATED)} simulated, "
        f"{summary.count(DeploymentOutcome.FAILED)} failed",
        fg=color,
    )
    click.echo(f"Results written to {config.output_path}")
    ctx.exit(summary.status.exit_code)


# =============================================================================
# List Command
# =============================================================================


@cli.command("list-targets")
@click.option(
    "--credential",
    "credential_source",
    envvar="ONBOARD_CREDENTIAL_SOURCE",
    type=click.Choice(CREDENTIAL_CHOICES),
    default=CredentialSource.CLI.value,
    show_default=True,
)
@click.option("--client-id", help="User-assigned managed identity client id")
def list_targets(credential_source: str, client_id: str | None) -> None:
    """List enabled subscriptions that can be onboarded."""
    try:
        credential = get_credential(CredentialSource(credential_source), client_id)
        candidates = list_candidate_targets(SubscriptionClient(credential))
    except (SecretlessViolationError, ValueError, AzureError) as e:
        raise click.ClickException(str(e)) from e

    if not candidates:
        click.echo("No subscriptions available with the current credentials.")
        return

    for target in candidates:
        click.echo(f"{target.subscription_id}  {target.display_name}")


# =============================================================================
# Entry Point
# =============================================================================


def main() -> None:
    """Entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
