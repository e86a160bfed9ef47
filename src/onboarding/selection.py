"""Target subscription discovery and selection.

Candidates come from the subscriptions visible to the credential; the
selection itself is supplied on the command line or in a YAML file.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from pathlib import Path

import yaml
from azure.mgmt.subscription import SubscriptionClient
from pydantic import ValidationError

from .config import MAX_SELECTION_FILE_SIZE_BYTES, VALID_SUBSCRIPTION_ID_PATTERN
from .models import Target, TargetSelection

logger = logging.getLogger(__name__)


class RunSetupError(Exception):
    """Raised when a run cannot start. No target is entered and no summary is produced."""

    pass


def list_candidate_targets(subscription_client: SubscriptionClient) -> list[Target]:
    """List enabled subscriptions visible to the credential, sorted by name."""
    candidates: list[Target] = []
    for subscription in subscription_client.subscriptions.list():
        state = getattr(subscription, "state", None)
        state_value = str(getattr(state, "value", state) or "")
        if state_value.lower() != "enabled":
            logger.debug(
                "Skipping subscription in state %s: %s",
                state_value,
                subscription.subscription_id,
            )
            continue
        candidates.append(
            Target(
                subscription_id=subscription.subscription_id.lower(),
                display_name=subscription.display_name or "",
            )
        )
    return sorted(candidates, key=lambda t: (t.display_name.lower(), t.subscription_id))


def load_selection_file(path: Path) -> TargetSelection:
    """Load and validate a selection file.

    Raises:
        RunSetupError: If the file cannot be loaded or fails validation.
    """
    if not path.exists():
        raise RunSetupError(f"Selection file not found: {path}")

    if path.stat().st_size > MAX_SELECTION_FILE_SIZE_BYTES:
        raise RunSetupError(
            f"Selection file exceeds maximum size of {MAX_SELECTION_FILE_SIZE_BYTES} bytes: {path}"
        )

    try:
        raw_data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except OSError as e:
        raise RunSetupError(f"Failed to read selection file {path}: {e}") from e
    except yaml.YAMLError as e:
        raise RunSetupError(f"Invalid YAML in {path}: {e}") from e

    if not isinstance(raw_data, dict):
        raise RunSetupError(f"Selection file must contain a YAML mapping: {path}")

    # Support Kubernetes-style wrapper: apiVersion, kind, metadata, spec
    if "apiVersion" in raw_data and "spec" in raw_data:
        raw_data = raw_data.get("spec") or {}
        if not isinstance(raw_data, dict):
            raise RunSetupError(f"Spec section must be a mapping: {path}")

    try:
        selection = TargetSelection.model_validate(raw_data)
    except ValidationError as e:
        errors = []
        for error in e.errors():
            loc = ".".join(str(x) for x in error["loc"])
            errors.append(f"  - {loc}: {error['msg']}")
        raise RunSetupError(f"Validation failed for {path}:\n" + "\n".join(errors)) from e

    logger.info("Loaded selection file %s", path)
    return selection


def select_targets(
    candidates: Iterable[Target],
    requested_ids: Iterable[str] = (),
    select_all: bool = False,
) -> list[Target]:
    """Pick the targets of a run from the candidate set.

    Order follows ``requested_ids`` (or the candidate order with
    ``select_all``). Duplicates are dropped.

    Raises:
        RunSetupError: If nothing is available, nothing is selected, or a
            requested subscription is not among the candidates.
    """
    by_id = {t.subscription_id.lower(): t for t in candidates}
    if not by_id:
        raise RunSetupError("No subscriptions available with the current credentials.")

    if select_all:
        return list(by_id.values())

    selected: list[Target] = []
    unknown: list[str] = []
    seen: set[str] = set()
    for requested in requested_ids:
        key = requested.strip().lower()
        if key in seen:
            continue
        seen.add(key)
        if not re.match(VALID_SUBSCRIPTION_ID_PATTERN, key):
            unknown.append(requested)
        elif key in by_id:
            selected.append(by_id[key])
        else:
            unknown.append(requested)

    if unknown:
        raise RunSetupError(
            "Subscriptions not available with the current credentials: " + ", ".join(unknown)
        )
    if not selected:
        raise RunSetupError("No subscriptions selected.")
    return selected
