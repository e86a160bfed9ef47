"""Delegation template loading with validation.

SECURITY: All file operations enforce size limits to prevent DoS attacks
via large files. Input validation is performed at the boundary.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .config import MAX_PARAMETERS_FILE_SIZE_BYTES, MAX_TEMPLATE_FILE_SIZE_BYTES

logger = logging.getLogger(__name__)

# Template parameter carrying the managing tenant id
MANAGING_TENANT_PARAMETER = "managedByTenantId"


class TemplateSourceError(Exception):
    """Raised when the template or its parameters cannot be used.

    Affects every target identically, so it aborts the whole run.
    """

    pass


@dataclass(frozen=True)
class TemplateBundle:
    """Template payload plus the parameter bag sent with every deployment."""

    template: dict[str, Any]
    parameters: dict[str, Any] = field(default_factory=dict)
    managing_tenant_id: str | None = None


def _read_json(path: Path, max_size: int, kind: str) -> Any:
    if not path.exists():
        raise TemplateSourceError(f"{kind} file not found: {path}")

    # SECURITY: Check file size before reading to prevent DoS
    try:
        file_size = path.stat().st_size
    except OSError as e:
        raise TemplateSourceError(f"Failed to stat {kind.lower()} file {path}: {e}") from e

    if file_size > max_size:
        raise TemplateSourceError(
            f"{kind} file exceeds maximum size of {max_size} bytes: {path}"
        )

    try:
        content = path.read_text(encoding="utf-8")
    except OSError as e:
        raise TemplateSourceError(f"Failed to read {kind.lower()} file {path}: {e}") from e

    try:
        return json.loads(content)
    except json.JSONDecodeError as e:
        raise TemplateSourceError(f"Invalid JSON in {path}: {e}") from e


def load_template(path: Path) -> dict[str, Any]:
    """Load a compiled ARM template.

    Raises:
        TemplateSourceError: If the template cannot be loaded.
    """
    template = _read_json(path, MAX_TEMPLATE_FILE_SIZE_BYTES, "Template")

    if not isinstance(template, dict):
        raise TemplateSourceError(f"Template must be a JSON object: {path}")
    if "resources" not in template:
        raise TemplateSourceError(f"Template has no 'resources' section: {path}")

    logger.info("Loaded template from %s", path)
    return template


def load_parameters(path: Path | None) -> dict[str, Any]:
    """Load an ARM parameters file.

    Accepts the deployment parameters file format
    (``{"$schema": ..., "parameters": {...}}``) or a bare parameter mapping.
    A missing path yields an empty parameter bag.

    Raises:
        TemplateSourceError: If the file cannot be loaded.
    """
    if path is None:
        return {}

    raw = _read_json(path, MAX_PARAMETERS_FILE_SIZE_BYTES, "Parameters")
    if not isinstance(raw, dict):
        raise TemplateSourceError(f"Parameters file must be a JSON object: {path}")

    if "parameters" in raw:
        parameters = raw["parameters"]
    elif "$schema" in raw:
        parameters = {}
    else:
        parameters = raw
    if not isinstance(parameters, dict):
        raise TemplateSourceError(f"'parameters' must be a JSON object: {path}")

    for name, entry in parameters.items():
        if not isinstance(entry, dict) or not ({"value", "reference"} & entry.keys()):
            raise TemplateSourceError(
                f"Parameter '{name}' in {path} must be an object with 'value' or 'reference'"
            )

    logger.info("Loaded %d parameters from %s", len(parameters), path)
    return dict(parameters)


def _literal(value: Any) -> str | None:
    # ARM expressions such as "[subscription().tenantId]" are not resolvable here
    if isinstance(value, str) and value.strip() and not value.strip().startswith("["):
        return value.strip()
    return None


def resolve_managing_tenant_id(
    template: dict[str, Any],
    parameters: dict[str, Any],
) -> str | None:
    """Find the managing tenant id in the parameter bag or the template defaults."""
    entry = parameters.get(MANAGING_TENANT_PARAMETER)
    if isinstance(entry, dict):
        value = _literal(entry.get("value"))
        if value:
            return value

    declared = template.get("parameters", {}).get(MANAGING_TENANT_PARAMETER)
    if isinstance(declared, dict):
        return _literal(declared.get("defaultValue"))
    return None


def prepare_template(
    template_path: Path,
    parameters_path: Path | None = None,
    simulate: bool = False,
) -> TemplateBundle:
    """Load the template and parameters used for every target of a run.

    In simulate mode the managing tenant id must be resolvable; it is
    injected into the parameter bag so the What-If preview validates
    against a concrete value.

    Raises:
        TemplateSourceError: If anything cannot be loaded or resolved.
    """
    template = load_template(template_path)
    parameters = load_parameters(parameters_path)
    tenant_id = resolve_managing_tenant_id(template, parameters)

    if simulate:
        if not tenant_id:
            raise TemplateSourceError(
                f"Cannot resolve '{MANAGING_TENANT_PARAMETER}' from {template_path}"
                + (f" or {parameters_path}" if parameters_path else "")
                + "; it is required for simulation"
            )
        parameters = {**parameters, MANAGING_TENANT_PARAMETER: {"value": tenant_id}}

    return TemplateBundle(template=template, parameters=parameters, managing_tenant_id=tenant_id)
