"""Pytest configuration and fixtures."""

import json
import sys
from pathlib import Path

import pytest

# Add src to path for imports
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

# Add tests to path for azure_mock imports
tests_path = Path(__file__).parent
sys.path.insert(0, str(tests_path))

MANAGING_TENANT_ID = "11111111-2222-3333-4444-555555555555"

SUB_A = "aaaaaaaa-0000-0000-0000-000000000001"
SUB_B = "bbbbbbbb-0000-0000-0000-000000000002"
SUB_C = "cccccccc-0000-0000-0000-000000000003"


def delegation_template(default_tenant: str | None = MANAGING_TENANT_ID) -> dict:
    """A minimal subscription-scope delegation template."""
    tenant_parameter: dict = {"type": "string"}
    if default_tenant is not None:
        tenant_parameter["defaultValue"] = default_tenant
    return {
        "$schema": "https://schema.management.azure.com/schemas/2019-08-01/subscriptionDeploymentTemplate.json#",
        "contentVersion": "1.0.0.0",
        "parameters": {"managedByTenantId": tenant_parameter},
        "resources": [
            {
                "type": "Microsoft.ManagedServices/registrationDefinitions",
                "apiVersion": "2022-10-01",
                "name": "[guid('delegation')]",
                "properties": {"managedByTenantId": "[parameters('managedByTenantId')]"},
            }
        ],
    }


@pytest.fixture
def template_file(tmp_path: Path) -> Path:
    """Write the delegation template to disk."""
    path = tmp_path / "delegation.json"
    path.write_text(json.dumps(delegation_template()))
    return path
