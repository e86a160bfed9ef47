"""Mock Azure credentials for secretless testing.

Stand-ins for AzureCliCredential and ManagedIdentityCredential that hand out
fake tokens without Azure connectivity.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

from azure.core.exceptions import ClientAuthenticationError

# Token validity duration
TOKEN_VALIDITY_HOURS = 1


@dataclass
class MockAccessToken:
    """Mimics azure.core.credentials.AccessToken."""

    token: str
    expires_on: int


class MockCredential:
    """Token credential that records get_token calls.

    ``kind`` is "cli" or "managed_identity" so tests can assert which
    credential type the code asked for.
    """

    def __init__(self, kind: str = "cli", client_id: str | None = None) -> None:
        self.kind = kind
        self.client_id = client_id
        self._get_token_calls: list[tuple[str, ...]] = []
        self._should_fail = False
        self._failure_message = "Authentication failed"

    @property
    def get_token_call_count(self) -> int:
        return len(self._get_token_calls)

    def set_failure(self, should_fail: bool, message: str = "Authentication failed") -> None:
        self._should_fail = should_fail
        self._failure_message = message

    def get_token(self, *scopes: str, **_kwargs: Any) -> MockAccessToken:
        self._get_token_calls.append(scopes)
        if self._should_fail:
            raise ClientAuthenticationError(message=self._failure_message)

        identity_part = self.client_id or self.kind
        expires_on = datetime.now(UTC) + timedelta(hours=TOKEN_VALIDITY_HOURS)
        return MockAccessToken(
            token=f"mock-token-{len(self._get_token_calls)}-{identity_part}",
            expires_on=int(expires_on.timestamp()),
        )

    def close(self) -> None:
        pass


def create_mock_credential(kind: str = "cli", client_id: str | None = None) -> MockCredential:
    """Factory function to create a mock credential."""
    return MockCredential(kind=kind, client_id=client_id)
