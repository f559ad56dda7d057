"""Credential token repository protocol."""

from datetime import datetime
from typing import Protocol, runtime_checkable

from tenantguard.core.tokens.types import CredentialToken


@runtime_checkable
class TokenRepository(Protocol):
    """Protocol for credential token storage."""

    async def get_by_principal_and_secret(
        self, principal_id: int, secret: str
    ) -> CredentialToken | None:
        """Find a token by exact principal id and secret."""
        ...

    async def get_by_id(self, token_id: int) -> CredentialToken | None:
        """Get token by ID."""
        ...

    async def create(
        self,
        principal_id: int,
        secret: str,
        expires_at: datetime,
        single_use: bool = True,
        privileges: frozenset[str] = frozenset(),
    ) -> CredentialToken:
        """Store a new unused token."""
        ...

    async def claim(self, token_id: int) -> bool:
        """Atomically flip ``used`` from False to True.

        Returns:
            True if this call made the flip; False if the token was already
            used (another redemption won) or does not exist.
        """
        ...
