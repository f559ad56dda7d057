"""Credential token repository backed by PostgreSQL."""

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any

from tenantguard.core.privileges import codec
from tenantguard.core.tokens.types import CredentialToken

if TYPE_CHECKING:
    from asyncpg import Connection

logger = logging.getLogger(__name__)

_TOKEN_COLUMNS = "id, principal_id, secret, expires_at, used, single_use, privileges, created_at"


class PostgresTokenRepository:
    """Repository for credential token operations."""

    def __init__(self, conn: "Connection") -> None:
        """Initialize the repository."""
        self._conn = conn

    async def get_by_principal_and_secret(
        self, principal_id: int, secret: str
    ) -> CredentialToken | None:
        """Find a token by principal id and exact secret."""
        row = await self._conn.fetchrow(
            f"""
            SELECT {_TOKEN_COLUMNS} FROM credential_tokens
            WHERE principal_id = $1 AND secret = $2
            """,
            principal_id,
            secret,
        )
        if not row:
            return None
        return self._row_to_token(row)

    async def get_by_id(self, token_id: int) -> CredentialToken | None:
        """Get token by ID."""
        row = await self._conn.fetchrow(
            f"SELECT {_TOKEN_COLUMNS} FROM credential_tokens WHERE id = $1",
            token_id,
        )
        if not row:
            return None
        return self._row_to_token(row)

    async def create(
        self,
        principal_id: int,
        secret: str,
        expires_at: datetime,
        single_use: bool = True,
        privileges: frozenset[str] = frozenset(),
    ) -> CredentialToken:
        """Store a new token."""
        row = await self._conn.fetchrow(
            f"""
            INSERT INTO credential_tokens (principal_id, secret, expires_at, single_use, privileges)
            VALUES ($1, $2, $3, $4, $5)
            RETURNING {_TOKEN_COLUMNS}
            """,
            principal_id,
            secret,
            expires_at,
            single_use,
            codec.encode(privileges),
        )
        return self._row_to_token(row)

    async def claim(self, token_id: int) -> bool:
        """Flip ``used`` to true unless another claim already did."""
        row = await self._conn.fetchrow(
            "UPDATE credential_tokens SET used = true WHERE id = $1 AND used = false RETURNING id",
            token_id,
        )
        if not row:
            logger.debug(f"Token {token_id} claim lost or token missing")
            return False
        return True

    def _row_to_token(self, row: dict[str, Any]) -> CredentialToken:
        """Convert database row to CredentialToken."""
        return CredentialToken(
            id=row["id"],
            principal_id=row["principal_id"],
            secret=row["secret"],
            expires_at=row["expires_at"],
            used=row["used"],
            single_use=row["single_use"],
            privileges=codec.decode(row["privileges"]),
            created_at=row["created_at"],
        )
