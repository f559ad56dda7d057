"""Tenant repository and schema manager backed by PostgreSQL."""

import logging
from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
from typing import TYPE_CHECKING, Any

from tenantguard.core.tenants.types import Tenant

if TYPE_CHECKING:
    from asyncpg import Connection

logger = logging.getLogger(__name__)

_TENANT_COLUMNS = "id, name, assigned_datastore_id, schema_deleted, constraints_dropped, created_at"

DatastoreConnector = Callable[[int], AbstractAsyncContextManager["Connection"]]


class PostgresTenantRepository:
    """Repository for tenant operations."""

    def __init__(self, conn: "Connection") -> None:
        """Initialize the repository."""
        self._conn = conn

    async def get(self, tenant_id: int) -> Tenant | None:
        """Get tenant by ID."""
        row = await self._conn.fetchrow(
            f"SELECT {_TENANT_COLUMNS} FROM tenants WHERE id = $1",
            tenant_id,
        )
        if not row:
            return None
        return self._row_to_tenant(row)

    async def create(self, name: str, assigned_datastore_id: int | None = None) -> Tenant:
        """Create a new tenant."""
        row = await self._conn.fetchrow(
            f"""
            INSERT INTO tenants (name, assigned_datastore_id)
            VALUES ($1, $2)
            RETURNING {_TENANT_COLUMNS}
            """,
            name,
            assigned_datastore_id,
        )
        return self._row_to_tenant(row)

    async def mark_schema_deleted(self, tenant_id: int) -> Tenant | None:
        """Set the schema_deleted flag."""
        return await self._set_flag("schema_deleted", tenant_id)

    async def mark_constraints_dropped(self, tenant_id: int) -> Tenant | None:
        """Set the constraints_dropped flag."""
        return await self._set_flag("constraints_dropped", tenant_id)

    async def delete(self, tenant_id: int) -> bool:
        """Delete the tenant. Scoped rows cascade."""
        row = await self._conn.fetchrow(
            "DELETE FROM tenants WHERE id = $1 RETURNING id",
            tenant_id,
        )
        return row is not None

    async def _set_flag(self, column: str, tenant_id: int) -> Tenant | None:
        row = await self._conn.fetchrow(
            f"""
            UPDATE tenants SET {column} = true
            WHERE id = $1
            RETURNING {_TENANT_COLUMNS}
            """,
            tenant_id,
        )
        if not row:
            return None
        return self._row_to_tenant(row)

    def _row_to_tenant(self, row: dict[str, Any]) -> Tenant:
        """Convert database row to Tenant."""
        return Tenant(
            id=row["id"],
            name=row["name"],
            assigned_datastore_id=row["assigned_datastore_id"],
            schema_deleted=row["schema_deleted"],
            constraints_dropped=row["constraints_dropped"],
            created_at=row["created_at"],
        )


class PostgresSchemaManager:
    """Tenant schema operations on a PostgreSQL datastore.

    Tenant ``N`` lives in schema ``org_N``; removal renames it to
    ``deleted_N``. Both operations check the catalog first so re-running
    them after a partial failure does nothing.
    """

    def __init__(self, connect: DatastoreConnector) -> None:
        """Initialize the schema manager.

        Args:
            connect: Opens a connection to a datastore by id.
        """
        self._connect = connect

    @staticmethod
    def schema_name(tenant_id: int) -> str:
        """Name of the tenant's active schema."""
        return f"org_{int(tenant_id)}"

    def deleted_schema_name(self, tenant_id: int) -> str:
        """Name of the tenant's schema once marked deleted."""
        return f"deleted_{int(tenant_id)}"

    async def mark_schema_deleted(self, tenant_id: int, datastore_id: int) -> str:
        """Rename ``org_N`` to ``deleted_N`` unless already renamed."""
        active = self.schema_name(tenant_id)
        deleted = self.deleted_schema_name(tenant_id)
        async with self._connect(datastore_id) as conn:
            exists = await conn.fetchval(
                "SELECT EXISTS (SELECT 1 FROM information_schema.schemata WHERE schema_name = $1)",
                active,
            )
            if exists:
                await conn.execute(f'ALTER SCHEMA "{active}" RENAME TO "{deleted}"')
                logger.info(f"Renamed schema {active} to {deleted} on datastore {datastore_id}")
        return deleted

    async def drop_schema_constraints(
        self, tenant_id: int, schema_name: str, datastore_id: int
    ) -> bool:
        """Drop foreign-key and check constraints of every table in the schema."""
        async with self._connect(datastore_id) as conn:
            rows = await conn.fetch(
                """
                SELECT tc.table_name, tc.constraint_name
                FROM information_schema.table_constraints tc
                WHERE tc.table_schema = $1
                  AND tc.constraint_type IN ('FOREIGN KEY', 'CHECK')
                  AND tc.constraint_name NOT LIKE '%_not_null'
                """,
                schema_name,
            )
            for row in rows:
                await conn.execute(
                    f'ALTER TABLE "{schema_name}"."{row["table_name"]}" '
                    f'DROP CONSTRAINT IF EXISTS "{row["constraint_name"]}"'
                )
        logger.info(
            f"Dropped {len(rows)} constraints in schema {schema_name} "
            f"for tenant {tenant_id} on datastore {datastore_id}"
        )
        return True
