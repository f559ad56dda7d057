"""Tenant repository and datastore protocols."""

from typing import Protocol, runtime_checkable

from tenantguard.core.tenants.types import Tenant


@runtime_checkable
class TenantRepository(Protocol):
    """Protocol for tenant storage."""

    async def get(self, tenant_id: int) -> Tenant | None:
        """Get tenant by ID."""
        ...

    async def create(self, name: str, assigned_datastore_id: int | None = None) -> Tenant:
        """Create a new active tenant."""
        ...

    async def mark_schema_deleted(self, tenant_id: int) -> Tenant | None:
        """Set ``schema_deleted``. Setting it again is a no-op."""
        ...

    async def mark_constraints_dropped(self, tenant_id: int) -> Tenant | None:
        """Set ``constraints_dropped``. Setting it again is a no-op."""
        ...

    async def delete(self, tenant_id: int) -> bool:
        """Delete the tenant and every row scoped to it.

        Returns:
            True if a tenant row was deleted.
        """
        ...


@runtime_checkable
class SchemaManager(Protocol):
    """Operations on a tenant's dedicated schema in its assigned datastore.

    Both operations must tolerate being repeated after a partial run.
    """

    def deleted_schema_name(self, tenant_id: int) -> str:
        """Name the tenant's schema carries once marked deleted."""
        ...

    async def mark_schema_deleted(self, tenant_id: int, datastore_id: int) -> str:
        """Move the tenant schema out of the active namespace.

        Returns:
            The schema's new name.
        """
        ...

    async def drop_schema_constraints(
        self, tenant_id: int, schema_name: str, datastore_id: int
    ) -> bool:
        """Drop foreign-key and check constraints in the schema."""
        ...
