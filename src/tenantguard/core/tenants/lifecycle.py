"""Three-step tenant removal.

1. mark_schema_deleted: flag the tenant and move its dedicated schema out
   of the active namespace.
2. drop_schema_constraints: drop constraints in that schema so the deletes
   in step 3 cannot fail on them.
3. remove_tenant: delete the tenant row and every row scoped to it.

Each step persists its effect before the next starts and is safe to re-run.
There is no transaction spanning the steps; a failed run is resumed by
calling ``remove`` again, which skips whatever the stored flags show as done.
"""

import structlog

from tenantguard.core.exceptions import (
    AccessDenied,
    InvalidTenantState,
    TenantNotFound,
    TenantRemovalError,
)
from tenantguard.core.privileges import Privilege
from tenantguard.core.rbac.repository import RoleAssignmentRepository
from tenantguard.core.rbac.resolver import AuthorityResolver
from tenantguard.core.tenants.repository import SchemaManager, TenantRepository
from tenantguard.core.tenants.types import RemovalReport, RemovalStep, Tenant

logger = structlog.get_logger()

TENANT_REMOVAL_PRIVILEGE = Privilege.MANAGE_ORG_DATA.value


class TenantLifecycle:
    """Coordinates tenant removal across the tenant store and its datastore."""

    def __init__(
        self,
        tenants: TenantRepository,
        assignments: RoleAssignmentRepository,
        schemas: SchemaManager | None,
        resolver: AuthorityResolver,
    ) -> None:
        """Initialize the lifecycle.

        Args:
            tenants: Tenant repository.
            assignments: Role assignment repository, cleared for removed tenants.
            schemas: Datastore schema operations; None without multitenant datastores.
            resolver: Resolves actors for the removal permission check.
        """
        self._tenants = tenants
        self._assignments = assignments
        self._schemas = schemas
        self._resolver = resolver

    async def _get_tenant(self, tenant_id: int) -> Tenant:
        tenant = await self._tenants.get(tenant_id)
        if tenant is None:
            raise TenantNotFound(tenant_id)
        return tenant

    async def mark_schema_deleted(
        self, tenant_id: int, datastore_id: int | None = None
    ) -> str | None:
        """Step 1: flag the tenant and rename its schema.

        Args:
            tenant_id: Tenant to remove.
            datastore_id: Datastore holding the tenant schema; None when the
                tenant has no dedicated schema.

        Returns:
            The schema's deleted name, or None without a dedicated schema.

        Raises:
            TenantNotFound: If the tenant does not exist.
        """
        tenant = await self._get_tenant(tenant_id)
        if datastore_id is None or self._schemas is None:
            schema_name = None
        elif tenant.schema_deleted:
            schema_name = self._schemas.deleted_schema_name(tenant_id)
        else:
            schema_name = await self._schemas.mark_schema_deleted(tenant_id, datastore_id)

        if not tenant.schema_deleted:
            await self._tenants.mark_schema_deleted(tenant_id)
            logger.info("tenant_schema_marked_deleted", tenant_id=tenant_id, schema=schema_name)
        return schema_name

    async def drop_schema_constraints(
        self,
        tenant_id: int,
        schema_name: str | None,
        datastore_id: int | None = None,
    ) -> bool:
        """Step 2: drop constraints in the renamed schema.

        Args:
            tenant_id: Tenant being removed.
            schema_name: Result of step 1.
            datastore_id: Datastore holding the schema.

        Returns:
            True once the step is recorded as done.

        Raises:
            TenantNotFound: If the tenant does not exist.
            InvalidTenantState: If step 1 has not completed.
        """
        tenant = await self._get_tenant(tenant_id)
        if not tenant.schema_deleted:
            raise InvalidTenantState(
                f"Tenant {tenant_id} schema must be marked deleted before dropping constraints"
            )
        if tenant.constraints_dropped:
            return True

        if schema_name is not None and datastore_id is not None and self._schemas is not None:
            await self._schemas.drop_schema_constraints(tenant_id, schema_name, datastore_id)

        await self._tenants.mark_constraints_dropped(tenant_id)
        logger.info("tenant_schema_constraints_dropped", tenant_id=tenant_id, schema=schema_name)
        return True

    async def remove_tenant(self, tenant_id: int) -> bool:
        """Step 3: delete the tenant and every row scoped to it.

        Returns:
            True if the tenant was deleted; False if it was already gone.

        Raises:
            InvalidTenantState: If steps 1 and 2 have not completed.
        """
        tenant = await self._tenants.get(tenant_id)
        if tenant is None:
            return False
        if not (tenant.schema_deleted and tenant.constraints_dropped):
            raise InvalidTenantState(
                f"Tenant {tenant_id} must finish schema teardown before it is removed"
            )

        removed_assignments = await self._assignments.delete_for_tenant(tenant_id)
        deleted = await self._tenants.delete(tenant_id)
        logger.info(
            "tenant_removed",
            tenant_id=tenant_id,
            assignments_removed=removed_assignments,
        )
        return deleted

    async def remove(self, tenant_id: int, actor_id: int | None = None) -> RemovalReport:
        """Run every removal step that has not completed yet.

        The actor needs ``manageOrgData`` globally or in the tenant. The
        check goes through the resolver rather than the entity gate, so a
        tenant already pending removal can still be finished.

        Args:
            tenant_id: Tenant to remove.
            actor_id: Acting principal; None for trusted internal callers.

        Returns:
            Which steps ran and which were already done. Every step is
            reported as skipped when the tenant is already gone.

        Raises:
            AccessDenied: If the actor may not remove the tenant.
            TenantRemovalError: If a step fails; re-run to resume.
        """
        if actor_id is not None:
            authority = await self._resolver.resolve(actor_id)
            if not authority.has_global_or_tenant_privilege(TENANT_REMOVAL_PRIVILEGE, tenant_id):
                raise AccessDenied(actor_id, TENANT_REMOVAL_PRIVILEGE, tenant_id)

        tenant = await self._tenants.get(tenant_id)
        if tenant is None:
            return RemovalReport(
                tenant_id=tenant_id, executed_steps=[], skipped_steps=list(RemovalStep)
            )
        datastore_id = tenant.assigned_datastore_id
        executed: list[RemovalStep] = []
        skipped: list[RemovalStep] = []

        logger.info("tenant_removal_started", tenant_id=tenant_id, state=tenant.state.value)

        step = RemovalStep.MARK_SCHEMA_DELETED
        completed: list[RemovalStep] = []
        try:
            schema_name = await self.mark_schema_deleted(tenant_id, datastore_id)
            (skipped if tenant.schema_deleted else executed).append(step)
            completed.append(step)

            step = RemovalStep.DROP_SCHEMA_CONSTRAINTS
            await self.drop_schema_constraints(tenant_id, schema_name, datastore_id)
            (skipped if tenant.constraints_dropped else executed).append(step)
            completed.append(step)

            step = RemovalStep.REMOVE_TENANT
            await self.remove_tenant(tenant_id)
            executed.append(step)
        except Exception as e:
            logger.error(
                "tenant_removal_failed",
                tenant_id=tenant_id,
                step=step.value,
                completed=[s.value for s in completed],
                error=str(e),
            )
            raise TenantRemovalError(tenant_id, step, completed) from e

        logger.info(
            "tenant_removal_completed",
            tenant_id=tenant_id,
            executed=[s.value for s in executed],
            skipped=[s.value for s in skipped],
        )
        return RemovalReport(
            tenant_id=tenant_id,
            schema_name=schema_name,
            executed_steps=executed,
            skipped_steps=skipped,
        )
