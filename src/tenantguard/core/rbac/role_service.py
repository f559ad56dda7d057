"""Role administration: role definitions, privilege grants and assignments."""

from collections.abc import Iterable
from enum import Enum

import structlog

from tenantguard.core.exceptions import (
    AccessDenied,
    DuplicateRoleName,
    PrivilegeRenameConflict,
    RoleNotFound,
    ValidationError,
)
from tenantguard.core.privileges import (
    ROLE_MANAGEMENT_PRIVILEGE,
    Privilege,
    normalize,
    privilege_name,
    validate_privilege_name,
)
from tenantguard.core.rbac.repository import RoleAssignmentRepository, RoleRepository
from tenantguard.core.rbac.resolver import AuthorityResolver
from tenantguard.core.rbac.types import (
    Role,
    RoleAssignment,
    RoleVariant,
    validate_assignment_scope,
)

logger = structlog.get_logger()

ASSIGNMENT_MANAGEMENT_PRIVILEGE = Privilege.MANAGE_USER_ROLES.value


class RoleService:
    """Service for role and role assignment administration.

    Methods taking ``actor_id`` check the actor's resolved authority when
    one is given. ``None`` means a trusted internal caller, such as the
    bootstrap that seeds system roles.
    """

    def __init__(
        self,
        roles: RoleRepository,
        assignments: RoleAssignmentRepository,
        resolver: AuthorityResolver,
    ) -> None:
        """Initialize the service.

        Args:
            roles: Role repository.
            assignments: Role assignment repository.
            resolver: Resolves acting principals for permission checks.
        """
        self._roles = roles
        self._assignments = assignments
        self._resolver = resolver

    async def _require_global(self, actor_id: int | None, privilege: str) -> None:
        if actor_id is None:
            return
        authority = await self._resolver.resolve(actor_id)
        if not authority.has_global_privilege(privilege):
            raise AccessDenied(actor_id, privilege)

    async def _require_in_scope(
        self, actor_id: int | None, privilege: str, tenant_id: int | None
    ) -> None:
        if actor_id is None:
            return
        authority = await self._resolver.resolve(actor_id)
        if not authority.has_global_or_tenant_privilege(privilege, tenant_id):
            raise AccessDenied(actor_id, privilege, tenant_id)

    async def _get_role(self, role_id: int) -> Role:
        role = await self._roles.get_by_id(role_id)
        if role is None:
            raise RoleNotFound(role_id)
        return role

    async def create_role(
        self,
        name: str,
        category: str | None,
        variant: RoleVariant,
        privileges: Iterable[str | Enum] = (),
        removable: bool = True,
        actor_id: int | None = None,
    ) -> Role:
        """Create a new role.

        Args:
            name: Role name, unique across every variant.
            category: Optional display category.
            variant: Scope in which the role may be assigned.
            privileges: Privileges the role grants.
            removable: Whether the role may later be deleted.
            actor_id: Acting principal, checked for the role-management privilege.

        Returns:
            The created role.

        Raises:
            ValidationError: If the name is blank.
            InvalidPrivilegeName: If a privilege identifier is malformed.
            DuplicateRoleName: If the name is already taken.
            AccessDenied: If the actor may not manage roles.
        """
        if not name or not name.strip():
            raise ValidationError("Role name must not be empty")
        granted = normalize(privileges)
        await self._require_global(actor_id, ROLE_MANAGEMENT_PRIVILEGE)

        if await self._roles.get_by_name(name) is not None:
            raise DuplicateRoleName(name)

        role = await self._roles.create(name, variant, category, granted, removable)
        logger.info(
            "role_created",
            role_id=role.id,
            name=name,
            variant=variant.value,
            privileges=len(granted),
        )
        return role

    async def create_or_update_role(
        self,
        name: str,
        variant: RoleVariant,
        privileges: Iterable[str | Enum],
        category: str | None = None,
        removable: bool = False,
    ) -> Role:
        """Create a role, or replace the privileges of an existing one.

        Used to seed system roles at startup. Always a trusted call.

        Raises:
            DuplicateRoleName: If the name belongs to a role of another variant.
        """
        desired = normalize(privileges)
        existing = await self._roles.get_by_name(name)
        if existing is None:
            return await self.create_role(name, category, variant, desired, removable)

        if existing.variant is not variant:
            raise DuplicateRoleName(name)

        role = await self._roles.apply_privilege_change(existing.id, lambda _: desired)
        if role is None:
            raise RoleNotFound(name)
        if role.removable != removable:
            role = await self._roles.set_removable(role.id, removable) or role
        logger.info("role_synchronized", role_id=role.id, name=name)
        return role

    async def grant_privileges(
        self,
        role_id: int,
        privileges: Iterable[str | Enum],
        actor_id: int | None = None,
    ) -> Role:
        """Add privileges to a role.

        Privileges the role already grants are left as they are; when nothing
        changes, nothing is written.

        Raises:
            RoleNotFound: If the role does not exist.
            AccessDenied: If the actor may not manage roles.
        """
        added = normalize(privileges)
        await self._require_global(actor_id, ROLE_MANAGEMENT_PRIVILEGE)

        role = await self._roles.apply_privilege_change(role_id, lambda current: current | added)
        if role is None:
            raise RoleNotFound(role_id)
        logger.info("role_privileges_granted", role_id=role_id, privileges=sorted(added))
        return role

    async def revoke_privileges(
        self,
        role_id: int,
        privileges: Iterable[str | Enum],
        actor_id: int | None = None,
    ) -> Role:
        """Remove privileges from a role.

        Raises:
            RoleNotFound: If the role does not exist.
            AccessDenied: If the actor may not manage roles.
        """
        removed = normalize(privileges)
        await self._require_global(actor_id, ROLE_MANAGEMENT_PRIVILEGE)

        role = await self._roles.apply_privilege_change(
            role_id, lambda current: current - removed
        )
        if role is None:
            raise RoleNotFound(role_id)
        logger.info("role_privileges_revoked", role_id=role_id, privileges=sorted(removed))
        return role

    async def remove_privileges_from_all_roles(
        self,
        privileges: Iterable[str | Enum],
        actor_id: int | None = None,
    ) -> int:
        """Strip privileges from every role that grants them.

        Returns:
            Number of roles changed.
        """
        removed = normalize(privileges)
        await self._require_global(actor_id, ROLE_MANAGEMENT_PRIVILEGE)

        changed = 0
        for role in await self._roles.list_all():
            if role.privileges & removed:
                await self._roles.apply_privilege_change(
                    role.id, lambda current: current - removed
                )
                changed += 1

        logger.info("privileges_retired", privileges=sorted(removed), roles_changed=changed)
        return changed

    async def delete_role(self, role_id: int, requesting_principal_id: int) -> bool:
        """Delete a role and its assignments.

        Deletion happens only when the role is removable and the requester
        holds the role-management privilege globally. In every other case
        this returns False rather than raising, so callers learn nothing
        about roles they may not manage.

        Args:
            role_id: Role to delete.
            requesting_principal_id: Principal asking for the deletion.

        Returns:
            True if the role was deleted.
        """
        authority = await self._resolver.resolve(requesting_principal_id)
        if not authority.has_global_privilege(ROLE_MANAGEMENT_PRIVILEGE):
            logger.info(
                "role_delete_refused",
                role_id=role_id,
                principal_id=requesting_principal_id,
                reason="missing_privilege",
            )
            return False

        role = await self._roles.get_by_id(role_id)
        if role is None or not role.removable:
            logger.info(
                "role_delete_refused",
                role_id=role_id,
                principal_id=requesting_principal_id,
                reason="not_removable",
            )
            return False

        if not await self._roles.delete_if_removable(role_id):
            return False
        removed_assignments = await self._assignments.delete_for_role(role_id)

        logger.info(
            "role_deleted",
            role_id=role_id,
            name=role.name,
            principal_id=requesting_principal_id,
            assignments_removed=removed_assignments,
        )
        return True

    async def assign_role(
        self,
        principal_id: int | None,
        role_id: int,
        tenant_id: int | None,
        actor_id: int | None = None,
    ) -> RoleAssignment:
        """Assign a role to a principal, or as a tenant default.

        Args:
            principal_id: Principal receiving the role; None for a default
                assignment applying to every member of ``tenant_id``.
            role_id: Role to assign.
            tenant_id: Tenant scope; None for a global assignment.
            actor_id: Acting principal, checked for assignment management in
                the target tenant.

        Returns:
            The new assignment, or the identical one that already existed.

        Raises:
            RoleNotFound: If the role does not exist.
            InvalidScopeForRoleVariant: If the scope does not fit the role's variant.
            ValidationError: If a default assignment has no tenant.
            AccessDenied: If the actor may not manage assignments in the tenant.
        """
        role = await self._get_role(role_id)
        validate_assignment_scope(role, tenant_id)
        if principal_id is None and tenant_id is None:
            raise ValidationError("Default role assignments require a tenant")
        await self._require_in_scope(actor_id, ASSIGNMENT_MANAGEMENT_PRIVILEGE, tenant_id)

        existing = await self._assignments.find(principal_id, role_id, tenant_id)
        if existing is not None:
            return existing

        assignment = await self._assignments.create(principal_id, role_id, tenant_id)
        logger.info(
            "role_assigned",
            assignment_id=assignment.id,
            principal_id=principal_id,
            role=role.name,
            tenant_id=tenant_id,
        )
        return assignment

    async def revoke_assignment(self, assignment_id: int, actor_id: int | None = None) -> bool:
        """Remove one role assignment.

        Returns:
            True if the assignment existed and was deleted.

        Raises:
            AccessDenied: If the actor may not manage assignments in its tenant.
        """
        assignment = await self._assignments.get_by_id(assignment_id)
        if assignment is None:
            return False
        await self._require_in_scope(
            actor_id, ASSIGNMENT_MANAGEMENT_PRIVILEGE, assignment.tenant_id
        )

        deleted = await self._assignments.delete(assignment_id)
        if deleted:
            logger.info(
                "role_assignment_revoked",
                assignment_id=assignment_id,
                principal_id=assignment.principal_id,
                tenant_id=assignment.tenant_id,
            )
        return deleted

    async def unassign_principal(
        self,
        principal_id: int,
        tenant_id: int | None = None,
        actor_id: int | None = None,
    ) -> int:
        """Remove a principal's assignments, everywhere or within one tenant.

        Returns:
            Number of assignments removed.
        """
        await self._require_in_scope(actor_id, ASSIGNMENT_MANAGEMENT_PRIVILEGE, tenant_id)
        removed = await self._assignments.delete_for_principal(principal_id, tenant_id)
        logger.info(
            "principal_unassigned",
            principal_id=principal_id,
            tenant_id=tenant_id,
            assignments_removed=removed,
        )
        return removed

    async def set_tenant_default_roles(
        self,
        tenant_id: int,
        role_names: Iterable[str],
        actor_id: int | None = None,
    ) -> list[RoleAssignment]:
        """Synchronize the roles every member of a tenant receives by default.

        Missing default assignments are added; defaults for roles not named
        are removed.

        Returns:
            The tenant's default assignments after synchronization.

        Raises:
            RoleNotFound: If a named role does not exist.
            InvalidScopeForRoleVariant: If a named role cannot be held in a tenant.
            AccessDenied: If the actor may not manage assignments in the tenant.
        """
        await self._require_in_scope(actor_id, ASSIGNMENT_MANAGEMENT_PRIVILEGE, tenant_id)

        desired: dict[int, Role] = {}
        for name in role_names:
            role = await self._roles.get_by_name(name)
            if role is None:
                raise RoleNotFound(name)
            validate_assignment_scope(role, tenant_id)
            desired[role.id] = role

        current = await self._assignments.list_tenant_defaults([tenant_id])
        for assignment in current:
            if assignment.role_id not in desired:
                await self._assignments.delete(assignment.id)

        present = {a.role_id for a in current}
        for role_id in desired:
            if role_id not in present:
                await self._assignments.create(None, role_id, tenant_id)

        defaults = await self._assignments.list_tenant_defaults([tenant_id])
        logger.info(
            "tenant_default_roles_updated",
            tenant_id=tenant_id,
            roles=sorted(role.name for role in desired.values()),
        )
        return defaults

    async def rename_privilege(
        self, old: str | Enum, new: str | Enum, actor_id: int | None = None
    ) -> int:
        """Rename a privilege in every stored role.

        Args:
            old: Current privilege identifier.
            new: Replacement identifier; must not already be granted by any role.
            actor_id: Acting principal, checked for the role-management privilege.

        Returns:
            Number of roles changed.

        Raises:
            InvalidPrivilegeName: If either identifier is malformed.
            PrivilegeRenameConflict: If some role already grants ``new``.
            AccessDenied: If the actor may not manage roles.
        """
        old = validate_privilege_name(privilege_name(old))
        new = validate_privilege_name(privilege_name(new))
        await self._require_global(actor_id, ROLE_MANAGEMENT_PRIVILEGE)
        if old == new:
            return 0

        if await self._roles.any_role_has_privilege(new):
            raise PrivilegeRenameConflict(f"Privilege '{new}' is already granted by a role")

        changed = await self._roles.rename_privilege(old, new)
        logger.info("privilege_renamed", old=old, new=new, roles_changed=changed)
        return changed
