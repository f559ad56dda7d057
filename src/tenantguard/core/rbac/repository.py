"""RBAC repository protocols for database operations."""

from collections.abc import Callable, Collection
from datetime import datetime
from typing import Protocol, runtime_checkable

from tenantguard.core.rbac.types import Role, RoleAssignment, RoleVariant

PrivilegeChange = Callable[[frozenset[str]], frozenset[str]]


@runtime_checkable
class RoleRepository(Protocol):
    """Protocol for role storage.

    Implementations provide actual database access (PostgreSQL, in-memory).
    """

    async def get_by_id(self, role_id: int) -> Role | None:
        """Get role by ID."""
        ...

    async def get_by_name(self, name: str) -> Role | None:
        """Get role by name (names are unique across variants)."""
        ...

    async def get_many(self, role_ids: Collection[int]) -> list[Role]:
        """Get every role whose id is in ``role_ids``."""
        ...

    async def list_all(self, variant: RoleVariant | None = None) -> list[Role]:
        """List roles, optionally filtered by variant."""
        ...

    async def create(
        self,
        name: str,
        variant: RoleVariant,
        category: str | None,
        privileges: frozenset[str],
        removable: bool = True,
    ) -> Role:
        """Create a role. Raises DuplicateRoleName if the name is taken."""
        ...

    async def apply_privilege_change(self, role_id: int, change: PrivilegeChange) -> Role | None:
        """Replace a role's privileges with ``change(current)``.

        The read-modify-write must hold a lock on the role row so it
        serializes with concurrent grants, revokes and renames. When the
        new set equals the current one, nothing is written.

        Returns:
            The role after the change, or None if it does not exist.
        """
        ...

    async def set_removable(self, role_id: int, removable: bool) -> Role | None:
        """Update the removable flag."""
        ...

    async def delete_if_removable(self, role_id: int) -> bool:
        """Delete the role only if it is removable. Returns True if deleted."""
        ...

    async def rename_privilege(self, old: str, new: str) -> int:
        """Replace ``(old)`` with ``(new)`` in every stored role.

        Returns:
            Number of roles changed.
        """
        ...

    async def any_role_has_privilege(self, privilege: str) -> bool:
        """Check whether any stored role contains the privilege."""
        ...


@runtime_checkable
class RoleAssignmentRepository(Protocol):
    """Protocol for role assignment storage."""

    async def list_for_principal(self, principal_id: int) -> list[RoleAssignment]:
        """Get the principal's own assignments, global and tenant-scoped."""
        ...

    async def list_tenant_defaults(self, tenant_ids: Collection[int]) -> list[RoleAssignment]:
        """Get default assignments (no principal) for the given tenants."""
        ...

    async def list_for_tenant(self, tenant_id: int) -> list[RoleAssignment]:
        """Get every assignment scoped to a tenant, defaults included."""
        ...

    async def find(
        self, principal_id: int | None, role_id: int, tenant_id: int | None
    ) -> RoleAssignment | None:
        """Find an assignment by its full (principal, role, tenant) key."""
        ...

    async def get_by_id(self, assignment_id: int) -> RoleAssignment | None:
        """Get assignment by ID."""
        ...

    async def create(
        self, principal_id: int | None, role_id: int, tenant_id: int | None
    ) -> RoleAssignment:
        """Create an assignment."""
        ...

    async def delete(self, assignment_id: int) -> bool:
        """Delete one assignment. Returns True if deleted."""
        ...

    async def delete_for_principal(self, principal_id: int, tenant_id: int | None = None) -> int:
        """Delete a principal's assignments, optionally only within a tenant."""
        ...

    async def delete_for_role(self, role_id: int) -> int:
        """Delete every assignment of a role."""
        ...

    async def delete_for_tenant(self, tenant_id: int) -> int:
        """Delete every assignment scoped to a tenant."""
        ...

    async def last_modified(self, principal_id: int) -> datetime | None:
        """Latest change affecting the principal's resolved authority.

        Covers the principal's own assignments, the default assignments of
        its tenants and the roles those assignments reference.
        """
        ...
