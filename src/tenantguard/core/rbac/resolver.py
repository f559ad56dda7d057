"""Privilege resolution.

Computes the effective privileges of a principal from role assignment rows:

1. The principal's own assignments, global and tenant-scoped.
2. Default assignments (no principal) of every tenant the principal has a
   tenant-scoped assignment in.
3. The union of the referenced roles' privileges, bucketed by the
   originating row's tenant (no tenant -> global bucket).
"""

from collections import OrderedDict
from datetime import datetime
from typing import Protocol

import structlog

from tenantguard.core.rbac.repository import RoleAssignmentRepository, RoleRepository
from tenantguard.core.rbac.types import ResolvedAuthority, build_authority

logger = structlog.get_logger()


class AuthorityResolver(Protocol):
    """Anything that can resolve a principal's authority."""

    async def resolve(self, principal_id: int) -> ResolvedAuthority:
        """Resolve the principal's effective privileges."""
        ...


class PrivilegeResolver:
    """Resolves principals to their effective privileges.

    Resolution is a pure read projection; nothing is cached here.
    """

    def __init__(
        self,
        roles: RoleRepository,
        assignments: RoleAssignmentRepository,
    ) -> None:
        """Initialize with role and assignment repositories.

        Args:
            roles: Role repository.
            assignments: Role assignment repository.
        """
        self._roles = roles
        self._assignments = assignments

    async def resolve(self, principal_id: int) -> ResolvedAuthority:
        """Compute the principal's resolved authority.

        Args:
            principal_id: The principal to resolve.

        Returns:
            Global and per-tenant privilege sets.
        """
        own = await self._assignments.list_for_principal(principal_id)

        tenant_ids = {a.tenant_id for a in own if a.tenant_id is not None}
        defaults = await self._assignments.list_tenant_defaults(tenant_ids) if tenant_ids else []

        rows = [*own, *defaults]
        role_ids = {a.role_id for a in rows}
        roles = await self._roles.get_many(role_ids) if role_ids else []

        authority = build_authority(principal_id, rows, {role.id: role for role in roles})
        logger.debug(
            "privileges_resolved",
            principal_id=principal_id,
            assignments=len(own),
            tenant_defaults=len(defaults),
            tenants=len(authority.tenant_ids),
        )
        return authority


class RequestAuthorityCache:
    """Memoizes resolution for the lifetime of one logical request.

    Create one per request and drop it when the request ends.
    """

    def __init__(self, resolver: PrivilegeResolver) -> None:
        """Initialize the cache.

        Args:
            resolver: Resolver used on cache misses.
        """
        self._resolver = resolver
        self._resolved: dict[int, ResolvedAuthority] = {}

    async def resolve(self, principal_id: int) -> ResolvedAuthority:
        """Resolve a principal, reusing an earlier result from this request."""
        authority = self._resolved.get(principal_id)
        if authority is None:
            authority = await self._resolver.resolve(principal_id)
            self._resolved[principal_id] = authority
        return authority


class CachedPrivilegeResolver:
    """Keeps resolved authorities across requests while they are current.

    Every lookup reads the assignment repository's modification timestamp
    for the principal; a cached entry is reused only when nothing affecting
    the principal has changed since it was computed. At most
    ``max_entries`` principals are kept; the least recently used is evicted.
    """

    def __init__(
        self,
        resolver: PrivilegeResolver,
        assignments: RoleAssignmentRepository,
        max_entries: int = 10_000,
    ) -> None:
        """Initialize the cache.

        Args:
            resolver: Resolver used on cache misses.
            assignments: Source of the modification timestamp.
            max_entries: Number of principals kept before eviction.
        """
        self._resolver = resolver
        self._assignments = assignments
        self._max_entries = max_entries
        self._entries: OrderedDict[int, tuple[datetime | None, ResolvedAuthority]] = (
            OrderedDict()
        )

    async def resolve(self, principal_id: int) -> ResolvedAuthority:
        """Resolve a principal, recomputing if its authority changed."""
        modified = await self._assignments.last_modified(principal_id)
        entry = self._entries.get(principal_id)
        if entry is not None and entry[0] == modified:
            self._entries.move_to_end(principal_id)
            return entry[1]

        if entry is not None:
            logger.debug("resolved_authority_invalidated", principal_id=principal_id)
        authority = await self._resolver.resolve(principal_id)
        self._entries[principal_id] = (modified, authority)
        self._entries.move_to_end(principal_id)
        while len(self._entries) > self._max_entries:
            self._entries.popitem(last=False)
        return authority

    def invalidate(self, principal_id: int | None = None) -> None:
        """Drop one cached principal, or everything when None."""
        if principal_id is None:
            self._entries.clear()
        else:
            self._entries.pop(principal_id, None)
