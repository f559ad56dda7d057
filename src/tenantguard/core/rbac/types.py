"""RBAC domain types."""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from tenantguard.core.exceptions import InvalidScopeForRoleVariant
from tenantguard.core.privileges import codec


class RoleVariant(str, Enum):
    """Role scope variants.

    Values match the discriminator stored in the roles table.
    """

    GLOBAL = "GLOBAL"
    ORGANIZATION = "ORG"
    GLOBAL_ORGANIZATION = "GLOBAL_ORG"


def validate_assignment_scope(role: "Role", tenant_id: int | None) -> None:
    """Check that a role may be assigned in the given scope.

    - GLOBAL roles only in global scope (no tenant)
    - ORGANIZATION roles only within a tenant
    - GLOBAL_ORGANIZATION roles in either

    Raises:
        InvalidScopeForRoleVariant: If the scope does not fit the variant.
    """
    if role.variant is RoleVariant.ORGANIZATION and tenant_id is None:
        raise InvalidScopeForRoleVariant(role.name, role.variant.value, tenant_id)
    if role.variant is RoleVariant.GLOBAL and tenant_id is not None:
        raise InvalidScopeForRoleVariant(role.name, role.variant.value, tenant_id)


@dataclass
class Role:
    """A named bundle of privileges."""

    id: int
    name: str
    variant: RoleVariant
    category: str | None
    privileges: frozenset[str]
    removable: bool
    updated_at: datetime

    @property
    def encoded_privileges(self) -> str:
        """Privileges in their stored ``(P1)(P2)`` form."""
        return codec.encode(self.privileges)

    def has_privilege(self, privilege: str | Enum) -> bool:
        """Check whether the role grants a privilege."""
        return codec.privilege_name(privilege) in self.privileges


@dataclass
class RoleAssignment:
    """Binding of a role to a principal, optionally within a tenant.

    A ``principal_id`` of None makes the assignment a tenant default that
    applies to every principal active in ``tenant_id``.
    """

    id: int
    principal_id: int | None
    role_id: int
    tenant_id: int | None
    created_at: datetime
    updated_at: datetime

    @property
    def is_tenant_default(self) -> bool:
        """Whether this assignment applies to every member of the tenant."""
        return self.principal_id is None

    @property
    def is_global(self) -> bool:
        """Whether this assignment applies regardless of tenant."""
        return self.tenant_id is None


@dataclass(frozen=True)
class ResolvedAuthority:
    """Effective privileges of a principal at a point in time.

    Global privileges always apply regardless of tenant context; the
    privileges for tenant T are ``global_privileges | tenant_privileges[T]``.
    """

    principal_id: int
    global_privileges: frozenset[str] = frozenset()
    tenant_privileges: Mapping[int, frozenset[str]] = field(default_factory=dict)
    global_roles: frozenset[str] = frozenset()
    tenant_roles: Mapping[int, frozenset[str]] = field(default_factory=dict)

    @property
    def tenant_ids(self) -> frozenset[int]:
        """Tenants in which the principal holds any assignment."""
        return frozenset(self.tenant_privileges) | frozenset(self.tenant_roles)

    def privileges_for(self, tenant_id: int | None) -> frozenset[str]:
        """Effective privileges in a tenant context (or globally for None)."""
        if tenant_id is None:
            return self.global_privileges
        return self.global_privileges | self.tenant_privileges.get(tenant_id, frozenset())

    def has_global_privilege(self, privilege: str | Enum) -> bool:
        """Check a privilege in the global bucket only."""
        return codec.privilege_name(privilege) in self.global_privileges

    def has_tenant_privilege(self, privilege: str | Enum, tenant_id: int) -> bool:
        """Check a privilege in one tenant's bucket only."""
        granted = self.tenant_privileges.get(tenant_id, frozenset())
        return codec.privilege_name(privilege) in granted

    def has_global_or_tenant_privilege(self, privilege: str | Enum, tenant_id: int | None) -> bool:
        """Check a privilege globally or, when given, within a tenant."""
        if self.has_global_privilege(privilege):
            return True
        return tenant_id is not None and self.has_tenant_privilege(privilege, tenant_id)

    def tenant_ids_with_privilege(self, privilege: str | Enum) -> frozenset[int]:
        """Tenants whose own bucket grants the privilege."""
        name = codec.privilege_name(privilege)
        return frozenset(
            tenant_id for tenant_id, granted in self.tenant_privileges.items() if name in granted
        )


def build_authority(
    principal_id: int,
    assignments: Iterable[RoleAssignment],
    roles: Mapping[int, Role],
) -> ResolvedAuthority:
    """Union role privileges into global and per-tenant buckets.

    Assignments referencing roles missing from ``roles`` are skipped.
    """
    global_privileges: set[str] = set()
    global_roles: set[str] = set()
    tenant_privileges: dict[int, set[str]] = {}
    tenant_roles: dict[int, set[str]] = {}

    for assignment in assignments:
        role = roles.get(assignment.role_id)
        if role is None:
            continue
        if assignment.tenant_id is None:
            global_privileges.update(role.privileges)
            global_roles.add(role.name)
        else:
            tenant_privileges.setdefault(assignment.tenant_id, set()).update(role.privileges)
            tenant_roles.setdefault(assignment.tenant_id, set()).add(role.name)

    return ResolvedAuthority(
        principal_id=principal_id,
        global_privileges=frozenset(global_privileges),
        tenant_privileges={k: frozenset(v) for k, v in tenant_privileges.items()},
        global_roles=frozenset(global_roles),
        tenant_roles={k: frozenset(v) for k, v in tenant_roles.items()},
    )
