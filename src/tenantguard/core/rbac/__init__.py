"""RBAC core domain."""

from tenantguard.core.rbac.policy import (
    UNRESTRICTED,
    AccessDecision,
    AccessGate,
    AccessPolicyRegistry,
    EntityAccessPolicy,
    Operation,
    SecureRepository,
)
from tenantguard.core.rbac.repository import RoleAssignmentRepository, RoleRepository
from tenantguard.core.rbac.resolver import (
    AuthorityResolver,
    CachedPrivilegeResolver,
    PrivilegeResolver,
    RequestAuthorityCache,
)
from tenantguard.core.rbac.role_service import RoleService
from tenantguard.core.rbac.types import (
    ResolvedAuthority,
    Role,
    RoleAssignment,
    RoleVariant,
    validate_assignment_scope,
)

__all__ = [
    "UNRESTRICTED",
    "AccessDecision",
    "AccessGate",
    "AccessPolicyRegistry",
    "AuthorityResolver",
    "CachedPrivilegeResolver",
    "EntityAccessPolicy",
    "Operation",
    "PrivilegeResolver",
    "RequestAuthorityCache",
    "ResolvedAuthority",
    "Role",
    "RoleAssignment",
    "RoleAssignmentRepository",
    "RoleRepository",
    "RoleService",
    "RoleVariant",
    "SecureRepository",
    "validate_assignment_scope",
]
