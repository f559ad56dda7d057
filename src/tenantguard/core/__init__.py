"""Core domain - Pure decision logic with storage behind protocols."""

from .exceptions import (
    AccessDenied,
    DuplicateRoleName,
    InvalidPrivilegeName,
    InvalidScopeForRoleVariant,
    InvalidTenantState,
    PrivilegeRenameConflict,
    RoleNotFound,
    StateConflictError,
    TenantGuardError,
    TenantNotFound,
    TenantRemovalError,
    TokenAlreadyUsed,
    TokenRejected,
    UnknownEntityType,
    ValidationError,
)

__all__ = [
    "AccessDenied",
    "DuplicateRoleName",
    "InvalidPrivilegeName",
    "InvalidScopeForRoleVariant",
    "InvalidTenantState",
    "PrivilegeRenameConflict",
    "RoleNotFound",
    "StateConflictError",
    "TenantGuardError",
    "TenantNotFound",
    "TenantRemovalError",
    "TokenAlreadyUsed",
    "TokenRejected",
    "UnknownEntityType",
    "ValidationError",
]
