"""Domain-specific exceptions.

All exceptions in the tenantguard system inherit from TenantGuardError,
making it easy to catch all system errors while still being able
to handle specific error types.

The hierarchy follows the four kinds of failure the engine reports:

- Validation errors: malformed input, rejected before anything is written.
- Authorization denials: a well-formed request lacking privilege.
- State conflicts: the request contradicts the current stored state.
- Resumable failures: a multi-step sequence stopped part way through.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from tenantguard.core.tenants.types import RemovalStep
    from tenantguard.core.tokens.types import TokenOutcome


class TenantGuardError(Exception):
    """Base exception for all tenantguard errors.

    All custom exceptions in the system should inherit from this class
    to enable catching all tenantguard-specific errors with a single except clause.
    """

    pass


class ValidationError(TenantGuardError):
    """Input rejected synchronously; nothing was applied."""

    pass


class InvalidPrivilegeName(ValidationError):
    """A privilege identifier or encoded privilege set is malformed.

    Privilege identifiers must be non-empty and must not contain
    parenthesis characters, since parentheses delimit entries in the
    encoded representation.
    """

    pass


class InvalidScopeForRoleVariant(ValidationError):
    """Role assignment scope does not match the role's variant.

    Raised when:
    - An organization-scoped role is assigned without a tenant
    - A global role is assigned with a tenant
    """

    def __init__(self, role_name: str, variant: str, tenant_id: int | None) -> None:
        """Initialize InvalidScopeForRoleVariant.

        Args:
            role_name: Name of the role being assigned.
            variant: The role's variant value.
            tenant_id: The tenant id the assignment carried.
        """
        scope = "global scope" if tenant_id is None else f"tenant {tenant_id}"
        super().__init__(f"Role '{role_name}' ({variant}) cannot be assigned in {scope}")
        self.role_name = role_name
        self.variant = variant
        self.tenant_id = tenant_id


class AccessDenied(TenantGuardError):
    """A well-formed request lacks the required privilege.

    This is deliberately distinct from any "not found" condition so that
    callers can surface an explicit 403-style response.

    Attributes:
        principal_id: The principal that was denied.
        privilege: The privilege that was required.
        tenant_id: Tenant context of the check, if any.
        reason: Short machine-readable reason.
    """

    def __init__(
        self,
        principal_id: int | None,
        privilege: str | None,
        tenant_id: int | None = None,
        reason: str = "missing_privilege",
    ) -> None:
        """Initialize AccessDenied.

        Args:
            principal_id: The principal that was denied.
            privilege: The privilege that was required.
            tenant_id: Tenant context of the check, if any.
            reason: Short machine-readable reason.
        """
        message = f"Principal {principal_id} denied: {reason}"
        if privilege:
            message += f" (requires '{privilege}'"
            message += f" in tenant {tenant_id})" if tenant_id is not None else ")"
        super().__init__(message)
        self.principal_id = principal_id
        self.privilege = privilege
        self.tenant_id = tenant_id
        self.reason = reason


class StateConflictError(TenantGuardError):
    """The request contradicts the current stored state."""

    pass


class DuplicateRoleName(StateConflictError):
    """A role with this name already exists (names share one namespace)."""

    def __init__(self, name: str) -> None:
        """Initialize DuplicateRoleName.

        Args:
            name: The conflicting role name.
        """
        super().__init__(f"Role '{name}' already exists")
        self.name = name


class RoleNotFound(StateConflictError):
    """Referenced role does not exist."""

    def __init__(self, role: int | str) -> None:
        """Initialize RoleNotFound.

        Args:
            role: Role id or name that could not be found.
        """
        super().__init__(f"Role {role!r} not found")
        self.role = role


class UnknownEntityType(StateConflictError):
    """No access policy is registered for the entity type."""

    pass


class PrivilegeRenameConflict(StateConflictError):
    """The target name of a privilege rename is already in use."""

    pass


class TokenAlreadyUsed(StateConflictError):
    """Another redemption claimed the token first."""

    pass


class TokenRejected(TenantGuardError):
    """A presented token did not validate.

    Attributes:
        outcome: The validation outcome explaining the rejection.
    """

    def __init__(self, outcome: TokenOutcome) -> None:
        """Initialize TokenRejected.

        Args:
            outcome: The non-valid validation outcome.
        """
        super().__init__(outcome.message)
        self.outcome = outcome


class TenantNotFound(StateConflictError):
    """Referenced tenant does not exist."""

    def __init__(self, tenant_id: int) -> None:
        """Initialize TenantNotFound.

        Args:
            tenant_id: The missing tenant's id.
        """
        super().__init__(f"Tenant {tenant_id} not found")
        self.tenant_id = tenant_id


class InvalidTenantState(StateConflictError):
    """A removal step was invoked before the step it depends on completed."""

    pass


class TenantRemovalError(TenantGuardError):
    """A tenant removal step failed.

    Carries enough context to resume: which step failed and which steps
    were already committed. Re-running the removal picks up from the
    persisted state, since every step is idempotent.

    Attributes:
        tenant_id: The tenant being removed.
        step: The step that failed.
        completed_steps: Steps committed before the failure.
    """

    def __init__(
        self,
        tenant_id: int,
        step: RemovalStep,
        completed_steps: Sequence[RemovalStep] = (),
    ) -> None:
        """Initialize TenantRemovalError.

        Args:
            tenant_id: The tenant being removed.
            step: The step that failed.
            completed_steps: Steps committed before the failure.
        """
        done = ", ".join(s.value for s in completed_steps) or "none"
        super().__init__(
            f"Tenant {tenant_id} removal failed at step '{step.value}' (completed: {done})"
        )
        self.tenant_id = tenant_id
        self.step = step
        self.completed_steps = tuple(completed_steps)
