"""Entity access policies and the authorization gate.

Every protected entity type declares the privilege required to read it and
the privilege required to write it. The gate evaluates those requirements
against a principal's resolved authority before any storage access happens:

    allowed = required in global_privileges
              or (tenant_id is not None and required in tenant_privileges[tenant_id])

Denials raise AccessDenied. They are never reported as "not found" and
never turned into empty results.
"""

from __future__ import annotations

from collections.abc import Collection, Iterable
from dataclasses import dataclass
from enum import Enum
from typing import Generic, Protocol, TypeVar

import structlog

from tenantguard.core.exceptions import AccessDenied, UnknownEntityType
from tenantguard.core.privileges import Privilege, privilege_name
from tenantguard.core.rbac.resolver import AuthorityResolver
from tenantguard.core.rbac.types import ResolvedAuthority
from tenantguard.core.tenants.repository import TenantRepository

logger = structlog.get_logger()


class Operation(str, Enum):
    """Kinds of access."""

    READ = "read"
    WRITE = "write"


class Unrestricted(Enum):
    """Marker for a requirement that every principal satisfies."""

    UNRESTRICTED = "unrestricted"

    def __repr__(self) -> str:
        return "UNRESTRICTED"


UNRESTRICTED = Unrestricted.UNRESTRICTED

RequiredPrivilege = str | Unrestricted


class AccessDecision(str, Enum):
    """Result of an authorization check."""

    ALLOWED = "allowed"
    DENIED = "denied"


@dataclass(frozen=True)
class EntityAccessPolicy:
    """Privileges required to read and write one entity type.

    Attributes:
        entity_type: Identifier of the protected entity type.
        required_read_privilege: Privilege needed to read, or UNRESTRICTED.
        required_write_privilege: Privilege needed to write, or UNRESTRICTED.
        tenant_scoped: Whether rows carry a tenant id that participates in scoping.
    """

    entity_type: str
    required_read_privilege: RequiredPrivilege
    required_write_privilege: RequiredPrivilege
    tenant_scoped: bool = True

    def __post_init__(self) -> None:
        for attr in ("required_read_privilege", "required_write_privilege"):
            value = getattr(self, attr)
            if not isinstance(value, Unrestricted):
                object.__setattr__(self, attr, privilege_name(value))

    def required_privilege(self, operation: Operation) -> RequiredPrivilege:
        """Get the requirement for an operation."""
        if operation is Operation.READ:
            return self.required_read_privilege
        return self.required_write_privilege


def evaluate(
    authority: ResolvedAuthority,
    required: RequiredPrivilege,
    tenant_id: int | None,
) -> AccessDecision:
    """Evaluate one requirement against a resolved authority.

    Global privileges apply in every tenant; tenant privileges apply only
    when the target row belongs to that tenant.
    """
    if isinstance(required, Unrestricted):
        return AccessDecision.ALLOWED
    if authority.has_global_or_tenant_privilege(required, tenant_id):
        return AccessDecision.ALLOWED
    return AccessDecision.DENIED


def default_policies() -> list[EntityAccessPolicy]:
    """Policies for the entities managed by this engine."""
    return [
        EntityAccessPolicy(
            "role",
            Privilege.CAN_READ_BACKEND,
            Privilege.CAN_MANAGE_BACKEND,
            tenant_scoped=False,
        ),
        EntityAccessPolicy(
            "role_assignment",
            Privilege.READ_USER_ROLE,
            Privilege.MANAGE_USER_ROLES,
        ),
        EntityAccessPolicy(
            "organization",
            Privilege.READ_ORG_DATA,
            Privilege.MANAGE_ORG_DATA,
        ),
        EntityAccessPolicy(
            "user",
            Privilege.READ_USER_DATA,
            Privilege.MANAGE_USER_DATA,
        ),
        EntityAccessPolicy(
            "credential_token",
            Privilege.CAN_READ_BACKEND,
            Privilege.CAN_MANAGE_BACKEND,
            tenant_scoped=False,
        ),
    ]


class AccessPolicyRegistry:
    """Lookup table of entity access policies, one per entity type."""

    def __init__(self, policies: Iterable[EntityAccessPolicy] = ()) -> None:
        """Initialize the registry.

        Args:
            policies: Policies to register.
        """
        self._policies: dict[str, EntityAccessPolicy] = {}
        for policy in policies:
            self.register(policy)

    @classmethod
    def with_defaults(cls) -> AccessPolicyRegistry:
        """Create a registry holding the built-in entity policies."""
        return cls(default_policies())

    def register(self, policy: EntityAccessPolicy) -> None:
        """Register or replace the policy for an entity type."""
        self._policies[policy.entity_type] = policy

    def get(self, entity_type: str) -> EntityAccessPolicy:
        """Get the policy for an entity type.

        Raises:
            UnknownEntityType: If nothing is registered for the type.
        """
        try:
            return self._policies[entity_type]
        except KeyError:
            raise UnknownEntityType(f"No access policy for entity type '{entity_type}'") from None

    def __contains__(self, entity_type: object) -> bool:
        return entity_type in self._policies

    def entity_types(self) -> list[str]:
        """Registered entity types, sorted."""
        return sorted(self._policies)


class AccessGate:
    """Authorization gate in front of every protected read and write."""

    def __init__(
        self,
        resolver: AuthorityResolver,
        policies: AccessPolicyRegistry,
        tenants: TenantRepository | None = None,
    ) -> None:
        """Initialize the gate.

        Args:
            resolver: Resolves principals to their authority.
            policies: Entity access policies.
            tenants: When given, tenants pending removal deny all tenant-scoped access.
        """
        self._resolver = resolver
        self._policies = policies
        self._tenants = tenants

    @property
    def policies(self) -> AccessPolicyRegistry:
        """The policy registry used by this gate."""
        return self._policies

    async def resolve(self, principal_id: int) -> ResolvedAuthority:
        """Resolve a principal through the gate's resolver."""
        return await self._resolver.resolve(principal_id)

    async def check(
        self,
        principal_id: int,
        entity_type: str,
        operation: Operation,
        tenant_id: int | None = None,
    ) -> AccessDecision:
        """Decide whether the principal may perform the operation.

        Args:
            principal_id: The acting principal.
            entity_type: The protected entity type.
            operation: READ or WRITE.
            tenant_id: Tenant of the target row, if it has one.

        Returns:
            ALLOWED or DENIED.
        """
        decision, _, _ = await self._decide(principal_id, entity_type, operation, tenant_id)
        return decision

    async def authorize(
        self,
        principal_id: int,
        entity_type: str,
        operation: Operation,
        tenant_id: int | None = None,
    ) -> None:
        """Like check, but raise on denial.

        Raises:
            AccessDenied: If the principal lacks the required privilege, or the
                target tenant is pending removal.
            UnknownEntityType: If no policy exists for the entity type.
        """
        decision, required, reason = await self._decide(
            principal_id, entity_type, operation, tenant_id
        )
        if decision is AccessDecision.DENIED:
            raise AccessDenied(
                principal_id,
                None if isinstance(required, Unrestricted) else required,
                tenant_id,
                reason,
            )

    async def is_pending_removal(self, tenant_id: int) -> bool:
        """Whether a tenant has started removal but still exists."""
        if self._tenants is None:
            return False
        tenant = await self._tenants.get(tenant_id)
        return tenant is not None and tenant.pending_removal

    async def _decide(
        self,
        principal_id: int,
        entity_type: str,
        operation: Operation,
        tenant_id: int | None,
    ) -> tuple[AccessDecision, RequiredPrivilege, str]:
        policy = self._policies.get(entity_type)
        required = policy.required_privilege(operation)

        if tenant_id is not None and await self.is_pending_removal(tenant_id):
            logger.info(
                "access_denied",
                principal_id=principal_id,
                entity_type=entity_type,
                operation=operation.value,
                tenant_id=tenant_id,
                reason="tenant_pending_removal",
            )
            return AccessDecision.DENIED, required, "tenant_pending_removal"

        if isinstance(required, Unrestricted):
            return AccessDecision.ALLOWED, required, ""

        authority = await self._resolver.resolve(principal_id)
        decision = evaluate(authority, required, tenant_id)
        if decision is AccessDecision.DENIED:
            logger.info(
                "access_denied",
                principal_id=principal_id,
                entity_type=entity_type,
                operation=operation.value,
                tenant_id=tenant_id,
                required=required,
            )
        return decision, required, "missing_privilege"


class TenantScoped(Protocol):
    """Entity carrying an optional tenant id."""

    @property
    def tenant_id(self) -> int | None: ...


E = TypeVar("E", bound=TenantScoped)


class EntityStore(Protocol[E]):
    """Minimal storage interface wrapped by SecureRepository."""

    async def get(self, entity_id: int) -> E | None:
        """Get one entity."""
        ...

    async def list(self, tenant_ids: Collection[int] | None = None) -> list[E]:
        """List entities, optionally limited to tenants. None means all."""
        ...

    async def save(self, entity: E) -> E:
        """Insert or update an entity."""
        ...

    async def delete(self, entity_id: int) -> bool:
        """Delete an entity."""
        ...


class SecureRepository(Generic[E]):
    """Entity store wrapper that authorizes every call for one principal."""

    def __init__(
        self,
        gate: AccessGate,
        store: EntityStore[E],
        entity_type: str,
        principal_id: int,
    ) -> None:
        """Initialize the wrapper.

        Args:
            gate: Authorization gate.
            store: Unchecked entity storage.
            entity_type: Policy key for the stored entities.
            principal_id: Principal every call is authorized for.
        """
        self._gate = gate
        self._store = store
        self._entity_type = entity_type
        self._principal_id = principal_id

    def _required(self, operation: Operation) -> RequiredPrivilege:
        return self._gate.policies.get(self._entity_type).required_privilege(operation)

    async def _require_any_scope(self, operation: Operation) -> None:
        required = self._required(operation)
        if isinstance(required, Unrestricted):
            return
        authority = await self._gate.resolve(self._principal_id)
        if not authority.has_global_privilege(required) and not (
            authority.tenant_ids_with_privilege(required)
        ):
            raise AccessDenied(self._principal_id, required)

    async def _without_pending(self, entities: list[E]) -> list[E]:
        pending: dict[int, bool] = {}
        visible = []
        for entity in entities:
            tenant_id = entity.tenant_id
            if tenant_id is not None:
                if tenant_id not in pending:
                    pending[tenant_id] = await self._gate.is_pending_removal(tenant_id)
                if pending[tenant_id]:
                    continue
            visible.append(entity)
        return visible

    async def get(self, entity_id: int) -> E | None:
        """Get one entity if the principal may read it.

        The principal must hold the read privilege in some scope before
        storage is touched; the row's own tenant is checked after loading.

        Raises:
            AccessDenied: If the principal may not read the entity.
        """
        await self._require_any_scope(Operation.READ)

        entity = await self._store.get(entity_id)
        if entity is None:
            return None
        await self._gate.authorize(
            self._principal_id, self._entity_type, Operation.READ, entity.tenant_id
        )
        return entity

    async def list(self, tenant_id: int | None = None) -> list[E]:
        """List entities the principal may read.

        With a tenant id, lists that tenant only. Without one, a principal
        holding the privilege globally sees everything; otherwise the listing
        covers the tenants where it holds the privilege. Rows of tenants
        pending removal are never listed.

        Raises:
            AccessDenied: If the principal may not read in any requested scope.
        """
        if tenant_id is not None:
            await self._gate.authorize(
                self._principal_id, self._entity_type, Operation.READ, tenant_id
            )
            return await self._store.list([tenant_id])

        required = self._required(Operation.READ)
        if isinstance(required, Unrestricted):
            return await self._without_pending(await self._store.list(None))

        authority = await self._gate.resolve(self._principal_id)
        if authority.has_global_privilege(required):
            return await self._without_pending(await self._store.list(None))

        tenant_ids = [
            t
            for t in sorted(authority.tenant_ids_with_privilege(required))
            if not await self._gate.is_pending_removal(t)
        ]
        if not tenant_ids:
            raise AccessDenied(self._principal_id, required)
        return await self._store.list(tenant_ids)

    async def save(self, entity: E) -> E:
        """Save an entity if the principal may write in its tenant.

        Raises:
            AccessDenied: If the principal may not write the entity.
        """
        await self._gate.authorize(
            self._principal_id, self._entity_type, Operation.WRITE, entity.tenant_id
        )
        return await self._store.save(entity)

    async def delete(self, entity_id: int) -> bool:
        """Delete an entity if the principal may write in its tenant.

        The principal must hold the write privilege in some scope before
        storage is touched.

        Raises:
            AccessDenied: If the principal may not write the entity.
        """
        await self._require_any_scope(Operation.WRITE)

        entity = await self._store.get(entity_id)
        if entity is None:
            return False
        await self._gate.authorize(
            self._principal_id, self._entity_type, Operation.WRITE, entity.tenant_id
        )
        return await self._store.delete(entity_id)
