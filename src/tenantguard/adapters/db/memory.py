"""In-memory implementations of the repository protocols.

This adapter is useful for:
- Unit testing without a real database
- Embedding the engine where no PostgreSQL is available
- Development without database setup

Every repository shares one ``MemoryStore``. Mutations take the store's
lock, so compare-and-swap and read-modify-write operations behave like
their row-locked SQL counterparts. Reads yield to the event loop once to
behave like real I/O under ``asyncio.gather``.
"""

from __future__ import annotations

import asyncio
from collections.abc import Collection
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime, timedelta
from typing import Any, Generic, TypeVar

from tenantguard.core.exceptions import DuplicateRoleName
from tenantguard.core.privileges import codec
from tenantguard.core.rbac.repository import PrivilegeChange
from tenantguard.core.rbac.types import Role, RoleAssignment, RoleVariant
from tenantguard.core.tenants.types import Tenant
from tenantguard.core.tokens.types import CredentialToken

GLOBAL_SCOPE = "global"


def _principal_scope(principal_id: int) -> str:
    return f"principal:{principal_id}"


def _tenant_scope(tenant_id: int) -> str:
    return f"tenant:{tenant_id}"


@dataclass
class MemoryStore:
    """Shared tables for the in-memory repositories."""

    roles: dict[int, Role] = field(default_factory=dict)
    assignments: dict[int, RoleAssignment] = field(default_factory=dict)
    tokens: dict[int, CredentialToken] = field(default_factory=dict)
    tenants: dict[int, Tenant] = field(default_factory=dict)
    password_hashes: dict[int, str] = field(default_factory=dict)
    watermarks: dict[str, datetime] = field(default_factory=dict)
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    _ids: dict[str, int] = field(default_factory=dict)
    _last_tick: datetime | None = None

    def next_id(self, table: str) -> int:
        """Allocate the next id for a table."""
        self._ids[table] = self._ids.get(table, 0) + 1
        return self._ids[table]

    def now(self) -> datetime:
        """Current time, strictly increasing across calls."""
        now = datetime.now(UTC)
        if self._last_tick is not None and now <= self._last_tick:
            now = self._last_tick + timedelta(microseconds=1)
        self._last_tick = now
        return now

    def bump(self, scope_key: str) -> None:
        """Record a change under a watermark scope."""
        self.watermarks[scope_key] = self.now()


class InMemoryRoleRepository:
    """Role repository over a MemoryStore."""

    def __init__(self, store: MemoryStore) -> None:
        """Initialize the repository."""
        self._store = store

    async def get_by_id(self, role_id: int) -> Role | None:
        """Get role by ID."""
        await asyncio.sleep(0)
        return self._store.roles.get(role_id)

    async def get_by_name(self, name: str) -> Role | None:
        """Get role by name."""
        await asyncio.sleep(0)
        return next((r for r in self._store.roles.values() if r.name == name), None)

    async def get_many(self, role_ids: Collection[int]) -> list[Role]:
        """Get every listed role that exists."""
        await asyncio.sleep(0)
        return [self._store.roles[i] for i in role_ids if i in self._store.roles]

    async def list_all(self, variant: RoleVariant | None = None) -> list[Role]:
        """List roles, optionally of one variant."""
        await asyncio.sleep(0)
        roles = sorted(self._store.roles.values(), key=lambda r: r.name)
        if variant is None:
            return roles
        return [r for r in roles if r.variant is variant]

    async def create(
        self,
        name: str,
        variant: RoleVariant,
        category: str | None,
        privileges: frozenset[str],
        removable: bool = True,
    ) -> Role:
        """Create a new role."""
        async with self._store.lock:
            if any(r.name == name for r in self._store.roles.values()):
                raise DuplicateRoleName(name)
            role = Role(
                id=self._store.next_id("roles"),
                name=name,
                variant=variant,
                category=category,
                privileges=codec.normalize(privileges),
                removable=removable,
                updated_at=self._store.now(),
            )
            self._store.roles[role.id] = role
            return role

    async def apply_privilege_change(self, role_id: int, change: PrivilegeChange) -> Role | None:
        """Rewrite a role's privileges under the store lock."""
        async with self._store.lock:
            role = self._store.roles.get(role_id)
            if role is None:
                return None
            privileges = codec.normalize(change(role.privileges))
            if privileges == role.privileges:
                return role
            role = replace(role, privileges=privileges, updated_at=self._store.now())
            self._store.roles[role_id] = role
            self._store.bump(GLOBAL_SCOPE)
            return role

    async def set_removable(self, role_id: int, removable: bool) -> Role | None:
        """Update the removable flag."""
        async with self._store.lock:
            role = self._store.roles.get(role_id)
            if role is None:
                return None
            role = replace(role, removable=removable, updated_at=self._store.now())
            self._store.roles[role_id] = role
            return role

    async def delete_if_removable(self, role_id: int) -> bool:
        """Delete the role and its assignments if it is removable."""
        async with self._store.lock:
            role = self._store.roles.get(role_id)
            if role is None or not role.removable:
                return False
            del self._store.roles[role_id]
            for assignment_id in [
                a.id for a in self._store.assignments.values() if a.role_id == role_id
            ]:
                del self._store.assignments[assignment_id]
            self._store.bump(GLOBAL_SCOPE)
            return True

    async def rename_privilege(self, old: str, new: str) -> int:
        """Rename a privilege in every role."""
        async with self._store.lock:
            changed = 0
            for role in list(self._store.roles.values()):
                if old not in role.privileges:
                    continue
                privileges = codec.decode(codec.rename(role.encoded_privileges, old, new))
                self._store.roles[role.id] = replace(
                    role, privileges=privileges, updated_at=self._store.now()
                )
                changed += 1
            if changed:
                self._store.bump(GLOBAL_SCOPE)
            return changed

    async def any_role_has_privilege(self, privilege: str) -> bool:
        """Check whether any role grants the privilege."""
        await asyncio.sleep(0)
        return any(privilege in r.privileges for r in self._store.roles.values())


class InMemoryRoleAssignmentRepository:
    """Role assignment repository over a MemoryStore."""

    def __init__(self, store: MemoryStore) -> None:
        """Initialize the repository."""
        self._store = store

    def _where(self, **criteria: Any) -> list[RoleAssignment]:
        return [
            a
            for a in self._store.assignments.values()
            if all(getattr(a, k) == v for k, v in criteria.items())
        ]

    async def list_for_principal(self, principal_id: int) -> list[RoleAssignment]:
        """Get the principal's own assignments."""
        await asyncio.sleep(0)
        return self._where(principal_id=principal_id)

    async def list_tenant_defaults(self, tenant_ids: Collection[int]) -> list[RoleAssignment]:
        """Get default assignments of the given tenants."""
        await asyncio.sleep(0)
        wanted = set(tenant_ids)
        return [
            a
            for a in self._store.assignments.values()
            if a.principal_id is None and a.tenant_id in wanted
        ]

    async def list_for_tenant(self, tenant_id: int) -> list[RoleAssignment]:
        """Get every assignment in a tenant."""
        await asyncio.sleep(0)
        return self._where(tenant_id=tenant_id)

    async def find(
        self, principal_id: int | None, role_id: int, tenant_id: int | None
    ) -> RoleAssignment | None:
        """Find an assignment by its full key."""
        await asyncio.sleep(0)
        matches = self._where(principal_id=principal_id, role_id=role_id, tenant_id=tenant_id)
        return matches[0] if matches else None

    async def get_by_id(self, assignment_id: int) -> RoleAssignment | None:
        """Get assignment by ID."""
        await asyncio.sleep(0)
        return self._store.assignments.get(assignment_id)

    async def create(
        self, principal_id: int | None, role_id: int, tenant_id: int | None
    ) -> RoleAssignment:
        """Create an assignment, returning the existing one for a duplicate key."""
        async with self._store.lock:
            existing = self._where(principal_id=principal_id, role_id=role_id, tenant_id=tenant_id)
            if existing:
                return existing[0]
            now = self._store.now()
            assignment = RoleAssignment(
                id=self._store.next_id("assignments"),
                principal_id=principal_id,
                role_id=role_id,
                tenant_id=tenant_id,
                created_at=now,
                updated_at=now,
            )
            self._store.assignments[assignment.id] = assignment
            self._bump_for(assignment)
            return assignment

    async def delete(self, assignment_id: int) -> bool:
        """Delete one assignment."""
        async with self._store.lock:
            assignment = self._store.assignments.pop(assignment_id, None)
            if assignment is None:
                return False
            self._bump_for(assignment)
            return True

    async def delete_for_principal(self, principal_id: int, tenant_id: int | None = None) -> int:
        """Delete a principal's assignments, optionally within one tenant."""
        async with self._store.lock:
            doomed = [
                a.id
                for a in self._where(principal_id=principal_id)
                if tenant_id is None or a.tenant_id == tenant_id
            ]
            for assignment_id in doomed:
                del self._store.assignments[assignment_id]
            if doomed:
                self._store.bump(_principal_scope(principal_id))
            return len(doomed)

    async def delete_for_role(self, role_id: int) -> int:
        """Delete every assignment of a role."""
        return await self._delete_matching(role_id=role_id)

    async def delete_for_tenant(self, tenant_id: int) -> int:
        """Delete every assignment in a tenant."""
        return await self._delete_matching(tenant_id=tenant_id)

    async def last_modified(self, principal_id: int) -> datetime | None:
        """Latest watermark among the scopes feeding the principal's authority."""
        await asyncio.sleep(0)
        keys = {GLOBAL_SCOPE, _principal_scope(principal_id)}
        keys.update(
            _tenant_scope(a.tenant_id)
            for a in self._where(principal_id=principal_id)
            if a.tenant_id is not None
        )
        stamps = [self._store.watermarks[k] for k in keys if k in self._store.watermarks]
        return max(stamps, default=None)

    async def _delete_matching(self, **criteria: Any) -> int:
        async with self._store.lock:
            doomed = [a.id for a in self._where(**criteria)]
            for assignment_id in doomed:
                del self._store.assignments[assignment_id]
            if doomed:
                self._store.bump(GLOBAL_SCOPE)
            return len(doomed)

    def _bump_for(self, assignment: RoleAssignment) -> None:
        if assignment.principal_id is not None:
            self._store.bump(_principal_scope(assignment.principal_id))
        elif assignment.tenant_id is not None:
            self._store.bump(_tenant_scope(assignment.tenant_id))


class InMemoryTokenRepository:
    """Credential token repository over a MemoryStore."""

    def __init__(self, store: MemoryStore) -> None:
        """Initialize the repository."""
        self._store = store

    async def get_by_principal_and_secret(
        self, principal_id: int, secret: str
    ) -> CredentialToken | None:
        """Find a token by principal id and exact secret."""
        await asyncio.sleep(0)
        return next(
            (
                t
                for t in self._store.tokens.values()
                if t.principal_id == principal_id and t.secret == secret
            ),
            None,
        )

    async def get_by_id(self, token_id: int) -> CredentialToken | None:
        """Get token by ID."""
        await asyncio.sleep(0)
        return self._store.tokens.get(token_id)

    async def create(
        self,
        principal_id: int,
        secret: str,
        expires_at: datetime,
        single_use: bool = True,
        privileges: frozenset[str] = frozenset(),
    ) -> CredentialToken:
        """Store a new token."""
        async with self._store.lock:
            token = CredentialToken(
                id=self._store.next_id("tokens"),
                principal_id=principal_id,
                secret=secret,
                expires_at=expires_at,
                single_use=single_use,
                privileges=codec.normalize(privileges),
                created_at=self._store.now(),
            )
            self._store.tokens[token.id] = token
            return token

    async def claim(self, token_id: int) -> bool:
        """Flip ``used`` to True unless it already is."""
        async with self._store.lock:
            token = self._store.tokens.get(token_id)
            if token is None or token.used:
                return False
            self._store.tokens[token_id] = token.model_copy(update={"used": True})
            return True


class InMemoryTenantRepository:
    """Tenant repository over a MemoryStore."""

    def __init__(self, store: MemoryStore) -> None:
        """Initialize the repository."""
        self._store = store

    async def get(self, tenant_id: int) -> Tenant | None:
        """Get tenant by ID."""
        await asyncio.sleep(0)
        return self._store.tenants.get(tenant_id)

    async def create(self, name: str, assigned_datastore_id: int | None = None) -> Tenant:
        """Create a new tenant."""
        async with self._store.lock:
            tenant = Tenant(
                id=self._store.next_id("tenants"),
                name=name,
                assigned_datastore_id=assigned_datastore_id,
                created_at=self._store.now(),
            )
            self._store.tenants[tenant.id] = tenant
            return tenant

    async def mark_schema_deleted(self, tenant_id: int) -> Tenant | None:
        """Set the schema_deleted flag."""
        return await self._set_flag(tenant_id, schema_deleted=True)

    async def mark_constraints_dropped(self, tenant_id: int) -> Tenant | None:
        """Set the constraints_dropped flag."""
        return await self._set_flag(tenant_id, constraints_dropped=True)

    async def delete(self, tenant_id: int) -> bool:
        """Delete the tenant and every assignment scoped to it."""
        async with self._store.lock:
            if self._store.tenants.pop(tenant_id, None) is None:
                return False
            for assignment_id in [
                a.id for a in self._store.assignments.values() if a.tenant_id == tenant_id
            ]:
                del self._store.assignments[assignment_id]
            self._store.bump(GLOBAL_SCOPE)
            return True

    async def _set_flag(self, tenant_id: int, **flags: bool) -> Tenant | None:
        async with self._store.lock:
            tenant = self._store.tenants.get(tenant_id)
            if tenant is None:
                return None
            tenant = tenant.model_copy(update=flags)
            self._store.tenants[tenant_id] = tenant
            return tenant


class InMemorySchemaManager:
    """Schema manager tracking tenant schemas per datastore.

    Attributes:
        schemas: Schema names present on each datastore.
        constraints: Constraint names per schema.
        fail_on: Operation names that raise on their next call.
    """

    def __init__(self) -> None:
        """Initialize with no schemas."""
        self.schemas: dict[int, set[str]] = {}
        self.constraints: dict[str, set[str]] = {}
        self.fail_on: set[str] = set()
        self.calls: list[str] = []

    def add_tenant_schema(
        self, tenant_id: int, datastore_id: int, constraints: Collection[str] = ()
    ) -> None:
        """Create the active schema of a tenant."""
        name = f"org_{tenant_id}"
        self.schemas.setdefault(datastore_id, set()).add(name)
        self.constraints[name] = set(constraints)

    def deleted_schema_name(self, tenant_id: int) -> str:
        """Name of the tenant's schema once marked deleted."""
        return f"deleted_{tenant_id}"

    async def mark_schema_deleted(self, tenant_id: int, datastore_id: int) -> str:
        """Rename ``org_N`` to ``deleted_N`` unless already renamed."""
        self._record("mark_schema_deleted")
        active = f"org_{tenant_id}"
        deleted = self.deleted_schema_name(tenant_id)
        present = self.schemas.setdefault(datastore_id, set())
        if active in present:
            present.discard(active)
            present.add(deleted)
            self.constraints[deleted] = self.constraints.pop(active, set())
        return deleted

    async def drop_schema_constraints(
        self, tenant_id: int, schema_name: str, datastore_id: int
    ) -> bool:
        """Drop every constraint recorded for the schema."""
        self._record("drop_schema_constraints")
        self.constraints[schema_name] = set()
        return True

    def _record(self, operation: str) -> None:
        self.calls.append(operation)
        if operation in self.fail_on:
            self.fail_on.discard(operation)
            raise ConnectionError(f"Datastore unavailable during {operation}")


class InMemoryCredentialStore:
    """Password hash storage over a MemoryStore."""

    def __init__(self, store: MemoryStore) -> None:
        """Initialize the store."""
        self._store = store

    def add_principal(self, principal_id: int, password_hash: str = "") -> None:
        """Register a principal that may have its password set."""
        self._store.password_hashes[principal_id] = password_hash

    def get_password_hash(self, principal_id: int) -> str | None:
        """Get a principal's stored hash."""
        return self._store.password_hashes.get(principal_id)

    async def set_password_hash(self, principal_id: int, password_hash: str) -> bool:
        """Replace a registered principal's hash."""
        async with self._store.lock:
            if principal_id not in self._store.password_hashes:
                return False
            self._store.password_hashes[principal_id] = password_hash
            return True


E = TypeVar("E")


class InMemoryEntityStore(Generic[E]):
    """Generic entity storage keyed by the entity's ``id`` attribute.

    Entities must expose ``id`` and ``tenant_id`` attributes.
    """

    def __init__(self, entities: Collection[E] = ()) -> None:
        """Initialize with optional entities."""
        self._entities: dict[int, E] = {getattr(e, "id"): e for e in entities}

    async def get(self, entity_id: int) -> E | None:
        """Get one entity."""
        return self._entities.get(entity_id)

    async def list(self, tenant_ids: Collection[int] | None = None) -> list[E]:
        """List entities, optionally limited to tenants."""
        entities = list(self._entities.values())
        if tenant_ids is None:
            return entities
        wanted = set(tenant_ids)
        return [e for e in entities if getattr(e, "tenant_id") in wanted]

    async def save(self, entity: E) -> E:
        """Insert or replace an entity."""
        self._entities[getattr(entity, "id")] = entity
        return entity

    async def delete(self, entity_id: int) -> bool:
        """Delete an entity."""
        return self._entities.pop(entity_id, None) is not None
