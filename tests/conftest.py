"""Pytest configuration and shared fixtures."""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Iterable
from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock

import pytest

from tenantguard.adapters.db.memory import (
    InMemoryRoleAssignmentRepository,
    InMemoryRoleRepository,
    InMemorySchemaManager,
    InMemoryTenantRepository,
    InMemoryTokenRepository,
    MemoryStore,
)
from tenantguard.core.rbac.resolver import PrivilegeResolver
from tenantguard.core.rbac.role_service import RoleService
from tenantguard.core.rbac.types import Role, RoleVariant

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


class FakeClock:
    """Settable clock for token expiry tests."""

    def __init__(self, now: datetime = NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    """Clock fixed at NOW."""
    return FakeClock()


@pytest.fixture
def store() -> MemoryStore:
    """Empty in-memory store."""
    return MemoryStore()


@pytest.fixture
def roles(store: MemoryStore) -> InMemoryRoleRepository:
    """Role repository over the store."""
    return InMemoryRoleRepository(store)


@pytest.fixture
def assignments(store: MemoryStore) -> InMemoryRoleAssignmentRepository:
    """Assignment repository over the store."""
    return InMemoryRoleAssignmentRepository(store)


@pytest.fixture
def tenants(store: MemoryStore) -> InMemoryTenantRepository:
    """Tenant repository over the store."""
    return InMemoryTenantRepository(store)


@pytest.fixture
def tokens(store: MemoryStore) -> InMemoryTokenRepository:
    """Token repository over the store."""
    return InMemoryTokenRepository(store)


@pytest.fixture
def schemas() -> InMemorySchemaManager:
    """Schema manager with no schemas."""
    return InMemorySchemaManager()


@pytest.fixture
def resolver(
    roles: InMemoryRoleRepository, assignments: InMemoryRoleAssignmentRepository
) -> PrivilegeResolver:
    """Uncached privilege resolver."""
    return PrivilegeResolver(roles, assignments)


@pytest.fixture
def role_service(
    roles: InMemoryRoleRepository,
    assignments: InMemoryRoleAssignmentRepository,
    resolver: PrivilegeResolver,
) -> RoleService:
    """Role service over the in-memory store."""
    return RoleService(roles, assignments, resolver)


RoleFactory = Callable[..., Awaitable[Role]]


@pytest.fixture
def make_role(role_service: RoleService) -> RoleFactory:
    """Create roles through the service as a trusted caller."""

    async def _make(
        name: str,
        variant: RoleVariant,
        privileges: Iterable[str] = (),
        removable: bool = True,
    ) -> Role:
        return await role_service.create_role(name, None, variant, privileges, removable=removable)

    return _make


@pytest.fixture
def mock_conn() -> MagicMock:
    """Create mock database connection with a usable transaction()."""
    conn = MagicMock()
    transaction = MagicMock()
    transaction.__aenter__ = AsyncMock(return_value=transaction)
    transaction.__aexit__ = AsyncMock(return_value=False)
    conn.transaction = MagicMock(return_value=transaction)
    return conn
