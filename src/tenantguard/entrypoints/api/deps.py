"""Dependency injection and application lifespan management."""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import TYPE_CHECKING, Annotated, Any

import structlog
from fastapi import Depends, HTTPException, Request

from tenantguard.adapters.db.app_db import AppDatabase
from tenantguard.adapters.rbac.postgres import (
    PostgresRoleAssignmentRepository,
    PostgresRoleRepository,
)
from tenantguard.adapters.tenants.postgres import PostgresTenantRepository
from tenantguard.config import settings
from tenantguard.core.rbac.policy import AccessGate, AccessPolicyRegistry, Operation
from tenantguard.core.rbac.resolver import CachedPrivilegeResolver, PrivilegeResolver

if TYPE_CHECKING:
    from fastapi import FastAPI

logger = structlog.get_logger()


def build_access_gate(db: AppDatabase) -> AccessGate:
    """Wire an access gate over the application database pool."""
    if db.pool is None:
        raise RuntimeError("Database pool not initialized")
    roles = PostgresRoleRepository(db.pool)  # type: ignore[arg-type]
    assignments = PostgresRoleAssignmentRepository(db.pool)  # type: ignore[arg-type]
    resolver = CachedPrivilegeResolver(
        PrivilegeResolver(roles, assignments),
        assignments,
        max_entries=settings.authority_cache_size,
    )
    return AccessGate(
        resolver,
        AccessPolicyRegistry.with_defaults(),
        PostgresTenantRepository(db.pool),  # type: ignore[arg-type]
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan - setup and teardown."""
    app_db = AppDatabase(settings.database_url)
    await app_db.connect()
    app.state.app_db = app_db
    app.state.access_gate = build_access_gate(app_db)
    logger.info("access_gate_ready")

    yield

    await app_db.close()


@dataclass
class PrincipalContext:
    """Principal and tenant a request acts as.

    Populated by upstream authentication, which stores ``user_id`` and,
    for tenant-scoped requests, ``tenant_id`` on ``request.state``.
    """

    principal_id: int
    tenant_id: int | None


def get_access_gate(request: Request) -> AccessGate:
    """Get the application's access gate."""
    gate: AccessGate | None = getattr(request.app.state, "access_gate", None)
    if gate is None:
        raise RuntimeError("Access gate not configured")
    return gate


def get_principal_context(request: Request) -> PrincipalContext:
    """Read the authenticated principal from the request state.

    Raises:
        HTTPException: 401 if no principal was authenticated.
    """
    principal_id = getattr(request.state, "user_id", None)
    if principal_id is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return PrincipalContext(
        principal_id=int(principal_id),
        tenant_id=getattr(request.state, "tenant_id", None),
    )


def require_privilege(entity_type: str, operation: Operation) -> Callable[..., Any]:
    """Dependency to require access to an entity type.

    Usage:
        @router.delete("/roles/{role_id}")
        async def delete_role(
            ctx: Annotated[PrincipalContext, Depends(require_privilege("role", Operation.WRITE))],
        ):
            ...

    Denials propagate as AccessDenied and render as 403 through the
    registered exception handler.
    """

    async def privilege_checker(
        ctx: Annotated[PrincipalContext, Depends(get_principal_context)],
        gate: Annotated[AccessGate, Depends(get_access_gate)],
    ) -> PrincipalContext:
        await gate.authorize(ctx.principal_id, entity_type, operation, ctx.tenant_id)
        logger.debug(
            "privilege_check_passed",
            principal_id=ctx.principal_id,
            entity_type=entity_type,
            operation=operation.value,
            tenant_id=ctx.tenant_id,
        )
        return ctx

    return privilege_checker
