"""Role and role assignment repositories backed by PostgreSQL."""

import logging
from collections.abc import Collection
from datetime import datetime
from typing import TYPE_CHECKING, Any

import asyncpg

from tenantguard.core.exceptions import DuplicateRoleName
from tenantguard.core.privileges import codec
from tenantguard.core.rbac.repository import PrivilegeChange
from tenantguard.core.rbac.types import Role, RoleAssignment, RoleVariant

if TYPE_CHECKING:
    from asyncpg import Connection

logger = logging.getLogger(__name__)

GLOBAL_SCOPE = "global"

_ROLE_COLUMNS = "id, name, variant, category, privileges, removable, updated_at"
_ASSIGNMENT_COLUMNS = "id, principal_id, role_id, tenant_id, created_at, updated_at"


def principal_scope(principal_id: int) -> str:
    """Watermark key for changes to one principal's own assignments."""
    return f"principal:{principal_id}"


def tenant_scope(tenant_id: int) -> str:
    """Watermark key for changes to one tenant's default assignments."""
    return f"tenant:{tenant_id}"


def affected_rows(status: str) -> int:
    """Row count from an asyncpg status string such as ``DELETE 3``."""
    try:
        return int(status.rsplit(" ", 1)[-1])
    except ValueError:
        return 0


async def bump_watermark(conn: "Connection", scope_key: str) -> None:
    """Record that something under ``scope_key`` changed just now."""
    await conn.execute(
        """
        INSERT INTO authority_watermarks (scope_key, modified_at)
        VALUES ($1, clock_timestamp())
        ON CONFLICT (scope_key) DO UPDATE SET modified_at = EXCLUDED.modified_at
        """,
        scope_key,
    )


class PostgresRoleRepository:
    """Repository for role operations."""

    def __init__(self, conn: "Connection") -> None:
        """Initialize the repository."""
        self._conn = conn

    async def get_by_id(self, role_id: int) -> Role | None:
        """Get role by ID."""
        row = await self._conn.fetchrow(
            f"SELECT {_ROLE_COLUMNS} FROM roles WHERE id = $1",
            role_id,
        )
        if not row:
            return None
        return self._row_to_role(row)

    async def get_by_name(self, name: str) -> Role | None:
        """Get role by name."""
        row = await self._conn.fetchrow(
            f"SELECT {_ROLE_COLUMNS} FROM roles WHERE name = $1",
            name,
        )
        if not row:
            return None
        return self._row_to_role(row)

    async def get_many(self, role_ids: Collection[int]) -> list[Role]:
        """Get every role whose id is listed."""
        rows = await self._conn.fetch(
            f"SELECT {_ROLE_COLUMNS} FROM roles WHERE id = ANY($1::bigint[])",
            list(role_ids),
        )
        return [self._row_to_role(row) for row in rows]

    async def list_all(self, variant: RoleVariant | None = None) -> list[Role]:
        """List roles, optionally of one variant."""
        if variant is None:
            rows = await self._conn.fetch(f"SELECT {_ROLE_COLUMNS} FROM roles ORDER BY name")
        else:
            rows = await self._conn.fetch(
                f"SELECT {_ROLE_COLUMNS} FROM roles WHERE variant = $1 ORDER BY name",
                variant.value,
            )
        return [self._row_to_role(row) for row in rows]

    async def create(
        self,
        name: str,
        variant: RoleVariant,
        category: str | None,
        privileges: frozenset[str],
        removable: bool = True,
    ) -> Role:
        """Create a new role."""
        try:
            row = await self._conn.fetchrow(
                f"""
                INSERT INTO roles (name, variant, category, privileges, removable)
                VALUES ($1, $2, $3, $4, $5)
                RETURNING {_ROLE_COLUMNS}
                """,
                name,
                variant.value,
                category,
                codec.encode(privileges),
                removable,
            )
        except asyncpg.UniqueViolationError:
            raise DuplicateRoleName(name) from None
        return self._row_to_role(row)

    async def apply_privilege_change(self, role_id: int, change: PrivilegeChange) -> Role | None:
        """Rewrite a role's privileges while holding its row lock."""
        async with self._conn.transaction():
            row = await self._conn.fetchrow(
                f"SELECT {_ROLE_COLUMNS} FROM roles WHERE id = $1 FOR UPDATE",
                role_id,
            )
            if not row:
                return None
            role = self._row_to_role(row)

            privileges = codec.normalize(change(role.privileges))
            if privileges == role.privileges:
                return role

            row = await self._conn.fetchrow(
                f"""
                UPDATE roles SET privileges = $2, updated_at = NOW()
                WHERE id = $1
                RETURNING {_ROLE_COLUMNS}
                """,
                role_id,
                codec.encode(privileges),
            )
            await bump_watermark(self._conn, GLOBAL_SCOPE)
        return self._row_to_role(row)

    async def set_removable(self, role_id: int, removable: bool) -> Role | None:
        """Update the removable flag."""
        row = await self._conn.fetchrow(
            f"""
            UPDATE roles SET removable = $2, updated_at = NOW()
            WHERE id = $1
            RETURNING {_ROLE_COLUMNS}
            """,
            role_id,
            removable,
        )
        if not row:
            return None
        return self._row_to_role(row)

    async def delete_if_removable(self, role_id: int) -> bool:
        """Delete the role if it is removable. Assignments cascade."""
        row = await self._conn.fetchrow(
            "DELETE FROM roles WHERE id = $1 AND removable RETURNING id",
            role_id,
        )
        if not row:
            return False
        await bump_watermark(self._conn, GLOBAL_SCOPE)
        return True

    async def rename_privilege(self, old: str, new: str) -> int:
        """Replace ``(old)`` with ``(new)`` in every role in one statement."""
        old_entry = f"({codec.validate_privilege_name(old)})"
        new_entry = f"({codec.validate_privilege_name(new)})"
        status = await self._conn.execute(
            """
            UPDATE roles SET privileges = replace(privileges, $1, $2), updated_at = NOW()
            WHERE strpos(privileges, $1) > 0
            """,
            old_entry,
            new_entry,
        )
        changed = affected_rows(status)
        if changed:
            await bump_watermark(self._conn, GLOBAL_SCOPE)
        logger.info(f"Renamed privilege {old} to {new} in {changed} roles")
        return changed

    async def any_role_has_privilege(self, privilege: str) -> bool:
        """Check whether any role grants the privilege."""
        result = await self._conn.fetchval(
            "SELECT EXISTS (SELECT 1 FROM roles WHERE strpos(privileges, $1) > 0)",
            f"({codec.validate_privilege_name(privilege)})",
        )
        return bool(result)

    def _row_to_role(self, row: dict[str, Any]) -> Role:
        """Convert database row to Role."""
        return Role(
            id=row["id"],
            name=row["name"],
            variant=RoleVariant(row["variant"]),
            category=row["category"],
            privileges=codec.decode(row["privileges"]),
            removable=row["removable"],
            updated_at=row["updated_at"],
        )


class PostgresRoleAssignmentRepository:
    """Repository for role assignment operations."""

    def __init__(self, conn: "Connection") -> None:
        """Initialize the repository."""
        self._conn = conn

    async def list_for_principal(self, principal_id: int) -> list[RoleAssignment]:
        """Get the principal's own assignments."""
        rows = await self._conn.fetch(
            f"SELECT {_ASSIGNMENT_COLUMNS} FROM role_assignments WHERE principal_id = $1",
            principal_id,
        )
        return [self._row_to_assignment(row) for row in rows]

    async def list_tenant_defaults(self, tenant_ids: Collection[int]) -> list[RoleAssignment]:
        """Get default assignments of the given tenants."""
        rows = await self._conn.fetch(
            f"""
            SELECT {_ASSIGNMENT_COLUMNS} FROM role_assignments
            WHERE principal_id IS NULL AND tenant_id = ANY($1::bigint[])
            """,
            list(tenant_ids),
        )
        return [self._row_to_assignment(row) for row in rows]

    async def list_for_tenant(self, tenant_id: int) -> list[RoleAssignment]:
        """Get every assignment in a tenant."""
        rows = await self._conn.fetch(
            f"""
            SELECT {_ASSIGNMENT_COLUMNS} FROM role_assignments
            WHERE tenant_id = $1 ORDER BY id
            """,
            tenant_id,
        )
        return [self._row_to_assignment(row) for row in rows]

    async def find(
        self, principal_id: int | None, role_id: int, tenant_id: int | None
    ) -> RoleAssignment | None:
        """Find an assignment by its full key."""
        row = await self._conn.fetchrow(
            f"""
            SELECT {_ASSIGNMENT_COLUMNS} FROM role_assignments
            WHERE principal_id IS NOT DISTINCT FROM $1
              AND role_id = $2
              AND tenant_id IS NOT DISTINCT FROM $3
            """,
            principal_id,
            role_id,
            tenant_id,
        )
        if not row:
            return None
        return self._row_to_assignment(row)

    async def get_by_id(self, assignment_id: int) -> RoleAssignment | None:
        """Get assignment by ID."""
        row = await self._conn.fetchrow(
            f"SELECT {_ASSIGNMENT_COLUMNS} FROM role_assignments WHERE id = $1",
            assignment_id,
        )
        if not row:
            return None
        return self._row_to_assignment(row)

    async def create(
        self, principal_id: int | None, role_id: int, tenant_id: int | None
    ) -> RoleAssignment:
        """Create an assignment, returning the existing row on conflict."""
        row = await self._conn.fetchrow(
            f"""
            INSERT INTO role_assignments (principal_id, role_id, tenant_id)
            VALUES ($1, $2, $3)
            ON CONFLICT DO NOTHING
            RETURNING {_ASSIGNMENT_COLUMNS}
            """,
            principal_id,
            role_id,
            tenant_id,
        )
        if not row:
            existing = await self.find(principal_id, role_id, tenant_id)
            if existing is None:
                raise RuntimeError("Failed to create role assignment")
            return existing

        await bump_watermark(self._conn, self._scope_of(principal_id, tenant_id))
        return self._row_to_assignment(row)

    async def delete(self, assignment_id: int) -> bool:
        """Delete one assignment."""
        row = await self._conn.fetchrow(
            "DELETE FROM role_assignments WHERE id = $1 RETURNING principal_id, tenant_id",
            assignment_id,
        )
        if not row:
            return False
        await bump_watermark(self._conn, self._scope_of(row["principal_id"], row["tenant_id"]))
        return True

    async def delete_for_principal(self, principal_id: int, tenant_id: int | None = None) -> int:
        """Delete a principal's assignments, optionally within one tenant."""
        if tenant_id is None:
            status = await self._conn.execute(
                "DELETE FROM role_assignments WHERE principal_id = $1",
                principal_id,
            )
        else:
            status = await self._conn.execute(
                "DELETE FROM role_assignments WHERE principal_id = $1 AND tenant_id = $2",
                principal_id,
                tenant_id,
            )
        deleted = affected_rows(status)
        if deleted:
            await bump_watermark(self._conn, principal_scope(principal_id))
        return deleted

    async def delete_for_role(self, role_id: int) -> int:
        """Delete every assignment of a role."""
        status = await self._conn.execute(
            "DELETE FROM role_assignments WHERE role_id = $1",
            role_id,
        )
        deleted = affected_rows(status)
        if deleted:
            await bump_watermark(self._conn, GLOBAL_SCOPE)
        return deleted

    async def delete_for_tenant(self, tenant_id: int) -> int:
        """Delete every assignment in a tenant."""
        status = await self._conn.execute(
            "DELETE FROM role_assignments WHERE tenant_id = $1",
            tenant_id,
        )
        deleted = affected_rows(status)
        if deleted:
            await bump_watermark(self._conn, GLOBAL_SCOPE)
        return deleted

    async def last_modified(self, principal_id: int) -> datetime | None:
        """Latest watermark among the scopes feeding the principal's authority."""
        result: datetime | None = await self._conn.fetchval(
            """
            SELECT max(modified_at) FROM authority_watermarks
            WHERE scope_key = $2
               OR scope_key = $3
               OR scope_key IN (
                   SELECT 'tenant:' || tenant_id FROM role_assignments
                   WHERE principal_id = $1 AND tenant_id IS NOT NULL
               )
            """,
            principal_id,
            GLOBAL_SCOPE,
            principal_scope(principal_id),
        )
        return result

    @staticmethod
    def _scope_of(principal_id: int | None, tenant_id: int | None) -> str:
        if principal_id is None and tenant_id is not None:
            return tenant_scope(tenant_id)
        return principal_scope(principal_id) if principal_id is not None else GLOBAL_SCOPE

    def _row_to_assignment(self, row: dict[str, Any]) -> RoleAssignment:
        """Convert database row to RoleAssignment."""
        return RoleAssignment(
            id=row["id"],
            principal_id=row["principal_id"],
            role_id=row["role_id"],
            tenant_id=row["tenant_id"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )
