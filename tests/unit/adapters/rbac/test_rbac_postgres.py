"""Tests for PostgreSQL role and role assignment repositories."""

from datetime import UTC, datetime
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import asyncpg
import pytest

from tenantguard.adapters.rbac import (
    PostgresRoleAssignmentRepository,
    PostgresRoleRepository,
)
from tenantguard.adapters.rbac.postgres import affected_rows
from tenantguard.core.exceptions import DuplicateRoleName
from tenantguard.core.rbac.types import RoleVariant

NOW = datetime(2026, 1, 1, tzinfo=UTC)


def _role_row(**overrides: Any) -> dict[str, Any]:
    row = {
        "id": 1,
        "name": "admin",
        "variant": "ORG",
        "category": None,
        "privileges": "(manageOrgData)(readOrgData)",
        "removable": True,
        "updated_at": NOW,
    }
    row.update(overrides)
    return row


def _assignment_row(**overrides: Any) -> dict[str, Any]:
    row = {
        "id": 1,
        "principal_id": 7,
        "role_id": 1,
        "tenant_id": 10,
        "created_at": NOW,
        "updated_at": NOW,
    }
    row.update(overrides)
    return row


def _watermark_keys(mock_conn: MagicMock) -> list[str]:
    return [
        call.args[1]
        for call in mock_conn.execute.await_args_list
        if "authority_watermarks" in call.args[0]
    ]


@pytest.fixture
def role_repo(mock_conn: MagicMock) -> PostgresRoleRepository:
    """Create role repository with mock connection."""
    mock_conn.execute = AsyncMock(return_value="INSERT 0 1")
    return PostgresRoleRepository(mock_conn)


@pytest.fixture
def assignment_repo(mock_conn: MagicMock) -> PostgresRoleAssignmentRepository:
    """Create assignment repository with mock connection."""
    mock_conn.execute = AsyncMock(return_value="INSERT 0 1")
    return PostgresRoleAssignmentRepository(mock_conn)


class TestAffectedRows:
    """Tests for status parsing."""

    def test_parses_counts(self) -> None:
        """Reads the trailing row count."""
        assert affected_rows("DELETE 3") == 3
        assert affected_rows("UPDATE 0") == 0
        assert affected_rows("INSERT 0 1") == 1

    def test_unparseable(self) -> None:
        """Non-numeric statuses count as zero."""
        assert affected_rows("CREATE SCHEMA") == 0


class TestRoleRepository:
    """Tests for PostgresRoleRepository."""

    async def test_get_by_id_decodes_privileges(
        self, role_repo: PostgresRoleRepository, mock_conn: MagicMock
    ) -> None:
        """Rows map to roles with decoded privileges."""
        mock_conn.fetchrow = AsyncMock(return_value=_role_row())

        role = await role_repo.get_by_id(1)

        assert role is not None
        assert role.variant is RoleVariant.ORGANIZATION
        assert role.privileges == frozenset({"manageOrgData", "readOrgData"})

    async def test_get_by_id_not_found(
        self, role_repo: PostgresRoleRepository, mock_conn: MagicMock
    ) -> None:
        """Returns None when role not found."""
        mock_conn.fetchrow = AsyncMock(return_value=None)

        assert await role_repo.get_by_id(404) is None

    async def test_create_encodes_privileges(
        self, role_repo: PostgresRoleRepository, mock_conn: MagicMock
    ) -> None:
        """Privileges are stored in sorted encoded form."""
        mock_conn.fetchrow = AsyncMock(return_value=_role_row())

        await role_repo.create(
            "admin", RoleVariant.ORGANIZATION, None, frozenset({"readOrgData", "manageOrgData"})
        )

        args = mock_conn.fetchrow.await_args.args
        assert args[1:] == (
            "admin",
            "ORG",
            None,
            "(manageOrgData)(readOrgData)",
            True,
        )

    async def test_create_duplicate(
        self, role_repo: PostgresRoleRepository, mock_conn: MagicMock
    ) -> None:
        """Unique violations become DuplicateRoleName."""
        mock_conn.fetchrow = AsyncMock(side_effect=asyncpg.UniqueViolationError("duplicate"))

        with pytest.raises(DuplicateRoleName):
            await role_repo.create("admin", RoleVariant.GLOBAL, None, frozenset())

    async def test_privilege_change_locks_and_bumps(
        self, role_repo: PostgresRoleRepository, mock_conn: MagicMock
    ) -> None:
        """Changes read FOR UPDATE inside a transaction and bump the global watermark."""
        mock_conn.fetchrow = AsyncMock(
            side_effect=[
                _role_row(privileges="(a)"),
                _role_row(privileges="(a)(b)"),
            ]
        )

        role = await role_repo.apply_privilege_change(1, lambda current: current | {"b"})

        assert role is not None
        assert role.privileges == frozenset({"a", "b"})
        mock_conn.transaction.assert_called_once()
        select_sql = mock_conn.fetchrow.await_args_list[0].args[0]
        assert "FOR UPDATE" in select_sql
        assert mock_conn.fetchrow.await_args_list[1].args[2] == "(a)(b)"
        assert _watermark_keys(mock_conn) == ["global"]

    async def test_privilege_change_noop(
        self, role_repo: PostgresRoleRepository, mock_conn: MagicMock
    ) -> None:
        """An unchanged set writes nothing."""
        mock_conn.fetchrow = AsyncMock(return_value=_role_row(privileges="(a)"))

        await role_repo.apply_privilege_change(1, lambda current: current | {"a"})

        assert mock_conn.fetchrow.await_count == 1
        assert _watermark_keys(mock_conn) == []

    async def test_rename_uses_anchored_entries(
        self, role_repo: PostgresRoleRepository, mock_conn: MagicMock
    ) -> None:
        """Rename replaces parenthesized entries in one statement."""
        mock_conn.execute = AsyncMock(side_effect=["UPDATE 2", "INSERT 0 1"])

        changed = await role_repo.rename_privilege("read", "view")

        assert changed == 2
        update = mock_conn.execute.await_args_list[0]
        assert update.args[1:] == ("(read)", "(view)")
        assert _watermark_keys(mock_conn) == ["global"]

    async def test_rename_nothing_changed(
        self, role_repo: PostgresRoleRepository, mock_conn: MagicMock
    ) -> None:
        """No matching roles means no watermark bump."""
        mock_conn.execute = AsyncMock(return_value="UPDATE 0")

        assert await role_repo.rename_privilege("read", "view") == 0
        assert mock_conn.execute.await_count == 1

    async def test_any_role_has_privilege(
        self, role_repo: PostgresRoleRepository, mock_conn: MagicMock
    ) -> None:
        """Membership is checked against the anchored entry."""
        mock_conn.fetchval = AsyncMock(return_value=True)

        assert await role_repo.any_role_has_privilege("view") is True
        assert mock_conn.fetchval.await_args.args[1] == "(view)"

    async def test_delete_if_removable(
        self, role_repo: PostgresRoleRepository, mock_conn: MagicMock
    ) -> None:
        """Only removable roles are deleted."""
        mock_conn.fetchrow = AsyncMock(return_value=None)
        assert await role_repo.delete_if_removable(1) is False
        assert "AND removable" in mock_conn.fetchrow.await_args.args[0]

        mock_conn.fetchrow = AsyncMock(return_value={"id": 1})
        assert await role_repo.delete_if_removable(1) is True
        assert _watermark_keys(mock_conn) == ["global"]


class TestRoleAssignmentRepository:
    """Tests for PostgresRoleAssignmentRepository."""

    async def test_create_bumps_principal_scope(
        self, assignment_repo: PostgresRoleAssignmentRepository, mock_conn: MagicMock
    ) -> None:
        """Principal assignments bump the principal watermark."""
        mock_conn.fetchrow = AsyncMock(return_value=_assignment_row())

        assignment = await assignment_repo.create(7, 1, 10)

        assert assignment.principal_id == 7
        assert _watermark_keys(mock_conn) == ["principal:7"]

    async def test_create_default_bumps_tenant_scope(
        self, assignment_repo: PostgresRoleAssignmentRepository, mock_conn: MagicMock
    ) -> None:
        """Default assignments bump the tenant watermark."""
        mock_conn.fetchrow = AsyncMock(return_value=_assignment_row(principal_id=None))

        await assignment_repo.create(None, 1, 10)

        assert _watermark_keys(mock_conn) == ["tenant:10"]

    async def test_create_conflict_returns_existing(
        self, assignment_repo: PostgresRoleAssignmentRepository, mock_conn: MagicMock
    ) -> None:
        """A duplicate key returns the stored row without a bump."""
        mock_conn.fetchrow = AsyncMock(side_effect=[None, _assignment_row(id=5)])

        assignment = await assignment_repo.create(7, 1, 10)

        assert assignment.id == 5
        assert _watermark_keys(mock_conn) == []

    async def test_find_handles_null_scopes(
        self, assignment_repo: PostgresRoleAssignmentRepository, mock_conn: MagicMock
    ) -> None:
        """Lookups compare nullable columns with IS NOT DISTINCT FROM."""
        mock_conn.fetchrow = AsyncMock(return_value=None)

        assert await assignment_repo.find(7, 1, None) is None
        assert "IS NOT DISTINCT FROM $3" in mock_conn.fetchrow.await_args.args[0]

    async def test_list_tenant_defaults(
        self, assignment_repo: PostgresRoleAssignmentRepository, mock_conn: MagicMock
    ) -> None:
        """Default rows are fetched for the listed tenants."""
        mock_conn.fetch = AsyncMock(return_value=[_assignment_row(principal_id=None)])

        defaults = await assignment_repo.list_tenant_defaults({10})

        assert defaults[0].principal_id is None
        assert mock_conn.fetch.await_args.args[1] == [10]

    async def test_delete_bumps_row_scope(
        self, assignment_repo: PostgresRoleAssignmentRepository, mock_conn: MagicMock
    ) -> None:
        """Deleting uses the deleted row's scope for the bump."""
        mock_conn.fetchrow = AsyncMock(return_value={"principal_id": None, "tenant_id": 10})

        assert await assignment_repo.delete(1) is True
        assert _watermark_keys(mock_conn) == ["tenant:10"]

    async def test_delete_missing(
        self, assignment_repo: PostgresRoleAssignmentRepository, mock_conn: MagicMock
    ) -> None:
        """Deleting a missing row returns False."""
        mock_conn.fetchrow = AsyncMock(return_value=None)

        assert await assignment_repo.delete(1) is False

    async def test_delete_for_tenant_bumps_global(
        self, assignment_repo: PostgresRoleAssignmentRepository, mock_conn: MagicMock
    ) -> None:
        """Bulk tenant deletes bump the global watermark."""
        mock_conn.execute = AsyncMock(side_effect=["DELETE 4", "INSERT 0 1"])

        assert await assignment_repo.delete_for_tenant(10) == 4
        assert _watermark_keys(mock_conn) == ["global"]

    async def test_delete_for_principal_in_tenant(
        self, assignment_repo: PostgresRoleAssignmentRepository, mock_conn: MagicMock
    ) -> None:
        """Principal deletes may be limited to one tenant."""
        mock_conn.execute = AsyncMock(side_effect=["DELETE 1", "INSERT 0 1"])

        assert await assignment_repo.delete_for_principal(7, 10) == 1
        assert mock_conn.execute.await_args_list[0].args[1:] == (7, 10)
        assert _watermark_keys(mock_conn) == ["principal:7"]

    async def test_last_modified(
        self, assignment_repo: PostgresRoleAssignmentRepository, mock_conn: MagicMock
    ) -> None:
        """The watermark query covers global and principal scopes."""
        mock_conn.fetchval = AsyncMock(return_value=NOW)

        assert await assignment_repo.last_modified(7) == NOW
        assert mock_conn.fetchval.await_args.args[1:] == (7, "global", "principal:7")
