"""Tests for RoleService."""

import pytest

from tenantguard.adapters.db.memory import (
    InMemoryRoleAssignmentRepository,
    InMemoryRoleRepository,
)
from tenantguard.core.exceptions import (
    AccessDenied,
    DuplicateRoleName,
    InvalidPrivilegeName,
    InvalidScopeForRoleVariant,
    PrivilegeRenameConflict,
    RoleNotFound,
    ValidationError,
)
from tenantguard.core.privileges import Privilege
from tenantguard.core.rbac.resolver import PrivilegeResolver
from tenantguard.core.rbac.role_service import RoleService
from tenantguard.core.rbac.types import RoleVariant


@pytest.fixture
async def role_admin(role_service: RoleService, make_role) -> int:
    """Principal 100 holds canManageBackend globally."""
    role = await make_role("backend-admin", RoleVariant.GLOBAL, [Privilege.CAN_MANAGE_BACKEND])
    await role_service.assign_role(100, role.id, None)
    return 100


@pytest.fixture
async def tenant_admin(role_service: RoleService, make_role) -> int:
    """Principal 200 may manage assignments in tenant 10 only."""
    role = await make_role("org-admin", RoleVariant.ORGANIZATION, [Privilege.MANAGE_USER_ROLES])
    await role_service.assign_role(200, role.id, 10)
    return 200


class TestCreateRole:
    """Tests for RoleService.create_role."""

    @pytest.mark.asyncio
    async def test_creates_with_normalized_privileges(self, role_service: RoleService) -> None:
        """Enum and string privileges are stored as identifiers."""
        role = await role_service.create_role(
            "auditor", "Compliance", RoleVariant.GLOBAL, [Privilege.READ_ORG_DATA, "custom"]
        )

        assert role.id is not None
        assert role.category == "Compliance"
        assert role.privileges == frozenset({"readOrgData", "custom"})
        assert role.removable is True

    @pytest.mark.asyncio
    async def test_duplicate_name_across_variants(self, role_service: RoleService) -> None:
        """Names are unique regardless of variant."""
        await role_service.create_role("admin", None, RoleVariant.GLOBAL)

        with pytest.raises(DuplicateRoleName):
            await role_service.create_role("admin", None, RoleVariant.ORGANIZATION)

    @pytest.mark.asyncio
    async def test_blank_name_rejected(self, role_service: RoleService) -> None:
        """A role needs a name."""
        with pytest.raises(ValidationError):
            await role_service.create_role("  ", None, RoleVariant.GLOBAL)

    @pytest.mark.asyncio
    async def test_malformed_privilege_rejected(
        self, role_service: RoleService, roles: InMemoryRoleRepository
    ) -> None:
        """Malformed identifiers are rejected before anything is stored."""
        with pytest.raises(InvalidPrivilegeName):
            await role_service.create_role("bad", None, RoleVariant.GLOBAL, ["a(b"])

        assert await roles.get_by_name("bad") is None

    @pytest.mark.asyncio
    async def test_actor_without_privilege(self, role_service: RoleService) -> None:
        """Actors need canManageBackend globally."""
        with pytest.raises(AccessDenied):
            await role_service.create_role("x", None, RoleVariant.GLOBAL, actor_id=555)

    @pytest.mark.asyncio
    async def test_actor_with_privilege(self, role_service: RoleService, role_admin: int) -> None:
        """Global role managers may create roles."""
        role = await role_service.create_role("x", None, RoleVariant.GLOBAL, actor_id=role_admin)
        assert role.name == "x"


class TestCreateOrUpdateRole:
    """Tests for system role seeding."""

    @pytest.mark.asyncio
    async def test_creates_missing_role(self, role_service: RoleService) -> None:
        """Seeded roles default to non-removable."""
        role = await role_service.create_or_update_role("system", RoleVariant.GLOBAL, ["a"])

        assert role.removable is False
        assert role.privileges == frozenset({"a"})

    @pytest.mark.asyncio
    async def test_replaces_privileges(self, role_service: RoleService) -> None:
        """Seeding again replaces the privilege set."""
        first = await role_service.create_or_update_role("system", RoleVariant.GLOBAL, ["a"])
        second = await role_service.create_or_update_role("system", RoleVariant.GLOBAL, ["b"])

        assert second.id == first.id
        assert second.privileges == frozenset({"b"})

    @pytest.mark.asyncio
    async def test_variant_mismatch(self, role_service: RoleService) -> None:
        """A name held by another variant cannot be seeded."""
        await role_service.create_or_update_role("system", RoleVariant.GLOBAL, ["a"])

        with pytest.raises(DuplicateRoleName):
            await role_service.create_or_update_role("system", RoleVariant.ORGANIZATION, ["a"])


class TestPrivilegeGrants:
    """Tests for grant_privileges and revoke_privileges."""

    @pytest.mark.asyncio
    async def test_grant_adds(self, role_service: RoleService, make_role) -> None:
        """New privileges are added to the existing set."""
        role = await make_role("r", RoleVariant.GLOBAL, ["a"])

        updated = await role_service.grant_privileges(role.id, ["b", Privilege.READ_ORG_DATA])

        assert updated.privileges == frozenset({"a", "b", "readOrgData"})

    @pytest.mark.asyncio
    async def test_grant_existing_is_noop(self, role_service: RoleService, make_role) -> None:
        """Granting held privileges writes nothing."""
        role = await make_role("r", RoleVariant.GLOBAL, ["a"])

        updated = await role_service.grant_privileges(role.id, ["a"])

        assert updated == role

    @pytest.mark.asyncio
    async def test_revoke_removes(self, role_service: RoleService, make_role) -> None:
        """Revoked privileges disappear; absent ones are ignored."""
        role = await make_role("r", RoleVariant.GLOBAL, ["a", "b"])

        updated = await role_service.revoke_privileges(role.id, ["a", "zzz"])

        assert updated.privileges == frozenset({"b"})

    @pytest.mark.asyncio
    async def test_unknown_role(self, role_service: RoleService) -> None:
        """Changing a missing role raises RoleNotFound."""
        with pytest.raises(RoleNotFound):
            await role_service.grant_privileges(404, ["a"])
        with pytest.raises(RoleNotFound):
            await role_service.revoke_privileges(404, ["a"])

    @pytest.mark.asyncio
    async def test_remove_from_all_roles(
        self, role_service: RoleService, make_role, roles: InMemoryRoleRepository
    ) -> None:
        """Retired privileges are stripped from every role holding them."""
        first = await make_role("one", RoleVariant.GLOBAL, ["old", "keep"])
        second = await make_role("two", RoleVariant.ORGANIZATION, ["old"])
        await make_role("three", RoleVariant.GLOBAL, ["keep"])

        changed = await role_service.remove_privileges_from_all_roles(["old"])

        assert changed == 2
        assert (await roles.get_by_id(first.id)).privileges == frozenset({"keep"})
        assert (await roles.get_by_id(second.id)).privileges == frozenset()


class TestDeleteRole:
    """Tests for guarded role deletion."""

    @pytest.mark.asyncio
    async def test_deletes_removable_role(
        self,
        role_service: RoleService,
        make_role,
        role_admin: int,
        roles: InMemoryRoleRepository,
        assignments: InMemoryRoleAssignmentRepository,
    ) -> None:
        """A removable role and its assignments are deleted."""
        role = await make_role("temp", RoleVariant.ORGANIZATION, ["a"])
        await role_service.assign_role(1, role.id, 10)

        assert await role_service.delete_role(role.id, role_admin) is True

        assert await roles.get_by_id(role.id) is None
        assert await assignments.list_for_principal(1) == []

    @pytest.mark.asyncio
    async def test_non_removable_role_survives(
        self,
        role_service: RoleService,
        make_role,
        role_admin: int,
        roles: InMemoryRoleRepository,
    ) -> None:
        """System roles are never deleted."""
        role = await make_role("system", RoleVariant.GLOBAL, ["a"], removable=False)

        assert await role_service.delete_role(role.id, role_admin) is False
        assert await roles.get_by_id(role.id) is not None

    @pytest.mark.asyncio
    async def test_requester_without_privilege(
        self, role_service: RoleService, make_role, roles: InMemoryRoleRepository
    ) -> None:
        """Without canManageBackend the role stays and False is returned."""
        role = await make_role("temp", RoleVariant.GLOBAL, ["a"])

        assert await role_service.delete_role(role.id, 555) is False
        assert await roles.get_by_id(role.id) is not None

    @pytest.mark.asyncio
    async def test_tenant_scoped_privilege_is_not_enough(
        self, role_service: RoleService, make_role, roles: InMemoryRoleRepository
    ) -> None:
        """canManageBackend held only in a tenant does not allow deletion."""
        scoped = await make_role(
            "scoped", RoleVariant.GLOBAL_ORGANIZATION, [Privilege.CAN_MANAGE_BACKEND]
        )
        await role_service.assign_role(7, scoped.id, 10)
        role = await make_role("temp", RoleVariant.GLOBAL, ["a"])

        assert await role_service.delete_role(role.id, 7) is False

    @pytest.mark.asyncio
    async def test_missing_role(self, role_service: RoleService, role_admin: int) -> None:
        """Deleting an unknown role returns False."""
        assert await role_service.delete_role(404, role_admin) is False


class TestAssignRole:
    """Tests for role assignment."""

    @pytest.mark.asyncio
    async def test_scope_must_fit_variant(self, role_service: RoleService, make_role) -> None:
        """GLOBAL roles take no tenant; ORG roles require one."""
        global_role = await make_role("g", RoleVariant.GLOBAL)
        org_role = await make_role("o", RoleVariant.ORGANIZATION)

        with pytest.raises(InvalidScopeForRoleVariant):
            await role_service.assign_role(1, global_role.id, 10)
        with pytest.raises(InvalidScopeForRoleVariant):
            await role_service.assign_role(1, org_role.id, None)

    @pytest.mark.asyncio
    async def test_unknown_role(self, role_service: RoleService) -> None:
        """Assigning a missing role raises RoleNotFound."""
        with pytest.raises(RoleNotFound):
            await role_service.assign_role(1, 404, None)

    @pytest.mark.asyncio
    async def test_default_assignment_requires_tenant(
        self, role_service: RoleService, make_role
    ) -> None:
        """A row with neither principal nor tenant is refused."""
        role = await make_role("d", RoleVariant.GLOBAL_ORGANIZATION)

        with pytest.raises(ValidationError):
            await role_service.assign_role(None, role.id, None)

    @pytest.mark.asyncio
    async def test_duplicate_returns_existing(self, role_service: RoleService, make_role) -> None:
        """Assigning the same key twice yields one row."""
        role = await make_role("o", RoleVariant.ORGANIZATION)

        first = await role_service.assign_role(1, role.id, 10)
        second = await role_service.assign_role(1, role.id, 10)

        assert first.id == second.id

    @pytest.mark.asyncio
    async def test_tenant_admin_limited_to_own_tenant(
        self, role_service: RoleService, make_role, tenant_admin: int
    ) -> None:
        """manageUserRoles in tenant 10 does not reach tenant 11."""
        role = await make_role("member", RoleVariant.ORGANIZATION)

        await role_service.assign_role(1, role.id, 10, actor_id=tenant_admin)
        with pytest.raises(AccessDenied):
            await role_service.assign_role(1, role.id, 11, actor_id=tenant_admin)

    @pytest.mark.asyncio
    async def test_revoke_assignment(
        self, role_service: RoleService, make_role, tenant_admin: int
    ) -> None:
        """Revocation is gated by the assignment's own tenant."""
        role = await make_role("member", RoleVariant.ORGANIZATION)
        inside = await role_service.assign_role(1, role.id, 10)
        outside = await role_service.assign_role(1, role.id, 11)

        assert await role_service.revoke_assignment(inside.id, actor_id=tenant_admin) is True
        assert await role_service.revoke_assignment(inside.id, actor_id=tenant_admin) is False
        with pytest.raises(AccessDenied):
            await role_service.revoke_assignment(outside.id, actor_id=tenant_admin)

    @pytest.mark.asyncio
    async def test_unassign_principal_in_tenant(
        self,
        role_service: RoleService,
        make_role,
        assignments: InMemoryRoleAssignmentRepository,
    ) -> None:
        """Only the named tenant's rows are removed."""
        role = await make_role("member", RoleVariant.ORGANIZATION)
        await role_service.assign_role(1, role.id, 10)
        await role_service.assign_role(1, role.id, 11)

        removed = await role_service.unassign_principal(1, 10)

        assert removed == 1
        remaining = await assignments.list_for_principal(1)
        assert [a.tenant_id for a in remaining] == [11]


class TestTenantDefaultRoles:
    """Tests for set_tenant_default_roles."""

    @pytest.mark.asyncio
    async def test_synchronizes_defaults(self, role_service: RoleService, make_role) -> None:
        """Named roles are added and others removed."""
        viewer = await make_role("viewer", RoleVariant.GLOBAL_ORGANIZATION)
        editor = await make_role("editor", RoleVariant.ORGANIZATION)
        await make_role("guest", RoleVariant.ORGANIZATION)

        await role_service.set_tenant_default_roles(10, ["viewer", "guest"])
        defaults = await role_service.set_tenant_default_roles(10, ["viewer", "editor"])

        assert sorted(a.role_id for a in defaults) == sorted([viewer.id, editor.id])
        assert all(a.principal_id is None and a.tenant_id == 10 for a in defaults)

    @pytest.mark.asyncio
    async def test_global_role_cannot_be_default(
        self, role_service: RoleService, make_role
    ) -> None:
        """GLOBAL roles are never held in a tenant."""
        await make_role("root", RoleVariant.GLOBAL)

        with pytest.raises(InvalidScopeForRoleVariant):
            await role_service.set_tenant_default_roles(10, ["root"])

    @pytest.mark.asyncio
    async def test_unknown_role_name(self, role_service: RoleService) -> None:
        """Unknown names raise RoleNotFound."""
        with pytest.raises(RoleNotFound):
            await role_service.set_tenant_default_roles(10, ["nobody"])


class TestRenamePrivilege:
    """Tests for privilege renaming."""

    @pytest.mark.asyncio
    async def test_renames_in_every_role(
        self, role_service: RoleService, make_role, roles: InMemoryRoleRepository
    ) -> None:
        """Every role holding the old name gets the new one."""
        first = await make_role("one", RoleVariant.GLOBAL, ["read", "other"])
        second = await make_role("two", RoleVariant.ORGANIZATION, ["read"])
        third = await make_role("three", RoleVariant.GLOBAL, ["other"])

        changed = await role_service.rename_privilege("read", "view")

        assert changed == 2
        assert (await roles.get_by_id(first.id)).privileges == frozenset({"view", "other"})
        assert (await roles.get_by_id(second.id)).privileges == frozenset({"view"})
        assert (await roles.get_by_id(third.id)).privileges == frozenset({"other"})

    @pytest.mark.asyncio
    async def test_partial_names_untouched(
        self, role_service: RoleService, make_role, roles: InMemoryRoleRepository
    ) -> None:
        """A privilege containing the old name as a substring is kept."""
        role = await make_role("r", RoleVariant.GLOBAL, ["read", "readAll"])

        await role_service.rename_privilege("read", "view")

        assert (await roles.get_by_id(role.id)).privileges == frozenset({"view", "readAll"})

    @pytest.mark.asyncio
    async def test_conflict_when_new_name_in_use(
        self, role_service: RoleService, make_role, roles: InMemoryRoleRepository
    ) -> None:
        """Renaming onto an existing privilege is refused."""
        role = await make_role("r", RoleVariant.GLOBAL, ["read"])
        await make_role("s", RoleVariant.GLOBAL, ["view"])

        with pytest.raises(PrivilegeRenameConflict):
            await role_service.rename_privilege("read", "view")

        assert (await roles.get_by_id(role.id)).privileges == frozenset({"read"})

    @pytest.mark.asyncio
    async def test_same_name_is_noop(self, role_service: RoleService, make_role) -> None:
        """Renaming to the same name changes nothing."""
        await make_role("r", RoleVariant.GLOBAL, ["read"])
        assert await role_service.rename_privilege("read", "read") == 0

    @pytest.mark.asyncio
    async def test_invalid_new_name(self, role_service: RoleService) -> None:
        """The new name must be a valid identifier."""
        with pytest.raises(InvalidPrivilegeName):
            await role_service.rename_privilege("read", "re(ad")

    @pytest.mark.asyncio
    async def test_rename_visible_to_resolver(
        self, role_service: RoleService, make_role, resolver: PrivilegeResolver
    ) -> None:
        """Resolved authority reflects the renamed privilege."""
        role = await make_role("r", RoleVariant.GLOBAL, ["read"])
        await role_service.assign_role(1, role.id, None)

        await role_service.rename_privilege("read", "view")

        assert (await resolver.resolve(1)).global_privileges == frozenset({"view"})
