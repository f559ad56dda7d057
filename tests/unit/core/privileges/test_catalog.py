"""Tests for the built-in privilege catalog."""

from tenantguard.core.privileges import PRIVILEGE_INFO, ROLE_MANAGEMENT_PRIVILEGE, Privilege
from tenantguard.core.privileges.catalog import (
    PrivilegeGroup,
    privileges_in_group,
    visible_privileges,
)


def test_every_privilege_has_info() -> None:
    """Each built-in privilege carries display information."""
    assert set(PRIVILEGE_INFO) == set(Privilege)


def test_role_management_privilege() -> None:
    """Roles are managed with canManageBackend."""
    assert ROLE_MANAGEMENT_PRIVILEGE == "canManageBackend"


def test_hidden_privileges_are_not_listed() -> None:
    """Hidden privileges are left out of the visible listing."""
    visible = {info.privilege for info in visible_privileges()}
    assert Privilege.CAN_RECOVER_PASSWORD not in visible
    assert Privilege.READ_ORG_DATA in visible


def test_privileges_in_group() -> None:
    """Group listing returns plain identifiers."""
    names = privileges_in_group(PrivilegeGroup.ORGANIZATION)
    assert "readOrgData" in names
    assert "manageOrgData" in names
