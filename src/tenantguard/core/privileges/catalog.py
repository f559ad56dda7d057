"""Built-in privilege catalog.

Privileges are opaque strings; these are the ones the engine itself checks
plus the standard set seeded into system roles. Groups exist for display only
and never affect evaluation.
"""

from dataclasses import dataclass
from enum import Enum


class PrivilegeGroup(str, Enum):
    """Display categories for privileges."""

    GLOBAL_SETTINGS = "global_settings"
    ORGANIZATION = "organization"
    USER = "user"
    USER_ROLE = "user_role"
    SUPPORT = "support"
    HISTORY = "history"
    TOKEN = "token"
    BACKEND = "backend"


class Privilege(str, Enum):
    """Built-in privileges."""

    IS_USER = "isUser"
    CAN_ACCESS_GLOBAL_SETTINGS = "canAccessGlobalSettings"
    READ_ORG_DATA = "readOrgData"
    MANAGE_ORG_DATA = "manageOrgData"
    CAN_CHANGE_ENTITY_ORGANIZATION = "canChangeEntityOrganization"
    CAN_IMPORT_DATA = "canImportData"
    CAN_RECOVER_PASSWORD = "canRecoverPassword"
    CAN_SEE_USER_EMAIL = "canSeeUserEmail"
    CAN_IMPERSONATE = "canImpersonate"
    CAN_RESET_PASSWORD = "canResetPassword"
    CAN_VERIFY_ACCOUNT = "canVerifyAccount"
    READ_USER_DATA = "readUserData"
    MANAGE_USER_DATA = "manageUserData"
    READ_USER_ROLE = "readUserRole"
    MANAGE_USER_ROLES = "manageUserRoles"
    CAN_READ_SUPPORT_DATA = "canReadSupportData"
    CAN_MANAGE_SUPPORT_DATA = "canManageSupportData"
    READ_ORG_AUDIT = "readOrgAudit"
    CAN_REFRESH_TOKENS = "canRefreshTokens"
    CAN_READ_BACKEND = "canReadBackend"
    CAN_MANAGE_BACKEND = "canManageBackend"


@dataclass(frozen=True)
class PrivilegeInfo:
    """Display metadata for a privilege."""

    privilege: Privilege
    group: PrivilegeGroup
    label: str
    hidden: bool = False


PRIVILEGE_INFO: dict[Privilege, PrivilegeInfo] = {
    info.privilege: info
    for info in (
        PrivilegeInfo(Privilege.IS_USER, PrivilegeGroup.GLOBAL_SETTINGS, "Is User"),
        PrivilegeInfo(
            Privilege.CAN_ACCESS_GLOBAL_SETTINGS, PrivilegeGroup.GLOBAL_SETTINGS, "Access"
        ),
        PrivilegeInfo(Privilege.READ_ORG_DATA, PrivilegeGroup.ORGANIZATION, "Read"),
        PrivilegeInfo(Privilege.MANAGE_ORG_DATA, PrivilegeGroup.ORGANIZATION, "Manage"),
        PrivilegeInfo(
            Privilege.CAN_CHANGE_ENTITY_ORGANIZATION, PrivilegeGroup.ORGANIZATION, "Change Entity"
        ),
        PrivilegeInfo(Privilege.CAN_IMPORT_DATA, PrivilegeGroup.ORGANIZATION, "Import Data"),
        PrivilegeInfo(
            Privilege.CAN_RECOVER_PASSWORD, PrivilegeGroup.USER, "Recover Password", hidden=True
        ),
        PrivilegeInfo(Privilege.CAN_SEE_USER_EMAIL, PrivilegeGroup.USER, "See Email"),
        PrivilegeInfo(Privilege.CAN_IMPERSONATE, PrivilegeGroup.USER, "Impersonate"),
        PrivilegeInfo(Privilege.CAN_RESET_PASSWORD, PrivilegeGroup.USER, "Reset Passwords"),
        PrivilegeInfo(
            Privilege.CAN_VERIFY_ACCOUNT, PrivilegeGroup.USER, "Verify Account", hidden=True
        ),
        PrivilegeInfo(Privilege.READ_USER_DATA, PrivilegeGroup.USER, "Read Profiles"),
        PrivilegeInfo(Privilege.MANAGE_USER_DATA, PrivilegeGroup.USER, "Manage Profiles Data"),
        PrivilegeInfo(Privilege.READ_USER_ROLE, PrivilegeGroup.USER_ROLE, "Read"),
        PrivilegeInfo(Privilege.MANAGE_USER_ROLES, PrivilegeGroup.USER_ROLE, "Manage"),
        PrivilegeInfo(Privilege.CAN_READ_SUPPORT_DATA, PrivilegeGroup.SUPPORT, "Read"),
        PrivilegeInfo(Privilege.CAN_MANAGE_SUPPORT_DATA, PrivilegeGroup.SUPPORT, "Manage"),
        PrivilegeInfo(
            Privilege.READ_ORG_AUDIT, PrivilegeGroup.HISTORY, "Read Organization History"
        ),
        PrivilegeInfo(Privilege.CAN_REFRESH_TOKENS, PrivilegeGroup.TOKEN, "Refresh"),
        PrivilegeInfo(Privilege.CAN_READ_BACKEND, PrivilegeGroup.BACKEND, "Read"),
        PrivilegeInfo(Privilege.CAN_MANAGE_BACKEND, PrivilegeGroup.BACKEND, "Manage"),
    )
}

# Privilege required to create, modify and delete roles.
ROLE_MANAGEMENT_PRIVILEGE = Privilege.CAN_MANAGE_BACKEND.value


def visible_privileges() -> list[PrivilegeInfo]:
    """List non-hidden privileges grouped by category, in catalog order."""
    return sorted(
        (info for info in PRIVILEGE_INFO.values() if not info.hidden),
        key=lambda info: list(PrivilegeGroup).index(info.group),
    )


def privileges_in_group(group: PrivilegeGroup) -> frozenset[str]:
    """Get the identifiers of every privilege in a display group."""
    return frozenset(
        info.privilege.value for info in PRIVILEGE_INFO.values() if info.group == group
    )
