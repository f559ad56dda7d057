"""Privilege identifiers and their encoded set representation."""

from tenantguard.core.privileges.catalog import (
    PRIVILEGE_INFO,
    ROLE_MANAGEMENT_PRIVILEGE,
    Privilege,
    PrivilegeGroup,
    PrivilegeInfo,
)
from tenantguard.core.privileges.codec import (
    decode,
    encode,
    normalize,
    privilege_name,
    rename,
    validate_privilege_name,
)

__all__ = [
    "PRIVILEGE_INFO",
    "ROLE_MANAGEMENT_PRIVILEGE",
    "Privilege",
    "PrivilegeGroup",
    "PrivilegeInfo",
    "decode",
    "encode",
    "normalize",
    "privilege_name",
    "rename",
    "validate_privilege_name",
]
