"""Encoded privilege set representation.

Roles and tokens persist their privileges as a single string column in the
form ``(NAME1)(NAME2)(NAME3)``. The parentheses anchor every entry, so a
textual ``(OLD)`` -> ``(NEW)`` replacement over the stored column renames
exactly one privilege and never touches another privilege whose name merely
contains ``OLD``.
"""

import re
from collections.abc import Iterable
from enum import Enum

from tenantguard.core.exceptions import InvalidPrivilegeName

# Canonical form has no separator; rows written by older releases used a comma.
_ENTRY_SEPARATOR = re.compile(r"\),?\(")


def privilege_name(privilege: str | Enum) -> str:
    """Return the plain string identifier of a privilege.

    Args:
        privilege: A privilege enum member or a plain string.

    Returns:
        The privilege identifier.
    """
    if isinstance(privilege, Enum):
        return str(privilege.value)
    return str(privilege)


def validate_privilege_name(name: str) -> str:
    """Check a privilege identifier can be stored in an encoded set.

    Args:
        name: The identifier to check.

    Returns:
        The identifier, unchanged.

    Raises:
        InvalidPrivilegeName: If the identifier is empty or contains parentheses.
    """
    if not name:
        raise InvalidPrivilegeName("Privilege name must not be empty")
    if "(" in name or ")" in name:
        raise InvalidPrivilegeName(f"Privilege name must not contain parentheses: {name!r}")
    return name


def normalize(privileges: Iterable[str | Enum]) -> frozenset[str]:
    """Convert privileges to a validated set of plain identifiers."""
    return frozenset(validate_privilege_name(privilege_name(p)) for p in privileges)


def encode(privileges: Iterable[str | Enum]) -> str:
    """Encode privileges as ``(P1)(P2)``.

    Entries are sorted so the same set always produces the same string.

    Args:
        privileges: Privileges to encode.

    Returns:
        Encoded string; empty string for an empty set.

    Raises:
        InvalidPrivilegeName: If any identifier cannot be encoded.
    """
    return "".join(f"({name})" for name in sorted(normalize(privileges)))


def decode(encoded: str | None) -> frozenset[str]:
    """Decode an encoded privilege string into a set of identifiers.

    Args:
        encoded: The stored string. ``None`` and ``""`` decode to an empty set.

    Returns:
        Set of privilege identifiers.

    Raises:
        InvalidPrivilegeName: If the string is not a sequence of ``(NAME)`` entries.
    """
    if not encoded:
        return frozenset()
    if not (encoded.startswith("(") and encoded.endswith(")")):
        raise InvalidPrivilegeName(f"Malformed privilege set: {encoded!r}")
    entries = _ENTRY_SEPARATOR.split(encoded[1:-1])
    for entry in entries:
        if "(" in entry or ")" in entry:
            raise InvalidPrivilegeName(f"Malformed privilege set: {encoded!r}")
    return frozenset(entry for entry in entries if entry)


def contains(encoded: str | None, privilege: str | Enum) -> bool:
    """Check whether an encoded set contains a privilege."""
    return privilege_name(privilege) in decode(encoded)


def rename(encoded: str | None, old: str | Enum, new: str | Enum) -> str:
    """Rename one privilege inside an encoded set.

    Equivalent to replacing ``(OLD)`` with ``(NEW)`` in the stored string, but
    done on the decoded set and re-encoded.

    Args:
        encoded: The stored string.
        old: Privilege to replace.
        new: Replacement privilege.

    Returns:
        The re-encoded string. Unchanged (but canonicalized) if ``old`` is absent.
    """
    old_name = validate_privilege_name(privilege_name(old))
    new_name = validate_privilege_name(privilege_name(new))
    privileges = decode(encoded)
    if old_name not in privileges:
        return encode(privileges)
    return encode((privileges - {old_name}) | {new_name})
