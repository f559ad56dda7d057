"""RBAC adapters."""

from .postgres import PostgresRoleAssignmentRepository, PostgresRoleRepository

__all__ = ["PostgresRoleAssignmentRepository", "PostgresRoleRepository"]
