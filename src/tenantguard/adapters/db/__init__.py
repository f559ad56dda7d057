"""Application database adapters.

Contents:
- app_db: asyncpg connection pool wrapper
- memory: in-memory repositories sharing one MemoryStore
- schema.sql: tables used by the PostgreSQL repositories
"""

from .app_db import AppDatabase
from .memory import (
    InMemoryCredentialStore,
    InMemoryEntityStore,
    InMemoryRoleAssignmentRepository,
    InMemoryRoleRepository,
    InMemorySchemaManager,
    InMemoryTenantRepository,
    InMemoryTokenRepository,
    MemoryStore,
)

__all__ = [
    "AppDatabase",
    "InMemoryCredentialStore",
    "InMemoryEntityStore",
    "InMemoryRoleAssignmentRepository",
    "InMemoryRoleRepository",
    "InMemorySchemaManager",
    "InMemoryTenantRepository",
    "InMemoryTokenRepository",
    "MemoryStore",
]
