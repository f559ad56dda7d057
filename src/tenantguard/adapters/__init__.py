"""Adapters - Infrastructure implementations of core interfaces.

This package contains the concrete implementations of the
Protocol interfaces defined in the core module.

Adapters are organized by concern:
- db/: asyncpg pool wrapper, reference schema and in-memory store
- rbac/: Role and role assignment repositories
- tokens/: Credential token repository
- tenants/: Tenant repository and tenant schema manager
"""
