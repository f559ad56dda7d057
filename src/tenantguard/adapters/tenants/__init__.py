"""Tenant adapters."""

from .postgres import PostgresSchemaManager, PostgresTenantRepository

__all__ = ["PostgresSchemaManager", "PostgresTenantRepository"]
