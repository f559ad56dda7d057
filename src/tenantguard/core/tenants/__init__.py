"""Tenant model and removal lifecycle."""

from tenantguard.core.tenants.lifecycle import TenantLifecycle
from tenantguard.core.tenants.repository import SchemaManager, TenantRepository
from tenantguard.core.tenants.types import RemovalReport, RemovalStep, Tenant, TenantState

__all__ = [
    "RemovalReport",
    "RemovalStep",
    "SchemaManager",
    "Tenant",
    "TenantLifecycle",
    "TenantRepository",
    "TenantState",
]
