"""Tenant domain types."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict


class TenantState(str, Enum):
    """Removal lifecycle of a tenant.

    A removed tenant has no row at all, so REMOVED is never stored.
    """

    ACTIVE = "active"
    SCHEMA_MARKED_DELETED = "schema_marked_deleted"
    CONSTRAINTS_DROPPED = "constraints_dropped"
    REMOVED = "removed"


class RemovalStep(str, Enum):
    """The three persisted steps of tenant removal, in order."""

    MARK_SCHEMA_DELETED = "mark_schema_deleted"
    DROP_SCHEMA_CONSTRAINTS = "drop_schema_constraints"
    REMOVE_TENANT = "remove_tenant"


class Tenant(BaseModel):
    """Tenant (organization) domain model."""

    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    assigned_datastore_id: int | None = None
    schema_deleted: bool = False
    constraints_dropped: bool = False
    created_at: datetime

    @property
    def state(self) -> TenantState:
        """Current lifecycle state derived from the persisted flags."""
        if self.constraints_dropped:
            return TenantState.CONSTRAINTS_DROPPED
        if self.schema_deleted:
            return TenantState.SCHEMA_MARKED_DELETED
        return TenantState.ACTIVE

    @property
    def pending_removal(self) -> bool:
        """Whether removal has started but the tenant row still exists."""
        return self.schema_deleted


class RemovalReport(BaseModel):
    """Outcome of a full removal run."""

    tenant_id: int
    schema_name: str | None = None
    executed_steps: list[RemovalStep]
    skipped_steps: list[RemovalStep]
