"""Models for rows persisted by state backends."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class StateRecord(BaseModel):
    """Serialized deployment state for one stack (last write wins)."""

    model_config = ConfigDict(extra="forbid")

    stack_name: str = Field(..., description="Stack identifier (primary key)")
    state_data: str = Field(..., description="JSON-encoded state blob")
    updated_at: int = Field(..., description="Last write, epoch milliseconds")


class LockRecord(BaseModel):
    """Exclusive lock row for a stack.

    A lock is held while ``now - acquired_at < ttl * 1000``. Expired rows are
    logically absent; ``acquire_lock`` purges them before inserting.
    """

    model_config = ConfigDict(extra="forbid")

    stack_name: str = Field(..., description="Stack identifier (primary key)")
    holder: str = Field(..., description="Opaque identity of the lock holder")
    acquired_at: int = Field(..., description="Acquisition time, epoch milliseconds")
    ttl: float = Field(
        ..., allow_inf_nan=False, description="Time-to-live in seconds, may be fractional"
    )

    def age_ms(self, now: int) -> int:
        """Return the lock age in milliseconds at ``now``."""
        return now - self.acquired_at

    def is_expired(self, now: int) -> bool:
        """Return True when the lock is no longer valid at ``now``."""
        return self.age_ms(now) >= self.ttl * 1000


class AuditEntry(BaseModel):
    """Append-only audit row."""

    model_config = ConfigDict(extra="forbid")

    id: int = Field(..., description="Autoincrement row id")
    stack_name: str = Field(..., description="Stack the entry belongs to")
    entry: Any = Field(..., description="Decoded entry payload")
    created_at: int = Field(..., description="Insert time, epoch milliseconds")
