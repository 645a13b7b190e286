"""Base interface for deployment state backends."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from stackdeck.models.state import AuditEntry, LockRecord


class BaseBackend(ABC):
    """Abstract base class for state backends.

    A backend stores one state blob per stack, one exclusive TTL lock per
    stack, and an append-only audit trail.
    """

    @abstractmethod
    def get_state(self, stack_name: str) -> Any | None:
        """Return the saved state for a stack.

        Returns:
            The decoded state, or None when no state exists or it cannot be
            decoded.
        """

    @abstractmethod
    def save_state(self, stack_name: str, state: Any) -> None:
        """Save the state for a stack, replacing any previous state.

        Raises:
            StateBackendError: If the state cannot be stored.
        """

    @abstractmethod
    def acquire_lock(self, stack_name: str, holder: str, ttl_seconds: float) -> None:
        """Take the exclusive lock for a stack.

        Raises:
            LockConflictError: If another non-expired lock exists.
        """

    @abstractmethod
    def release_lock(self, stack_name: str) -> None:
        """Release the lock for a stack. Releasing a missing lock is a no-op."""

    @abstractmethod
    def check_lock(self, stack_name: str) -> LockRecord | None:
        """Return the current lock row without purging expired locks."""

    @abstractmethod
    def append_audit_log(self, stack_name: str, entry: Any) -> None:
        """Append an audit entry for a stack.

        Raises:
            StateBackendError: If the entry cannot be stored.
        """

    @abstractmethod
    def list_audit_log(self, stack_name: str) -> list[AuditEntry]:
        """Return the audit entries for a stack in insertion order."""

    def close(self) -> None:  # noqa: B027
        """Release backend resources."""
