"""StackDeck resource-provider layer.

This package provides the content server provider that supervises local
worker processes and detects drift, the SQLite state backend with per-stack
TTL locks and an audit trail, and a lock-bracketed reconciliation pass.
"""

from stackdeck.deploy.backends import BaseBackend, SQLiteBackend, create_backend
from stackdeck.deploy.providers import (
    BaseProvider,
    ContentServerProvider,
    create_provider,
)
from stackdeck.deploy.reconcile import ReconcileResult, reconcile, stack_lock

__all__ = [
    "BaseBackend",
    "BaseProvider",
    "ContentServerProvider",
    "ReconcileResult",
    "SQLiteBackend",
    "create_backend",
    "create_provider",
    "reconcile",
    "stack_lock",
]
