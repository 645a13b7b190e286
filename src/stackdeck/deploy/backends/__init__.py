"""State backends for StackDeck stacks."""

from __future__ import annotations

from stackdeck.deploy.backends.base import BaseBackend
from stackdeck.deploy.backends.sqlite import SQLiteBackend
from stackdeck.models.config import BackendConfig


def create_backend(config: BackendConfig | None = None) -> BaseBackend:
    """Create the state backend described by the configuration."""
    config = config or BackendConfig()
    return SQLiteBackend(config.db_path)


__all__ = ["BaseBackend", "SQLiteBackend", "create_backend"]
