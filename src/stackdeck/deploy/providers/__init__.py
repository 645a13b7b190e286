"""Resource providers for StackDeck nodes."""

from __future__ import annotations

from stackdeck.deploy.backends.base import BaseBackend
from stackdeck.deploy.providers.base import BaseProvider
from stackdeck.deploy.providers.content_server import ContentServerProvider
from stackdeck.models.config import ProviderConfig


def create_provider(
    config: ProviderConfig | None = None,
    backend: BaseBackend | None = None,
    stack_name: str | None = None,
) -> BaseProvider:
    """Create the resource provider for a stack."""
    return ContentServerProvider(config, backend=backend, stack_name=stack_name)


__all__ = ["BaseProvider", "ContentServerProvider", "create_provider"]
