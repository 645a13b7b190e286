"""Unit tests for StackDeck configuration models."""

import sys

import pytest
from pydantic import ValidationError

from stackdeck.models.config import BackendConfig, ProviderConfig, StackConfig
from stackdeck.models.node import ContentServerNode, DeploymentNode, StaticSiteNode


@pytest.mark.unit
class TestProviderConfig:
    """Tests for ProviderConfig."""

    def test_defaults(self) -> None:
        """Defaults match the dev-server settings."""
        config = ProviderConfig()
        assert config.startup_timeout == 10.0
        assert config.health_retries == 10
        assert config.health_retry_interval == 0.5
        assert config.host == "localhost"
        assert config.probe_host == "127.0.0.1"
        assert config.sites_dir == "sites"
        assert "Serving HTTP on" in config.ready_markers

    def test_default_command_uses_current_interpreter(self) -> None:
        """The default server is http.server on the running interpreter."""
        command = ProviderConfig().command
        assert command[0] == sys.executable
        assert "http.server" in command
        assert "{port}" in command
        assert "{site_dir}" in command

    def test_empty_command_rejected(self) -> None:
        """An empty command template is invalid."""
        with pytest.raises(ValidationError, match="at least the executable"):
            ProviderConfig(command=[])

    def test_non_positive_timeout_rejected(self) -> None:
        """The startup timeout must be positive."""
        with pytest.raises(ValidationError):
            ProviderConfig(startup_timeout=0)


@pytest.mark.unit
class TestStackConfig:
    """Tests for StackConfig."""

    def test_nodes_are_typed_by_kind(self) -> None:
        """Nodes in a stack parse into their kind's class."""
        stack = StackConfig(
            name="dev",
            nodes=[
                {"id": "web", "resource_kind": "ContentServer"},
                {"id": "docs", "resource_kind": "StaticSite", "props": {"name": "d"}},
                {"id": "db", "resource_kind": "Database"},
            ],
        )
        assert [type(n) for n in stack.nodes] == [
            ContentServerNode,
            StaticSiteNode,
            DeploymentNode,
        ]

    def test_duplicate_node_ids_rejected(self) -> None:
        """Node ids are unique within a stack."""
        with pytest.raises(ValidationError, match="Duplicate node id: web"):
            StackConfig(
                name="dev",
                nodes=[
                    {"id": "web", "resource_kind": "ContentServer"},
                    {"id": "web", "resource_kind": "ContentServer"},
                ],
            )

    def test_defaults_for_sections(self) -> None:
        """Provider and backend sections are optional."""
        stack = StackConfig(name="dev")
        assert isinstance(stack.provider, ProviderConfig)
        assert stack.backend == BackendConfig()
        assert stack.backend.lock_ttl == 300
        assert stack.nodes == []

    def test_unknown_top_level_key_rejected(self) -> None:
        """Typos in the stack file surface as errors."""
        with pytest.raises(ValidationError):
            StackConfig(name="dev", nodez=[])  # type: ignore[call-arg]
