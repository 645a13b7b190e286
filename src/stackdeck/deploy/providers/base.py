"""Base interface for resource providers."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence

from stackdeck.models.drift import DriftReport
from stackdeck.models.node import DeploymentNode


class BaseProvider(ABC):
    """Abstract base class for resource providers.

    The orchestrator calls the operations of a provider once per
    reconciliation pass, in this order: ``pre_deploy`` for all nodes, then
    ``materialize``. ``detect_drift`` and ``refresh_state`` may run between
    passes. Only the provider writes ``node.outputs``.
    """

    @abstractmethod
    async def pre_deploy(self, nodes: Sequence[DeploymentNode]) -> None:
        """Clear outputs of nodes whose recorded resource no longer responds.

        Args:
            nodes: Nodes of the upcoming pass; mutated in place.
        """

    @abstractmethod
    async def materialize(self, nodes: Sequence[DeploymentNode]) -> None:
        """Create or reuse the real resource for each node and write outputs.

        Args:
            nodes: Nodes to apply, processed sequentially; mutated in place.

        Raises:
            DeploymentError: If a node's resource cannot be brought up.
        """

    @abstractmethod
    async def detect_drift(self, node: DeploymentNode) -> DriftReport:
        """Compare a node's recorded outputs with reality without mutating it.

        Args:
            node: Node to check.

        Returns:
            DriftReport describing whether the node has drifted.
        """

    @abstractmethod
    async def refresh_state(self, node: DeploymentNode) -> None:
        """Clear a node's outputs if its resource no longer responds.

        Args:
            node: Node to refresh; mutated in place.
        """

    @abstractmethod
    async def cleanup(self) -> None:
        """Tear down every resource owned by this provider.

        Must be safe to call more than once.
        """
