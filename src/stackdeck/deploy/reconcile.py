"""Lock-bracketed reconciliation pass over a stack's nodes.

This is the thin orchestrator used by the CLI: it takes the stack lock,
restores recorded outputs from saved state, runs the provider's staleness
sweep and materialization, then persists the node graph and an audit entry.
"""

from __future__ import annotations

import getpass
import logging
import os
import socket
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any

from pydantic import ValidationError

from stackdeck.deploy.backends.base import BaseBackend
from stackdeck.deploy.providers.base import BaseProvider
from stackdeck.lib.clock import now_ms
from stackdeck.lib.errors import DeploymentError
from stackdeck.models.node import DeploymentNode, dump_nodes, parse_node

logger = logging.getLogger(__name__)

STATE_VERSION = "1.0"


@dataclass
class ReconcileResult:
    """Outcome of one reconciliation pass.

    Attributes:
        stack_name: Stack that was reconciled
        nodes: All nodes of the pass with their final outputs
        deployed: Ids of nodes that were (re)materialized
        unchanged: Ids of nodes whose recorded resources were still alive
    """

    stack_name: str
    nodes: list[DeploymentNode]
    deployed: list[str] = field(default_factory=list)
    unchanged: list[str] = field(default_factory=list)


def default_holder() -> str:
    """Return a lock holder identity for this process."""
    try:
        user = getpass.getuser()
    except (KeyError, OSError):
        user = "unknown"
    return f"{user}@{socket.gethostname()}:{os.getpid()}"


@contextmanager
def stack_lock(
    backend: BaseBackend, stack_name: str, holder: str, ttl_seconds: float
) -> Iterator[None]:
    """Hold the stack lock for the duration of the block.

    Raises:
        LockConflictError: If another holder has a non-expired lock
    """
    backend.acquire_lock(stack_name, holder, ttl_seconds)
    try:
        yield
    finally:
        backend.release_lock(stack_name)


def load_nodes(state: Any) -> list[DeploymentNode]:
    """Rebuild nodes from a saved state blob, skipping invalid entries."""
    if not isinstance(state, dict):
        return []
    nodes: list[DeploymentNode] = []
    for raw in state.get("nodes") or []:
        try:
            nodes.append(parse_node(raw))
        except (ValidationError, AttributeError) as exc:
            logger.warning(f"Ignoring invalid node in saved state: {exc}")
    return nodes


def restore_outputs(nodes: Sequence[DeploymentNode], state: Any) -> None:
    """Copy recorded outputs onto desired nodes whose definition is unchanged.

    A node whose kind or props differ from the saved node keeps ``outputs``
    unset and is therefore redeployed.
    """
    saved = {node.id: node for node in load_nodes(state)}
    for node in nodes:
        previous = saved.get(node.id)
        if previous is None or previous.outputs is None:
            continue
        if previous.resource_kind != node.resource_kind or previous.props != node.props:
            logger.info(f"Definition of {node.id} changed, scheduling redeploy")
            continue
        node.outputs = previous.outputs


def snapshot(stack_name: str, nodes: Sequence[DeploymentNode]) -> dict[str, Any]:
    """Return the serializable state blob for a stack."""
    return {
        "version": STATE_VERSION,
        "stack": stack_name,
        "nodes": dump_nodes(list(nodes)),
    }


async def reconcile(
    provider: BaseProvider,
    backend: BaseBackend,
    stack_name: str,
    nodes: Sequence[DeploymentNode],
    holder: str | None = None,
    ttl_seconds: float = 300,
) -> ReconcileResult:
    """Run one reconciliation pass under the stack lock.

    Args:
        provider: Provider that materializes the nodes
        backend: State backend holding lock, state and audit log
        stack_name: Stack being deployed
        nodes: Desired nodes; their outputs are updated in place
        holder: Lock holder identity (defaults to user@host:pid)
        ttl_seconds: Lock time-to-live

    Returns:
        ReconcileResult describing what was deployed

    Raises:
        LockConflictError: If the stack is locked by someone else
        DeploymentError: If a node fails to materialize; state for nodes
            deployed before the failure is still saved
    """
    holder = holder or default_holder()
    node_list = list(nodes)

    with stack_lock(backend, stack_name, holder, ttl_seconds):
        restore_outputs(node_list, backend.get_state(stack_name))
        await provider.pre_deploy(node_list)

        pending = [node for node in node_list if not node.is_materialized]
        result = ReconcileResult(
            stack_name=stack_name,
            nodes=node_list,
            deployed=[node.id for node in pending],
            unchanged=[node.id for node in node_list if node.is_materialized],
        )

        try:
            await provider.materialize(pending)
        except DeploymentError as exc:
            backend.save_state(stack_name, snapshot(stack_name, node_list))
            backend.append_audit_log(
                stack_name,
                {
                    "action": "deploy_failed",
                    "holder": holder,
                    "error": str(exc),
                    "timestamp": now_ms(),
                },
            )
            raise

        backend.save_state(stack_name, snapshot(stack_name, node_list))
        backend.append_audit_log(
            stack_name,
            {
                "action": "deploy",
                "holder": holder,
                "deployed": result.deployed,
                "unchanged": result.unchanged,
                "timestamp": now_ms(),
            },
        )

    logger.info(
        f"Reconciled {stack_name}: {len(result.deployed)} deployed, "
        f"{len(result.unchanged)} unchanged"
    )
    return result
