"""Content server resource provider.

Deploys ``ContentServer`` nodes as local HTTP server processes serving a
generated ``index.html``, and ``StaticSite`` nodes as plain directories.
Drift detection and state refresh probe the recorded port over HTTP.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from pathlib import Path

from stackdeck.deploy.backends.base import BaseBackend
from stackdeck.deploy.probe import check_server_alive, server_url, wait_for_server
from stackdeck.deploy.process import (
    ProcessTable,
    WorkerProcessHandle,
    kill_process_tree_sync,
    render_command,
    spawn_server,
    stop_process,
    wait_for_ready,
)
from stackdeck.deploy.providers.base import BaseProvider
from stackdeck.deploy.shutdown import register_for_shutdown
from stackdeck.deploy.sites import write_site
from stackdeck.lib.errors import DeploymentError, StateBackendError
from stackdeck.models.config import ProviderConfig
from stackdeck.models.drift import DriftReport
from stackdeck.models.node import (
    ContentServerNode,
    ContentServerOutputs,
    DeploymentNode,
    StaticSiteNode,
    StaticSiteOutputs,
)

logger = logging.getLogger(__name__)


class ContentServerProvider(BaseProvider):
    """Provider that runs content servers as child processes.

    Every live server is tracked in a process table keyed by node id. The
    table is torn down by ``cleanup()``, and by the process-wide exit and
    signal hooks through ``shutdown()``.

    Example:
        >>> provider = ContentServerProvider()
        >>> node = ContentServerNode(id="dev-server", props={"port": 8080})
        >>> await provider.materialize([node])
        >>> node.outputs.url
        'http://localhost:8080'
        >>> await provider.cleanup()
    """

    def __init__(
        self,
        config: ProviderConfig | None = None,
        backend: BaseBackend | None = None,
        stack_name: str | None = None,
    ) -> None:
        """Initialize the provider.

        Args:
            config: Provider settings (timeouts, sites directory, command)
            backend: Optional state backend used for lock-aware diagnostics
            stack_name: Stack whose lock is reported in drift descriptions
        """
        self.config = config or ProviderConfig()
        self.backend = backend
        self.stack_name = stack_name
        self.processes = ProcessTable()
        register_for_shutdown(self)

    @property
    def sites_dir(self) -> Path:
        """Return the absolute directory holding generated sites."""
        return Path(self.config.sites_dir).resolve()

    async def _is_alive(self, port: int) -> bool:
        return await check_server_alive(
            self.config.probe_host, port, timeout=self.config.probe_timeout
        )

    # === Reconciliation operations ===

    async def pre_deploy(self, nodes: Sequence[DeploymentNode]) -> None:
        """Clear outputs of content servers that no longer respond.

        A server recorded as running but not answering is treated as absent
        so that ``materialize`` redeploys it. Tracked process handles are
        left in place.
        """
        logger.info("Checking for stale server state...")

        for node in nodes:
            if not isinstance(node, ContentServerNode) or node.outputs is None:
                continue
            port = node.outputs.port
            if not await self._is_alive(port):
                logger.warning(
                    f"Server at port {port} is not responding (stale state), "
                    f"clearing outputs for: {node.id}"
                )
                node.outputs = None

    async def materialize(self, nodes: Sequence[DeploymentNode]) -> None:
        """Deploy each node in order, reusing live servers.

        Raises:
            DeploymentError: If a server fails to start; later nodes in the
                batch are not processed.
        """
        logger.info(f"Deploying {len(nodes)} resources...")

        for node in nodes:
            logger.info(f"{node.resource_kind}: {node.id}")

            if isinstance(node, ContentServerNode):
                await self._deploy_content_server(node)
            elif isinstance(node, StaticSiteNode):
                self._deploy_static_site(node)
            else:
                logger.debug(f"Skipping unmanaged resource kind {node.resource_kind}")
                continue

            logger.info(f"Outputs for {node.id}: {node.outputs}")

        logger.info("All resources deployed")

    async def detect_drift(self, node: DeploymentNode) -> DriftReport:
        """Report whether a content server still answers on its recorded port.

        The node is never modified.
        """
        if not isinstance(node, ContentServerNode) or node.outputs is None:
            return DriftReport(node_id=node.id)

        expected = node.outputs.model_dump()
        port = node.outputs.port
        alive = await self._is_alive(port)

        if alive:
            return DriftReport(
                node_id=node.id,
                has_drifted=False,
                expected_state=expected,
                actual_state=expected,
            )

        return DriftReport(
            node_id=node.id,
            has_drifted=True,
            expected_state=expected,
            actual_state=None,
            drift_description=self._describe_drift(port),
        )

    async def refresh_state(self, node: DeploymentNode) -> None:
        """Clear outputs of a content server that no longer responds."""
        if not isinstance(node, ContentServerNode) or node.outputs is None:
            return

        if not await self._is_alive(node.outputs.port):
            logger.info(f"Clearing stale outputs for: {node.id}")
            node.outputs = None

    async def cleanup(self) -> None:
        """Stop every tracked server process tree and clear the table."""
        async with self.processes.lock:
            handles = self.processes.drain()
        if not handles:
            return

        logger.info("Stopping all servers...")
        for handle in handles:
            if await stop_process(handle, self.config.kill_grace_period):
                logger.info(f"Stopped server: {handle.node_id}")
            else:
                logger.info(f"Server {handle.node_id} already stopped")
        logger.info("All servers stopped")

    def shutdown(self) -> None:
        """Synchronously kill every tracked process tree.

        Runs from interpreter exit and signal hooks, where no event loop
        can be awaited. Processes that already exited are skipped.
        """
        handles = self.processes.drain()
        for handle in handles:
            if kill_process_tree_sync(handle.pid, self.config.kill_grace_period):
                logger.info(f"Stopped server: {handle.node_id}")
            else:
                logger.debug(f"Server {handle.node_id} already stopped")

    # === Resource handlers ===

    async def _deploy_content_server(self, node: ContentServerNode) -> None:
        port = node.props.port
        url = server_url(self.config.host, port)

        existing = self.processes.get_live(node.id)
        if existing is not None:
            logger.info(f"Server already running on port {existing.port}")
            node.outputs = ContentServerOutputs(
                url=server_url(self.config.host, existing.port),
                port=existing.port,
                status="running",
                pid=existing.pid,
            )
            return

        async with self.processes.lock:
            if self.processes.remove(node.id) is not None:
                logger.debug(f"Dropped stale process handle for {node.id}")

        index_path = write_site(self.sites_dir, node.site_name, node.props.content)
        site_dir = index_path.parent
        logger.info(f"Created site at {site_dir}")

        command = render_command(
            self.config.command,
            port=port,
            host=self.config.host,
            site_dir=str(site_dir),
        )
        handle = await spawn_server(node.id, port, command)
        try:
            await wait_for_ready(
                handle, self.config.ready_markers, self.config.startup_timeout
            )
            await wait_for_server(
                self.config.probe_host,
                port,
                retries=self.config.health_retries,
                interval=self.config.health_retry_interval,
                timeout=self.config.probe_timeout,
            )
        except DeploymentError:
            await stop_process(handle, self.config.kill_grace_period)
            raise

        await self._register(handle)
        logger.info(f"Server started on {url}")

        node.outputs = ContentServerOutputs(
            url=url,
            port=port,
            status="running",
            pid=handle.pid,
        )

    def _deploy_static_site(self, node: StaticSiteNode) -> None:
        index_path = write_site(self.sites_dir, node.props.name, node.props.content)
        logger.info(f"Static site created at {index_path.parent}")
        node.outputs = StaticSiteOutputs(
            path=str(index_path.parent), index_path=str(index_path)
        )

    async def _register(self, handle: WorkerProcessHandle) -> None:
        async with self.processes.lock:
            self.processes.add(handle)

    def _describe_drift(self, port: int) -> str:
        description = f"Server not responding on port {port}"
        if self.backend is None or self.stack_name is None:
            return description

        try:
            lock = self.backend.check_lock(self.stack_name)
        except StateBackendError as exc:
            logger.debug(f"Lock lookup for drift report failed: {exc}")
            return description
        if lock is not None:
            description += f" (stack '{self.stack_name}' locked by {lock.holder})"
        return description
