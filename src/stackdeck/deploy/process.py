"""Worker process spawning, readiness detection and process-tree teardown.

Content servers are started with ``asyncio.create_subprocess_exec``. Their
stdout is scanned line by line by a reader task; the readiness wait is a
single awaitable raced against process exit and a hard timeout. Teardown
uses psutil so that any workers forked by a server die with it.
"""

from __future__ import annotations

import asyncio
import logging
import signal
import time
from collections.abc import Iterator, Sequence
from dataclasses import dataclass, field

import psutil

from stackdeck.lib.errors import SpawnError, StartupExitError, StartupTimeoutError

logger = logging.getLogger(__name__)


@dataclass
class WorkerProcessHandle:
    """Runtime association between a node id and a spawned server process.

    Handles live only in a provider's :class:`ProcessTable` and are never
    persisted.

    Attributes:
        node_id: Deployment node backed by this process
        port: Port the server was asked to bind
        process: The asyncio subprocess
        command: Command line used to start the server
        started_at: Monotonic start time
        readers: Tasks draining stdout and stderr
    """

    node_id: str
    port: int
    process: asyncio.subprocess.Process
    command: list[str]
    started_at: float = field(default_factory=time.monotonic)
    readers: list[asyncio.Task[None]] = field(default_factory=list)

    @property
    def pid(self) -> int:
        """Return the process id of the server."""
        return self.process.pid

    @property
    def is_running(self) -> bool:
        """Return True while the process has not been reaped."""
        return self.process.returncode is None


class ProcessTable:
    """Table of live worker processes keyed by node id.

    The table is owned by a single provider. Async mutations go through
    ``lock``; the synchronous shutdown path only takes snapshots.
    """

    def __init__(self) -> None:
        """Initialize an empty process table."""
        self._handles: dict[str, WorkerProcessHandle] = {}
        self.lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._handles)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._handles

    def __iter__(self) -> Iterator[WorkerProcessHandle]:
        return iter(list(self._handles.values()))

    def get(self, node_id: str) -> WorkerProcessHandle | None:
        """Return the handle for a node id, if tracked."""
        return self._handles.get(node_id)

    def get_live(self, node_id: str) -> WorkerProcessHandle | None:
        """Return the handle for a node id only if its process is running.

        ``returncode`` is only set once the event loop has reaped the child,
        so the pid is also checked with psutil.
        """
        handle = self._handles.get(node_id)
        if handle is not None and handle.is_running and pid_running(handle.pid):
            return handle
        return None

    def add(self, handle: WorkerProcessHandle) -> None:
        """Register a handle, replacing any previous one for the node."""
        self._handles[handle.node_id] = handle

    def remove(self, node_id: str) -> WorkerProcessHandle | None:
        """Remove and return the handle for a node id."""
        return self._handles.pop(node_id, None)

    def drain(self) -> list[WorkerProcessHandle]:
        """Remove and return every handle."""
        handles = list(self._handles.values())
        self._handles.clear()
        return handles


def pid_running(pid: int) -> bool:
    """Return True if ``pid`` exists and is not a zombie awaiting reaping."""
    try:
        return psutil.Process(pid).status() != psutil.STATUS_ZOMBIE
    except psutil.NoSuchProcess:
        return False


def render_command(template: Sequence[str], **values: object) -> list[str]:
    """Substitute ``{port}``, ``{host}`` and ``{site_dir}`` in a command template."""
    return [part.format(**values) for part in template]


async def spawn_server(
    node_id: str, port: int, command: list[str]
) -> WorkerProcessHandle:
    """Start a server process with piped output.

    Raises:
        SpawnError: If the executable could not be started
    """
    try:
        process = await asyncio.create_subprocess_exec(
            *command,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as exc:
        raise SpawnError(" ".join(command), exc) from exc

    logger.debug(f"Spawned {command[0]} for {node_id} (pid {process.pid})")
    return WorkerProcessHandle(
        node_id=node_id, port=port, process=process, command=command
    )


async def _scan_stream(
    stream: asyncio.StreamReader | None,
    label: str,
    markers: Sequence[str],
    ready: asyncio.Future[str] | None,
) -> None:
    """Log lines from a stream and resolve ``ready`` on the first marker."""
    if stream is None:
        return
    while True:
        raw = await stream.readline()
        if not raw:
            return
        line = raw.decode(errors="replace").rstrip()
        logger.debug(f"[{label}] {line}")
        if ready is not None and not ready.done():
            if any(marker in line for marker in markers):
                ready.set_result(line)


async def wait_for_ready(
    handle: WorkerProcessHandle,
    markers: Sequence[str],
    timeout: float,
) -> str:
    """Wait until the server prints a readiness line.

    Exit with a non-zero code while waiting is a failure. A zero exit is
    not a failure by itself; the wait continues until the deadline.

    Args:
        handle: Freshly spawned process handle
        markers: Substrings of stdout lines that signal readiness
        timeout: Hard budget in seconds

    Returns:
        The readiness line

    Raises:
        StartupTimeoutError: If no readiness line appeared in time
        StartupExitError: If the process exited with a non-zero code
    """
    loop = asyncio.get_running_loop()
    ready: asyncio.Future[str] = loop.create_future()
    label = f"{handle.node_id}:{handle.pid}"
    handle.readers = [
        asyncio.create_task(
            _scan_stream(handle.process.stdout, label, markers, ready)
        ),
        asyncio.create_task(_scan_stream(handle.process.stderr, label, (), None)),
    ]
    exited = asyncio.ensure_future(handle.process.wait())

    deadline = loop.time() + timeout
    pending: set[asyncio.Future[object]] = {ready, exited}  # type: ignore[arg-type]
    try:
        while True:
            remaining = deadline - loop.time()
            if remaining <= 0:
                raise StartupTimeoutError(port=handle.port, timeout=timeout)
            done, _ = await asyncio.wait(
                pending, timeout=remaining, return_when=asyncio.FIRST_COMPLETED
            )
            if ready in done:
                return ready.result()
            if exited in done:
                pending.discard(exited)
                returncode = exited.result()
                if returncode not in (0, None):
                    raise StartupExitError(port=handle.port, returncode=returncode)
                logger.debug(f"Server for {handle.node_id} exited cleanly while starting")
            if not done:
                raise StartupTimeoutError(port=handle.port, timeout=timeout)
    finally:
        if not exited.done():
            exited.cancel()
        if not ready.done():
            ready.cancel()


def signal_process_tree(pid: int, sig: int = signal.SIGTERM) -> list[psutil.Process]:
    """Send a signal to a process and all of its descendants.

    Descendants are signalled before the root so that a forking server
    cannot respawn workers. Processes that are already gone are skipped.

    Returns:
        The processes that were signalled
    """
    try:
        root = psutil.Process(pid)
    except psutil.NoSuchProcess:
        logger.debug(f"Process {pid} already stopped")
        return []

    try:
        tree = root.children(recursive=True) + [root]
    except psutil.NoSuchProcess:
        tree = [root]

    signalled: list[psutil.Process] = []
    for proc in tree:
        try:
            proc.send_signal(sig)
            signalled.append(proc)
        except psutil.NoSuchProcess:
            logger.debug(f"Process {proc.pid} already stopped")
    return signalled


def kill_remaining(processes: Sequence[psutil.Process]) -> None:
    """SIGKILL any process from ``processes`` that is still running."""
    for proc in processes:
        try:
            if proc.is_running():
                proc.kill()
        except psutil.NoSuchProcess:
            pass


def kill_process_tree_sync(pid: int, grace_period: float = 2.0) -> bool:
    """Terminate a process tree without an event loop.

    Sends SIGTERM to the tree, waits up to ``grace_period`` seconds and
    SIGKILLs whatever is left. Used by the interpreter shutdown hook.

    Returns:
        True if any process was signalled, False if it was already gone
    """
    processes = signal_process_tree(pid, signal.SIGTERM)
    if not processes:
        return False
    _, alive = psutil.wait_procs(processes, timeout=grace_period)
    kill_remaining(alive)
    return True


async def stop_process(handle: WorkerProcessHandle, grace_period: float = 2.0) -> bool:
    """Terminate a handle's process tree and reap the root process.

    Returns:
        True if the process was running and got stopped, False if it had
        already exited
    """
    processes = signal_process_tree(handle.pid, signal.SIGTERM)
    stopped = bool(processes)
    if stopped:
        try:
            await asyncio.wait_for(handle.process.wait(), timeout=grace_period)
        except asyncio.TimeoutError:
            logger.warning(
                f"Server {handle.node_id} ignored SIGTERM, sending SIGKILL"
            )
            kill_remaining(processes)
            await handle.process.wait()
        else:
            kill_remaining([p for p in processes if p.pid != handle.pid])

    for reader in handle.readers:
        if not reader.done():
            reader.cancel()
    return stopped
