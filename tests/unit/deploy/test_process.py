"""Unit tests for worker process spawning and teardown.

These tests start short-lived Python child processes; no network is used.
"""

from __future__ import annotations

import os
import signal
import sys
import time
from unittest.mock import patch

import pytest

from stackdeck.deploy.process import (
    ProcessTable,
    WorkerProcessHandle,
    kill_process_tree_sync,
    pid_running,
    render_command,
    signal_process_tree,
    spawn_server,
    stop_process,
    wait_for_ready,
)
from stackdeck.lib.errors import SpawnError, StartupExitError, StartupTimeoutError

MARKERS = ["Serving HTTP on"]

READY_SCRIPT = (
    "import time\n"
    "print('starting up', flush=True)\n"
    "print('Serving HTTP on 127.0.0.1 port 8000', flush=True)\n"
    "time.sleep(30)\n"
)
SLEEP_SCRIPT = "import time\ntime.sleep(30)\n"


async def _spawn(script: str, node_id: str = "web") -> WorkerProcessHandle:
    return await spawn_server(node_id, 8000, [sys.executable, "-u", "-c", script])


@pytest.mark.unit
def test_render_command() -> None:
    """Placeholders are substituted in every argument."""
    command = render_command(
        ["server", "{port}", "--root={site_dir}", "--host", "{host}"],
        port=9000,
        host="localhost",
        site_dir="/srv/site",
    )
    assert command == ["server", "9000", "--root=/srv/site", "--host", "localhost"]


@pytest.mark.unit
class TestProcessTable:
    """Tests for ProcessTable bookkeeping."""

    def _handle(self, node_id: str, returncode: int | None = None) -> WorkerProcessHandle:
        class _Proc:
            pid = 4242

        proc = _Proc()
        proc.returncode = returncode  # type: ignore[attr-defined]
        return WorkerProcessHandle(
            node_id=node_id, port=8000, process=proc, command=["x"]  # type: ignore[arg-type]
        )

    def test_add_get_remove(self) -> None:
        """Handles are keyed by node id."""
        table = ProcessTable()
        handle = self._handle("web")
        table.add(handle)

        assert "web" in table
        assert len(table) == 1
        assert table.get("web") is handle
        assert table.remove("web") is handle
        assert table.remove("web") is None

    def test_get_live_skips_exited(self) -> None:
        """Exited processes are not reported as live."""
        table = ProcessTable()
        table.add(self._handle("web", returncode=0))
        assert table.get_live("web") is None
        assert table.get("web") is not None

    def test_get_live_checks_pid(self) -> None:
        """A handle whose pid is gone is not live before it is reaped."""
        table = ProcessTable()
        table.add(self._handle("web"))

        with patch("stackdeck.deploy.process.pid_running", return_value=False):
            assert table.get_live("web") is None
        with patch("stackdeck.deploy.process.pid_running", return_value=True):
            assert table.get_live("web") is not None

    @pytest.mark.asyncio
    async def test_get_live_after_kill(self) -> None:
        """A killed child is not live even while its returncode is unset."""
        handle = await _spawn(SLEEP_SCRIPT)
        table = ProcessTable()
        table.add(handle)
        try:
            assert table.get_live("web") is handle

            os.kill(handle.pid, signal.SIGKILL)
            deadline = time.monotonic() + 5
            while pid_running(handle.pid) and time.monotonic() < deadline:
                time.sleep(0.05)

            assert handle.process.returncode is None
            assert table.get_live("web") is None
        finally:
            await handle.process.wait()

    def test_pid_running(self) -> None:
        """The current process is running; an unused pid is not."""
        assert pid_running(os.getpid())
        assert not pid_running(2**22 + 1)

    def test_drain(self) -> None:
        """drain empties the table."""
        table = ProcessTable()
        table.add(self._handle("a"))
        table.add(self._handle("b"))

        drained = table.drain()
        assert {h.node_id for h in drained} == {"a", "b"}
        assert len(table) == 0


@pytest.mark.unit
class TestSpawnAndReadiness:
    """Tests for spawn_server and wait_for_ready."""

    @pytest.mark.asyncio
    async def test_spawn_missing_executable(self) -> None:
        """A command that cannot be executed raises SpawnError."""
        with pytest.raises(SpawnError):
            await spawn_server("web", 8000, ["/nonexistent/stackdeck-server"])

    @pytest.mark.asyncio
    async def test_ready_marker_resolves(self) -> None:
        """The first line containing a marker is returned."""
        handle = await _spawn(READY_SCRIPT)
        try:
            line = await wait_for_ready(handle, MARKERS, timeout=10)
            assert line.startswith("Serving HTTP on")
            assert handle.is_running
        finally:
            await stop_process(handle, grace_period=2)

    @pytest.mark.asyncio
    async def test_non_zero_exit_fails(self) -> None:
        """Exiting with an error while starting fails immediately."""
        handle = await _spawn("import sys\nsys.exit(3)\n")
        with pytest.raises(StartupExitError) as exc_info:
            await wait_for_ready(handle, MARKERS, timeout=10)
        assert exc_info.value.returncode == 3

    @pytest.mark.asyncio
    async def test_clean_exit_waits_for_timeout(self) -> None:
        """A zero exit without a marker ends in a timeout."""
        handle = await _spawn("print('bye', flush=True)\n")
        with pytest.raises(StartupTimeoutError):
            await wait_for_ready(handle, MARKERS, timeout=0.5)

    @pytest.mark.asyncio
    async def test_silent_process_times_out(self) -> None:
        """No readiness line within the budget is a timeout."""
        handle = await _spawn(SLEEP_SCRIPT)
        try:
            with pytest.raises(StartupTimeoutError) as exc_info:
                await wait_for_ready(handle, MARKERS, timeout=0.3)
            assert exc_info.value.timeout == 0.3
        finally:
            await stop_process(handle, grace_period=2)

    @pytest.mark.asyncio
    async def test_marker_on_stderr_is_ignored(self) -> None:
        """Only stdout is scanned for readiness."""
        script = (
            "import sys, time\n"
            "print('Serving HTTP on 127.0.0.1', file=sys.stderr, flush=True)\n"
            "time.sleep(30)\n"
        )
        handle = await _spawn(script)
        try:
            with pytest.raises(StartupTimeoutError):
                await wait_for_ready(handle, MARKERS, timeout=0.5)
        finally:
            await stop_process(handle, grace_period=2)


@pytest.mark.unit
class TestTeardown:
    """Tests for process-tree teardown."""

    @pytest.mark.asyncio
    async def test_stop_running_process(self) -> None:
        """A running server is stopped and reaped."""
        handle = await _spawn(SLEEP_SCRIPT)

        assert await stop_process(handle, grace_period=2) is True
        assert handle.process.returncode is not None
        assert not handle.is_running

    @pytest.mark.asyncio
    async def test_stop_exited_process(self) -> None:
        """Stopping an exited process reports that nothing ran."""
        handle = await _spawn("pass\n")
        await handle.process.wait()

        assert await stop_process(handle, grace_period=2) is False

    @pytest.mark.asyncio
    async def test_stop_escalates_to_sigkill(self) -> None:
        """A server ignoring SIGTERM is killed after the grace period."""
        script = (
            "import signal, time\n"
            "signal.signal(signal.SIGTERM, signal.SIG_IGN)\n"
            "print('Serving HTTP on', flush=True)\n"
            "time.sleep(30)\n"
        )
        handle = await _spawn(script)
        await wait_for_ready(handle, MARKERS, timeout=10)

        assert await stop_process(handle, grace_period=0.2) is True
        assert handle.process.returncode is not None

    @pytest.mark.asyncio
    async def test_kill_process_tree_sync(self) -> None:
        """The synchronous teardown kills a running process."""
        handle = await _spawn(SLEEP_SCRIPT)

        assert kill_process_tree_sync(handle.pid, grace_period=2) is True
        await handle.process.wait()
        assert handle.process.returncode is not None

    @pytest.mark.asyncio
    async def test_signal_missing_process(self) -> None:
        """Signalling a reaped pid is a no-op."""
        handle = await _spawn("pass\n")
        await handle.process.wait()

        assert signal_process_tree(handle.pid) == []
        assert kill_process_tree_sync(handle.pid) is False
