"""Unit tests for the stackdeck deploy CLI command group.

Tests cover:
- Lock inspection and forced release
- Audit log listing
- Drift status against saved state
- The up command with a mocked reconciliation pass
- Exit codes for configuration, deployment and lock errors
"""

from __future__ import annotations

from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest
from click.testing import CliRunner

from stackdeck.cli.main import main
from stackdeck.deploy.backends import SQLiteBackend
from stackdeck.deploy.reconcile import ReconcileResult, snapshot
from stackdeck.lib.errors import DeploymentError, LockConflictError
from stackdeck.models.node import ContentServerNode


@pytest.fixture
def runner() -> CliRunner:
    """Create a CLI runner."""
    return CliRunner()


@pytest.fixture
def stack_file(temp_dir: Path) -> Path:
    """Create a stack.yaml with its database and sites in the temp dir."""
    path = temp_dir / "stack.yaml"
    path.write_text(
        f"""
name: dev
provider:
  sites_dir: {temp_dir / "sites"}
backend:
  db_path: {temp_dir / "state.db"}
nodes:
  - id: dev-server
    resource_kind: ContentServer
    props:
      port: 9000
"""
    )
    return path


@pytest.fixture
def db_path(temp_dir: Path) -> Path:
    return temp_dir / "state.db"


def _running_node() -> ContentServerNode:
    return ContentServerNode(
        id="dev-server",
        props={"port": 9000},
        outputs={"url": "http://localhost:9000", "port": 9000, "pid": 4321},
    )


@pytest.mark.unit
class TestDeployGroup:
    """Tests for the command group itself."""

    def test_help_lists_subcommands(self, runner: CliRunner) -> None:
        """The group help lists every subcommand."""
        result = runner.invoke(main, ["deploy"])

        assert result.exit_code == 0
        for name in ("up", "status", "lock", "unlock", "audit"):
            assert name in result.output

    def test_version(self, runner: CliRunner) -> None:
        """--version prints the package version."""
        result = runner.invoke(main, ["--version"])
        assert result.exit_code == 0
        assert "stackdeck" in result.output


@pytest.mark.unit
class TestLockCommands:
    """Tests for lock and unlock."""

    def test_lock_when_unlocked(self, runner: CliRunner, stack_file: Path) -> None:
        """An unlocked stack is reported as such."""
        result = runner.invoke(main, ["deploy", "lock", str(stack_file)])

        assert result.exit_code == 0
        assert "Stack 'dev' is not locked." in result.output

    def test_lock_shows_holder(
        self, runner: CliRunner, stack_file: Path, db_path: Path
    ) -> None:
        """A held lock shows its holder and TTL."""
        with SQLiteBackend(db_path) as backend:
            backend.acquire_lock("dev", "worker-1", 300)

        result = runner.invoke(main, ["deploy", "lock", str(stack_file)])

        assert result.exit_code == 0
        assert "(held)" in result.output
        assert "worker-1" in result.output
        assert "300s" in result.output

    def test_lock_shows_fractional_ttl(
        self, runner: CliRunner, stack_file: Path, db_path: Path
    ) -> None:
        """A sub-second lock can be inspected."""
        with SQLiteBackend(db_path) as backend:
            backend.acquire_lock("dev", "worker-1", 0.5)

        result = runner.invoke(main, ["deploy", "lock", str(stack_file)])

        assert result.exit_code == 0, result.output
        assert "0.5s" in result.output

    def test_lock_shows_expired(
        self, runner: CliRunner, stack_file: Path, db_path: Path
    ) -> None:
        """An expired lock is marked as expired."""
        with SQLiteBackend(db_path) as backend:
            backend.acquire_lock("dev", "worker-1", 0)

        result = runner.invoke(main, ["deploy", "lock", str(stack_file)])

        assert "(expired)" in result.output

    def test_unlock_force(
        self, runner: CliRunner, stack_file: Path, db_path: Path
    ) -> None:
        """--force releases the lock and records an audit entry."""
        with SQLiteBackend(db_path) as backend:
            backend.acquire_lock("dev", "worker-1", 300)

        result = runner.invoke(main, ["deploy", "unlock", str(stack_file), "--force"])

        assert result.exit_code == 0
        assert "released" in result.output
        with SQLiteBackend(db_path) as backend:
            assert backend.check_lock("dev") is None
            (entry,) = backend.list_audit_log("dev")
            assert entry.entry["action"] == "force_unlock"
            assert entry.entry["holder"] == "worker-1"

    def test_unlock_declined(
        self, runner: CliRunner, stack_file: Path, db_path: Path
    ) -> None:
        """Declining the prompt keeps the lock."""
        with SQLiteBackend(db_path) as backend:
            backend.acquire_lock("dev", "worker-1", 300)

        result = runner.invoke(main, ["deploy", "unlock", str(stack_file)], input="n\n")

        assert "Unlock aborted." in result.output
        with SQLiteBackend(db_path) as backend:
            assert backend.check_lock("dev") is not None

    def test_unlock_when_unlocked(self, runner: CliRunner, stack_file: Path) -> None:
        """Unlocking an unlocked stack only reports it."""
        result = runner.invoke(main, ["deploy", "unlock", str(stack_file), "--force"])

        assert result.exit_code == 0
        assert "is not locked" in result.output


@pytest.mark.unit
class TestAuditCommand:
    """Tests for audit."""

    def test_lists_entries(
        self, runner: CliRunner, stack_file: Path, db_path: Path
    ) -> None:
        """Entries are printed one per line in order."""
        with SQLiteBackend(db_path) as backend:
            backend.append_audit_log("dev", {"action": "deploy", "n": 1})
            backend.append_audit_log("dev", {"action": "deploy", "n": 2})

        result = runner.invoke(main, ["deploy", "audit", str(stack_file)])

        assert result.exit_code == 0
        lines = [line for line in result.output.splitlines() if line.strip()]
        assert len(lines) == 2
        assert '"n": 1' in lines[0]
        assert '"n": 2' in lines[1]


@pytest.mark.unit
class TestStatusCommand:
    """Tests for status."""

    def test_no_state(self, runner: CliRunner, stack_file: Path) -> None:
        """A stack that was never deployed has nothing to report."""
        result = runner.invoke(main, ["deploy", "status", str(stack_file)])

        assert result.exit_code == 0
        assert "No deployed state for stack 'dev'." in result.output

    def test_live_server(
        self, runner: CliRunner, stack_file: Path, db_path: Path
    ) -> None:
        """Responding servers are reported as ok."""
        with SQLiteBackend(db_path) as backend:
            backend.save_state("dev", snapshot("dev", [_running_node()]))

        with patch(
            "stackdeck.deploy.providers.content_server.check_server_alive",
            new=AsyncMock(return_value=True),
        ):
            result = runner.invoke(main, ["deploy", "status", str(stack_file)])

        assert result.exit_code == 0
        assert "dev-server: ok" in result.output

    def test_drifted_server(
        self, runner: CliRunner, stack_file: Path, db_path: Path
    ) -> None:
        """Drift is reported and the command exits with 1."""
        with SQLiteBackend(db_path) as backend:
            backend.save_state("dev", snapshot("dev", [_running_node()]))

        with patch(
            "stackdeck.deploy.providers.content_server.check_server_alive",
            new=AsyncMock(return_value=False),
        ):
            result = runner.invoke(main, ["deploy", "status", str(stack_file)])

        assert result.exit_code == 1
        assert "dev-server: DRIFTED" in result.output
        assert "Server not responding on port 9000" in result.output

    def test_json_output(
        self, runner: CliRunner, stack_file: Path, db_path: Path
    ) -> None:
        """--json prints the drift reports."""
        with SQLiteBackend(db_path) as backend:
            backend.save_state("dev", snapshot("dev", [_running_node()]))

        with patch(
            "stackdeck.deploy.providers.content_server.check_server_alive",
            new=AsyncMock(return_value=True),
        ):
            result = runner.invoke(main, ["deploy", "status", str(stack_file), "--json"])

        assert result.exit_code == 0
        assert '"node_id": "dev-server"' in result.output
        assert '"has_drifted": false' in result.output


@pytest.mark.unit
class TestUpCommand:
    """Tests for up."""

    def test_up_once(self, runner: CliRunner, stack_file: Path) -> None:
        """A successful pass prints the deployed nodes."""
        node = _running_node()
        mock_reconcile = AsyncMock(
            return_value=ReconcileResult(
                stack_name="dev", nodes=[node], deployed=["dev-server"]
            )
        )

        with patch("stackdeck.cli.commands.deploy.reconcile", new=mock_reconcile):
            result = runner.invoke(
                main,
                ["deploy", "up", str(stack_file), "--once", "--holder", "ci", "--ttl", "30"],
            )

        assert result.exit_code == 0, result.output
        assert "Deployment Successful!" in result.output
        assert "dev-server: deployed  http://localhost:9000" in result.output

        kwargs = mock_reconcile.call_args.kwargs
        assert kwargs["holder"] == "ci"
        assert kwargs["ttl_seconds"] == 30
        assert mock_reconcile.call_args.args[2] == "dev"

    def test_up_uses_backend_ttl(self, runner: CliRunner, stack_file: Path) -> None:
        """Without --ttl the backend lock_ttl is used."""
        mock_reconcile = AsyncMock(
            return_value=ReconcileResult(stack_name="dev", nodes=[])
        )

        with patch("stackdeck.cli.commands.deploy.reconcile", new=mock_reconcile):
            result = runner.invoke(main, ["deploy", "up", str(stack_file), "--once"])

        assert result.exit_code == 0, result.output
        assert mock_reconcile.call_args.kwargs["ttl_seconds"] == 300

    def test_up_lock_conflict(self, runner: CliRunner, stack_file: Path) -> None:
        """A held lock exits with code 4 and names the holder."""
        mock_reconcile = AsyncMock(
            side_effect=LockConflictError("dev", "worker-1", 5, 300)
        )

        with patch("stackdeck.cli.commands.deploy.reconcile", new=mock_reconcile):
            result = runner.invoke(main, ["deploy", "up", str(stack_file), "--once"])

        assert result.exit_code == 4
        assert "Lock already held by worker-1" in result.output

    def test_up_deployment_error(self, runner: CliRunner, stack_file: Path) -> None:
        """Deployment failures exit with code 3."""
        mock_reconcile = AsyncMock(
            side_effect=DeploymentError(operation="materialize", message="port busy")
        )

        with patch("stackdeck.cli.commands.deploy.reconcile", new=mock_reconcile):
            result = runner.invoke(main, ["deploy", "up", str(stack_file), "--once"])

        assert result.exit_code == 3
        assert "port busy" in result.output

    def test_up_invalid_stack(self, runner: CliRunner, temp_dir: Path) -> None:
        """Configuration errors exit with code 2."""
        path = temp_dir / "stack.yaml"
        path.write_text(
            "name: dev\n"
            "nodes:\n"
            "  - id: web\n"
            "    resource_kind: ContentServer\n"
            "    props: {port: 0}\n"
        )

        result = runner.invoke(main, ["deploy", "up", str(path), "--once"])

        assert result.exit_code == 2
        assert "Configuration error" in result.output

    def test_up_missing_stack_file(self, runner: CliRunner, temp_dir: Path) -> None:
        """A missing stack file is rejected by click."""
        result = runner.invoke(
            main, ["deploy", "up", str(temp_dir / "missing.yaml"), "--once"]
        )
        assert result.exit_code == 2
