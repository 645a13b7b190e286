"""CLI commands for deploying StackDeck stacks.

Implements the 'stackdeck deploy' command group: running a reconciliation
pass, reporting drift, and inspecting the stack lock and audit log.
"""

from __future__ import annotations

import asyncio
import json
import sys
from collections.abc import Generator
from contextlib import contextmanager

import click

from stackdeck.config.defaults import DEFAULT_STACK_FILE
from stackdeck.deploy.backends import create_backend
from stackdeck.deploy.backends.base import BaseBackend
from stackdeck.deploy.providers import create_provider
from stackdeck.deploy.providers.base import BaseProvider
from stackdeck.deploy.reconcile import ReconcileResult, load_nodes, reconcile
from stackdeck.lib.clock import now_ms
from stackdeck.lib.errors import (
    ConfigError,
    DeploymentError,
    FileNotFoundError,
    LockConflictError,
    StateBackendError,
)
from stackdeck.lib.logging_config import get_logger, setup_logging
from stackdeck.models.config import StackConfig
from stackdeck.models.drift import DriftReport

logger = get_logger(__name__)

STACK_FILE_ARGUMENT = click.argument(
    "stack_file",
    type=click.Path(exists=True, dir_okay=False),
    default=DEFAULT_STACK_FILE,
    required=False,
)
VERBOSE_OPTION = click.option(
    "--verbose", "-v", is_flag=True, help="Enable verbose debug logging"
)
QUIET_OPTION = click.option("--quiet", "-q", is_flag=True, help="Suppress progress output")


@contextmanager
def handle_deployment_errors() -> Generator[None, None, None]:
    """Context manager for consistent error handling in deploy commands.

    Exit codes:
        2: Configuration error
        3: Deployment or state backend error
        4: Stack is locked by another holder
    """
    try:
        yield
    except (ConfigError, FileNotFoundError) as e:
        logger.error(f"Configuration error: {e}")
        click.secho("Error: Configuration error", fg="red", err=True)
        click.echo(f"  {e.message}", err=True)
        sys.exit(2)
    except LockConflictError as e:
        logger.error(f"Lock conflict: {e}")
        click.secho(f"Error: stack '{e.stack_name}' is locked", fg="red", err=True)
        click.echo(f"  {e.message}", err=True)
        sys.exit(4)
    except (DeploymentError, StateBackendError) as e:
        logger.error(f"Deployment error: {e}")
        click.secho(f"Error: {e.operation} failed", fg="red", err=True)
        click.echo(f"  {e.message}", err=True)
        sys.exit(3)


def _load_stack(stack_file: str) -> StackConfig:
    from stackdeck.config.loader import ConfigLoader

    return ConfigLoader().load_stack_yaml(stack_file)


@click.group(name="deploy", invoke_without_command=True)
@click.pass_context
def deploy(ctx: click.Context) -> None:
    """Deploy StackDeck stacks and inspect their state.

    Subcommands:

        up      Deploy a stack and keep its servers running
        status  Report drift for the last deployed state
        lock    Show the stack lock
        unlock  Force-release the stack lock
        audit   Show the stack audit log

    Example:

        stackdeck deploy up stack.yaml
    """
    ctx.ensure_object(dict)

    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


async def _up(
    stack: StackConfig,
    provider: BaseProvider,
    backend: BaseBackend,
    holder: str | None,
    ttl: float,
    serve: bool,
) -> ReconcileResult:
    try:
        result = await reconcile(
            provider,
            backend,
            stack.name,
            stack.nodes,
            holder=holder,
            ttl_seconds=ttl,
        )
        _display_result(result)
        if serve:
            click.echo("Servers running. Press Ctrl-C to stop.")
            await asyncio.Event().wait()
        return result
    finally:
        await provider.cleanup()


@deploy.command()
@STACK_FILE_ARGUMENT
@click.option("--holder", type=str, default=None, help="Lock holder identity")
@click.option(
    "--ttl",
    type=float,
    default=None,
    help="Lock time-to-live in seconds (default from stack backend config)",
)
@click.option(
    "--once",
    is_flag=True,
    help="Stop servers after deploying instead of serving until interrupted",
)
@VERBOSE_OPTION
@QUIET_OPTION
def up(
    stack_file: str,
    holder: str | None,
    ttl: float | None,
    once: bool,
    verbose: bool,
    quiet: bool,
) -> None:
    """Run a reconciliation pass for a stack.

    STACK_FILE is the path to the stack.yaml definition.

    Example:

        stackdeck deploy up

        stackdeck deploy up stack.yaml --holder ci-runner --ttl 60
    """
    setup_logging(verbose=verbose, quiet=quiet)

    with handle_deployment_errors():
        stack = _load_stack(stack_file)
        backend = create_backend(stack.backend)
        try:
            provider = create_provider(
                stack.provider, backend=backend, stack_name=stack.name
            )
            asyncio.run(
                _up(
                    stack,
                    provider,
                    backend,
                    holder,
                    ttl if ttl is not None else stack.backend.lock_ttl,
                    serve=not once,
                )
            )
        except KeyboardInterrupt:
            click.echo()
            click.secho("Stopped.", fg="yellow")
        finally:
            backend.close()


async def _status(
    provider: BaseProvider, backend: BaseBackend, stack_name: str
) -> list[DriftReport]:
    nodes = load_nodes(backend.get_state(stack_name))
    return [await provider.detect_drift(node) for node in nodes]


@deploy.command()
@STACK_FILE_ARGUMENT
@click.option("--json", "as_json", is_flag=True, help="Print drift reports as JSON")
@VERBOSE_OPTION
@QUIET_OPTION
def status(stack_file: str, as_json: bool, verbose: bool, quiet: bool) -> None:
    """Report drift between saved state and running servers.

    Exits with code 1 when any node has drifted.
    """
    setup_logging(verbose=verbose, quiet=quiet)

    with handle_deployment_errors():
        stack = _load_stack(stack_file)
        backend = create_backend(stack.backend)
        try:
            provider = create_provider(
                stack.provider, backend=backend, stack_name=stack.name
            )
            reports = asyncio.run(_status(provider, backend, stack.name))
        finally:
            backend.close()

    if as_json:
        click.echo(json.dumps([report.model_dump() for report in reports], indent=2))
    elif not reports:
        click.echo(f"No deployed state for stack '{stack.name}'.")
    else:
        click.echo()
        click.secho(f"Stack Status: {stack.name}", bold=True)
        for report in reports:
            if report.has_drifted:
                click.secho(f"  {report.node_id}: DRIFTED", fg="red")
                click.echo(f"    {report.drift_description}")
            else:
                click.secho(f"  {report.node_id}: ok", fg="green")
        click.echo()

    if any(report.has_drifted for report in reports):
        sys.exit(1)


@deploy.command()
@STACK_FILE_ARGUMENT
@VERBOSE_OPTION
@QUIET_OPTION
def lock(stack_file: str, verbose: bool, quiet: bool) -> None:
    """Show the current lock for a stack."""
    setup_logging(verbose=verbose, quiet=quiet)

    with handle_deployment_errors():
        stack = _load_stack(stack_file)
        backend = create_backend(stack.backend)
        try:
            record = backend.check_lock(stack.name)
        finally:
            backend.close()

    if record is None:
        click.echo(f"Stack '{stack.name}' is not locked.")
        return

    now = now_ms()
    state = "expired" if record.is_expired(now) else "held"
    click.echo(f"Stack '{stack.name}' lock ({state}):")
    click.echo(f"  Holder:    {record.holder}")
    click.echo(f"  Age:       {record.age_ms(now) // 1000}s")
    click.echo(f"  TTL:       {record.ttl:g}s")


@deploy.command()
@STACK_FILE_ARGUMENT
@click.option("--force", is_flag=True, help="Skip confirmation prompt")
@VERBOSE_OPTION
@QUIET_OPTION
def unlock(stack_file: str, force: bool, verbose: bool, quiet: bool) -> None:
    """Force-release the lock for a stack."""
    setup_logging(verbose=verbose, quiet=quiet)

    with handle_deployment_errors():
        stack = _load_stack(stack_file)
        backend = create_backend(stack.backend)
        try:
            record = backend.check_lock(stack.name)
            if record is None:
                click.echo(f"Stack '{stack.name}' is not locked.")
                return

            if not force:
                confirm = click.confirm(
                    f"Release lock on '{stack.name}' held by {record.holder}?",
                    default=False,
                )
                if not confirm:
                    click.secho("Unlock aborted.", fg="yellow")
                    return

            backend.release_lock(stack.name)
            backend.append_audit_log(
                stack.name,
                {"action": "force_unlock", "holder": record.holder, "timestamp": now_ms()},
            )
        finally:
            backend.close()

    click.secho(f"Lock on '{stack.name}' released.", fg="green")


@deploy.command()
@STACK_FILE_ARGUMENT
@VERBOSE_OPTION
@QUIET_OPTION
def audit(stack_file: str, verbose: bool, quiet: bool) -> None:
    """Print the audit log for a stack."""
    setup_logging(verbose=verbose, quiet=quiet)

    with handle_deployment_errors():
        stack = _load_stack(stack_file)
        backend = create_backend(stack.backend)
        try:
            entries = backend.list_audit_log(stack.name)
        finally:
            backend.close()

    for entry in entries:
        click.echo(f"{entry.id}\t{entry.created_at}\t{json.dumps(entry.entry)}")


def _display_result(result: ReconcileResult) -> None:
    click.echo()
    click.secho("Deployment Successful!", fg="green", bold=True)
    click.echo(f"  Stack:     {result.stack_name}")
    for node in result.nodes:
        marker = "deployed" if node.id in result.deployed else "unchanged"
        url = getattr(node.outputs, "url", None)
        suffix = f"  {url}" if url else ""
        click.echo(f"  {node.id}: {marker}{suffix}")
    click.echo()
