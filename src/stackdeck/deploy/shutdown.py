"""Process-wide teardown of worker processes.

Interpreter exit, SIGINT and SIGTERM hooks are installed once per process no
matter how many providers are constructed. Each hook funnels into the
synchronous ``shutdown()`` routine of every live provider.
"""

from __future__ import annotations

import atexit
import logging
import signal
import threading
import weakref
from types import FrameType
from typing import Any, Protocol

logger = logging.getLogger(__name__)


class SupportsShutdown(Protocol):
    """Anything that can stop its worker processes synchronously."""

    def shutdown(self) -> None:
        """Stop all tracked processes."""
        ...


_providers: weakref.WeakSet[Any] = weakref.WeakSet()
_registration_lock = threading.Lock()
_registered = False


def shutdown_all() -> None:
    """Run every registered provider's teardown routine."""
    for provider in list(_providers):
        try:
            provider.shutdown()
        except Exception as exc:  # noqa: BLE001
            # Continue with the remaining providers
            logger.error(f"Shutdown of {provider!r} failed: {exc}")


def _handle_signal(signum: int, frame: FrameType | None, previous: Any) -> None:
    logger.info(f"Received {signal.Signals(signum).name}, stopping all servers...")
    shutdown_all()
    if callable(previous):
        previous(signum, frame)
        return
    raise SystemExit(0)


def _install_signal_handler(signum: int) -> None:
    previous = signal.getsignal(signum)
    if previous in (signal.SIG_IGN, None):
        return

    def handler(sig: int, frame: FrameType | None) -> None:
        _handle_signal(sig, frame, previous)

    signal.signal(signum, handler)


def register_for_shutdown(provider: SupportsShutdown) -> None:
    """Track a provider and install the process-wide hooks on first use.

    Signal handlers can only be installed from the main thread; elsewhere
    only the interpreter exit hook is installed.
    """
    global _registered
    _providers.add(provider)

    with _registration_lock:
        if _registered:
            return
        _registered = True

    atexit.register(shutdown_all)
    if threading.current_thread() is threading.main_thread():
        for signum in (signal.SIGINT, signal.SIGTERM):
            _install_signal_handler(signum)
    else:
        logger.debug("Not on the main thread, skipping signal handler installation")
