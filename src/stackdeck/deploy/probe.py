"""HTTP liveness probing for deployed content servers.

A probe is a reachability check, not a health check: any HTTP response
means the server is alive, any transport error or timeout means it is not.
"""

from __future__ import annotations

import asyncio
import logging

import httpx

from stackdeck.lib.errors import HealthCheckError

logger = logging.getLogger(__name__)


def server_url(host: str, port: int) -> str:
    """Return the base URL of a server bound to ``port``."""
    return f"http://{host}:{port}"


async def check_server_alive(
    host: str,
    port: int,
    timeout: float = 1.0,
    transport: httpx.AsyncBaseTransport | None = None,
) -> bool:
    """Return True if anything answers an HTTP GET on the port.

    Args:
        host: Host to probe
        port: Port to probe
        timeout: Seconds before the request is abandoned
        transport: Optional transport override (used by tests)

    Returns:
        True on any HTTP response, False on connection errors and timeouts
    """
    url = server_url(host, port)
    # Proxies from the environment must never see localhost probes
    async with httpx.AsyncClient(
        timeout=timeout, transport=transport, trust_env=False
    ) as client:
        try:
            await client.get(url)
        except httpx.HTTPError as exc:
            logger.debug(f"Probe of {url} failed: {exc!r}")
            return False
    return True


async def wait_for_server(
    host: str,
    port: int,
    retries: int = 10,
    interval: float = 0.5,
    timeout: float = 1.0,
    transport: httpx.AsyncBaseTransport | None = None,
) -> int:
    """Poll a freshly started server until it answers HTTP requests.

    A process printing its startup banner does not guarantee the listener is
    accepting connections yet, so materialization verifies with real
    requests before reporting success.

    Args:
        host: Host to probe
        port: Port to probe
        retries: Maximum number of attempts
        interval: Seconds to sleep between failed attempts
        timeout: Per-attempt request timeout
        transport: Optional transport override (used by tests)

    Returns:
        The 1-based attempt number that succeeded

    Raises:
        HealthCheckError: If no attempt succeeded
    """
    for attempt in range(1, retries + 1):
        if await check_server_alive(host, port, timeout=timeout, transport=transport):
            return attempt
        if attempt < retries:
            await asyncio.sleep(interval)
    raise HealthCheckError(port=port, attempts=retries)
