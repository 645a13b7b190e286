"""Default configuration values for StackDeck."""

import sys

# Content server provider defaults
PROVIDER_DEFAULTS: dict[str, int | float | str] = {
    "startup_timeout": 10.0,  # seconds
    "health_retries": 10,
    "health_retry_interval": 0.5,  # seconds
    "probe_timeout": 1.0,  # seconds
    "kill_grace_period": 2.0,  # seconds
    "host": "localhost",
    "probe_host": "127.0.0.1",
    "sites_dir": "sites",
}

# Readiness lines printed by supported content servers on stdout
READY_MARKERS: tuple[str, ...] = (
    "Serving HTTP on",  # python -m http.server
    "Hit CTRL-C to stop",  # npm http-server
    "Available on",
)


def default_server_command() -> list[str]:
    """Return the default content server command template.

    ``{port}``, ``{host}`` and ``{site_dir}`` are substituted per node. The
    interpreter runs unbuffered so the readiness line reaches the pipe
    immediately.
    """
    return [
        sys.executable,
        "-u",
        "-m",
        "http.server",
        "{port}",
        "--bind",
        "127.0.0.1",
        "--directory",
        "{site_dir}",
    ]


# State backend defaults
BACKEND_DEFAULTS: dict[str, int | str] = {
    "db_path": "stackdeck-state.db",
    "lock_ttl": 300,  # seconds
}

DEFAULT_STACK_FILE = "stack.yaml"
