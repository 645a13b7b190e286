"""StackDeck - resource providers for a declarative deployment demo.

StackDeck is the resource-provider layer invoked by a component-based
infrastructure-deployment engine. It deploys local content servers as
stand-ins for cloud resources and keeps deployment state in SQLite.

Main features:
- Spawn and supervise local HTTP content servers per deployment node
- Staleness sweeps and drift detection through HTTP liveness probes
- Process-tree teardown on cleanup, interpreter exit and signals
- SQLite state store with per-stack TTL locks and an append-only audit log
"""

from stackdeck.lib.errors import (
    ConfigError,
    DeploymentError,
    LockConflictError,
    StackDeckError,
    StateBackendError,
)

__version__ = "0.1.0"

__all__ = [
    "__version__",
    "ConfigError",
    "DeploymentError",
    "LockConflictError",
    "StackDeckError",
    "StateBackendError",
]
