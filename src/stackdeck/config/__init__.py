"""Configuration loading and validation for StackDeck stacks.

Main components:
- ``stackdeck.config.loader.ConfigLoader``: load and validate stack.yaml files
- Environment variable substitution (${VAR} and ${VAR:-default})
- STACKDECK_* environment overrides
- Default provider and backend settings

The loader is imported from its module directly because the configuration
models import ``stackdeck.config.defaults``.
"""

from stackdeck.config.env_loader import load_env_file, substitute_env_vars

__all__ = [
    "substitute_env_vars",
    "load_env_file",
]
