"""Configuration loader for StackDeck stack files.

This module provides the ConfigLoader class for loading, parsing, and
validating stack definitions from YAML files, plus environment overrides for
provider and backend settings.
"""

import logging
import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError as PydanticValidationError

from stackdeck.config.env_loader import load_env_file, substitute_env_vars
from stackdeck.config.validator import flatten_pydantic_errors
from stackdeck.lib.errors import ConfigError, FileNotFoundError
from stackdeck.models.config import StackConfig

logger = logging.getLogger(__name__)

# Environment variable to (section, field) mapping
ENV_VAR_MAP: dict[str, tuple[str, str]] = {
    "STACKDECK_STARTUP_TIMEOUT": ("provider", "startup_timeout"),
    "STACKDECK_HEALTH_RETRIES": ("provider", "health_retries"),
    "STACKDECK_HEALTH_RETRY_INTERVAL": ("provider", "health_retry_interval"),
    "STACKDECK_PROBE_TIMEOUT": ("provider", "probe_timeout"),
    "STACKDECK_KILL_GRACE_PERIOD": ("provider", "kill_grace_period"),
    "STACKDECK_SITES_DIR": ("provider", "sites_dir"),
    "STACKDECK_DB_PATH": ("backend", "db_path"),
    "STACKDECK_LOCK_TTL": ("backend", "lock_ttl"),
}

_FLOAT_FIELDS = {
    "startup_timeout",
    "health_retry_interval",
    "probe_timeout",
    "kill_grace_period",
    "lock_ttl",
}
_INT_FIELDS = {"health_retries"}


def _parse_env_value(field_name: str, value: str) -> Any:
    """Parse environment variable value to the type of its field.

    Raises:
        ValueError: If value cannot be parsed
    """
    if field_name in _FLOAT_FIELDS:
        return float(value)
    if field_name in _INT_FIELDS:
        return int(value)
    return value


def apply_env_overrides(
    config: dict[str, Any], env_vars: os._Environ[str] | dict[str, str]
) -> dict[str, Any]:
    """Apply STACKDECK_* environment overrides to raw stack data (in-place).

    Unparseable values are logged and ignored.

    Returns:
        The same dictionary, for chaining
    """
    for env_name, (section, field_name) in ENV_VAR_MAP.items():
        if env_name not in env_vars:
            continue
        try:
            value = _parse_env_value(field_name, env_vars[env_name])
        except ValueError:
            logger.warning(f"Ignoring invalid value for {env_name}: {env_vars[env_name]!r}")
            continue
        section_dict = config.setdefault(section, {})
        if isinstance(section_dict, dict):
            section_dict[field_name] = value
    return config


def _read_yaml_with_env_substitution(path: Path) -> dict[str, Any] | None:
    """Read a YAML file with environment variable substitution.

    Raises:
        OSError: If file cannot be read
        yaml.YAMLError: If YAML parsing fails
        ConfigError: If env var substitution fails
    """
    raw_text = path.read_text(encoding="utf-8")
    substituted = substitute_env_vars(raw_text)
    content = yaml.safe_load(substituted)
    return content if content else None


class ConfigLoader:
    """Loads and validates stack definitions from YAML files.

    This class handles:
    - Loading a ``.env`` file next to the stack file
    - Environment variable substitution in the YAML text
    - STACKDECK_* environment overrides for provider and backend settings
    - Converting validation errors into human-readable messages
    """

    def load_stack_yaml(self, file_path: str) -> StackConfig:
        """Load and validate a stack definition from YAML.

        Configuration precedence (highest to lowest):
        1. STACKDECK_* environment variables
        2. stack.yaml explicit settings
        3. Built-in defaults

        Args:
            file_path: Path to stack.yaml file

        Returns:
            Validated StackConfig instance

        Raises:
            FileNotFoundError: If file doesn't exist
            ConfigError: If YAML parsing or validation fails
        """
        path = Path(file_path)
        load_env_file(path.parent / ".env")

        try:
            stack_data = _read_yaml_with_env_substitution(path)
        except OSError as e:
            raise FileNotFoundError(
                file_path,
                f"Stack file not found at {file_path}. "
                f"Please ensure the file exists at this path.",
            ) from e
        except yaml.YAMLError as e:
            raise ConfigError(
                "yaml_parse",
                f"Failed to parse YAML file {file_path}: {str(e)}",
            ) from e

        if not stack_data:
            stack_data = {}
        if not isinstance(stack_data, dict):
            raise ConfigError(
                "stack_validation",
                f"Stack file {file_path} must contain a mapping at the top level",
            )

        apply_env_overrides(stack_data, os.environ)

        try:
            stack = StackConfig(**stack_data)
        except PydanticValidationError as e:
            error_text = "\n".join(flatten_pydantic_errors(e, stack_data))
            raise ConfigError(
                "stack_validation",
                f"Invalid stack configuration in {file_path}:\n{error_text}",
            ) from e

        logger.debug(f"Loaded stack '{stack.name}' with {len(stack.nodes)} nodes")
        return stack
