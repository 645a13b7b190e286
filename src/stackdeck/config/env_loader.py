"""Environment variable helpers for stack files.

Supports ``${VAR}`` and ``${VAR:-default}`` substitution in raw YAML text
and loading ``.env`` files with python-dotenv.
"""

from __future__ import annotations

import os
import re
from pathlib import Path

from dotenv import load_dotenv

from stackdeck.lib.errors import ConfigError

_ENV_PATTERN = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)(?::-([^}]*))?\}")


def load_env_file(path: Path) -> bool:
    """Load a ``.env`` file into the process environment.

    Existing environment variables take precedence over file values.

    Returns:
        True if the file existed and was loaded
    """
    if not path.is_file():
        return False
    return load_dotenv(path, override=False)


def substitute_env_vars(text: str) -> str:
    """Replace ``${VAR}`` and ``${VAR:-default}`` references in text.

    Args:
        text: Raw text, typically the contents of a YAML file

    Returns:
        Text with all references replaced

    Raises:
        ConfigError: If a referenced variable is unset and has no default

    Example:
        >>> os.environ["PORT"] = "9000"
        >>> substitute_env_vars("port: ${PORT}")
        'port: 9000'
    """

    def _replace(match: re.Match[str]) -> str:
        name, default = match.group(1), match.group(2)
        value = os.environ.get(name)
        if value is not None:
            return value
        if default is not None:
            return default
        raise ConfigError(
            name,
            f"Environment variable '{name}' is not set and has no default",
        )

    return _ENV_PATTERN.sub(_replace, text)
