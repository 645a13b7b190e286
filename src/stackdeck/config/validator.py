"""Validation utilities for StackDeck stack files."""

from typing import Any

from pydantic import ValidationError as PydanticValidationError


def _format_location(loc: tuple[Any, ...], data: dict[str, Any] | None) -> str:
    """Render an error location, naming nodes by id instead of list index."""
    parts: list[str] = []
    for index, item in enumerate(loc):
        if (
            isinstance(item, int)
            and index > 0
            and loc[index - 1] == "nodes"
            and data is not None
        ):
            nodes = data.get("nodes")
            if isinstance(nodes, list) and item < len(nodes):
                node = nodes[item]
                if isinstance(node, dict) and node.get("id"):
                    parts.append(f"[{node['id']}]")
                    continue
        parts.append(str(item))
    return ".".join(parts) if parts else "unknown"


def flatten_pydantic_errors(
    exc: PydanticValidationError, data: dict[str, Any] | None = None
) -> list[str]:
    """Flatten a pydantic ValidationError into human-readable messages.

    Args:
        exc: Pydantic ValidationError exception
        data: Raw stack data, used to resolve node indexes to node ids

    Returns:
        List of messages, one per field error

    Example:
        >>> from stackdeck.models.config import StackConfig
        >>> try:
        ...     StackConfig(name="")
        ... except PydanticValidationError as e:
        ...     flatten_pydantic_errors(e)[0].startswith("Field 'name'")
        True
    """
    errors: list[str] = []

    for error in exc.errors():
        # Tagged-union errors include the union tag in their location
        loc = tuple(
            item
            for item in error.get("loc", ())
            if item not in ("ContentServer", "StaticSite", "generic")
        )
        field_path = _format_location(loc, data)
        msg = error.get("msg", "Unknown error")

        if error.get("type") == "value_error":
            formatted = f"Field '{field_path}': {msg} (received: {error.get('input')!r})"
        else:
            formatted = f"Field '{field_path}': {msg}"
        errors.append(formatted)

    return errors if errors else ["Validation failed with unknown error"]
