"""Pydantic models for StackDeck configuration.

This module defines the provider, backend and stack file schemas. Defaults
live in ``stackdeck.config.defaults``.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator

from stackdeck.config.defaults import (
    BACKEND_DEFAULTS,
    PROVIDER_DEFAULTS,
    READY_MARKERS,
    default_server_command,
)
from stackdeck.models.node import AnyDeploymentNode, DeploymentNode


class ProviderConfig(BaseModel):
    """Content server provider configuration.

    Attributes:
        startup_timeout: Seconds to wait for the readiness line
        health_retries: HTTP verification attempts after startup
        health_retry_interval: Seconds between verification attempts
        probe_timeout: Seconds before a liveness probe is considered failed
        kill_grace_period: Seconds between SIGTERM and SIGKILL on teardown
        host: Host name used in published URLs
        probe_host: Address used for liveness probes
        sites_dir: Directory holding one sub-directory per site
        command: Server command template ({port}, {host}, {site_dir})
        ready_markers: Lines on stdout that signal readiness
    """

    model_config = ConfigDict(extra="forbid")

    startup_timeout: float = Field(
        default=float(PROVIDER_DEFAULTS["startup_timeout"]), gt=0
    )
    health_retries: int = Field(default=int(PROVIDER_DEFAULTS["health_retries"]), ge=1)
    health_retry_interval: float = Field(
        default=float(PROVIDER_DEFAULTS["health_retry_interval"]), ge=0
    )
    probe_timeout: float = Field(default=float(PROVIDER_DEFAULTS["probe_timeout"]), gt=0)
    kill_grace_period: float = Field(
        default=float(PROVIDER_DEFAULTS["kill_grace_period"]), ge=0
    )
    host: str = Field(default=str(PROVIDER_DEFAULTS["host"]))
    probe_host: str = Field(default=str(PROVIDER_DEFAULTS["probe_host"]))
    sites_dir: str = Field(default=str(PROVIDER_DEFAULTS["sites_dir"]))
    command: list[str] = Field(default_factory=default_server_command)
    ready_markers: list[str] = Field(default_factory=lambda: list(READY_MARKERS))

    @field_validator("command")
    @classmethod
    def validate_command(cls, v: list[str]) -> list[str]:
        """Validate that the command template is not empty."""
        if not v:
            raise ValueError("command must contain at least the executable")
        return v


class BackendConfig(BaseModel):
    """SQLite state backend configuration."""

    model_config = ConfigDict(extra="forbid")

    db_path: str = Field(default=str(BACKEND_DEFAULTS["db_path"]))
    lock_ttl: float = Field(
        default=float(BACKEND_DEFAULTS["lock_ttl"]), allow_inf_nan=False
    )


class StackConfig(BaseModel):
    """A stack file: named set of deployment nodes plus layer settings."""

    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., min_length=1, description="Stack name used for state")
    provider: ProviderConfig = Field(default_factory=ProviderConfig)
    backend: BackendConfig = Field(default_factory=BackendConfig)
    nodes: list[AnyDeploymentNode] = Field(default_factory=list)

    @field_validator("nodes")
    @classmethod
    def validate_unique_ids(cls, v: list[DeploymentNode]) -> list[DeploymentNode]:
        """Validate that node ids are unique within the stack."""
        seen: set[str] = set()
        for node in v:
            if node.id in seen:
                raise ValueError(f"Duplicate node id: {node.id}")
            seen.add(node.id)
        return v
