"""Drift detection result model."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from stackdeck.lib.clock import now_ms


class DriftReport(BaseModel):
    """Result of comparing a node's recorded outputs with reality.

    Attributes:
        node_id: Node that was checked
        has_drifted: True when the recorded resource is no longer reachable
        expected_state: Outputs recorded for the node, when checked
        actual_state: Observed state (the recorded outputs when alive)
        drift_description: Human-readable explanation when drifted
        timestamp: Milliseconds since the epoch when the check completed
    """

    model_config = ConfigDict(extra="forbid")

    node_id: str
    has_drifted: bool = False
    expected_state: dict[str, Any] | None = None
    actual_state: dict[str, Any] | None = None
    drift_description: str | None = None
    timestamp: int = Field(default_factory=now_ms)
