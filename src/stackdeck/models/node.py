"""Pydantic models for deployment nodes.

A deployment node is the unit of desired and observed state exchanged with
the orchestrator. ``props`` is supplied by the caller and never changes
during a pass; ``outputs`` is written only by a resource provider and is
``None`` whenever the node has not been materialized or is known stale.

Props and outputs are a tagged union keyed by ``resource_kind``: each
managed kind has its own node subclass so providers can dispatch with
``isinstance`` instead of probing loosely typed dictionaries. Unknown kinds
fall back to the generic :class:`DeploymentNode`.
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Discriminator, Field, Tag, TypeAdapter


class ResourceKind(str, Enum):
    """Resource kinds understood by the built-in providers."""

    CONTENT_SERVER = "ContentServer"
    STATIC_SITE = "StaticSite"


DEFAULT_SITE_CONTENT = "<h1>Hello World</h1><p>Welcome to StackDeck!</p>"


class ContentServerProps(BaseModel):
    """Desired configuration for a content server.

    Attributes:
        name: Site name used to derive the content directory
        port: Local TCP port the server binds to
        content: HTML body served as index.html
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    name: str | None = Field(
        default=None, description="Site name (defaults to the node id)"
    )
    port: int = Field(default=8080, ge=1, le=65535, description="Port to bind")
    content: str = Field(
        default=DEFAULT_SITE_CONTENT, description="HTML body served as index.html"
    )


class ContentServerOutputs(BaseModel):
    """Observed state of a running content server."""

    model_config = ConfigDict(extra="forbid")

    url: str = Field(..., description="Base URL of the server")
    port: int = Field(..., description="Bound port")
    status: str = Field(default="running", description="Server status")
    pid: int | None = Field(default=None, description="Process id of the server")


class StaticSiteProps(BaseModel):
    """Desired configuration for a static site written to disk."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    name: str = Field(..., description="Site name used as directory name")
    content: str = Field(
        default=DEFAULT_SITE_CONTENT, description="HTML body written to index.html"
    )


class StaticSiteOutputs(BaseModel):
    """Observed state of a static site."""

    model_config = ConfigDict(extra="forbid")

    path: str = Field(..., description="Site directory")
    index_path: str = Field(..., description="Path of the written index.html")


class DeploymentNode(BaseModel):
    """Generic deployment node for resource kinds without a typed variant."""

    model_config = ConfigDict(extra="forbid", validate_assignment=True)

    id: str = Field(..., min_length=1, description="Stable node identity")
    resource_kind: str = Field(..., description="Provider discriminator")
    props: dict[str, Any] = Field(
        default_factory=dict, description="Desired configuration"
    )
    outputs: dict[str, Any] | None = Field(
        default=None, description="Provider-written observed state"
    )

    @property
    def is_materialized(self) -> bool:
        """Return True when the provider has recorded outputs."""
        return self.outputs is not None


class ContentServerNode(DeploymentNode):
    """Deployment node for a locally spawned content server."""

    resource_kind: Literal["ContentServer"] = "ContentServer"
    props: ContentServerProps = Field(  # type: ignore[assignment]
        default_factory=ContentServerProps
    )
    outputs: ContentServerOutputs | None = None  # type: ignore[assignment]

    @property
    def site_name(self) -> str:
        """Return the name used to derive the content directory."""
        return self.props.name or self.id


class StaticSiteNode(DeploymentNode):
    """Deployment node for a static site without a server process."""

    resource_kind: Literal["StaticSite"] = "StaticSite"
    props: StaticSiteProps  # type: ignore[assignment]
    outputs: StaticSiteOutputs | None = None  # type: ignore[assignment]


NODE_TYPES: dict[str, type[DeploymentNode]] = {
    ResourceKind.CONTENT_SERVER.value: ContentServerNode,
    ResourceKind.STATIC_SITE.value: StaticSiteNode,
}

_GENERIC_TAG = "generic"


def _node_kind(value: Any) -> str:
    """Return the union tag for raw node data or a node instance."""
    if isinstance(value, dict):
        kind = value.get("resource_kind")
    else:
        kind = getattr(value, "resource_kind", None)
    return kind if kind in NODE_TYPES else _GENERIC_TAG


AnyDeploymentNode = Annotated[
    Union[
        Annotated[ContentServerNode, Tag(ResourceKind.CONTENT_SERVER.value)],
        Annotated[StaticSiteNode, Tag(ResourceKind.STATIC_SITE.value)],
        Annotated[DeploymentNode, Tag(_GENERIC_TAG)],
    ],
    Discriminator(_node_kind),
]

_NODE_ADAPTER: TypeAdapter[DeploymentNode] = TypeAdapter(AnyDeploymentNode)


def parse_node(data: dict[str, Any] | DeploymentNode) -> DeploymentNode:
    """Validate raw node data into the node class for its resource kind.

    Args:
        data: Raw node mapping (for example from a stack file or saved state)
            or an already constructed node

    Returns:
        A typed node for known kinds, a generic DeploymentNode otherwise

    Raises:
        pydantic.ValidationError: If the data does not match its kind's schema

    Example:
        >>> node = parse_node({"id": "web", "resource_kind": "ContentServer"})
        >>> type(node).__name__
        'ContentServerNode'
    """
    if isinstance(data, DeploymentNode):
        return data
    return _NODE_ADAPTER.validate_python(data)


def dump_nodes(nodes: list[DeploymentNode]) -> list[dict[str, Any]]:
    """Serialize nodes to JSON-compatible dictionaries using their own types."""
    return [node.model_dump(mode="json") for node in nodes]
