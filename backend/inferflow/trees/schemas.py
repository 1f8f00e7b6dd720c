"""Request and response schemas for tree and node endpoints."""

from pydantic import Field

from inferflow.models import (
    Attachment,
    CamelModel,
    ContextUsage,
    ConversationNode,
    ImageNodeData,
    NodeMetadata,
    NodeType,
    Position,
    TreeStats,
)

# -- Requests --


class CreateNodeRequest(CamelModel):
    question: str
    answer: str = ""
    parent_id: str | None = None
    id: str | None = None
    name: str | None = None
    type: NodeType = "answer"
    selected_section_index_from_parent: int | None = None
    image_data: ImageNodeData | None = None
    model: str | None = None
    provider: str | None = None
    tokens: int | None = Field(default=None, ge=0)
    cost: float | None = Field(default=None, ge=0)
    metadata: NodeMetadata | None = None
    attachments: list[Attachment] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)


class ContextRequest(CamelModel):
    """Body for POST /api/nodes/{node_id}/context: the question about to be asked."""

    question: str = ""
    selected_section_index: int | None = None


class IncludeInContextRequest(CamelModel):
    node_ids: list[str]
    include: bool


# -- Responses --


class TreeResponse(CamelModel):
    nodes: list[ConversationNode]
    root_ids: list[str]
    stats: TreeStats


class ContextResponse(CamelModel):
    chain_ids: list[str]
    context: str
    prompt: str
    usage: ContextUsage


class DeleteResponse(CamelModel):
    deleted_ids: list[str]


class ToggleResponse(CamelModel):
    node_id: str
    value: bool


class LayoutResponse(CamelModel):
    positions: dict[str, Position]
    errors: list[str] = Field(default_factory=list)
