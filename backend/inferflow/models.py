"""Canonical data structures for InferFlow.

Defined once here, referenced everywhere else. Python attributes are
snake_case; every model serializes with camelCase aliases so the session
document matches the portable schema the frontend reads and writes.
"""

import re
from datetime import UTC, datetime
from time import time
from typing import Annotated, Literal

from pydantic import AfterValidator, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from typing_extensions import TypeAliasType


def utcnow() -> datetime:
    return datetime.now(UTC)


def now_ms() -> int:
    """Milliseconds since the epoch, the unit node timestamps are stored in."""
    return int(time() * 1000)


class CamelModel(BaseModel):
    """Base for document-facing models: snake_case in Python, camelCase on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


_ISO_DATETIME = re.compile(
    r"\d{4}-\d{2}-\d{2}T\d{2}:\d{2}(?::\d{2}(?:\.\d+)?)?(?:Z|[+-]\d{2}:\d{2})?"
)


def _revive_timestamp(value: str) -> str | datetime:
    """ISO-8601 datetime text (how datetimes are written to JSON) reads back as a datetime."""
    if _ISO_DATETIME.fullmatch(value):
        try:
            return datetime.fromisoformat(value)
        except ValueError:
            # Shaped like a timestamp but not a real date: plain text.
            return value
    return value


ParameterText = Annotated[str, AfterValidator(_revive_timestamp)]

# Closed set of values allowed in the free-form metadata parameter bag.
ParameterValue = TypeAliasType(
    "ParameterValue",
    "bool | int | float | ParameterText | datetime | list[ParameterValue] | dict[str, ParameterValue] | None",
)

NodeType = Literal["question", "answer", "decision", "summary", "reference", "action", "image"]

NODE_TYPES: tuple[str, ...] = (
    "question",
    "answer",
    "decision",
    "summary",
    "reference",
    "action",
    "image",
)


# ---------------------------------------------------------------------------
# Node parts
# ---------------------------------------------------------------------------


class AnswerSection(CamelModel):
    id: str
    text: str
    index: int


class Position(CamelModel):
    x: float = 0.0
    y: float = 0.0


class Attachment(CamelModel):
    id: str
    type: Literal["image", "file", "link", "code"]
    url: str | None = None
    content: str | None = None
    filename: str | None = None
    mime_type: str | None = None
    size: int | None = None


class NodeMetadata(CamelModel):
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    temperature: float | None = None
    processing_time: float | None = None  # milliseconds
    parameters: dict[str, ParameterValue] = Field(default_factory=dict)


class ImageCompositionSource(CamelModel):
    id: str
    image_url: str
    weight: float | None = None  # influence, 0-1
    description: str | None = None


class ImageGenerationConfig(CamelModel):
    model: str = "imagen-3.0-generate-001"
    aspect_ratio: Literal["1:1", "3:4", "4:3", "9:16", "16:9"] = "1:1"
    prompt: str
    negative_prompt: str | None = None
    number_of_images: int | None = Field(default=None, ge=1, le=4)
    person_generation: Literal["dont_allow", "allow_adult"] | None = None
    safety_filter_level: (
        Literal["block_low_and_above", "block_medium_and_above", "block_only_high"] | None
    ) = None
    add_watermark: bool | None = None
    composition_sources: list[ImageCompositionSource] | None = None
    composition_mode: Literal["blend", "collage", "style-transfer", "combine"] | None = None


class ImageEditHistoryEntry(CamelModel):
    id: str
    timestamp: int
    image_url: str
    prompt: str
    config: ImageGenerationConfig
    parent_image_id: str | None = None


class ImageNodeData(CamelModel):
    generated_images: list[str] = Field(default_factory=list)
    current_image_index: int = 0
    generation_config: ImageGenerationConfig
    edit_history: list[ImageEditHistoryEntry] = Field(default_factory=list)
    is_generating: bool | None = None
    generation_error: str | None = None


# ---------------------------------------------------------------------------
# Tree
# ---------------------------------------------------------------------------


class ConversationNode(CamelModel):
    """One question/answer (or image generation) turn in the tree."""

    id: str
    name: str = ""
    type: NodeType = "answer"
    question: str = ""
    answer: str = ""
    answer_sections: list[AnswerSection] | None = None
    image_data: ImageNodeData | None = None

    parent_id: str | None = None
    children_ids: list[str] = Field(default_factory=list)

    # None means "include"; only an explicit False drops the node from context.
    include_in_context: bool | None = None
    selected_section_index_from_parent: int | None = None

    is_bookmarked: bool = False
    is_collapsed: bool = False
    position: Position = Field(default_factory=Position)
    timestamp: int = Field(default_factory=now_ms)

    model: str | None = None
    provider: str | None = None
    tokens: int | None = None
    cost: float | None = None
    metadata: NodeMetadata | None = None
    attachments: list[Attachment] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)


# Fields only add_node/delete_node may change.
STRUCTURAL_FIELDS = frozenset({"id", "parent_id", "children_ids"})


class ConversationTree(CamelModel):
    nodes: dict[str, ConversationNode] = Field(default_factory=dict)
    root_ids: list[str] = Field(default_factory=list)


class TreeStats(CamelModel):
    total_nodes: int = 0
    total_roots: int = 0
    total_cost: float = 0.0
    total_tokens: int = 0


class ContextUsage(CamelModel):
    """Token accounting for a chain about to be rendered as context."""

    total_tokens: int
    included_node_ids: list[str] = Field(default_factory=list)
    excluded_node_ids: list[str] = Field(default_factory=list)
    excluded_tokens: int = 0


# ---------------------------------------------------------------------------
# Session document
# ---------------------------------------------------------------------------


class SessionInfo(CamelModel):
    id: str
    name: str
    created_at: datetime
    updated_at: datetime


class TreeDocument(CamelModel):
    nodes: list[ConversationNode]
    root_ids: list[str] = Field(default_factory=list)


class SessionDocument(CamelModel):
    """Versioned envelope persisted and exported for a whole session."""

    version: str
    exported_at: datetime
    session: SessionInfo
    tree: TreeDocument
    stats: TreeStats = Field(default_factory=TreeStats)
