"""Session document codec: the whole tree plus session identity, as JSON.

serialize() produces the portable, versioned document; deserialize()
validates it and rebuilds a ConversationTree. root_ids is always
recomputed from the nodes themselves, never trusted from the document.
"""

import json
import logging
from datetime import datetime
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from inferflow.errors import SchemaError
from inferflow.models import (
    ConversationTree,
    SessionDocument,
    SessionInfo,
    TreeDocument,
    now_ms,
    utcnow,
)
from inferflow.trees.store import compute_stats

logger = logging.getLogger(__name__)

SESSION_FORMAT_VERSION = "2.0"
SUPPORTED_VERSIONS = frozenset({SESSION_FORMAT_VERSION})
DEFAULT_SESSION_NAME = "Exported Conversation"


def serialize(
    tree: ConversationTree,
    session_name: str | None = None,
    session_id: str | None = None,
    *,
    created_at: datetime | None = None,
) -> dict[str, Any]:
    """Build the session document as a JSON-ready dict (camelCase keys, ISO timestamps)."""
    now = utcnow()
    document = SessionDocument(
        version=SESSION_FORMAT_VERSION,
        exported_at=now,
        session=SessionInfo(
            id=session_id or f"export-{now_ms()}",
            name=session_name or DEFAULT_SESSION_NAME,
            created_at=created_at or now,
            updated_at=now,
        ),
        tree=TreeDocument(nodes=list(tree.nodes.values()), root_ids=list(tree.root_ids)),
        stats=compute_stats(tree),
    )
    return document.model_dump(mode="json", by_alias=True, exclude_none=True)


def serialize_json(
    tree: ConversationTree,
    session_name: str | None = None,
    session_id: str | None = None,
    **kwargs: Any,
) -> str:
    return json.dumps(serialize(tree, session_name, session_id, **kwargs), indent=2)


def load_session(document: dict | str | bytes) -> tuple[SessionInfo, ConversationTree]:
    """Validate a session document and rebuild its tree.

    Raises:
        SchemaError: bad JSON, unsupported version, malformed shape, or duplicate node ids.
    """
    data = _load_json(document)
    if not isinstance(data, dict):
        raise SchemaError("Session document must be a JSON object")

    version = data.get("version")
    if not isinstance(version, str) or version not in SUPPORTED_VERSIONS:
        raise SchemaError(f"Unsupported session version: {version!r}")

    tree_data = data.get("tree")
    if not isinstance(tree_data, dict) or not isinstance(tree_data.get("nodes"), list):
        raise SchemaError("Session document is missing tree.nodes")

    try:
        parsed = SessionDocument.model_validate(data)
    except PydanticValidationError as e:
        raise SchemaError(f"Malformed session document: {e}") from e

    tree = ConversationTree()
    for node in parsed.tree.nodes:
        if node.id in tree.nodes:
            raise SchemaError(f"Duplicate node id in session: {node.id}")
        tree.nodes[node.id] = node
    tree.root_ids = [node.id for node in parsed.tree.nodes if node.parent_id is None]

    stored_roots = parsed.tree.root_ids
    if set(stored_roots) != set(tree.root_ids):
        logger.warning(
            "Session %s had stale rootIds (%d stored, %d recomputed)",
            parsed.session.id,
            len(stored_roots),
            len(tree.root_ids),
        )
    return parsed.session, tree


def deserialize(document: dict | str | bytes) -> ConversationTree:
    """Rebuild the tree from a session document. See load_session()."""
    _, tree = load_session(document)
    return tree


def _load_json(document: dict | str | bytes) -> Any:
    if isinstance(document, dict):
        return document
    try:
        return json.loads(document)
    except (json.JSONDecodeError, UnicodeDecodeError, TypeError) as e:
        raise SchemaError(f"Invalid JSON: {e}") from e
