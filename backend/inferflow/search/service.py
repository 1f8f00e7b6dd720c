"""Search and bookmark views: filtered, read-only projections of the tree."""

from inferflow.export.service import walk_depth_first
from inferflow.models import CamelModel, ConversationNode, ConversationTree, NodeType


class SearchHit(CamelModel):
    node_id: str
    name: str
    type: NodeType
    matched_fields: list[str]
    snippet: str | None = None


SNIPPET_RADIUS = 60


def search_nodes(
    tree: ConversationTree,
    query: str = "",
    *,
    node_type: NodeType | None = None,
    model: str | None = None,
) -> list[SearchHit]:
    """Case-insensitive substring search over question, answer, name and tags.

    An empty query returns every node passing the type/model filters.
    Results follow export (depth-first) order.
    """
    needle = query.strip().lower()
    hits: list[SearchHit] = []
    for node, _ in walk_depth_first(tree):
        if node_type is not None and node.type != node_type:
            continue
        if model is not None and node.model != model:
            continue

        if not needle:
            hits.append(SearchHit(node_id=node.id, name=node.name, type=node.type, matched_fields=[]))
            continue

        matched = _matched_fields(node, needle)
        if matched:
            hits.append(SearchHit(
                node_id=node.id,
                name=node.name,
                type=node.type,
                matched_fields=matched,
                snippet=_snippet(node, matched[0], needle),
            ))
    return hits


def bookmarked_nodes(tree: ConversationTree) -> list[ConversationNode]:
    return [node for node, _ in walk_depth_first(tree) if node.is_bookmarked]


def available_models(tree: ConversationTree) -> list[str]:
    return sorted({n.model for n in tree.nodes.values() if n.model})


def _matched_fields(node: ConversationNode, needle: str) -> list[str]:
    matched = [
        field
        for field in ("question", "answer", "name")
        if needle in getattr(node, field).lower()
    ]
    if any(needle in tag.lower() for tag in node.tags):
        matched.append("tags")
    return matched


def _snippet(node: ConversationNode, field: str, needle: str) -> str | None:
    if field == "tags":
        return ", ".join(node.tags)
    text: str = getattr(node, field)
    pos = text.lower().find(needle)
    start = max(0, pos - SNIPPET_RADIUS)
    end = min(len(text), pos + len(needle) + SNIPPET_RADIUS)
    snippet = text[start:end]
    if start > 0:
        snippet = "..." + snippet
    if end < len(text):
        snippet = snippet + "..."
    return snippet
