"""Export service: depth-first tree walk and Markdown rendering.

Consumers read the tree without changing it: roots in root_ids order,
children in stored order, each node before its children.
"""

import re
from collections.abc import Iterator
from datetime import UTC, datetime

from inferflow.models import ConversationNode, ConversationTree

DEFAULT_TITLE = "InferFlow Conversation Export"


def walk_depth_first(tree: ConversationTree) -> Iterator[tuple[ConversationNode, int]]:
    """Yield (node, depth) in export order. Cycle-safe; dangling ids are skipped."""
    visited: set[str] = set()
    stack = [(root_id, 0) for root_id in reversed(tree.root_ids)]
    while stack:
        node_id, depth = stack.pop()
        if node_id in visited:
            continue
        node = tree.nodes.get(node_id)
        if node is None:
            continue
        visited.add(node_id)
        yield node, depth
        stack.extend((c, depth + 1) for c in reversed(node.children_ids))


def get_paths(tree: ConversationTree) -> list[list[str]]:
    """Every root-to-leaf path as a list of node ids."""
    paths: list[list[str]] = []
    current: list[str] = []
    for node, depth in walk_depth_first(tree):
        del current[depth:]
        current.append(node.id)
        if not any(c in tree.nodes for c in node.children_ids):
            paths.append(list(current))
    return paths


def export_markdown(
    tree: ConversationTree,
    session_name: str | None = None,
    *,
    exported_at: datetime | None = None,
) -> str:
    """Render the whole tree as a Markdown document, one section per node."""
    exported_at = exported_at or datetime.now(UTC)
    lines = [
        f"# {session_name or DEFAULT_TITLE}",
        "",
        f"**Exported:** {exported_at.strftime('%Y-%m-%d %H:%M:%S %Z')}",
        f"**Total Nodes:** {len(tree.nodes)}",
        "",
        "---",
        "",
    ]
    for node, depth in walk_depth_first(tree):
        lines.extend(_render_node(node, depth))
    return "\n".join(lines)


def _render_node(node: ConversationNode, depth: int) -> list[str]:
    prefix = "#" if depth == 0 else "##"
    title = node.name or f"Node {node.id[:8]}"
    lines = [f"{prefix}{'#' * (depth + 1)} {title}", "", f"*Type:* {node.type}", ""]

    meta: list[str] = []
    if node.model:
        meta.append(f"- Model: {node.model}")
    if node.provider:
        meta.append(f"- Provider: {node.provider}")
    if node.tokens:
        meta.append(f"- Tokens: {node.tokens:,}")
    if node.cost:
        meta.append(f"- Cost: ${node.cost:.6f}")
    if node.metadata is not None:
        if node.metadata.processing_time:
            meta.append(f"- Processing Time: {node.metadata.processing_time / 1000:.2f}s")
        meta.append(f"- Created: {node.metadata.created_at.strftime('%Y-%m-%d %H:%M:%S')}")
    if meta:
        lines.extend(["**Metadata:**", *meta, ""])

    lines.extend(["**Question:**", "", node.question, ""])
    if node.type == "image" and node.image_data is not None:
        lines.extend(["**Generated Images:**", ""])
        for i, url in enumerate(node.image_data.generated_images, start=1):
            lines.append(f"![Image {i}]({url})")
        lines.append("")
    else:
        lines.extend(["**Answer:**", "", node.answer, ""])

    if node.tags:
        lines.extend([f"**Tags:** {', '.join(node.tags)}", ""])
    if node.attachments:
        lines.append("**Attachments:**")
        for att in node.attachments:
            if att.type == "link" and att.url:
                lines.append(f"- [{att.filename or 'Link'}]({att.url})")
            else:
                lines.append(f"- {att.filename or att.type}")
        lines.append("")

    lines.extend(["---", ""])
    return lines


def generate_filename(session_name: str, extension: str, *, today: datetime | None = None) -> str:
    """Filesystem-safe export name: lowercase, non-alphanumerics dashed, dated."""
    safe = re.sub(r"[^a-z0-9]", "-", session_name, flags=re.IGNORECASE).lower()[:50]
    date = (today or datetime.now(UTC)).date().isoformat()
    return f"{safe}-{date}.{extension}"
