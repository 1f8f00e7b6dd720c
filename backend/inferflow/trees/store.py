"""TreeStore: the sole owner of mutable conversation tree state.

Every structural change goes through add_node/delete_node so that the
parent/child links stay consistent in both directions. The store is a plain
object constructed by whoever needs one (the app lifespan, a test); there is
no module-level instance.

All methods are synchronous and run to completion. Callers in async code
(the HTTP layer) never observe a half-applied mutation.
"""

import logging
from collections import deque
from collections.abc import Iterable, Mapping
from typing import Any
from uuid import uuid4

from pydantic import ValidationError as PydanticValidationError

from inferflow.errors import LayoutError, NotFoundError, SchemaError, ValidationError
from inferflow.models import (
    STRUCTURAL_FIELDS,
    ConversationNode,
    ConversationTree,
    NodeMetadata,
    TreeStats,
    utcnow,
)

logger = logging.getLogger(__name__)

_FIELD_BY_ALIAS = {
    (info.alias or name): name for name, info in ConversationNode.model_fields.items()
}

# Changing any of these bumps metadata.updated_at; flags and position do not.
_CONTENT_FIELDS = frozenset(
    {"name", "type", "question", "answer", "answer_sections", "image_data", "tags", "attachments"}
)


class TreeStore:
    """CRUD and traversal over the conversation forest."""

    def __init__(self, tree: ConversationTree | None = None) -> None:
        self._tree = ConversationTree()
        self._integrity_errors: list[LayoutError] = []
        if tree is not None:
            self.load_tree(tree)

    @property
    def tree(self) -> ConversationTree:
        """The live tree. Read it; mutate only through the store."""
        return self._tree

    @property
    def integrity_errors(self) -> list[LayoutError]:
        """Cycles that traversal guards had to break since the last reset."""
        return list(self._integrity_errors)

    def __len__(self) -> int:
        return len(self._tree.nodes)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._tree.nodes

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def add_node(self, node: ConversationNode | Mapping[str, Any]) -> ConversationNode:
        """Insert a node and link it under its parent (or as a new root).

        Raises:
            ValidationError: duplicate id, unknown parent, or pre-populated children.
        """
        if not isinstance(node, ConversationNode):
            try:
                node = ConversationNode.model_validate(node)
            except PydanticValidationError as e:
                raise ValidationError(f"Invalid node: {e}") from e
        else:
            node = node.model_copy(deep=True)

        nodes = self._tree.nodes
        if node.id in nodes:
            raise ValidationError(f"Duplicate node id: {node.id}")
        if node.parent_id is not None and node.parent_id not in nodes:
            raise ValidationError(f"Parent node does not exist: {node.parent_id}")
        if node.children_ids:
            raise ValidationError(
                f"Node {node.id} arrived with children; add children with their own add_node"
            )

        nodes[node.id] = node
        if node.parent_id is None:
            self._tree.root_ids.append(node.id)
        else:
            nodes[node.parent_id].children_ids.append(node.id)
        logger.debug("Added node %s under %s", node.id, node.parent_id)
        return node

    def create_node(
        self,
        question: str,
        answer: str = "",
        parent_id: str | None = None,
        **fields: Any,
    ) -> ConversationNode:
        """Build a node with a fresh id, name and timestamps, then add it.

        This is the entry point for a completed provider response: the
        caller supplies content and provenance (model, provider, tokens,
        cost, ...), the store fills in identity.
        """
        fields.setdefault("id", str(uuid4()))
        fields.setdefault("name", self.generate_node_name(parent_id))
        if fields.get("metadata") is None:
            fields["metadata"] = NodeMetadata()
        return self.add_node(
            {"question": question, "answer": answer, "parent_id": parent_id, **fields}
        )

    def update_node(
        self,
        node_id: str,
        partial: Mapping[str, Any] | None = None,
        *,
        strict: bool = False,
        **fields: Any,
    ) -> ConversationNode | None:
        """Shallow-merge fields into a stored node, in place.

        Accepts snake_case names or their camelCase aliases. Structural
        fields (id, parent_id, children_ids) are rejected.

        Returns the updated node, or None when node_id is unknown (raises
        NotFoundError instead when strict=True).

        Raises:
            ValidationError: structural or unknown field, or a value that fails validation.
        """
        node = self._tree.nodes.get(node_id)
        if node is None:
            return self._report_missing(node_id, "update", strict)

        updates = self._normalize_fields({**(partial or {}), **fields})
        if not updates:
            return node

        merged = node.model_dump()
        merged.update(updates)
        try:
            validated = ConversationNode.model_validate(merged)
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid update for node {node_id}: {e}") from e

        for name in updates:
            setattr(node, name, getattr(validated, name))
        if "answer" in updates and "answer_sections" not in updates:
            node.answer_sections = None
        if node.metadata is not None and "metadata" not in updates and updates.keys() & _CONTENT_FIELDS:
            node.metadata.updated_at = utcnow()
        return node

    def delete_node(self, node_id: str, *, strict: bool = False) -> list[str]:
        """Remove a node together with its whole subtree.

        Returns the removed ids, the deleted node first. Unknown ids return
        an empty list (or raise NotFoundError when strict=True).
        """
        nodes = self._tree.nodes
        node = nodes.get(node_id)
        if node is None:
            self._report_missing(node_id, "delete", strict)
            return []

        removed = self.get_descendant_ids(node_id, include_self=True)
        if node.parent_id is not None and node.parent_id in nodes:
            siblings = nodes[node.parent_id].children_ids
            nodes[node.parent_id].children_ids = [c for c in siblings if c != node_id]
        else:
            self._tree.root_ids = [r for r in self._tree.root_ids if r != node_id]

        for removed_id in removed:
            nodes.pop(removed_id, None)
        logger.debug("Deleted node %s and %d descendants", node_id, len(removed) - 1)
        return removed

    def toggle_collapse(self, node_id: str, *, strict: bool = False) -> bool | None:
        """Flip is_collapsed. Presentation only; the tree shape never changes."""
        node = self._tree.nodes.get(node_id)
        if node is None:
            return self._report_missing(node_id, "toggle collapse on", strict)
        node.is_collapsed = not node.is_collapsed
        return node.is_collapsed

    def toggle_bookmark(self, node_id: str, *, strict: bool = False) -> bool | None:
        node = self._tree.nodes.get(node_id)
        if node is None:
            return self._report_missing(node_id, "toggle bookmark on", strict)
        node.is_bookmarked = not node.is_bookmarked
        return node.is_bookmarked

    def set_include_in_context(self, node_ids: Iterable[str], include: bool) -> list[str]:
        """Set include_in_context on several nodes at once. Returns the ids changed."""
        changed = []
        for node_id in node_ids:
            node = self._tree.nodes.get(node_id)
            if node is None:
                logger.warning("Cannot set context inclusion on missing node %s", node_id)
                continue
            node.include_in_context = include
            changed.append(node_id)
        return changed

    def clear_all(self) -> None:
        self._tree = ConversationTree()
        self._integrity_errors.clear()

    def load_tree(self, tree: ConversationTree) -> None:
        """Replace the whole tree, all or nothing.

        Raises:
            SchemaError: the incoming tree violates an integrity invariant.
                The current tree is left untouched.
        """
        problems = check_integrity(tree)
        if problems:
            raise SchemaError("Tree failed integrity check: " + "; ".join(problems))
        self._tree = tree.model_copy(deep=True)
        self._integrity_errors.clear()
        logger.info(
            "Loaded tree with %d nodes and %d roots",
            len(self._tree.nodes),
            len(self._tree.root_ids),
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_node(self, node_id: str) -> ConversationNode | None:
        return self._tree.nodes.get(node_id)

    def get_children(self, node_id: str) -> list[ConversationNode]:
        node = self._tree.nodes.get(node_id)
        if node is None:
            return []
        return [self._tree.nodes[c] for c in node.children_ids if c in self._tree.nodes]

    def get_roots(self) -> list[ConversationNode]:
        return [self._tree.nodes[r] for r in self._tree.root_ids if r in self._tree.nodes]

    def get_node_chain(self, node_id: str) -> list[ConversationNode]:
        """Ancestors of node_id, root first, ending with the node itself.

        Unknown ids give an empty chain. A cycle in the parent links is
        recorded as a LayoutError and the walk stops where it was detected.
        """
        nodes = self._tree.nodes
        chain: list[ConversationNode] = []
        visited: set[str] = set()
        current_id: str | None = node_id

        while current_id is not None:
            if current_id in visited:
                self._record_cycle(current_id, "get_node_chain")
                break
            node = nodes.get(current_id)
            if node is None:
                if current_id != node_id:
                    logger.warning("Broken chain: parent %s not found", current_id)
                break
            visited.add(current_id)
            chain.append(node)
            current_id = node.parent_id

        chain.reverse()
        return chain

    def get_descendant_ids(self, node_id: str, *, include_self: bool = False) -> list[str]:
        """Depth-first, pre-order ids of the subtree under node_id."""
        nodes = self._tree.nodes
        if node_id not in nodes:
            return []

        result: list[str] = []
        visited: set[str] = set()
        stack = [node_id]
        while stack:
            current = stack.pop()
            if current in visited:
                self._record_cycle(current, "get_descendant_ids")
                continue
            visited.add(current)
            node = nodes.get(current)
            if node is None:
                continue
            if current != node_id or include_self:
                result.append(current)
            stack.extend(reversed(node.children_ids))
        return result

    def get_depth(self, node_id: str) -> int:
        """Number of ancestors above node_id (0 for a root, -1 if unknown)."""
        return len(self.get_node_chain(node_id)) - 1

    def generate_node_name(self, parent_id: str | None = None) -> str:
        """Next human label: "Question N" for roots, "<parent name>.K" for children.

        Skips any label already taken by a sibling, so deleting and
        re-adding never produces two siblings with the same name.
        """
        parent = self._tree.nodes.get(parent_id) if parent_id is not None else None
        if parent is None:
            taken = {n.name for n in self.get_roots()}
            count = len(self._tree.root_ids) + 1
            name = f"Question {count}"
            while name in taken:
                count += 1
                name = f"Question {count}"
            return name

        taken = {n.name for n in self.get_children(parent.id)}
        base = parent.name or f"Node {parent.id[:8]}"
        count = len(parent.children_ids) + 1
        name = f"{base}.{count}"
        while name in taken:
            count += 1
            name = f"{base}.{count}"
        return name

    def stats(self) -> TreeStats:
        return compute_stats(self._tree)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    @staticmethod
    def _normalize_fields(updates: Mapping[str, Any]) -> dict[str, Any]:
        normalized: dict[str, Any] = {}
        for key, value in updates.items():
            name = _FIELD_BY_ALIAS.get(key, key)
            if name not in ConversationNode.model_fields:
                raise ValidationError(f"Unknown node field: {key}")
            if name in STRUCTURAL_FIELDS:
                raise ValidationError(
                    f"Field {name} is structural; use add_node/delete_node instead"
                )
            normalized[name] = value
        return normalized

    @staticmethod
    def _report_missing(node_id: str, action: str, strict: bool) -> None:
        if strict:
            raise NotFoundError(node_id)
        logger.warning("Cannot %s missing node %s", action, node_id)
        return None

    def _record_cycle(self, node_id: str, operation: str) -> None:
        error = LayoutError(node_id, operation)
        logger.error("Corrupted tree: %s", error)
        self._integrity_errors.append(error)


def compute_stats(tree: ConversationTree) -> TreeStats:
    return TreeStats(
        total_nodes=len(tree.nodes),
        total_roots=len(tree.root_ids),
        total_cost=sum(n.cost or 0 for n in tree.nodes.values()),
        total_tokens=sum(n.tokens or 0 for n in tree.nodes.values()),
    )


def check_integrity(tree: ConversationTree) -> list[str]:
    """Return one message per violated tree invariant (empty if the tree is sound)."""
    problems: list[str] = []
    nodes = tree.nodes

    for key, node in nodes.items():
        if key != node.id:
            problems.append(f"Node stored under {key} has id {node.id}")

    expected_roots = [nid for nid, n in nodes.items() if n.parent_id is None]
    if len(tree.root_ids) != len(set(tree.root_ids)):
        problems.append("Duplicate entries in root_ids")
    if set(tree.root_ids) != set(expected_roots):
        problems.append("root_ids does not match the set of parentless nodes")

    for nid, node in nodes.items():
        if node.parent_id is not None:
            parent = nodes.get(node.parent_id)
            if parent is None:
                problems.append(f"Node {nid} references missing parent {node.parent_id}")
            elif parent.children_ids.count(nid) != 1:
                problems.append(f"Node {nid} is not listed exactly once under {node.parent_id}")
        for child_id in node.children_ids:
            child = nodes.get(child_id)
            if child is None:
                problems.append(f"Node {nid} lists missing child {child_id}")
            elif child.parent_id != nid:
                problems.append(f"Node {nid} lists {child_id}, whose parent is {child.parent_id}")

    # Every node must reach a root by following parent links.
    reaches_root: set[str] = set()
    for nid in nodes:
        path: list[str] = []
        seen: set[str] = set()
        current: str | None = nid
        while current is not None and current not in reaches_root:
            if current in seen:
                problems.append(f"Cycle in parent links at node {current}")
                break
            seen.add(current)
            path.append(current)
            parent_node = nodes.get(current)
            current = parent_node.parent_id if parent_node is not None else None
        else:
            reaches_root.update(path)

    return problems


def walk_breadth_first(tree: ConversationTree) -> list[tuple[ConversationNode, int]]:
    """(node, depth) pairs level by level from every root, cycle-safe."""
    order: list[tuple[ConversationNode, int]] = []
    visited: set[str] = set()
    queue = deque((rid, 0) for rid in tree.root_ids)
    while queue:
        node_id, depth = queue.popleft()
        if node_id in visited:
            logger.error("Corrupted tree: %s", LayoutError(node_id, "breadth-first walk"))
            continue
        node = tree.nodes.get(node_id)
        if node is None:
            continue
        visited.add(node_id)
        order.append((node, depth))
        queue.extend((c, depth + 1) for c in node.children_ids)
    return order
