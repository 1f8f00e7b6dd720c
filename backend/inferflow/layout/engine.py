"""Tidy-tree auto layout for the conversation canvas.

Leaves take consecutive horizontal slots in depth-first order (roots in
root_ids order, children in stored order), and every parent sits centered
over its first and last child. Sibling subtrees therefore occupy disjoint
slot ranges. Rows are spaced by depth. Previous positions are never read,
so running the layout twice on the same tree gives the same result.
"""

import logging

from inferflow.errors import LayoutError
from inferflow.models import ConversationTree, Position
from inferflow.trees.store import TreeStore, walk_breadth_first

logger = logging.getLogger(__name__)

DEFAULT_NODE_SPACING_X = 400.0
DEFAULT_ROW_HEIGHT = 300.0


class AutoLayoutEngine:
    def __init__(
        self,
        node_spacing_x: float = DEFAULT_NODE_SPACING_X,
        row_height: float = DEFAULT_ROW_HEIGHT,
    ) -> None:
        self.node_spacing_x = node_spacing_x
        self.row_height = row_height
        self.errors: list[LayoutError] = []

    def layout_tree(self, tree: ConversationTree) -> dict[str, Position]:
        """Compute a position for every node reachable from a root.

        The tree is not modified. Cycles are logged, recorded in
        self.errors, and skipped.
        """
        self.errors = []
        depths = {node.id: depth for node, depth in walk_breadth_first(tree)}
        slots = self._compute_slots(tree)
        return {
            node_id: Position(
                x=slot * self.node_spacing_x,
                y=depths.get(node_id, 0) * self.row_height,
            )
            for node_id, slot in slots.items()
        }

    def apply_auto_layout(self, target: TreeStore | ConversationTree) -> dict[str, Position]:
        """Lay out a tree and write each position back.

        A TreeStore is updated through update_node; a bare ConversationTree
        has its node positions set directly.
        """
        if isinstance(target, TreeStore):
            positions = self.layout_tree(target.tree)
            for node_id, position in positions.items():
                target.update_node(node_id, position=position)
        else:
            positions = self.layout_tree(target)
            for node_id, position in positions.items():
                target.nodes[node_id].position = position
        logger.info("Auto layout positioned %d nodes", len(positions))
        return positions

    def _compute_slots(self, tree: ConversationTree) -> dict[str, float]:
        """Horizontal slot per node, via an iterative post-order walk."""
        nodes = tree.nodes
        slots: dict[str, float] = {}
        placed_under: dict[str, str | None] = {}
        next_leaf = 0.0

        stack: list[tuple[str, str | None, bool]] = [
            (root_id, None, False) for root_id in reversed(tree.root_ids)
        ]
        while stack:
            node_id, parent_id, expanded = stack.pop()
            node = nodes.get(node_id)
            if node is None:
                continue

            if expanded:
                children = [
                    c for c in node.children_ids if placed_under.get(c) == node_id and c in slots
                ]
                if children:
                    slots[node_id] = (slots[children[0]] + slots[children[-1]]) / 2
                else:
                    slots[node_id] = next_leaf
                    next_leaf += 1
                continue

            if node_id in placed_under:
                error = LayoutError(node_id, "auto layout")
                logger.error("Corrupted tree: %s", error)
                self.errors.append(error)
                continue
            placed_under[node_id] = parent_id
            stack.append((node_id, parent_id, True))
            for child_id in reversed(node.children_ids):
                stack.append((child_id, node_id, False))

        return slots
