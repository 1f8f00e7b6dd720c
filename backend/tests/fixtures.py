"""Shared test helpers: node factories and small prebuilt trees."""

from typing import Any

from inferflow.models import ConversationNode
from inferflow.trees.store import TreeStore


def make_node(
    node_id: str,
    parent_id: str | None = None,
    question: str = "Test question",
    answer: str = "Test answer",
    **overrides: Any,
) -> ConversationNode:
    """Create a ConversationNode for testing."""
    return ConversationNode(
        id=node_id,
        name=overrides.pop("name", f"Node {node_id}"),
        parent_id=parent_id,
        question=question,
        answer=answer,
        **overrides,
    )


def make_chain(length: int) -> list[ConversationNode]:
    """Linear chain n1 -> n2 -> ... with "Question i"/"Answer i" content.

    The nodes are standalone (not in a store); children_ids are linked.
    """
    nodes: list[ConversationNode] = []
    parent_id = None
    for i in range(1, length + 1):
        node = make_node(f"n{i}", parent_id, question=f"Question {i}", answer=f"Answer {i}")
        nodes.append(node)
        parent_id = node.id
    for parent, child in zip(nodes, nodes[1:]):
        parent.children_ids = [child.id]
    return nodes


def build_branching_store() -> TreeStore:
    """Two roots; r1 has children a, b; a has children a1, a2; r2 is a leaf.

        r1            r2
       /  \\
      a    b
     / \\
    a1  a2
    """
    store = TreeStore()
    store.add_node(make_node("r1", question="Root question", answer="Root answer"))
    store.add_node(make_node("a", "r1", question="Branch A", answer="Answer A"))
    store.add_node(make_node("b", "r1", question="Branch B", answer="Answer B"))
    store.add_node(make_node("a1", "a", question="Leaf A1", answer="Answer A1"))
    store.add_node(make_node("a2", "a", question="Leaf A2", answer="Answer A2"))
    store.add_node(make_node("r2", question="Second root", answer="Second answer"))
    return store


def assert_tree_consistent(store: TreeStore) -> None:
    """Every node is referenced exactly once: from root_ids or its parent's children."""
    tree = store.tree
    for node_id, node in tree.nodes.items():
        in_roots = tree.root_ids.count(node_id)
        in_children = sum(n.children_ids.count(node_id) for n in tree.nodes.values())
        if node.parent_id is None:
            assert (in_roots, in_children) == (1, 0), node_id
        else:
            assert (in_roots, in_children) == (0, 1), node_id
            assert node_id in tree.nodes[node.parent_id].children_ids
    for ref in tree.root_ids:
        assert ref in tree.nodes
    for node in tree.nodes.values():
        for child_id in node.children_ids:
            assert child_id in tree.nodes
