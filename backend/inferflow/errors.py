"""Typed failures raised by the tree engine.

Callers (the HTTP layer, ultimately the UI) catch these to alert the user.
"""


class TreeError(Exception):
    """Base class for every tree engine failure."""


class ValidationError(TreeError):
    """A mutation would break tree integrity (duplicate id, unknown parent, ...)."""


class NotFoundError(TreeError):
    def __init__(self, node_id: str) -> None:
        self.node_id = node_id
        super().__init__(f"Node not found: {node_id}")


class SchemaError(TreeError):
    """A session document failed the version check or is malformed."""


class LayoutError(TreeError):
    """A traversal met a node twice: the parent links contain a cycle."""

    def __init__(self, node_id: str, operation: str) -> None:
        self.node_id = node_id
        self.operation = operation
        super().__init__(f"Cycle detected at node {node_id} during {operation}")
