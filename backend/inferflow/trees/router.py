"""FastAPI routes for node CRUD, context derivation and layout."""

from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException, status

from inferflow.errors import NotFoundError, ValidationError
from inferflow.generation.context import ContextBuilder
from inferflow.layout.engine import AutoLayoutEngine
from inferflow.models import AnswerSection, ConversationNode
from inferflow.trees.schemas import (
    ContextRequest,
    ContextResponse,
    CreateNodeRequest,
    DeleteResponse,
    IncludeInContextRequest,
    LayoutResponse,
    ToggleResponse,
    TreeResponse,
)
from inferflow.trees.sections import get_sections
from inferflow.trees.store import TreeStore

router = APIRouter(prefix="/api", tags=["trees"])


def get_tree_store() -> TreeStore:
    """Dependency placeholder — replaced at app startup."""
    raise RuntimeError("TreeStore not initialized")


def get_layout_engine() -> AutoLayoutEngine:
    return AutoLayoutEngine()


def get_context_builder() -> ContextBuilder:
    return ContextBuilder()


def _tree_response(store: TreeStore) -> TreeResponse:
    tree = store.tree
    return TreeResponse(
        nodes=list(tree.nodes.values()),
        root_ids=list(tree.root_ids),
        stats=store.stats(),
    )


@router.get("/tree")
async def get_tree(store: TreeStore = Depends(get_tree_store)) -> TreeResponse:
    return _tree_response(store)


@router.delete("/tree")
async def clear_tree(store: TreeStore = Depends(get_tree_store)) -> TreeResponse:
    store.clear_all()
    return _tree_response(store)


@router.post("/nodes", status_code=status.HTTP_201_CREATED)
async def create_node(
    request: CreateNodeRequest,
    store: TreeStore = Depends(get_tree_store),
) -> ConversationNode:
    try:
        return store.create_node(**request.model_dump(exclude_none=True))
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get("/nodes/{node_id}")
async def get_node(
    node_id: str,
    store: TreeStore = Depends(get_tree_store),
) -> ConversationNode:
    node = store.get_node(node_id)
    if node is None:
        raise HTTPException(status_code=404, detail=f"Node not found: {node_id}")
    return node


@router.patch("/nodes/{node_id}")
async def update_node(
    node_id: str,
    partial: dict[str, Any] = Body(...),
    store: TreeStore = Depends(get_tree_store),
) -> ConversationNode:
    try:
        return store.update_node(node_id, partial, strict=True)
    except NotFoundError:
        raise HTTPException(status_code=404, detail=f"Node not found: {node_id}")
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.delete("/nodes/{node_id}")
async def delete_node(
    node_id: str,
    store: TreeStore = Depends(get_tree_store),
) -> DeleteResponse:
    try:
        return DeleteResponse(deleted_ids=store.delete_node(node_id, strict=True))
    except NotFoundError:
        raise HTTPException(status_code=404, detail=f"Node not found: {node_id}")


@router.post("/nodes/{node_id}/collapse")
async def toggle_collapse(
    node_id: str,
    store: TreeStore = Depends(get_tree_store),
) -> ToggleResponse:
    try:
        value = store.toggle_collapse(node_id, strict=True)
    except NotFoundError:
        raise HTTPException(status_code=404, detail=f"Node not found: {node_id}")
    return ToggleResponse(node_id=node_id, value=bool(value))


@router.post("/nodes/{node_id}/bookmark")
async def toggle_bookmark(
    node_id: str,
    store: TreeStore = Depends(get_tree_store),
) -> ToggleResponse:
    try:
        value = store.toggle_bookmark(node_id, strict=True)
    except NotFoundError:
        raise HTTPException(status_code=404, detail=f"Node not found: {node_id}")
    return ToggleResponse(node_id=node_id, value=bool(value))


@router.post("/context/inclusion")
async def set_context_inclusion(
    request: IncludeInContextRequest,
    store: TreeStore = Depends(get_tree_store),
) -> list[str]:
    return store.set_include_in_context(request.node_ids, request.include)


@router.get("/nodes/{node_id}/chain")
async def get_chain(
    node_id: str,
    store: TreeStore = Depends(get_tree_store),
) -> list[ConversationNode]:
    chain = store.get_node_chain(node_id)
    if not chain:
        raise HTTPException(status_code=404, detail=f"Node not found: {node_id}")
    return chain


@router.get("/nodes/{node_id}/sections")
async def get_node_sections(
    node_id: str,
    store: TreeStore = Depends(get_tree_store),
) -> list[AnswerSection]:
    node = store.get_node(node_id)
    if node is None:
        raise HTTPException(status_code=404, detail=f"Node not found: {node_id}")
    return get_sections(node)


@router.post("/nodes/{node_id}/context")
async def build_context(
    node_id: str,
    request: ContextRequest,
    store: TreeStore = Depends(get_tree_store),
    builder: ContextBuilder = Depends(get_context_builder),
) -> ContextResponse:
    """Context and final prompt for a question branched from node_id."""
    chain = store.get_node_chain(node_id)
    if not chain:
        raise HTTPException(status_code=404, detail=f"Node not found: {node_id}")
    context = builder.build_context(chain[-1], chain, request.selected_section_index)
    return ContextResponse(
        chain_ids=[n.id for n in chain],
        context=context,
        prompt=builder.build_prompt(request.question, context),
        usage=builder.context_usage(chain),
    )


@router.post("/layout")
async def apply_layout(
    store: TreeStore = Depends(get_tree_store),
    engine: AutoLayoutEngine = Depends(get_layout_engine),
) -> LayoutResponse:
    positions = engine.apply_auto_layout(store)
    return LayoutResponse(positions=positions, errors=[str(e) for e in engine.errors])
