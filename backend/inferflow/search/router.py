"""Search and bookmark routes."""

from fastapi import APIRouter, Depends, Query

from inferflow.models import ConversationNode, NodeType
from inferflow.search.service import SearchHit, available_models, bookmarked_nodes, search_nodes
from inferflow.trees.router import get_tree_store
from inferflow.trees.store import TreeStore

router = APIRouter(prefix="/api", tags=["search"])


@router.get("/search")
async def search(
    q: str = Query(""),
    type: NodeType | None = Query(None),
    model: str | None = Query(None),
    store: TreeStore = Depends(get_tree_store),
) -> list[SearchHit]:
    return search_nodes(store.tree, q, node_type=type, model=model)


@router.get("/bookmarks")
async def bookmarks(store: TreeStore = Depends(get_tree_store)) -> list[ConversationNode]:
    return bookmarked_nodes(store.tree)


@router.get("/models")
async def models(store: TreeStore = Depends(get_tree_store)) -> list[str]:
    return available_models(store.tree)
