"""Session export/import and persistence routes."""

from typing import Literal

from fastapi import APIRouter, Body, Depends, HTTPException, Query, Response
from fastapi.responses import JSONResponse

from inferflow.errors import SchemaError
from inferflow.export.service import export_markdown, generate_filename, get_paths
from inferflow.models import CamelModel, SessionInfo
from inferflow.sessions.codec import load_session, serialize
from inferflow.sessions.storage import SessionStorage
from inferflow.trees.router import get_tree_store
from inferflow.trees.store import TreeStore

router = APIRouter(prefix="/api/session", tags=["session"])


class ImportResponse(CamelModel):
    session: SessionInfo
    node_count: int
    root_count: int


def get_session_storage() -> SessionStorage:
    """Dependency placeholder — overridden at startup."""
    raise RuntimeError("SessionStorage not configured")


@router.get("/export")
async def export_session(
    format: Literal["json", "markdown"] = Query("json"),
    name: str | None = Query(None),
    session_id: str | None = Query(None),
    store: TreeStore = Depends(get_tree_store),
) -> Response:
    """Export the current tree as a session document or Markdown."""
    session_name = name or "InferFlow Session"
    if format == "json":
        return JSONResponse(
            content=serialize(store.tree, session_name, session_id),
            headers={
                "Content-Disposition": (
                    f'attachment; filename="{generate_filename(session_name, "json")}"'
                ),
            },
        )
    return Response(
        content=export_markdown(store.tree, session_name),
        media_type="text/markdown",
        headers={
            "Content-Disposition": (
                f'attachment; filename="{generate_filename(session_name, "md")}"'
            ),
        },
    )


@router.post("/import")
async def import_session(
    document: dict = Body(...),
    store: TreeStore = Depends(get_tree_store),
) -> ImportResponse:
    """Replace the current tree with an imported session. All or nothing."""
    try:
        session, tree = load_session(document)
        store.load_tree(tree)
    except SchemaError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return ImportResponse(
        session=session,
        node_count=len(tree.nodes),
        root_count=len(tree.root_ids),
    )


@router.post("/save")
async def save_session(
    name: str | None = Query(None),
    session_id: str | None = Query(None),
    store: TreeStore = Depends(get_tree_store),
    storage: SessionStorage = Depends(get_session_storage),
) -> SessionInfo:
    document = storage.save(store, name, session_id)
    return SessionInfo.model_validate(document["session"])


@router.post("/load")
async def load_saved_session(
    store: TreeStore = Depends(get_tree_store),
    storage: SessionStorage = Depends(get_session_storage),
) -> SessionInfo:
    try:
        session = storage.load_into(store)
    except SchemaError as e:
        raise HTTPException(status_code=422, detail=str(e))
    if session is None:
        raise HTTPException(status_code=404, detail="No saved session")
    return session


@router.get("/paths")
async def get_tree_paths(store: TreeStore = Depends(get_tree_store)) -> dict:
    """All root-to-leaf paths in the tree."""
    return {"paths": get_paths(store.tree)}
