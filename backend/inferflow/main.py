"""InferFlow FastAPI application entry point."""

import logging
import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from inferflow.errors import SchemaError
from inferflow.export.router import get_session_storage
from inferflow.export.router import router as session_router
from inferflow.search.router import router as search_router
from inferflow.sessions.storage import SessionStorage
from inferflow.trees.router import get_tree_store
from inferflow.trees.router import router as trees_router
from inferflow.trees.store import TreeStore

logger = logging.getLogger(__name__)

VERSION = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Create the tree store, restore the saved snapshot, save it again on shutdown."""
    load_dotenv(Path(__file__).resolve().parent.parent / ".env")
    logging.basicConfig(level=os.environ.get("INFERFLOW_LOG_LEVEL", "INFO").upper())

    storage = SessionStorage(os.environ.get("INFERFLOW_SESSION_FILE", "inferflow_session.json"))
    session_name = os.environ.get("INFERFLOW_SESSION_NAME", "InferFlow Session")

    store = TreeStore()
    session_id = None
    try:
        session = storage.load_into(store)
        if session is not None:
            session_id = session.id
            session_name = session.name
    except SchemaError as e:
        # Keep the unreadable file for inspection; start from an empty tree.
        logger.error("Could not restore session from %s: %s", storage.path, e)

    app.dependency_overrides[get_tree_store] = lambda: store
    app.dependency_overrides[get_session_storage] = lambda: storage
    app.state.store = store
    yield

    if len(store):
        storage.save(store, session_name, session_id)


app = FastAPI(
    title="InferFlow",
    description="Branching conversation trees for exploring language model answers",
    version=VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=os.environ.get("INFERFLOW_CORS_ORIGINS", "http://localhost:5173").split(","),
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(trees_router)
app.include_router(session_router)
app.include_router(search_router)


@app.get("/api/health")
async def health() -> dict:
    return {"status": "ok", "version": VERSION}
