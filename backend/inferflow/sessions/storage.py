"""Single-snapshot session persistence on local disk."""

import json
import logging
import os
import tempfile
from pathlib import Path

from inferflow.models import SessionInfo
from inferflow.sessions.codec import load_session, serialize
from inferflow.trees.store import TreeStore

logger = logging.getLogger(__name__)


class SessionStorage:
    """Saves and restores one session document at a fixed path."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def exists(self) -> bool:
        return self.path.is_file()

    def save(
        self,
        store: TreeStore,
        session_name: str | None = None,
        session_id: str | None = None,
    ) -> dict:
        """Write the store's tree atomically (temp file, then rename). Returns the document."""
        document = serialize(store.tree, session_name, session_id)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, suffix=".tmp", text=True)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as tmp:
                json.dump(document, tmp, indent=2)
            os.replace(tmp_path, self.path)
        except OSError:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise
        logger.info(
            "Saved session %s (%d nodes) to %s",
            document["session"]["id"],
            len(store),
            self.path,
        )
        return document

    def load_into(self, store: TreeStore) -> SessionInfo | None:
        """Replace the store's tree with the saved snapshot.

        Returns None (and leaves the store alone) when no snapshot exists.

        Raises:
            SchemaError: the snapshot is unreadable; the store is untouched.
        """
        if not self.exists():
            logger.info("No saved session at %s", self.path)
            return None
        session, tree = load_session(self.path.read_bytes())
        store.load_tree(tree)
        return session

    def clear(self) -> None:
        self.path.unlink(missing_ok=True)
