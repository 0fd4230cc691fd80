"""In-memory editor sessions: one WorkflowEditor per session plus the events it has emitted."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable

from ..config import FLOW_PROJECT_ID
from ..editor.context import EditorContext
from ..editor.engine import WorkflowEditor
from .flow_client import FlowServiceClient
from .piece_catalog import PieceCatalogClient

logger = logging.getLogger(__name__)

MAX_SESSION_EVENTS = 500


@dataclass
class EditorSession:
    """``events`` keeps the newest ``MAX_SESSION_EVENTS``; ``dropped`` counts the ones trimmed off the front."""

    id: str
    editor: WorkflowEditor
    events: list[dict[str, Any]] = field(default_factory=list)
    dropped: int = 0
    closed: bool = False
    _unsubscribe: Callable[[], None] | None = None

    def record(self, kind: str, data: dict[str, Any]) -> None:
        self.events.append({"kind": kind, "data": data})
        overflow = len(self.events) - MAX_SESSION_EVENTS
        if overflow > 0:
            del self.events[:overflow]
            self.dropped += overflow

    def events_since(self, offset: int) -> tuple[list[dict[str, Any]], int]:
        """Events after absolute position ``offset``, plus the next offset."""
        start = max(offset - self.dropped, 0)
        return self.events[start:], self.dropped + len(self.events)

    def close(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self.closed = True


# In-memory session store
_session_store: dict[str, EditorSession] = {}


def make_flow_client(project_id: str | None = None) -> FlowServiceClient:
    return FlowServiceClient(project_id=project_id or FLOW_PROJECT_ID)


def make_piece_catalog() -> PieceCatalogClient:
    return PieceCatalogClient()


async def create_session(
    *,
    flow_id: str | None = None,
    project_id: str | None = None,
    create_mode: bool = False,
) -> EditorSession:
    """Open an editor. A bound flow is loaded from the service unless ``create_mode`` starts it fresh."""
    session_id = uuid.uuid4().hex
    session: EditorSession | None = None

    def on_event(kind: str, data: dict[str, Any]) -> None:
        if session is not None:
            session.record(kind, data)

    context = EditorContext(flow_id=flow_id, project_id=project_id or FLOW_PROJECT_ID, create_mode=create_mode)
    client = make_flow_client(context.project_id) if flow_id else None
    editor = WorkflowEditor(client=client, catalog=make_piece_catalog(), context=context, on_event=on_event)
    session = EditorSession(id=session_id, editor=editor)
    session._unsubscribe = editor.store.subscribe(on_event)
    _session_store[session_id] = session

    if flow_id and not create_mode:
        await editor.load_workflow(flow_id)
    else:
        editor.initialize_workflow()
        if flow_id:
            await editor.attach_flow(flow_id)
    logger.info("session %s opened (flow=%s, create_mode=%s)", session_id, flow_id, create_mode)
    return session


def get_session(session_id: str) -> EditorSession | None:
    return _session_store.get(session_id)


def close_session(session_id: str) -> bool:
    session = _session_store.pop(session_id, None)
    if session is None:
        return False
    session.close()
    return True


def list_sessions(page: int = 1, size: int = 20) -> dict[str, Any]:
    items = list(_session_store.values())
    items.reverse()
    total = len(items)
    start = (page - 1) * size
    rows = [
        {
            "session_id": s.id,
            "flow_id": s.editor.context.flow_id,
            "create_mode": s.editor.context.create_mode,
            "node_count": len(s.editor.graph.nodes),
            "dirty": s.editor.store.dirty,
        }
        for s in items[start:start + size]
    ]
    return {"sessions": rows, "total": total}
