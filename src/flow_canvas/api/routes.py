"""API routes - editor sessions, mutations, remote flow operations and the piece catalog."""

from __future__ import annotations

import asyncio
import json
from typing import Any, AsyncGenerator

from fastapi import APIRouter, HTTPException
from sse_starlette.sse import EventSourceResponse

from ..editor.engine import WorkflowEditor
from ..graph.graph import NodeKind, Position
from ..graph.outcome import MutationOutcome, MutationStatus
from ..models import (
    BindPieceRequest,
    CreateSessionRequest,
    FlowStatusRequest,
    MutationRequest,
    MutationResponse,
    NodeUpdateRequest,
    PieceListResponse,
    PositionModel,
    RemoteResultResponse,
    RenameFlowRequest,
    SampleDataRequest,
    SessionListResponse,
    SessionResponse,
    TopologyResponse,
)
from ..services import sessions
from ..services.piece_catalog import PieceCatalogError

router = APIRouter(prefix="/api", tags=["api"])

STREAM_POLL_SECONDS = 0.3

_SINGLE_NODE_OPS = {"delete_node", "duplicate_node", "swap_node_above", "swap_node_below"}
_PAIR_OPS = {
    "add_node_between",
    "move_node_after",
    "move_node_before",
    "move_node_after_in_branch",
    "move_node_before_in_branch",
}
_ADD_OPS = {"add_empty_node", "add_router_node", "add_loop_node", "add_code_node"}


def _session_or_404(session_id: str) -> sessions.EditorSession:
    session = sessions.get_session(session_id)
    if session is None:
        raise HTTPException(404, "Session not found")
    return session


def _position(p: PositionModel | None) -> Position | None:
    return Position(p.x, p.y) if p is not None else None


def _required(value: str | None, field: str) -> str:
    if not value:
        raise HTTPException(422, f"'{field}' is required for this operation")
    return value


def _apply(editor: WorkflowEditor, body: MutationRequest) -> MutationOutcome:
    op = body.op
    if op == "connect":
        return editor.connect(_required(body.node_id, "node_id"), _required(body.target_id, "target_id"), body.source_handle)
    if op == "remove_edge":
        return editor.remove_edge(_required(body.edge_id, "edge_id"))
    if op == "add_node":
        return editor.add_node(NodeKind(body.kind), _position(body.position))
    if op in _ADD_OPS:
        return getattr(editor, op)(_position(body.position))
    if op in _SINGLE_NODE_OPS:
        return getattr(editor, op)(_required(body.node_id, "node_id"))
    if op in _PAIR_OPS:
        return getattr(editor, op)(_required(body.node_id, "node_id"), _required(body.target_id, "target_id"))
    raise HTTPException(422, f"Unsupported operation {op}")


def _settle(session: sessions.EditorSession, outcome: MutationOutcome) -> MutationResponse:
    if outcome.status == MutationStatus.REJECTED:
        raise HTTPException(409, outcome.to_dict())
    return MutationResponse(outcome=outcome.to_dict(), state=session.editor.state())


@router.post("/sessions", response_model=SessionResponse)
async def api_create_session(body: CreateSessionRequest):
    """Open an editor session. With ``flow_id`` the flow is loaded (falls back to the scaffold)."""
    session = await sessions.create_session(
        flow_id=body.flow_id, project_id=body.project_id, create_mode=body.create_mode
    )
    return SessionResponse(session_id=session.id, state=session.editor.state())


@router.get("/sessions", response_model=SessionListResponse)
async def api_list_sessions(page: int = 1, size: int = 20):
    return SessionListResponse(**sessions.list_sessions(page=page, size=size))


@router.get("/sessions/{session_id}", response_model=SessionResponse)
async def api_get_session(session_id: str):
    session = _session_or_404(session_id)
    return SessionResponse(session_id=session.id, state=session.editor.state())


@router.delete("/sessions/{session_id}")
async def api_close_session(session_id: str):
    session = _session_or_404(session_id)
    await session.editor.drain()
    sessions.close_session(session_id)
    return {"session_id": session_id, "closed": True}


@router.post("/sessions/{session_id}/mutations", response_model=MutationResponse)
async def api_mutate(session_id: str, body: MutationRequest):
    """Apply one structural mutation; the response waits for its remote call (and any rollback)."""
    session = _session_or_404(session_id)
    outcome = _apply(session.editor, body)
    await session.editor.drain()
    return _settle(session, outcome)


@router.patch("/sessions/{session_id}/nodes/{node_id}", response_model=MutationResponse)
async def api_update_node(session_id: str, node_id: str, body: NodeUpdateRequest):
    session = _session_or_404(session_id)
    outcome = session.editor.update_node_data(
        node_id,
        label=body.label,
        description=body.description,
        logo_url=body.logo_url,
        name=body.name,
        position=_position(body.position),
    )
    if outcome.status == MutationStatus.IGNORED:
        raise HTTPException(404, "Node not found")
    return _settle(session, outcome)


@router.post("/sessions/{session_id}/nodes/{node_id}/piece", response_model=MutationResponse)
async def api_bind_piece(session_id: str, node_id: str, body: BindPieceRequest):
    """Bind a catalog action (or trigger, on the trigger node) to a node."""
    session = _session_or_404(session_id)
    node = session.editor.graph.get_node(node_id)
    if node is None:
        raise HTTPException(404, "Node not found")
    try:
        piece = await sessions.make_piece_catalog().get_piece(body.piece_name)
    except PieceCatalogError as e:
        raise HTTPException(502, str(e))
    if node.kind == NodeKind.TRIGGER:
        operation = piece.find_trigger(body.operation_name)
    else:
        operation = piece.find_action(body.operation_name)
    if operation is None:
        raise HTTPException(404, f"{piece.name} has no operation {body.operation_name}")
    outcome = session.editor.add_piece_node(piece, operation, node_id, _position(body.position))
    await session.editor.drain()
    return _settle(session, outcome)


@router.get("/sessions/{session_id}/nodes/{node_id}/topology", response_model=TopologyResponse)
async def api_node_topology(session_id: str, node_id: str):
    editor = _session_or_404(session_id).editor
    if editor.graph.get_node(node_id) is None:
        raise HTTPException(404, "Node not found")
    return TopologyResponse(
        node_id=node_id,
        path_to_root=editor.path_to_root(node_id),
        nodes_above_in_flow=editor.nodes_above_in_flow(node_id),
        nodes_below_in_flow=editor.nodes_below_in_flow(node_id),
        nodes_above_in_branch=editor.nodes_above_in_branch(node_id),
        nodes_below_in_branch=editor.nodes_below_in_branch(node_id),
        left_move_candidates=editor.left_move_candidates(node_id),
        right_move_candidates=editor.right_move_candidates(node_id),
    )


@router.post("/sessions/{session_id}/save", response_model=MutationResponse)
async def api_save(session_id: str):
    session = _session_or_404(session_id)
    outcome = await session.editor.save_workflow()
    return _settle(session, outcome)


@router.post("/sessions/{session_id}/reload", response_model=SessionResponse)
async def api_reload(session_id: str):
    session = _session_or_404(session_id)
    await session.editor.drain()
    await session.editor.load_workflow()
    return SessionResponse(session_id=session.id, state=session.editor.state())


def _remote_result(session: sessions.EditorSession, ok: bool) -> RemoteResultResponse:
    return RemoteResultResponse(ok=ok, state=session.editor.state())


@router.post("/sessions/{session_id}/name", response_model=RemoteResultResponse)
async def api_rename_flow(session_id: str, body: RenameFlowRequest):
    session = _session_or_404(session_id)
    return _remote_result(session, await session.editor.rename_flow(body.display_name))


@router.post("/sessions/{session_id}/publish", response_model=RemoteResultResponse)
async def api_publish(session_id: str):
    session = _session_or_404(session_id)
    return _remote_result(session, await session.editor.publish())


@router.post("/sessions/{session_id}/status", response_model=RemoteResultResponse)
async def api_change_status(session_id: str, body: FlowStatusRequest):
    session = _session_or_404(session_id)
    return _remote_result(session, await session.editor.change_status(body.status))


@router.post("/sessions/{session_id}/nodes/{node_id}/sample-data", response_model=RemoteResultResponse)
async def api_save_sample_data(session_id: str, node_id: str, body: SampleDataRequest):
    session = _session_or_404(session_id)
    if session.editor.graph.get_node(node_id) is None:
        raise HTTPException(404, "Node not found")
    ok = await session.editor.save_sample_data(node_id, body.payload, body.type)
    return _remote_result(session, ok)


@router.post("/sessions/{session_id}/nodes/{node_id}/push", response_model=RemoteResultResponse)
async def api_push_step_settings(session_id: str, node_id: str):
    session = _session_or_404(session_id)
    if session.editor.graph.get_node(node_id) is None:
        raise HTTPException(404, "Node not found")
    return _remote_result(session, await session.editor.push_step_settings(node_id))


@router.get("/sessions/{session_id}/stream")
async def api_session_stream(session_id: str):
    """SSE stream of session events: graph.changed, toast.error, toast.success."""
    if not sessions.get_session(session_id):
        raise HTTPException(404, "Session not found")

    async def event_generator() -> AsyncGenerator[dict[str, Any], None]:
        offset = 0
        while True:
            session = sessions.get_session(session_id)
            if not session:
                break
            events, offset = session.events_since(offset)
            for ev in events:
                yield {"event": ev["kind"], "data": json.dumps(ev)}
            if session.closed:
                break
            await asyncio.sleep(STREAM_POLL_SECONDS)

    return EventSourceResponse(event_generator())


@router.get("/pieces", response_model=PieceListResponse)
async def api_list_pieces():
    try:
        pieces = await sessions.make_piece_catalog().list_pieces()
    except PieceCatalogError as e:
        raise HTTPException(502, str(e))
    items = [
        {
            "id": p.id,
            "name": p.name,
            "display_name": p.display_name,
            "logo_url": p.logo_url,
            "version": p.version,
            "auth": p.auth,
        }
        for p in pieces
    ]
    return PieceListResponse(pieces=items, total=len(items))
