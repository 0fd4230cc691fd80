"""Pydantic models for API request/response."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field


class PositionModel(BaseModel):
    x: float = 0.0
    y: float = 0.0


class CreateSessionRequest(BaseModel):
    flow_id: str | None = None
    project_id: str | None = None
    create_mode: bool = False


class SessionResponse(BaseModel):
    session_id: str
    state: dict[str, Any]


class SessionListItem(BaseModel):
    session_id: str
    flow_id: str | None = None
    create_mode: bool = False
    node_count: int = 0
    dirty: bool = False


class SessionListResponse(BaseModel):
    sessions: list[SessionListItem]
    total: int


MutationOp = Literal[
    "connect",
    "remove_edge",
    "add_node",
    "add_empty_node",
    "add_router_node",
    "add_loop_node",
    "add_code_node",
    "add_node_between",
    "delete_node",
    "duplicate_node",
    "swap_node_above",
    "swap_node_below",
    "move_node_after",
    "move_node_before",
    "move_node_after_in_branch",
    "move_node_before_in_branch",
]


class MutationRequest(BaseModel):
    """``node_id`` is the subject (connect: source); ``target_id`` the other end or anchor."""

    op: MutationOp
    node_id: str | None = None
    target_id: str | None = None
    source_handle: str | None = None
    kind: Literal[
        "trigger", "action", "condition", "delay", "router", "loop", "code", "routerBranch", "end"
    ] = "action"
    position: PositionModel | None = None
    edge_id: str | None = None


class MutationResponse(BaseModel):
    outcome: dict[str, Any]
    state: dict[str, Any]


class NodeUpdateRequest(BaseModel):
    label: str | None = None
    description: str | None = None
    logo_url: str | None = None
    name: str | None = None
    position: PositionModel | None = None


class BindPieceRequest(BaseModel):
    piece_name: str
    operation_name: str
    position: PositionModel | None = None


class RenameFlowRequest(BaseModel):
    display_name: str = Field(min_length=1)


class FlowStatusRequest(BaseModel):
    status: Literal["ENABLED", "DISABLED"]


class SampleDataRequest(BaseModel):
    payload: dict[str, Any] = Field(default_factory=dict)
    type: Literal["INPUT", "OUTPUT"] = "INPUT"


class RemoteResultResponse(BaseModel):
    ok: bool
    state: dict[str, Any]


class TopologyResponse(BaseModel):
    node_id: str
    path_to_root: list[str]
    nodes_above_in_flow: list[str]
    nodes_below_in_flow: list[str]
    nodes_above_in_branch: list[str]
    nodes_below_in_branch: list[str]
    left_move_candidates: list[str]
    right_move_candidates: list[str]


class PieceListItem(BaseModel):
    id: str
    name: str
    display_name: str
    logo_url: str = ""
    version: str | None = None
    auth: dict[str, Any] | None = None


class PieceListResponse(BaseModel):
    pieces: list[PieceListItem]
    total: int
