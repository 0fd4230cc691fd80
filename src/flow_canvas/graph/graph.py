"""Graph model for the flow canvas - steps (nodes) and connections (edges)."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any

from .settings import StepSettings

ROUTE_HANDLES: tuple[str, ...] = ("route-1", "route-2", "route-3")


class NodeKind(str, Enum):
    TRIGGER = "trigger"
    ACTION = "action"
    CONDITION = "condition"
    DELAY = "delay"
    ROUTER = "router"
    LOOP = "loop"
    CODE = "code"
    ROUTER_BRANCH = "routerBranch"
    END = "end"


class NodeStatus(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    SUCCESS = "success"
    ERROR = "error"
    WAITING = "waiting"


# Placeholders of these kinds do not block saving.
SAVE_EXEMPT_KINDS = frozenset({NodeKind.LOOP, NodeKind.ROUTER, NodeKind.CODE})


def handle_index(handle: str | None) -> int | None:
    """Branch index for a router output handle ('route-1' -> 0), None for the default output."""
    if handle in ROUTE_HANDLES:
        return ROUTE_HANDLES.index(handle)
    return None


@dataclass
class Position:
    x: float = 0.0
    y: float = 0.0


@dataclass
class Node:
    """A step on the canvas. ``name`` is the join key with the backend; ``id`` is local only."""

    id: str
    kind: NodeKind
    name: str = ""
    label: str = ""
    description: str | None = None
    logo_url: str | None = None
    is_placeholder: bool = True
    config: StepSettings | None = None
    position: Position = field(default_factory=Position)
    status: NodeStatus = NodeStatus.IDLE

    @property
    def display_name(self) -> str:
        return self.label or self.name or self.id

    @property
    def step_name(self) -> str:
        return self.name or self.id

    def to_dict(self) -> dict[str, Any]:
        config = None
        if self.config is not None:
            config = {"type": self.config.backend_type, **asdict(self.config)}
        return {
            "id": self.id,
            "kind": self.kind.value,
            "name": self.name,
            "label": self.label,
            "description": self.description,
            "logo_url": self.logo_url,
            "is_placeholder": self.is_placeholder,
            "config": config,
            "position": {"x": self.position.x, "y": self.position.y},
            "status": self.status.value,
        }


@dataclass
class Edge:
    """Directed connection: ``target`` runs after ``source``."""

    source: str
    target: str
    source_handle: str | None = None
    id: str = ""

    def __post_init__(self) -> None:
        if not self.id:
            suffix = f"-{self.source_handle}" if self.source_handle else ""
            self.id = f"edge-{self.source}-{self.target}{suffix}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "source": self.source,
            "target": self.target,
            "source_handle": self.source_handle,
        }


@dataclass
class FlowGraph:
    """Nodes keyed by id (insertion ordered) plus the edge list."""

    nodes: dict[str, Node] = field(default_factory=dict)
    edges: list[Edge] = field(default_factory=list)

    def get_node(self, node_id: str | None) -> Node | None:
        if node_id is None:
            return None
        return self.nodes.get(node_id)

    def outgoing_edges(self, node_id: str) -> list[Edge]:
        return [e for e in self.edges if e.source == node_id]

    def incoming_edges(self, node_id: str) -> list[Edge]:
        return [e for e in self.edges if e.target == node_id]

    def first_incoming(self, node_id: str) -> Edge | None:
        return next((e for e in self.edges if e.target == node_id), None)

    def first_outgoing(self, node_id: str) -> Edge | None:
        return next((e for e in self.edges if e.source == node_id), None)

    def has_edge(self, source: str, target: str, source_handle: str | None = None) -> bool:
        return any(
            e.source == source and e.target == target and e.source_handle == source_handle
            for e in self.edges
        )

    def step_names(self) -> set[str]:
        return {n.name for n in self.nodes.values() if n.name}

    def roots(self) -> list[Node]:
        targets = {e.target for e in self.edges}
        return [n for n in self.nodes.values() if n.id not in targets]

    def add_node(self, node: Node) -> Node:
        if node.id in self.nodes:
            raise ValueError(f"Node with id {node.id} already exists.")
        self.nodes[node.id] = node
        return node

    def add_edge(self, edge: Edge) -> Edge:
        if edge.source not in self.nodes:
            raise ValueError(f"Source node {edge.source} does not exist.")
        if edge.target not in self.nodes:
            raise ValueError(f"Target node {edge.target} does not exist.")
        self.edges.append(edge)
        return edge

    def remove_nodes(self, node_ids: set[str]) -> None:
        """Drop the nodes and every edge touching them."""
        for nid in node_ids:
            self.nodes.pop(nid, None)
        self.edges = [e for e in self.edges if e.source not in node_ids and e.target not in node_ids]

    def to_dict(self) -> dict[str, Any]:
        return {
            "nodes": [n.to_dict() for n in self.nodes.values()],
            "edges": [e.to_dict() for e in self.edges],
        }
