"""Flow graph: nodes, edges, per-kind settings, naming, topology and the store."""

from .graph import Edge, FlowGraph, Node, NodeKind, NodeStatus, Position, ROUTE_HANDLES
from .naming import new_node_id, slugify, unique_step_name
from .outcome import MutationOutcome, MutationStatus
from .store import GraphStore

__all__ = [
    "Edge",
    "FlowGraph",
    "Node",
    "NodeKind",
    "NodeStatus",
    "Position",
    "ROUTE_HANDLES",
    "new_node_id",
    "slugify",
    "unique_step_name",
    "MutationOutcome",
    "MutationStatus",
    "GraphStore",
]
