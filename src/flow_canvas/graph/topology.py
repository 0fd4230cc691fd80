"""Read-only graph walks: paths, branches, flow order and layout."""

from __future__ import annotations

from collections import deque

from .graph import Edge, FlowGraph, Node, NodeKind, Position, handle_index

# Hard cap on walks so malformed (cyclic) graphs still terminate.
MAX_HOPS = 200
ROW_TOLERANCE = 50.0
WINDOW = 5

FLOW_BASE_X = 150.0
FLOW_BASE_Y = 200.0
FLOW_SPACING_X = 220.0


def path_to_root(graph: FlowGraph, node_id: str) -> list[str]:
    """Ancestor chain ``[root, ..., node_id]`` following the first incoming edge at each step."""
    path: list[str] = []
    seen: set[str] = set()
    current: str | None = node_id
    while current and current not in seen and len(path) < MAX_HOPS:
        path.insert(0, current)
        seen.add(current)
        incoming = graph.first_incoming(current)
        current = incoming.source if incoming else None
    return path


def immediate_parent(graph: FlowGraph, node_id: str) -> Node | None:
    path = path_to_root(graph, node_id)
    if len(path) < 2:
        return None
    return graph.get_node(path[-2])


def _default_outgoing(graph: FlowGraph, node_id: str) -> list[Edge]:
    return [e for e in graph.outgoing_edges(node_id) if handle_index(e.source_handle) is None]


def descendants_along_default_path(graph: FlowGraph, node_id: str) -> list[str]:
    """Nodes after ``node_id`` along its single default output; stops at a split or a dead end."""
    out: list[str] = []
    seen = {node_id}
    current = node_id
    for _ in range(MAX_HOPS):
        edges = _default_outgoing(graph, current)
        if len(edges) != 1 or edges[0].target in seen:
            break
        current = edges[0].target
        seen.add(current)
        out.append(current)
    return out


def nodes_below_in_flow(graph: FlowGraph, node_id: str) -> list[str]:
    return descendants_along_default_path(graph, node_id)[:WINDOW]


def nodes_above_in_flow(graph: FlowGraph, node_id: str) -> list[str]:
    return path_to_root(graph, node_id)[:-1][-WINDOW:]


def branch_members(graph: FlowGraph, node_id: str, tolerance: float = ROW_TOLERANCE) -> list[str]:
    """Nodes on the same layout row as ``node_id`` (|dy| < tolerance), left to right.

    Row proximity stands in for branch membership; callers only depend on this function,
    not on how membership is derived.
    """
    node = graph.get_node(node_id)
    if node is None:
        return []
    row = [n for n in graph.nodes.values() if abs(n.position.y - node.position.y) < tolerance]
    row.sort(key=lambda n: n.position.x)
    return [n.id for n in row]


def nodes_below_in_branch(graph: FlowGraph, node_id: str) -> list[str]:
    order = branch_members(graph, node_id)
    if node_id not in order:
        return []
    return order[order.index(node_id) + 1:][:WINDOW]


def nodes_above_in_branch(graph: FlowGraph, node_id: str) -> list[str]:
    order = branch_members(graph, node_id)
    if node_id not in order:
        return []
    return order[:order.index(node_id)][-WINDOW:]


def linear_flow_order(graph: FlowGraph) -> list[str]:
    """Chain from the first rootless node following the first outgoing edge at each step."""
    roots = graph.roots()
    if not roots:
        return []
    order: list[str] = []
    visited: set[str] = set()
    current: str | None = roots[0].id
    while current and current not in visited:
        order.append(current)
        visited.add(current)
        edge = graph.first_outgoing(current)
        current = edge.target if edge else None
    return order


def has_branching(graph: FlowGraph) -> bool:
    """True when any node has more than one outgoing edge."""
    sources = [e.source for e in graph.edges]
    return len(sources) != len(set(sources))


def reachable_forward(graph: FlowGraph, node_id: str) -> set[str]:
    """``node_id`` plus every node reachable through outgoing edges."""
    seen = {node_id}
    queue = deque([node_id])
    while queue:
        current = queue.popleft()
        for edge in graph.outgoing_edges(current):
            if edge.target not in seen:
                seen.add(edge.target)
                queue.append(edge.target)
    return seen


def would_create_cycle(graph: FlowGraph, source: str, target: str) -> bool:
    return source == target or source in reachable_forward(graph, target)


def branch_tail(graph: FlowGraph, node_id: str) -> str:
    """Last node reached from ``node_id`` through single outgoing edges."""
    tail = node_id
    seen = {node_id}
    for _ in range(MAX_HOPS):
        edges = graph.outgoing_edges(tail)
        if len(edges) != 1 or edges[0].target in seen:
            break
        tail = edges[0].target
        seen.add(tail)
    return tail


def router_parent(graph: FlowGraph, node_id: str) -> tuple[Node, Edge] | None:
    """The router feeding ``node_id`` through a labeled output, with that edge."""
    for edge in graph.incoming_edges(node_id):
        src = graph.get_node(edge.source)
        if src is not None and src.kind == NodeKind.ROUTER and handle_index(edge.source_handle) is not None:
            return src, edge
    return None


def _collect(graph: FlowGraph, start: str, limit: int, *, forward: bool) -> list[str]:
    result: list[str] = []
    visited: set[str] = set()
    current: str | None = start
    while current and len(result) < limit and current not in visited:
        visited.add(current)
        node = graph.get_node(current)
        if node is None:
            break
        if not node.is_placeholder:
            result.append(current)
        if forward:
            nxt = [e.target for e in graph.outgoing_edges(current)]
        else:
            nxt = [e.source for e in graph.incoming_edges(current)]
        if len(nxt) != 1:
            break
        current = nxt[0]
    return result


def _y(graph: FlowGraph, node_id: str) -> float:
    node = graph.get_node(node_id)
    return node.position.y if node else 0.0


def right_move_candidates(graph: FlowGraph, node_id: str) -> list[str]:
    """Up to 4 configured nodes ahead of ``node_id``; two per side when it splits."""
    targets = sorted((e.target for e in graph.outgoing_edges(node_id)), key=lambda t: _y(graph, t))
    if len(targets) >= 2:
        picked = _collect(graph, targets[0], 2, forward=True) + _collect(graph, targets[1], 2, forward=True)
        return picked[:4]
    if len(targets) == 1:
        return _collect(graph, targets[0], 4, forward=True)
    return []


def left_move_candidates(graph: FlowGraph, node_id: str) -> list[str]:
    sources = sorted((e.source for e in graph.incoming_edges(node_id)), key=lambda s: _y(graph, s))
    if len(sources) >= 2:
        picked = _collect(graph, sources[0], 2, forward=False) + _collect(graph, sources[1], 2, forward=False)
        return picked[:4]
    if len(sources) == 1:
        return _collect(graph, sources[0], 4, forward=False)
    return []


def chain_edges(order: list[str]) -> list[Edge]:
    return [Edge(source=a, target=b) for a, b in zip(order, order[1:])]


def layout_flow(graph: FlowGraph, order: list[str]) -> None:
    """Evenly space ``order`` along one row."""
    for index, node_id in enumerate(order):
        node = graph.get_node(node_id)
        if node is not None:
            node.position = Position(x=FLOW_BASE_X + index * FLOW_SPACING_X, y=FLOW_BASE_Y)


def layout_branch(graph: FlowGraph, old_order: list[str], new_order: list[str]) -> None:
    """Hand the row's existing x slots to ``new_order`` left to right; y is untouched."""
    slots = sorted(graph.nodes[nid].position.x for nid in old_order if nid in graph.nodes)
    for index, node_id in enumerate(new_order):
        node = graph.get_node(node_id)
        if node is not None and index < len(slots):
            node.position = Position(x=slots[index], y=node.position.y)
