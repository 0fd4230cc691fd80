"""Build a canvas graph from the remote flow document, or the default two-node scaffold."""

from __future__ import annotations

from collections import deque
from typing import Any, Callable

from ..graph.graph import Edge, FlowGraph, Node, NodeKind, Position, ROUTE_HANDLES
from ..graph.naming import new_node_id, unique_step_name
from ..graph.settings import default_webhook_trigger, settings_from_backend

IdFactory = Callable[[], str]

TYPE_TO_KIND: dict[str, NodeKind] = {
    "PIECE": NodeKind.ACTION,
    "CODE": NodeKind.CODE,
    "ROUTER": NodeKind.ROUTER,
    "LOOP_ON_ITEMS": NodeKind.LOOP,
    "WEBHOOK": NodeKind.TRIGGER,
}

BASE_X = 150.0
BASE_Y = 200.0
X_GAP = 260.0
Y_GAP = 160.0

SCAFFOLD_X = 400.0
SCAFFOLD_Y = 100.0
SCAFFOLD_GAP = 300.0


def default_scaffold(id_factory: IdFactory = new_node_id) -> FlowGraph:
    """Webhook trigger followed by one unconfigured action."""
    graph = FlowGraph()
    trigger = graph.add_node(Node(
        id=id_factory(),
        kind=NodeKind.TRIGGER,
        name=unique_step_name("trigger", graph.step_names()),
        label="Webhook Trigger",
        is_placeholder=False,
        config=default_webhook_trigger(),
        position=Position(SCAFFOLD_X, SCAFFOLD_Y),
    ))
    action = graph.add_node(Node(
        id=id_factory(),
        kind=NodeKind.ACTION,
        name=unique_step_name("action", graph.step_names()),
        label="2. Add Action",
        is_placeholder=True,
        position=Position(SCAFFOLD_X + SCAFFOLD_GAP, SCAFFOLD_Y),
    ))
    graph.add_edge(Edge(source=trigger.id, target=action.id))
    return graph


def _flow_document(raw: Any) -> dict[str, Any] | None:
    doc = raw
    for key in ("data", "flow"):
        if isinstance(doc, dict) and isinstance(doc.get(key), dict):
            doc = doc[key]
    return doc if isinstance(doc, dict) else None


def version_ids(raw: Any) -> list[str]:
    doc = _flow_document(raw)
    versions = doc.get("versions") if doc else None
    if not isinstance(versions, list):
        return []
    return [str(v["id"]) for v in versions if isinstance(v, dict) and v.get("id")]


def extract_trigger(raw: Any) -> dict[str, Any] | None:
    """The first version's trigger step (``trigger``, ``trigger.trigger`` or ``flowData.trigger``)."""
    doc = _flow_document(raw)
    versions = doc.get("versions") if doc else None
    if not isinstance(versions, list) or not versions or not isinstance(versions[0], dict):
        return None
    first = versions[0]
    wrap = first.get("trigger")
    if not isinstance(wrap, dict) and isinstance(first.get("flowData"), dict):
        wrap = first["flowData"].get("trigger")
    if not isinstance(wrap, dict):
        return None
    if isinstance(wrap.get("trigger"), dict):
        return wrap["trigger"]
    return wrap if "type" in wrap or "name" in wrap else None


def _node_from_backend(step: dict[str, Any], pos: Position, node_id: str, *, is_trigger: bool) -> Node:
    step_type = str(step.get("type") or ("EMPTY" if is_trigger else "PIECE")).upper()
    kind = NodeKind.TRIGGER if is_trigger else TYPE_TO_KIND.get(step_type, NodeKind.ACTION)
    display = str(step.get("displayName") or step.get("name") or ("Webhook Trigger" if is_trigger else "Step"))
    name = str(step.get("name") or display.lower().replace(" ", "_"))
    settings = step.get("settings") if isinstance(step.get("settings"), dict) else {}
    return Node(
        id=node_id,
        kind=kind,
        name=name,
        label=display,
        is_placeholder=is_trigger and step_type == "EMPTY",
        config=settings_from_backend(step_type, settings, is_trigger=is_trigger),
        position=pos,
    )


def _children(step: dict[str, Any]) -> list[tuple[dict[str, Any], str | None]]:
    """Next steps with the router handle they hang from; the main chain comes first."""
    out: list[tuple[dict[str, Any], str | None]] = []
    nxt = step.get("nextAction")
    if isinstance(nxt, list):
        out.extend((c, None) for c in nxt if isinstance(c, dict))
    elif isinstance(nxt, dict):
        out.append((nxt, None))
    if str(step.get("type") or "").upper() == "ROUTER":
        for handle, child in zip(ROUTE_HANDLES, step.get("children") or []):
            if isinstance(child, dict):
                out.append((child, handle))
    return out


def graph_from_remote(raw: Any, id_factory: IdFactory = new_node_id) -> FlowGraph | None:
    """Breadth-first walk from the trigger; x spaced by depth, y by sibling index.

    Returns None when the document has no trigger.
    """
    trigger = extract_trigger(raw)
    if trigger is None:
        return None
    graph = FlowGraph()
    root = graph.add_node(_node_from_backend(trigger, Position(BASE_X, BASE_Y), id_factory(), is_trigger=True))
    queue: deque[tuple[dict[str, Any], str, int]] = deque([(trigger, root.id, 0)])
    while queue:
        step, parent_id, depth = queue.popleft()
        for index, (child, handle) in enumerate(_children(step)):
            pos = Position(BASE_X + (depth + 1) * X_GAP, BASE_Y + index * Y_GAP)
            node = graph.add_node(_node_from_backend(child, pos, id_factory(), is_trigger=False))
            graph.add_edge(Edge(source=parent_id, target=node.id, source_handle=handle))
            queue.append((child, node.id, depth + 1))
    return graph
