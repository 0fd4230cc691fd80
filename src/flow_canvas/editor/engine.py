"""Workflow editor - structural mutations over the graph store.

Every mutation runs synchronously against the store and returns a ``MutationOutcome``.
Mutations with a remote counterpart capture a snapshot first and hand the remote call to
the ``SyncCoordinator``; a failed call puts the snapshot back.
"""

from __future__ import annotations

import copy
import logging
from typing import Any, Callable

from ..graph import topology
from ..graph.graph import (
    ROUTE_HANDLES,
    SAVE_EXEMPT_KINDS,
    Edge,
    FlowGraph,
    Node,
    NodeKind,
    Position,
    handle_index,
)
from ..graph.naming import new_node_id, slugify, unique_step_name
from ..graph.outcome import MutationOutcome
from ..graph.settings import (
    CodeSettings,
    LoopSettings,
    PieceSettings,
    RouterBranchSettings,
    StepSettings,
    TriggerSettings,
    default_router_settings,
)
from ..graph.store import GraphStore
from ..services.flow_client import FlowServiceClient
from ..services.operations import ActionPayload, FlowStatus, UpdateActionRequest, UpdateTriggerRequest
from ..services.piece_catalog import Piece, PieceCatalogClient, PieceCatalogError, PieceOperation, normalize_piece_name
from .context import EditorContext
from .loader import default_scaffold
from .sync import EventCallback, SyncCoordinator

logger = logging.getLogger(__name__)

HORIZONTAL_GAP = 300.0
DEFAULT_ORIGIN = Position(150.0, 200.0)
MAX_BRANCHES = 2

BRANCH_DROP_Y = 150.0
BRANCH_OFFSET_X = {"route-1": -120.0, "route-2": 120.0, "route-3": 0.0}
# Branches requested from the backend for a fresh router: (handle, label, branch type)
ROUTER_SKELETON = (
    ("route-1", "Success Path", "CONDITION"),
    ("route-2", "Fallback", "FALLBACK"),
)

# Kinds the backend provisions as soon as they are connected.
PROVISIONED_KINDS = frozenset({NodeKind.LOOP, NodeKind.CODE, NodeKind.ROUTER})

_SWAPPED_FIELDS = ("kind", "name", "label", "description", "logo_url", "is_placeholder", "config", "status")


def _title(kind: NodeKind) -> str:
    return kind.value[:1].upper() + kind.value[1:]


def _reorder(order: list[str], node_id: str, target_id: str, *, after: bool) -> list[str]:
    rest = [n for n in order if n != node_id]
    at = rest.index(target_id) + (1 if after else 0)
    return rest[:at] + [node_id] + rest[at:]


class WorkflowEditor:
    """One editing session over one flow.

    With no ``client`` (or no ``context.flow_id``) the editor is purely local; otherwise
    remote calls are scheduled on the running event loop.
    """

    def __init__(
        self,
        *,
        client: FlowServiceClient | None = None,
        catalog: PieceCatalogClient | None = None,
        context: EditorContext | None = None,
        store: GraphStore | None = None,
        on_event: EventCallback | None = None,
        id_factory: Callable[[], str] = new_node_id,
    ) -> None:
        self.context = context or EditorContext()
        self.catalog = catalog
        self.store = store or GraphStore()
        self._on_event = on_event or (lambda k, d: None)
        self._new_id = id_factory
        self.sync = SyncCoordinator(self.store, client, self.context, on_event=self._on_event, id_factory=id_factory)

    @property
    def graph(self) -> FlowGraph:
        return self.store.graph

    def state(self) -> dict[str, Any]:
        data = self.graph.to_dict()
        data.update({
            "revision": self.store.revision,
            "dirty": self.store.dirty,
            "flow_id": self.context.flow_id,
            "create_mode": self.context.create_mode,
        })
        return data

    # Helpers

    def _unique_name(self, base: str | None) -> str:
        return unique_step_name(base, self.graph.step_names())

    def _find_good_position(self, preferred: Position | None = None) -> Position:
        if preferred is not None:
            return Position(preferred.x, preferred.y)
        nodes = list(self.graph.nodes.values())
        if not nodes:
            return Position(DEFAULT_ORIGIN.x, DEFAULT_ORIGIN.y)
        rightmost = max(nodes, key=lambda n: n.position.x)
        return Position(rightmost.position.x + HORIZONTAL_GAP, rightmost.position.y)

    def _reject(self, title: str, message: str, *, highlight: str | None = None) -> MutationOutcome:
        if highlight is not None:
            self.store.highlight_error(highlight)
        logger.debug("mutation rejected: %s", message)
        self.sync.notify_error(title, message)
        return MutationOutcome.rejected(message, node_ids=[highlight] if highlight else None)

    def _is_remote_step(self, node: Node) -> bool:
        """Whether the backend knows this step: configured, or a provisioned kind that was connected."""
        if node.kind in (NodeKind.TRIGGER, NodeKind.ROUTER_BRANCH) or not node.name:
            return False
        if node.kind in PROVISIONED_KINDS:
            return bool(self.graph.incoming_edges(node.id))
        return not node.is_placeholder

    # Lifecycle

    def initialize_workflow(self) -> MutationOutcome:
        """Reset to the trigger + empty action scaffold."""
        self.store.replace(default_scaffold(self._new_id), "scaffold")
        return MutationOutcome.applied(node_ids=list(self.graph.nodes))

    async def load_workflow(self, flow_id: str | None = None) -> bool:
        flow_id = flow_id or self.context.flow_id
        if not flow_id:
            self.initialize_workflow()
            return False
        return await self.sync.load(flow_id)

    async def attach_flow(self, flow_id: str) -> bool:
        """Bind to an existing flow for saving without touching the canvas."""
        return await self.sync.attach(flow_id)

    # Connections

    def connect(self, source: str, target: str, source_handle: str | None = None) -> MutationOutcome:
        graph = self.graph
        src = graph.get_node(source)
        tgt = graph.get_node(target)
        if src is None or tgt is None:
            return MutationOutcome.ignored("unknown node")
        if source == target or topology.would_create_cycle(graph, source, target):
            return self._reject("Invalid connection", "This connection would create a cycle.", highlight=source)
        if src.kind != NodeKind.TRIGGER and not graph.incoming_edges(source):
            return self._reject(
                "Connect parent first",
                "Parent node must be connected before adding children (except trigger).",
                highlight=source,
            )
        outgoing = graph.outgoing_edges(source)
        if src.kind == NodeKind.ROUTER:
            if source_handle is not None and handle_index(source_handle) is None:
                return self._reject("Invalid router output", f"Unknown router output '{source_handle}'.", highlight=source)
            if any(e.source_handle == source_handle for e in outgoing):
                return self._reject("Router output in use", "This router output is already connected.", highlight=source)
        elif len(outgoing) >= MAX_BRANCHES:
            return self._reject("Branch limit reached", "This node can have at most 2 branches.", highlight=source)
        if graph.has_edge(source, target, source_handle):
            return MutationOutcome.ignored("already connected")

        graph.add_edge(Edge(source=source, target=target, source_handle=source_handle))
        created: list[str] = []
        if tgt.kind == NodeKind.ROUTER:
            if tgt.config is None:
                tgt.config = default_router_settings(self._parent_step_name(src))
            if self.context.create_mode:
                created = self._materialize_router_branches(tgt)
        self.store.commit("connect")
        if tgt.kind in PROVISIONED_KINDS:
            self._provision_step(src, tgt)
        return MutationOutcome.applied(node_id=target, node_ids=created)

    def remove_edge(self, edge_id: str) -> MutationOutcome:
        graph = self.graph
        kept = [e for e in graph.edges if e.id != edge_id]
        if len(kept) == len(graph.edges):
            return MutationOutcome.ignored("unknown edge")
        graph.edges = kept
        self.store.commit("edge.removed")
        return MutationOutcome.applied()

    @staticmethod
    def _parent_step_name(parent: Node) -> str:
        return "trigger" if parent.kind == NodeKind.TRIGGER else parent.step_name

    def _provision_step(self, parent: Node, node: Node) -> None:
        """Best effort: create the backend step for a loop, code or router node just connected."""
        parent_name = self._parent_step_name(parent)
        if node.kind == NodeKind.LOOP:
            settings: StepSettings = node.config if isinstance(node.config, LoopSettings) else LoopSettings()
            display, what = "Process Each Item", "Loop"
        elif node.kind == NodeKind.CODE:
            settings = node.config if isinstance(node.config, CodeSettings) else CodeSettings()
            display, what = "Process Data", "Code"
        else:
            settings = default_router_settings(parent_name)
            display, what = "Route Based on Condition", "Router"
        payload = ActionPayload(
            type=settings.backend_type,
            name=node.step_name,
            display_name=display,
            valid=True,
            settings=settings.to_backend(),
        )
        self.sync.dispatch(
            f"ADD_ACTION {payload.type}",
            lambda c, fid: c.add_action_after(fid, parent_name, payload),
            snapshot=None,
            error_title=f"{what} add failed",
            error_message=f"Could not add the {what.lower()} step to the flow.",
        )

    def _materialize_router_branches(self, router: Node) -> list[str]:
        graph = self.graph
        used = {e.source_handle for e in graph.outgoing_edges(router.id)}
        created: list[str] = []
        for handle, label, branch_type in ROUTER_SKELETON:
            if handle in used:
                continue
            node = graph.add_node(Node(
                id=self._new_id(),
                kind=NodeKind.ROUTER_BRANCH,
                name=self._unique_name(f"{router.step_name}_{slugify(label)}"),
                label=label,
                is_placeholder=True,
                config=RouterBranchSettings(
                    branch_name=label,
                    branch_type=branch_type,
                    branch_index=handle_index(handle),
                ),
                position=Position(router.position.x + BRANCH_OFFSET_X[handle], router.position.y + BRANCH_DROP_Y),
            ))
            graph.add_edge(Edge(source=router.id, target=node.id, source_handle=handle))
            created.append(node.id)
        return created

    # Node creation

    def add_node(self, kind: NodeKind | str, position: Position | None = None) -> MutationOutcome:
        kind = NodeKind(kind)
        return self._insert(Node(
            id=self._new_id(),
            kind=kind,
            name=self._unique_name(kind.value),
            label=f"{_title(kind)} Node",
            position=self._find_good_position(position),
        ))

    def add_empty_node(self, position: Position | None = None) -> MutationOutcome:
        return self._insert(Node(
            id=self._new_id(),
            kind=NodeKind.ACTION,
            name=self._unique_name("action"),
            label="Add Action",
            description="Click to choose an action",
            position=self._find_good_position(position),
        ))

    def add_router_node(self, position: Position | None = None) -> MutationOutcome:
        return self._insert(Node(
            id=self._new_id(),
            kind=NodeKind.ROUTER,
            name=self._unique_name("router"),
            label="Router",
            description="Route based on conditions",
            is_placeholder=False,
            position=self._find_good_position(position),
        ))

    def add_loop_node(self, position: Position | None = None) -> MutationOutcome:
        return self._insert(Node(
            id=self._new_id(),
            kind=NodeKind.LOOP,
            name=self._unique_name("loop"),
            label="Loop on Items",
            description="Iterate over items",
            is_placeholder=False,
            config=LoopSettings(),
            position=self._find_good_position(position),
        ))

    def add_code_node(self, position: Position | None = None) -> MutationOutcome:
        return self._insert(Node(
            id=self._new_id(),
            kind=NodeKind.CODE,
            name=self._unique_name("code"),
            label="Code",
            description="Run custom code",
            position=self._find_good_position(position),
        ))

    def _insert(self, node: Node) -> MutationOutcome:
        self.graph.add_node(node)
        self.store.commit(f"node.added:{node.kind.value}")
        return MutationOutcome.applied(node_id=node.id)

    def add_node_between(self, source_id: str, target_id: str) -> MutationOutcome:
        graph = self.graph
        src = graph.get_node(source_id)
        tgt = graph.get_node(target_id)
        if src is None or tgt is None:
            return MutationOutcome.ignored("unknown node")
        direct = [e for e in graph.edges if e.source == source_id and e.target == target_id]
        if not direct:
            return MutationOutcome.ignored("nodes are not connected")
        node = graph.add_node(Node(
            id=self._new_id(),
            kind=NodeKind.ACTION,
            name=self._unique_name("action"),
            label="Add Action",
            description="Click to choose an action",
            position=Position(
                (src.position.x + tgt.position.x) / 2,
                (src.position.y + tgt.position.y) / 2,
            ),
        ))
        graph.edges = [e for e in graph.edges if e not in direct]
        graph.add_edge(Edge(source=source_id, target=node.id, source_handle=direct[0].source_handle))
        graph.add_edge(Edge(source=node.id, target=target_id))
        self.store.commit("node.inserted")
        return MutationOutcome.applied(node_id=node.id)

    # Configuration

    def update_node_data(
        self,
        node_id: str,
        *,
        label: str | None = None,
        description: str | None = None,
        logo_url: str | None = None,
        name: str | None = None,
        config: StepSettings | None = None,
        position: Position | None = None,
    ) -> MutationOutcome:
        """Local edit. Binding a ``config`` marks the node configured for good."""
        node = self.graph.get_node(node_id)
        if node is None:
            return MutationOutcome.ignored("unknown node")
        if name is not None:
            slug = slugify(name)
            if slug != node.name and slug in self.graph.step_names():
                return self._reject("Name in use", f"Another step is already named '{slug}'.", highlight=node_id)
            node.name = slug
        if label is not None:
            node.label = label
        if description is not None:
            node.description = description
        if logo_url is not None:
            node.logo_url = logo_url
        if position is not None:
            node.position = Position(position.x, position.y)
        if config is not None:
            node.config = config
            node.is_placeholder = False
        self.store.commit("node.updated")
        return MutationOutcome.applied(node_id=node_id)

    def add_piece_node(
        self,
        piece: Piece,
        operation: PieceOperation,
        node_id: str,
        position: Position | None = None,
    ) -> MutationOutcome:
        """Bind a catalog action (or, on the trigger, a catalog trigger) to ``node_id``."""
        graph = self.graph
        node = graph.get_node(node_id)
        if node is None:
            return MutationOutcome.ignored("unknown node")
        snapshot = self.store.snapshot()
        is_trigger = node.kind == NodeKind.TRIGGER
        piece_name = normalize_piece_name(piece.name)
        version = piece.version or "latest"
        if is_trigger:
            node.name = node.name or "trigger"
            node.config = TriggerSettings(
                trigger_type="PIECE",
                piece_name=piece_name,
                piece_version=version,
                trigger_name=operation.name,
            )
        else:
            if not node.name:
                node.name = self._unique_name(operation.name or piece.name)
            node.kind = NodeKind.ACTION
            node.config = PieceSettings(piece_name=piece_name, action_name=operation.name, piece_version=version)
        node.label = operation.display_name or piece.display_name
        node.description = operation.description or piece.description or None
        node.logo_url = piece.logo_url or None
        node.is_placeholder = False
        if position is not None:
            node.position = Position(position.x, position.y)
        self.store.commit("node.configured")

        settings = node.config.to_backend()
        if is_trigger:
            request = UpdateTriggerRequest(
                type="PIECE", name=node.step_name, display_name=node.display_name, valid=True, settings=settings
            )
            self.sync.dispatch(
                "UPDATE_TRIGGER",
                lambda c, fid: c.update_trigger(fid, request),
                snapshot=snapshot,
                error_title="Trigger update failed",
                error_message="Failed to update trigger. Please try again.",
            )
            return MutationOutcome.applied(node_id=node_id)

        payload = ActionPayload(
            type="PIECE", name=node.step_name, display_name=node.display_name, valid=True, settings=settings
        )
        parent = topology.immediate_parent(graph, node_id)
        if parent is None or parent.kind == NodeKind.TRIGGER:
            call = lambda c, fid: c.add_action_under_trigger(fid, payload)  # noqa: E731
        else:
            parent_name = parent.step_name
            call = lambda c, fid: c.add_action_after(fid, parent_name, payload)  # noqa: E731
        self.sync.dispatch(
            "ADD_ACTION PIECE",
            call,
            snapshot=snapshot,
            error_title="Add action failed",
            error_message="Failed to add action. Please try again.",
        )
        return MutationOutcome.applied(node_id=node_id)

    # Delete / duplicate

    def delete_node(self, node_id: str) -> MutationOutcome:
        graph = self.graph
        node = graph.get_node(node_id)
        if node is None:
            return MutationOutcome.ignored("unknown node")
        if node.kind == NodeKind.TRIGGER:
            return self._reject("Cannot delete trigger", "The trigger step cannot be deleted.", highlight=node_id)
        snapshot = self.store.snapshot()

        fed_by = topology.router_parent(graph, node_id)
        if fed_by is not None:
            router, edge = fed_by
            branch_index = handle_index(edge.source_handle)
            removed = topology.reachable_forward(graph, node_id)
            graph.remove_nodes(removed)
            self.store.commit("branch.deleted")
            router_name = router.step_name
            self.sync.dispatch(
                "DELETE_BRANCH",
                lambda c, fid: c.delete_branch(fid, router_name, branch_index),
                snapshot=snapshot,
                error_title="Delete branch failed",
                error_message="Failed to delete branch. Please try again.",
            )
            return MutationOutcome.applied(node_ids=sorted(removed))

        remote = self._is_remote_step(node)
        incoming = graph.first_incoming(node_id)
        outgoing = graph.first_outgoing(node_id)
        graph.remove_nodes({node_id})
        if incoming is not None and outgoing is not None:
            if not graph.has_edge(incoming.source, outgoing.target, incoming.source_handle):
                graph.add_edge(Edge(source=incoming.source, target=outgoing.target, source_handle=incoming.source_handle))
        self.store.commit("node.deleted")
        if remote:
            step_name = node.step_name
            self.sync.dispatch(
                "DELETE_ACTION",
                lambda c, fid: c.delete_action(fid, [step_name]),
                snapshot=snapshot,
                error_title="Delete failed",
                error_message="Failed to delete step. Please try again.",
            )
        return MutationOutcome.applied(node_ids=[node_id])

    def duplicate_node(self, node_id: str) -> MutationOutcome:
        graph = self.graph
        node = graph.get_node(node_id)
        if node is None:
            return MutationOutcome.ignored("unknown node")
        if node.kind == NodeKind.TRIGGER:
            return self._reject("Cannot duplicate trigger", "A flow has exactly one trigger.", highlight=node_id)

        fed_by = topology.router_parent(graph, node_id)
        if fed_by is not None:
            return self._duplicate_branch(node, *fed_by)

        outgoing = sorted(graph.outgoing_edges(node_id), key=lambda e: graph.nodes[e.target].position.y)
        tail_id = topology.branch_tail(graph, outgoing[0].target) if outgoing else node_id
        tail = graph.nodes[tail_id]
        if tail.kind != NodeKind.ROUTER and len(graph.outgoing_edges(tail_id)) >= MAX_BRANCHES:
            return self._reject("Branch limit reached", "This node can have at most 2 branches.", highlight=tail_id)

        snapshot = self.store.snapshot()
        dup = graph.add_node(Node(
            id=self._new_id(),
            kind=node.kind,
            name=self._unique_name(node.name or node.kind.value),
            label=node.label,
            description=node.description,
            logo_url=node.logo_url,
            is_placeholder=node.is_placeholder,
            config=copy.deepcopy(node.config),
            position=Position(tail.position.x + HORIZONTAL_GAP, tail.position.y),
        ))
        graph.add_edge(Edge(source=tail_id, target=dup.id))
        self.store.commit("node.duplicated")
        if self._is_remote_step(node):
            step_name = node.step_name
            self.sync.dispatch(
                "DUPLICATE_ACTION",
                lambda c, fid: c.duplicate_action(fid, step_name),
                snapshot=snapshot,
                error_title="Duplicate failed",
                error_message="Failed to duplicate step. Please try again.",
            )
        return MutationOutcome.applied(node_id=dup.id)

    def _duplicate_branch(self, node: Node, router: Node, edge: Edge) -> MutationOutcome:
        graph = self.graph
        branch_index = handle_index(edge.source_handle)
        used = {e.source_handle for e in graph.outgoing_edges(router.id)}
        handle = next((h for h in ROUTE_HANDLES if h not in used), ROUTE_HANDLES[-1])
        label = f"Copy of {node.display_name}"
        snapshot = self.store.snapshot()
        dup = graph.add_node(Node(
            id=self._new_id(),
            kind=NodeKind.ROUTER_BRANCH,
            name=self._unique_name(f"{router.step_name}_{slugify(label)}"),
            label=label,
            is_placeholder=True,
            config=RouterBranchSettings(
                branch_name=label,
                duplicated_from=node.name or None,
                branch_index=branch_index,
            ),
            position=Position(router.position.x + BRANCH_OFFSET_X[handle], router.position.y + BRANCH_DROP_Y),
        ))
        graph.add_edge(Edge(source=router.id, target=dup.id, source_handle=handle))
        self.store.commit("branch.duplicated")
        router_name = router.step_name
        self.sync.dispatch(
            "DUPLICATE_BRANCH",
            lambda c, fid: c.duplicate_branch(fid, router_name, branch_index),
            snapshot=snapshot,
            error_title="Duplicate branch failed",
            error_message="Failed to duplicate branch. Please try again.",
        )
        return MutationOutcome.applied(node_id=dup.id)

    # Reordering

    def _swap_data(self, a: Node, b: Node) -> None:
        for attr in _SWAPPED_FIELDS:
            va, vb = getattr(a, attr), getattr(b, attr)
            setattr(a, attr, vb)
            setattr(b, attr, va)

    def swap_node_above(self, node_id: str) -> MutationOutcome:
        edge = self.graph.first_incoming(node_id)
        if node_id not in self.graph.nodes or edge is None:
            return MutationOutcome.ignored("nothing above")
        self._swap_data(self.graph.nodes[node_id], self.graph.nodes[edge.source])
        self.store.commit("node.swapped")
        return MutationOutcome.applied(node_ids=[edge.source, node_id])

    def swap_node_below(self, node_id: str) -> MutationOutcome:
        edge = self.graph.first_outgoing(node_id)
        if node_id not in self.graph.nodes or edge is None:
            return MutationOutcome.ignored("nothing below")
        self._swap_data(self.graph.nodes[node_id], self.graph.nodes[edge.target])
        self.store.commit("node.swapped")
        return MutationOutcome.applied(node_ids=[node_id, edge.target])

    def move_node_after(self, node_id: str, target_id: str) -> MutationOutcome:
        return self._move_in_flow(node_id, target_id, after=True)

    def move_node_before(self, node_id: str, target_id: str) -> MutationOutcome:
        return self._move_in_flow(node_id, target_id, after=False)

    def move_node_after_in_branch(self, node_id: str, target_id: str) -> MutationOutcome:
        return self._move_in_branch(node_id, target_id, after=True)

    def move_node_before_in_branch(self, node_id: str, target_id: str) -> MutationOutcome:
        return self._move_in_branch(node_id, target_id, after=False)

    def _rechain(self, old_order: list[str], new_order: list[str]) -> None:
        """Replace edges running between members of ``old_order`` with a chain over ``new_order``."""
        members = set(old_order)
        graph = self.graph
        graph.edges = [e for e in graph.edges if not (e.source in members and e.target in members)]
        graph.edges.extend(topology.chain_edges(new_order))

    def _move_in_flow(self, node_id: str, target_id: str, *, after: bool) -> MutationOutcome:
        graph = self.graph
        if node_id == target_id or node_id not in graph.nodes or target_id not in graph.nodes:
            return MutationOutcome.ignored("nothing to move")
        if topology.has_branching(graph):
            return self._reject("Reorder unavailable", "Whole-flow reordering is disabled while the flow has branches.")
        order = topology.linear_flow_order(graph)
        if node_id not in order or target_id not in order:
            return MutationOutcome.ignored("node is not in the flow")
        new_order = _reorder(order, node_id, target_id, after=after)
        self._rechain(order, new_order)
        topology.layout_flow(graph, new_order)
        self.store.commit("flow.reordered")
        return MutationOutcome.applied(node_id=node_id, node_ids=new_order)

    def _move_in_branch(self, node_id: str, target_id: str, *, after: bool) -> MutationOutcome:
        graph = self.graph
        if node_id == target_id or node_id not in graph.nodes or target_id not in graph.nodes:
            return MutationOutcome.ignored("nothing to move")
        order = topology.branch_members(graph, node_id)
        if target_id not in order:
            return MutationOutcome.ignored("target is not in the same branch")
        new_order = _reorder(order, node_id, target_id, after=after)
        self._rechain(order, new_order)
        topology.layout_branch(graph, order, new_order)
        self.store.commit("branch.reordered")
        return MutationOutcome.applied(node_id=node_id, node_ids=new_order)

    # Queries

    def path_to_root(self, node_id: str) -> list[str]:
        return topology.path_to_root(self.graph, node_id)

    def nodes_below_in_flow(self, node_id: str) -> list[str]:
        return topology.nodes_below_in_flow(self.graph, node_id)

    def nodes_above_in_flow(self, node_id: str) -> list[str]:
        return topology.nodes_above_in_flow(self.graph, node_id)

    def nodes_below_in_branch(self, node_id: str) -> list[str]:
        return topology.nodes_below_in_branch(self.graph, node_id)

    def nodes_above_in_branch(self, node_id: str) -> list[str]:
        return topology.nodes_above_in_branch(self.graph, node_id)

    def right_move_candidates(self, node_id: str) -> list[str]:
        return topology.right_move_candidates(self.graph, node_id)

    def left_move_candidates(self, node_id: str) -> list[str]:
        return topology.left_move_candidates(self.graph, node_id)

    def unconfigured_nodes(self) -> list[str]:
        return [
            n.id for n in self.graph.nodes.values()
            if n.is_placeholder and n.kind not in SAVE_EXEMPT_KINDS
        ]

    # Flow-level remote operations

    async def save_workflow(self) -> MutationOutcome:
        offending = self.unconfigured_nodes()
        if offending:
            message = f"Please configure all nodes before saving. {len(offending)} node(s) need configuration."
            self.sync.notify_error("Cannot save incomplete workflow", message)
            return MutationOutcome.rejected(message, node_ids=offending)
        version_id = self.context.first_version_id
        if not self.sync.enabled or not version_id:
            message = "Missing flow or version id"
            self.sync.notify_error("Save failed", message)
            return MutationOutcome.rejected(message)
        ok = await self.sync.call(
            "USE_AS_DRAFT",
            lambda c, fid: c.use_as_draft(fid, version_id),
            error_title="Save failed",
            error_message="Failed to save workflow. Please try again.",
        )
        if not ok:
            return MutationOutcome.rejected("remote save failed")
        self.store.dirty = False
        self.sync.notify_success("Workflow saved", "Your workflow has been saved.")
        return MutationOutcome.applied()

    async def rename_flow(self, display_name: str) -> bool:
        return await self.sync.call(
            "CHANGE_NAME",
            lambda c, fid: c.change_name(fid, display_name),
            error_title="Rename failed",
            error_message="Failed to rename flow.",
        )

    async def publish(self, status: FlowStatus = "ENABLED") -> bool:
        ok = await self.sync.call(
            "LOCK_AND_PUBLISH",
            lambda c, fid: c.lock_and_publish(fid, status),
            error_title="Publish failed",
            error_message="Failed to publish flow.",
        )
        if ok:
            self.sync.notify_success("Flow published", "The current version is now live.")
        return ok

    async def change_status(self, status: FlowStatus) -> bool:
        return await self.sync.call(
            "CHANGE_STATUS",
            lambda c, fid: c.change_status(fid, status),
            error_title="Status change failed",
            error_message=f"Failed to set flow status to {status}.",
        )

    async def save_sample_data(self, node_id: str, payload: dict[str, Any], type: str = "INPUT") -> bool:
        node = self.graph.get_node(node_id)
        if node is None:
            return False
        step_name = node.step_name
        return await self.sync.call(
            "SAVE_SAMPLE_DATA",
            lambda c, fid: c.save_sample_data(fid, step_name, payload, type),
            error_title="Sample data not saved",
            error_message=f"Failed to save sample data for {step_name}.",
        )

    async def _concrete_piece_version(self, config: PieceSettings) -> str:
        """Best-effort: a 'latest' version is sent as-is when the catalog cannot resolve it."""
        if self.catalog is None:
            return config.piece_version
        try:
            return await self.catalog.resolve_piece_version(config.piece_name, config.piece_version)
        except PieceCatalogError as e:
            logger.warning("keeping piece version %r for %s: %s", config.piece_version, config.piece_name, e)
            return config.piece_version

    async def push_step_settings(self, node_id: str) -> bool:
        """Send a configured node's current settings with UPDATE_TRIGGER or UPDATE_ACTION."""
        node = self.graph.get_node(node_id)
        if node is None or node.config is None or node.is_placeholder:
            return False
        settings = node.config.to_backend()
        if isinstance(node.config, TriggerSettings):
            trigger_request = UpdateTriggerRequest(
                type=node.config.trigger_type,
                name=node.step_name,
                display_name=node.display_name,
                valid=True,
                settings=settings,
            )
            return await self.sync.call(
                "UPDATE_TRIGGER",
                lambda c, fid: c.update_trigger(fid, trigger_request),
                error_title="Trigger update failed",
                error_message="Failed to update trigger.",
            )
        if isinstance(node.config, RouterBranchSettings):
            return False
        if isinstance(node.config, PieceSettings):
            settings["pieceVersion"] = await self._concrete_piece_version(node.config)
        action_request = UpdateActionRequest(
            type=node.config.backend_type,
            name=node.step_name,
            display_name=node.display_name,
            valid=True,
            settings=settings,
        )
        return await self.sync.call(
            "UPDATE_ACTION",
            lambda c, fid: c.update_action(fid, action_request),
            error_title="Update failed",
            error_message=f"Failed to update {node.display_name}.",
        )

    async def drain(self) -> None:
        await self.sync.drain()

