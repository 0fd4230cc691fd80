"""Graph store - the canonical node/edge state of one editor session."""

from __future__ import annotations

import copy
import logging
import time
from typing import Any, Callable

from ..config import HIGHLIGHT_CLEAR_SECONDS
from .graph import FlowGraph, NodeStatus

logger = logging.getLogger(__name__)

# Listener: (event_kind, data) -> None
Listener = Callable[[str, dict[str, Any]], None]


class GraphStore:
    """Holds the current ``FlowGraph``; every change goes through ``commit``/``replace``/``restore``.

    Listeners registered with ``subscribe`` receive ``graph.changed`` after each of them.
    Error highlights set by ``highlight_error`` expire lazily on the next access.
    """

    def __init__(
        self,
        graph: FlowGraph | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
        highlight_seconds: float = HIGHLIGHT_CLEAR_SECONDS,
    ) -> None:
        self._graph = graph or FlowGraph()
        self._clock = clock
        self._highlight_seconds = highlight_seconds
        self._highlights: dict[str, float] = {}
        self._listeners: list[Listener] = []
        self.revision = 0
        self.dirty = False

    @property
    def graph(self) -> FlowGraph:
        self._expire_highlights()
        return self._graph

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def snapshot(self) -> FlowGraph:
        return copy.deepcopy(self._graph)

    def commit(self, reason: str, *, dirty: bool = True) -> None:
        """Publish in-place changes made to ``graph``."""
        if dirty:
            self.dirty = True
        self._emit(reason)

    def replace(self, graph: FlowGraph, reason: str = "replace", *, dirty: bool = False) -> None:
        self._graph = graph
        self._highlights.clear()
        self.dirty = dirty
        self._emit(reason)

    def restore(self, snapshot: FlowGraph, reason: str = "rollback") -> None:
        """Put back a graph captured by ``snapshot`` (a copy is stored, the argument stays reusable)."""
        self._graph = copy.deepcopy(snapshot)
        # Highlights on surviving nodes keep their deadline; any other ERROR is cleared.
        self._highlights = {nid: d for nid, d in self._highlights.items() if nid in self._graph.nodes}
        for node in self._graph.nodes.values():
            if node.id in self._highlights:
                node.status = NodeStatus.ERROR
            elif node.status == NodeStatus.ERROR:
                node.status = NodeStatus.IDLE
        self.dirty = False
        logger.info("graph restored to snapshot (%s)", reason)
        self._emit(reason)

    def highlight_error(self, node_id: str) -> None:
        node = self._graph.get_node(node_id)
        if node is None:
            return
        node.status = NodeStatus.ERROR
        self._highlights[node_id] = self._clock() + self._highlight_seconds
        self._emit("highlight")

    def _expire_highlights(self) -> None:
        if not self._highlights:
            return
        now = self._clock()
        expired = [nid for nid, deadline in self._highlights.items() if deadline <= now]
        for nid in expired:
            del self._highlights[nid]
            node = self._graph.get_node(nid)
            if node is not None and node.status == NodeStatus.ERROR:
                node.status = NodeStatus.IDLE
        if expired:
            self._emit("highlight.cleared")

    def _emit(self, reason: str) -> None:
        self.revision += 1
        data = {"revision": self.revision, "reason": reason}
        for listener in list(self._listeners):
            listener("graph.changed", data)
