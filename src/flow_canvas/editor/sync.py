"""Sync coordinator - mirrors local mutations to the flow service and rolls back on failure."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable

from ..graph.graph import FlowGraph
from ..graph.naming import new_node_id
from ..graph.store import GraphStore
from ..services.flow_client import FlowServiceClient
from .context import EditorContext
from .loader import default_scaffold, graph_from_remote, version_ids

logger = logging.getLogger(__name__)

# Event callback: (event_kind, data) -> None
EventCallback = Callable[[str, dict[str, Any]], None]
# Remote call: (client, flow_id) -> awaitable
RemoteCall = Callable[[FlowServiceClient, str], Awaitable[Any]]


class SyncCoordinator:
    """Fires remote operations for the editor.

    ``dispatch`` schedules a detached task on the running loop; if the call fails and a
    snapshot was given, the store is put back to that snapshot. Failures never escape a task.
    """

    def __init__(
        self,
        store: GraphStore,
        client: FlowServiceClient | None,
        context: EditorContext,
        on_event: EventCallback | None = None,
        id_factory: Callable[[], str] = new_node_id,
    ) -> None:
        self.store = store
        self.client = client
        self.context = context
        self._on_event = on_event or (lambda k, d: None)
        self._new_id = id_factory
        self._pending: set[asyncio.Task[bool]] = set()

    @property
    def enabled(self) -> bool:
        return self.client is not None and bool(self.context.flow_id)

    @property
    def pending(self) -> int:
        return len(self._pending)

    def notify_error(self, title: str, message: str) -> None:
        self._on_event("toast.error", {"title": title, "message": message})

    def notify_success(self, title: str, message: str) -> None:
        self._on_event("toast.success", {"title": title, "message": message})

    def dispatch(
        self,
        label: str,
        call: RemoteCall,
        *,
        snapshot: FlowGraph | None,
        error_title: str,
        error_message: str,
    ) -> asyncio.Task[bool] | None:
        """Schedule ``call``; pass ``snapshot=None`` for best-effort calls that never roll back."""
        if not self.enabled:
            return None
        flow_id = str(self.context.flow_id)
        logger.debug("dispatching %s for flow %s", label, flow_id)
        task = asyncio.get_running_loop().create_task(
            self._run(label, call, flow_id, snapshot, error_title, error_message)
        )
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def _run(
        self,
        label: str,
        call: RemoteCall,
        flow_id: str,
        snapshot: FlowGraph | None,
        error_title: str,
        error_message: str,
    ) -> bool:
        try:
            await call(self.client, flow_id)  # type: ignore[arg-type]
        except Exception as e:
            logger.warning("%s failed for flow %s: %s", label, flow_id, e)
            if snapshot is not None:
                self.store.restore(snapshot, reason=f"rollback:{label}")
            self.notify_error(error_title, error_message)
            return False
        return True

    async def call(self, label: str, call: RemoteCall, *, error_title: str, error_message: str) -> bool:
        """Awaited remote call with no local change to undo."""
        if not self.enabled:
            self.notify_error(error_title, "Missing flow or version id")
            return False
        return await self._run(label, call, str(self.context.flow_id), None, error_title, error_message)

    async def drain(self) -> None:
        """Wait for every dispatched call, including ones scheduled while waiting."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def attach(self, flow_id: str) -> bool:
        """Bind to ``flow_id`` and learn its version ids; the store is left alone."""
        self.context.flow_id = flow_id
        if self.client is None:
            return False
        try:
            detail = await self.client.get_flow(flow_id)
        except Exception as e:
            logger.warning("version lookup failed for flow %s: %s", flow_id, e)
            return False
        self.context.version_ids = [v.id for v in detail.versions if v.id]
        return bool(self.context.version_ids)

    async def load(self, flow_id: str) -> bool:
        """Rebuild the store from the remote flow; any failure leaves the default scaffold."""
        self.context.flow_id = flow_id
        if self.client is None:
            self.store.replace(default_scaffold(self._new_id), "load.scaffold")
            return False
        try:
            raw = await self.client.get_flow_version_graph(flow_id)
        except Exception as e:
            logger.warning("load failed for flow %s: %s", flow_id, e)
            self.store.replace(default_scaffold(self._new_id), "load.scaffold")
            self.notify_error("Load failed", "Failed to load workflow. Please try again.")
            return False
        self.context.version_ids = version_ids(raw)
        graph = graph_from_remote(raw, self._new_id)
        if graph is None:
            logger.info("flow %s has no trigger; starting from scaffold", flow_id)
            self.store.replace(default_scaffold(self._new_id), "load.scaffold")
            return False
        self.store.replace(graph, "load")
        return True
