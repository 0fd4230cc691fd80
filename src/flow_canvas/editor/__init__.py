"""Workflow editor: mutation engine, sync coordinator and remote graph loader."""

from .context import EditorContext
from .engine import WorkflowEditor
from .loader import default_scaffold, graph_from_remote
from .sync import SyncCoordinator

__all__ = [
    "EditorContext",
    "WorkflowEditor",
    "default_scaffold",
    "graph_from_remote",
    "SyncCoordinator",
]
