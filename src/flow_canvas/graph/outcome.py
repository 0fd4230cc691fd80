"""Mutation outcome - what an editor operation did to the graph."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class MutationStatus(str, Enum):
    APPLIED = "applied"
    REJECTED = "rejected"
    IGNORED = "ignored"


@dataclass
class MutationOutcome:
    """Result of a local mutation. ``node_id`` is the node created, if any."""

    status: MutationStatus
    node_id: str | None = None
    reason: str = ""
    node_ids: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.status == MutationStatus.APPLIED

    @classmethod
    def applied(cls, node_id: str | None = None, node_ids: list[str] | None = None) -> MutationOutcome:
        return cls(status=MutationStatus.APPLIED, node_id=node_id, node_ids=node_ids or [])

    @classmethod
    def rejected(cls, reason: str, node_ids: list[str] | None = None) -> MutationOutcome:
        return cls(status=MutationStatus.REJECTED, reason=reason, node_ids=node_ids or [])

    @classmethod
    def ignored(cls, reason: str = "") -> MutationOutcome:
        return cls(status=MutationStatus.IGNORED, reason=reason)

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "node_id": self.node_id,
            "reason": self.reason,
            "node_ids": list(self.node_ids),
        }
