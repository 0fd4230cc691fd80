"""Editor context - which remote flow this session is bound to."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class EditorContext:
    """``create_mode`` is true while building a brand-new flow (router branches are auto-materialised)."""

    flow_id: str | None = None
    project_id: str | None = None
    version_ids: list[str] = field(default_factory=list)
    create_mode: bool = False

    @property
    def first_version_id(self) -> str | None:
        return self.version_ids[0] if self.version_ids else None
