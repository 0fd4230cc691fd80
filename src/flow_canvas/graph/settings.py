"""Per-kind step settings: one struct per node kind, tagged by its backend action type."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any, ClassVar, Union

DEFAULT_CODE = "export const code = async (inputs) => {\n  return { success: true };\n};"
DEFAULT_LOOP_ITEMS = "{{trigger.body.items}}"


@dataclass
class TriggerSettings:
    """Trigger binding. WEBHOOK triggers keep their options in ``extra``."""

    backend_type: ClassVar[str] = "TRIGGER"

    trigger_type: str = "WEBHOOK"
    piece_name: str | None = None
    piece_version: str | None = None
    trigger_name: str | None = None
    input: dict[str, Any] = field(default_factory=dict)
    extra: dict[str, Any] = field(default_factory=dict)

    def to_backend(self) -> dict[str, Any]:
        out = dict(self.extra)
        if self.trigger_type == "PIECE":
            out.update({
                "pieceName": self.piece_name,
                "pieceVersion": self.piece_version,
                "triggerName": self.trigger_name,
                "input": dict(self.input),
            })
        return out

    @classmethod
    def from_backend(cls, trigger_type: str, settings: dict[str, Any]) -> TriggerSettings:
        rest = dict(settings)
        return cls(
            trigger_type=trigger_type,
            piece_name=rest.pop("pieceName", None),
            piece_version=rest.pop("pieceVersion", None),
            trigger_name=rest.pop("triggerName", None),
            input=rest.pop("input", None) or {},
            extra=rest,
        )


@dataclass
class PieceSettings:
    backend_type: ClassVar[str] = "PIECE"

    piece_name: str
    action_name: str
    piece_version: str = "latest"
    input: dict[str, Any] = field(default_factory=dict)
    extra: dict[str, Any] = field(default_factory=dict)

    def to_backend(self) -> dict[str, Any]:
        out = dict(self.extra)
        out.update({
            "pieceName": self.piece_name,
            "pieceVersion": self.piece_version,
            "actionName": self.action_name,
            "input": dict(self.input),
        })
        return out

    @classmethod
    def from_backend(cls, settings: dict[str, Any]) -> PieceSettings:
        rest = dict(settings)
        return cls(
            piece_name=str(rest.pop("pieceName", "") or ""),
            action_name=str(rest.pop("actionName", "") or ""),
            piece_version=str(rest.pop("pieceVersion", "") or "latest"),
            input=rest.pop("input", None) or {},
            extra=rest,
        )


@dataclass
class CodeSettings:
    backend_type: ClassVar[str] = "CODE"

    code: str = DEFAULT_CODE
    input: dict[str, Any] = field(default_factory=dict)
    extra: dict[str, Any] = field(default_factory=dict)

    def to_backend(self) -> dict[str, Any]:
        out = dict(self.extra)
        out.update({"sourceCode": {"code": self.code}, "input": dict(self.input)})
        return out

    @classmethod
    def from_backend(cls, settings: dict[str, Any]) -> CodeSettings:
        rest = dict(settings)
        source = rest.pop("sourceCode", None) or {}
        code = source.get("code", "") if isinstance(source, dict) else str(source)
        return cls(code=code, input=rest.pop("input", None) or {}, extra=rest)


@dataclass
class LoopSettings:
    backend_type: ClassVar[str] = "LOOP_ON_ITEMS"

    items: str = DEFAULT_LOOP_ITEMS
    loop_index_name: str = "index"
    loop_item_name: str = "item"
    extra: dict[str, Any] = field(default_factory=dict)

    def to_backend(self) -> dict[str, Any]:
        out = dict(self.extra)
        out.update({
            "items": self.items,
            "loopIndexName": self.loop_index_name,
            "loopItemName": self.loop_item_name,
        })
        return out

    @classmethod
    def from_backend(cls, settings: dict[str, Any]) -> LoopSettings:
        rest = dict(settings)
        return cls(
            items=str(rest.pop("items", "") or ""),
            loop_index_name=str(rest.pop("loopIndexName", "index") or "index"),
            loop_item_name=str(rest.pop("loopItemName", "item") or "item"),
            extra=rest,
        )


@dataclass
class RouterBranch:
    branch_name: str
    branch_type: str = "CONDITION"
    conditions: list[list[dict[str, Any]]] | None = None

    def to_backend(self) -> dict[str, Any]:
        out: dict[str, Any] = {"branchName": self.branch_name, "branchType": self.branch_type}
        if self.conditions is not None:
            out["conditions"] = copy.deepcopy(self.conditions)
        return out


@dataclass
class RouterSettings:
    backend_type: ClassVar[str] = "ROUTER"

    branches: list[RouterBranch] = field(default_factory=list)
    extra: dict[str, Any] = field(default_factory=dict)

    def to_backend(self) -> dict[str, Any]:
        out = dict(self.extra)
        out["branches"] = [b.to_backend() for b in self.branches]
        return out

    @classmethod
    def from_backend(cls, settings: dict[str, Any]) -> RouterSettings:
        rest = dict(settings)
        branches = [
            RouterBranch(
                branch_name=str(b.get("branchName", "Branch")),
                branch_type=str(b.get("branchType", "CONDITION")),
                conditions=b.get("conditions"),
            )
            for b in rest.pop("branches", None) or []
            if isinstance(b, dict)
        ]
        return cls(branches=branches, extra=rest)


@dataclass
class RouterBranchSettings:
    """Canvas-only marker for a router output; it has no backend step of its own."""

    backend_type: ClassVar[str] = "ROUTER_BRANCH"

    branch_name: str = "Branch"
    branch_type: str = "CONDITION"
    duplicated_from: str | None = None
    branch_index: int | None = None

    def to_backend(self) -> dict[str, Any]:
        return {"branchName": self.branch_name, "branchType": self.branch_type}


StepSettings = Union[
    TriggerSettings,
    PieceSettings,
    CodeSettings,
    LoopSettings,
    RouterSettings,
    RouterBranchSettings,
]

TRIGGER_TYPES = ("WEBHOOK", "SCHEDULE", "POLLING", "PIECE", "EMPTY")


def settings_from_backend(step_type: str, settings: dict[str, Any] | None, *, is_trigger: bool = False) -> StepSettings:
    """Build the typed settings for a remote step. Unknown keys are kept in ``extra``."""
    data = dict(settings or {})
    t = (step_type or "").upper()
    if is_trigger:
        return TriggerSettings.from_backend(t or "EMPTY", data)
    if t == "CODE":
        return CodeSettings.from_backend(data)
    if t == "ROUTER":
        return RouterSettings.from_backend(data)
    if t == "LOOP_ON_ITEMS":
        return LoopSettings.from_backend(data)
    return PieceSettings.from_backend(data)


def default_webhook_trigger() -> TriggerSettings:
    return TriggerSettings(
        trigger_type="WEBHOOK",
        extra={"method": "POST", "authType": "NONE", "responseMode": "SYNC"},
    )


def default_router_settings(parent_name: str) -> RouterSettings:
    """Two-branch skeleton: a success condition on the parent step plus a fallback."""
    return RouterSettings(branches=[
        RouterBranch(
            branch_name="Success Path",
            branch_type="CONDITION",
            conditions=[[{
                "firstValue": f"{{{{{parent_name}.success}}}}",
                "operator": "TEXT_EXACTLY_MATCHES",
                "secondValue": "true",
            }]],
        ),
        RouterBranch(branch_name="Fallback", branch_type="FALLBACK"),
    ])
