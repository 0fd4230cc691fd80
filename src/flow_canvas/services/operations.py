"""Pydantic models for flow records and the ``{type, request}`` operation envelopes."""

from __future__ import annotations

from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class FlowOperationType(str, Enum):
    UPDATE_TRIGGER = "UPDATE_TRIGGER"
    ADD_ACTION = "ADD_ACTION"
    UPDATE_ACTION = "UPDATE_ACTION"
    DUPLICATE_ACTION = "DUPLICATE_ACTION"
    DELETE_ACTION = "DELETE_ACTION"
    DUPLICATE_BRANCH = "DUPLICATE_BRANCH"
    DELETE_BRANCH = "DELETE_BRANCH"
    CHANGE_NAME = "CHANGE_NAME"
    USE_AS_DRAFT = "USE_AS_DRAFT"
    LOCK_AND_PUBLISH = "LOCK_AND_PUBLISH"
    CHANGE_STATUS = "CHANGE_STATUS"
    SAVE_SAMPLE_DATA = "SAVE_SAMPLE_DATA"


class _Wire(BaseModel):
    """camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


ActionType = Literal["PIECE", "CODE", "ROUTER", "LOOP_ON_ITEMS"]
StepLocation = Literal["AFTER", "INSIDE_LOOP", "INSIDE_BRANCH"]
FlowStatus = Literal["ENABLED", "DISABLED"]


class UpdateTriggerRequest(_Wire):
    type: str
    name: str
    display_name: str
    valid: bool | None = None
    settings: dict[str, Any] = Field(default_factory=dict)


class ActionPayload(_Wire):
    type: ActionType
    name: str | None = None
    display_name: str
    valid: bool | None = None
    settings: dict[str, Any] = Field(default_factory=dict)


class AddActionRequest(_Wire):
    parent_step: str
    step_location_relative_to_parent: StepLocation = "AFTER"
    branch_index: int | None = 0
    action: ActionPayload


class UpdateActionRequest(_Wire):
    type: ActionType
    name: str | None = None
    display_name: str
    valid: bool | None = None
    settings: dict[str, Any] | None = None


class DuplicateActionRequest(_Wire):
    step_name: str


class DeleteActionRequest(_Wire):
    names: list[str]


class BranchRequest(_Wire):
    """Body of DUPLICATE_BRANCH and DELETE_BRANCH."""

    step_name: str
    branch_index: int


class ChangeNameRequest(_Wire):
    display_name: str


class UseAsDraftRequest(_Wire):
    version_id: str


class LockAndPublishRequest(_Wire):
    status: FlowStatus = "ENABLED"


class ChangeStatusRequest(_Wire):
    status: FlowStatus


class SaveSampleDataRequest(_Wire):
    step_name: str
    payload: dict[str, Any] = Field(default_factory=dict)
    type: Literal["INPUT", "OUTPUT"] = "INPUT"


class FlowOperation(BaseModel):
    type: FlowOperationType
    request: _Wire

    def to_wire(self) -> dict[str, Any]:
        return {"type": self.type.value, "request": self.request.to_wire()}


class FlowSummary(BaseModel):
    id: str
    name: str = "Untitled Flow"
    description: str | None = None
    created_at: str | None = None
    status: str | None = None


class FlowVersion(BaseModel):
    id: str
    flow_id: str = ""
    display_name: str = "Untitled"
    trigger: dict[str, Any] | None = None
    connection_ids: list[str] = Field(default_factory=list)
    valid: bool | None = None
    state: str | None = None


class FlowDetail(BaseModel):
    id: str
    project_id: str | None = None
    status: str | None = None
    published_version_id: str | None = None
    versions: list[FlowVersion] = Field(default_factory=list)
