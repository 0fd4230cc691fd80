"""Flow service client - flow CRUD under a project plus the per-flow operation endpoint."""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import quote

import httpx

from ..config import FLOW_API_BASE_URL, FLOW_API_TIMEOUT, FLOW_API_TOKEN, FLOW_PROJECT_ID
from .operations import (
    ActionPayload,
    AddActionRequest,
    BranchRequest,
    ChangeNameRequest,
    ChangeStatusRequest,
    DeleteActionRequest,
    DuplicateActionRequest,
    FlowDetail,
    FlowOperation,
    FlowOperationType,
    FlowStatus,
    FlowSummary,
    FlowVersion,
    LockAndPublishRequest,
    SaveSampleDataRequest,
    StepLocation,
    UpdateActionRequest,
    UpdateTriggerRequest,
    UseAsDraftRequest,
)

logger = logging.getLogger(__name__)


class FlowServiceError(RuntimeError):
    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


def _raise_http_error(resp: httpx.Response, *, hint: str = "") -> None:
    body = ""
    try:
        body = resp.text
    except Exception:
        body = "<unreadable body>"
    msg = f"HTTP {resp.status_code} for {resp.request.method} {resp.request.url}\nResponse body: {body}"
    if hint:
        msg = hint + "\n" + msg
    raise FlowServiceError(msg, status_code=resp.status_code)


def _unwrap(data: Any, *keys: str) -> Any:
    """Return the first dict value under ``keys`` (the service wraps payloads inconsistently)."""
    if isinstance(data, dict):
        for key in keys:
            inner = data.get(key)
            if inner is not None:
                return inner
    return data


def _summary_from_backend(flow: Any) -> FlowSummary:
    if not isinstance(flow, dict):
        return FlowSummary(id="")
    name = None
    versions = flow.get("versions")
    if isinstance(versions, list) and versions and isinstance(versions[0], dict):
        name = versions[0].get("displayName")
    name = name or flow.get("displayName") or flow.get("name") or "Untitled Flow"
    return FlowSummary(
        id=str(flow.get("id") or ""),
        name=str(name),
        description=flow.get("description") if isinstance(flow.get("description"), str) else None,
        created_at=flow.get("createdAt"),
        status=flow.get("status") if isinstance(flow.get("status"), str) else None,
    )


def _version_from_backend(v: Any) -> FlowVersion:
    v = v if isinstance(v, dict) else {}
    flow_data = v.get("flowData") if isinstance(v.get("flowData"), dict) else {}
    trigger = flow_data.get("trigger") if isinstance(flow_data.get("trigger"), dict) else v.get("trigger")
    return FlowVersion(
        id=str(v.get("id") or ""),
        flow_id=str(v.get("flowId") or ""),
        display_name=v.get("displayName") or "Untitled",
        trigger=trigger if isinstance(trigger, dict) else None,
        connection_ids=[str(c) for c in v.get("connectionIds") or []],
        valid=v.get("valid"),
        state=v.get("state"),
    )


def _items(data: Any) -> list[Any]:
    if isinstance(data, list):
        return data
    for key in ("flows", "items"):
        inner = _unwrap(data, key)
        if isinstance(inner, list):
            return inner
    inner = _unwrap(data, "data")
    if inner is not data:
        return _items(inner)
    return []


class FlowServiceClient:
    """Async client for one project's flows. Every call opens its own ``httpx.AsyncClient``."""

    def __init__(
        self,
        base_url: str = FLOW_API_BASE_URL,
        *,
        token: str | None = FLOW_API_TOKEN,
        project_id: str | None = FLOW_PROJECT_ID,
        timeout: float = FLOW_API_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.project_id = project_id
        self.timeout = timeout
        self._transport = transport

    def _flows_path(self, suffix: str = "") -> str:
        if not self.project_id:
            raise FlowServiceError("No current project selected")
        return f"/projects/{self.project_id}/flows{suffix}"

    async def _request(
        self,
        method: str,
        path: str,
        *,
        payload: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        headers: dict[str, str] = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        async with httpx.AsyncClient(
            base_url=self.base_url, timeout=self.timeout, transport=self._transport
        ) as client:
            resp = await client.request(method, path, json=payload, params=params, headers=headers)
            if resp.status_code >= 400:
                _raise_http_error(resp)
            if not resp.content:
                return None
            return resp.json()

    # Flows

    async def create_flow(self, display_name: str, description: str | None = None) -> FlowSummary:
        body: dict[str, Any] = {"displayName": display_name}
        if description:
            body["description"] = description
        data = await self._request("POST", self._flows_path(), payload=body)
        return _summary_from_backend(_unwrap(data, "flow", "data"))

    async def get_flow(self, flow_id: str) -> FlowDetail:
        data = await self._request("GET", self._flows_path(f"/{flow_id}"))
        flow = _unwrap(data, "flow", "data")
        if not isinstance(flow, dict):
            return FlowDetail(id="")
        return FlowDetail(
            id=str(flow.get("id") or ""),
            project_id=flow.get("projectId"),
            status=flow.get("status"),
            published_version_id=flow.get("publishedVersionId"),
            versions=[_version_from_backend(v) for v in flow.get("versions") or []],
        )

    async def get_flow_version_graph(self, flow_id: str) -> Any:
        """Raw flow document including the version step tree, for canvas reconstruction."""
        return await self._request("GET", self._flows_path(f"/{flow_id}"))

    async def list_flows(self) -> list[FlowSummary]:
        data = await self._request("GET", self._flows_path())
        return [_summary_from_backend(f) for f in _items(data)]

    async def count_flows(self) -> int:
        data = await self._request("GET", self._flows_path("/count"))
        if isinstance(data, int):
            return data
        for scope in (data, _unwrap(data, "data")):
            if isinstance(scope, dict):
                for key in ("count", "total"):
                    if isinstance(scope.get(key), int):
                        return scope[key]
        return 0

    async def delete_flow(self, flow_id: str) -> None:
        await self._request("DELETE", self._flows_path(f"/{flow_id}"))

    async def list_flow_versions(self, flow_id: str, limit: int = 10) -> Any:
        return await self._request("GET", self._flows_path(f"/{flow_id}/versions"), params={"limit": limit})

    async def get_sample_data(self, flow_id: str, step_name: str, type: str = "OUTPUT") -> Any:
        path = self._flows_path(f"/{flow_id}/sample-data/{quote(step_name, safe='')}")
        return await self._request("GET", path, params={"type": type})

    # Operations

    async def post_operation(self, flow_id: str, operation: FlowOperation) -> Any:
        body = operation.to_wire()
        logger.debug("flow operation %s flow=%s body=%s", operation.type.value, flow_id, body)
        return await self._request("POST", self._flows_path(f"/{flow_id}"), payload=body)

    async def update_trigger(self, flow_id: str, request: UpdateTriggerRequest) -> Any:
        return await self.post_operation(flow_id, FlowOperation(type=FlowOperationType.UPDATE_TRIGGER, request=request))

    async def add_action(self, flow_id: str, request: AddActionRequest) -> Any:
        return await self.post_operation(flow_id, FlowOperation(type=FlowOperationType.ADD_ACTION, request=request))

    async def add_action_under_trigger(self, flow_id: str, action: ActionPayload) -> Any:
        return await self.add_action_after(flow_id, "trigger", action)

    async def add_action_after(
        self,
        flow_id: str,
        parent_step: str,
        action: ActionPayload,
        location: StepLocation = "AFTER",
    ) -> Any:
        request = AddActionRequest(
            parent_step=parent_step,
            step_location_relative_to_parent=location,
            branch_index=0,
            action=action,
        )
        return await self.add_action(flow_id, request)

    async def update_action(self, flow_id: str, request: UpdateActionRequest) -> Any:
        return await self.post_operation(flow_id, FlowOperation(type=FlowOperationType.UPDATE_ACTION, request=request))

    async def duplicate_action(self, flow_id: str, step_name: str) -> Any:
        request = DuplicateActionRequest(step_name=step_name)
        return await self.post_operation(flow_id, FlowOperation(type=FlowOperationType.DUPLICATE_ACTION, request=request))

    async def delete_action(self, flow_id: str, names: list[str]) -> Any:
        request = DeleteActionRequest(names=names)
        return await self.post_operation(flow_id, FlowOperation(type=FlowOperationType.DELETE_ACTION, request=request))

    async def duplicate_branch(self, flow_id: str, step_name: str, branch_index: int) -> Any:
        request = BranchRequest(step_name=step_name, branch_index=branch_index)
        return await self.post_operation(flow_id, FlowOperation(type=FlowOperationType.DUPLICATE_BRANCH, request=request))

    async def delete_branch(self, flow_id: str, step_name: str, branch_index: int) -> Any:
        request = BranchRequest(step_name=step_name, branch_index=branch_index)
        return await self.post_operation(flow_id, FlowOperation(type=FlowOperationType.DELETE_BRANCH, request=request))

    async def change_name(self, flow_id: str, display_name: str) -> Any:
        request = ChangeNameRequest(display_name=display_name)
        return await self.post_operation(flow_id, FlowOperation(type=FlowOperationType.CHANGE_NAME, request=request))

    async def use_as_draft(self, flow_id: str, version_id: str) -> Any:
        request = UseAsDraftRequest(version_id=version_id)
        return await self.post_operation(flow_id, FlowOperation(type=FlowOperationType.USE_AS_DRAFT, request=request))

    async def lock_and_publish(self, flow_id: str, status: FlowStatus = "ENABLED") -> Any:
        request = LockAndPublishRequest(status=status)
        return await self.post_operation(flow_id, FlowOperation(type=FlowOperationType.LOCK_AND_PUBLISH, request=request))

    async def change_status(self, flow_id: str, status: FlowStatus) -> Any:
        request = ChangeStatusRequest(status=status)
        return await self.post_operation(flow_id, FlowOperation(type=FlowOperationType.CHANGE_STATUS, request=request))

    async def save_sample_data(self, flow_id: str, step_name: str, payload: dict[str, Any], type: str = "INPUT") -> Any:
        request = SaveSampleDataRequest(step_name=step_name, payload=payload, type=type)
        return await self.post_operation(flow_id, FlowOperation(type=FlowOperationType.SAVE_SAMPLE_DATA, request=request))
