import copy
import itertools
import json

import httpx
import pytest
from fastapi.testclient import TestClient

BASE_URL = "http://flows.test/api"
PROJECT_ID = "proj1"
FLOW_ID = "flow1"

SAMPLE_FLOW = {
    "id": FLOW_ID,
    "projectId": PROJECT_ID,
    "status": "DISABLED",
    "versions": [
        {
            "id": "v1",
            "flowId": FLOW_ID,
            "displayName": "Order intake",
            "trigger": {
                "trigger": {
                    "name": "trigger",
                    "type": "WEBHOOK",
                    "displayName": "Catch Webhook",
                    "settings": {"method": "POST", "authType": "NONE"},
                    "nextAction": {
                        "name": "send_email",
                        "type": "PIECE",
                        "displayName": "Send Email",
                        "settings": {
                            "pieceName": "@activepieces/piece-gmail",
                            "pieceVersion": "0.3.1",
                            "actionName": "send_email",
                            "input": {"to": "ops@example.com"},
                        },
                        "nextAction": {
                            "name": "router",
                            "type": "ROUTER",
                            "displayName": "Route Based on Condition",
                            "settings": {
                                "branches": [
                                    {"branchName": "Success Path", "branchType": "CONDITION", "conditions": []},
                                    {"branchName": "Fallback", "branchType": "FALLBACK"},
                                ]
                            },
                            "children": [
                                {
                                    "name": "transform",
                                    "type": "CODE",
                                    "displayName": "Process Data",
                                    "settings": {"sourceCode": {"code": "return 1"}, "input": {}},
                                },
                                {
                                    "name": "each_line",
                                    "type": "LOOP_ON_ITEMS",
                                    "displayName": "Process Each Item",
                                    "settings": {"items": "{{trigger.body.lines}}"},
                                },
                            ],
                        },
                    },
                }
            },
        }
    ],
}


class FakeFlowService:
    """Stands in for the flow-definition service. Operation types listed in ``fail`` answer 500."""

    def __init__(self, flow=None, fail=()):
        self.flow = flow
        self.fail = set(fail)
        self.operations = []
        self.requests = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.method == "POST" and request.url.path.endswith(f"/flows/{FLOW_ID}"):
            body = json.loads(request.content)
            self.operations.append(body)
            if body["type"] in self.fail:
                return httpx.Response(500, json={"message": f"{body['type']} exploded"})
            return httpx.Response(200, json={"id": FLOW_ID})
        if request.method == "GET" and request.url.path.endswith(f"/flows/{FLOW_ID}"):
            if self.flow is None:
                return httpx.Response(404, json={"message": "not found"})
            return httpx.Response(200, json=self.flow)
        return httpx.Response(404, json={"message": "no route"})

    def client(self, project_id=PROJECT_ID):
        from flow_canvas.services.flow_client import FlowServiceClient

        return FlowServiceClient(BASE_URL, project_id=project_id, transport=httpx.MockTransport(self.handler))

    def types(self):
        return [op["type"] for op in self.operations]

    def of_type(self, op_type):
        return [op["request"] for op in self.operations if op["type"] == op_type]


@pytest.fixture()
def client() -> TestClient:
    from flow_canvas.main import app

    return TestClient(app)


@pytest.fixture(autouse=True)
def _clear_in_memory_stores():
    # Ensure deterministic tests across runs.
    from flow_canvas.services import sessions

    sessions._session_store.clear()
    yield
    sessions._session_store.clear()


@pytest.fixture()
def ids():
    """Deterministic node id factory: n1, n2, ..."""
    counter = itertools.count(1)
    return lambda: f"n{next(counter)}"


@pytest.fixture()
def sample_flow():
    return copy.deepcopy(SAMPLE_FLOW)


@pytest.fixture()
def flow_service(sample_flow):
    return FakeFlowService(flow=sample_flow)


@pytest.fixture()
def events():
    return []


@pytest.fixture()
def record(events):
    def on_event(kind, data):
        events.append((kind, data))

    return on_event
