import logging

import httpx
import pytest

from flow_canvas.editor.context import EditorContext
from flow_canvas.editor.engine import WorkflowEditor
from flow_canvas.graph.graph import NodeKind, NodeStatus
from flow_canvas.graph.outcome import MutationStatus
from flow_canvas.graph.store import GraphStore
from flow_canvas.services.piece_catalog import Piece, PieceCatalogClient, PieceOperation

GMAIL = Piece(id="p1", name="gmail", display_name="Gmail", version="0.3.1")
SEND_EMAIL = PieceOperation(name="send_email", display_name="Send Email")
NEW_EMAIL = PieceOperation(name="new_email", display_name="New Email")


@pytest.fixture()
def bound(flow_service, ids, record):
    """Editor bound to flow1 (version v1) on the fake flow service, starting from the scaffold."""

    def make(create_mode=False, fail=()):
        flow_service.fail = set(fail)
        context = EditorContext(flow_id="flow1", project_id="proj1", version_ids=["v1"], create_mode=create_mode)
        editor = WorkflowEditor(client=flow_service.client(), context=context, on_event=record, id_factory=ids)
        editor.initialize_workflow()
        return editor

    return make


def _toasts(events, kind="toast.error"):
    return [d["title"] for k, d in events if k == kind]


@pytest.mark.asyncio
async def test_piece_under_trigger_sends_add_action(bound, flow_service):
    editor = bound()
    editor.add_piece_node(GMAIL, SEND_EMAIL, "n2")
    await editor.drain()
    assert flow_service.operations == [{
        "type": "ADD_ACTION",
        "request": {
            "parentStep": "trigger",
            "stepLocationRelativeToParent": "AFTER",
            "branchIndex": 0,
            "action": {
                "type": "PIECE",
                "name": "action",
                "displayName": "Send Email",
                "valid": True,
                "settings": {
                    "pieceName": "@activepieces/piece-gmail",
                    "pieceVersion": "0.3.1",
                    "actionName": "send_email",
                    "input": {},
                },
            },
        },
    }]
    assert flow_service.requests[0].url.path == "/api/projects/proj1/flows/flow1"


@pytest.mark.asyncio
async def test_piece_after_configured_parent_uses_parent_step(bound, flow_service):
    editor = bound()
    editor.add_piece_node(GMAIL, SEND_EMAIL, "n2")
    n3 = editor.add_empty_node().node_id
    editor.connect("n2", n3)
    editor.add_piece_node(GMAIL, SEND_EMAIL, n3)
    await editor.drain()
    requests = flow_service.of_type("ADD_ACTION")
    assert [r["parentStep"] for r in requests] == ["trigger", "action"]
    assert requests[1]["action"]["name"] == "action_1"


@pytest.mark.asyncio
async def test_failed_add_action_rolls_back_to_snapshot(bound, events, caplog):
    caplog.set_level(logging.WARNING, logger="flow_canvas.editor.sync")
    editor = bound(fail={"ADD_ACTION"})
    before = editor.graph.to_dict()
    editor.add_piece_node(GMAIL, SEND_EMAIL, "n2")
    assert not editor.graph.nodes["n2"].is_placeholder
    await editor.drain()
    assert editor.graph.to_dict() == before
    assert editor.graph.nodes["n2"].is_placeholder
    assert not editor.store.dirty
    assert _toasts(events) == ["Add action failed"]
    assert "ADD_ACTION PIECE failed" in caplog.text


@pytest.mark.asyncio
async def test_piece_on_trigger_updates_trigger(bound, flow_service):
    editor = bound()
    editor.add_piece_node(GMAIL, NEW_EMAIL, "n1")
    await editor.drain()
    assert flow_service.types() == ["UPDATE_TRIGGER"]
    request = flow_service.of_type("UPDATE_TRIGGER")[0]
    assert request == {
        "type": "PIECE",
        "name": "trigger",
        "displayName": "New Email",
        "valid": True,
        "settings": {
            "pieceName": "@activepieces/piece-gmail",
            "pieceVersion": "0.3.1",
            "triggerName": "new_email",
            "input": {},
        },
    }
    assert editor.graph.nodes["n1"].kind == NodeKind.TRIGGER


@pytest.mark.asyncio
async def test_delete_configured_step_failure_restores_graph(bound, flow_service, events):
    editor = bound(fail={"DELETE_ACTION"})
    editor.add_piece_node(GMAIL, SEND_EMAIL, "n2")
    n3 = editor.add_empty_node().node_id
    editor.connect("n2", n3)
    await editor.drain()
    before = editor.graph.to_dict()
    editor.delete_node("n2")
    assert "n2" not in editor.graph.nodes
    await editor.drain()
    assert editor.graph.to_dict() == before
    assert flow_service.of_type("DELETE_ACTION") == [{"names": ["action"]}]
    assert _toasts(events) == ["Delete failed"]


@pytest.mark.asyncio
async def test_deleting_placeholder_stays_local(bound, flow_service):
    editor = bound()
    editor.delete_node("n2")
    await editor.drain()
    assert flow_service.operations == []
    assert list(editor.graph.nodes) == ["n1"]


@pytest.mark.asyncio
async def test_create_mode_router_scenario(bound, flow_service):
    editor = bound(create_mode=True)
    router_id = editor.add_router_node().node_id
    outcome = editor.connect("n2", router_id)
    await editor.drain()
    handles = sorted(e.source_handle for e in editor.graph.outgoing_edges(router_id))
    assert handles == ["route-1", "route-2"]
    assert [editor.graph.nodes[n].name for n in outcome.node_ids] == ["router_success_path", "router_fallback"]
    request = flow_service.of_type("ADD_ACTION")[0]
    assert request["parentStep"] == "action"
    assert request["action"]["type"] == "ROUTER"
    assert request["action"]["displayName"] == "Route Based on Condition"
    branches = request["action"]["settings"]["branches"]
    assert [b["branchType"] for b in branches] == ["CONDITION", "FALLBACK"]
    assert branches[0]["conditions"][0][0] == {
        "firstValue": "{{action.success}}",
        "operator": "TEXT_EXACTLY_MATCHES",
        "secondValue": "true",
    }


@pytest.mark.asyncio
async def test_delete_and_duplicate_branch(bound, flow_service):
    editor = bound(create_mode=True)
    router_id = editor.add_router_node().node_id
    editor.connect("n2", router_id)
    editor.duplicate_node("n4")
    editor.delete_node("n5")
    await editor.drain()
    assert flow_service.types() == ["ADD_ACTION", "DUPLICATE_BRANCH", "DELETE_BRANCH"]
    assert flow_service.of_type("DUPLICATE_BRANCH") == [{"stepName": "router", "branchIndex": 0}]
    assert flow_service.of_type("DELETE_BRANCH") == [{"stepName": "router", "branchIndex": 1}]


@pytest.mark.asyncio
async def test_failed_branch_duplicate_removes_new_branch(bound, events):
    editor = bound(create_mode=True, fail={"DUPLICATE_BRANCH"})
    router_id = editor.add_router_node().node_id
    editor.connect("n2", router_id)
    await editor.drain()
    before = editor.graph.to_dict()
    outcome = editor.duplicate_node("n4")
    assert outcome.node_id in editor.graph.nodes
    await editor.drain()
    assert editor.graph.to_dict() == before
    assert _toasts(events) == ["Duplicate branch failed"]


@pytest.mark.asyncio
async def test_failed_duplicate_action_rolls_back(bound, flow_service):
    editor = bound(fail={"DUPLICATE_ACTION"})
    editor.add_piece_node(GMAIL, SEND_EMAIL, "n2")
    await editor.drain()
    before = editor.graph.to_dict()
    editor.duplicate_node("n2")
    await editor.drain()
    assert editor.graph.to_dict() == before
    assert flow_service.of_type("DUPLICATE_ACTION") == [{"stepName": "action"}]


@pytest.mark.asyncio
async def test_best_effort_provisioning_never_rolls_back(bound, flow_service, events):
    editor = bound(fail={"ADD_ACTION"})
    loop_id = editor.add_loop_node().node_id
    assert editor.connect("n2", loop_id).ok
    await editor.drain()
    assert editor.graph.has_edge("n2", loop_id)
    assert _toasts(events) == ["Loop add failed"]
    action = flow_service.of_type("ADD_ACTION")[0]["action"]
    assert action["type"] == "LOOP_ON_ITEMS"
    assert action["displayName"] == "Process Each Item"
    assert action["settings"] == {
        "items": "{{trigger.body.items}}",
        "loopIndexName": "index",
        "loopItemName": "item",
    }


@pytest.mark.asyncio
async def test_code_provisioning_sends_default_snippet(bound, flow_service):
    editor = bound()
    code_id = editor.add_code_node().node_id
    editor.connect("n2", code_id)
    await editor.drain()
    action = flow_service.of_type("ADD_ACTION")[0]["action"]
    assert (action["type"], action["name"], action["displayName"]) == ("CODE", "code", "Process Data")
    assert "return { success: true };" in action["settings"]["sourceCode"]["code"]


@pytest.mark.asyncio
async def test_save_with_placeholder_never_calls_remote(bound, flow_service, events):
    editor = bound()
    outcome = await editor.save_workflow()
    assert outcome.status == MutationStatus.REJECTED
    assert "USE_AS_DRAFT" not in flow_service.types()
    assert _toasts(events) == ["Cannot save incomplete workflow"]


@pytest.mark.asyncio
async def test_save_uses_first_version_as_draft(bound, flow_service, events):
    editor = bound()
    editor.add_piece_node(GMAIL, SEND_EMAIL, "n2")
    await editor.drain()
    assert editor.store.dirty
    outcome = await editor.save_workflow()
    assert outcome.ok
    assert flow_service.operations[-1] == {"type": "USE_AS_DRAFT", "request": {"versionId": "v1"}}
    assert not editor.store.dirty
    assert _toasts(events, "toast.success") == ["Workflow saved"]


@pytest.mark.asyncio
async def test_save_remote_failure_is_reported(bound, events):
    editor = bound(fail={"USE_AS_DRAFT"})
    editor.add_piece_node(GMAIL, SEND_EMAIL, "n2")
    await editor.drain()
    outcome = await editor.save_workflow()
    assert outcome.status == MutationStatus.REJECTED
    assert _toasts(events) == ["Save failed"]
    assert not editor.graph.nodes["n2"].is_placeholder


@pytest.mark.asyncio
async def test_load_rebuilds_graph_from_remote(flow_service, ids):
    context = EditorContext(flow_id="flow1", project_id="proj1")
    editor = WorkflowEditor(client=flow_service.client(), context=context, id_factory=ids)
    assert await editor.load_workflow()
    assert context.version_ids == ["v1"]
    assert [n.kind for n in editor.graph.nodes.values()] == [
        NodeKind.TRIGGER, NodeKind.ACTION, NodeKind.ROUTER, NodeKind.CODE, NodeKind.LOOP,
    ]
    assert not editor.store.dirty
    assert flow_service.requests[0].method == "GET"


@pytest.mark.asyncio
async def test_load_twice_gives_same_structure(flow_service):
    editor = WorkflowEditor(client=flow_service.client(), context=EditorContext(flow_id="flow1"))
    await editor.load_workflow()
    first = [(n.kind, n.name, n.config) for n in editor.graph.nodes.values()]
    first_ids = set(editor.graph.nodes)
    await editor.load_workflow()
    second = [(n.kind, n.name, n.config) for n in editor.graph.nodes.values()]
    assert first == second
    assert first_ids.isdisjoint(editor.graph.nodes)


@pytest.mark.asyncio
async def test_load_failure_falls_back_to_scaffold(flow_service, record, events):
    flow_service.flow = None
    editor = WorkflowEditor(client=flow_service.client(), context=EditorContext(flow_id="flow1"), on_event=record)
    assert not await editor.load_workflow()
    assert [n.name for n in editor.graph.nodes.values()] == ["trigger", "action"]
    assert _toasts(events) == ["Load failed"]


@pytest.mark.asyncio
async def test_load_without_trigger_falls_back_to_scaffold(flow_service):
    flow_service.flow = {"id": "flow1", "versions": [{"id": "v9"}]}
    context = EditorContext(flow_id="flow1")
    editor = WorkflowEditor(client=flow_service.client(), context=context)
    assert not await editor.load_workflow()
    assert [n.kind for n in editor.graph.nodes.values()] == [NodeKind.TRIGGER, NodeKind.ACTION]
    assert context.version_ids == ["v9"]


@pytest.mark.asyncio
async def test_flow_level_operations(bound, flow_service):
    editor = bound()
    assert await editor.rename_flow("Order intake v2")
    assert await editor.publish()
    assert await editor.change_status("DISABLED")
    assert await editor.save_sample_data("n1", {"body": {"items": [1, 2]}})
    assert flow_service.operations == [
        {"type": "CHANGE_NAME", "request": {"displayName": "Order intake v2"}},
        {"type": "LOCK_AND_PUBLISH", "request": {"status": "ENABLED"}},
        {"type": "CHANGE_STATUS", "request": {"status": "DISABLED"}},
        {
            "type": "SAVE_SAMPLE_DATA",
            "request": {"stepName": "trigger", "payload": {"body": {"items": [1, 2]}}, "type": "INPUT"},
        },
    ]


@pytest.mark.asyncio
async def test_push_step_settings(bound, flow_service):
    editor = bound()
    assert not await editor.push_step_settings("n2")
    editor.add_piece_node(GMAIL, SEND_EMAIL, "n2")
    await editor.drain()
    assert await editor.push_step_settings("n2")
    assert flow_service.operations[-1]["type"] == "UPDATE_ACTION"
    assert flow_service.operations[-1]["request"]["name"] == "action"
    assert await editor.push_step_settings("n1")
    assert flow_service.operations[-1]["request"]["type"] == "WEBHOOK"


@pytest.mark.asyncio
async def test_flow_operations_need_a_bound_flow(ids, record, events):
    editor = WorkflowEditor(on_event=record, id_factory=ids)
    editor.initialize_workflow()
    assert not await editor.rename_flow("x")
    assert _toasts(events) == ["Rename failed"]


@pytest.mark.asyncio
async def test_rollback_does_not_leave_a_highlight_stuck(flow_service, ids, record):
    now = [0.0]
    flow_service.fail = {"ADD_ACTION"}
    editor = WorkflowEditor(
        client=flow_service.client(),
        context=EditorContext(flow_id="flow1", project_id="proj1", version_ids=["v1"]),
        store=GraphStore(clock=lambda: now[0]),
        on_event=record,
        id_factory=ids,
    )
    editor.initialize_workflow()
    loose = editor.add_empty_node().node_id
    assert editor.connect(loose, "n2").status == MutationStatus.REJECTED
    assert editor.graph.nodes[loose].status == NodeStatus.ERROR

    editor.add_piece_node(GMAIL, SEND_EMAIL, "n2")
    await editor.drain()
    assert editor.graph.nodes["n2"].is_placeholder
    now[0] += 10
    assert editor.graph.nodes[loose].status == NodeStatus.IDLE


def _catalog(version):
    body = {"id": "p1", "name": "@activepieces/piece-gmail", "displayName": "Gmail", "version": version}
    return PieceCatalogClient("http://pieces.test/v1/pieces", transport=httpx.MockTransport(
        lambda request: httpx.Response(200, json=body)
    ))


@pytest.mark.asyncio
async def test_push_resolves_latest_piece_version(bound, flow_service):
    editor = bound()
    editor.catalog = _catalog("0.4.0")
    editor.add_piece_node(Piece(id="p1", name="gmail", display_name="Gmail"), SEND_EMAIL, "n2")
    await editor.drain()
    assert flow_service.of_type("ADD_ACTION")[0]["action"]["settings"]["pieceVersion"] == "latest"
    assert await editor.push_step_settings("n2")
    assert flow_service.of_type("UPDATE_ACTION")[0]["settings"]["pieceVersion"] == "0.4.0"


@pytest.mark.asyncio
async def test_push_keeps_version_when_catalog_cannot_resolve(bound, flow_service):
    editor = bound()
    editor.catalog = _catalog("latest")
    editor.add_piece_node(Piece(id="p1", name="gmail", display_name="Gmail"), SEND_EMAIL, "n2")
    await editor.drain()
    assert await editor.push_step_settings("n2")
    assert flow_service.of_type("UPDATE_ACTION")[0]["settings"]["pieceVersion"] == "latest"


@pytest.mark.asyncio
async def test_attach_learns_versions_without_touching_graph(flow_service, ids):
    context = EditorContext(project_id="proj1", create_mode=True)
    editor = WorkflowEditor(client=flow_service.client(), context=context, id_factory=ids)
    editor.initialize_workflow()
    before = editor.graph.to_dict()
    assert await editor.attach_flow("flow1")
    assert context.flow_id == "flow1"
    assert context.version_ids == ["v1"]
    assert editor.graph.to_dict() == before

    flow_service.flow = None
    assert not await editor.attach_flow("flow1")
