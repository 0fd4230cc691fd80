from flow_canvas.graph import topology
from flow_canvas.graph.graph import Edge, FlowGraph, Node, NodeKind, Position


def _node(node_id, x=0.0, y=200.0, kind=NodeKind.ACTION, placeholder=False):
    return Node(id=node_id, kind=kind, name=node_id, is_placeholder=placeholder, position=Position(x, y))


def _chain(*ids, y=200.0):
    graph = FlowGraph()
    for i, node_id in enumerate(ids):
        kind = NodeKind.TRIGGER if i == 0 else NodeKind.ACTION
        graph.add_node(_node(node_id, x=150.0 + i * 220, y=y, kind=kind))
    for a, b in zip(ids, ids[1:]):
        graph.add_edge(Edge(source=a, target=b))
    return graph


def test_path_to_root_returns_ancestors_in_order():
    graph = _chain("t", "a", "b", "c")
    assert topology.path_to_root(graph, "c") == ["t", "a", "b", "c"]
    assert topology.path_to_root(graph, "t") == ["t"]
    assert topology.immediate_parent(graph, "b").id == "a"
    assert topology.immediate_parent(graph, "t") is None


def test_path_to_root_terminates_on_cycles():
    graph = _chain("a", "b")
    graph.add_edge(Edge(source="b", target="a"))
    path = topology.path_to_root(graph, "a")
    assert path[-1] == "a"
    assert len(path) == 2


def test_descendants_stop_at_split():
    graph = _chain("t", "a", "b")
    graph.add_node(_node("c", x=800, y=400))
    graph.add_node(_node("d", x=1000))
    graph.add_edge(Edge(source="b", target="c"))
    graph.add_edge(Edge(source="b", target="d"))
    assert topology.descendants_along_default_path(graph, "t") == ["a", "b"]
    assert topology.nodes_below_in_flow(graph, "t") == ["a", "b"]


def test_flow_windows_are_capped_at_five():
    ids = [f"s{i}" for i in range(10)]
    graph = _chain(*ids)
    assert topology.nodes_below_in_flow(graph, "s0") == ["s1", "s2", "s3", "s4", "s5"]
    assert topology.nodes_above_in_flow(graph, "s9") == ["s4", "s5", "s6", "s7", "s8"]


def test_branch_members_use_row_proximity_sorted_by_x():
    graph = FlowGraph()
    graph.add_node(_node("right", x=600, y=220))
    graph.add_node(_node("left", x=100, y=200))
    graph.add_node(_node("middle", x=300, y=180))
    graph.add_node(_node("below", x=200, y=260))
    assert topology.branch_members(graph, "left") == ["left", "middle", "right"]
    assert topology.nodes_below_in_branch(graph, "middle") == ["right"]
    assert topology.nodes_above_in_branch(graph, "middle") == ["left"]
    assert topology.branch_members(graph, "missing") == []


def test_linear_flow_order_and_branching():
    graph = _chain("t", "a", "b")
    assert topology.linear_flow_order(graph) == ["t", "a", "b"]
    assert not topology.has_branching(graph)
    graph.add_node(_node("c", y=400))
    graph.add_edge(Edge(source="a", target="c"))
    assert topology.has_branching(graph)


def test_reachable_forward_and_cycle_detection():
    graph = _chain("t", "a", "b")
    assert topology.reachable_forward(graph, "a") == {"a", "b"}
    assert topology.would_create_cycle(graph, "b", "a")
    assert topology.would_create_cycle(graph, "a", "a")
    assert not topology.would_create_cycle(graph, "t", "b")


def test_branch_tail_walks_single_outputs():
    graph = _chain("t", "a", "b", "c")
    assert topology.branch_tail(graph, "a") == "c"
    graph.add_node(_node("x", y=400))
    graph.add_edge(Edge(source="b", target="x"))
    assert topology.branch_tail(graph, "a") == "b"


def test_router_parent_requires_labeled_handle():
    graph = FlowGraph()
    graph.add_node(_node("r", kind=NodeKind.ROUTER))
    graph.add_node(_node("b1", y=350))
    graph.add_node(_node("main", x=300))
    graph.add_edge(Edge(source="r", target="b1", source_handle="route-1"))
    graph.add_edge(Edge(source="r", target="main"))
    router, edge = topology.router_parent(graph, "b1")
    assert router.id == "r"
    assert edge.source_handle == "route-1"
    assert topology.router_parent(graph, "main") is None


def test_right_move_candidates_take_two_from_each_side_of_a_split():
    graph = FlowGraph()
    graph.add_node(_node("s"))
    for prefix, y in (("up", 100.0), ("down", 300.0)):
        for i in range(3):
            graph.add_node(_node(f"{prefix}{i}", x=300 + i * 200, y=y))
        graph.add_edge(Edge(source=f"{prefix}0", target=f"{prefix}1"))
        graph.add_edge(Edge(source=f"{prefix}1", target=f"{prefix}2"))
    graph.add_edge(Edge(source="s", target="down0"))
    graph.add_edge(Edge(source="s", target="up0"))
    assert topology.right_move_candidates(graph, "s") == ["up0", "up1", "down0", "down1"]


def test_move_candidates_skip_placeholders():
    graph = _chain("t", "a", "b", "c", "d", "e", "f")
    graph.nodes["b"].is_placeholder = True
    assert topology.right_move_candidates(graph, "t") == ["a", "c", "d", "e"]
    assert topology.left_move_candidates(graph, "d") == ["c", "a", "t"]
    assert topology.right_move_candidates(graph, "f") == []


def test_layout_flow_spaces_evenly():
    graph = _chain("t", "a", "b")
    graph.nodes["a"].position = Position(999, 5)
    topology.layout_flow(graph, ["t", "b", "a"])
    assert [(graph.nodes[n].position.x, graph.nodes[n].position.y) for n in ("t", "b", "a")] == [
        (150.0, 200.0),
        (370.0, 200.0),
        (590.0, 200.0),
    ]


def test_layout_branch_keeps_y():
    graph = FlowGraph()
    graph.add_node(_node("a", x=100, y=210))
    graph.add_node(_node("b", x=300, y=190))
    topology.layout_branch(graph, ["a", "b"], ["b", "a"])
    assert (graph.nodes["b"].position.x, graph.nodes["b"].position.y) == (100, 190)
    assert (graph.nodes["a"].position.x, graph.nodes["a"].position.y) == (300, 210)
