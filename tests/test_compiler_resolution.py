from __future__ import annotations

import pytest


def _graph(*nodes, links=()):
    from promptgraph.core.models import Graph, Link

    return Graph(nodes=list(nodes), links={lk[0]: Link.from_list(lk) for lk in links})


def _node(nid, node_type, *, inputs=(), outputs=(), mode=0):
    from promptgraph.core.models import InputSlot, Node, NodeMode, OutputSlot

    return Node(
        id=nid,
        type=node_type,
        mode=NodeMode(mode),
        inputs=[InputSlot(name=n, type=t, link=lk) for n, t, lk in inputs],
        outputs=[OutputSlot(name=n, type=t, links=list(lks)) for n, t, lks in outputs],
    )


def _classify():
    from promptgraph.compiler.pipeline import CompilerContext
    from promptgraph.core.registry import OperationRegistry

    return CompilerContext.create(OperationRegistry()).classify


@pytest.mark.basic
def test_bypassed_node_forwards_same_typed_input() -> None:
    from promptgraph.compiler.resolver import resolve_input

    graph = _graph(
        _node(1, "LoadImage", outputs=[("IMAGE", "IMAGE", [1])]),
        _node(2, "Blur", inputs=[("image", "IMAGE", 1)], outputs=[("IMAGE", "IMAGE", [2])], mode=4),
        _node(3, "SaveImage", inputs=[("images", "IMAGE", 2)]),
        links=[[1, 1, 0, 2, 0, "IMAGE"], [2, 2, 0, 3, 0, "IMAGE"]],
    )
    assert resolve_input(graph.node_map(), graph.links, 3, 0, classify=_classify()) == (1, 0)


@pytest.mark.basic
def test_bypassed_node_without_matching_type_leaves_input_unconnected() -> None:
    from promptgraph.compiler.resolver import resolve_input

    graph = _graph(
        _node(1, "LoadMask", outputs=[("MASK", "MASK", [1])]),
        _node(2, "MaskToImage", inputs=[("mask", "MASK", 1)], outputs=[("IMAGE", "IMAGE", [2])], mode=4),
        _node(3, "SaveImage", inputs=[("images", "IMAGE", 2)]),
        links=[[1, 1, 0, 2, 0, "MASK"], [2, 2, 0, 3, 0, "IMAGE"]],
    )
    assert resolve_input(graph.node_map(), graph.links, 3, 0, classify=_classify()) is None


@pytest.mark.basic
def test_bypass_prefers_input_at_consumed_output_index() -> None:
    from promptgraph.compiler.resolver import resolve_input

    graph = _graph(
        _node(1, "A", outputs=[("IMAGE", "IMAGE", [1])]),
        _node(2, "B", outputs=[("IMAGE", "IMAGE", [2])]),
        _node(
            3,
            "Blend",
            inputs=[("first", "IMAGE", 1), ("second", "IMAGE", 2)],
            outputs=[("IMAGE", "IMAGE", []), ("IMAGE", "IMAGE", [3])],
            mode=4,
        ),
        _node(4, "SaveImage", inputs=[("images", "IMAGE", 3)]),
        links=[[1, 1, 0, 3, 0, "IMAGE"], [2, 2, 0, 3, 1, "IMAGE"], [3, 3, 1, 4, 0, "IMAGE"]],
    )
    assert resolve_input(graph.node_map(), graph.links, 4, 0, classify=_classify()) == (2, 0)


@pytest.mark.basic
def test_muted_producer_does_not_forward() -> None:
    from promptgraph.compiler.resolver import resolve_input

    graph = _graph(
        _node(1, "LoadImage", outputs=[("IMAGE", "IMAGE", [1])]),
        _node(2, "Blur", inputs=[("image", "IMAGE", 1)], outputs=[("IMAGE", "IMAGE", [2])], mode=2),
        _node(3, "SaveImage", inputs=[("images", "IMAGE", 2)]),
        links=[[1, 1, 0, 2, 0, "IMAGE"], [2, 2, 0, 3, 0, "IMAGE"]],
    )
    assert resolve_input(graph.node_map(), graph.links, 3, 0, classify=_classify()) is None


@pytest.mark.basic
def test_long_reroute_chain_terminates_at_producer() -> None:
    from promptgraph.compiler.resolver import resolve_input

    size = 50
    nodes = [_node(1, "LoadImage", outputs=[("IMAGE", "IMAGE", [1])])]
    links = []
    for i in range(size):
        nid = 100 + i
        nodes.append(_node(nid, "Reroute", inputs=[("", "*", i + 1)], outputs=[("", "IMAGE", [i + 2])]))
        links.append([i + 1, 1 if i == 0 else nid - 1, 0, nid, 0, "IMAGE"])
    nodes.append(_node(2, "SaveImage", inputs=[("images", "IMAGE", size + 1)]))
    links.append([size + 1, 100 + size - 1, 0, 2, 0, "IMAGE"])
    graph = _graph(*nodes, links=links)

    assert resolve_input(graph.node_map(), graph.links, 2, 0, classify=_classify()) == (1, 0)


@pytest.mark.basic
def test_reroute_cycle_resolves_to_unconnected() -> None:
    from promptgraph.compiler.resolver import resolve_input

    graph = _graph(
        _node(10, "Reroute", inputs=[("", "*", 2)], outputs=[("", "IMAGE", [1])]),
        _node(11, "Reroute", inputs=[("", "*", 1)], outputs=[("", "IMAGE", [2, 3])]),
        _node(3, "SaveImage", inputs=[("images", "IMAGE", 3)]),
        links=[[1, 10, 0, 11, 0, "IMAGE"], [2, 11, 0, 10, 0, "IMAGE"], [3, 11, 0, 3, 0, "IMAGE"]],
    )
    assert resolve_input(graph.node_map(), graph.links, 3, 0, classify=_classify()) is None


@pytest.mark.basic
def test_dangling_link_degrades_to_unconnected() -> None:
    from promptgraph.compiler.resolver import resolve_input

    graph = _graph(
        _node(3, "SaveImage", inputs=[("images", "IMAGE", 99)]),
        links=[[99, 42, 0, 3, 0, "IMAGE"]],
    )
    classify = _classify()
    assert resolve_input(graph.node_map(), graph.links, 3, 0, classify=classify) is None
    assert resolve_input(graph.node_map(), graph.links, 3, 5, classify=classify) is None
    assert resolve_input(graph.node_map(), graph.links, 404, 0, classify=classify) is None


@pytest.mark.basic
def test_mixed_reroute_and_bypass_chain_reaches_producer() -> None:
    from promptgraph.compiler.resolver import resolve_input

    graph = _graph(
        _node(1, "LoadImage", outputs=[("IMAGE", "IMAGE", [1])]),
        _node(10, "Reroute", inputs=[("", "*", 1)], outputs=[("", "IMAGE", [2])]),
        _node(20, "Blur", inputs=[("image", "IMAGE", 2)], outputs=[("IMAGE", "IMAGE", [3])], mode=4),
        _node(11, "Reroute", inputs=[("", "*", 3)], outputs=[("", "IMAGE", [4])]),
        _node(21, "Sharpen", inputs=[("image", "IMAGE", 4)], outputs=[("IMAGE", "IMAGE", [5])], mode=4),
        _node(3, "SaveImage", inputs=[("images", "IMAGE", 5)]),
        links=[
            [1, 1, 0, 10, 0, "IMAGE"],
            [2, 10, 0, 20, 0, "IMAGE"],
            [3, 20, 0, 11, 0, "IMAGE"],
            [4, 11, 0, 21, 0, "IMAGE"],
            [5, 21, 0, 3, 0, "IMAGE"],
        ],
    )
    assert resolve_input(graph.node_map(), graph.links, 3, 0, classify=_classify()) == (1, 0)


@pytest.mark.basic
def test_bypassed_cycle_resolves_to_unconnected() -> None:
    from promptgraph.compiler.resolver import resolve_input

    graph = _graph(
        _node(20, "Blur", inputs=[("image", "IMAGE", 2)], outputs=[("IMAGE", "IMAGE", [1])], mode=4),
        _node(21, "Blur", inputs=[("image", "IMAGE", 1)], outputs=[("IMAGE", "IMAGE", [2, 3])], mode=4),
        _node(3, "SaveImage", inputs=[("images", "IMAGE", 3)]),
        links=[[1, 20, 0, 21, 0, "IMAGE"], [2, 21, 0, 20, 0, "IMAGE"], [3, 21, 0, 3, 0, "IMAGE"]],
    )
    assert resolve_input(graph.node_map(), graph.links, 3, 0, classify=_classify()) is None


@pytest.mark.basic
def test_plan_execution_order_respects_links_and_document_order() -> None:
    from promptgraph.compiler.ordering import plan_execution_order

    graph = _graph(
        _node(3, "SaveImage", inputs=[("images", "IMAGE", 2)]),
        _node(2, "Blur", inputs=[("image", "IMAGE", 1)], outputs=[("IMAGE", "IMAGE", [2])]),
        _node(1, "LoadImage", outputs=[("IMAGE", "IMAGE", [1])]),
        _node(7, "Note"),
        links=[[1, 1, 0, 2, 0, "IMAGE"], [2, 2, 0, 3, 0, "IMAGE"]],
    )
    assert plan_execution_order(graph) == [1, 7, 2, 3]


@pytest.mark.basic
def test_plan_execution_order_appends_cycle_members() -> None:
    from promptgraph.compiler.ordering import plan_execution_order

    graph = _graph(
        _node(1, "A", inputs=[("x", "X", 2)], outputs=[("X", "X", [1])]),
        _node(2, "B", inputs=[("x", "X", 1)], outputs=[("X", "X", [2])]),
        _node(3, "C"),
        links=[[1, 1, 0, 2, 0, "X"], [2, 2, 0, 1, 0, "X"]],
    )
    assert plan_execution_order(graph) == [3, 1, 2]


@pytest.mark.basic
def test_prune_dangling_inputs_drops_input_and_flag() -> None:
    from promptgraph.compiler.serializer import prune_dangling_inputs

    output = {
        "1": {"inputs": {"a": ["9", 0], "b": ["2", 0], "c": [1, 2]}, "is_input_linked": {"a": True, "b": True, "c": False}, "class_type": "X"},
        "2": {"inputs": {}, "is_input_linked": {}, "class_type": "Y"},
    }
    prune_dangling_inputs(output)
    assert output["1"]["inputs"] == {"b": ["2", 0], "c": [1, 2]}
    assert output["1"]["is_input_linked"] == {"b": True, "c": False}
