from __future__ import annotations

import pytest


@pytest.mark.basic
def test_load_and_dump_preserve_editor_fields(registry, chain_document) -> None:
    from promptgraph.document import dump_graph_json, load_graph_json
    from promptgraph.migration import migrate_workflow

    runtime = migrate_workflow(chain_document)
    runtime["config"] = {"links_ontop": True}
    runtime["nodes"][0]["properties"] = {"Node name for S&R": "LoadImage"}

    graph = load_graph_json(runtime, registry=registry)
    load = graph.get_node(1)
    assert [w.name for w in load.widgets] == ["image"]
    assert load.widgets[0].options["values"] == ["a.png", "b.png"]
    assert graph.get_node(2).get_widget("radius").value == 3
    assert graph.get_node(2).inputs[1].link == 1
    assert graph.last_link_id == 4

    dumped = dump_graph_json(graph)
    assert dumped["config"] == {"links_ontop": True}
    assert dumped["nodes"][0]["properties"] == {"Node name for S&R": "LoadImage"}
    assert dumped["nodes"][0]["pos"] == [10, 10]
    assert dumped["links"] == runtime["links"]
    assert dumped["nodes"][2]["widgets_values"] == ["out"]


@pytest.mark.basic
def test_missing_widget_values_fall_back_to_defaults(registry) -> None:
    from promptgraph.document import load_graph_json

    graph = load_graph_json(
        {"nodes": [{"id": 1, "type": "KSampler"}, {"id": 2, "type": "Unknown", "widgets_values": ["x", 2]}]},
        registry=registry,
    )
    sampler = graph.get_node(1)
    assert [(w.name, w.value, w.serialize) for w in sampler.widgets] == [
        ("seed", 0, True),
        ("control_after_generate", "randomize", False),
        ("sampler_name", "euler", True),
    ]
    assert [(w.name, w.value) for w in graph.get_node(2).widgets] == [("0", "x"), ("1", 2)]


@pytest.mark.basic
def test_structural_errors_carry_locations(registry) -> None:
    from promptgraph import WorkflowDocumentError
    from promptgraph.document import load_graph_json

    cases = [
        ({"links": []}, "nodes"),
        ({"nodes": [{"id": 1, "type": "X"}, {"id": 1, "type": "Y"}]}, "nodes[1]"),
        ({"nodes": [{"id": 1, "type": "X", "inputs": ["oops"]}]}, "nodes[0].inputs[0]"),
        ({"nodes": [], "links": [[1, 2]]}, "links[0]"),
    ]
    for document, location in cases:
        with pytest.raises(WorkflowDocumentError) as excinfo:
            load_graph_json(document, registry=registry)
        assert excinfo.value.location == location


@pytest.mark.basic
def test_graph_link_editing_keeps_slots_consistent() -> None:
    from promptgraph.core.models import Graph, InputSlot, Node, OutputSlot

    graph = Graph(
        nodes=[
            Node(id=1, type="A", outputs=[OutputSlot("o", "X")]),
            Node(id=2, type="B", outputs=[OutputSlot("o", "X")]),
            Node(id=3, type="C", inputs=[InputSlot("i", "X")]),
        ]
    )
    first = graph.add_link(1, 0, 3, 0, "X")
    second = graph.add_link(2, 0, 3, 0, "X")

    assert first.id not in graph.links
    assert graph.get_node(1).outputs[0].links == []
    assert graph.get_node(3).inputs[0].link == second.id

    graph.remove_node(2)
    assert graph.links == {}
    assert graph.get_node(3).inputs[0].link is None
    with pytest.raises(ValueError):
        graph.add_link(1, 5, 3, 0)
