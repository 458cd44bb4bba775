from __future__ import annotations

import copy

import pytest


@pytest.mark.asyncio
async def test_compile_legacy_chain(registry, chain_document) -> None:
    from promptgraph import compile_document

    prompt = await compile_document(chain_document, registry)

    assert prompt.output == {
        "1": {"inputs": {"image": "a.png"}, "is_input_linked": {"image": False}, "class_type": "LoadImage"},
        "2": {
            "inputs": {"radius": 3, "image": ["1", 0]},
            "is_input_linked": {"radius": False, "image": True},
            "class_type": "Blur",
        },
        "3": {
            "inputs": {"filename_prefix": "out", "images": ["2", 0]},
            "is_input_linked": {"filename_prefix": False, "images": True},
            "class_type": "SaveImage",
        },
    }
    assert prompt.flows == {"1": [["2", 0]], "2": [["3", 0]], "3": None}
    assert prompt.workflow["support_flow_control"] is True
    assert prompt.workflow["flow_links"] == [[3, 1, 0, 2, 0], [4, 2, 0, 3, 0]]
    assert prompt.workflow["links"] == chain_document["links"]
    assert prompt.workflow["nodes"][0]["pos"] == [10, 10]


@pytest.mark.asyncio
async def test_bypassed_node_is_skipped_and_forwarded(registry, chain_document) -> None:
    from promptgraph import compile_document

    chain_document["nodes"][1]["mode"] = 4
    prompt = await compile_document(chain_document, registry)

    assert set(prompt.output) == {"1", "3"}
    assert prompt.output["3"]["inputs"]["images"] == ["1", 0]


@pytest.mark.asyncio
async def test_muted_node_leaves_consumer_unconnected(registry, chain_document) -> None:
    from promptgraph import compile_document

    chain_document["nodes"][1]["mode"] = 2
    prompt = await compile_document(chain_document, registry)

    assert set(prompt.output) == {"1", "3"}
    assert prompt.output["3"]["inputs"] == {"filename_prefix": "out"}
    assert prompt.output["3"]["is_input_linked"] == {"filename_prefix": False}


@pytest.mark.asyncio
async def test_compile_does_not_mutate_live_graph(registry, group_document) -> None:
    from promptgraph import CompilerContext, graph_to_prompt, load_workflow
    from promptgraph.document import dump_graph_json

    ctx = CompilerContext.create(registry)
    graph = await load_workflow(group_document, ctx)
    before = dump_graph_json(graph)

    await graph_to_prompt(graph, ctx)
    assert dump_graph_json(graph) == before
    assert graph.get_node(2) is not None


@pytest.mark.asyncio
async def test_unknown_type_reported_once_and_compiled(registry, chain_document) -> None:
    from promptgraph import CompilerContext, graph_to_prompt, load_workflow

    doc = copy.deepcopy(chain_document)
    doc["nodes"].append({"id": 4, "type": "Foo", "mode": 0, "widgets_values": [1]})
    doc["nodes"].append({"id": 5, "type": "Foo", "mode": 0})
    doc["nodes"].append({"id": 6, "type": 'Bad"<Type>', "mode": 0})

    ctx = CompilerContext.create(registry)
    graph = await load_workflow(doc, ctx)
    assert ctx.missing_types == ["Foo", "BadType"]

    prompt = await graph_to_prompt(graph, ctx)
    assert prompt.output["4"]["class_type"] == "Foo"
    assert prompt.output["6"]["class_type"] == "BadType"
    assert prompt.output["3"]["inputs"]["images"] == ["2", 0]


@pytest.mark.asyncio
async def test_legacy_renames_and_widget_patches(registry) -> None:
    from promptgraph import CompilerContext, graph_to_prompt, load_workflow

    doc = {
        "nodes": [
            {"id": 1, "type": "T2IAdapterLoader", "mode": 0, "widgets_values": ["cn.safetensors"]},
            {"id": 2, "type": "KSampler", "mode": 0, "widgets_values": [5, True, "sample_euler"]},
            {"id": 3, "type": "KSampler", "mode": 0, "widgets_values": [6, False, "ddim"]},
        ],
        "links": [],
    }
    ctx = CompilerContext.create(registry)
    graph = await load_workflow(doc, ctx)
    assert ctx.missing_types == []
    assert graph.get_node(1).type == "ControlNetLoader"
    assert graph.get_node(2).get_widget("control_after_generate").value == "randomize"
    assert graph.get_node(3).get_widget("control_after_generate").value == "fixed"

    prompt = await graph_to_prompt(graph, ctx)
    assert prompt.output["1"]["class_type"] == "ControlNetLoader"
    assert prompt.output["2"]["inputs"] == {"seed": 5, "sampler_name": "euler"}
    assert prompt.output["3"]["inputs"] == {"seed": 6, "sampler_name": "ddim"}


@pytest.mark.asyncio
async def test_primitive_node_drives_converted_widget(registry, chain_document) -> None:
    from promptgraph import compile_document

    doc = copy.deepcopy(chain_document)
    doc["nodes"][1]["inputs"].append({"name": "radius", "type": "INT", "link": 3, "widget": {"name": "radius"}})
    doc["nodes"].append(
        {
            "id": 4,
            "type": "PrimitiveNode",
            "mode": 0,
            "outputs": [{"name": "INT", "type": "INT", "links": [3], "widget": {"name": "radius"}}],
            "widgets_values": [8, "fixed"],
        }
    )
    doc["links"].append([3, 4, 0, 2, 1, "INT"])
    doc["last_link_id"] = 3

    prompt = await compile_document(doc, registry)
    assert "4" not in prompt.output
    assert prompt.output["2"]["inputs"] == {"radius": 8, "image": ["1", 0]}
    assert prompt.output["2"]["is_input_linked"]["radius"] is False


@pytest.mark.asyncio
async def test_malformed_document_raises_with_location(registry) -> None:
    from promptgraph import CompilerContext, WorkflowDocumentError, load_workflow

    ctx = CompilerContext.create(registry)
    with pytest.raises(WorkflowDocumentError) as excinfo:
        await load_workflow({"nodes": [{"type": "LoadImage"}], "links": []}, ctx)
    assert excinfo.value.location == "nodes[0]"

    with pytest.raises(WorkflowDocumentError):
        await load_workflow(["not", "a", "document"], ctx)


@pytest.mark.basic
def test_request_body_shape() -> None:
    from promptgraph.compiler.serializer import CompiledPrompt

    prompt = CompiledPrompt(output={"1": {}}, flows={"1": None}, workflow={"nodes": []})
    body = prompt.to_request_body(number=-1, client_id="abc")
    assert body == {
        "prompt": {"1": {}},
        "flows": {"1": None},
        "extra_data": {"extra_pnginfo": {"workflow": {"nodes": []}}},
        "client_id": "abc",
        "front": True,
    }
    assert prompt.to_request_body(number=3)["number"] == 3
