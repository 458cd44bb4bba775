from __future__ import annotations

import asyncio

import pytest


@pytest.mark.basic
def test_registration_requires_unique_name() -> None:
    from promptgraph import Extension, ExtensionError, ExtensionRegistry

    reg = ExtensionRegistry()
    reg.register(Extension("demo.one"))
    with pytest.raises(ExtensionError, match="already registered"):
        reg.register(Extension("demo.one"))
    with pytest.raises(ExtensionError, match="name"):
        reg.register(Extension(""))
    assert reg.names() == ["demo.one"]


@pytest.mark.basic
def test_sync_hooks_run_in_order_and_isolate_failures() -> None:
    from promptgraph import Extension, ExtensionRegistry, HookPhase

    calls = []
    first, broken, last = Extension("first"), Extension("broken"), Extension("last")

    @first.hook(HookPhase.LOADED_GRAPH_NODE)
    def _first(node):
        calls.append(("first", node))
        return 1

    @broken.hook(HookPhase.LOADED_GRAPH_NODE)
    def _broken(node):
        raise RuntimeError("boom")

    @last.hook("loaded_graph_node")
    def _last(node):
        calls.append(("last", node))
        return 3

    reg = ExtensionRegistry([first, broken, last])
    assert reg.invoke(HookPhase.LOADED_GRAPH_NODE, "n") == [1, 3]
    assert calls == [("first", "n"), ("last", "n")]


@pytest.mark.asyncio
async def test_async_hooks_run_concurrently_and_isolate_failures() -> None:
    from promptgraph import Extension, ExtensionRegistry, HookPhase

    started = []
    release = asyncio.Event()
    slow, broken, plain = Extension("slow"), Extension("broken"), Extension("plain")

    @slow.hook(HookPhase.AFTER_CONFIGURE)
    async def _slow(missing):
        started.append("slow")
        await release.wait()
        return "slow-done"

    @broken.hook(HookPhase.AFTER_CONFIGURE)
    async def _broken(missing):
        raise ValueError("bad hook")

    @plain.hook(HookPhase.AFTER_CONFIGURE)
    def _plain(missing):
        started.append("plain")
        release.set()
        return len(missing)

    reg = ExtensionRegistry([slow, broken, plain])
    results = await asyncio.wait_for(reg.invoke_async(HookPhase.AFTER_CONFIGURE, ["Foo"]), timeout=5)
    assert results == ["slow-done", None, 1]
    assert started == ["slow", "plain"]


@pytest.mark.asyncio
async def test_hooks_see_the_load_pipeline(registry, chain_document) -> None:
    from promptgraph import CompilerContext, Extension, ExtensionRegistry, HookPhase, graph_to_prompt, load_workflow

    seen = {"nodes": [], "missing": None, "expanded": None}
    ext = Extension("test.observer")

    @ext.hook(HookPhase.BEFORE_CONFIGURE)
    def _before(document, missing):
        # Hooks may rewrite the document before it is migrated.
        document["nodes"][2]["widgets_values"] = ["renamed"]

    @ext.hook(HookPhase.LOADED_GRAPH_NODE)
    def _loaded(node):
        seen["nodes"].append(node.id)

    @ext.hook(HookPhase.AFTER_CONFIGURE)
    async def _after(missing):
        seen["missing"] = list(missing)

    @ext.hook(HookPhase.AFTER_EXPAND)
    def _expanded(graph):
        seen["expanded"] = len(graph.nodes)

    ctx = CompilerContext.create(registry, extensions=ExtensionRegistry([ext]))
    graph = await load_workflow(chain_document, ctx)
    prompt = await graph_to_prompt(graph, ctx)

    assert seen == {"nodes": [1, 2, 3], "missing": [], "expanded": 3}
    assert prompt.output["3"]["inputs"]["filename_prefix"] == "renamed"
    assert chain_document["nodes"][2]["widgets_values"] == ["out"]


@pytest.mark.basic
def test_async_hooks_are_refused_for_synchronous_phase() -> None:
    from promptgraph import Extension, ExtensionError, ExtensionRegistry, HookPhase

    ext = Extension("async.node")
    with pytest.raises(ExtensionError, match="synchronous"):

        @ext.hook(HookPhase.LOADED_GRAPH_NODE)
        async def _loaded(node):
            return node

    calls = []

    async def _pending(node):
        calls.append(node)

    # Hooks placed in the table directly bypass the decorator check.
    sneaky = Extension("sneaky", hooks={HookPhase.LOADED_GRAPH_NODE: _pending})
    plain = Extension("plain", hooks={HookPhase.LOADED_GRAPH_NODE: lambda node: node * 2})
    reg = ExtensionRegistry([sneaky, plain])

    assert reg.invoke(HookPhase.LOADED_GRAPH_NODE, 4) == [8]
    assert calls == []
