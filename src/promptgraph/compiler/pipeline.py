"""promptgraph.compiler.pipeline

Load and compile entry points.

`load_workflow` turns a stored document (legacy or current) into a live `Graph`;
`graph_to_prompt` compiles a live graph into a `CompiledPrompt` without touching it.
Both take a `CompilerContext` carrying everything a compile depends on.
"""

from __future__ import annotations

import copy
import traceback
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..core.config import CompilerConfig
from ..core.errors import WorkflowDocumentError
from ..core.models import Graph, Node, NodeMode, Participation
from ..core.registry import CONTROL_AFTER_GENERATE, OperationRegistry
from ..document.models import dump_graph_json, load_graph_json, sanitize_node_type
from ..extensions import ExtensionRegistry, HookPhase
from ..groups.definition import register_group_nodes
from ..groups.expander import expand_group_nodes
from ..logging import get_logger
from ..migration.flow_control import compact_workflow, flow_table_from_links, migrate_workflow
from .builtins import apply_virtual_nodes
from .ordering import plan_execution_order
from .serializer import CompiledPrompt, serialize_instructions

logger = get_logger(__name__)

SAMPLER_NODE_TYPES = ("KSampler", "KSamplerAdvanced")
LEGACY_SAMPLER_PREFIX = "sample_"


@dataclass
class CompilerContext:
    """Per-load / per-compile state.

    `registry` is an overlay on the engine registry: group node definitions found in
    the document are registered there and disappear with the context.
    """

    registry: OperationRegistry
    config: CompilerConfig = field(default_factory=CompilerConfig)
    extensions: ExtensionRegistry = field(default_factory=ExtensionRegistry)
    missing_types: List[str] = field(default_factory=list)

    @classmethod
    def create(
        cls,
        registry: OperationRegistry,
        *,
        config: Optional[CompilerConfig] = None,
        extensions: Optional[ExtensionRegistry] = None,
    ) -> "CompilerContext":
        return cls(
            registry=registry.overlay(),
            config=config or CompilerConfig(),
            extensions=extensions if extensions is not None else ExtensionRegistry(),
        )

    def classify(self, node: Node) -> Participation:
        if self.config.is_virtual_type(node.type):
            return Participation.VIRTUAL
        if node.mode == NodeMode.MUTED:
            return Participation.MUTED
        if node.mode == NodeMode.BYPASSED:
            return Participation.BYPASSED
        return Participation.NORMAL

    def is_known_type(self, node_type: str) -> bool:
        return node_type in self.registry or self.config.is_virtual_type(node_type)

    def note_missing_type(self, node_type: str) -> str:
        label = sanitize_node_type(node_type)
        if label not in self.missing_types:
            self.missing_types.append(label)
        return label

    def check_node_type(self, node: Node) -> None:
        """Record (and sanitize) the type of a node the registry does not know."""
        if not self.is_known_type(node.type):
            node.type = self.note_missing_type(node.type)


def _extension_hint(error: BaseException, extensions: ExtensionRegistry) -> Optional[str]:
    for frame, _ in traceback.walk_tb(error.__traceback__):
        module = frame.f_globals.get("__name__")
        if not module:
            continue
        ext = extensions.find_by_module(str(module))
        if ext is not None:
            return ext.name
    return None


def _rename_and_scan(document: Dict[str, Any], ctx: CompilerContext) -> None:
    for node in document.get("nodes") or []:
        if not isinstance(node, dict) or not isinstance(node.get("type"), str):
            continue
        node["type"] = ctx.config.rename_node_type(node["type"])
        if not ctx.is_known_type(node["type"]):
            node["type"] = ctx.note_missing_type(node["type"])
    _scan_group_types(document.get("extra"), ctx)


def _scan_group_types(extra: Any, ctx: CompilerContext) -> None:
    group_nodes = extra.get("groupNodes") if isinstance(extra, dict) else None
    if not isinstance(group_nodes, dict):
        return
    for group_config in group_nodes.values():
        inner = group_config.get("nodes") if isinstance(group_config, dict) else None
        for node in inner if isinstance(inner, list) else []:
            if not isinstance(node, dict) or not isinstance(node.get("type"), str):
                continue
            node_type = ctx.config.rename_node_type(node["type"])
            if not ctx.is_known_type(node_type):
                ctx.note_missing_type(node_type)


def patch_legacy_widgets(graph: Graph) -> None:
    """Upgrade widget values stored by older versions."""
    for node in graph.nodes:
        if node.type in SAMPLER_NODE_TYPES:
            sampler = node.get_widget("sampler_name")
            if sampler is not None and isinstance(sampler.value, str) and sampler.value.startswith(LEGACY_SAMPLER_PREFIX):
                sampler.value = sampler.value[len(LEGACY_SAMPLER_PREFIX):]
        for widget in node.widgets:
            if widget.name != CONTROL_AFTER_GENERATE:
                continue
            if widget.value is True:
                widget.value = "randomize"
            elif widget.value is False:
                widget.value = "fixed"


async def load_workflow(document: Any, ctx: CompilerContext) -> Graph:
    """Load a stored workflow document into a live graph.

    Unknown node types are collected on `ctx.missing_types` (de-duplicated) and do not
    abort the load. Structural problems raise `WorkflowDocumentError`.
    """
    if not isinstance(document, dict):
        raise WorkflowDocumentError("Workflow document must be a JSON object (dict)")
    doc = copy.deepcopy(document)

    await ctx.extensions.invoke_async(HookPhase.BEFORE_CONFIGURE, doc, ctx.missing_types)

    try:
        register_group_nodes(doc.get("extra"), ctx.registry, config=ctx.config)
        _rename_and_scan(doc, ctx)
        runtime = migrate_workflow(doc, config=ctx.config)
        graph = load_graph_json(runtime, registry=ctx.registry, config=ctx.config)
    except WorkflowDocumentError as e:
        if e.extension is None:
            e.extension = _extension_hint(e, ctx.extensions)
        logger.error("Failed to load workflow", error=str(e))
        raise
    except (KeyError, IndexError, TypeError, ValueError) as e:
        err = WorkflowDocumentError(
            f"Invalid workflow document: {e}", extension=_extension_hint(e, ctx.extensions)
        )
        logger.error("Failed to load workflow", error=str(err))
        raise err from e

    patch_legacy_widgets(graph)
    for node in graph.nodes:
        ctx.extensions.invoke(HookPhase.LOADED_GRAPH_NODE, node)

    if ctx.missing_types:
        logger.warning("Workflow uses node types that are not registered", types=list(ctx.missing_types))

    await ctx.extensions.invoke_async(HookPhase.AFTER_CONFIGURE, ctx.missing_types)
    return graph


async def graph_to_prompt(graph: Graph, ctx: CompilerContext) -> CompiledPrompt:
    """Compile a live graph. The live graph is left untouched."""
    work = graph.clone()
    known_missing = len(ctx.missing_types)
    register_group_nodes(work.extra, ctx.registry, config=ctx.config)
    expand_group_nodes(work, ctx)
    if len(ctx.missing_types) > known_missing:
        logger.warning("Group nodes use node types that are not registered", types=ctx.missing_types[known_missing:])
    await ctx.extensions.invoke_async(HookPhase.AFTER_EXPAND, work)

    order = plan_execution_order(work)
    apply_virtual_nodes(work, order, ctx)
    output = serialize_instructions(work, order, ctx)

    flow_links = [link.to_list() for link in work.links.values() if link.is_flow]
    flows = flow_table_from_links(flow_links, work.node_ids())
    workflow, _ = compact_workflow(dump_graph_json(graph), config=ctx.config)
    return CompiledPrompt(output=output, flows=flows, workflow=workflow, missing_types=list(ctx.missing_types))


async def compile_document(
    document: Any,
    registry: OperationRegistry,
    *,
    config: Optional[CompilerConfig] = None,
    extensions: Optional[ExtensionRegistry] = None,
) -> CompiledPrompt:
    """Load and compile a stored document in one go."""
    ctx = CompilerContext.create(registry, config=config, extensions=extensions)
    graph = await load_workflow(document, ctx)
    return await graph_to_prompt(graph, ctx)
