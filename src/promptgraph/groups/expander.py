"""promptgraph.groups.expander

Inline group node instances into their inner nodes (compile-time only).

An instance with id `G` is replaced by nodes `"G:0"`, `"G:1"`, ... built from the group
config. External links are rewired so that the compile graph looks as if the user had
placed the inner nodes directly:

- inner inputs exposed by the group are fed from the producers linked into `G`,
- consumers of `G`'s outputs are linked to the inner producer (through reroutes),
- `G`'s incoming/outgoing FLOW links are threaded through the inner FLOW chain.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional, Tuple

from ..core.config import CompilerConfig
from ..core.errors import GroupNodeError
from ..core.models import Graph, Link, Node, NodeId, Participation
from ..core.registry import OperationDef
from ..document.models import node_from_dict, node_to_dict
from ..logging import get_logger

if TYPE_CHECKING:
    from ..compiler.pipeline import CompilerContext

logger = get_logger(__name__)


@dataclass
class GroupExpansion:
    """Record of one inlined group instance."""

    group_id: NodeId
    group_type: str
    inner_ids: List[NodeId] = field(default_factory=list)
    depth: int = 1


def resolve_passthrough(
    nodes: Mapping[NodeId, Node],
    links: Mapping[Any, Link],
    node_id: NodeId,
    slot: int,
    *,
    config: Optional[CompilerConfig] = None,
) -> Optional[Tuple[NodeId, int]]:
    """Follow reroute chains upstream from an output slot to the producing node.

    Returns the terminal (node id, output slot), or None when the chain dangles, loops or
    ends on a slot the producer does not have.
    """
    config = config or CompilerConfig()
    current: Tuple[NodeId, int] = (node_id, slot)
    visited: set = set()
    while True:
        node = nodes.get(current[0])
        if node is None:
            return None
        if not config.is_reroute_type(node.type):
            return current if 0 <= current[1] < len(node.outputs) else None
        if node.id in visited:
            return None
        visited.add(node.id)
        link = links.get(node.inputs[0].link) if node.inputs and node.inputs[0].link is not None else None
        if link is None:
            return None
        current = (link.origin_id, link.origin_slot)


def _inner_id(group_id: NodeId, index: int) -> str:
    return f"{group_id}:{index}"


def _group_definition(group: Node, ctx: "CompilerContext") -> OperationDef:
    definition = ctx.registry.get(group.type)
    if definition is None or definition.group is None:
        raise GroupNodeError(f"No group definition registered for {group.type!r}", location=f"nodes[id={group.id}]")
    return definition


def _materialize_inner_nodes(graph: Graph, group: Node, ctx: "CompilerContext") -> List[str]:
    definition = _group_definition(group, ctx)
    slots = definition.group.slots
    inner_ids: List[str] = []
    for i, raw in enumerate(definition.group.inner_nodes):
        node_id = _inner_id(group.id, i)
        data = copy.deepcopy(raw)
        data["id"] = node_id
        data["type"] = ctx.config.rename_node_type(str(data.get("type") or ""))
        node = node_from_dict(data, registry=ctx.registry, config=ctx.config, location=f"{group.type}.nodes[{i}]")
        # Inner link ids refer to the clipboard copy, not to this graph.
        for slot in node.inputs:
            slot.link = None
        for slot in node.outputs:
            slot.links = []
        ctx.check_node_type(node)

        for widget in node.widgets:
            group_widget_name = slots.widgets.get(i, {}).get(widget.name)
            group_widget = group.get_widget(group_widget_name) if group_widget_name else None
            if group_widget is not None:
                widget.value = copy.deepcopy(group_widget.value)
        graph.add_node(node)
        inner_ids.append(node_id)
    return inner_ids


def _wire_internal_links(graph: Graph, group: Node, ctx: "CompilerContext") -> None:
    definition = _group_definition(group, ctx)
    for link in definition.group.inner_links:
        origin_index, origin_slot, target_index, target_slot = link[0], link[1], link[2], link[3]
        if origin_index is None:
            continue
        origin = graph.get_node(_inner_id(group.id, origin_index))
        target = graph.get_node(_inner_id(group.id, target_index))
        if origin is None or target is None:
            continue
        if not (0 <= origin_slot < len(origin.outputs) and 0 <= target_slot < len(target.inputs)):
            logger.warning("Dropping group link with invalid slots", group=group.type, link=link)
            continue
        graph.add_link(origin.id, origin_slot, target.id, target_slot, origin.outputs[origin_slot].type)


def _wire_external_inputs(graph: Graph, group: Node, ctx: "CompilerContext") -> None:
    definition = _group_definition(group, ctx)
    flow_in = group.flow_input_count()
    for inner_index, mapping in definition.group.slots.inputs.items():
        for inner_slot, external_index in mapping.items():
            outer = graph.get_link(group.input_link_id(flow_in + external_index))
            if outer is None:
                continue
            target = graph.get_node(_inner_id(group.id, inner_index))
            if target is None or not (0 <= inner_slot < len(target.inputs)):
                continue
            graph.add_link(outer.origin_id, outer.origin_slot, target.id, inner_slot, outer.type)


def _rewire_external_outputs(graph: Graph, group: Node, ctx: "CompilerContext") -> None:
    definition = _group_definition(group, ctx)
    flow_out = group.flow_output_count()
    for out_slot, slot in enumerate(group.outputs):
        if slot.is_flow:
            continue
        target = definition.group.slots.outputs.get(out_slot - flow_out)
        if target is None:
            continue
        inner_index, inner_slot = target
        producer = resolve_passthrough(
            graph.node_map(), graph.links, _inner_id(group.id, inner_index), inner_slot, config=ctx.config
        )
        if producer is None and slot.links:
            logger.debug("Group output has no inner producer", group=group.type, output=slot.name)
        for link_id in list(slot.links):
            link = graph.get_link(link_id)
            if link is None:
                continue
            if producer is None:
                graph.remove_link(link_id)
                continue
            graph.add_link(producer[0], producer[1], link.target_id, link.target_slot, link.type)


def _thread_flow(graph: Graph, group: Node, inner_ids: List[str], ctx: "CompilerContext") -> None:
    inner_set = set(inner_ids)
    chain: List[str] = []
    for nid in inner_ids:
        node = graph.get_node(nid)
        if node is not None and node.flow_input_count() and node.flow_output_count():
            chain.append(nid)
    if not chain:
        return

    def has_inner_flow(node_id: str, *, incoming: bool) -> bool:
        node = graph.get_node(node_id)
        if node is None:
            return False
        if incoming:
            link = graph.get_link(node.inputs[0].link)
            return link is not None and link.origin_id in inner_set
        for link_id in node.outputs[0].links:
            link = graph.get_link(link_id)
            if link is not None and link.target_id in inner_set:
                return True
        return False

    if not any(link.is_flow and link.origin_id in inner_set for link in graph.links.values()):
        for origin_id, target_id in zip(chain, chain[1:]):
            graph.add_link(origin_id, 0, target_id, 0, ctx.config.flow_type)

    head = next((nid for nid in chain if not has_inner_flow(nid, incoming=True)), None)
    tail = next((nid for nid in reversed(chain) if not has_inner_flow(nid, incoming=False)), None)

    if group.flow_input_count() and head is not None:
        incoming = graph.get_link(group.inputs[0].link)
        if incoming is not None:
            graph.add_link(incoming.origin_id, incoming.origin_slot, head, 0, ctx.config.flow_type)
    if group.flow_output_count() and tail is not None:
        for link_id in list(group.outputs[0].links):
            outgoing = graph.get_link(link_id)
            if outgoing is not None:
                graph.add_link(tail, 0, outgoing.target_id, outgoing.target_slot, ctx.config.flow_type)


def expand_group_node(graph: Graph, group: Node, ctx: "CompilerContext", *, depth: int = 1) -> GroupExpansion:
    """Replace one group instance by its inner nodes."""
    inner_ids = _materialize_inner_nodes(graph, group, ctx)
    _wire_internal_links(graph, group, ctx)
    _wire_external_inputs(graph, group, ctx)
    _rewire_external_outputs(graph, group, ctx)
    _thread_flow(graph, group, inner_ids, ctx)
    graph.remove_node(group.id)
    return GroupExpansion(group_id=group.id, group_type=group.type, inner_ids=list(inner_ids), depth=depth)


def expand_group_nodes(graph: Graph, ctx: "CompilerContext") -> List[GroupExpansion]:
    """Inline every participating group instance of `graph` in place, nested groups included.

    Muted/bypassed instances are left as they are (their participation rules apply to
    the instance as a whole).
    """

    def expandable(node: Node) -> bool:
        definition = ctx.registry.get(node.type)
        return definition is not None and definition.is_group and ctx.classify(node) is Participation.NORMAL

    pending: List[Tuple[Node, int]] = [(n, 1) for n in graph.nodes if expandable(n)]
    expansions: List[GroupExpansion] = []
    while pending:
        group, depth = pending.pop(0)
        if depth > ctx.config.max_group_depth:
            raise GroupNodeError(
                f"Group nodes nested deeper than {ctx.config.max_group_depth} levels",
                location=f"nodes[id={group.id}]",
            )
        expansion = expand_group_node(graph, group, ctx, depth=depth)
        expansions.append(expansion)
        for inner_id in expansion.inner_ids:
            inner = graph.get_node(inner_id)
            if inner is not None and expandable(inner):
                pending.append((inner, depth + 1))
    if expansions:
        logger.debug("Expanded group nodes", count=len(expansions))
    return expansions


def derive_group_config(graph: Graph, group_id: NodeId, size: int) -> Dict[str, Any]:
    """Collapse an expansion back to clipboard form (`{"nodes", "links"}`)."""
    ids = [_inner_id(group_id, i) for i in range(size)]
    index = {nid: i for i, nid in enumerate(ids)}
    nodes: List[Dict[str, Any]] = []
    for i, nid in enumerate(ids):
        node = graph.get_node(nid)
        if node is None:
            raise GroupNodeError(f"Inner node {nid!r} not found", location=f"nodes[id={nid}]")
        data = node_to_dict(node)
        data["id"] = i
        nodes.append(data)
    links: List[List[Any]] = []
    for link in graph.links.values():
        if link.origin_id in index and link.target_id in index:
            links.append([index[link.origin_id], link.origin_slot, index[link.target_id], link.target_slot, index[link.origin_id]])
    return {"nodes": nodes, "links": links}
