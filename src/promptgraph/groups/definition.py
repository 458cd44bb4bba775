"""promptgraph.groups.definition

Build operation definitions for group (macro) nodes embedded in a workflow.

A group config is stored under `extra["groupNodes"][name]` in clipboard form:

    {"nodes": [<serialized node>, ...],
     "links": [[origin_index, origin_slot, target_index, target_slot, origin_id], ...]}

where node references are indices into `nodes`. The synthesized definition exposes
every inner input, widget and output that is not satisfied internally, each named
`"{inner index}:{name}"`.
"""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Set

from ..core.config import CompilerConfig
from ..core.errors import GroupNodeError
from ..core.models import GroupNodeDefinition, GroupSlotMap, index_inner_links
from ..core.registry import (
    CONTROL_AFTER_GENERATE,
    OperationDef,
    OperationRegistry,
    get_widget_type,
    input_options,
)
from ..logging import get_logger

logger = get_logger(__name__)

GROUP_CATEGORY = "group nodes"


def _slot_list(node: Mapping[str, Any], key: str) -> List[Dict[str, Any]]:
    slots = node.get(key)
    return [s for s in slots if isinstance(s, dict)] if isinstance(slots, list) else []


def _flow_count(slots: List[Dict[str, Any]], config: CompilerConfig) -> int:
    return sum(1 for s in slots if s.get("type") == config.flow_type)


def _reroute_def(
    index: int,
    nodes: List[Dict[str, Any]],
    links_to: Dict[int, Dict[int, List[Any]]],
    links_from: Dict[int, Dict[int, List[Any]]],
) -> Optional[OperationDef]:
    """Typed one-in/one-out definition for a reroute at the group boundary."""
    link_type: Optional[str] = None
    outgoing = links_from.get(index, {}).get(0)
    incoming = links_to.get(index, {}).get(0)
    own_outputs = _slot_list(nodes[index], "outputs")
    if own_outputs and own_outputs[0].get("type") not in (None, "", "*"):
        # A connected reroute carries the resolved type on its output.
        link_type = own_outputs[0]["type"]
    elif outgoing is not None:
        target = nodes[int(outgoing[2])]
        inputs = _slot_list(target, "inputs")
        slot = int(outgoing[3])
        if 0 <= slot < len(inputs):
            link_type = inputs[slot].get("type")
    elif incoming is not None:
        origin = nodes[int(incoming[0])]
        outputs = _slot_list(origin, "outputs")
        slot = int(incoming[1])
        if 0 <= slot < len(outputs):
            link_type = outputs[slot].get("type")
    if not link_type:
        return None
    return OperationDef(name="Reroute", required={link_type: [link_type, {}]}, output=[link_type])


def build_group_node_def(
    group_config: Mapping[str, Any],
    name: str,
    registry: OperationRegistry,
    *,
    config: Optional[CompilerConfig] = None,
    workflow: bool = True,
) -> OperationDef:
    """Merge the inner nodes of a group config into one operation definition."""
    config = config or CompilerConfig()
    location = f"extra.groupNodes.{name}"
    if not isinstance(group_config, Mapping):
        raise GroupNodeError("Group node config must be an object", location=location)
    nodes = group_config.get("nodes")
    links = group_config.get("links") or []
    if not isinstance(nodes, list) or not all(isinstance(n, dict) for n in nodes):
        raise GroupNodeError("Group node config needs a list of node objects", location=f"{location}.nodes")
    if not isinstance(links, list):
        raise GroupNodeError("Group node links must be a list", location=f"{location}.links")
    for i, link in enumerate(links):
        if not isinstance(link, list) or len(link) < 4:
            raise GroupNodeError("Group link must have at least 4 items", location=f"{location}.links[{i}]")
        for ref in (link[0], link[2]):
            if ref is not None and not (isinstance(ref, int) and 0 <= ref < len(nodes)):
                raise GroupNodeError("Group link references an unknown node index", location=f"{location}.links[{i}]")

    links_to, links_from = index_inner_links(links)
    slots = GroupSlotMap()
    required: Dict[str, List[Any]] = {}
    output: List[Any] = []
    output_name: List[Optional[str]] = []
    output_is_list: List[bool] = []
    input_count = 0

    for i, node in enumerate(nodes):
        node_type = config.rename_node_type(str(node.get("type") or ""))
        inner_inputs = _slot_list(node, "inputs")
        inner_outputs = _slot_list(node, "outputs")
        flow_in = _flow_count(inner_inputs, config)
        flow_out = _flow_count(inner_outputs, config)
        node_links_to = links_to.get(i, {})
        node_links_from = links_from.get(i, {})

        definition = registry.get(node_type)
        if definition is None:
            if not config.is_reroute_type(node_type):
                logger.debug("Skipping front-end only node in group", group=name, index=i, type=node_type)
                continue
            if node_links_to and node_links_from:
                # Purely internal reroute.
                continue
            definition = _reroute_def(i, nodes, links_to, links_from)
            if definition is None:
                continue
            flow_in = flow_out = 0

        link_ordinal = 0
        for input_name, spec in definition.all_inputs().items():
            external_name = f"{i}:{input_name}"
            if get_widget_type(spec, input_name, config.widget_types) is not None:
                slots.widgets.setdefault(i, {})[input_name] = external_name
            else:
                slot = flow_in + link_ordinal
                link_ordinal += 1
                if slot in node_links_to:
                    continue
                slots.inputs.setdefault(i, {})[slot] = input_count
                input_count += 1
            if input_name in config.seed_widget_names:
                spec = [spec[0], {**input_options(spec), CONTROL_AFTER_GENERATE: True}]
            required[external_name] = list(spec)

        for out_index in range(len(definition.output)):
            slot = flow_out + out_index
            if slot in node_links_from:
                continue
            slots.outputs[len(output)] = (i, slot)
            output.append(definition.output[out_index])
            output_is_list.append(
                definition.output_is_list[out_index] if out_index < len(definition.output_is_list) else False
            )
            output_name.append(f"{i}:{definition.output_label(out_index)}")

    category = f"{GROUP_CATEGORY}/workflow" if workflow else GROUP_CATEGORY
    return OperationDef(
        name=config.group_type_name(name),
        display_name=name,
        category=category,
        required=required,
        output=output,
        output_name=output_name,
        output_is_list=output_is_list,
        flow_inputs=[(config.flow_input_name, config.flow_type)],
        flow_outputs=[(config.flow_output_name, config.flow_type)],
        group=GroupNodeDefinition(name=name, inner_nodes=list(nodes), inner_links=list(links), slots=slots),
    )


def register_group_nodes(
    extra: Optional[Mapping[str, Any]],
    registry: OperationRegistry,
    *,
    config: Optional[CompilerConfig] = None,
) -> List[str]:
    """Build and register every group node embedded in a document's `extra`.

    Groups used inside other groups are registered first. Returns the registered type
    names in registration order.
    """
    config = config or CompilerConfig()
    if not isinstance(extra, Mapping):
        return []
    group_nodes = extra.get("groupNodes")
    if not group_nodes:
        return []
    if not isinstance(group_nodes, Mapping):
        raise GroupNodeError("'groupNodes' must be an object", location="extra.groupNodes")

    by_type = {config.group_type_name(str(name)): str(name) for name in group_nodes}
    registered: List[str] = []
    done: Set[str] = set()

    def build(name: str, stack: List[str]) -> None:
        if name in done:
            return
        if name in stack:
            cycle = " -> ".join(stack + [name])
            raise GroupNodeError(f"Recursive group node definition: {cycle}", location=f"extra.groupNodes.{name}")
        group_config = group_nodes[name]
        for node in (group_config.get("nodes") or []) if isinstance(group_config, Mapping) else []:
            inner = by_type.get(config.rename_node_type(str(node.get("type")))) if isinstance(node, dict) else None
            if inner is not None:
                build(inner, stack + [name])
        definition = build_group_node_def(group_config, name, registry, config=config)
        registry.register(definition, name=definition.name)
        registered.append(definition.name)
        done.add(name)

    for name in group_nodes:
        build(str(name), [])
    return registered
