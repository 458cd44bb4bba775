"""promptgraph.document.models

Workflow document <-> graph model codec.

The document is the serialized LiteGraph graph (JSON) in its runtime form, i.e. with
FLOW slots materialized as ordinary slots (see `promptgraph.migration`).

Parsing is strict about structure (it raises `WorkflowDocumentError` with a location
hint) and permissive about content: unknown node and document fields are kept and
written back by `dump_graph_json`.
"""

from __future__ import annotations

import copy
import re
from typing import Any, Dict, List, Optional, Tuple

from ..core.config import CompilerConfig
from ..core.errors import WorkflowDocumentError
from ..core.models import Graph, InputSlot, Link, Node, NodeMode, OutputSlot, Widget
from ..core.registry import (
    COMBO,
    CONTROL_AFTER_GENERATE,
    OperationRegistry,
    get_widget_type,
    has_control_after_generate,
    input_options,
)

_DOCUMENT_KEYS = ("nodes", "links", "groups", "extra", "version", "last_node_id", "last_link_id")
_NODE_KEYS = ("id", "type", "mode", "inputs", "outputs", "widgets_values")
_INPUT_KEYS = ("name", "type", "link", "widget")
_OUTPUT_KEYS = ("name", "type", "links", "slot_index")

_UNSAFE_TYPE_CHARS_RE = re.compile(r"[&<>\"'`=]")


def sanitize_node_type(name: Any) -> str:
    """Strip characters that are unsafe in a type label (used for unknown node types)."""
    return _UNSAFE_TYPE_CHARS_RE.sub("", str(name))


def _default_widget_value(input_spec: List[Any]) -> Any:
    kind = input_spec[0] if input_spec else None
    options = input_options(input_spec)
    if "default" in options:
        return copy.deepcopy(options["default"])
    if isinstance(kind, list):
        return kind[0] if kind else None
    return None


def widget_layout(
    node_type: str, registry: OperationRegistry, config: CompilerConfig
) -> List[Tuple[str, bool, Dict[str, Any], Any]]:
    """Widget (name, serialize, options, default) tuples for a node type, in display order."""
    definition = registry.get(node_type)
    if definition is None:
        return []
    layout: List[Tuple[str, bool, Dict[str, Any], Any]] = []
    for name, spec in definition.all_inputs().items():
        widget_type = get_widget_type(spec, name, config.widget_types)
        if widget_type is None:
            continue
        options = input_options(spec)
        if widget_type == COMBO:
            options.setdefault("values", list(spec[0]))
        layout.append((name, True, options, _default_widget_value(spec)))
        if has_control_after_generate(spec, name, config.seed_widget_names):
            layout.append((CONTROL_AFTER_GENERATE, False, {}, "randomize"))
    return layout


def build_widgets(
    node_type: str, values: Any, registry: OperationRegistry, config: CompilerConfig
) -> List[Widget]:
    layout = widget_layout(node_type, registry, config)
    raw_values = list(values) if isinstance(values, list) else []
    widgets: List[Widget] = []
    for i, (name, serialize, options, default) in enumerate(layout):
        value = raw_values[i] if i < len(raw_values) else default
        widgets.append(Widget(name=name, value=value, serialize=serialize, options=options))
    # Values without a known widget (front-end only or unknown types) keep their position.
    for i in range(len(layout), len(raw_values)):
        widgets.append(Widget(name=str(i), value=raw_values[i]))
    return widgets


def _parse_input(raw: Any, location: str) -> InputSlot:
    if not isinstance(raw, dict):
        raise WorkflowDocumentError("Node input must be an object", location=location)
    widget = raw.get("widget")
    widget_name = widget.get("name") if isinstance(widget, dict) else None
    return InputSlot(
        name=str(raw.get("name") or ""),
        type=str(raw.get("type") or "*"),
        link=raw.get("link"),
        widget_name=str(widget_name) if widget_name else None,
        extra={k: copy.deepcopy(v) for k, v in raw.items() if k not in _INPUT_KEYS},
    )


def _parse_output(raw: Any, location: str) -> OutputSlot:
    if not isinstance(raw, dict):
        raise WorkflowDocumentError("Node output must be an object", location=location)
    links = raw.get("links")
    if links is not None and not isinstance(links, list):
        raise WorkflowDocumentError("Output links must be a list", location=location)
    slot_index = raw.get("slot_index")
    return OutputSlot(
        name=str(raw.get("name") or ""),
        type=str(raw.get("type") or "*"),
        links=list(links or []),
        slot_index=int(slot_index) if isinstance(slot_index, int) else None,
        extra={k: copy.deepcopy(v) for k, v in raw.items() if k not in _OUTPUT_KEYS},
    )


def node_from_dict(
    raw: Any, *, registry: OperationRegistry, config: CompilerConfig, location: str = "node"
) -> Node:
    """Parse one serialized node."""
    if not isinstance(raw, dict):
        raise WorkflowDocumentError("Node must be an object", location=location)
    node_id = raw.get("id")
    if node_id is None or isinstance(node_id, bool) or not isinstance(node_id, (int, str)):
        raise WorkflowDocumentError("Node is missing a valid 'id'", location=location)
    node_type = raw.get("type")
    if not isinstance(node_type, str) or not node_type:
        raise WorkflowDocumentError("Node is missing its 'type'", location=location)

    inputs_raw = raw.get("inputs") or []
    outputs_raw = raw.get("outputs") or []
    if not isinstance(inputs_raw, list) or not isinstance(outputs_raw, list):
        raise WorkflowDocumentError("Node inputs/outputs must be lists", location=location)

    extra = {k: copy.deepcopy(v) for k, v in raw.items() if k not in _NODE_KEYS}
    # Remember which slot lists were present so dump_graph_json writes the same shape.
    extra["__slots_present__"] = [k for k in ("inputs", "outputs", "widgets_values") if k in raw]

    return Node(
        id=node_id,
        type=node_type,
        mode=NodeMode.coerce(raw.get("mode", 0)),
        inputs=[_parse_input(x, f"{location}.inputs[{i}]") for i, x in enumerate(inputs_raw)],
        outputs=[_parse_output(x, f"{location}.outputs[{i}]") for i, x in enumerate(outputs_raw)],
        widgets=build_widgets(node_type, raw.get("widgets_values"), registry, config),
        extra=extra,
    )


def load_graph_json(raw: Any, *, registry: OperationRegistry, config: Optional[CompilerConfig] = None) -> Graph:
    """Parse a runtime-form workflow document into a Graph."""
    config = config or CompilerConfig()
    if not isinstance(raw, dict):
        raise WorkflowDocumentError("Workflow document must be a JSON object (dict)")
    nodes_raw = raw.get("nodes")
    if not isinstance(nodes_raw, list):
        raise WorkflowDocumentError("Workflow document is missing its 'nodes' list", location="nodes")

    nodes: List[Node] = []
    seen: set = set()
    for i, n in enumerate(nodes_raw):
        node = node_from_dict(n, registry=registry, config=config, location=f"nodes[{i}]")
        if node.id in seen:
            raise WorkflowDocumentError(f"Duplicate node id {node.id!r}", location=f"nodes[{i}]")
        seen.add(node.id)
        nodes.append(node)

    links_raw = raw.get("links") or []
    if not isinstance(links_raw, list):
        raise WorkflowDocumentError("Workflow 'links' must be a list", location="links")
    links: Dict[Any, Link] = {}
    for i, entry in enumerate(links_raw):
        if entry is None:
            continue
        try:
            link = Link.from_list(entry)
        except (TypeError, ValueError) as e:
            raise WorkflowDocumentError(str(e), location=f"links[{i}]") from e
        links[link.id] = link

    last_link_id = raw.get("last_link_id")
    if not isinstance(last_link_id, int):
        last_link_id = max([lid for lid in links if isinstance(lid, int)] or [0])
    last_node_id = raw.get("last_node_id")
    if not isinstance(last_node_id, int):
        last_node_id = max([n.id for n in nodes if isinstance(n.id, int)] or [0])

    return Graph(
        nodes=nodes,
        links=links,
        extra=copy.deepcopy(raw.get("extra") or {}),
        groups=copy.deepcopy(raw.get("groups") or []),
        version=raw.get("version", 0.4),
        last_node_id=last_node_id,
        last_link_id=last_link_id,
        meta={k: copy.deepcopy(v) for k, v in raw.items() if k not in _DOCUMENT_KEYS},
    )


def _dump_input(slot: InputSlot) -> Dict[str, Any]:
    out: Dict[str, Any] = {"name": slot.name, "type": slot.type, "link": slot.link}
    if slot.widget_name:
        out["widget"] = {"name": slot.widget_name}
    out.update(copy.deepcopy(slot.extra))
    return out


def _dump_output(slot: OutputSlot) -> Dict[str, Any]:
    out: Dict[str, Any] = {"name": slot.name, "type": slot.type, "links": list(slot.links)}
    if slot.slot_index is not None:
        out["slot_index"] = slot.slot_index
    out.update(copy.deepcopy(slot.extra))
    return out


def node_to_dict(node: Node) -> Dict[str, Any]:
    extra = dict(node.extra)
    present = extra.pop("__slots_present__", ["inputs", "outputs", "widgets_values"])
    out: Dict[str, Any] = {"id": node.id, "type": node.type, "mode": int(node.mode)}
    out.update(copy.deepcopy(extra))
    if node.inputs or "inputs" in present:
        out["inputs"] = [_dump_input(s) for s in node.inputs]
    if node.outputs or "outputs" in present:
        out["outputs"] = [_dump_output(s) for s in node.outputs]
    if node.widgets or "widgets_values" in present:
        out["widgets_values"] = [copy.deepcopy(w.value) for w in node.widgets]
    return out


def dump_graph_json(graph: Graph) -> Dict[str, Any]:
    """Serialize a Graph back to its runtime-form document."""
    out: Dict[str, Any] = {
        "last_node_id": graph.last_node_id,
        "last_link_id": graph.last_link_id,
        "nodes": [node_to_dict(n) for n in graph.nodes],
        "links": [link.to_list() for link in graph.links.values()],
        "groups": copy.deepcopy(graph.groups),
        "extra": copy.deepcopy(graph.extra),
        "version": graph.version,
    }
    out.update(copy.deepcopy(graph.meta))
    return out
