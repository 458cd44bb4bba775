"""Built-in handlers for editor-only (virtual) node types.

Virtual nodes never appear in the instruction map. Some of them act on the compile
graph before serialization (a PrimitiveNode pushes its value into the widgets it
drives); the rest are inert.
"""

from __future__ import annotations

import copy
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional

from ..core.models import Graph, Node

if TYPE_CHECKING:
    from .pipeline import CompilerContext

VirtualHandler = Callable[[Graph, Node, "CompilerContext"], None]


def _noop(graph: Graph, node: Node, ctx: "CompilerContext") -> None:
    return None


def _primitive_apply(graph: Graph, node: Node, ctx: "CompilerContext") -> None:
    """Write the primitive's value into every widget input it is linked to."""
    if not node.widgets:
        return
    value = node.widgets[0].value

    pending: List[Node] = [node]
    walked = {node.id}
    while pending:
        current = pending.pop(0)
        for link in graph.outgoing_links(current.id):
            if link.is_flow:
                continue
            target = graph.get_node(link.target_id)
            if target is None:
                continue
            if ctx.config.is_reroute_type(target.type):
                if target.id not in walked:
                    walked.add(target.id)
                    pending.append(target)
                continue
            if not (0 <= link.target_slot < len(target.inputs)):
                continue
            slot = target.inputs[link.target_slot]
            widget = target.get_widget(slot.widget_name or slot.name)
            if widget is not None:
                widget.value = copy.deepcopy(value)


BUILTIN_HANDLERS: Dict[str, VirtualHandler] = {
    "Reroute": _noop,
    "PrimitiveNode": _primitive_apply,
    "Note": _noop,
    "MarkdownNote": _noop,
}


def get_virtual_handler(node_type: str) -> Optional[VirtualHandler]:
    return BUILTIN_HANDLERS.get(node_type)


def apply_virtual_nodes(graph: Graph, order: List[Any], ctx: "CompilerContext") -> None:
    """Run the side effects of virtual nodes (in execution order) on the compile graph."""
    for node_id in order:
        node = graph.get_node(node_id)
        if node is None or not ctx.config.is_virtual_type(node.type):
            continue
        handler = get_virtual_handler(node.type)
        if handler is not None:
            handler(graph, node, ctx)
