"""promptgraph.compiler.serializer

Instruction map serialization.

The instruction map ("prompt") sent to the engine is keyed by node id (string):

    {"<id>": {"class_type": str,
              "inputs": {name: widget value | [producer id, producer slot]},
              "is_input_linked": {name: bool}}}

Producer slots are counted without FLOW outputs, i.e. as the engine numbers outputs.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from ..core.models import Graph, NodeId, Participation
from ..logging import get_logger
from ..migration.flow_control import FlowTable
from .resolver import resolve_input

if TYPE_CHECKING:
    from .pipeline import CompilerContext

logger = get_logger(__name__)

InstructionMap = Dict[str, Dict[str, Any]]


@dataclass
class CompiledPrompt:
    """Result of one compile: instruction map, flow table and compact snapshot."""

    output: InstructionMap = field(default_factory=dict)
    flows: FlowTable = field(default_factory=dict)
    workflow: Dict[str, Any] = field(default_factory=dict)
    # Node types the registry does not know, group internals included.
    missing_types: List[str] = field(default_factory=list)

    def to_request_body(self, *, number: int = 0, client_id: Optional[str] = None) -> Dict[str, Any]:
        """Engine submission body (`number == -1` queues at the front)."""
        body: Dict[str, Any] = {
            "prompt": self.output,
            "flows": self.flows,
            "extra_data": {"extra_pnginfo": {"workflow": self.workflow}},
        }
        if client_id is not None:
            body["client_id"] = client_id
        if number == -1:
            body["front"] = True
        elif number != 0:
            body["number"] = number
        return body


def serialize_instructions(graph: Graph, order: List[NodeId], ctx: "CompilerContext") -> InstructionMap:
    """Emit one instruction per NORMAL node, in execution order."""
    nodes = graph.node_map()
    output: InstructionMap = {}
    for node_id in order:
        node = nodes.get(node_id)
        if node is None or ctx.classify(node) is not Participation.NORMAL:
            continue

        inputs: Dict[str, Any] = {}
        linked: Dict[str, bool] = {}
        for widget in node.widgets:
            if not widget.serialize:
                continue
            inputs[widget.name] = widget.value
            linked[widget.name] = False

        for slot_index, slot in enumerate(node.inputs):
            if slot.is_flow or slot.link is None:
                continue
            producer = resolve_input(nodes, graph.links, node.id, slot_index, classify=ctx.classify)
            if producer is None:
                continue
            producer_id, producer_slot = producer
            producer_node = nodes[producer_id]
            inputs[slot.name] = [str(producer_id), producer_slot - producer_node.flow_output_count()]
            linked[slot.name] = True

        output[str(node.id)] = {"inputs": inputs, "is_input_linked": linked, "class_type": node.type}

    prune_dangling_inputs(output)
    return output


def prune_dangling_inputs(output: InstructionMap) -> InstructionMap:
    """Drop linked inputs whose producer has no instruction of its own (in place)."""
    for node_id, instruction in output.items():
        inputs = instruction["inputs"]
        linked = instruction["is_input_linked"]
        for name in [n for n, is_linked in linked.items() if is_linked]:
            value = inputs.get(name)
            if isinstance(value, list) and len(value) == 2 and str(value[0]) not in output:
                logger.debug("Pruning input linked to a skipped node", node_id=node_id, input=name)
                del inputs[name]
                del linked[name]
    return output
