"""promptgraph.compiler.resolver

Effective producer lookup for an input slot.

A link may originate from a node that does not take part in the instruction set:
virtual nodes (reroutes, primitives) and bypassed nodes forward what feeds them,
muted nodes forward nothing. Resolution walks upstream until it reaches a NORMAL
producer, and degrades to "unconnected" (None) instead of raising.
"""

from __future__ import annotations

from typing import Any, Callable, Mapping, Optional, Tuple

from ..core.models import Link, Node, NodeId, Participation

Producer = Tuple[NodeId, int]
Classifier = Callable[[Node], Participation]


def _input_link(node: Node, slot: int, links: Mapping[Any, Link]) -> Optional[Link]:
    if not (0 <= slot < len(node.inputs)):
        return None
    link_id = node.inputs[slot].link
    return links.get(link_id) if link_id is not None else None


def _bypass_link(parent: Node, origin_slot: int, wanted_type: str, links: Mapping[Any, Link]) -> Optional[Link]:
    # The input at the same index as the consumed output is tried first.
    candidates = [origin_slot] + list(range(len(parent.inputs)))
    for index in candidates:
        if not (0 <= index < len(parent.inputs)):
            continue
        if parent.inputs[index].type == wanted_type:
            return _input_link(parent, index, links)
    return None


def resolve_input(
    nodes: Mapping[NodeId, Node],
    links: Mapping[Any, Link],
    node_id: NodeId,
    slot: int,
    *,
    classify: Classifier,
) -> Optional[Producer]:
    """Return the (producer id, producer output slot) feeding `node_id`'s input `slot`.

    Rules, applied while walking upstream:
    - NORMAL producer: done.
    - VIRTUAL: follow the node's input at the consumed output's index.
    - BYPASSED: follow the first input (consumed index first, then in order) whose type
      equals the consumer slot type.
    - MUTED: unconnected.

    Returns None when there is no candidate, when the walk revisits a node, or when the
    document is inconsistent (missing nodes, slot indices out of range).
    """
    node = nodes.get(node_id)
    if node is None or not (0 <= slot < len(node.inputs)):
        return None
    wanted_type = node.inputs[slot].type
    link = _input_link(node, slot, links)

    visited: set = set()
    while link is not None:
        parent = nodes.get(link.origin_id)
        if parent is None or parent.id in visited:
            return None
        visited.add(parent.id)

        participation = classify(parent)
        if participation is Participation.NORMAL:
            if not (0 <= link.origin_slot < len(parent.outputs)):
                return None
            return (parent.id, link.origin_slot)
        if participation is Participation.MUTED:
            return None
        if participation is Participation.VIRTUAL:
            link = _input_link(parent, link.origin_slot, links)
        else:
            link = _bypass_link(parent, link.origin_slot, wanted_type, links)
    return None
