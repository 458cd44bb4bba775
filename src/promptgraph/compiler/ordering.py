"""promptgraph.compiler.ordering

Execution order planning over data and FLOW links.
"""

from __future__ import annotations

from collections import deque
from typing import Deque, Dict, List

from ..core.models import Graph, NodeId
from ..logging import get_logger

logger = get_logger(__name__)


def plan_execution_order(graph: Graph) -> List[NodeId]:
    """Topologically order every node of `graph` (Kahn).

    Ready nodes are taken in document order; successors become ready in the order their
    last incoming link is consumed. Nodes caught in a cycle are appended in document
    order after the acyclic part.
    """
    position: Dict[NodeId, int] = {n.id: i for i, n in enumerate(graph.nodes)}
    in_degree: Dict[NodeId, int] = {nid: 0 for nid in position}
    successors: Dict[NodeId, List[NodeId]] = {nid: [] for nid in position}

    for link in graph.links.values():
        if link.origin_id not in position or link.target_id not in position:
            continue
        if link.origin_id == link.target_id:
            continue
        successors[link.origin_id].append(link.target_id)
        in_degree[link.target_id] += 1

    for nid in successors:
        successors[nid].sort(key=position.__getitem__)

    ready: Deque[NodeId] = deque(nid for nid in position if in_degree[nid] == 0)
    order: List[NodeId] = []
    while ready:
        nid = ready.popleft()
        order.append(nid)
        for succ in successors[nid]:
            in_degree[succ] -= 1
            if in_degree[succ] == 0:
                ready.append(succ)

    if len(order) < len(position):
        placed = set(order)
        leftover = [n.id for n in graph.nodes if n.id not in placed]
        logger.warning("Cycle detected while ordering nodes", node_ids=leftover)
        order.extend(leftover)
    return order
