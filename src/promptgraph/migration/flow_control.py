"""promptgraph.migration.flow_control

Compact <-> runtime codec for sequencing (FLOW) slots, plus flow synthesis for
legacy documents.

Stored documents keep FLOW slots in side lists (`flow_inputs` / `flow_outputs` per
node, `flow_links` at the top level). The runtime form puts them in front of the
ordinary input/output lists and stores FLOW links with the data links (typed `FLOW`).
Every slot index of a data link is shifted by the number of FLOW slots ahead of it.

All functions take a document dict and return a new one; inputs are never mutated.
"""

from __future__ import annotations

import copy
from collections import deque
from typing import Any, Deque, Dict, Iterable, List, Optional, Tuple

from ..core.config import CompilerConfig
from ..core.errors import WorkflowDocumentError
from ..logging import get_logger

logger = get_logger(__name__)

FlowTable = Dict[str, Optional[List[Optional[List[Any]]]]]


def _nodes(document: Dict[str, Any]) -> List[Dict[str, Any]]:
    nodes = document.get("nodes")
    if nodes is None:
        return []
    if not isinstance(nodes, list):
        raise WorkflowDocumentError("Workflow 'nodes' must be a list", location="nodes")
    for i, node in enumerate(nodes):
        if not isinstance(node, dict) or "id" not in node:
            raise WorkflowDocumentError("Node must be an object with an 'id'", location=f"nodes[{i}]")
    return nodes


def _link_map(document: Dict[str, Any]) -> Dict[Any, List[Any]]:
    links = document.get("links") or []
    if not isinstance(links, list):
        raise WorkflowDocumentError("Workflow 'links' must be a list", location="links")
    out: Dict[Any, List[Any]] = {}
    for i, link in enumerate(links):
        if link is None:
            continue
        if not isinstance(link, list) or len(link) < 5:
            raise WorkflowDocumentError("Link must be a list of at least 5 items", location=f"links[{i}]")
        out[link[0]] = link
    return out


def _is_flow_slot(slot: Any, flow_type: str) -> bool:
    return isinstance(slot, dict) and slot.get("type") == flow_type


def has_materialized_flow(document: Dict[str, Any], *, config: Optional[CompilerConfig] = None) -> bool:
    """True when the document already carries FLOW slots or FLOW links in runtime form."""
    flow_type = (config or CompilerConfig()).flow_type
    for link in document.get("links") or []:
        if isinstance(link, list) and len(link) > 5 and link[5] == flow_type:
            return True
    for node in document.get("nodes") or []:
        if not isinstance(node, dict):
            continue
        for slot in (node.get("inputs") or []) + (node.get("outputs") or []):
            if _is_flow_slot(slot, flow_type):
                return True
    return False


def compute_flow_order(document: Dict[str, Any], *, config: Optional[CompilerConfig] = None) -> List[Any]:
    """Sequence the non-reroute nodes of a document along its data links.

    Kahn-style walk with a FIFO work list seeded in document order. Reroute chains are
    walked through (they never enter the order). Nodes whose in-degree never reaches 0
    (cycles, or inputs fed through dangling reroutes) are left out and logged.
    """
    config = config or CompilerConfig()
    nodes = _nodes(document)
    links = _link_map(document)
    by_id = {n["id"]: n for n in nodes}

    in_degree: Dict[Any, int] = {}
    for node in nodes:
        if config.is_reroute_type(node.get("type")):
            continue
        count = 0
        for slot in node.get("inputs") or []:
            if isinstance(slot, dict) and slot.get("link") is not None and not _is_flow_slot(slot, config.flow_type):
                count += 1
        in_degree[node["id"]] = count

    order: List[Any] = []
    queue: Deque[Any] = deque(nid for nid, degree in in_degree.items() if degree == 0)

    def visit_outputs(node: Dict[str, Any], source_id: Any, walked: set) -> None:
        for slot in node.get("outputs") or []:
            if not isinstance(slot, dict) or _is_flow_slot(slot, config.flow_type):
                continue
            for link_id in slot.get("links") or []:
                link = links.get(link_id)
                if link is None:
                    continue
                target = by_id.get(link[3])
                if target is None:
                    continue
                if config.is_reroute_type(target.get("type")):
                    if target["id"] not in walked:
                        walked.add(target["id"])
                        visit_outputs(target, source_id, walked)
                    continue
                target_id = target["id"]
                if target_id == source_id or target_id not in in_degree:
                    continue
                in_degree[target_id] -= 1
                if in_degree[target_id] == 0:
                    queue.append(target_id)

    while queue:
        node_id = queue.popleft()
        order.append(node_id)
        visit_outputs(by_id[node_id], node_id, set())

    sequenced = set(order)
    unsequenced = [nid for nid in in_degree if nid not in sequenced]
    if unsequenced:
        logger.warning("Nodes left out of the synthesized flow order", node_ids=unsequenced)
    return order


def convert_legacy_workflow(document: Dict[str, Any], *, config: Optional[CompilerConfig] = None) -> Dict[str, Any]:
    """Give a legacy (flow-less) document explicit sequencing in compact form."""
    config = config or CompilerConfig()
    doc = copy.deepcopy(document)
    if doc.get("support_flow_control"):
        return doc
    if has_materialized_flow(doc, config=config):
        doc["support_flow_control"] = True
        return doc

    nodes = _nodes(doc)
    by_id = {n["id"]: n for n in nodes}
    for node in nodes:
        if config.is_reroute_type(node.get("type")):
            node["flow_inputs"] = []
            node["flow_outputs"] = []
        else:
            node["flow_inputs"] = [{"name": config.flow_input_name, "links": None}]
            node["flow_outputs"] = [{"name": config.flow_output_name, "link": None}]

    order = compute_flow_order(doc, config=config)
    flow_links: List[List[Any]] = []
    for link_id, (from_id, to_id) in enumerate(zip(order, order[1:])):
        flow_links.append([link_id, from_id, 0, to_id, 0])
        by_id[from_id]["flow_outputs"][0]["link"] = link_id
        by_id[to_id]["flow_inputs"][0]["links"] = [link_id]

    doc["flow_links"] = flow_links
    doc["support_flow_control"] = True
    return doc


def _prepend_flow_slots(
    node: Dict[str, Any], links: Dict[Any, List[Any]], config: CompilerConfig, location: str
) -> None:
    flow_inputs = node.pop("flow_inputs", None) or []
    flow_outputs = node.pop("flow_outputs", None) or []
    if not isinstance(flow_inputs, list) or not isinstance(flow_outputs, list):
        raise WorkflowDocumentError("flow_inputs/flow_outputs must be lists", location=location)

    if flow_inputs:
        shift = len(flow_inputs)
        inputs = node.get("inputs") or []
        for slot in inputs:
            link = links.get(slot.get("link")) if isinstance(slot, dict) else None
            if link is not None:
                link[4] += shift
        head = []
        for entry in flow_inputs:
            slot = {k: copy.deepcopy(v) for k, v in entry.items() if k != "links"}
            slot["type"] = config.flow_type
            slot["link"] = None
            head.append(slot)
        node["inputs"] = head + inputs

    if flow_outputs:
        shift = len(flow_outputs)
        outputs = node.get("outputs") or []
        for slot in outputs:
            if not isinstance(slot, dict):
                continue
            for link_id in slot.get("links") or []:
                link = links.get(link_id)
                if link is not None:
                    link[2] += shift
            if isinstance(slot.get("slot_index"), int):
                slot["slot_index"] += shift
        head = []
        for entry in flow_outputs:
            slot = {k: copy.deepcopy(v) for k, v in entry.items() if k != "link"}
            slot["type"] = config.flow_type
            slot["links"] = []
            head.append(slot)
        node["outputs"] = head + outputs


def expand_workflow(document: Dict[str, Any], *, config: Optional[CompilerConfig] = None) -> Dict[str, Any]:
    """Compact -> runtime form: materialize FLOW slots and FLOW links."""
    config = config or CompilerConfig()
    doc = copy.deepcopy(document)
    nodes = _nodes(doc)
    links = _link_map(doc)
    by_id = {n["id"]: n for n in nodes}

    for i, node in enumerate(nodes):
        _prepend_flow_slots(node, links, config, f"nodes[{i}]")

    flow_links = doc.pop("flow_links", None) or []
    if not isinstance(flow_links, list):
        raise WorkflowDocumentError("'flow_links' must be a list", location="flow_links")

    last_link_id = doc.get("last_link_id")
    if not isinstance(last_link_id, int):
        last_link_id = max([lid for lid in links if isinstance(lid, int)] or [0])
    materialized = doc.setdefault("links", [])

    for i, entry in enumerate(flow_links):
        location = f"flow_links[{i}]"
        if not isinstance(entry, list) or len(entry) < 5:
            raise WorkflowDocumentError("Flow link must be a list of 5 items", location=location)
        origin = by_id.get(entry[1])
        target = by_id.get(entry[3])
        if origin is None or target is None:
            raise WorkflowDocumentError("Flow link references a missing node", location=location)
        origin_slot, target_slot = int(entry[2]), int(entry[4])
        outputs = origin.get("outputs") or []
        inputs = target.get("inputs") or []
        if not (0 <= origin_slot < len(outputs) and _is_flow_slot(outputs[origin_slot], config.flow_type)):
            raise WorkflowDocumentError("Flow link origin is not a FLOW output", location=location)
        if not (0 <= target_slot < len(inputs) and _is_flow_slot(inputs[target_slot], config.flow_type)):
            raise WorkflowDocumentError("Flow link target is not a FLOW input", location=location)

        last_link_id += 1
        materialized.append([last_link_id, entry[1], origin_slot, entry[3], target_slot, config.flow_type])
        # A FLOW output carries at most one link.
        outputs[origin_slot]["links"] = [last_link_id]
        inputs[target_slot]["link"] = last_link_id

    doc["last_link_id"] = last_link_id
    return doc


def _strip_flow_slots(node: Dict[str, Any], links: Dict[Any, List[Any]], config: CompilerConfig) -> None:
    flow_inputs: List[Dict[str, Any]] = []
    kept_inputs: List[Any] = []
    for slot in node.get("inputs") or []:
        if _is_flow_slot(slot, config.flow_type):
            entry = {k: copy.deepcopy(v) for k, v in slot.items() if k not in ("type", "link")}
            entry["links"] = [slot["link"]] if slot.get("link") is not None else None
            flow_inputs.append(entry)
            continue
        link = links.get(slot.get("link")) if isinstance(slot, dict) else None
        if link is not None:
            link[4] -= len(flow_inputs)
        kept_inputs.append(slot)

    flow_outputs: List[Dict[str, Any]] = []
    kept_outputs: List[Any] = []
    for slot in node.get("outputs") or []:
        if _is_flow_slot(slot, config.flow_type):
            slot_links = slot.get("links") or []
            entry = {k: copy.deepcopy(v) for k, v in slot.items() if k not in ("type", "links", "slot_index")}
            entry["link"] = slot_links[0] if slot_links else None
            flow_outputs.append(entry)
            continue
        if isinstance(slot, dict):
            for link_id in slot.get("links") or []:
                link = links.get(link_id)
                if link is not None:
                    link[2] -= len(flow_outputs)
            if isinstance(slot.get("slot_index"), int):
                slot["slot_index"] -= len(flow_outputs)
        kept_outputs.append(slot)

    if "inputs" in node:
        node["inputs"] = kept_inputs
    if "outputs" in node:
        node["outputs"] = kept_outputs
    node["flow_inputs"] = flow_inputs
    node["flow_outputs"] = flow_outputs


def compact_workflow(
    document: Dict[str, Any], *, config: Optional[CompilerConfig] = None
) -> Tuple[Dict[str, Any], FlowTable]:
    """Runtime -> compact form. Returns (compact document, flow table)."""
    config = config or CompilerConfig()
    doc = copy.deepcopy(document)
    nodes = _nodes(doc)
    all_links = [link for link in (doc.get("links") or []) if link is not None]

    flow_links: List[List[Any]] = []
    data_links: List[List[Any]] = []
    for link in all_links:
        if isinstance(link, list) and len(link) > 5 and link[5] == config.flow_type:
            flow_links.append(link[:5])
        else:
            data_links.append(link)
    doc["links"] = data_links

    links = _link_map(doc)
    for node in nodes:
        _strip_flow_slots(node, links, config)

    doc["flow_links"] = flow_links
    doc["support_flow_control"] = True
    flows = flow_table_from_links(flow_links, [n["id"] for n in nodes])
    return doc, flows


def flow_table_from_links(flow_links: Iterable[List[Any]], node_ids: Iterable[Any]) -> FlowTable:
    """Per origin node, the FLOW successor of each FLOW output slot.

    Each entry is a list indexed by origin slot holding `[str(target_id), target_slot]`
    (or None for an unlinked slot). Nodes without FLOW links map to None. Links are
    considered in ascending (origin slot, link id) order; when two links claim the same
    origin slot the first one wins.
    """
    table: FlowTable = {str(nid): None for nid in node_ids}

    def sort_key(link: List[Any]) -> Tuple[int, int, str]:
        link_id = link[0]
        return (int(link[2]), 0 if isinstance(link_id, int) else 1, str(link_id).zfill(20))

    for link in sorted(flow_links, key=sort_key):
        origin_key = str(link[1])
        origin_slot = int(link[2])
        entry = table.get(origin_key) or []
        while len(entry) <= origin_slot:
            entry.append(None)
        if entry[origin_slot] is not None:
            logger.warning(
                "Ignoring extra FLOW link on an already linked output",
                link_id=link[0],
                origin_id=link[1],
                origin_slot=origin_slot,
            )
        else:
            entry[origin_slot] = [str(link[3]), int(link[4])]
        table[origin_key] = entry
    return table


def migrate_workflow(document: Dict[str, Any], *, config: Optional[CompilerConfig] = None) -> Dict[str, Any]:
    """Stored document (legacy or compact) -> runtime form."""
    return expand_workflow(convert_legacy_workflow(document, config=config), config=config)
