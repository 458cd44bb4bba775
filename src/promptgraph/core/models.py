"""promptgraph.core.models

Slot/link model shared by every compiler stage.

The model mirrors the serialized LiteGraph workflow document closely enough to
round-trip it: unknown node and document fields are carried in `extra` / `meta`
dicts and written back unchanged.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from .config import FLOW_TYPE

NodeId = Union[int, str]
LinkId = Union[int, str]


class NodeMode(IntEnum):
    """Stored execution mode of a node (LiteGraph integer codes)."""

    NORMAL = 0
    ON_EVENT = 1
    MUTED = 2
    ON_TRIGGER = 3
    BYPASSED = 4

    @classmethod
    def coerce(cls, value: Any) -> "NodeMode":
        if isinstance(value, NodeMode):
            return value
        try:
            return cls(int(value))
        except (TypeError, ValueError):
            return cls.NORMAL


class Participation(str, Enum):
    """How a node takes part in a compile (decided per variant, never by probing)."""

    NORMAL = "normal"
    MUTED = "muted"
    BYPASSED = "bypassed"
    VIRTUAL = "virtual"


@dataclass
class InputSlot:
    name: str
    type: str
    link: Optional[LinkId] = None
    # Set when the slot is a widget converted to an input.
    widget_name: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_flow(self) -> bool:
        return self.type == FLOW_TYPE


@dataclass
class OutputSlot:
    name: str
    type: str
    links: List[LinkId] = field(default_factory=list)
    slot_index: Optional[int] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_flow(self) -> bool:
        return self.type == FLOW_TYPE


@dataclass
class Widget:
    name: str
    value: Any = None
    # Widgets with serialize=False (e.g. control_after_generate) never reach the engine.
    serialize: bool = True
    options: Dict[str, Any] = field(default_factory=dict)


@dataclass
class Link:
    id: LinkId
    origin_id: NodeId
    origin_slot: int
    target_id: NodeId
    target_slot: int
    type: str = "*"

    @property
    def is_flow(self) -> bool:
        return self.type == FLOW_TYPE

    def to_list(self) -> List[Any]:
        return [self.id, self.origin_id, self.origin_slot, self.target_id, self.target_slot, self.type]

    @classmethod
    def from_list(cls, raw: List[Any]) -> "Link":
        if not isinstance(raw, (list, tuple)) or len(raw) < 5:
            raise ValueError(f"Link must be a list of at least 5 items, got {raw!r}")
        link_type = raw[5] if len(raw) > 5 and raw[5] is not None else "*"
        return cls(
            id=raw[0],
            origin_id=raw[1],
            origin_slot=int(raw[2]),
            target_id=raw[3],
            target_slot=int(raw[4]),
            type=str(link_type),
        )


@dataclass
class Node:
    id: NodeId
    type: str
    mode: NodeMode = NodeMode.NORMAL
    inputs: List[InputSlot] = field(default_factory=list)
    outputs: List[OutputSlot] = field(default_factory=list)
    widgets: List[Widget] = field(default_factory=list)
    # Editor-only properties (pos, size, flags, order, properties, ...).
    extra: Dict[str, Any] = field(default_factory=dict)

    def flow_input_count(self) -> int:
        return sum(1 for slot in self.inputs if slot.is_flow)

    def flow_output_count(self) -> int:
        return sum(1 for slot in self.outputs if slot.is_flow)

    def get_widget(self, name: str) -> Optional[Widget]:
        for widget in self.widgets:
            if widget.name == name:
                return widget
        return None

    def find_input(self, name: str) -> Optional[int]:
        for i, slot in enumerate(self.inputs):
            if slot.name == name:
                return i
        return None

    def input_link_id(self, slot: int) -> Optional[LinkId]:
        if 0 <= slot < len(self.inputs):
            return self.inputs[slot].link
        return None


@dataclass
class Graph:
    """An editable workflow graph (runtime form: FLOW slots materialized)."""

    nodes: List[Node] = field(default_factory=list)
    links: Dict[LinkId, Link] = field(default_factory=dict)
    extra: Dict[str, Any] = field(default_factory=dict)
    groups: List[Any] = field(default_factory=list)
    version: Any = 0.4
    last_node_id: int = 0
    last_link_id: int = 0
    # Unknown top-level document keys, written back verbatim.
    meta: Dict[str, Any] = field(default_factory=dict)

    _index: Dict[NodeId, Node] = field(default_factory=dict, init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        self._reindex()

    def _reindex(self) -> None:
        self._index = {n.id: n for n in self.nodes}

    def get_node(self, node_id: NodeId) -> Optional[Node]:
        node = self._index.get(node_id)
        if node is None or len(self._index) != len(self.nodes):
            self._reindex()
            node = self._index.get(node_id)
        return node

    def get_link(self, link_id: Optional[LinkId]) -> Optional[Link]:
        if link_id is None:
            return None
        return self.links.get(link_id)

    def node_ids(self) -> List[NodeId]:
        return [n.id for n in self.nodes]

    def node_map(self) -> Dict[NodeId, Node]:
        """Arena view `node id -> Node` (a fresh dict; the nodes are shared)."""
        self._reindex()
        return dict(self._index)

    def add_node(self, node: Node) -> Node:
        if self.get_node(node.id) is not None:
            raise ValueError(f"Duplicate node id {node.id!r}")
        self.nodes.append(node)
        self._index[node.id] = node
        if isinstance(node.id, int) and node.id > self.last_node_id:
            self.last_node_id = node.id
        return node

    def remove_node(self, node_id: NodeId) -> Optional[Node]:
        """Remove a node and every link attached to it."""
        node = self.get_node(node_id)
        if node is None:
            return None
        attached = [
            link.id for link in self.links.values() if link.origin_id == node_id or link.target_id == node_id
        ]
        for link_id in attached:
            self.remove_link(link_id)
        self.nodes = [n for n in self.nodes if n.id != node_id]
        self._index.pop(node_id, None)
        return node

    def next_link_id(self) -> int:
        self.last_link_id = int(self.last_link_id) + 1
        return self.last_link_id

    def add_link(
        self,
        origin_id: NodeId,
        origin_slot: int,
        target_id: NodeId,
        target_slot: int,
        link_type: str = "*",
        *,
        link_id: Optional[LinkId] = None,
    ) -> Link:
        """Connect two slots, replacing whatever was linked into the target slot."""
        origin = self.get_node(origin_id)
        target = self.get_node(target_id)
        if origin is None or target is None:
            raise ValueError(f"Cannot link missing nodes {origin_id!r} -> {target_id!r}")
        if not (0 <= origin_slot < len(origin.outputs)) or not (0 <= target_slot < len(target.inputs)):
            raise ValueError(
                f"Invalid slots for link {origin_id!r}[{origin_slot}] -> {target_id!r}[{target_slot}]"
            )
        previous = target.inputs[target_slot].link
        if previous is not None:
            self.remove_link(previous)
        lid = link_id if link_id is not None else self.next_link_id()
        link = Link(id=lid, origin_id=origin_id, origin_slot=origin_slot, target_id=target_id, target_slot=target_slot, type=link_type)
        self.links[lid] = link
        origin.outputs[origin_slot].links.append(lid)
        target.inputs[target_slot].link = lid
        return link

    def remove_link(self, link_id: LinkId) -> Optional[Link]:
        link = self.links.pop(link_id, None)
        if link is None:
            return None
        origin = self.get_node(link.origin_id)
        if origin is not None and 0 <= link.origin_slot < len(origin.outputs):
            origin.outputs[link.origin_slot].links = [
                lid for lid in origin.outputs[link.origin_slot].links if lid != link_id
            ]
        target = self.get_node(link.target_id)
        if target is not None and 0 <= link.target_slot < len(target.inputs):
            if target.inputs[link.target_slot].link == link_id:
                target.inputs[link.target_slot].link = None
        return link

    def outgoing_links(self, node_id: NodeId) -> List[Link]:
        node = self.get_node(node_id)
        if node is None:
            return []
        out: List[Link] = []
        for slot in node.outputs:
            for lid in slot.links:
                link = self.links.get(lid)
                if link is not None:
                    out.append(link)
        return out

    def clone(self) -> "Graph":
        return copy.deepcopy(self)


@dataclass
class GroupSlotMap:
    """Slot bookkeeping of a group node definition.

    - inputs[inner_index][inner_slot] -> external input index
    - widgets[inner_index][inner_widget_name] -> group widget name
    - outputs[external_output_index] -> (inner_index, inner_slot)
    """

    inputs: Dict[int, Dict[int, int]] = field(default_factory=dict)
    widgets: Dict[int, Dict[str, str]] = field(default_factory=dict)
    outputs: Dict[int, Tuple[int, int]] = field(default_factory=dict)


@dataclass
class GroupNodeDefinition:
    """An embedded group (macro) node: its clipboard config plus derived slot maps.

    `inner_nodes` are serialized node dicts; `inner_links` use inner node indices:
    `[origin_index, origin_slot, target_index, target_slot, ...]`.
    """

    name: str
    inner_nodes: List[Dict[str, Any]] = field(default_factory=list)
    inner_links: List[List[Any]] = field(default_factory=list)
    slots: GroupSlotMap = field(default_factory=GroupSlotMap)

    def config(self) -> Dict[str, Any]:
        return {"nodes": copy.deepcopy(self.inner_nodes), "links": copy.deepcopy(self.inner_links)}

    def links_to(self) -> Dict[int, Dict[int, List[Any]]]:
        return index_inner_links(self.inner_links)[0]

    def links_from(self) -> Dict[int, Dict[int, List[Any]]]:
        return index_inner_links(self.inner_links)[1]


def index_inner_links(links: Iterable[Any]) -> Tuple[Dict[int, Dict[int, List[Any]]], Dict[int, Dict[int, List[Any]]]]:
    """Index clipboard-form links as (links_to, links_from) keyed by inner node index and slot."""
    links_to: Dict[int, Dict[int, List[Any]]] = {}
    links_from: Dict[int, Dict[int, List[Any]]] = {}
    for link in links:
        if not isinstance(link, (list, tuple)) or len(link) < 4:
            continue
        origin_index, origin_slot, target_index, target_slot = link[0], link[1], link[2], link[3]
        # Links from outside the copied selection have no origin index.
        if origin_index is None:
            continue
        links_from.setdefault(int(origin_index), {})[int(origin_slot)] = list(link)
        links_to.setdefault(int(target_index), {})[int(target_slot)] = list(link)
    return links_to, links_from