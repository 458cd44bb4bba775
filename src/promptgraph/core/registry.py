"""promptgraph.core.registry

Operation registry: per operation type, its typed inputs, outputs and display metadata.

The base registry is supplied by the execution engine (object-info JSON) and is
treated as read-only. Each compile layers an overlay on top of it for the group
node definitions embedded in the workflow document.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple

from .models import GroupNodeDefinition

COMBO = "COMBO"
CONTROL_AFTER_GENERATE = "control_after_generate"

DEFAULT_WIDGET_TYPES: Tuple[str, ...] = ("INT", "FLOAT", "STRING", "BOOLEAN")


@dataclass(frozen=True)
class OperationDef:
    """Definition of one operation type (one entry of the engine's object info)."""

    name: str
    display_name: str = ""
    category: str = ""
    required: Dict[str, List[Any]] = field(default_factory=dict)
    optional: Dict[str, List[Any]] = field(default_factory=dict)
    output: List[Any] = field(default_factory=list)
    output_name: List[Optional[str]] = field(default_factory=list)
    output_is_list: List[bool] = field(default_factory=list)
    flow_inputs: List[Tuple[str, str]] = field(default_factory=list)
    flow_outputs: List[Tuple[str, str]] = field(default_factory=list)
    # Set for definitions synthesized from an embedded group node.
    group: Optional[GroupNodeDefinition] = None

    @property
    def is_group(self) -> bool:
        return self.group is not None

    def all_inputs(self) -> Dict[str, List[Any]]:
        """Required then optional inputs, in declaration order."""
        merged: Dict[str, List[Any]] = dict(self.required)
        merged.update(self.optional)
        return merged

    def output_label(self, index: int) -> str:
        name = self.output_name[index] if index < len(self.output_name) else None
        if name:
            return str(name)
        out = self.output[index]
        return COMBO if isinstance(out, list) else str(out)

    def output_type(self, index: int) -> str:
        out = self.output[index]
        return COMBO if isinstance(out, list) else str(out)


def get_widget_type(
    input_spec: Sequence[Any], input_name: str, widget_types: Iterable[str] = DEFAULT_WIDGET_TYPES
) -> Optional[str]:
    """Return the widget type for an input spec, or None when the input is a link slot."""
    if not input_spec:
        return None
    kind = input_spec[0]
    if isinstance(kind, list):
        return COMBO
    kinds = set(widget_types)
    if f"{kind}:{input_name}" in kinds:
        return f"{kind}:{input_name}"
    if kind in kinds:
        return str(kind)
    return None


def input_options(input_spec: Sequence[Any]) -> Dict[str, Any]:
    if len(input_spec) > 1 and isinstance(input_spec[1], dict):
        return dict(input_spec[1])
    return {}


def has_control_after_generate(input_spec: Sequence[Any], input_name: str, seed_names: Iterable[str]) -> bool:
    if input_name in set(seed_names):
        return True
    return bool(input_options(input_spec).get(CONTROL_AFTER_GENERATE))


def _pairs(raw: Any) -> List[Tuple[str, str]]:
    out: List[Tuple[str, str]] = []
    if not isinstance(raw, list):
        return out
    for item in raw:
        if isinstance(item, (list, tuple)) and len(item) >= 2:
            out.append((str(item[0]), str(item[1])))
    return out


def operation_def_from_dict(name: str, raw: Mapping[str, Any]) -> OperationDef:
    """Parse one object-info entry."""
    inputs = raw.get("input") if isinstance(raw.get("input"), dict) else {}
    required = inputs.get("required") if isinstance(inputs.get("required"), dict) else {}
    optional = inputs.get("optional") if isinstance(inputs.get("optional"), dict) else {}
    output = list(raw.get("output") or [])
    output_name = list(raw.get("output_name") or [])
    output_is_list = list(raw.get("output_is_list") or [])
    while len(output_is_list) < len(output):
        output_is_list.append(False)
    return OperationDef(
        name=str(raw.get("name") or name),
        display_name=str(raw.get("display_name") or raw.get("name") or name),
        category=str(raw.get("category") or ""),
        required={str(k): list(v) if isinstance(v, (list, tuple)) else [v] for k, v in required.items()},
        optional={str(k): list(v) if isinstance(v, (list, tuple)) else [v] for k, v in optional.items()},
        output=output,
        output_name=output_name,
        output_is_list=[bool(x) for x in output_is_list],
        flow_inputs=_pairs(raw.get("flow_inputs")),
        flow_outputs=_pairs(raw.get("flow_outputs")),
    )


class OperationRegistry:
    """Name -> OperationDef lookup with optional parent (overlay) chaining."""

    def __init__(
        self,
        defs: Optional[Mapping[str, OperationDef]] = None,
        *,
        parent: Optional["OperationRegistry"] = None,
    ):
        self._defs: Dict[str, OperationDef] = dict(defs or {})
        self._parent = parent

    @classmethod
    def from_object_info(cls, raw: Mapping[str, Any]) -> "OperationRegistry":
        if not isinstance(raw, Mapping):
            raise TypeError("Object info must be a JSON object (dict)")
        defs: Dict[str, OperationDef] = {}
        for name, entry in raw.items():
            if isinstance(entry, Mapping):
                defs[str(name)] = operation_def_from_dict(str(name), entry)
        return cls(defs)

    def overlay(self) -> "OperationRegistry":
        """A child registry: registrations land in the child, lookups fall through."""
        return OperationRegistry(parent=self)

    def register(self, definition: OperationDef, *, name: Optional[str] = None) -> None:
        self._defs[name or definition.name] = definition

    def get(self, name: str) -> Optional[OperationDef]:
        found = self._defs.get(name)
        if found is None and self._parent is not None:
            return self._parent.get(name)
        return found

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self.get(name) is not None

    def names(self) -> List[str]:
        seen: Dict[str, None] = {}
        if self._parent is not None:
            for n in self._parent.names():
                seen[n] = None
        for n in self._defs:
            seen[n] = None
        return list(seen)

    def __iter__(self) -> Iterator[str]:
        return iter(self.names())

    def __len__(self) -> int:
        return len(self.names())
