"""promptgraph.core.config

Compiler configuration.

This module provides a CompilerConfig dataclass that centralizes the small static
tables the compiler depends on (legacy node type renames, editor-only node types,
FLOW slot naming, widget type tags). A config is immutable and is carried by the
`CompilerContext` of each compile.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from typing import Dict, FrozenSet, Tuple

FLOW_TYPE = "FLOW"

# Nodes that used to exist under another name (or a typo) in stored workflows.
DEFAULT_NODE_TYPE_RENAMES: Dict[str, str] = {
    "T2IAdapterLoader": "ControlNetLoader",
    "ConditioningAverage ": "ConditioningAverage",
    "SDV_img2vid_Conditioning": "SVD_img2vid_Conditioning",
}

DEFAULT_MAX_GROUP_DEPTH = 16


@dataclass(frozen=True)
class CompilerConfig:
    """Configuration for the workflow graph compiler.

    Attributes:
        node_type_renames: Legacy type name -> current type name, applied before type lookup.
        reroute_type: Type name of the pass-through (reroute) node.
        virtual_node_types: Editor-only node types that are never sent to the engine.
        flow_type: Slot type tag for sequencing slots.
        flow_input_name: Name of the FLOW input slot synthesized by the migrator.
        flow_output_name: Name of the FLOW output slot synthesized by the migrator.
        widget_types: Input type tags rendered as widgets (in addition to COMBO lists).
        seed_widget_names: Inputs that get a `control_after_generate` companion widget.
        group_node_prefix: Registry prefix for embedded group node definitions.
        max_group_depth: Maximum nesting depth of group-node expansion.

    Example:
        >>> config = CompilerConfig(max_group_depth=4)
        >>> config.rename_node_type("T2IAdapterLoader")
        'ControlNetLoader'
    """

    node_type_renames: Dict[str, str] = field(default_factory=lambda: dict(DEFAULT_NODE_TYPE_RENAMES))
    reroute_type: str = "Reroute"
    virtual_node_types: FrozenSet[str] = frozenset({"Reroute", "PrimitiveNode", "Note", "MarkdownNote"})

    # Sequencing slots
    flow_type: str = FLOW_TYPE
    flow_input_name: str = "FROM"
    flow_output_name: str = "TO"

    # Widgets
    widget_types: Tuple[str, ...] = ("INT", "FLOAT", "STRING", "BOOLEAN")
    seed_widget_names: Tuple[str, ...] = ("seed", "noise_seed")

    # Group nodes
    group_node_prefix: str = "workflow/"
    max_group_depth: int = DEFAULT_MAX_GROUP_DEPTH

    def rename_node_type(self, node_type: str) -> str:
        return self.node_type_renames.get(node_type, node_type)

    def is_virtual_type(self, node_type: str) -> bool:
        return node_type in self.virtual_node_types

    def is_reroute_type(self, node_type: str) -> bool:
        return node_type == self.reroute_type

    def group_type_name(self, group_name: str) -> str:
        return f"{self.group_node_prefix}{group_name}"

    @classmethod
    def from_env(cls) -> "CompilerConfig":
        """Build a config, reading overrides from the environment.

        Supported variables:
        - `PROMPTGRAPH_MAX_GROUP_DEPTH`: integer nesting limit for group expansion.
        """
        config = cls()
        raw = os.getenv("PROMPTGRAPH_MAX_GROUP_DEPTH")
        if isinstance(raw, str) and raw.strip():
            try:
                depth = int(raw.strip())
            except ValueError:
                depth = DEFAULT_MAX_GROUP_DEPTH
            if depth > 0:
                config = replace(config, max_group_depth=depth)
        return config
