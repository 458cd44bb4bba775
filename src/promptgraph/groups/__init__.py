"""Group (macro) nodes: definition building and compile-time expansion."""

from .definition import build_group_node_def, register_group_nodes
from .expander import GroupExpansion, derive_group_config, expand_group_nodes, resolve_passthrough

__all__ = [
    "GroupExpansion",
    "build_group_node_def",
    "derive_group_config",
    "expand_group_nodes",
    "register_group_nodes",
    "resolve_passthrough",
]
