"""Workflow document codec."""

from .models import dump_graph_json, load_graph_json, node_from_dict, node_to_dict, sanitize_node_type

__all__ = [
    "dump_graph_json",
    "load_graph_json",
    "node_from_dict",
    "node_to_dict",
    "sanitize_node_type",
]
