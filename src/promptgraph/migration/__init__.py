"""Workflow document migration (legacy flow synthesis and the FLOW slot codec)."""

from .flow_control import (
    FlowTable,
    compact_workflow,
    compute_flow_order,
    convert_legacy_workflow,
    expand_workflow,
    flow_table_from_links,
    has_materialized_flow,
    migrate_workflow,
)

__all__ = [
    "FlowTable",
    "compact_workflow",
    "compute_flow_order",
    "convert_legacy_workflow",
    "expand_workflow",
    "flow_table_from_links",
    "has_materialized_flow",
    "migrate_workflow",
]
