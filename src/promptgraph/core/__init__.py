"""Core model, registry, configuration and errors."""

from .config import CompilerConfig, FLOW_TYPE
from .errors import (
    ExtensionError,
    GroupNodeError,
    PromptGraphError,
    PromptRejectedError,
    WorkflowDocumentError,
)
from .models import (
    Graph,
    GroupNodeDefinition,
    GroupSlotMap,
    InputSlot,
    Link,
    Node,
    NodeMode,
    OutputSlot,
    Participation,
    Widget,
)
from .registry import OperationDef, OperationRegistry

__all__ = [
    "CompilerConfig",
    "FLOW_TYPE",
    "PromptGraphError",
    "WorkflowDocumentError",
    "GroupNodeError",
    "ExtensionError",
    "PromptRejectedError",
    "Graph",
    "Node",
    "NodeMode",
    "Participation",
    "InputSlot",
    "OutputSlot",
    "Widget",
    "Link",
    "GroupNodeDefinition",
    "GroupSlotMap",
    "OperationDef",
    "OperationRegistry",
]
