"""promptgraph

Workflow graph compiler: turns node-graph workflow documents into the instruction map
(prompt) consumed by an execution engine.
"""

from .compiler import CompiledPrompt, CompilerContext, compile_document, graph_to_prompt, load_workflow
from .core import (
    CompilerConfig,
    ExtensionError,
    Graph,
    GroupNodeError,
    OperationRegistry,
    PromptGraphError,
    PromptRejectedError,
    WorkflowDocumentError,
)
from .extensions import Extension, ExtensionRegistry, HookPhase
from .logging import configure_logging, get_logger
from .session import EngineClient, PromptQueue, WorkflowSession
from .storage import InMemorySnapshotStore, JsonFileSnapshotStore, SnapshotStore

__version__ = "0.1.0"

__all__ = [
    "CompiledPrompt",
    "CompilerConfig",
    "CompilerContext",
    "EngineClient",
    "Extension",
    "ExtensionError",
    "ExtensionRegistry",
    "Graph",
    "GroupNodeError",
    "HookPhase",
    "InMemorySnapshotStore",
    "JsonFileSnapshotStore",
    "OperationRegistry",
    "PromptGraphError",
    "PromptQueue",
    "PromptRejectedError",
    "SnapshotStore",
    "WorkflowDocumentError",
    "WorkflowSession",
    "compile_document",
    "configure_logging",
    "get_logger",
    "graph_to_prompt",
    "load_workflow",
]
