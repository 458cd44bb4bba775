"""promptgraph.compiler

Workflow graph -> instruction map compiler.
"""

from .ordering import plan_execution_order
from .pipeline import CompilerContext, compile_document, graph_to_prompt, load_workflow
from .resolver import resolve_input
from .serializer import CompiledPrompt, serialize_instructions

__all__ = [
    "CompiledPrompt",
    "CompilerContext",
    "compile_document",
    "graph_to_prompt",
    "load_workflow",
    "plan_execution_order",
    "resolve_input",
    "serialize_instructions",
]
