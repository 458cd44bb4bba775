"""promptgraph.extensions

Extension hooks.

An extension is a named bundle of callbacks, one per hook phase. Phases run at fixed
points of the load and compile pipeline:

- `before_configure(document, missing_types)`: the raw document copy, before migration.
- `loaded_graph_node(node)`: once per node after parsing (synchronous).
- `after_configure(missing_types)`: after a document is loaded.
- `after_expand(graph)`: on the compile graph, after group nodes are inlined.

Async phases run all hooks concurrently; sync phases run them in registration order.
A failing hook is logged and never interrupts the others.

Example:
    >>> ext = Extension("my.ext")
    >>> @ext.hook(HookPhase.LOADED_GRAPH_NODE)
    ... def tag(node):
    ...     node.extra["seen"] = True
"""

from __future__ import annotations

import asyncio
import inspect
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Iterator, List, Optional, Union

from .core.errors import ExtensionError
from .logging import get_logger

logger = get_logger(__name__)

Hook = Callable[..., Any]


class HookPhase(str, Enum):
    BEFORE_CONFIGURE = "before_configure"
    LOADED_GRAPH_NODE = "loaded_graph_node"
    AFTER_CONFIGURE = "after_configure"
    AFTER_EXPAND = "after_expand"


SYNC_PHASES = frozenset({HookPhase.LOADED_GRAPH_NODE})


@dataclass
class Extension:
    name: str
    hooks: Dict[HookPhase, Hook] = field(default_factory=dict)

    def hook(self, phase: Union[HookPhase, str]) -> Callable[[Hook], Hook]:
        """Decorator registering `fn` for `phase`."""

        def decorator(fn: Hook) -> Hook:
            if HookPhase(phase) in SYNC_PHASES and inspect.iscoroutinefunction(fn):
                raise ExtensionError(f"Hook for '{HookPhase(phase).value}' must be synchronous.")
            self.hooks[HookPhase(phase)] = fn
            return fn

        return decorator

    def get(self, phase: Union[HookPhase, str]) -> Optional[Hook]:
        return self.hooks.get(HookPhase(phase))

    @property
    def module_names(self) -> List[str]:
        """Modules that define this extension's hooks (used for error attribution)."""
        names = []
        for fn in self.hooks.values():
            module = getattr(fn, "__module__", None)
            if module and module not in names:
                names.append(module)
        return names


class ExtensionRegistry:
    """Ordered collection of registered extensions."""

    def __init__(self, extensions: Optional[List[Extension]] = None):
        self._extensions: List[Extension] = []
        for ext in extensions or []:
            self.register(ext)

    def register(self, extension: Extension) -> Extension:
        if not isinstance(extension, Extension) or not str(extension.name or "").strip():
            raise ExtensionError("Extensions must have a 'name' property.")
        if any(e.name == extension.name for e in self._extensions):
            raise ExtensionError(f"Extension named '{extension.name}' already registered.")
        self._extensions.append(extension)
        return extension

    def __iter__(self) -> Iterator[Extension]:
        return iter(list(self._extensions))

    def __len__(self) -> int:
        return len(self._extensions)

    def names(self) -> List[str]:
        return [e.name for e in self._extensions]

    def find_by_module(self, module_name: str) -> Optional[Extension]:
        for ext in self._extensions:
            if module_name in ext.module_names:
                return ext
        return None

    def invoke(self, phase: Union[HookPhase, str], *args: Any) -> List[Any]:
        """Run the hooks of a synchronous phase in registration order."""
        phase = HookPhase(phase)
        results: List[Any] = []
        for ext in self._extensions:
            fn = ext.get(phase)
            if fn is None:
                continue
            try:
                result = fn(*args)
            except Exception as e:
                logger.error("Extension hook failed", extension=ext.name, phase=phase.value, error=str(e))
                continue
            if inspect.isawaitable(result):
                # Synchronous phases never await; drop the pending coroutine.
                if inspect.iscoroutine(result):
                    result.close()
                logger.error("Async hook ignored in synchronous phase", extension=ext.name, phase=phase.value)
                continue
            results.append(result)
        return results

    async def invoke_async(self, phase: Union[HookPhase, str], *args: Any) -> List[Any]:
        """Run the hooks of a phase concurrently; hooks may be sync or async."""
        phase = HookPhase(phase)

        async def run(ext: Extension, fn: Hook) -> Any:
            try:
                result = fn(*args)
                if inspect.isawaitable(result):
                    result = await result
                return result
            except Exception as e:
                logger.error("Extension hook failed", extension=ext.name, phase=phase.value, error=str(e))
                return None

        calls = []
        for ext in self._extensions:
            fn = ext.get(phase)
            if fn is not None:
                calls.append(run(ext, fn))
        if not calls:
            return []
        return list(await asyncio.gather(*calls))
