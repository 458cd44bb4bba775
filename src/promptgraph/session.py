"""promptgraph.session

Prompt submission: a single-flight queue, the engine client interface, and the
workflow session that ties loading, compiling, snapshots and submission together.

Submissions return immediately with a future; requests are processed strictly one at
a time in submission order. Each request compiles `batch_count` prompts. After every
successful submission the widgets' after-queue controls run (seed increment /
randomize), so the next prompt of the batch is compiled from the updated values.
"""

from __future__ import annotations

import asyncio
import random
from collections import deque
from typing import Any, Awaitable, Callable, Deque, Dict, List, Optional, Protocol, Tuple

from .compiler.pipeline import CompilerContext, graph_to_prompt, load_workflow
from .compiler.serializer import CompiledPrompt
from .core.config import CompilerConfig
from .core.errors import PromptRejectedError
from .core.models import Graph, Widget
from .core.registry import CONTROL_AFTER_GENERATE, OperationRegistry
from .extensions import ExtensionRegistry
from .logging import get_logger
from .storage.base import SnapshotStore

logger = get_logger(__name__)

# Upper bound used by the editor when randomizing unbounded seeds.
MAX_RANDOM_SEED = 1125899906842624


class EngineClient(Protocol):
    """Execution engine transport."""

    async def queue_prompt(self, number: int, prompt: CompiledPrompt) -> Dict[str, Any]:
        """Submit a compiled prompt.

        Returns the engine response (e.g. `{"prompt_id": ..., "node_errors": {}}`).
        Raises `PromptRejectedError` when the engine refuses the prompt.
        """
        ...


class PromptQueue:
    """Single-flight FIFO job queue."""

    def __init__(self):
        self._items: Deque[Tuple[Callable[[], Awaitable[Any]], "asyncio.Future[Any]"]] = deque()
        self._worker: Optional["asyncio.Task[None]"] = None

    @property
    def pending(self) -> int:
        return len(self._items)

    @property
    def processing(self) -> bool:
        return self._worker is not None and not self._worker.done()

    def submit(self, job: Callable[[], Awaitable[Any]]) -> "asyncio.Future[Any]":
        """Enqueue `job` and return a future for its result. Requires a running loop."""
        loop = asyncio.get_running_loop()
        future: "asyncio.Future[Any]" = loop.create_future()
        self._items.append((job, future))
        if not self.processing:
            self._worker = loop.create_task(self._drain())
        return future

    async def _drain(self) -> None:
        while self._items:
            job, future = self._items.popleft()
            if future.cancelled():
                continue
            try:
                result = await job()
            except Exception as e:
                logger.warning("Queued request failed", error=str(e))
                if not future.done():
                    future.set_exception(e)
            else:
                if not future.done():
                    future.set_result(result)

    async def join(self) -> None:
        """Wait until every submitted job has been processed."""
        while self.processing:
            assert self._worker is not None
            await self._worker


def _next_widget_value(widget: Widget, mode: Any, rng: random.Random) -> Any:
    value = widget.value
    options = widget.options
    if "values" in options:
        values = list(options["values"])
        if not values or value not in values:
            return value
        index = values.index(value)
        if mode == "increment":
            return values[min(index + 1, len(values) - 1)]
        if mode == "decrement":
            return values[max(index - 1, 0)]
        if mode == "randomize":
            return rng.choice(values)
        return value

    if not isinstance(value, (int, float)) or isinstance(value, bool):
        return value
    low = options.get("min", 0)
    high = min(options.get("max", MAX_RANDOM_SEED), MAX_RANDOM_SEED)
    step = options.get("step", 1) or 1
    if mode == "increment":
        return min(value + step, high)
    if mode == "decrement":
        return max(value - step, low)
    if mode == "randomize":
        if isinstance(value, int) and isinstance(step, int):
            return rng.randrange(int(low), int(high) + 1, step) if high >= low else value
        return rng.uniform(low, high)
    return value


def apply_after_queued(graph: Graph, rng: Optional[random.Random] = None) -> int:
    """Run `control_after_generate` on the live graph. Returns how many widgets changed."""
    rng = rng or random.Random()
    changed = 0
    for node in graph.nodes:
        for i, widget in enumerate(node.widgets):
            if widget.name != CONTROL_AFTER_GENERATE or i == 0:
                continue
            target = node.widgets[i - 1]
            mode = widget.value
            if mode in (None, "fixed"):
                continue
            new_value = _next_widget_value(target, mode, rng)
            if new_value != target.value:
                target.value = new_value
                changed += 1
    return changed


class WorkflowSession:
    """One open workflow: load, compile, snapshot and queue submissions."""

    def __init__(
        self,
        registry: OperationRegistry,
        client: EngineClient,
        *,
        config: Optional[CompilerConfig] = None,
        extensions: Optional[ExtensionRegistry] = None,
        snapshot_store: Optional[SnapshotStore] = None,
        snapshot_key: str = "workflow",
        rng: Optional[random.Random] = None,
    ):
        self.registry = registry
        self.client = client
        self.config = config or CompilerConfig()
        self.extensions = extensions if extensions is not None else ExtensionRegistry()
        self.snapshot_store = snapshot_store
        self.snapshot_key = snapshot_key
        self.rng = rng or random.Random()

        self.graph: Optional[Graph] = None
        self.missing_types: List[str] = []
        self.last_node_errors: Dict[str, Any] = {}
        self._queue = PromptQueue()

    def _context(self) -> CompilerContext:
        return CompilerContext.create(self.registry, config=self.config, extensions=self.extensions)

    @property
    def queue(self) -> PromptQueue:
        return self._queue

    async def load(self, document: Dict[str, Any]) -> Graph:
        ctx = self._context()
        graph = await load_workflow(document, ctx)
        self.graph = graph
        self.missing_types = list(ctx.missing_types)
        return graph

    async def restore(self) -> Optional[Graph]:
        """Reload the last persisted snapshot, if any."""
        if self.snapshot_store is None:
            return None
        document = self.snapshot_store.load(self.snapshot_key)
        if document is None:
            return None
        return await self.load(document)

    async def to_prompt(self) -> CompiledPrompt:
        if self.graph is None:
            raise RuntimeError("No workflow loaded")
        prompt = await graph_to_prompt(self.graph, self._context())
        for node_type in prompt.missing_types:
            if node_type not in self.missing_types:
                self.missing_types.append(node_type)
        if self.snapshot_store is not None:
            self.snapshot_store.save(self.snapshot_key, prompt.workflow)
        return prompt

    async def _run_request(self, number: int, batch_count: int) -> List[Dict[str, Any]]:
        responses: List[Dict[str, Any]] = []
        for _ in range(max(1, int(batch_count))):
            prompt = await self.to_prompt()
            try:
                response = await self.client.queue_prompt(number, prompt)
            except PromptRejectedError as e:
                self.last_node_errors = dict(e.node_errors)
                logger.error("Prompt rejected", error=str(e))
                raise
            self.last_node_errors = dict(response.get("node_errors") or {}) if isinstance(response, dict) else {}
            responses.append(response)
            if self.graph is not None:
                apply_after_queued(self.graph, self.rng)
        return responses

    def queue_prompt(self, number: int = 0, batch_count: int = 1) -> "asyncio.Future[List[Dict[str, Any]]]":
        """Queue `batch_count` prompts compiled from the current graph."""
        return self._queue.submit(lambda: self._run_request(number, batch_count))
