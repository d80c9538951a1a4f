"""
Explicit event subscription table.

Handlers may be plain callables or coroutine functions. ``emit`` schedules
coroutine results as tasks and returns them; ``emit_and_wait`` awaits them
in registration order.
"""

import asyncio
import inspect
from typing import Any, Callable, Dict, List, Set

from ..logging_config import get_logger

logger = get_logger(__name__)


class EventDispatcher:
    """Maps event names to handler lists."""

    def __init__(self, events=None):
        self._allowed = set(events) if events else None
        self._handlers: Dict[str, List[Callable]] = {}
        self._tasks: Set[asyncio.Task] = set()

    def on(self, event: str, handler: Callable) -> None:
        """Register a handler for an event."""
        if self._allowed is not None and event not in self._allowed:
            raise ValueError(f"Unknown event '{event}' (expected one of {sorted(self._allowed)})")
        self._handlers.setdefault(event, []).append(handler)
        logger.debug("Added event handler", event_type=event, handler=getattr(handler, "__name__", repr(handler)))

    def off(self, event: str, handler: Callable) -> None:
        handlers = self._handlers.get(event, [])
        if handler in handlers:
            handlers.remove(handler)

    def handlers(self, event: str) -> List[Callable]:
        return list(self._handlers.get(event, []))

    def has_handlers(self, event: str) -> bool:
        return bool(self._handlers.get(event))

    def emit(self, event: str, *args: Any) -> List[asyncio.Task]:
        """Fire-and-forget dispatch. Handler exceptions are logged, never raised."""
        tasks = []
        for handler in self.handlers(event):
            try:
                result = handler(*args)
            except Exception:
                logger.error("Event handler failed", event_type=event, exc_info=True)
                continue
            if inspect.isawaitable(result):
                task = asyncio.ensure_future(result)
                self._tasks.add(task)
                task.add_done_callback(self._on_task_done)
                tasks.append(task)
        return tasks

    async def emit_and_wait(self, event: str, *args: Any) -> None:
        """Dispatch and await each handler in order. Exceptions propagate."""
        for handler in self.handlers(event):
            result = handler(*args)
            if inspect.isawaitable(result):
                await result

    async def wait_idle(self) -> None:
        """Wait for handler tasks spawned by ``emit``."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Async event handler failed", error=str(exc), exc_info=exc)
