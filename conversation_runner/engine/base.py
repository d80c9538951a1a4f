"""
Interfaces to the external conversation engine.

The engine owns dialogue, speech and SIP. The runner only needs two seams:
a session handle it can configure, observe and execute once, and an engine
that creates sessions and reports platform-level events (inbound calls,
connectivity loss).
"""

from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional

from ..core.events import EventDispatcher
from ..core.models import Job, SessionConfig
from ..errors import SessionStateError

SESSION_EVENTS = ("debug_log", "transcription", "raw")
ENGINE_EVENTS = ("inbound_call", "unable_to_reconnect", "error")


class ConversationSession(ABC):
    """Live execution context for one job against the engine."""

    def __init__(self, job_id: str, input: Optional[Dict[str, Any]] = None, info: Optional[Dict[str, Any]] = None):
        self.job_id = job_id
        self.input: Dict[str, Any] = dict(input or {})
        self.info = info
        self.config = SessionConfig()
        self._events = EventDispatcher(SESSION_EVENTS)
        self._started = False

    @property
    def started(self) -> bool:
        return self._started

    def configure(self, config: SessionConfig) -> None:
        if self._started:
            raise SessionStateError("Session configuration cannot change after execution started")
        self.config = config

    def on(self, event: str, handler: Callable) -> None:
        """Register an observer. Only allowed before ``execute``."""
        if self._started:
            raise SessionStateError(f"Cannot register '{event}' observer after execution started")
        self._events.on(event, handler)

    async def execute(self, channel: Optional[str] = None) -> Any:
        """Run the conversation to completion and return the engine result."""
        if self._started:
            raise SessionStateError(f"Session {self.job_id} already executed")
        self._started = True
        return await self._run(channel or self.config.channel)

    def emit(self, event: str, *args: Any) -> None:
        """Deliver an engine-side event to registered observers."""
        self._events.emit(event, *args)

    @abstractmethod
    async def _run(self, channel: str) -> Any:
        """Backend-specific execution. Raise EngineError on failure."""


class ConversationEngine(ABC):
    """Factory for sessions plus a source of platform events."""

    def __init__(self):
        self._events = EventDispatcher(ENGINE_EVENTS)

    def on(self, event: str, handler: Callable) -> None:
        self._events.on(event, handler)

    def emit(self, event: str, *args: Any) -> None:
        self._events.emit(event, *args)

    async def start(self) -> None:
        """Connect to the engine. Default: nothing to do."""

    @abstractmethod
    def create_session(self, job: Job) -> ConversationSession:
        """Build the session handle for an admitted job."""

    async def describe_inbound(self) -> List[Dict[str, Any]]:
        """Inbound SIP configurations bound to this application. Default: none."""
        return []

    async def dispose(self) -> None:
        """Release connections. Default: nothing to do."""
