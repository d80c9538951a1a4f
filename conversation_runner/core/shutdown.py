"""
Process shutdown coordination.

State machine: running -> stopping -> stopped. The first trigger wins: it
flips ``stopped`` (no await between check and set), records its exit code,
and starts the stop sequence. Every later trigger is a no-op.

Stop sequence:
  1. the queue stops accepting and waits for admitted jobs to finish
  2. registered resources are released in reverse registration order
  3. the exit code is published to ``wait()``
"""

import asyncio
import signal
from enum import IntEnum
from typing import Awaitable, Callable, List, Optional, Tuple

from ..logging_config import get_logger

logger = get_logger(__name__)


class ExitCode(IntEnum):
    OK = 0
    FATAL = 12
    SIGINT = 130
    SIGTERM = 143


class ShutdownState:
    RUNNING = "running"
    STOPPING = "stopping"
    STOPPED = "stopped"


class ShutdownCoordinator:
    """Owns the process-wide ``stopped`` flag."""

    def __init__(self, queue=None):
        self._queue = queue
        self._resources: List[Tuple[str, Callable[[], Awaitable[None]]]] = []
        self._done = asyncio.Event()
        self._task: Optional[asyncio.Task] = None
        self.stopped = False
        self.state = ShutdownState.RUNNING
        self.exit_code: Optional[int] = None
        self.reason: Optional[str] = None

    def attach_queue(self, queue) -> None:
        self._queue = queue

    def add_resource(self, name: str, closer: Callable[[], Awaitable[None]]) -> None:
        """Register an async closer run during step 2 of the stop sequence."""
        self._resources.append((name, closer))

    def trigger(self, reason: str, exit_code: int) -> bool:
        """Request shutdown. Returns True only for the trigger that starts it."""
        if self.stopped:
            logger.debug("Shutdown already requested; ignoring trigger", reason=reason, active_reason=self.reason)
            return False
        self.stopped = True
        self.state = ShutdownState.STOPPING
        self.reason = reason
        self.exit_code = int(exit_code)
        logger.warning("Shutdown requested", reason=reason, exit_code=self.exit_code)
        self._task = asyncio.get_running_loop().create_task(self._stop_sequence())
        return True

    def fatal(self, reason: str, error: Optional[BaseException] = None) -> bool:
        """Trigger for unrecoverable errors."""
        logger.error("App encountered an unrecoverable error", reason=reason,
                     error=str(error) if error else None)
        return self.trigger(reason, ExitCode.FATAL)

    async def _stop_sequence(self) -> None:
        try:
            if self._queue is not None:
                await self._queue.stop(wait_until_all_processed=True)
        except Exception as exc:
            logger.error("Exception on stopping queue", error=str(exc), exc_info=True)

        for name, closer in reversed(self._resources):
            try:
                await closer()
            except Exception as exc:
                logger.error("Exception on releasing resource", resource=name, error=str(exc), exc_info=True)

        self.state = ShutdownState.STOPPED
        logger.info("Shutdown complete", reason=self.reason, exit_code=self.exit_code)
        self._done.set()

    async def wait(self) -> int:
        """Block until the stop sequence has finished and return the exit code."""
        await self._done.wait()
        return self.exit_code

    def install_signal_handlers(self, loop: asyncio.AbstractEventLoop) -> None:
        for sig, code in ((signal.SIGINT, ExitCode.SIGINT), (signal.SIGTERM, ExitCode.SIGTERM)):
            loop.add_signal_handler(sig, self.trigger, sig.name, code)

    def install_exception_handler(self, loop: asyncio.AbstractEventLoop) -> None:
        """Route unhandled asynchronous errors to a fatal shutdown."""
        loop.set_exception_handler(self._handle_loop_exception)

    def _handle_loop_exception(self, loop, context) -> None:
        error = context.get("exception")
        if error is None:
            # Diagnostics such as unclosed sessions are not fatal
            loop.default_exception_handler(context)
            return
        logger.error("Unhandled asynchronous error", message=context.get("message"), error=str(error))
        self.trigger("unhandled_error", ExitCode.FATAL)
