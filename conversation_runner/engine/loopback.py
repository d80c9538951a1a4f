"""
In-process loopback engine for local dry runs.

Each session "talks" for a configured delay, emits a short synthetic
transcript, and returns a deterministic result. Set ``input.fail`` to a
string to make the session raise EngineError with that message.
"""

import asyncio
from typing import Any

from ..core.models import Job
from ..errors import EngineError
from ..logging_config import get_logger
from .base import ConversationEngine, ConversationSession

logger = get_logger(__name__)


class LoopbackSession(ConversationSession):

    def __init__(self, job: Job, delay_sec: float):
        super().__init__(job.job_id, job.input, job.info)
        self.delay_sec = delay_sec

    async def _run(self, channel: str) -> Any:
        self.emit("debug_log", {"msg": {"msgId": "OpenedSessionChannelMessage", "channel": channel}})
        greeting = self.input.get("greeting") or "Hello"
        self.emit("transcription", greeting, False)
        await asyncio.sleep(self.delay_sec)

        failure = self.input.get("fail")
        if failure:
            self.emit("raw", {"msg": {"msgId": "FailedOpenSessionChannelMessage", "reason": "loopback", "details": str(failure)}})
            raise EngineError(str(failure))

        self.emit("transcription", "Goodbye", True)
        return {
            "outcome": "completed",
            "channel": channel,
            "endpoint": self.input.get("endpoint"),
        }


class LoopbackEngine(ConversationEngine):
    """Engine stand-in that never leaves the process."""

    def __init__(self, delay_sec: float = 0.5):
        super().__init__()
        self.delay_sec = delay_sec

    async def start(self) -> None:
        logger.info("Loopback engine ready", delay_sec=self.delay_sec)

    def create_session(self, job: Job) -> LoopbackSession:
        return LoopbackSession(job, self.delay_sec)
