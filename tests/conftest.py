"""
Shared fixtures: a fake conversation engine whose sessions complete only when
the test says so, plus a notifier double.
"""

import asyncio
from unittest.mock import Mock

import pytest

from conversation_runner.engine.base import ConversationEngine, ConversationSession
from conversation_runner.notify import WebhookNotifier


class FakeSession(ConversationSession):
    """Session that blocks in execute until complete() or fail() is called."""

    def __init__(self, engine, job):
        super().__init__(job.job_id, job.input, job.info)
        self.engine = engine
        self.future = asyncio.get_running_loop().create_future()
        self.executed_with = None

    async def _run(self, channel):
        self.executed_with = {"channel": channel, "input": dict(self.input), "config": self.config}
        self.engine.started.append(self.job_id)
        return await self.future

    def complete(self, result):
        self.future.set_result(result)

    def fail(self, error):
        self.future.set_exception(error)


class FakeEngine(ConversationEngine):

    def __init__(self):
        super().__init__()
        self.sessions = {}
        self.started = []
        self.disposed = False

    def create_session(self, job):
        session = FakeSession(self, job)
        self.sessions[job.job_id] = session
        return session

    async def dispose(self):
        self.disposed = True


async def _settle(rounds: int = 10):
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def settle():
    """Coroutine that lets scheduled callbacks and tasks run."""
    return _settle


@pytest.fixture
def fake_engine():
    return FakeEngine()


@pytest.fixture
def notifier():
    """Notifier double: records submissions without touching the network."""
    double = Mock(spec=WebhookNotifier)
    double.submit.return_value = None
    return double
