"""
Unit tests for JobQueue.

Tests cover:
- Bounded admission (N+1th job held until a slot frees)
- FIFO admission order
- Deadline timeouts before admission
- Push-time validation and admission rejection
- Ready handler failures
- Stop/drain semantics
"""

import asyncio
import time
from datetime import datetime, timedelta, timezone
from unittest.mock import Mock

import pytest

from conversation_runner.core.models import JobOutcome, OutcomeKind
from conversation_runner.core.queue import JobQueue
from conversation_runner.errors import InvalidJobError, QueueClosedError


def _later(seconds=3600):
    return time.time() + seconds


async def _execute(job):
    result = await job.session.execute()
    job.finish(JobOutcome.succeeded(result))


@pytest.fixture
def make_queue(fake_engine):
    def factory(concurrency=1, **kwargs):
        queue = JobQueue(fake_engine.create_session, concurrency=concurrency, **kwargs)
        queue.on("ready", _execute)
        queue.start()
        return queue
    return factory


class TestAdmission:

    @pytest.mark.asyncio
    async def test_push_returns_id_without_waiting(self, make_queue, fake_engine, settle):
        queue = make_queue()
        job_id = queue.push("my-key", before=_later(), input={"endpoint": "+15551234567"})

        assert isinstance(job_id, str) and job_id
        await settle()
        assert fake_engine.started == [job_id]
        fake_engine.sessions[job_id].complete({"outcome": "answered"})
        await queue.join()

    @pytest.mark.asyncio
    async def test_extra_job_held_until_slot_frees(self, make_queue, fake_engine, settle):
        """With N=2 the third concurrent job waits for a completion."""
        queue = make_queue(concurrency=2)
        ids = [queue.push("k", before=_later()) for _ in range(3)]
        await settle()

        assert fake_engine.started == ids[:2]
        assert queue.active == 2
        assert queue.waiting == 1

        fake_engine.sessions[ids[1]].complete("done")
        await settle()

        assert fake_engine.started == ids
        assert queue.active == 2
        assert queue.waiting == 0

        fake_engine.sessions[ids[0]].complete("done")
        fake_engine.sessions[ids[2]].complete("done")
        await queue.join()
        assert queue.active == 0

    @pytest.mark.asyncio
    async def test_fifo_admission_order(self, make_queue, fake_engine, settle):
        queue = make_queue(concurrency=1)
        ids = [queue.push("k", before=_later()) for _ in range(4)]

        for expected in ids:
            await settle()
            assert fake_engine.started[-1] == expected
            fake_engine.sessions[expected].complete(None)
        await queue.join()
        assert fake_engine.started == ids

    @pytest.mark.asyncio
    async def test_accepts_datetime_deadline(self, make_queue, fake_engine, settle):
        queue = make_queue()
        job_id = queue.push("k", before=datetime.now(timezone.utc) + timedelta(hours=1))
        await settle()
        assert fake_engine.started == [job_id]
        fake_engine.sessions[job_id].complete(None)
        await queue.join()


class TestValidation:

    @pytest.mark.asyncio
    async def test_push_before_start_is_refused(self, fake_engine):
        queue = JobQueue(fake_engine.create_session)
        with pytest.raises(QueueClosedError):
            queue.push("k", before=_later())

    @pytest.mark.asyncio
    async def test_deadline_must_be_in_future(self, make_queue):
        queue = make_queue()
        with pytest.raises(InvalidJobError):
            queue.push("k", before=time.time() - 1)

    @pytest.mark.asyncio
    async def test_input_must_be_mapping(self, make_queue):
        queue = make_queue()
        with pytest.raises(InvalidJobError):
            queue.push("k", before=_later(), input=["not", "a", "mapping"])

    @pytest.mark.asyncio
    async def test_key_required(self, make_queue):
        queue = make_queue()
        with pytest.raises(InvalidJobError):
            queue.push("", before=_later())

    @pytest.mark.asyncio
    async def test_unserializable_input_is_rejected(self, make_queue, fake_engine, settle):
        """Admission refusal fires 'rejected' and frees the slot for the next job."""
        queue = make_queue()
        rejected = Mock()
        queue.on("rejected", rejected)

        bad_id = queue.push("k", before=_later(), input={"payload": object()})
        good_id = queue.push("k", before=_later(), input={"ok": True})
        await settle()

        rejected.assert_called_once()
        key, error, job_id = rejected.call_args.args
        assert (key, job_id) == ("k", bad_id)
        assert "JSON" in error
        assert bad_id not in fake_engine.sessions
        assert fake_engine.started == [good_id]

        fake_engine.sessions[good_id].complete(None)
        await queue.join()


class TestTimeout:

    @pytest.mark.asyncio
    async def test_waiting_job_times_out(self, make_queue, fake_engine, settle):
        queue = make_queue(concurrency=1)
        timeouts = Mock()
        queue.on("timeout", timeouts)

        first = queue.push("k", before=_later())
        late = queue.push("late-key", before=time.time() + 0.05)
        await asyncio.sleep(0.1)

        timeouts.assert_called_once_with("late-key", late)
        assert queue.waiting == 0

        fake_engine.sessions[first].complete(None)
        await queue.join()
        assert fake_engine.started == [first]

    @pytest.mark.asyncio
    async def test_admitted_job_is_not_timed_out(self, make_queue, fake_engine, settle):
        """Deadlines only apply while waiting; running jobs are never cancelled."""
        queue = make_queue(concurrency=1)
        timeouts = Mock()
        queue.on("timeout", timeouts)

        job_id = queue.push("k", before=time.time() + 0.05)
        await asyncio.sleep(0.1)

        timeouts.assert_not_called()
        fake_engine.sessions[job_id].complete("late but fine")
        await queue.join()


class TestReadyHandlerErrors:

    @pytest.mark.asyncio
    async def test_handler_exception_reported_and_slot_released(self, fake_engine, settle):
        queue = JobQueue(fake_engine.create_session, concurrency=1)
        calls = []

        async def ready(job):
            calls.append(job.job_id)
            if len(calls) == 1:
                raise RuntimeError("handler bug")
            job.finish(JobOutcome.succeeded(None))

        errors = Mock()
        queue.on("ready", ready)
        queue.on("error", errors)
        queue.start()

        first = queue.push("k", before=_later())
        second = queue.push("k", before=_later())
        await queue.join()

        assert calls == [first, second]
        key, error, job_id = errors.call_args.args
        assert key == "k" and job_id == first
        assert str(error) == "handler bug"


class TestStop:

    @pytest.mark.asyncio
    async def test_stop_drains_admitted_and_rejects_waiting(self, make_queue, fake_engine, settle):
        queue = make_queue(concurrency=1)
        rejected = Mock()
        queue.on("rejected", rejected)

        running = queue.push("k", before=_later())
        waiting = queue.push("k", before=_later())
        await settle()

        stop_task = asyncio.create_task(queue.stop(wait_until_all_processed=True))
        await settle()

        rejected.assert_called_once_with("k", "queue stopped", waiting)
        assert not stop_task.done()
        with pytest.raises(QueueClosedError):
            queue.push("k", before=_later())

        fake_engine.sessions[running].complete("done")
        await asyncio.wait_for(stop_task, timeout=1)
        assert queue.active == 0
        assert fake_engine.started == [running]

    @pytest.mark.asyncio
    async def test_outcome_recorded_once(self, make_queue, fake_engine, settle):
        queue = make_queue()
        seen = []
        queue.on("ready", lambda job: seen.append(job))
        job_id = queue.push("k", before=_later())
        await settle()
        fake_engine.sessions[job_id].complete({"x": 1})
        await queue.join()

        job = seen[0]
        assert job.outcome.kind is OutcomeKind.SUCCEEDED
        with pytest.raises(RuntimeError):
            job.finish(JobOutcome.failed("again"))
