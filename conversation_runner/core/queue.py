"""
In-process job queue.

``push`` validates and enqueues a job and returns its id immediately. The
queue admits jobs through the ConcurrencyGovernor, enforces each job's
``before`` deadline while it waits, and reports through four events:

    ready(job)                    job admitted; handlers run while it holds a slot
    timeout(key, job_id)          deadline elapsed before admission
    rejected(key, error, job_id)  admission refused, or queue stopped first
    error(key, error, job_id)     a ready handler raised

Every state transition here is synchronous. The only suspension points are
inside ready handlers, so slot accounting never races.
"""

import asyncio
import json
import time
from datetime import datetime
from typing import Any, Callable, Dict, Mapping, Optional, Union

from ..errors import InvalidJobError, QueueClosedError
from ..logging_config import bind_job_id, get_logger, reset_job_id
from .. import metrics
from .events import EventDispatcher
from .governor import ConcurrencyGovernor
from .models import Job, JobOutcome, JobStatus

logger = get_logger(__name__)

QUEUE_EVENTS = ("ready", "timeout", "rejected", "error")

Deadline = Union[float, int, datetime]


def check_input_serializable(job: Job) -> Optional[str]:
    """Default admission check: job input must survive JSON encoding."""
    try:
        json.dumps(job.input)
    except (TypeError, ValueError) as exc:
        return f"input is not JSON serializable: {exc}"
    return None


def _deadline_to_timestamp(before: Deadline) -> float:
    if isinstance(before, datetime):
        return before.timestamp()
    if isinstance(before, bool) or not isinstance(before, (int, float)):
        raise InvalidJobError(f"before must be a datetime or unix timestamp, got {type(before).__name__}")
    return float(before)


class JobQueue:
    """Bounded-concurrency FIFO queue of conversation jobs."""

    def __init__(
        self,
        session_factory: Callable[[Job], Any],
        concurrency: int = 1,
        admission_check: Optional[Callable[[Job], Optional[str]]] = check_input_serializable,
        clock: Callable[[], float] = time.time,
    ):
        self._session_factory = session_factory
        self._governor: ConcurrencyGovernor[Job] = ConcurrencyGovernor(concurrency)
        self._admission_check = admission_check
        self._clock = clock
        self._events = EventDispatcher(QUEUE_EVENTS)
        self._jobs: Dict[str, Job] = {}
        self._deadlines: Dict[str, asyncio.TimerHandle] = {}
        self._running: Dict[str, asyncio.Task] = {}
        self._accepting = False

    @property
    def concurrency(self) -> int:
        return self._governor.max_concurrency

    @property
    def accepting(self) -> bool:
        return self._accepting

    @property
    def active(self) -> int:
        return self._governor.active

    @property
    def waiting(self) -> int:
        return self._governor.waiting

    def get(self, job_id: str) -> Optional[Job]:
        return self._jobs.get(job_id)

    def on(self, event: str, handler: Callable) -> None:
        self._events.on(event, handler)

    def start(self) -> None:
        self._accepting = True
        logger.info("Job queue started", concurrency=self.concurrency)

    def push(
        self,
        key: str,
        *,
        before: Deadline,
        input: Optional[Mapping[str, Any]] = None,
        info: Optional[Mapping[str, Any]] = None,
    ) -> str:
        """Enqueue a job and return its id without waiting for execution."""
        if not self._accepting:
            raise QueueClosedError("queue is not accepting jobs")
        if not isinstance(key, str) or not key:
            raise InvalidJobError("key must be a non-empty string")
        deadline = _deadline_to_timestamp(before)
        now = self._clock()
        if deadline <= now:
            raise InvalidJobError("before must be in the future")
        if input is not None and not isinstance(input, Mapping):
            raise InvalidJobError("input must be a mapping")
        if input and not all(isinstance(k, str) for k in input):
            raise InvalidJobError("input keys must be strings")

        job = Job(key=key, before=deadline, input=dict(input or {}), info=dict(info) if info else None)
        self._jobs[job.job_id] = job
        self._governor.enqueue(job.job_id, job)
        loop = asyncio.get_running_loop()
        self._deadlines[job.job_id] = loop.call_later(deadline - now, self._on_deadline, job.job_id)

        metrics.JOBS_PUSHED.labels(key=key).inc()
        logger.info("Job pushed", job_id=job.job_id, key=key, seconds_left=round(deadline - now, 1))
        self._pump()
        return job.job_id

    def _pump(self) -> None:
        while True:
            admitted = self._governor.admit_ready()
            if not admitted:
                break
            for job in admitted:
                self._admit(job)
        self._update_gauges()

    def _admit(self, job: Job) -> None:
        timer = self._deadlines.pop(job.job_id, None)
        if timer is not None:
            timer.cancel()

        error = self._admission_check(job) if self._admission_check else None
        if error is None:
            try:
                job.session = self._session_factory(job)
            except Exception as exc:
                error = f"session could not be created: {exc}"
        if error is not None:
            self._governor.release(job.job_id)
            self._reject(job, error)
            return

        job.status = JobStatus.ADMITTED
        job.admitted_at = self._clock()
        self._running[job.job_id] = asyncio.get_running_loop().create_task(self._run(job))

    async def _run(self, job: Job) -> None:
        token = bind_job_id(job.job_id)
        try:
            await self._events.emit_and_wait("ready", job)
        except Exception as exc:
            logger.error("Ready handler failed", key=job.key, error=str(exc), exc_info=True)
            if not job.is_terminal:
                job.finish(JobOutcome.failed(str(exc)))
            self._events.emit("error", job.key, exc, job.job_id)
        finally:
            if not job.is_terminal:
                job.finish(JobOutcome.failed("no outcome recorded"))
            self._complete(job)
            reset_job_id(token)

    def _complete(self, job: Job) -> None:
        self._governor.release(job.job_id)
        self._running.pop(job.job_id, None)
        self._jobs.pop(job.job_id, None)
        metrics.JOBS_FINISHED.labels(outcome=job.outcome.kind.value).inc()
        if job.admitted_at is not None:
            metrics.JOB_DURATION.observe(max(0.0, self._clock() - job.admitted_at))
        self._pump()

    def _on_deadline(self, job_id: str) -> None:
        self._deadlines.pop(job_id, None)
        if not self._governor.withdraw(job_id):
            return
        job = self._jobs.pop(job_id)
        job.finish(JobOutcome.timed_out())
        metrics.JOBS_FINISHED.labels(outcome=job.outcome.kind.value).inc()
        self._update_gauges()
        self._events.emit("timeout", job.key, job.job_id)

    def _reject(self, job: Job, error: str) -> None:
        self._jobs.pop(job.job_id, None)
        job.finish(JobOutcome.rejected(error))
        metrics.JOBS_FINISHED.labels(outcome=job.outcome.kind.value).inc()
        self._events.emit("rejected", job.key, error, job.job_id)

    def _update_gauges(self) -> None:
        metrics.JOBS_ACTIVE.set(self._governor.active)
        metrics.JOBS_WAITING.set(self._governor.waiting)

    async def stop(self, wait_until_all_processed: bool = True) -> None:
        """
        Stop accepting jobs.

        Jobs still waiting for a slot are rejected. With
        ``wait_until_all_processed`` the call returns once every admitted job
        has finished; running jobs are never cancelled.
        """
        self._accepting = False
        for job in self._governor.drain_waiting():
            timer = self._deadlines.pop(job.job_id, None)
            if timer is not None:
                timer.cancel()
            self._reject(job, "queue stopped")
        self._update_gauges()
        logger.info("Job queue stopping", active=self.active, wait=wait_until_all_processed)
        if wait_until_all_processed:
            await self.join()

    async def join(self) -> None:
        """Wait until no job is running and all event handlers are done."""
        while self._running:
            await asyncio.gather(*list(self._running.values()), return_exceptions=True)
        await self._events.wait_idle()
