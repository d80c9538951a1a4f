"""
Job processor: configures and executes admitted jobs.

Per job the processor merges input, applies the session profile, registers
observers, executes the session, and hands the outcome to the webhook
notifier. Execution errors are absorbed here and never reach other jobs or
the process. In single-job mode every finished job triggers shutdown.
"""

from typing import Any, Dict, Optional

from ..logging_config import get_logger
from ..notify import WebhookNotifier
from .models import Job, JobOutcome, JobStatus, SessionConfig, WebhookPayload, merge_input
from .shutdown import ExitCode, ShutdownCoordinator

logger = get_logger(__name__)

FAILED_CHANNEL_MESSAGE = "FailedOpenSessionChannelMessage"


class JobProcessor:
    """Handles queue events for conversation jobs."""

    def __init__(
        self,
        notifier: WebhookNotifier,
        *,
        session_config: Optional[SessionConfig] = None,
        default_input: Optional[Dict[str, Any]] = None,
        webhook_url: Optional[str] = None,
        webhook_token: Optional[str] = None,
        forward: Optional[str] = None,
        stop_after_one_job: bool = False,
        coordinator: Optional[ShutdownCoordinator] = None,
    ):
        if stop_after_one_job and coordinator is None:
            raise ValueError("single-job mode requires a shutdown coordinator")
        self.notifier = notifier
        self.session_config = session_config or SessionConfig()
        self.default_input = dict(default_input or {})
        self.webhook_url = webhook_url
        self.webhook_token = webhook_token
        self.forward = forward
        self.stop_after_one_job = stop_after_one_job
        self.coordinator = coordinator

    def attach(self, queue) -> None:
        """Subscribe to every queue event."""
        queue.on("ready", self.on_ready)
        queue.on("timeout", self.on_timeout)
        queue.on("rejected", self.on_rejected)
        queue.on("error", self.on_error)

    def build_input(self, job: Job) -> Dict[str, Any]:
        merged = merge_input(self.default_input, job.input)
        sip = (job.info or {}).get("sip")
        if sip is not None:
            logger.info("Captured sip call", job_id=job.job_id, sip=sip)
            merged["forward"] = self.forward
        return merged

    async def on_ready(self, job: Job) -> None:
        session = job.session
        merged: Dict[str, Any] = dict(job.input)
        try:
            merged = self.build_input(job)
            session.input = merged
            session.configure(self.session_config)
            job.status = JobStatus.CONFIGURED
            self._register_observers(job)

            logger.info("Ready", job_id=job.job_id, key=job.key, input=merged)
            job.status = JobStatus.EXECUTING
            result = await session.execute(self.session_config.channel)
        except Exception as exc:
            error = str(exc) or type(exc).__name__
            logger.error("Runtime error of job", job_id=job.job_id, key=job.key, error=error)
            job.finish(JobOutcome.failed(error))
            self.notifier.submit(self.webhook_url, self.webhook_token,
                                 WebhookPayload.for_failure(job, merged, error))
        else:
            logger.info("Job completed", job_id=job.job_id, key=job.key, result=result)
            job.finish(JobOutcome.succeeded(result))
            self.notifier.submit(self.webhook_url, self.webhook_token,
                                 WebhookPayload.for_success(job, merged, result))
        finally:
            if self.stop_after_one_job:
                self.coordinator.trigger("single_job_completed", ExitCode.OK)

    def _register_observers(self, job: Job) -> None:
        session = job.session
        job_id = job.job_id
        cfg = self.session_config

        if cfg.verbose:
            def debug_log(event):
                logger.debug("Engine debug event", job_id=job_id, event=event)
            session.on("debug_log", debug_log)

        if cfg.transcript:
            def transcription(text, incoming):
                logger.info("Transcript", job_id=job_id, speaker="human" if incoming else "ai", text=text)
            session.on("transcription", transcription)

        def raw(event):
            msg = (event or {}).get("msg") or {}
            if msg.get("msgId") == FAILED_CHANNEL_MESSAGE:
                logger.error("Failed to open session channel", job_id=job_id,
                             reason=msg.get("reason"), details=msg.get("details"))
        session.on("raw", raw)

    def on_timeout(self, key: str, job_id: str) -> None:
        logger.warning("Job timed out before admission", job_id=job_id, key=key)

    def on_rejected(self, key: str, error: str, job_id: str) -> None:
        logger.warning("Job was rejected", job_id=job_id, key=key, error=error)

    def on_error(self, key: str, error: BaseException, job_id: str) -> None:
        logger.error("Job failed with error", job_id=job_id, key=key, error=str(error))
