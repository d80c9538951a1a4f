"""
One-shot ingress: push a single outbound job and stop after it finishes.

The processor triggers shutdown once the job ran. If the job never runs
(deadline elapsed or rejected) this adapter triggers the shutdown itself so
the process does not wait forever.
"""

import time
from typing import Optional

from ..core.shutdown import ExitCode
from ..logging_config import get_logger

logger = get_logger(__name__)

ONESHOT_JOB_KEY = "my-key"


class OneShotAdapter:

    def __init__(self, queue, coordinator, *, phone: str, forward: Optional[str] = None,
                 deadline_sec: float = 3600.0):
        self.queue = queue
        self.coordinator = coordinator
        self.phone = phone
        self.forward = forward
        self.deadline_sec = deadline_sec
        self.job_id: Optional[str] = None

    def start(self) -> str:
        # Subscribed before push: a rejection can be reported synchronously
        self.queue.on("timeout", self._on_not_executed)
        self.queue.on("rejected", self._on_not_executed)

        self.job_id = self.queue.push(
            ONESHOT_JOB_KEY,
            before=time.time() + self.deadline_sec,
            input={"endpoint": self.phone, "forward": self.forward},
        )
        logger.info("Pushed to queue", job_id=self.job_id)
        return self.job_id

    def _on_not_executed(self, key, *args) -> None:
        logger.error("One-shot job was not executed", key=key)
        self.coordinator.trigger("single_job_not_executed", ExitCode.FATAL)
