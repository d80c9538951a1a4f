"""
Best-effort webhook delivery.

A delivery is a single POST. Failures are logged and counted, never raised
and never retried: losing one notification is preferable to stalling or
crashing the job pipeline.
"""

import asyncio
import json
from typing import Any, Callable, Dict, Optional, Set, Union

import aiohttp

from .. import metrics
from ..core.models import WebhookPayload
from ..logging_config import get_logger

logger = get_logger(__name__)


class WebhookNotifier:
    """Posts job outcomes to an external HTTP(S) listener."""

    def __init__(
        self,
        timeout_sec: Optional[float] = None,
        session_factory: Optional[Callable[[], aiohttp.ClientSession]] = None,
    ):
        self._timeout_sec = timeout_sec
        self._session_factory = session_factory
        self._session: Optional[aiohttp.ClientSession] = None
        self._tasks: Set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            factory = self._session_factory or aiohttp.ClientSession
            self._session = factory()
        return self._session

    async def deliver(self, url: Optional[str], token: Optional[str], payload: Union[WebhookPayload, Dict[str, Any]]) -> bool:
        """POST ``payload`` to ``url``. Returns True on a 2xx response; never raises."""
        if not url:
            metrics.WEBHOOK_DELIVERIES.labels(result="skipped").inc()
            return False

        body = payload.to_dict() if isinstance(payload, WebhookPayload) else payload
        job_id = body.get("jobId")
        headers = {"Content-Type": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"

        kwargs = {}
        if self._timeout_sec:
            kwargs["timeout"] = aiohttp.ClientTimeout(total=self._timeout_sec)

        try:
            session = await self._ensure_session()
            async with session.post(url, data=json.dumps(body, default=str), headers=headers, **kwargs) as response:
                if response.status >= 300:
                    reason = await response.text()
                    logger.warning("Webhook rejected notification", job_id=job_id, url=url,
                                   status=response.status, reason=reason[:200])
                    metrics.WEBHOOK_DELIVERIES.labels(result="http_error").inc()
                    return False
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError, ValueError) as exc:
            logger.warning("Webhook delivery failed", job_id=job_id, url=url, error=str(exc) or type(exc).__name__)
            metrics.WEBHOOK_DELIVERIES.labels(result="network_error").inc()
            return False

        logger.info("Webhook delivered", job_id=job_id, url=url)
        metrics.WEBHOOK_DELIVERIES.labels(result="sent").inc()
        return True

    def submit(self, url: Optional[str], token: Optional[str], payload: WebhookPayload) -> Optional[asyncio.Task]:
        """Schedule ``deliver`` in the background and return immediately."""
        if not url:
            metrics.WEBHOOK_DELIVERIES.labels(result="skipped").inc()
            return None
        task = asyncio.get_running_loop().create_task(self.deliver(url, token, payload))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def aclose(self) -> None:
        """Wait for outstanding deliveries, then close the HTTP session."""
        if self._tasks:
            logger.info("Waiting for webhook deliveries", pending=len(self._tasks))
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None
