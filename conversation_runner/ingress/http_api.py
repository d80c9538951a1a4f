"""
HTTP ingress (aiohttp).

POST /conversation   enqueue a job; JSON body is merged into job input
GET  /live           liveness probe with queue counters
GET  /metrics        Prometheus metrics

Authentication: ``Authorization: Bearer <token>`` or ``?token=<token>``
checked against the configured token set. An empty set disables
authentication entirely (local-use default).
"""

import hmac
import json
import time
from typing import Iterable, Optional

from aiohttp import web
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from ..errors import InvalidJobError, QueueClosedError
from ..logging_config import get_logger

logger = get_logger(__name__)

HTTP_JOB_KEY = "http-request"


def _error(status: int, message: str) -> web.Response:
    return web.json_response({"status": "error", "message": message}, status=status)


class HttpIngress:
    """Accepts conversation requests over HTTP and pushes them to the queue."""

    def __init__(
        self,
        queue,
        *,
        api_tokens: Iterable[str] = (),
        host: str = "127.0.0.1",
        port: int = 8080,
        deadline_sec: float = 3600.0,
    ):
        self.queue = queue
        self.api_tokens = [t for t in api_tokens if t]
        self.host = host
        self.port = port
        self.deadline_sec = deadline_sec
        self._runner: Optional[web.AppRunner] = None

    @property
    def auth_enabled(self) -> bool:
        return bool(self.api_tokens)

    def build_app(self) -> web.Application:
        app = web.Application()
        app.router.add_post('/conversation', self._conversation_handler)
        app.router.add_get('/live', self._live_handler)
        app.router.add_get('/metrics', self._metrics_handler)
        return app

    async def start(self) -> None:
        runner = web.AppRunner(self.build_app())
        await runner.setup()
        site = web.TCPSite(runner, self.host, self.port)
        await site.start()
        self._runner = runner
        logger.info("HTTP ingress started", host=self.host, port=self.port, auth_enabled=self.auth_enabled)
        if not self.auth_enabled:
            logger.warning("HTTP ingress authentication disabled (no API tokens configured)")

    async def stop(self) -> None:
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None
            logger.info("HTTP ingress stopped")

    def _presented_token(self, request: web.Request) -> Optional[str]:
        auth_header = request.headers.get('Authorization', '')
        if auth_header.startswith('Bearer '):
            return auth_header[len('Bearer '):].strip()
        return request.query.get('token')

    def _is_request_authorized(self, request: web.Request) -> bool:
        if not self.auth_enabled:
            return True
        presented = self._presented_token(request)
        if not presented:
            return False
        # Compare against every token so timing does not reveal which one matched
        matched = False
        for expected in self.api_tokens:
            if hmac.compare_digest(presented.encode(), expected.encode()):
                matched = True
        return matched

    async def _conversation_handler(self, request: web.Request) -> web.Response:
        if not self._is_request_authorized(request):
            logger.warning("Rejected unauthorized conversation request", remote=request.remote)
            return _error(401, "Unauthorized")

        raw = await request.read()
        if raw.strip():
            try:
                body = json.loads(raw)
            except (json.JSONDecodeError, UnicodeDecodeError) as exc:
                return _error(400, f"Malformed JSON body: {exc}")
        else:
            body = {}
        if not isinstance(body, dict):
            return _error(400, "Request body must be a JSON object")

        try:
            job_id = self.queue.push(HTTP_JOB_KEY, before=time.time() + self.deadline_sec, input=body)
        except InvalidJobError as exc:
            return _error(400, str(exc))
        except QueueClosedError:
            return _error(503, "Service is shutting down")

        logger.info("Conversation request queued", job_id=job_id)
        return web.json_response({"status": "ok", "message": "Conversation queued", "jobId": job_id})

    async def _live_handler(self, request: web.Request) -> web.Response:
        """Liveness probe: returns 200 if process is up."""
        return web.json_response({
            "status": "ok",
            "accepting": self.queue.accepting,
            "active": self.queue.active,
            "waiting": self.queue.waiting,
        })

    async def _metrics_handler(self, request: web.Request) -> web.Response:
        """Expose Prometheus metrics."""
        data = generate_latest()
        # aiohttp forbids 'charset=' inside content_type arg; pass full header via headers.
        return web.Response(body=data, headers={"Content-Type": CONTENT_TYPE_LATEST})
