"""
Remote conversation engine client.

One control WebSocket carries all session traffic as JSON frames:

    -> session.start      {session_id, channel, input, config, deadline, call_id}
    <- session.event      {session_id, event, data}
    <- session.completed  {session_id, result}
    <- session.failed     {session_id, error}
    <- inbound.call       {call_id, sip}

The REST side (aiohttp) is used for inventory queries such as inbound SIP
configurations. A dropped control connection is retried with exponential
backoff; when retries are exhausted the engine emits ``unable_to_reconnect``
and every in-flight session fails with EngineUnavailableError.
"""

import asyncio
import json
from typing import Any, Dict, List, Optional, Tuple

import aiohttp
import websockets
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential
from websockets.exceptions import ConnectionClosed, WebSocketException

from ..config import EngineConfig
from ..core.models import Job
from ..errors import EngineError, EngineUnavailableError
from ..logging_config import get_logger
from .base import ConversationEngine, ConversationSession

logger = get_logger(__name__)

_RETRYABLE = (OSError, WebSocketException, asyncio.TimeoutError)


class RemoteSession(ConversationSession):

    def __init__(self, engine: "RemoteEngine", job: Job):
        super().__init__(job.job_id, job.input, job.info)
        self._engine = engine
        self._deadline = job.before

    async def _run(self, channel: str) -> Any:
        cfg = self.config
        frame = {
            "type": "session.start",
            "session_id": self.job_id,
            "channel": channel,
            "input": self.input,
            "config": {
                "sip": cfg.sip_config,
                "tts": cfg.tts_profile,
                "stt": cfg.stt_profile,
                "debug_events": cfg.verbose,
            },
            "deadline": self._deadline,
        }
        if self.info and self.info.get("call_id"):
            frame["call_id"] = self.info["call_id"]

        future = self._engine.register(self)
        try:
            await self._engine.send(frame)
            return await future
        finally:
            self._engine.unregister(self.job_id)


class RemoteEngine(ConversationEngine):
    """Client for a conversation engine reachable over WebSocket + HTTP."""

    def __init__(self, config: EngineConfig):
        super().__init__()
        self.config = config
        self._ws = None
        self._http: Optional[aiohttp.ClientSession] = None
        self._listener: Optional[asyncio.Task] = None
        self._pending: Dict[str, Tuple[RemoteSession, asyncio.Future]] = {}
        self._closing = False

    @property
    def connected(self) -> bool:
        return self._ws is not None

    def _headers(self) -> Dict[str, str]:
        if self.config.api_key:
            return {"Authorization": f"Bearer {self.config.api_key}"}
        return {}

    async def start(self) -> None:
        """Connect to the engine and start the event listener."""
        self._http = aiohttp.ClientSession(headers=self._headers())
        await self._connect()
        self._listener = asyncio.create_task(self._listen_forever())

    async def _connect(self) -> None:
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(max(1, self.config.reconnect_attempts)),
            wait=wait_exponential(multiplier=1, min=1, max=10),
            retry=retry_if_exception_type(_RETRYABLE),
            reraise=True,
        ):
            with attempt:
                logger.info("Connecting to conversation engine...", url=self.config.ws_url,
                            attempt=attempt.retry_state.attempt_number)
                self._ws = await asyncio.wait_for(
                    websockets.connect(self.config.ws_url, additional_headers=self._headers()),
                    timeout=self.config.connect_timeout_sec,
                )
        logger.info("Connected to conversation engine", url=self.config.ws_url)

    async def _listen_forever(self) -> None:
        while not self._closing:
            try:
                async for message in self._ws:
                    try:
                        self._handle_message(message)
                    except Exception as exc:
                        logger.error("Failed to handle engine frame", error=str(exc), exc_info=True)
            except ConnectionClosed as exc:
                logger.warning("Engine connection closed", code=getattr(exc, "code", None))
            except Exception as exc:
                logger.error("Engine listener failed", error=str(exc), exc_info=True)
            if self._closing:
                return

            self._ws = None
            self._fail_pending(EngineUnavailableError("connection to engine lost"))
            try:
                await self._connect()
            except Exception as exc:
                logger.error("Failed to reconnect to conversation engine", error=str(exc))
                self.emit("unable_to_reconnect", exc)
                return

    def _handle_message(self, raw_message) -> None:
        try:
            data = json.loads(raw_message)
        except (json.JSONDecodeError, TypeError):
            logger.warning("Invalid JSON frame from engine")
            return
        if not isinstance(data, dict):
            logger.warning("Engine frame is not a JSON object", frame_type=type(data).__name__)
            return

        msg_type = data.get("type", "")
        session_id = data.get("session_id")

        if msg_type == "session.event":
            entry = self._pending.get(session_id)
            if entry is None:
                return
            session = entry[0]
            event = data.get("event")
            payload = data.get("data")
            if not isinstance(payload, dict):
                payload = {}
            if event == "transcription":
                session.emit("transcription", payload.get("text", ""), bool(payload.get("incoming")))
            elif event in ("debug_log", "raw"):
                session.emit(event, payload)
            else:
                logger.debug("Unhandled session event", event_type=event, session_id=session_id)

        elif msg_type == "session.completed":
            self._resolve(session_id, result=data.get("result"))

        elif msg_type == "session.failed":
            self._resolve(session_id, error=EngineError(str(data.get("error") or "unknown engine error"),
                                                        details=data.get("details")))

        elif msg_type == "inbound.call":
            self.emit("inbound_call", {"call_id": data.get("call_id"), "sip": data.get("sip") or {}})

        elif msg_type == "error":
            logger.error("Engine reported an error", error=data.get("error"), session_id=session_id)
            self.emit("error", data)

        else:
            logger.debug("Unhandled engine message type", message_type=msg_type)

    def _resolve(self, session_id, result=None, error: Optional[Exception] = None) -> None:
        entry = self._pending.get(session_id)
        if entry is None:
            logger.debug("Completion for unknown session", session_id=session_id)
            return
        future = entry[1]
        if future.done():
            return
        if error is not None:
            future.set_exception(error)
        else:
            future.set_result(result)

    def _fail_pending(self, error: Exception) -> None:
        for session_id in list(self._pending):
            self._resolve(session_id, error=error)

    def register(self, session: RemoteSession) -> asyncio.Future:
        future = asyncio.get_running_loop().create_future()
        self._pending[session.job_id] = (session, future)
        return future

    def unregister(self, session_id: str) -> None:
        self._pending.pop(session_id, None)

    async def send(self, frame: Dict[str, Any]) -> None:
        if self._ws is None:
            raise EngineUnavailableError("not connected to engine")
        try:
            await self._ws.send(json.dumps(frame))
        except ConnectionClosed as exc:
            raise EngineUnavailableError(f"engine connection closed: {exc}")

    def create_session(self, job: Job) -> RemoteSession:
        return RemoteSession(self, job)

    async def describe_inbound(self) -> List[Dict[str, Any]]:
        """List inbound SIP configs for this application and group."""
        if self._http is None:
            return []
        url = f"{self.config.http_url.rstrip('/')}/sip/inbound"
        params = {"application": self.config.application_name, "group": self.config.group_name}
        try:
            async with self._http.get(url, params=params) as response:
                if response.status >= 400:
                    logger.warning("Inbound config lookup failed", status=response.status)
                    return []
                configs = await response.json()
        except aiohttp.ClientError as exc:
            logger.warning("Inbound config lookup failed", error=str(exc))
            return []
        return [c for c in configs or [] if isinstance(c, dict)]

    async def dispose(self) -> None:
        self._closing = True
        if self._listener and not self._listener.done():
            self._listener.cancel()
            try:
                await self._listener
            except asyncio.CancelledError:
                pass
        if self._ws is not None:
            await self._ws.close()
            self._ws = None
        self._fail_pending(EngineUnavailableError("engine client disposed"))
        if self._http and not self._http.closed:
            await self._http.close()
        self._http = None
        logger.info("Disconnected from conversation engine")
