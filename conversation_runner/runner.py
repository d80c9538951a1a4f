"""
Process wiring: engine, queue, processor, notifier, ingress and shutdown.

``Runner.run`` returns the process exit code once the shutdown coordinator
has finished its stop sequence.
"""

import asyncio
from typing import Optional

from .config import AppConfig
from .core.models import SessionConfig
from .core.processor import JobProcessor
from .core.queue import JobQueue
from .core.shutdown import ShutdownCoordinator
from .engine import ConversationEngine, build_engine
from .ingress import HttpIngress, OneShotAdapter, SipInboundAdapter
from .logging_config import get_logger
from .notify import WebhookNotifier

logger = get_logger(__name__)

MODES = ("out", "in", "serve")


class Runner:
    """Builds and runs one process worth of components for a given mode."""

    def __init__(
        self,
        config: AppConfig,
        mode: str,
        *,
        phone: Optional[str] = None,
        forward: Optional[str] = None,
        engine: Optional[ConversationEngine] = None,
        install_handlers: bool = True,
    ):
        if mode not in MODES:
            raise ValueError(f"Unknown mode '{mode}' (expected one of {MODES})")
        if mode == "out" and not phone:
            raise ValueError("out mode requires a phone number or SIP URI")
        self.config = config
        self.mode = mode
        self.phone = phone
        self.forward = forward if forward is not None else config.inbound.forward
        self.engine = engine or build_engine(config.engine)
        self.install_handlers = install_handlers
        self.coordinator = ShutdownCoordinator()
        self.notifier = WebhookNotifier(timeout_sec=config.webhook.timeout_sec)
        concurrency = 1 if mode == "out" else config.queue.concurrency
        self.queue = JobQueue(self.engine.create_session, concurrency=concurrency)
        self.processor = JobProcessor(
            self.notifier,
            session_config=self._session_config(),
            default_input=config.default_input,
            webhook_url=config.webhook.url,
            webhook_token=config.webhook.token,
            forward=self.forward,
            stop_after_one_job=(mode == "out"),
            coordinator=self.coordinator,
        )
        self.http: Optional[HttpIngress] = None

    def _session_config(self) -> SessionConfig:
        cfg = self.config
        return SessionConfig(
            channel=cfg.session.channel,
            sip_config=cfg.session.sip_config,
            tts_profile=cfg.session.tts_profile,
            stt_profile=cfg.session.stt_profile,
            verbose=cfg.observers.verbose,
            transcript=cfg.observers.transcript,
        )

    def _wire(self) -> None:
        coordinator = self.coordinator
        if self.install_handlers:
            loop = asyncio.get_running_loop()
            coordinator.install_signal_handlers(loop)
            coordinator.install_exception_handler(loop)

        self.engine.on("unable_to_reconnect", lambda exc: coordinator.fatal("unable_to_reconnect", exc))
        self.engine.on("error", lambda data: logger.error("Engine error event", data=data))

        coordinator.attach_queue(self.queue)
        coordinator.add_resource("engine", self.engine.dispose)
        coordinator.add_resource("webhook", self.notifier.aclose)
        self.processor.attach(self.queue)

    async def _start_ingress(self) -> None:
        cfg = self.config
        if self.mode == "out":
            OneShotAdapter(
                self.queue,
                self.coordinator,
                phone=self.phone,
                forward=self.forward,
                deadline_sec=cfg.queue.default_deadline_sec,
            ).start()
        elif self.mode == "in":
            await SipInboundAdapter(
                self.engine,
                self.queue,
                answer_timeout_sec=cfg.inbound.answer_timeout_sec,
                application_name=cfg.engine.application_name,
                group_name=cfg.engine.group_name,
            ).start()
        else:
            self.http = HttpIngress(
                self.queue,
                api_tokens=cfg.http.api_tokens,
                host=cfg.http.host,
                port=cfg.http.port,
                deadline_sec=cfg.queue.default_deadline_sec,
            )
            await self.http.start()
            self.coordinator.add_resource("http", self.http.stop)

    async def run(self) -> int:
        self._wire()
        try:
            await self.engine.start()
            self.queue.start()
            await self._start_ingress()
            logger.info("Runner started", mode=self.mode, concurrency=self.queue.concurrency)
            logger.info("Press Ctrl+C to exit")
        except Exception as exc:
            self.coordinator.fatal("startup_failed", exc)
        return await self.coordinator.wait()
