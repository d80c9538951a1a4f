"""
SIP inbound ingress.

The engine announces every incoming call with an ``inbound_call`` event; each
one becomes a job carrying the caller metadata in ``info``.
"""

import time
from typing import Any, Dict

from ..errors import InvalidJobError, QueueClosedError
from ..logging_config import get_logger

logger = get_logger(__name__)

SIP_JOB_KEY = "sip-inbound"


class SipInboundAdapter:

    def __init__(self, engine, queue, *, answer_timeout_sec: float = 60.0,
                 application_name: str = "", group_name: str = "Default"):
        self.engine = engine
        self.queue = queue
        self.answer_timeout_sec = answer_timeout_sec
        self.application_name = application_name
        self.group_name = group_name

    async def start(self) -> None:
        self.engine.on("inbound_call", self.on_inbound_call)
        logger.info("Waiting for calls via SIP", application=self.application_name, group=self.group_name)

        configs = await self.engine.describe_inbound()
        uris = []
        for cfg in configs:
            if cfg.get("uri"):
                uris.append(cfg["uri"])
            if cfg.get("alias_uri"):
                uris.append(cfg["alias_uri"])
        if uris:
            logger.info("Inbound SIP URIs", uris=uris)
        else:
            logger.warning(
                "No inbound SIP configuration found for this application; create one in the engine "
                "and call the SIP URI it returns",
                application=self.application_name,
                group=self.group_name,
            )

    def on_inbound_call(self, call: Dict[str, Any]) -> None:
        info = {"sip": call.get("sip") or {}, "call_id": call.get("call_id")}
        try:
            job_id = self.queue.push(
                SIP_JOB_KEY,
                before=time.time() + self.answer_timeout_sec,
                input={},
                info=info,
            )
        except (InvalidJobError, QueueClosedError) as exc:
            logger.warning("Inbound call not queued", call_id=info["call_id"], error=str(exc))
            return
        logger.info("Inbound call queued", job_id=job_id, call_id=info["call_id"])
