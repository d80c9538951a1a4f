"""
Core data models for the conversation runner.

A Job moves pending -> admitted -> configured -> executing -> terminal and
carries exactly one terminal outcome.
"""

import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Dict, Mapping, Optional

if TYPE_CHECKING:
    from ..engine.base import ConversationSession


class JobStatus(Enum):
    PENDING = "pending"
    ADMITTED = "admitted"
    CONFIGURED = "configured"
    EXECUTING = "executing"
    TERMINAL = "terminal"


class OutcomeKind(Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    TIMED_OUT = "timed_out"
    REJECTED = "rejected"


@dataclass(frozen=True)
class JobOutcome:
    """Terminal outcome of a job. Exactly one per job."""
    kind: OutcomeKind
    result: Any = None
    error: Optional[str] = None

    @classmethod
    def succeeded(cls, result: Any) -> "JobOutcome":
        return cls(OutcomeKind.SUCCEEDED, result=result)

    @classmethod
    def failed(cls, error: str) -> "JobOutcome":
        return cls(OutcomeKind.FAILED, error=error)

    @classmethod
    def timed_out(cls) -> "JobOutcome":
        return cls(OutcomeKind.TIMED_OUT, error="deadline elapsed")

    @classmethod
    def rejected(cls, error: str) -> "JobOutcome":
        return cls(OutcomeKind.REJECTED, error=error)


@dataclass(frozen=True)
class SessionConfig:
    """Session overrides applied before execution. None keeps the engine default."""
    channel: str = "audio"
    sip_config: Optional[str] = None
    tts_profile: Optional[str] = None
    stt_profile: Optional[str] = None
    verbose: bool = False
    transcript: bool = False


def new_job_id() -> str:
    return uuid.uuid4().hex


def merge_input(defaults: Optional[Mapping[str, Any]], overrides: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """Ordered merge of two input mappings; keys in ``overrides`` win."""
    merged: Dict[str, Any] = {}
    for source in (defaults or {}, overrides or {}):
        for key, value in source.items():
            merged[str(key)] = value
    return merged


@dataclass
class Job:
    """One unit of queued work: a single conversational session to execute."""
    key: str
    before: float  # absolute deadline, unix seconds
    input: Dict[str, Any] = field(default_factory=dict)
    info: Optional[Dict[str, Any]] = None
    job_id: str = field(default_factory=new_job_id)
    status: JobStatus = JobStatus.PENDING
    created_at: float = field(default_factory=time.time)
    admitted_at: Optional[float] = None
    session: Optional["ConversationSession"] = None
    _outcome: Optional[JobOutcome] = field(default=None, repr=False)

    @property
    def outcome(self) -> Optional[JobOutcome]:
        return self._outcome

    @property
    def is_terminal(self) -> bool:
        return self._outcome is not None

    @property
    def is_inbound(self) -> bool:
        return bool(self.info)

    def finish(self, outcome: JobOutcome) -> None:
        """Record the terminal outcome. A second call is a programming error."""
        if self._outcome is not None:
            raise RuntimeError(f"Job {self.job_id} already finished with {self._outcome.kind.value}")
        self._outcome = outcome
        self.status = JobStatus.TERMINAL

    def seconds_left(self, now: Optional[float] = None) -> float:
        return self.before - (time.time() if now is None else now)


@dataclass(frozen=True)
class WebhookPayload:
    """Immutable notification body built once per terminal job state."""
    job_id: str
    input: Mapping[str, Any]
    timestamp: str
    result: Any = None
    error: Optional[str] = None
    info: Optional[Mapping[str, Any]] = None
    has_result: bool = False

    @classmethod
    def for_success(cls, job: Job, merged_input: Mapping[str, Any], result: Any) -> "WebhookPayload":
        return cls(
            job_id=job.job_id,
            input=MappingProxyType(dict(merged_input)),
            timestamp=utc_timestamp(),
            result=result,
            info=job.info or None,
            has_result=True,
        )

    @classmethod
    def for_failure(cls, job: Job, merged_input: Mapping[str, Any], error: str) -> "WebhookPayload":
        return cls(
            job_id=job.job_id,
            input=MappingProxyType(dict(merged_input)),
            timestamp=utc_timestamp(),
            error=error,
            info=job.info or None,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Wire format: jobId, result|error, timestamp, input, info (inbound only)."""
        data: Dict[str, Any] = {"jobId": self.job_id}
        if self.has_result:
            data["result"] = self.result
        else:
            data["error"] = self.error
        data["timestamp"] = self.timestamp
        data["input"] = dict(self.input)
        if self.info:
            data["info"] = dict(self.info)
        return data


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()
