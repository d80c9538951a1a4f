"""
Exception hierarchy for the conversation runner.

Job-local errors (invalid input, engine failures) are absorbed at the
processor or adapter boundary. Only connectivity loss escalates to a
process-wide shutdown.
"""


class RunnerError(Exception):
    """Base class for all runner errors."""


class InvalidJobError(RunnerError):
    """A job submission failed validation before it was queued."""


class QueueClosedError(RunnerError):
    """The queue has stopped accepting new jobs."""


class SessionStateError(RunnerError):
    """A session was used out of order (observer after execute, double execute)."""


class EngineError(RunnerError):
    """The conversation engine reported a failure for one session."""

    def __init__(self, message: str, *, details=None):
        super().__init__(message)
        self.details = details


class EngineUnavailableError(EngineError):
    """The conversation engine cannot be reached."""
