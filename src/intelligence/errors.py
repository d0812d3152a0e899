"""
Error taxonomy for the research engine.

Source errors are recorded on tasks and never abort a job. Only a
CorrelationError (or cancellation) turns a whole job into FAILED.
"""

from typing import Optional


class ResearchError(Exception):
    """Base class for all research engine errors."""
    pass


class SourceError(ResearchError):
    """A source adapter or the summarizer could not produce a result."""

    retryable = False

    def __init__(self, detail: str, source: Optional[str] = None):
        super().__init__(detail)
        self.detail = detail
        self.source = source

    def __str__(self) -> str:
        if self.source:
            return f"{self.source}: {self.detail}"
        return self.detail


class RetryableSourceError(SourceError):
    """Timeout, rate limiting or a transient 5xx-class failure."""

    retryable = True


class PermanentSourceError(SourceError):
    """Malformed target, 4xx-class failure, or adapter-declared non-retryable."""

    retryable = False


class ExhaustedRetries(SourceError):
    """A retryable failure persisted past the attempt ceiling."""

    def __init__(self, detail: str, source: Optional[str] = None, attempts: int = 0):
        super().__init__(detail, source)
        self.attempts = attempts

    def __str__(self) -> str:
        return f"after {self.attempts} attempts: {super().__str__()}"


class InvalidRequest(ResearchError, ValueError):
    """Rejected synchronously at submission; never enters the DAG."""
    pass


class CorrelationError(ResearchError):
    """The correlation engine had zero usable sources."""
    pass


class InvalidTransition(ResearchError):
    """A task or job state change outside the state machine."""

    def __init__(self, entity: str, current: str, target: str):
        super().__init__(f"{entity}: illegal transition {current} -> {target}")
        self.entity = entity
        self.current = current
        self.target = target


class JobNotFound(ResearchError, KeyError):
    """No job with the given id exists in the store."""

    def __str__(self) -> str:
        return f"Job not found: {self.args[0] if self.args else ''}"


class GateClosedError(ResearchError):
    """The fetch gate is shutting down and no longer grants permits."""
    pass
