"""
Error taxonomy for the assessment core.

Every error carries an ErrorKind; the kind decides whether the gateway
retries it and whether it counts against the circuit breaker.
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from joshua.models.assessment_models import CycleReport


class ErrorKind(str, Enum):
    NETWORK = "network"
    TIMEOUT = "timeout"
    RATE_LIMIT_EXCEEDED = "rate_limit_exceeded"
    AUTHENTICATION = "authentication"
    INVALID_REQUEST = "invalid_request"
    OVERLOADED = "overloaded"
    PARSING = "parsing"
    VALIDATION = "validation"
    INSUFFICIENT_CONSENSUS = "insufficient_consensus"
    UNAVAILABLE = "unavailable"
    UNKNOWN = "unknown"


RETRYABLE_KINDS = frozenset(
    {
        ErrorKind.NETWORK,
        ErrorKind.TIMEOUT,
        ErrorKind.RATE_LIMIT_EXCEEDED,
        ErrorKind.OVERLOADED,
    }
)


class JoshuaError(Exception):
    """Base class for all assessment-core errors."""

    kind: ErrorKind = ErrorKind.UNKNOWN

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    @property
    def retryable(self) -> bool:
        return self.kind in RETRYABLE_KINDS


class ReasoningError(JoshuaError):
    """A call to the reasoning service failed."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code

    @property
    def trips_breaker(self) -> bool:
        """Whether this failure says something about the service's health."""
        return self.retryable or self.kind == ErrorKind.UNKNOWN


class NetworkError(ReasoningError):
    kind = ErrorKind.NETWORK


class ServiceTimeoutError(ReasoningError):
    kind = ErrorKind.TIMEOUT


class RateLimitExceededError(ReasoningError):
    kind = ErrorKind.RATE_LIMIT_EXCEEDED

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        retry_after: float | None = None,
    ) -> None:
        super().__init__(message, status_code)
        self.retry_after = retry_after


class AuthenticationError(ReasoningError):
    kind = ErrorKind.AUTHENTICATION


class InvalidRequestError(ReasoningError):
    kind = ErrorKind.INVALID_REQUEST


class OverloadedError(ReasoningError):
    kind = ErrorKind.OVERLOADED


class UnknownServiceError(ReasoningError):
    kind = ErrorKind.UNKNOWN


class ServiceUnavailableError(ReasoningError):
    """Raised when the circuit breaker is open and rejecting calls."""

    kind = ErrorKind.UNAVAILABLE

    def __init__(self, service_name: str, recovery_time: float) -> None:
        self.service_name = service_name
        self.recovery_time = recovery_time
        super().__init__(
            f"Circuit breaker open for {service_name}. "
            f"Recovery in {recovery_time:.1f}s"
        )


class ParsingError(JoshuaError):
    """The service answered but its text could not be turned into an analysis."""

    kind = ErrorKind.PARSING

    def __init__(self, message: str, errors: list[str] | None = None) -> None:
        super().__init__(message)
        self.errors = errors or []


class ResponseValidationError(ParsingError):
    """The payload parsed but broke a business rule."""

    kind = ErrorKind.VALIDATION


class InsufficientConsensusError(JoshuaError):
    kind = ErrorKind.INSUFFICIENT_CONSENSUS

    def __init__(self, valid: int, required: int = 2) -> None:
        super().__init__(
            f"Need at least {required} valid analyses for consensus, got {valid}"
        )
        self.valid = valid
        self.required = required


class AssessmentError(JoshuaError):
    """An assessment cycle failed; carries the stage and the cycle report."""

    def __init__(
        self,
        stage: str,
        message: str,
        report: CycleReport,
        kind: ErrorKind = ErrorKind.UNKNOWN,
    ) -> None:
        super().__init__(f"Assessment failed at {stage} stage: {message}")
        self.stage = stage
        self.report = report
        self.kind = kind


_STATUS_ERRORS: dict[int, type[ReasoningError]] = {
    400: InvalidRequestError,
    401: AuthenticationError,
    403: AuthenticationError,
    429: RateLimitExceededError,
    503: OverloadedError,
    529: OverloadedError,
}


def error_for_status(
    status_code: int, message: str, retry_after: float | None = None
) -> ReasoningError:
    """Map an HTTP error status from the reasoning service onto the taxonomy."""
    error_cls = _STATUS_ERRORS.get(status_code, UnknownServiceError)
    text = f"HTTP {status_code} - {message}"
    if error_cls is RateLimitExceededError:
        return RateLimitExceededError(text, status_code, retry_after=retry_after)
    return error_cls(text, status_code)
