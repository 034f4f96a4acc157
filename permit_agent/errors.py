"""Exceptions raised by the permit agent."""

from __future__ import annotations

import httpx

RETRYABLE_STATUS_CODES = frozenset({408, 429})


class PermitAgentError(RuntimeError):
    """Base class for errors raised by this package."""


class NetworkError(PermitAgentError):
    """A classified network failure.

    ``code`` is one of TIMEOUT, CONNECTION_ERROR, DNS_ERROR, HTTP_ERROR
    or NETWORK_ERROR.
    """

    def __init__(
        self,
        message: str,
        *,
        code: str = "NETWORK_ERROR",
        retryable: bool = False,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.retryable = retryable
        self.status_code = status_code

    @classmethod
    def from_status(cls, status_code: int, reason: str = "") -> "NetworkError":
        retryable = status_code >= 500 or status_code in RETRYABLE_STATUS_CODES
        message = f"HTTP {status_code}"
        if reason:
            message = f"{message}: {reason}"
        return cls(message, code="HTTP_ERROR", retryable=retryable, status_code=status_code)

    @classmethod
    def from_httpx(cls, exc: httpx.RequestError) -> "NetworkError":
        """Classify an httpx transport error."""
        text = str(exc) or exc.__class__.__name__
        if isinstance(exc, httpx.TimeoutException):
            return cls(text, code="TIMEOUT", retryable=True)
        lowered = text.lower()
        if "name or service not known" in lowered or "nodename nor servname" in lowered or "getaddrinfo" in lowered:
            return cls(text, code="DNS_ERROR", retryable=False)
        if isinstance(exc, (httpx.ConnectError, httpx.RemoteProtocolError, httpx.ReadError)):
            return cls(text, code="CONNECTION_ERROR", retryable=True)
        return cls(text, code="NETWORK_ERROR", retryable=False)


class RateLimitExceeded(PermitAgentError):
    """Raised when a rate-limit slot cannot be obtained within the allowed wait."""


class CircuitOpenError(PermitAgentError):
    """Raised when a call is rejected because its circuit breaker is open."""

    def __init__(self, name: str, retry_in: float) -> None:
        super().__init__(f"Circuit breaker {name} is OPEN. Next attempt in {int(retry_in * 1000)}ms")
        self.name = name
        self.retry_in = retry_in


class ExtractionError(PermitAgentError):
    """Raised when permit data cannot be extracted from page content."""


class JurisdictionNotFoundError(PermitAgentError):
    """Raised when no jurisdiction could be discovered for an address."""


class JobNotFoundError(PermitAgentError):
    """Raised when a job id is not present in the job store."""

    def __init__(self, job_id: str) -> None:
        super().__init__(f"Job not found: {job_id}")
        self.job_id = job_id
