"""
Exception classes for the KMS client.
"""

from typing import Any


class KMSError(Exception):
    """Base exception for KMS client errors."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class ConfigurationError(KMSError):
    """Client configuration is missing or invalid."""
    pass


class CredentialError(ConfigurationError):
    """Credentials could not be resolved."""
    pass


class ValidationError(KMSError):
    """A required call argument is missing."""
    pass


class SigningError(KMSError):
    """The request could not be signed."""
    pass


class TransportError(KMSError):
    """Non-transient network failure (connection refused, bad TLS, ...)."""
    pass


class RetryableTransportError(KMSError):
    """Server error or timeout - retried until the attempt budget runs out."""
    pass


class TerminalResponseError(KMSError):
    """The server answered with a non-retryable response."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        body: str = "",
        code: str | None = None,
        request_id: str | None = None,
    ):
        super().__init__(message, status_code=status_code)
        self.body = body
        self.code = code
        self.request_id = request_id


class ExhaustionError(KMSError):
    """Every allowed attempt failed with a retryable outcome."""

    def __init__(
        self,
        message: str,
        attempts: int,
        last_request: Any = None,
        last_outcome: Any = None,
        deadline_exceeded: bool = False,
    ):
        status_code = getattr(last_outcome, "status_code", None)
        super().__init__(message, status_code=status_code)
        self.attempts = attempts
        self.last_request = last_request
        self.last_outcome = last_outcome
        self.deadline_exceeded = deadline_exceeded
