"""
Error taxonomy for the readiness engine.

Port failures are recovered into one of these classes before they reach a
job record, so callers never see raw httpx or provider exceptions.
"""

from enum import Enum


class ErrorKind(Enum):
    """Classification stored on failed jobs."""

    VALIDATION = "validation"
    PROVIDER_UNAVAILABLE = "provider_unavailable"
    PROVIDER_TRANSIENT = "provider_transient"
    INTERNAL = "internal"


class ReadinessError(Exception):
    """Base class for recoverable engine errors."""

    kind = ErrorKind.INTERNAL


class ValidationError(ReadinessError):
    """Bad input (e.g. empty task text). Rejected before a job exists."""

    kind = ErrorKind.VALIDATION


class NotFound(ReadinessError):
    """Referenced story, task, job or suggestion does not exist for the organization."""

    kind = ErrorKind.VALIDATION


class ProviderUnavailable(ReadinessError):
    """No language-model provider is configured. Never retried automatically."""

    kind = ErrorKind.PROVIDER_UNAVAILABLE

    def __init__(self, message: str = "No language model provider is configured"):
        super().__init__(message)


class ProviderTransientError(ReadinessError):
    """Timeout, 5xx or malformed payload from a provider. Triggers fail-over."""

    kind = ErrorKind.PROVIDER_TRANSIENT

    def __init__(self, provider: str, message: str):
        self.provider = provider
        super().__init__(f"[{provider}] {message}")


class RateLimitExceeded(ReadinessError):
    """Source-host token bucket exhausted past the caller's wait budget."""


class RepoHostError(ReadinessError):
    """Source host unreachable or returned an error. Downgraded to unavailable."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


class ProviderAuthError(ProviderUnavailable):
    """Provider rejected the configured API key (401/403). Needs a config fix, so no fail-over."""

    def __init__(self, provider: str, message: str):
        self.provider = provider
        super().__init__(f"[{provider}] {message}")
