"""Dispatcher Exception Hierarchy

Structured exception types for the dispatch path:
- RelayError: Base class for all dispatcher errors
- ConfigurationError: No provider is configured (fatal, never retried)
- UnsupportedTaskError: No provider declares the task (fatal per call)
- ProviderError: One provider's attempt failed (recovered by fallback)
- ProviderTimeoutError: One provider's attempt exceeded its time budget
- FallbackExhaustedError: Every ranked provider failed

Only ConfigurationError, UnsupportedTaskError and FallbackExhaustedError
ever reach a caller of execute_with_fallback. ProviderError is consumed by
the fallback loop and turned into a usage log entry.
"""

from typing import Optional


class RelayError(Exception):
    """Base exception for all dispatcher errors."""


class ConfigurationError(RelayError):
    """Raised when no provider has credentials configured.

    This is NOT retryable - the deployment must be configured.
    """

    def __init__(self, message: str = "No AI provider is configured"):
        super().__init__(message)


class UnsupportedTaskError(RelayError):
    """Raised when no registered provider declares the task type.

    Attributes:
        task_type: The task tag that nothing supports
    """

    def __init__(self, task_type: str):
        self.task_type = task_type
        super().__init__(f"No provider supports task type: {task_type}")


class ProviderError(RelayError):
    """Raised when a single provider attempt fails.

    Covers transport failures, non-2xx responses and malformed replies.

    Attributes:
        provider: Key of the provider that failed
        status_code: Upstream HTTP status, if one was received
    """

    def __init__(
        self,
        message: str,
        provider: Optional[str] = None,
        status_code: Optional[int] = None,
    ):
        self.provider = provider
        self.status_code = status_code
        super().__init__(message)


class ProviderTimeoutError(ProviderError):
    """Raised when a provider attempt exceeds its time budget.

    Treated exactly like any other provider failure by the fallback loop.
    """

    def __init__(
        self,
        provider: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
    ):
        self.timeout_seconds = timeout_seconds
        detail = f" after {timeout_seconds}s" if timeout_seconds else ""
        super().__init__(f"Provider request timed out{detail}", provider=provider)


class FallbackExhaustedError(RelayError):
    """Raised when every ranked provider failed for one dispatch.

    Carries the final provider's error, which is also chained as
    ``__cause__``; the message is that error's message.

    Attributes:
        last_error: Error raised by the last provider attempted
        attempted: Provider keys in the order they were tried
    """

    def __init__(self, last_error: BaseException, attempted: list[str]):
        self.last_error = last_error
        self.attempted = list(attempted)
        super().__init__(str(last_error) or type(last_error).__name__)
