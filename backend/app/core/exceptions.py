# app/core/exceptions.py
"""
Domain exception hierarchy.

All game errors inherit from DojoError so routers can translate them into
HTTP responses in one place. Provider errors are split into transient
(retryable) and permanent (not retried) classes; the retry utility relies on
that split.
"""
from typing import Any

import httpx


class DojoError(Exception):
    """
    Base exception for all game errors.

    Attributes:
        message: Human-readable error message
        context: Additional context for debugging
    """

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        self.message = message
        self.context = context or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            return f"{self.message} ({context_str})"
        return self.message


# ============================================================================
# Request / state errors
# ============================================================================

class ValidationError(DojoError):
    """Malformed input message or out-of-range round state."""


class NotFoundError(DojoError):
    """Round, persona or reward does not exist (or is not owned by the caller)."""


class ForbiddenError(DojoError):
    """Caller is not allowed to act on the resource."""


class StateConflictError(DojoError):
    """
    The requested transition conflicts with stored state.

    Raised when scoring a round that already has a terminal result, or when a
    reward is requested for a round that is not won / already rewarded.
    """

    def __init__(self, message: str, code: str, context: dict[str, Any] | None = None):
        super().__init__(message, context)
        self.code = code


class UnsafeContentError(DojoError):
    """
    Forced-loss signal raised by message screening.

    Not a failure: the scoring pipeline catches it and ends the round as lost.
    """

    def __init__(self, reason: str, detail: str | None = None):
        super().__init__(detail or reason, context={"reason": reason})
        self.reason = reason
        self.detail = detail


# ============================================================================
# Provider errors (external AI capabilities)
# ============================================================================

class ProviderError(DojoError):
    """Base class for failures of an external capability."""

    def __init__(self, provider: str, reason: str, status_code: int | None = None):
        context: dict[str, Any] = {"provider": provider}
        if status_code is not None:
            context["status"] = status_code
        super().__init__(f"{provider}: {reason}", context=context)
        self.provider = provider
        self.status_code = status_code


class ProviderTransientError(ProviderError):
    """Timeouts, 5xx and 429 responses. Retryable."""


class ProviderTimeoutError(ProviderTransientError):
    """The call did not complete within its timeout."""

    def __init__(self, provider: str, timeout: float):
        super().__init__(provider, f"timed out after {timeout:.1f}s")
        self.timeout = timeout


class ContentFilteredError(ProviderTransientError):
    """The image provider refused the prompt on safety grounds."""

    def __init__(self, provider: str, reason: str = "content filtered"):
        super().__init__(provider, reason, status_code=400)


class ProviderPermanentError(ProviderError):
    """4xx other than 429, or a payload that could not be used. Not retried."""


class RewardGenerationError(DojoError):
    """The mandatory reward text could not be produced."""


def classify_http_error(provider: str, exc: Exception) -> ProviderError:
    """
    Map an httpx failure onto the provider error taxonomy.

    Args:
        provider: Name used in log lines and error messages
        exc: Exception raised by httpx (or by raise_for_status)

    Returns:
        ProviderTransientError for timeouts, connection errors, 5xx and 429;
        ProviderPermanentError for everything else.
    """
    if isinstance(exc, ProviderError):
        return exc
    if isinstance(exc, httpx.TimeoutException):
        return ProviderTimeoutError(provider, 0.0)
    if isinstance(exc, httpx.HTTPStatusError):
        code = exc.response.status_code
        if code == 429 or 500 <= code < 600:
            return ProviderTransientError(provider, f"HTTP {code}", status_code=code)
        return ProviderPermanentError(provider, f"HTTP {code}", status_code=code)
    if isinstance(exc, httpx.TransportError):
        return ProviderTransientError(provider, f"transport error: {exc}")
    return ProviderPermanentError(provider, str(exc) or type(exc).__name__)
