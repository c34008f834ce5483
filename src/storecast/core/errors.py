"""
Structured error types for storecast.

Every failure the publishing pipeline can meet is a ``StorecastError``
subclass carrying a category, a retry flag, structured context and an
optional chained cause.  The orchestrator uses these classes in two ways:

- **Raised:** tenant-scoping violations, lifecycle violations, bad input and
  configuration problems abort the current operation.
- **Recorded:** per-item outcomes (vanished rows, disconnected targets,
  rejected or timed-out publishes) are built as error *values* and written
  back as a status plus message; they never propagate to the trigger.

Manifesto:
    - **Typed hierarchy:** one class per failure kind the pipeline reasons about
    - **Explicit retry semantics:** each error knows if a retry may succeed
    - **Rich context:** tenant, post, target and platform travel with the error
    - **Error chaining:** the original exception is kept as ``cause``

Architecture:
    ::

        ┌───────────────────────────────────────────────────────────────┐
        │                       StorecastError                          │
        │        (category, retryable, context, cause)                  │
        ├───────────────────────────────────────────────────────────────┤
        │  ScopeViolation          TENANCY       fatal, never swallowed │
        │  NotFoundError           NOT_FOUND     per item               │
        │  DestinationUnavailable  DESTINATION   per item               │
        │  PublishRejectedError    PUBLISH       per item, verbatim     │
        │  PublishTimeoutError     TIMEOUT       per item, retryable    │
        │  InvalidTransitionError  STATE         lifecycle guard        │
        │  ValidationError         VALIDATION    input checks           │
        │  ConfigError             CONFIG        settings / wiring      │
        └───────────────────────────────────────────────────────────────┘

Tags:
    error-handling, exception-hierarchy, tenancy, publishing, storecast

Doc-Types:
    - API Reference
    - Error Handling Guide
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """
    Standard error categories for classification and log routing.

    Attributes:
        TENANCY: Tenant-scoping contract broken
        NOT_FOUND: Referenced entity does not exist (or vanished mid-run)
        DESTINATION: Distribution target cannot be used
        PUBLISH: External destination rejected the content
        TIMEOUT: External call exceeded its bound
        STATE: Illegal lifecycle transition
        VALIDATION: Bad input
        CONFIG: Missing or invalid configuration
        DATABASE: Persistence failure
        INTERNAL: Bugs, unexpected state
    """

    TENANCY = "TENANCY"
    NOT_FOUND = "NOT_FOUND"
    DESTINATION = "DESTINATION"
    PUBLISH = "PUBLISH"
    TIMEOUT = "TIMEOUT"
    STATE = "STATE"
    VALIDATION = "VALIDATION"
    CONFIG = "CONFIG"
    DATABASE = "DATABASE"
    INTERNAL = "INTERNAL"


@dataclass
class ErrorContext:
    """
    Structured metadata attached to an error.

    Only non-None fields are serialized by ``to_dict()``; anything that has
    no dedicated field lands in ``metadata``.  Never store access tokens here.
    """

    tenant_id: str | None = None
    campaign_id: str | None = None
    post_id: str | None = None
    post_target_id: str | None = None
    target_id: str | None = None
    platform: str | None = None
    run_id: str | None = None

    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["tenant_id", "campaign_id", "post_id", "post_target_id",
                    "target_id", "platform", "run_id"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class StorecastError(Exception):
    """
    Base exception for all storecast errors.

    Subclasses set ``default_category`` and ``default_retryable`` so callers
    rarely pass them explicitly.

    Examples:
        >>> error = StorecastError("Something went wrong")
        >>> error.category
        <ErrorCategory.INTERNAL: 'INTERNAL'>
        >>> error.with_context(tenant_id="t-1").context.tenant_id
        't-1'
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> StorecastError:
        """
        Add context to this error (fluent API).

        Usage:
            raise NotFoundError("Post not found").with_context(
                tenant_id=scope.tenant_id,
                post_id=post_id,
            )
        """
        for key, value in kwargs.items():
            if hasattr(self.context, key):
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# TENANCY
# =============================================================================


class ScopeViolation(StorecastError):
    """
    Tenant-scoping contract broken.

    Raised when a tenant-scoped operation runs without a resolved tenant, or
    when the all-tenants scope reaches anything but the due-item scan.
    Fatal: the orchestrator lets it propagate instead of recording it.
    """

    default_category = ErrorCategory.TENANCY
    default_retryable = False


# =============================================================================
# PER-ITEM OUTCOMES
# =============================================================================


class NotFoundError(StorecastError):
    """Referenced entity does not exist in the caller's tenant."""

    default_category = ErrorCategory.NOT_FOUND
    default_retryable = False

    def __init__(self, entity: str, entity_id: str, message: str | None = None, **kwargs: Any):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(message or f"{entity} not found: {entity_id}", **kwargs)


class DestinationUnavailableError(StorecastError):
    """Distribution target is disconnected or has no publisher."""

    default_category = ErrorCategory.DESTINATION
    default_retryable = False


class PublishRejectedError(StorecastError):
    """The external destination returned a business error."""

    default_category = ErrorCategory.PUBLISH
    default_retryable = False


class PublishTimeoutError(StorecastError):
    """The external publish call exceeded its time bound."""

    default_category = ErrorCategory.TIMEOUT
    default_retryable = True

    def __init__(self, timeout_seconds: float, message: str | None = None, **kwargs: Any):
        self.timeout_seconds = timeout_seconds
        super().__init__(
            message or f"Publish timed out after {timeout_seconds:g}s", **kwargs
        )


# =============================================================================
# LIFECYCLE / INPUT / CONFIG
# =============================================================================


class InvalidTransitionError(StorecastError):
    """Illegal campaign stage or publish status transition."""

    default_category = ErrorCategory.STATE
    default_retryable = False

    def __init__(self, entity: str, current: str, target: str, message: str | None = None):
        self.entity = entity
        self.current = current
        self.target = target
        super().__init__(message or f"Invalid {entity} transition: {current} -> {target}")


class ValidationError(StorecastError):
    """
    Input validation error.

    Never retryable - input must be fixed.
    """

    default_category = ErrorCategory.VALIDATION
    default_retryable = False

    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        value: Any = None,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.field = field
        self.value = value

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.field:
            result["field"] = self.field
        if self.value is not None:
            result["value"] = repr(self.value)
        return result


class ConfigError(StorecastError):
    """Missing or invalid configuration."""

    default_category = ErrorCategory.CONFIG
    default_retryable = False


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================


def categorize_error(error: Exception) -> ErrorCategory:
    """Get the category of an error."""
    if isinstance(error, StorecastError):
        return error.category
    if isinstance(error, TimeoutError):
        return ErrorCategory.TIMEOUT
    if isinstance(error, (ConnectionError, OSError)):
        return ErrorCategory.DESTINATION
    return ErrorCategory.INTERNAL


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "StorecastError",
    "ScopeViolation",
    "NotFoundError",
    "DestinationUnavailableError",
    "PublishRejectedError",
    "PublishTimeoutError",
    "InvalidTransitionError",
    "ValidationError",
    "ConfigError",
    "categorize_error",
]
