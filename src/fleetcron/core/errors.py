"""
Structured error types for fleetcron.

Every failure the scheduler can observe maps onto one class in this module,
and every class knows whether it may escape to the host process or must be
contained inside a tick.

Manifesto:
    - **Typed Error Hierarchy:** One class per failure mode of a tick
    - **Explicit Containment:** Only pre-ready failures are fatal
    - **Rich Context:** Errors carry job id, attempt and lease key for logs
    - **Error Chaining:** The callback's original exception is kept as cause

Architecture:
    ::

        ┌─────────────────────────────────────────────────────────────────┐
        │                      FleetCronError                              │
        │  (category, retryable, context, cause)                          │
        ├─────────────────────────────────────────────────────────────────┤
        │                                                                  │
        │  ValidationError       ConfigError          RuntimeJobError     │
        │  (VALIDATION, fatal)   (CONFIG, fatal)      (JOB, contained)    │
        │       │                     │                                    │
        │  DuplicateJobError     AlreadyInitializedError                   │
        │  InvalidLoggerError                                              │
        │                                                                  │
        │  LockBackendConnectionError   LeaseAcquisitionError              │
        │  (NETWORK, fatal)             (LOCK, skip or fatal by policy)    │
        │                                                                  │
        │  NotifierDeliveryError                                           │
        │  (NOTIFIER, always swallowed)                                    │
        └─────────────────────────────────────────────────────────────────┘

Guardrails:
    ❌ DON'T: Let a callback exception leave the retry engine
    ✅ DO: Wrap it in RuntimeJobError(cause=exc) and log it

    ❌ DON'T: Raise NotifierDeliveryError past the dispatcher
    ✅ DO: Log it and move on

Tags:
    error-handling, exception-hierarchy, fleetcron, containment

Doc-Types:
    - API Reference
    - Error Handling Guide
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Error categories used for log routing and alert classification."""

    VALIDATION = "VALIDATION"     # Bad job definitions, bad logger capability
    CONFIG = "CONFIG"             # Conflicting or missing configuration
    NETWORK = "NETWORK"           # Lock backend unreachable
    LOCK = "LOCK"                 # Lease could not be obtained
    JOB = "JOB"                   # Job callback failed
    NOTIFIER = "NOTIFIER"         # Alert delivery failed
    INTERNAL = "INTERNAL"         # Bugs, unexpected state


@dataclass
class ErrorContext:
    """
    Structured metadata attached to an error.

    Attributes:
        job_id: Job the error belongs to
        attempt: Attempt number within the retry chain
        lease_key: Distributed lease key involved
        transport: Notifier transport name
        url: URL that was being accessed
        http_status: HTTP status code if applicable
        metadata: Additional key-value pairs
    """

    job_id: str | None = None
    attempt: int | None = None
    lease_key: str | None = None
    transport: str | None = None
    url: str | None = None
    http_status: int | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["job_id", "attempt", "lease_key", "transport", "url", "http_status"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class FleetCronError(Exception):
    """
    Base exception for all fleetcron errors.

    Examples:
        >>> error = FleetCronError("boom", category=ErrorCategory.JOB)
        >>> error.to_dict()["category"]
        'JOB'

        >>> error = LeaseAcquisitionError("held").with_context(lease_key="fleetcron:lease:a")
        >>> error.context.lease_key
        'fleetcron:lease:a'
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
        cause: BaseException | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> FleetCronError:
        """Add context to this error (fluent API)."""
        for key, value in kwargs.items():
            if hasattr(self.context, key) and key != "metadata":
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Serialize for structured logging."""
        result: dict[str, Any] = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = repr(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# Initialization-time errors (fatal)
# =============================================================================


class ValidationError(FleetCronError):
    """Invalid job definition or capability, raised before any job starts."""

    default_category = ErrorCategory.VALIDATION

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


class DuplicateJobError(ValidationError):
    """Two job definitions share the same id."""

    def __init__(self, job_id: str):
        super().__init__(f"Duplicate job id: {job_id!r}", field="id", value=job_id)
        self.job_id = job_id


class InvalidLoggerError(ValidationError):
    """Logger capability is missing required methods."""

    def __init__(self, missing: list[str]):
        super().__init__(
            f"Logger must provide callable methods: {', '.join(missing)}",
            field="logger",
            value=missing,
        )
        self.missing = missing


class ConfigError(FleetCronError):
    """Configuration problem detected at startup."""

    default_category = ErrorCategory.CONFIG


class AlreadyInitializedError(ConfigError):
    """``initialize()`` called again with a different configuration."""


class LockBackendConnectionError(FleetCronError):
    """Lock backend unreachable before the first successful connect."""

    default_category = ErrorCategory.NETWORK
    default_retryable = True


# =============================================================================
# Per-tick errors (contained)
# =============================================================================


class LeaseAcquisitionError(FleetCronError):
    """Lease could not be obtained on a quorum of nodes."""

    default_category = ErrorCategory.LOCK
    default_retryable = True

    def __init__(self, key: str, message: str | None = None, **kwargs: Any):
        super().__init__(message or f"Unable to acquire lease {key!r}", **kwargs)
        self.key = key
        self.context.lease_key = key


class RuntimeJobError(FleetCronError):
    """A job callback raised during an attempt."""

    default_category = ErrorCategory.JOB
    default_retryable = True

    def __init__(self, job_id: str, attempt: int, cause: BaseException):
        super().__init__(
            f"Job {job_id!r} failed on attempt {attempt}: {cause}",
            cause=cause,
        )
        self.job_id = job_id
        self.attempt = attempt
        self.context.job_id = job_id
        self.context.attempt = attempt


class NotifierDeliveryError(FleetCronError):
    """A notifier transport could not deliver an alert."""

    default_category = ErrorCategory.NOTIFIER
    default_retryable = True


def is_fatal(error: BaseException) -> bool:
    """Return True for errors that are allowed to stop the host process."""
    return isinstance(error, (ValidationError, ConfigError, LockBackendConnectionError))


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "FleetCronError",
    "ValidationError",
    "DuplicateJobError",
    "InvalidLoggerError",
    "ConfigError",
    "AlreadyInitializedError",
    "LockBackendConnectionError",
    "LeaseAcquisitionError",
    "RuntimeJobError",
    "NotifierDeliveryError",
    "is_fatal",
]
