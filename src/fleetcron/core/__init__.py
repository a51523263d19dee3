"""fleetcron core -- errors, outcomes, logging, settings and durations.

Architecture::

    errors.py      Error hierarchy (ValidationError, LeaseAcquisitionError, ...)
    result.py      Success / Failure outcome envelope for job attempts
    logging.py     structlog configuration and the JobLogger capability
    settings.py    FLEETCRON_* environment settings (pydantic-settings)
    durations.py   "500ms" / "1m" / timedelta -> seconds
"""

from fleetcron.core.durations import format_duration, parse_duration
from fleetcron.core.errors import (
    AlreadyInitializedError,
    ConfigError,
    DuplicateJobError,
    ErrorCategory,
    ErrorContext,
    FleetCronError,
    InvalidLoggerError,
    LeaseAcquisitionError,
    LockBackendConnectionError,
    NotifierDeliveryError,
    RuntimeJobError,
    ValidationError,
    is_fatal,
)
from fleetcron.core.logging import (
    JobLogger,
    LogContext,
    configure_logging,
    get_logger,
    resolve_logger,
)
from fleetcron.core.result import Failure, Outcome, Success, capture_outcome

__all__ = [
    # Errors
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
    # Outcomes
    "Success",
    "Failure",
    "Outcome",
    "capture_outcome",
    # Logging
    "JobLogger",
    "LogContext",
    "configure_logging",
    "get_logger",
    "resolve_logger",
    # Durations
    "parse_duration",
    "format_duration",
]
