"""
Scheduling: retry engine, enablement gate, trigger entry point, timers and the service.

Per tick::

    TimerBackend ──► TriggerEntryPoint.fire()
                       EnablementGate ─► LeaseCoordinator ─► RetryEngine
"""

from fleetcron.scheduling.gate import EnablementGate, EnablementPredicate
from fleetcron.scheduling.retry import RetryChain, RetryEngine
from fleetcron.scheduling.service import CronService, ServiceStats, create_service
from fleetcron.scheduling.timers import TimerBackend, build_trigger
from fleetcron.scheduling.trigger import TickResult, TriggerEntryPoint

__all__ = [
    # Retry
    "RetryChain",
    "RetryEngine",
    # Gate
    "EnablementGate",
    "EnablementPredicate",
    # Trigger
    "TickResult",
    "TriggerEntryPoint",
    # Timers
    "TimerBackend",
    "build_trigger",
    # Service
    "CronService",
    "ServiceStats",
    "create_service",
]
