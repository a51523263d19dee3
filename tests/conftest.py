"""
Shared pytest fixtures for fleetcron tests.

This module provides:
- A recording logger that satisfies the host logger capability
- Recording / failing notifiers
- Callback helpers that fail a set number of times and record timings
- In-memory lock store connections
"""

from __future__ import annotations

import asyncio
import time
from typing import Any

import pytest

from fleetcron.core.errors import NotifierDeliveryError
from fleetcron.locks.connection import LockStoreConnection


class RecordingLogger:
    """Host logger exposing log/error/warn/debug; keeps every message."""

    def __init__(self) -> None:
        self.records: list[tuple[str, str]] = []

    def log(self, message: str) -> None:
        self.records.append(("log", message))

    def error(self, message: str) -> None:
        self.records.append(("error", message))

    def warn(self, message: str) -> None:
        self.records.append(("warn", message))

    def debug(self, message: str) -> None:
        self.records.append(("debug", message))

    def messages(self, level: str | None = None) -> list[str]:
        return [m for lvl, m in self.records if level is None or lvl == level]

    def has(self, text: str, level: str | None = None) -> bool:
        return any(text in m for m in self.messages(level))


class RecordingNotifier:
    """Notifier that records calls and optionally fails every delivery."""

    name = "recording"

    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.calls: list[tuple[str, BaseException]] = []

    async def notify(self, job_id: str, error: BaseException) -> None:
        self.calls.append((job_id, error))
        if self.fail:
            raise NotifierDeliveryError("webhook down")


class FlakyCallback:
    """Async job body failing its first ``failures`` calls."""

    def __init__(self, failures: int = 0, duration: float = 0.0) -> None:
        self.failures = failures
        self.duration = duration
        self.calls = 0
        self.starts: list[float] = []
        self.ends: list[float] = []
        self.errors: list[Exception] = []

    async def __call__(self) -> Any:
        self.calls += 1
        self.starts.append(time.monotonic())
        try:
            if self.duration:
                await asyncio.sleep(self.duration)
            if self.calls <= self.failures:
                error = RuntimeError(f"failure #{self.calls}")
                self.errors.append(error)
                raise error
            return self.calls
        finally:
            self.ends.append(time.monotonic())


@pytest.fixture
def recording_logger() -> RecordingLogger:
    return RecordingLogger()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def failing_notifier() -> RecordingNotifier:
    return RecordingNotifier(fail=True)


@pytest.fixture
def flaky():
    """Factory: ``flaky(failures=2, duration=0.0)``."""
    return FlakyCallback


@pytest.fixture
def always_fails():
    return FlakyCallback(failures=10**6)


@pytest.fixture
def memory_connection() -> LockStoreConnection:
    return LockStoreConnection.in_memory(3)
