"""Tests for the logger capability and structlog configuration."""

import logging

import pytest
import structlog

from fleetcron.core.errors import InvalidLoggerError, ValidationError
from fleetcron.core.logging import (
    CapabilityJobLogger,
    LogContext,
    StdlibJobLogger,
    StructlogJobLogger,
    configure_logging,
    resolve_logger,
)


class MinimalLogger:
    """Has the required methods but no ``info``."""

    def __init__(self):
        self.lines = []

    def log(self, message):
        self.lines.append(("log", message))

    def error(self, message):
        self.lines.append(("error", message))

    def warn(self, message):
        self.lines.append(("warn", message))

    def debug(self, message):
        self.lines.append(("debug", message))


class NoWarnLogger:
    def log(self, message):
        pass

    def error(self, message):
        pass

    def debug(self, message):
        pass


class TestResolveLogger:
    def test_none_gives_structlog(self):
        assert isinstance(resolve_logger(None), StructlogJobLogger)

    def test_wrapper_passes_through(self):
        wrapped = StructlogJobLogger()
        assert resolve_logger(wrapped) is wrapped

    def test_stdlib_logger(self):
        assert isinstance(resolve_logger(logging.getLogger("host")), StdlibJobLogger)

    def test_structlog_logger(self):
        assert isinstance(resolve_logger(structlog.get_logger("host")), StructlogJobLogger)

    def test_custom_capability(self):
        assert isinstance(resolve_logger(MinimalLogger()), CapabilityJobLogger)

    def test_missing_method_is_validation_error(self):
        with pytest.raises(InvalidLoggerError) as exc_info:
            resolve_logger(NoWarnLogger())
        assert exc_info.value.missing == ["warn"]
        assert isinstance(exc_info.value, ValidationError)

    def test_non_callable_method_rejected(self):
        target = MinimalLogger()
        target.debug = "not callable"
        with pytest.raises(InvalidLoggerError):
            resolve_logger(target)


class TestCapabilityJobLogger:
    def test_info_defaults_to_log(self):
        target = MinimalLogger()
        resolve_logger(target).info("cron_start", job_id="report")
        assert target.lines == [("log", "fleetcron: cron_start job_id=report")]

    def test_info_used_when_present(self):
        target = MinimalLogger()
        target.info = lambda message: target.lines.append(("info", message))
        resolve_logger(target).info("hello")
        assert target.lines == [("info", "fleetcron: hello")]

    def test_levels_route_to_methods(self):
        target = MinimalLogger()
        logger = resolve_logger(target)
        logger.warn("w")
        logger.error("e", attempt=2)
        logger.debug("d")
        assert [level for level, _ in target.lines] == ["warn", "error", "debug"]
        assert target.lines[1][1] == "fleetcron: e attempt=2"


class TestStdlibJobLogger:
    def test_renders_fields(self, caplog):
        logger = resolve_logger(logging.getLogger("fleetcron.test"))
        with caplog.at_level(logging.DEBUG, logger="fleetcron.test"):
            logger.warn("lease_node_error", node="redis-a")
        assert "lease_node_error node=redis-a" in caplog.text
        assert caplog.records[0].levelno == logging.WARNING


class TestConfigureLogging:
    def test_json_logging(self, capsys):
        configure_logging(level="INFO", json_format=True, service="fleetcron-test")
        structlog.get_logger("fleetcron").info("hello", job_id="report")
        out = capsys.readouterr().out
        assert '"event": "hello"' in out
        assert '"job_id": "report"' in out
        assert '"service.name": "fleetcron-test"' in out

    def test_log_context_binds_and_unbinds(self):
        with LogContext(job_id="report"):
            assert structlog.contextvars.get_contextvars()["job_id"] == "report"
        assert "job_id" not in structlog.contextvars.get_contextvars()
