"""Unit tests for structured logging helpers."""

import json
import logging

import pytest

from src.shared.infrastructure.logging import (
    ContextLoggerAdapter,
    CustomJsonFormatter,
    get_context_logger,
    log_latency,
)


def format_record(formatter: logging.Formatter, **extra) -> dict:
    record = logging.LogRecord("sla", logging.INFO, __file__, 1, "hello", None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return json.loads(formatter.format(record))


class TestCustomJsonFormatter:
    """Tests for CustomJsonFormatter."""

    def test_adds_environment_and_timestamp(self) -> None:
        """Test every record carries environment and timestamp."""
        payload = format_record(CustomJsonFormatter(environment="testing"))
        assert payload["environment"] == "testing"
        assert payload["timestamp"]
        assert payload["message"] == "hello"

    def test_correlation_id(self) -> None:
        """Test correlation ids are copied from the record."""
        payload = format_record(CustomJsonFormatter(), correlation_id="abc")
        assert payload["correlation_id"] == "abc"

    def test_redacts_webhook_url(self) -> None:
        """Test sensitive string fields are masked."""
        payload = format_record(CustomJsonFormatter(), notification_webhook_url="https://x")
        assert payload["notification_webhook_url"] == "***REDACTED***"


class TestContextLogger:
    """Tests for get_context_logger."""

    def test_plain_logger_without_context(self) -> None:
        """Test nothing to bind returns the module logger."""
        assert isinstance(get_context_logger("sla"), logging.Logger)
        assert isinstance(get_context_logger("sla", ticket_id=None), logging.Logger)

    def test_binds_context(self) -> None:
        """Test correlation id and context fields are bound."""
        adapter = get_context_logger("sla", correlation_id="c-1", organization_id="org-1")
        assert isinstance(adapter, ContextLoggerAdapter)
        assert adapter.extra == {"correlation_id": "c-1", "organization_id": "org-1"}

    def test_call_extra_is_merged(self, caplog) -> None:
        """Test per-call extra fields survive next to the bound ones."""
        adapter = get_context_logger("sla.ctx", correlation_id="c-1")
        with caplog.at_level(logging.INFO, logger="sla.ctx"):
            adapter.info("scan done", extra={"processed": 3})

        record = caplog.records[-1]
        assert record.correlation_id == "c-1"
        assert record.processed == 3


class TestLogLatency:
    """Tests for log_latency."""

    def test_logs_completion(self, caplog) -> None:
        """Test latency is logged when the block exits."""
        logger = logging.getLogger("sla.latency")
        with caplog.at_level(logging.INFO, logger="sla.latency"):
            with log_latency(logger, "escalation_scan", batch_limit=5):
                pass

        record = caplog.records[-1]
        assert record.getMessage() == "escalation_scan completed"
        assert record.batch_limit == 5
        assert record.latency_ms >= 0

    def test_logs_failure_and_reraises(self, caplog) -> None:
        """Test a failing block is logged as failed and the error propagates."""
        logger = logging.getLogger("sla.latency")
        with caplog.at_level(logging.INFO, logger="sla.latency"):
            with pytest.raises(RuntimeError):
                with log_latency(logger, "escalation_scan"):
                    raise RuntimeError("boom")

        record = caplog.records[-1]
        assert record.getMessage() == "escalation_scan failed"
        assert record.levelno == logging.WARNING
        assert record.error_type == "RuntimeError"
