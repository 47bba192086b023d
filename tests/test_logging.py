"""Tests for the structured logging system (settlement_kernel/logging_config.py)."""

import json
import logging
from datetime import date
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from settlement_kernel.exceptions import PeriodClosedError
from settlement_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)
from settlement_modules.lease_revenue.models import PeriodStatus


@pytest.fixture(autouse=True)
def _clean_logging():
    """Reset logging state between tests and restore the suite config after."""
    reset_logging()
    LogContext.clear()
    yield
    LogContext.clear()
    reset_logging()
    configure_logging(level=logging.DEBUG, stream=StringIO())


def _make_handler() -> tuple[logging.Handler, StringIO]:
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    return handler, stream


def _parse_log(stream: StringIO) -> dict:
    """Parse the first JSON log line from a stream."""
    line = stream.getvalue().strip().split("\n")[0]
    return json.loads(line)


def _parse_all_logs(stream: StringIO) -> list[dict]:
    lines = stream.getvalue().strip().split("\n")
    return [json.loads(line) for line in lines if line]


# ---------------------------------------------------------------------------
# StructuredFormatter tests
# ---------------------------------------------------------------------------


class TestStructuredFormatter:
    """Tests for JSON log output format."""

    def test_basic_json_output(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("hello")

        record = _parse_log(stream)
        assert record["level"] == "INFO"
        assert record["message"] == "hello"
        assert record["logger"] == "settlement_kernel.test"
        assert "ts" in record

    def test_extra_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("credit_note_created", extra={"line_count": 3, "invoice_number": "GS-2025-00001"})

        record = _parse_log(stream)
        assert record["line_count"] == 3
        assert record["invoice_number"] == "GS-2025-00001"

    def test_context_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        LogContext.set(correlation_id="abc-123", lease_id="lease-1")
        get_logger("test").info("test_msg")

        record = _parse_log(stream)
        assert record["correlation_id"] == "abc-123"
        assert record["lease_id"] == "lease-1"

    def test_domain_values_serialized(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        uid = uuid4()
        get_logger("test").info(
            "values",
            extra={
                "period_ref": uid,
                "net_amount": Decimal("4916.67"),
                "due_date": date(2025, 3, 15),
                "period_status": PeriodStatus.SETTLED,
            },
        )

        record = _parse_log(stream)
        assert record["period_ref"] == str(uid)
        assert record["net_amount"] == "4916.67"
        assert record["due_date"] == "2025-03-15"
        assert record["period_status"] == "SETTLED"

    def test_exception_fields(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        try:
            raise ValueError("boom")
        except ValueError:
            get_logger("test").error("failed", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_type"] == "ValueError"
        assert record["exc_message"] == "boom"
        assert "traceback" in record

    def test_kernel_exception_code_extracted(self):
        """Settlement kernel exceptions carry a .code attribute."""
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        period_id = uuid4()
        try:
            raise PeriodClosedError(period_id, "CLOSED", "calculate")
        except PeriodClosedError:
            get_logger("test").error("period_error", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_type"] == "PeriodClosedError"
        assert record["exc_code"] == "PERIOD_CLOSED"
        assert record["exc_period_id"] == str(period_id)
        assert record["exc_operation"] == "calculate"

    def test_no_context_fields_when_empty(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("bare_message")

        record = _parse_log(stream)
        assert "correlation_id" not in record
        assert "period_id" not in record

    def test_valid_json_every_line(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        logger.info("first")
        logger.warning("second", extra={"k": "v"})
        logger.debug("third")

        logs = _parse_all_logs(stream)
        # Default level is INFO
        assert len(logs) == 2
        for record in logs:
            assert {"ts", "level", "logger", "message"} <= record.keys()


# ---------------------------------------------------------------------------
# LogContext tests
# ---------------------------------------------------------------------------


class TestLogContext:
    """Tests for context propagation."""

    def test_set_and_get(self):
        LogContext.set(correlation_id="x", tenant_id="t")
        assert LogContext.get_all() == {"correlation_id": "x", "tenant_id": "t"}

    def test_unknown_field_rejected(self):
        with pytest.raises(KeyError):
            LogContext.set(event_id="y")

    def test_none_values_ignored(self):
        LogContext.set(correlation_id="x", period_id=None)
        assert "period_id" not in LogContext.get_all()

    def test_clear(self):
        LogContext.set(correlation_id="x")
        LogContext.clear()
        assert LogContext.get_all() == {}

    def test_bind_context_manager(self):
        LogContext.set(correlation_id="outer")
        with LogContext.bind(correlation_id="inner"):
            assert LogContext.get_all()["correlation_id"] == "inner"
        assert LogContext.get_all()["correlation_id"] == "outer"

    def test_bind_restores_none(self):
        """bind() restores to None if there was no previous value."""
        with LogContext.bind(lease_id="temp"):
            assert LogContext.get_all()["lease_id"] == "temp"
        assert "lease_id" not in LogContext.get_all()

    def test_bind_stringifies_uuids(self):
        uid = uuid4()
        with LogContext.bind(period_id=uid):
            assert LogContext.get_all()["period_id"] == str(uid)

    def test_all_fields(self):
        LogContext.set(
            correlation_id="c",
            actor_id="a",
            tenant_id="t",
            period_id="p",
            lease_id="l",
        )
        assert len(LogContext.get_all()) == 5


# ---------------------------------------------------------------------------
# configure_logging tests
# ---------------------------------------------------------------------------


class TestConfigureLogging:
    """Tests for initialization."""

    def test_idempotent(self):
        h1, _ = _make_handler()
        configure_logging(handler=h1)
        h2, _ = _make_handler()
        configure_logging(handler=h2)
        # pytest's own capture handlers may sit on the same logger
        handlers = logging.getLogger("settlement_kernel").handlers
        structured = [h for h in handlers if isinstance(h.formatter, StructuredFormatter)]
        assert structured == [h1]
        assert h2 not in handlers

    def test_get_logger_returns_child(self):
        assert get_logger("services.credit_notes").name == "settlement_kernel.services.credit_notes"

    def test_logger_hierarchy(self):
        """Child loggers inherit the settlement_kernel root config."""
        handler, stream = _make_handler()
        configure_logging(handler=handler, level=logging.DEBUG)
        get_logger("deep.nested.module").debug("hierarchy_test")

        record = _parse_log(stream)
        assert record["message"] == "hierarchy_test"
        assert record["logger"] == "settlement_kernel.deep.nested.module"
