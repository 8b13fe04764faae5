"""Tests for observability utilities."""

import json
import logging
from datetime import date

from hoteria.observability.correlation import correlation_scope, get_correlation_id
from hoteria.observability.logging import JsonFormatter, get_logger
from hoteria.observability.redaction import (
    redact_string,
    redact_value,
    safe_log_context,
)


class TestRedaction:
    """Tests for redaction helpers."""

    def test_redact_phone_number(self):
        result = redact_string("Call me at +84 90 123 4567")
        assert "4567" not in result
        assert "[REDACTED]" in result

    def test_redact_email(self):
        result = redact_string("Email: guest@example.com")
        assert "guest@example.com" not in result
        assert "[REDACTED]" in result

    def test_redact_value_dict_only_keys(self):
        result = redact_value({"guest_name": "Nguyen", "room": "101"})
        assert "Nguyen" not in result
        assert "guest_name" in result

    def test_redact_value_list_only_len(self):
        result = redact_value(["a", "b", "c"])
        assert "len=3" in result

    def test_redact_value_date(self):
        assert redact_value(date(2025, 3, 10)) == "2025-03-10"

    def test_safe_log_context(self):
        ctx = safe_log_context(phone="+84901234567", count=42, booked=True)
        assert ctx["phone"] == "[REDACTED]"
        assert ctx["count"] == "42"
        assert ctx["booked"] == "true"

    def test_guest_fields_always_redacted(self):
        ctx = safe_log_context(guest_name="Nguyen Van A", guest_email="not-an-email", room_id="r1")
        assert ctx["guest_name"] == "[REDACTED]"
        assert ctx["guest_email"] == "[REDACTED]"
        assert ctx["room_id"] == "r1"


class TestCorrelation:
    def test_scope_sets_and_resets(self):
        assert get_correlation_id() == ""
        with correlation_scope("cid-1") as cid:
            assert cid == "cid-1"
            assert get_correlation_id() == "cid-1"
        assert get_correlation_id() == ""

    def test_scope_generates_id(self):
        with correlation_scope() as cid:
            assert len(cid) == 36


class TestJsonFormatter:
    def test_includes_extra_fields_and_correlation(self):
        record = logging.LogRecord("hoteria.test", logging.INFO, __file__, 1, "booking created", None, None)
        record.extra_fields = {"booking_id": "b1"}

        with correlation_scope("cid-9"):
            line = json.loads(JsonFormatter().format(record))

        assert line["message"] == "booking created"
        assert line["booking_id"] == "b1"
        assert line["correlationId"] == "cid-9"

    def test_get_logger_single_handler(self):
        logger = get_logger("hoteria.test.handlers")
        get_logger("hoteria.test.handlers")
        assert len(logger.handlers) == 1
