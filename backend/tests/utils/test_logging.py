# tests/utils/test_logging.py
"""
Tests for the logging setup: correlation stamping and the JSON format.
"""

import json
import logging
from decimal import Decimal

import pytest

from tradeledger.utils.context import correlation_scope
from tradeledger.utils.logging import (
    NO_CORRELATION_ID,
    CorrelationIdFilter,
    JsonFormatter,
    parse_level,
)


def make_record(message: str = "priced", **extra) -> logging.LogRecord:
    record = logging.LogRecord("tradeledger.test", logging.INFO, __file__, 1, message, (), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestCorrelationIdFilter:

    def test_stamps_current_id(self):
        record = make_record()

        with correlation_scope("abc-123"):
            CorrelationIdFilter().filter(record)

        assert record.correlation_id == "abc-123"

    def test_placeholder_outside_a_request(self):
        record = make_record()

        CorrelationIdFilter().filter(record)

        assert record.correlation_id == NO_CORRELATION_ID


class TestJsonFormatter:

    def test_one_object_per_line(self):
        record = make_record("Snapshot done", correlation_id="abc-123")

        entry = json.loads(JsonFormatter().format(record))

        assert entry["level"] == "INFO"
        assert entry["logger"] == "tradeledger.test"
        assert entry["correlation_id"] == "abc-123"
        assert entry["message"] == "Snapshot done"
        assert "extra" not in entry

    def test_extra_fields_are_serialized(self):
        record = make_record(correlation_id="-", grand_total=Decimal("6350.00"))

        entry = json.loads(JsonFormatter().format(record))

        assert entry["extra"] == {"grand_total": "6350.00"}


class TestParseLevel:

    @pytest.mark.parametrize("name,level", [
        ("debug", logging.DEBUG),
        (" INFO ", logging.INFO),
        ("warn", logging.WARNING),
    ])
    def test_known_levels(self, name, level):
        assert parse_level(name) == level

    def test_unknown_level(self):
        with pytest.raises(ValueError, match="Invalid log level"):
            parse_level("verbose")
