"""
Tests for the JSON-lines log formatter.
"""
import json
import logging
import sys
import uuid

import pytest

from relay.utils.logging import (
    JsonLineFormatter,
    configure_structured_logging,
    generate_correlation_id,
    set_correlation_id,
)


def _record(msg="hello %s", args=("world",), exc_info=None, **extra) -> logging.LogRecord:
    record = logging.LogRecord("relay.test", logging.INFO, __file__, 1, msg, args, exc_info)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


@pytest.fixture(autouse=True)
def _clear_correlation_id():
    yield
    set_correlation_id(None)


class TestJsonLineFormatter:
    def test_core_keys(self):
        line = json.loads(JsonLineFormatter().format(_record()))

        assert line["level"] == "INFO"
        assert line["module"] == "relay.test"
        assert line["message"] == "hello world"
        assert line["correlation_id"] is None
        assert line["timestamp"].endswith("Z")

    def test_correlation_id_from_context(self):
        set_correlation_id("abc123")
        line = json.loads(JsonLineFormatter().format(_record()))
        assert line["correlation_id"] == "abc123"

    def test_context_fields_promoted_others_dropped(self):
        record = _record(call_id="call_1", provider="retell", lead_id=None, password="x")
        line = json.loads(JsonLineFormatter().format(record))

        assert line["call_id"] == "call_1"
        assert line["provider"] == "retell"
        assert "lead_id" not in line
        assert "password" not in line

    def test_non_json_values_stringified(self):
        lead_id = uuid.uuid4()
        line = json.loads(JsonLineFormatter().format(_record(lead_id=lead_id)))
        assert line["lead_id"] == str(lead_id)

    def test_exception_included(self):
        try:
            raise ValueError("boom")
        except ValueError:
            record = _record(exc_info=sys.exc_info())

        line = json.loads(JsonLineFormatter().format(record))
        assert "ValueError: boom" in line["exception"]


class TestConfigureLogging:
    def test_installs_single_json_handler(self):
        root = logging.getLogger()
        saved_handlers, saved_level = root.handlers[:], root.level
        try:
            configure_structured_logging("debug")
            configure_structured_logging("debug")

            assert len(root.handlers) == 1
            assert isinstance(root.handlers[0].formatter, JsonLineFormatter)
            assert root.level == logging.DEBUG
            assert logging.getLogger("httpx").level == logging.WARNING
        finally:
            root.handlers[:] = saved_handlers
            root.setLevel(saved_level)

    def test_generated_ids_are_unique_hex(self):
        first, second = generate_correlation_id(), generate_correlation_id()
        assert first != second
        assert len(first) == 32
        int(first, 16)
