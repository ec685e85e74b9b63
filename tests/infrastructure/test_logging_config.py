"""Unit tests for logging setup."""

import io
import json
import logging
import sys

import pytest

from clinic_pivot.adapters.sources import InMemoryFactSource
from clinic_pivot.domain.services import TableService
from clinic_pivot.infrastructure.logging_config import StructuredFormatter, setup_logging


@pytest.fixture
def restore_root_logger():
    """Put the root logger back the way it was after setup_logging replaced it."""
    root_logger = logging.getLogger()
    handlers, level = list(root_logger.handlers), root_logger.level
    yield root_logger
    root_logger.handlers[:] = handlers
    root_logger.setLevel(level)


def make_record(**extra):
    record = logging.LogRecord("clinic_pivot.test", logging.INFO, __file__, 10, "Built %s rows", (5,), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestStructuredFormatter:
    """Test the JSON formatter."""

    def test_base_keys(self):
        """Test that every record carries timestamp, level, logger and message."""
        payload = json.loads(StructuredFormatter().format(make_record()))

        assert payload["level"] == "INFO"
        assert payload["logger"] == "clinic_pivot.test"
        assert payload["message"] == "Built 5 rows"
        assert payload["timestamp"].endswith("Z")

    def test_extra_fields_merged(self):
        """Test that pivot context becomes top-level keys."""
        payload = json.loads(StructuredFormatter().format(make_record(extra_fields={"row_count": 5})))
        assert payload["row_count"] == 5

    def test_extra_fields_cannot_replace_message(self):
        """Test that context keys never override the base keys."""
        payload = json.loads(StructuredFormatter().format(make_record(extra_fields={"message": "other"})))
        assert payload["message"] == "Built 5 rows"

    def test_exception(self):
        """Test that exception text is included."""
        try:
            raise ValueError("bad layout")
        except ValueError:
            record = make_record()
            record.exc_info = sys.exc_info()

        payload = json.loads(StructuredFormatter().format(record))
        assert "bad layout" in payload["exception"]


class TestSetupLogging:
    """Test root logger installation."""

    def test_single_handler(self, restore_root_logger):
        """Test that setup replaces existing handlers and applies the level."""
        restore_root_logger.addHandler(logging.NullHandler())
        handler = setup_logging(log_level="debug", stream=io.StringIO())

        assert restore_root_logger.handlers == [handler]
        assert restore_root_logger.level == logging.DEBUG

    def test_unknown_level_means_info(self, restore_root_logger):
        """Test that an unknown level name falls back to INFO."""
        setup_logging(log_level="chatty", stream=io.StringIO())
        assert restore_root_logger.level == logging.INFO

    @pytest.mark.asyncio
    async def test_table_report_in_json_logs(self, restore_root_logger, sample_records, default_layout):
        """Test that building a table logs its report counts as JSON keys."""
        stream = io.StringIO()
        setup_logging(use_json=True, log_level="INFO", stream=stream)

        await TableService(InMemoryFactSource(sample_records), default_layout).get_table_data()

        payloads = [json.loads(line) for line in stream.getvalue().splitlines()]
        built = [payload for payload in payloads if payload["message"].startswith("Built table")]
        assert len(built) == 1
        assert built[0]["row_count"] == 5
        assert built[0]["fact_count"] == 3
        assert built[0]["default_filled"] == 12
        assert built[0]["dropped_facts"] == 0
