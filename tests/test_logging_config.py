"""
Tests for logging setup
"""
import io
import json
import logging
import sys

import pytest

from hotel_ads_funnel.config import Settings
from hotel_ads_funnel.errors import ConfigError
from hotel_ads_funnel.logging_config import (
    ReadableFormatter,
    StructuredFormatter,
    setup_logging,
    unit_context,
)


@pytest.fixture
def package_logger():
    logger = logging.getLogger("hotel_ads_funnel")
    yield logger
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    logger.setLevel(logging.NOTSET)
    logger.propagate = True


def make_record(msg="Hotel Belmonte / meta / 2025-10: 3 campaigns", exc_info=None, **extra):
    record = logging.LogRecord("hotel_ads_funnel.services.collector", logging.INFO, __file__, 1,
                               msg, (), exc_info)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestStructuredFormatter:
    def test_unit_fields_are_top_level(self):
        record = make_record(**unit_context("Hotel Belmonte", "meta", "2025-10"))
        entry = json.loads(StructuredFormatter().format(record))
        assert entry["level"] == "INFO"
        assert entry["logger"] == "hotel_ads_funnel.services.collector"
        assert entry["message"] == "Hotel Belmonte / meta / 2025-10: 3 campaigns"
        assert entry["client"] == "Hotel Belmonte"
        assert entry["platform"] == "meta"
        assert entry["period_id"] == "2025-10"
        assert entry["time"].endswith("+00:00")

    def test_records_without_unit(self):
        entry = json.loads(StructuredFormatter().format(make_record("Collection finished")))
        assert "client" not in entry
        assert "exception" not in entry

    def test_exception_included(self):
        try:
            raise TypeError("bad payload")
        except TypeError:
            record = make_record("failed", exc_info=sys.exc_info())
        entry = json.loads(StructuredFormatter().format(record))
        assert "TypeError: bad payload" in entry["exception"]


class TestSetupLogging:
    def test_json_lines(self, package_logger):
        stream = io.StringIO()
        setup_logging("INFO", "json", stream=stream)
        logging.getLogger("hotel_ads_funnel.services.collector").info(
            "stored", extra=unit_context("Havet", "google", "2025-W41"),
        )
        entry = json.loads(stream.getvalue().strip())
        assert entry["message"] == "stored"
        assert entry["client"] == "Havet"
        assert entry["period_id"] == "2025-W41"

    def test_text_is_default(self, package_logger):
        logger = setup_logging("warning")
        assert logger.level == logging.WARNING
        assert isinstance(logger.handlers[0].formatter, ReadableFormatter)

    def test_repeated_setup_keeps_one_handler(self, package_logger):
        setup_logging("INFO")
        logger = setup_logging("INFO", "json")
        assert len(logger.handlers) == 1
        assert isinstance(logger.handlers[0].formatter, StructuredFormatter)


class TestLogFormatSetting:
    def test_default_and_json(self):
        assert Settings.from_env(env={}, dotenv=False).LOG_FORMAT == "text"
        assert Settings.from_env(env={"LOG_FORMAT": "JSON"}, dotenv=False).LOG_FORMAT == "json"

    def test_unknown_format(self):
        with pytest.raises(ConfigError, match="LOG_FORMAT"):
            Settings.from_env(env={"LOG_FORMAT": "xml"}, dotenv=False)
