"""Unit tests for logging setup and formatters."""

import json
import logging
import pytest

from pagevitals.logging_setup import JSONFormatter, TextFormatter, log_with_context, setup_logging


def make_record(level=logging.INFO, msg="Page loaded", extra=None):
    record = logging.LogRecord("pagevitals.driver", level, __file__, 10, msg, (), None)
    if extra is not None:
        record.extra = extra
    return record


@pytest.fixture(autouse=True)
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)
    logging.getLogger("pagevitals").setLevel(logging.NOTSET)
    logging.getLogger("websockets").setLevel(logging.NOTSET)


@pytest.mark.unit
class TestFormatters:

    def test_json_formatter(self):
        data = json.loads(JSONFormatter().format(make_record(extra={"url": "https://example.com"})))

        assert data["level"] == "INFO"
        assert data["logger"] == "pagevitals.driver"
        assert data["message"] == "Page loaded"
        assert data["extra"] == {"url": "https://example.com"}
        assert "location" not in data

    def test_json_formatter_debug_location(self):
        data = json.loads(JSONFormatter().format(make_record(level=logging.DEBUG)))
        assert data["location"]["line"] == 10

    def test_text_formatter_appends_context(self):
        text = TextFormatter().format(make_record(extra={"url": "https://example.com", "stage": "navigate"}))

        assert "[INFO] pagevitals.driver: Page loaded" in text
        assert text.endswith("[url=https://example.com stage=navigate]")


@pytest.mark.unit
class TestSetupLogging:

    @pytest.mark.parametrize(
        "kwargs,expected",
        [
            ({}, logging.INFO),
            ({"level": "warning"}, logging.WARNING),
            ({"level": "DEBUG", "quiet": True}, logging.ERROR),
            ({"level": "ERROR", "verbose": True}, logging.DEBUG),
            ({"quiet": True, "verbose": True}, logging.ERROR),
        ],
    )
    def test_level_precedence(self, kwargs, expected):
        setup_logging(**kwargs)
        assert logging.getLogger().level == expected
        assert logging.getLogger("pagevitals").level == expected

    def test_json_format_selected(self):
        setup_logging(format_type="json")
        handlers = logging.getLogger().handlers
        assert len(handlers) == 1
        assert isinstance(handlers[0].formatter, JSONFormatter)

    def test_log_with_context_attaches_extra(self, caplog):
        logger = logging.getLogger("pagevitals.test")
        with caplog.at_level(logging.INFO, logger="pagevitals.test"):
            log_with_context(logger, logging.INFO, "Measuring", url="https://example.com")

        assert caplog.records[-1].getMessage() == "Measuring"
        assert caplog.records[-1].extra == {"url": "https://example.com"}
