import json
import logging

import pytest

from sms_webhooks.logging_setup import JsonFormatter, configure_logging


@pytest.fixture
def restore_root_logger():
    root_logger = logging.getLogger()
    handlers = list(root_logger.handlers)
    level = root_logger.level
    yield root_logger
    root_logger.handlers[:] = handlers
    root_logger.setLevel(level)


def test_configure_logging_keeps_foreign_handlers(restore_root_logger):
    foreign = logging.NullHandler()
    restore_root_logger.addHandler(foreign)

    configure_logging("debug")
    configure_logging("debug")

    assert foreign in restore_root_logger.handlers
    json_handlers = [h for h in restore_root_logger.handlers if isinstance(h.formatter, JsonFormatter)]
    assert len(json_handlers) == 1
    assert restore_root_logger.level == logging.DEBUG


def test_json_formatter_includes_extra_fields():
    record = logging.LogRecord("sms_webhooks.test", logging.INFO, __file__, 1, "status %s", ("sent",), None)
    record.message_sid = "SM123"

    payload = json.loads(JsonFormatter().format(record))

    assert payload["message"] == "status sent"
    assert payload["level"] == "INFO"
    assert payload["message_sid"] == "SM123"
