"""Tests for logging helpers."""

import io
import json
import logging

from HostedSearch.logging_config import JSONFormatter, configure_logging, mask_sensitive_data


def test_mask_sensitive_data_is_recursive():
    masked = mask_sensitive_data(
        {"X-Algolia-API-Key": "s3cret", "nested": {"apiKey": "s3cret"}, "host": "a.test"}
    )
    assert masked == {
        "X-Algolia-API-Key": "***masked***",
        "nested": {"apiKey": "***masked***"},
        "host": "a.test",
    }


def test_json_formatter_masks_extra_fields():
    record = logging.makeLogRecord(
        {"msg": "sent", "levelname": "INFO", "name": "x", "extra_fields": {"api_key": "k"}}
    )
    payload = json.loads(JSONFormatter().format(record))
    assert payload["message"] == "sent"
    assert payload["api_key"] == "***masked***"


def test_configure_logging_replaces_its_handler():
    stream = io.StringIO()
    logger = configure_logging("DEBUG", json_format=True, stream=stream)
    configure_logging("DEBUG", json_format=True, stream=stream)
    try:
        owned = [h for h in logger.handlers if getattr(h, "_hostedsearch_handler", False)]
        assert len(owned) == 1

        logging.getLogger("HostedSearch.Transport.dispatcher").debug("hello")
        assert json.loads(stream.getvalue().splitlines()[-1])["message"] == "hello"
    finally:
        for handler in owned:
            logger.removeHandler(handler)
        logger.setLevel(logging.NOTSET)
