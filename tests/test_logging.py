"""Logging configuration tests."""

import logging

from linkgate.api.middleware import RequestContextFilter, request_id_var
from linkgate.logging import get_uvicorn_log_config


def make_record() -> logging.LogRecord:
    return logging.LogRecord("linkgate", logging.INFO, __file__, 1, "hello", None, None)


def test_filter_without_request():
    record = make_record()

    assert RequestContextFilter().filter(record) is True
    assert record.request_id == "-"


def test_filter_inside_request():
    token = request_id_var.set("abc123")
    try:
        record = make_record()
        RequestContextFilter().filter(record)
    finally:
        request_id_var.reset(token)

    assert record.request_id == "abc123"


def test_uvicorn_config_attaches_request_context():
    config = get_uvicorn_log_config()

    assert "request_context" in config["handlers"]["default"]["filters"]
    assert "%(request_id)s" in config["formatters"]["default"]["fmt"]
