import logging

from epubenc_backend.logging_config import SimpleFormatter, request_id_var, set_request_id, setup_logging


def _record(msg: str) -> logging.LogRecord:
    return logging.LogRecord("epubenc.encrypt", logging.INFO, __file__, 1, msg, None, None)


def test_formatter_includes_request_id():
    token = request_id_var.set("abcd1234")
    try:
        line = SimpleFormatter().format(_record("request received"))
    finally:
        request_id_var.reset(token)
    assert "INFO" in line
    assert "[req:abcd1234]" in line
    assert line.endswith("encrypt: request received")


def test_formatter_without_request_id():
    line = SimpleFormatter().format(_record("startup"))
    assert "[req:" not in line


def test_set_request_id_generates_short_id():
    token_value = set_request_id()
    assert len(token_value) == 8
    assert request_id_var.get() == token_value


def test_setup_logging_is_idempotent():
    root = logging.getLogger()
    before = list(root.handlers)
    try:
        setup_logging("DEBUG")
        setup_logging("DEBUG")
        ours = [h for h in root.handlers if getattr(h, "_epubenc_handler", False)]
        assert len(ours) == 1
        assert root.level == logging.DEBUG
    finally:
        for handler in list(root.handlers):
            if handler not in before:
                root.removeHandler(handler)
