"""
Unit tests for structured JSON logging.
"""

import io
import json
import logging

from helloserver.log import JSONFormatter, create_logger


def _record(msg="hello", level=logging.INFO, **extra) -> logging.LogRecord:
    record = logging.LogRecord("test", level, __file__, 1, msg, (), None)
    record.__dict__.update(extra)
    return record


class TestJSONFormatter:

    def test_fixed_fields(self):
        entry = json.loads(JSONFormatter().format(_record("Starting server")))

        assert entry["level"] == "INFO"
        assert entry["msg"] == "Starting server"
        assert entry["time"].endswith("+00:00")
        assert list(entry)[:3] == ["time", "level", "msg"]

    def test_extra_fields(self):
        entry = json.loads(JSONFormatter().format(_record(port="8080")))
        assert entry["port"] == "8080"

    def test_standard_attributes_not_copied(self):
        entry = json.loads(JSONFormatter().format(_record()))

        for attr in ("lineno", "pathname", "thread", "args", "levelno"):
            assert attr not in entry

    def test_non_serializable_values_stringified(self):
        entry = json.loads(JSONFormatter().format(_record(error=ValueError("boom"))))
        assert entry["error"] == "boom"

    def test_exception_info(self):
        try:
            raise RuntimeError("kaboom")
        except RuntimeError:
            import sys
            record = logging.LogRecord("test", logging.ERROR, __file__, 1, "failed", (), sys.exc_info())

        entry = json.loads(JSONFormatter().format(record))
        assert "RuntimeError: kaboom" in entry["exc_info"]

    def test_one_line_per_record(self):
        output = JSONFormatter().format(_record("multi\nline"))
        assert "\n" not in output


class TestCreateLogger:

    def test_writes_json_lines(self):
        stream = io.StringIO()
        logger = create_logger(name="helloserver.test.lines", stream=stream)

        logger.info("Server exited")
        logger.info("Handling request", extra={"method": "GET", "path": "/"})

        lines = [json.loads(line) for line in stream.getvalue().splitlines()]
        assert [line["msg"] for line in lines] == ["Server exited", "Handling request"]
        assert lines[1]["method"] == "GET"

    def test_does_not_propagate(self):
        logger = create_logger(name="helloserver.test.propagate", stream=io.StringIO())
        assert logger.propagate is False

    def test_repeated_calls_keep_one_handler(self):
        stream = io.StringIO()
        create_logger(name="helloserver.test.repeat", stream=io.StringIO())
        logger = create_logger(name="helloserver.test.repeat", stream=stream)

        logger.info("once")

        assert len(logger.handlers) == 1
        assert stream.getvalue().count("once") == 1

    def test_level(self):
        stream = io.StringIO()
        logger = create_logger(name="helloserver.test.level", stream=stream)

        logger.debug("hidden")

        assert stream.getvalue() == ""
