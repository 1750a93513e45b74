import json
import logging

import pytest

from kbforge.observability.logging import (
    ColoredFormatter,
    JSONFormatter,
    get_structured_logger,
    log_performance,
    setup_logging,
)


def _record(message="hello", level=logging.INFO, **extra):
    record = logging.LogRecord("kbforge.test", level, __file__, 10, message, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_json_formatter_includes_extra_fields():
    data = json.loads(JSONFormatter().format(_record(ctx_documents=3)))
    assert data["message"] == "hello"
    assert data["level"] == "INFO"
    assert data["service"] == "kbforge"
    assert data["ctx_documents"] == 3
    assert data["timestamp"].endswith("Z")


def test_colored_formatter_without_colors():
    line = ColoredFormatter(use_colors=False).format(_record(level=logging.WARNING))
    assert "| WARNING  | kbforge.test | hello" in line
    assert "\033[" not in line


def test_setup_logging_json_file(tmp_path):
    log_file = tmp_path / "logs" / "kbforge.log"
    setup_logging(level="INFO", log_file=str(log_file), use_colors=False)
    logging.getLogger("kbforge.test").info("written")
    for handler in logging.getLogger().handlers:
        handler.flush()
    entry = json.loads(log_file.read_text(encoding="utf-8").splitlines()[-1])
    assert entry["message"] == "written"


def test_structured_logger_prefixes_context(caplog):
    log = get_structured_logger("kbforge.test", component="build")
    with caplog.at_level(logging.INFO, logger="kbforge.test"):
        log.info("done", documents=2)
    record = caplog.records[-1]
    assert record.ctx_component == "build"
    assert record.ctx_documents == 2


class TestLogPerformance:
    def test_returns_result_and_keeps_name(self):
        @log_performance(threshold_ms=10_000)
        def add(a, b):
            return a + b

        assert add(2, 3) == 5
        assert add.__name__ == "add"

    def test_slow_call_is_warning(self, caplog):
        @log_performance(logger_name="kbforge.perf", threshold_ms=-1)
        def noop():
            return None

        with caplog.at_level(logging.DEBUG, logger="kbforge.perf"):
            noop()
        assert caplog.records[-1].levelno == logging.WARNING
        assert caplog.records[-1].function_name == "noop"

    def test_errors_are_logged_and_reraised(self, caplog):
        @log_performance(logger_name="kbforge.perf")
        def fail():
            raise ValueError("bad")

        with caplog.at_level(logging.ERROR, logger="kbforge.perf"):
            with pytest.raises(ValueError):
                fail()
        assert caplog.records[-1].error_type == "ValueError"
