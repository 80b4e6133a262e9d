"""Tests for logging helpers."""

import json
import logging
import sys

import pytest

from partitions.lib.logging import QUIET_LOGGERS, JSONFormatter, SyncLogger, setup_logging


@pytest.fixture(autouse=True)
def restore_root_logger():
    root = logging.getLogger()
    handlers = root.handlers[:]
    level = root.level
    yield
    root.handlers = handlers
    root.setLevel(level)


def _record(**extra):
    record = logging.LogRecord(
        "partitions.lib.runner", logging.INFO, __file__, 1, "selected %d", (3,), None
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJSONFormatter:
    def test_basic_fields(self):
        data = json.loads(JSONFormatter().format(_record()))
        assert data["level"] == "INFO"
        assert data["logger"] == "partitions.lib.runner"
        assert data["message"] == "selected 3"
        assert data["timestamp"].endswith("Z")
        assert "context" not in data

    def test_context_fields(self):
        data = json.loads(JSONFormatter().format(_record(stream="prs", bucket_id=2)))
        assert data["context"] == {"stream": "prs", "bucket_id": 2}

    def test_excluded_fields(self):
        formatter = JSONFormatter(exclude_fields=["stream"])
        data = json.loads(formatter.format(_record(stream="prs", bucket_id=2)))
        assert data["context"] == {"bucket_id": 2}

    def test_exception(self):
        try:
            raise ValueError("boom")
        except ValueError:
            record = logging.LogRecord(
                "x", logging.ERROR, __file__, 1, "failed", (), sys.exc_info()
            )
        data = json.loads(JSONFormatter().format(record))
        assert "ValueError: boom" in data["exception"]


class TestSyncLogger:
    def test_context_attached(self, caplog):
        log = SyncLogger("partitions.test", stream="prs")
        log.set_context(bucket_id=4)
        with caplog.at_level(logging.INFO, logger="partitions.test"):
            log.info("hello %s", "world")
        record = caplog.records[-1]
        assert record.getMessage() == "hello world"
        assert record.stream == "prs"
        assert record.bucket_id == 4

    def test_call_extra_wins_over_context(self, caplog):
        log = SyncLogger("partitions.test", stream="prs")
        with caplog.at_level(logging.INFO, logger="partitions.test"):
            log.info("x", extra={"stream": "commits"})
        assert caplog.records[-1].stream == "commits"
        assert log.context == {"stream": "prs"}

    def test_clear_context(self):
        log = SyncLogger("partitions.test")
        log.set_context(stream="prs")
        log.clear_context()
        assert log.context == {}

    def test_sink_does_not_format(self, caplog):
        log = SyncLogger("partitions.test")
        with caplog.at_level(logging.INFO, logger="partitions.test"):
            log.sink("100% done")
        assert caplog.records[-1].getMessage() == "100% done"

    def test_metric(self, caplog):
        log = SyncLogger("partitions.test", stream="prs")
        with caplog.at_level(logging.INFO, logger="partitions.test"):
            log.metric("records_read", 12, unit="records", source="github")
        record = caplog.records[-1]
        assert record.getMessage() == "METRIC records_read=12"
        assert record.metric_value == 12
        assert record.metric_unit == "records"
        assert record.source == "github"
        assert record.stream == "prs"


class TestSetupLogging:
    def test_verbose(self):
        setup_logging(verbose=True)
        root = logging.getLogger()
        assert root.level == logging.DEBUG
        assert len(root.handlers) == 1
        for name in QUIET_LOGGERS:
            assert logging.getLogger(name).level == logging.WARNING

    def test_default_level(self):
        setup_logging()
        assert logging.getLogger().level == logging.INFO

    def test_json_format(self):
        setup_logging(json_format=True)
        assert isinstance(logging.getLogger().handlers[0].formatter, JSONFormatter)

    def test_log_file(self, tmp_path):
        log_file = tmp_path / "sync.log"
        setup_logging(log_file=str(log_file))
        logging.getLogger("partitions.test").info("written")
        for handler in logging.getLogger().handlers:
            handler.flush()
        assert "written" in log_file.read_text(encoding="utf-8")
        for handler in logging.getLogger().handlers:
            if isinstance(handler, logging.FileHandler):
                handler.close()
