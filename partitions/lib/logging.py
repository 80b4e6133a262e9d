"""Logging for sync runs.

Engine functions report progress through a plain ``log`` callable (a "log
sink") that takes one human-readable line. The CLI and the coordinator
route those lines into standard logging, tagged with the run context
(stream, bucket id) so they can be filtered or shipped as JSON.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, MutableMapping, Optional, Tuple

__all__ = [
    "JSONFormatter",
    "LogSink",
    "QUIET_LOGGERS",
    "SyncLogger",
    "setup_logging",
]

LogSink = Callable[[str], None]

QUIET_LOGGERS = ("botocore", "boto3", "s3transfer", "urllib3")

TEXT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
TEXT_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_STANDARD_ATTRS = frozenset(
    logging.LogRecord("", 0, "", 0, "", (), None).__dict__
) | {"message", "asctime"}


def _record_context(record: logging.LogRecord, skip: Iterable[str] = ()) -> Dict[str, Any]:
    """Attributes attached to a record through ``extra=``."""
    skipped = set(skip)
    return {
        key: value
        for key, value in record.__dict__.items()
        if key not in _STANDARD_ATTRS and key not in skipped
    }


class JSONFormatter(logging.Formatter):
    """One JSON object per record, for log aggregation.

    Run context and metric fields appear under ``context``:

        {"timestamp": "2025-01-15T10:30:00.123Z", "level": "INFO",
         "logger": "partitions.lib.runner",
         "message": "METRIC records_read=42",
         "context": {"stream": "pull_requests", "bucket_id": 3,
                     "metric_name": "records_read", "metric_value": 42}}
    """

    def __init__(self, exclude_fields: Optional[Iterable[str]] = None) -> None:
        super().__init__()
        self.exclude_fields = frozenset(exclude_fields or ())

    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, tz=timezone.utc)
        payload: Dict[str, Any] = {
            "timestamp": created.isoformat(timespec="milliseconds").replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        context = _record_context(record, self.exclude_fields)
        if context:
            payload["context"] = context
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


class SyncLogger(logging.LoggerAdapter):
    """Logger adapter that stamps every record with the run context.

    Example:
        log = SyncLogger(__name__, stream="pull_requests")
        log.set_context(bucket_id=3)
        log.info("Selected %d repositories", 12)
        bucketing.filter(repos, get_id, log=log.sink, entity_name="repos")
    """

    def __init__(self, name: str, **context: Any) -> None:
        super().__init__(logging.getLogger(name), dict(context))

    @property
    def context(self) -> Dict[str, Any]:
        return dict(self.extra)

    def set_context(self, **kwargs: Any) -> None:
        self.extra.update(kwargs)

    def clear_context(self) -> None:
        self.extra.clear()

    def process(
        self, msg: Any, kwargs: MutableMapping[str, Any]
    ) -> Tuple[Any, MutableMapping[str, Any]]:
        kwargs["extra"] = {**self.extra, **(kwargs.get("extra") or {})}
        return msg, kwargs

    def sink(self, message: str) -> None:
        """Log sink for engine functions; the line is logged verbatim."""
        self.info("%s", message)

    def metric(self, name: str, value: Any, unit: Optional[str] = None, **tags: Any) -> None:
        """Log a run metric, e.g. ``metric("records_read", 42, unit="records")``."""
        fields: Dict[str, Any] = {"metric_name": name, "metric_value": value}
        if unit:
            fields["metric_unit"] = unit
        fields.update(tags)
        self.info("METRIC %s=%s", name, value, extra=fields)


def setup_logging(
    verbose: bool = False,
    json_format: bool = False,
    log_file: Optional[str] = None,
) -> None:
    """Route all logging to stderr (and optionally a file).

    Args:
        verbose: Log at DEBUG instead of INFO
        json_format: Emit JSON lines instead of text
        log_file: Also append records to this file
    """
    level = logging.DEBUG if verbose else logging.INFO
    formatter: logging.Formatter
    if json_format:
        formatter = JSONFormatter()
    else:
        formatter = logging.Formatter(TEXT_FORMAT, datefmt=TEXT_DATE_FORMAT)

    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file:
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
        root.addHandler(handler)
    root.setLevel(level)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
