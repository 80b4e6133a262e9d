"""Fetch windows for incremental syncs.

A connector is configured with a start date (or a number of cutoff days
back from the end date) and an optional end date. Once a partition has a
stored cutoff, fetching resumes from that cutoff instead of the start.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Optional, Tuple, Union

from partitions.lib.cutoff import to_epoch_millis
from partitions.lib.errors import ConfigurationError
from partitions.lib.logging import LogSink

__all__ = ["DateRange", "calculate_date_range", "get_update_range"]

DateLike = Union[str, date, datetime]


@dataclass(frozen=True)
class DateRange:
    start_date: datetime
    end_date: datetime


def _to_datetime(value: DateLike, field: str) -> datetime:
    millis = to_epoch_millis(value)
    if millis is None:
        raise ConfigurationError(f"Invalid {field}: {value}", field=field, value=value)
    return datetime.fromtimestamp(millis / 1000, tz=timezone.utc)


def calculate_date_range(
    start_date: Optional[DateLike] = None,
    end_date: Optional[DateLike] = None,
    cutoff_days: Optional[int] = None,
    log: Optional[LogSink] = None,
) -> DateRange:
    """Resolve the configured processing window.

    Args:
        start_date: First date to process
        end_date: Last date to process (default: now)
        cutoff_days: Days before ``end_date`` to start from when no
            ``start_date`` is given
        log: Optional sink for informational messages

    Raises:
        ConfigurationError: If neither start_date nor cutoff_days is given,
            or if the start falls after the end
    """

    def emit(message: str) -> None:
        if log is not None:
            log(message)

    if end_date is None:
        emit("End date not provided, using current date")
        end = datetime.now(timezone.utc)
    else:
        end = _to_datetime(end_date, "end_date")

    if start_date is not None:
        if cutoff_days is not None:
            emit("Both start date and cutoff days provided, discarding cutoff days")
        start = _to_datetime(start_date, "start_date")
    elif cutoff_days is not None:
        emit("Cutoff days provided, calculating start date from end date")
        start = end - timedelta(days=cutoff_days)
    else:
        raise ConfigurationError(
            "Either start_date or cutoff_days must be provided",
            field="start_date",
        )

    if start > end:
        raise ConfigurationError(
            f"Start date: {start.isoformat()} is after end date: {end.isoformat()}",
            field="start_date",
            value=start.isoformat(),
        )

    emit(f"Will process data from {start.isoformat()} to {end.isoformat()}")
    return DateRange(start_date=start, end_date=end)


def get_update_range(
    cutoff: Optional[int],
    start_date: datetime,
    end_date: datetime,
) -> Tuple[datetime, datetime]:
    """Window to fetch for one partition.

    Starts at the stored cutoff (epoch milliseconds) when there is one,
    else at the configured start date.
    """
    if cutoff:
        return datetime.fromtimestamp(cutoff / 1000, tz=timezone.utc), end_date
    return start_date, end_date
