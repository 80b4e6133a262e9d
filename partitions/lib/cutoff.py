"""Per-partition cutoff (high-water mark) tracking.

Stream state maps a partition key to the latest lag-adjusted timestamp
observed for it, in epoch milliseconds:

    {"apache/kafka": {"cutoff": 1704758400000}, ...}

Updates are pure: a new dict is returned whenever a cutoff advances, and
the input object is returned as-is otherwise. Records with a missing or
unparseable cursor never change the state.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any, Dict, Mapping, Optional

from partitions.lib.errors import ConfigurationError, StateStoreError
from partitions.lib.extractors import FieldExtractor, KeyGenerator

logger = logging.getLogger(__name__)

__all__ = [
    "MILLIS_PER_DAY",
    "CutoffStateManager",
    "StreamState",
    "TimestampStateConfig",
    "calculate_updated_stream_state",
    "get_cutoff",
    "to_epoch_millis",
]

MILLIS_PER_DAY = 24 * 60 * 60 * 1000

StreamState = Dict[str, Dict[str, int]]


def to_epoch_millis(value: Any) -> Optional[int]:
    """Coerce a cursor value to epoch milliseconds.

    Accepts datetimes (naive values are taken as UTC), dates, ISO-8601
    strings and numeric epoch milliseconds. Returns None for None and for
    values that cannot be interpreted.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return int(value.timestamp() * 1000)
    if isinstance(value, date):
        return to_epoch_millis(datetime(value.year, value.month, value.day))
    if isinstance(value, float) and not math.isfinite(value):
        return None
    if isinstance(value, (int, float)):
        return int(value)
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        digits = text[1:] if text.startswith("-") else text
        if digits.isascii() and digits.isdigit():
            return int(text)
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            return None
        return to_epoch_millis(parsed)
    return None


def get_cutoff(state: Optional[Mapping[str, Any]], key: str) -> Optional[int]:
    """Return the stored cutoff for ``key``, or None when there is none.

    Raises:
        StateStoreError: If the stored cutoff is not an integer
    """
    if not state:
        return None
    entry = state.get(key)
    if not isinstance(entry, Mapping):
        return None
    cutoff = entry.get("cutoff")
    if cutoff is None:
        return None
    try:
        return int(cutoff)
    except (TypeError, ValueError, OverflowError) as e:
        raise StateStoreError(
            f"Stored cutoff for {key!r} is not an integer: {cutoff!r}",
            location=key,
            cause=e,
        ) from e


def calculate_updated_stream_state(
    latest_record_cutoff: Optional[int],
    current_state: Optional[StreamState],
    key: str,
    cutoff_lag_days: int = 0,
) -> StreamState:
    """Fold one record's cutoff into the stream state.

    Args:
        latest_record_cutoff: Record timestamp in epoch milliseconds
        current_state: Current stream state (not modified)
        key: Partition key
        cutoff_lag_days: Days subtracted from the record timestamp

    Returns:
        A new state when the lag-adjusted cutoff is strictly greater than
        the stored one, otherwise ``current_state`` itself
    """
    if latest_record_cutoff is None:
        return current_state if current_state is not None else {}

    current_cutoff = get_cutoff(current_state, key) or 0
    candidate = latest_record_cutoff - cutoff_lag_days * MILLIS_PER_DAY

    if candidate > current_cutoff:
        new_state = dict(current_state or {})
        new_state[key] = {"cutoff": candidate}
        return new_state
    return current_state if current_state is not None else {}


@dataclass(frozen=True)
class TimestampStateConfig:
    """How a stream reads cursors and partition keys."""

    field_extractor: FieldExtractor
    key_generator: KeyGenerator
    cutoff_lag_days: int = 0

    def __post_init__(self) -> None:
        lag = self.cutoff_lag_days
        if not isinstance(lag, int) or isinstance(lag, bool) or lag < 0:
            raise ConfigurationError(
                "cutoff_lag_days must be a non-negative integer",
                field="cutoff_lag_days",
                value=lag,
            )


class CutoffStateManager:
    """Computes updated stream state as records are synced.

    Example:
        >>> manager = CutoffStateManager(TimestampStateConfig(
        ...     field_extractor=FlatField("updated_at"),
        ...     key_generator=JoinedFieldsKey("org", "repo"),
        ...     cutoff_lag_days=1,
        ... ))
        >>> manager.get_updated_state(
        ...     {}, {"updated_at": "2024-01-10T00:00:00Z"},
        ...     {"org": "Org", "repo": "Repo"},
        ... )
        {'org/repo': {'cutoff': 1704758400000}}
    """

    def __init__(self, config: TimestampStateConfig) -> None:
        self.config = config

    def get_updated_state(
        self,
        current_state: Optional[StreamState],
        latest_record: Any,
        stream_slice: Any = None,
    ) -> StreamState:
        unchanged = current_state if current_state is not None else {}

        raw = self.config.field_extractor(latest_record)
        timestamp = to_epoch_millis(raw)
        if timestamp is None:
            if raw is not None:
                logger.debug("Ignoring record with unparseable cursor value %r", raw)
            return unchanged

        key = self.config.key_generator(stream_slice)
        if not key:
            logger.debug("Ignoring record for unresolvable slice %r", stream_slice)
            return unchanged

        return calculate_updated_stream_state(
            timestamp,
            current_state,
            key.lower(),
            self.config.cutoff_lag_days,
        )
