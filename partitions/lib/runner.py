"""Per-invocation coordination of one stream.

    state = store.load(stream)
    plan = coordinator.begin(state)           # round-robin + validation
    slices = coordinator.select(candidates)   # bucket filter
    for each slice, for each record:
        state = coordinator.fold(state, record, slice)
    store.save(stream, state)

The blob is saved only after every selected slice has been read. A run
that fails part way persists nothing and the next run resumes from the
last saved blob.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple

from partitions.lib.bucketing import Bucketing
from partitions.lib.config_loader import StreamConfig, SyncConfig
from partitions.lib.cutoff import CutoffStateManager, StreamState, get_cutoff
from partitions.lib.date_range import calculate_date_range, get_update_range
from partitions.lib.logging import SyncLogger
from partitions.lib.round_robin import (
    RoundRobinConfig,
    apply_round_robin_bucketing,
    validate_bucketing_config,
)
from partitions.lib.storage.base import StateStore

logger = logging.getLogger(__name__)

__all__ = ["RunPlan", "RunResult", "SyncCoordinator"]

Slice = Mapping[str, Any]
ReadRecords = Callable[[Slice, Optional[int]], Iterable[Any]]


@dataclass(frozen=True)
class RunPlan:
    """Outcome of the round-robin step for one invocation."""

    bucketing: RoundRobinConfig
    state: Dict[str, Any]

    @property
    def bucket_id(self) -> int:
        return self.bucketing.bucket_id if self.bucketing.bucket_id is not None else 1


@dataclass
class RunResult:
    stream: str
    bucket_id: int
    slices_visible: int = 0
    slices_selected: int = 0
    records_read: int = 0
    state: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "stream": self.stream,
            "bucket_id": self.bucket_id,
            "slices_visible": self.slices_visible,
            "slices_selected": self.slices_selected,
            "records_read": self.records_read,
        }


class SyncCoordinator:
    """Wires bucketing, round-robin scheduling and cutoff tracking for a stream.

    Example:
        config = load_sync_config("github.yaml")
        coordinator = SyncCoordinator.from_config(config, "pull_requests")
        result = coordinator.run_stream(
            store=create_state_store(config.state_uri),
            slices=[{"org": "apache", "repo": "kafka"}],
            read_records=lambda s, cutoff: client.pull_requests(s, since=cutoff),
        )
    """

    def __init__(
        self,
        namespace: str,
        bucketing: RoundRobinConfig,
        stream: StreamConfig,
        *,
        date_window: Optional[Tuple[datetime, datetime]] = None,
    ) -> None:
        self.namespace = namespace
        self.bucketing = bucketing
        self.stream = stream
        self.date_window = date_window
        self.cutoffs = CutoffStateManager(stream.state)
        self.log = SyncLogger(__name__, stream=stream.name)

    @classmethod
    def from_config(cls, config: SyncConfig, stream_name: str) -> "SyncCoordinator":
        date_window = None
        if config.start_date is not None or config.cutoff_days is not None:
            date_range = calculate_date_range(
                start_date=config.start_date,
                end_date=config.end_date,
                cutoff_days=config.cutoff_days,
                log=logger.info,
            )
            date_window = (date_range.start_date, date_range.end_date)
        return cls(
            config.namespace,
            config.bucketing,
            config.stream(stream_name),
            date_window=date_window,
        )

    def begin(self, state: Optional[Mapping[str, Any]]) -> RunPlan:
        """Validate bucketing and advance the round-robin pointer."""
        validate_bucketing_config(self.bucketing, log=self.log.sink)
        result = apply_round_robin_bucketing(self.bucketing, state, log=self.log.sink)
        plan = RunPlan(bucketing=result.config, state=dict(result.state or {}))
        self.log.set_context(bucket_id=plan.bucket_id)
        return plan

    def select(
        self,
        plan: RunPlan,
        slices: Iterable[Slice],
        *,
        get_id: Optional[Callable[[Slice], Optional[str]]] = None,
    ) -> List[Slice]:
        """Keep the slices whose entity hashes to the planned bucket."""
        bucketing = Bucketing.create(self.namespace, plan.bucketing)
        return bucketing.filter(
            slices,
            get_id or self.stream.entity_id,
            log=self.log.sink,
            entity_name=self.stream.name,
        )

    def fold(self, state: StreamState, record: Any, stream_slice: Slice) -> StreamState:
        return self.cutoffs.get_updated_state(state, record, stream_slice)

    def cutoff_for(self, state: Mapping[str, Any], stream_slice: Slice) -> Optional[int]:
        key = self.stream.state.key_generator(stream_slice)
        if not key:
            return None
        return get_cutoff(state, key.lower())

    def update_range(
        self, state: Mapping[str, Any], stream_slice: Slice
    ) -> Optional[Tuple[datetime, datetime]]:
        """Fetch window for a slice, when a date window is configured."""
        if self.date_window is None:
            return None
        start, end = self.date_window
        return get_update_range(self.cutoff_for(state, stream_slice), start, end)

    def run_stream(
        self,
        store: StateStore,
        slices: Iterable[Slice],
        read_records: ReadRecords,
        *,
        get_id: Optional[Callable[[Slice], Optional[str]]] = None,
    ) -> RunResult:
        """Run one invocation of the stream end to end.

        ``read_records(slice, cutoff)`` is the external record source; it
        receives the stored cutoff (epoch milliseconds) for the slice's
        partition, or None on first sync.
        """
        stream_name = self.stream.name
        state = store.load(stream_name)
        plan = self.begin(state)

        visible = list(slices)
        selected = self.select(plan, visible, get_id=get_id)

        result = RunResult(
            stream=stream_name,
            bucket_id=plan.bucket_id,
            slices_visible=len(visible),
            slices_selected=len(selected),
        )

        current: StreamState = plan.state
        for stream_slice in selected:
            cutoff = self.cutoff_for(current, stream_slice)
            for record in read_records(stream_slice, cutoff):
                current = self.fold(current, record, stream_slice)
                result.records_read += 1

        store.save(stream_name, current)
        result.state = current

        self.log.metric("slices_selected", result.slices_selected, unit="slices")
        self.log.metric("records_read", result.records_read, unit="records")
        return result
