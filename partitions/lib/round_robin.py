"""Round-robin bucket scheduling across sync invocations.

Each invocation processes exactly one bucket. The last executed bucket id
is persisted in the stream state blob under ``__bucket_execution_state``;
the next run advances from it, so every configured bucket is processed
once before any bucket repeats.

When no prior execution state exists the last executed bucket defaults to
``bucket_total``, so the first run of a new deployment lands on the start
of the configured cycle.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Mapping, NamedTuple, Optional, Union

from partitions.lib.bucket_set import BucketRangeSpec, BucketSet
from partitions.lib.errors import ConfigurationError, StateStoreError
from partitions.lib.logging import LogSink

logger = logging.getLogger(__name__)

__all__ = [
    "BUCKET_EXECUTION_STATE_KEY",
    "BucketExecutionState",
    "RoundRobinConfig",
    "RoundRobinResult",
    "apply_round_robin_bucketing",
    "next_bucket_id",
    "validate_bucketing_config",
]

BUCKET_EXECUTION_STATE_KEY = "__bucket_execution_state"

_CONFIG_FIELDS = (
    "bucket_total",
    "bucket_id",
    "bucket_ranges",
    "round_robin_bucket_execution",
)


@dataclass(frozen=True)
class RoundRobinConfig:
    """Bucketing settings for one connector.

    ``extra`` keeps any other keys of the source mapping so that
    :meth:`to_dict` hands the full connector config back unchanged apart
    from ``bucket_id``.
    """

    bucket_total: int = 1
    bucket_id: Optional[int] = None
    bucket_ranges: Optional[BucketRangeSpec] = None
    round_robin_bucket_execution: bool = False
    extra: Dict[str, Any] = field(default_factory=dict, compare=False)

    @classmethod
    def from_dict(cls, config: Mapping[str, Any]) -> "RoundRobinConfig":
        bucket_total = config.get("bucket_total")
        return cls(
            bucket_total=1 if bucket_total is None else bucket_total,
            bucket_id=config.get("bucket_id"),
            bucket_ranges=config.get("bucket_ranges") or None,
            round_robin_bucket_execution=bool(
                config.get("round_robin_bucket_execution", False)
            ),
            extra={k: v for k, v in config.items() if k not in _CONFIG_FIELDS},
        )

    @classmethod
    def coerce(
        cls, config: Union["RoundRobinConfig", Mapping[str, Any], None]
    ) -> "RoundRobinConfig":
        if isinstance(config, RoundRobinConfig):
            return config
        return cls.from_dict(config or {})

    def to_dict(self) -> Dict[str, Any]:
        result = dict(self.extra)
        result["bucket_total"] = self.bucket_total
        result["round_robin_bucket_execution"] = self.round_robin_bucket_execution
        if self.bucket_id is not None:
            result["bucket_id"] = self.bucket_id
        if self.bucket_ranges is not None:
            result["bucket_ranges"] = self.bucket_ranges
        return result

    @property
    def bucket_set(self) -> Optional[BucketSet]:
        """Configured range scope, or None when ranges are not in effect."""
        if not self.round_robin_bucket_execution or not self.bucket_ranges:
            return None
        return BucketSet(self.bucket_total, self.bucket_ranges)


@dataclass(frozen=True)
class BucketExecutionState:
    last_executed_bucket_id: int

    @classmethod
    def from_state(
        cls, state: Optional[Mapping[str, Any]]
    ) -> Optional["BucketExecutionState"]:
        """Read the execution fragment out of a stream state blob."""
        if not state:
            return None
        fragment = state.get(BUCKET_EXECUTION_STATE_KEY)
        if not isinstance(fragment, Mapping):
            return None
        last = fragment.get("last_executed_bucket_id")
        if last is None:
            return None
        try:
            return cls(last_executed_bucket_id=int(last))
        except (TypeError, ValueError, OverflowError) as e:
            raise StateStoreError(
                f"Stored last_executed_bucket_id is not an integer: {last!r}",
                location=BUCKET_EXECUTION_STATE_KEY,
                cause=e,
            ) from e

    def to_dict(self) -> Dict[str, int]:
        return {"last_executed_bucket_id": self.last_executed_bucket_id}


class RoundRobinResult(NamedTuple):
    config: Any
    state: Any


ConfigLike = Union[RoundRobinConfig, Mapping[str, Any], None]
PriorState = Union[BucketExecutionState, Mapping[str, Any], None]


def _is_positive_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value >= 1


def validate_bucketing_config(config: ConfigLike, log: Optional[LogSink] = None) -> None:
    """Validate bucket_total and bucket_id before any data is processed.

    Args:
        config: RoundRobinConfig or the raw connector config mapping
        log: Optional sink for non-fatal configuration warnings

    Raises:
        ConfigurationError: If bucket_total or bucket_id is invalid
    """
    cfg = RoundRobinConfig.coerce(config)

    if not _is_positive_int(cfg.bucket_total):
        raise ConfigurationError(
            "bucket_total must be a positive integer",
            field="bucket_total",
            value=cfg.bucket_total,
        )

    if cfg.bucket_id is not None and (
        not isinstance(cfg.bucket_id, int)
        or isinstance(cfg.bucket_id, bool)
        or not 1 <= cfg.bucket_id <= cfg.bucket_total
    ):
        raise ConfigurationError(
            f"bucket_id must be between 1 and {cfg.bucket_total}",
            field="bucket_id",
            value=cfg.bucket_id,
        )

    if cfg.bucket_ranges and not cfg.round_robin_bucket_execution:
        if log is not None:
            log(
                f"bucket_ranges {cfg.bucket_ranges} ignored because "
                "round_robin_bucket_execution is not enabled"
            )


def _last_executed(prior_state: PriorState, bucket_total: int) -> int:
    if isinstance(prior_state, BucketExecutionState):
        return prior_state.last_executed_bucket_id
    execution = BucketExecutionState.from_state(prior_state)
    if execution is None:
        return bucket_total
    return execution.last_executed_bucket_id


def next_bucket_id(config: ConfigLike, prior_state: PriorState = None) -> int:
    """Compute the bucket this invocation should process.

    Args:
        config: Bucketing configuration
        prior_state: BucketExecutionState, or the persisted stream state blob

    Returns:
        Next bucket id, in ``[1, bucket_total]``
    """
    cfg = RoundRobinConfig.coerce(config)
    if not _is_positive_int(cfg.bucket_total):
        raise ConfigurationError(
            "bucket_total must be a positive integer",
            field="bucket_total",
            value=cfg.bucket_total,
        )

    last = _last_executed(prior_state, cfg.bucket_total)

    bucket_set = cfg.bucket_set
    if bucket_set is not None:
        return bucket_set.next(last)
    return (last % cfg.bucket_total) + 1


def apply_round_robin_bucketing(
    config: ConfigLike,
    state: Optional[Mapping[str, Any]] = None,
    log: Optional[LogSink] = None,
) -> RoundRobinResult:
    """Advance the round-robin pointer for this invocation.

    With round-robin disabled the inputs are returned as they are. Otherwise
    the returned config carries the chosen ``bucket_id`` and the returned
    state blob records it as the last executed bucket. Inputs are never
    mutated; config is returned in the type it was given.
    """
    cfg = RoundRobinConfig.coerce(config)
    if not cfg.round_robin_bucket_execution:
        return RoundRobinResult(config, state)

    bucket_id = next_bucket_id(cfg, state)
    message = f"Using round robin bucket execution. Bucket id: {bucket_id}"
    if log is not None:
        log(message)
    else:
        logger.info(message)

    new_cfg = replace(cfg, bucket_id=bucket_id)
    new_state = dict(state or {})
    new_state[BUCKET_EXECUTION_STATE_KEY] = BucketExecutionState(bucket_id).to_dict()

    if isinstance(config, RoundRobinConfig):
        return RoundRobinResult(new_cfg, new_state)
    return RoundRobinResult(new_cfg.to_dict(), new_state)
