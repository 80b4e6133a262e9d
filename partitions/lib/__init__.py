"""Sync coordination library modules.

Bucket assignment, round-robin bucket scheduling and per-partition cutoff
tracking, plus the state stores and configuration loading around them.
"""

from partitions.lib.bucket_set import BucketSet, parse_bucket_ranges
from partitions.lib.bucketing import (
    BUCKET_DIGEST_PREFIX_WIDTH,
    Bucketing,
    assign_buckets,
    bucket,
)
from partitions.lib.config_loader import (
    StreamConfig,
    SyncConfig,
    load_sync_config,
    parse_sync_config,
)
from partitions.lib.cutoff import (
    CutoffStateManager,
    TimestampStateConfig,
    calculate_updated_stream_state,
    get_cutoff,
    to_epoch_millis,
)
from partitions.lib.date_range import DateRange, calculate_date_range, get_update_range
from partitions.lib.errors import ConfigurationError, PartitionError, StateStoreError
from partitions.lib.extractors import (
    ConstantKey,
    CustomExtractor,
    CustomKey,
    FlatField,
    JoinedFieldsKey,
    NestedField,
    field_extractor,
    key_generator,
)
from partitions.lib.logging import SyncLogger, setup_logging
from partitions.lib.round_robin import (
    BUCKET_EXECUTION_STATE_KEY,
    BucketExecutionState,
    RoundRobinConfig,
    RoundRobinResult,
    apply_round_robin_bucketing,
    next_bucket_id,
    validate_bucketing_config,
)
from partitions.lib.runner import RunPlan, RunResult, SyncCoordinator
from partitions.lib.storage import LocalStateStore, S3StateStore, StateStore, create_state_store

__all__ = [
    # Bucket sets
    "BucketSet",
    "parse_bucket_ranges",
    # Bucket assignment
    "BUCKET_DIGEST_PREFIX_WIDTH",
    "Bucketing",
    "assign_buckets",
    "bucket",
    # Round robin
    "BUCKET_EXECUTION_STATE_KEY",
    "BucketExecutionState",
    "RoundRobinConfig",
    "RoundRobinResult",
    "apply_round_robin_bucketing",
    "next_bucket_id",
    "validate_bucketing_config",
    # Cutoffs
    "CutoffStateManager",
    "TimestampStateConfig",
    "calculate_updated_stream_state",
    "get_cutoff",
    "to_epoch_millis",
    # Extractors
    "ConstantKey",
    "CustomExtractor",
    "CustomKey",
    "FlatField",
    "JoinedFieldsKey",
    "NestedField",
    "field_extractor",
    "key_generator",
    # Date ranges
    "DateRange",
    "calculate_date_range",
    "get_update_range",
    # Config
    "StreamConfig",
    "SyncConfig",
    "load_sync_config",
    "parse_sync_config",
    # Runner
    "RunPlan",
    "RunResult",
    "SyncCoordinator",
    # Storage
    "LocalStateStore",
    "S3StateStore",
    "StateStore",
    "create_state_store",
    # Errors
    "ConfigurationError",
    "PartitionError",
    "StateStoreError",
    # Logging
    "SyncLogger",
    "setup_logging",
]
