"""Partitioned incremental-sync coordination.

Usage:
    python -m partitions plan github.yaml pull_requests
    python -m partitions state github.yaml pull_requests
"""

from partitions.lib.bucket_set import BucketSet
from partitions.lib.bucketing import Bucketing, bucket
from partitions.lib.cutoff import CutoffStateManager, TimestampStateConfig
from partitions.lib.round_robin import (
    RoundRobinConfig,
    apply_round_robin_bucketing,
    next_bucket_id,
    validate_bucketing_config,
)

__all__ = [
    "BucketSet",
    "Bucketing",
    "bucket",
    "CutoffStateManager",
    "TimestampStateConfig",
    "RoundRobinConfig",
    "apply_round_robin_bucketing",
    "next_bucket_id",
    "validate_bucketing_config",
]
