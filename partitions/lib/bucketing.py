"""Deterministic assignment of entities to buckets.

Bucket ids are derived from a keyed digest so that independent,
non-communicating runs agree on which bucket an entity belongs to:

    HMAC-SHA256(key=namespace_key, msg=identifier) -> hex digest
    int(hexdigest[:8], 16) % bucket_total + 1

The digest algorithm and the 8 character prefix are part of the persisted
data contract. Changing either reassigns every entity to a different
bucket and invalidates all stored per-bucket progress.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Iterable, List, Optional, Tuple, TypeVar, Union

from partitions.lib.errors import ConfigurationError
from partitions.lib.logging import LogSink
from partitions.lib.round_robin import RoundRobinConfig, validate_bucketing_config

if TYPE_CHECKING:
    import pandas as pd

logger = logging.getLogger(__name__)

__all__ = [
    "BUCKET_DIGEST",
    "BUCKET_DIGEST_PREFIX_WIDTH",
    "Bucketing",
    "assign_buckets",
    "bucket",
]

BUCKET_DIGEST = hashlib.sha256
BUCKET_DIGEST_PREFIX_WIDTH = 8

T = TypeVar("T")


def bucket(namespace_key: str, entity_identifier: str, bucket_total: int) -> int:
    """Map an entity identifier to a bucket id in ``[1, bucket_total]``.

    Args:
        namespace_key: HMAC key, usually the connector name (e.g.
            "farosai/airbyte-github-source")
        entity_identifier: Stable entity id (e.g. "org/repo")
        bucket_total: Number of buckets

    Example:
        >>> b = bucket("farosai/airbyte-github-source", "apache/kafka", 10)
        >>> 1 <= b <= 10
        True
    """
    if bucket_total < 1:
        raise ConfigurationError(
            "bucket_total must be a positive integer",
            field="bucket_total",
            value=bucket_total,
        )
    digest = hmac.new(
        namespace_key.encode("utf-8"),
        entity_identifier.encode("utf-8"),
        BUCKET_DIGEST,
    ).hexdigest()
    return int(digest[:BUCKET_DIGEST_PREFIX_WIDTH], 16) % bucket_total + 1


def assign_buckets(
    frame: "pd.DataFrame",
    column: str,
    namespace_key: str,
    bucket_total: int,
    *,
    target_column: str = "_bucket_id",
) -> "pd.DataFrame":
    """Return a copy of ``frame`` with a bucket id column added.

    Args:
        frame: Entities, one per row
        column: Column holding the entity identifier
        namespace_key: HMAC key
        bucket_total: Number of buckets
        target_column: Name of the added column
    """
    result = frame.copy()
    result[target_column] = (
        result[column]
        .astype(str)
        .map(lambda identifier: bucket(namespace_key, identifier, bucket_total))
        .astype("int64")
    )
    return result


def _render(items: Iterable[str]) -> str:
    return ", ".join(items)


@dataclass(frozen=True)
class Bucketing:
    """Selects the entities that belong to the active bucket.

    Example:
        >>> bucketing = Bucketing.create(
        ...     partition_key="farosai/airbyte-github-source",
        ...     config={"bucket_total": 3, "bucket_id": 1},
        ... )
        >>> repos = bucketing.filter(["apache/kafka", "apache/spark"], lambda r: r)
    """

    partition_key: str
    bucket_total: int = 1
    bucket_id: int = 1

    @classmethod
    def create(
        cls,
        partition_key: str,
        config: Union[RoundRobinConfig, dict, None] = None,
    ) -> "Bucketing":
        cfg = RoundRobinConfig.coerce(config)
        validate_bucketing_config(cfg)
        return cls(
            partition_key=partition_key,
            bucket_total=cfg.bucket_total,
            bucket_id=cfg.bucket_id if cfg.bucket_id is not None else 1,
        )

    @property
    def label(self) -> str:
        return f"{self.partition_key} bucket {self.bucket_id}/{self.bucket_total}"

    def bucket_of(self, identifier: str) -> int:
        return bucket(self.partition_key, identifier, self.bucket_total)

    def is_selected(self, identifier: str) -> bool:
        return self.bucket_of(identifier) == self.bucket_id

    def filter(
        self,
        items: Iterable[T],
        get_id: Callable[[T], Optional[str]],
        *,
        log: Optional[LogSink] = None,
        entity_name: Optional[str] = None,
    ) -> List[T]:
        """Keep the items whose identifier hashes to the active bucket.

        When both ``log`` and ``entity_name`` are given, the visible and
        selected identifiers are reported through ``log``. Items whose
        identifier resolves to None belong to no bucket and are dropped.
        """
        visible: List[Tuple[T, str]] = []
        for item in items:
            identifier = get_id(item)
            if identifier is None:
                logger.debug(
                    "Bucketing (%s): dropping item without an identifier: %r", self.label, item
                )
                continue
            visible.append((item, identifier))
        chosen = [pair for pair in visible if self.is_selected(pair[1])]
        selected = [item for item, _ in chosen]

        if log is not None and entity_name:
            visible_ids = [identifier for _, identifier in visible]
            selected_ids = [identifier for _, identifier in chosen]
            log(
                f"Bucketing ({self.label}): visible {entity_name} "
                f"({len(visible_ids)}) -> {_render(visible_ids)}"
            )
            log(
                f"Bucketing ({self.label}): selected {entity_name} "
                f"({len(selected_ids)}) -> {_render(selected_ids)}"
            )
        else:
            logger.debug(
                "Bucketing (%s): selected %d of %d", self.label, len(selected), len(visible)
            )

        return selected

    def filter_frame(self, frame: "pd.DataFrame", column: str) -> "pd.DataFrame":
        """Keep only the rows whose ``column`` hashes to the active bucket."""
        mask = frame[column].astype(str).map(self.is_selected).astype(bool)
        return frame[mask]
