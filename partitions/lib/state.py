"""Helpers for the persisted stream state blob.

One blob is persisted per stream. Partition cutoffs live at the top level
keyed by partition key; engine bookkeeping lives under reserved keys that
start with a double underscore:

    {
        "apache/kafka": {"cutoff": 1704758400000},
        "__bucket_execution_state": {"last_executed_bucket_id": 3}
    }
"""

from __future__ import annotations

import json
from typing import Any, Dict, Mapping, Optional

from partitions.lib.cutoff import get_cutoff
from partitions.lib.errors import StateStoreError
from partitions.lib.round_robin import BucketExecutionState

__all__ = [
    "RESERVED_PREFIX",
    "decode_state",
    "encode_state",
    "execution_state",
    "is_reserved_key",
    "partition_cutoffs",
]

RESERVED_PREFIX = "__"


def is_reserved_key(key: str) -> bool:
    return key.startswith(RESERVED_PREFIX)


def partition_cutoffs(state: Optional[Mapping[str, Any]]) -> Dict[str, int]:
    """Return the cutoff of every partition in a stream state blob.

    Args:
        state: Persisted stream state, or None

    Returns:
        ``{partition_key: cutoff}`` with reserved keys and entries without
        a cutoff left out

    Raises:
        StateStoreError: If a stored cutoff is not an integer

    Example:
        >>> partition_cutoffs({
        ...     "apache/kafka": {"cutoff": 1704758400000},
        ...     "__bucket_execution_state": {"last_executed_bucket_id": 3},
        ... })
        {'apache/kafka': 1704758400000}
    """
    cutoffs: Dict[str, int] = {}
    for key in (state or {}):
        if is_reserved_key(key):
            continue
        cutoff = get_cutoff(state, key)
        if cutoff is not None:
            cutoffs[key] = cutoff
    return cutoffs


def execution_state(state: Optional[Mapping[str, Any]]) -> Optional[BucketExecutionState]:
    """Round-robin bookkeeping stored in the blob, or None before the first run."""
    return BucketExecutionState.from_state(state)


def encode_state(state: Mapping[str, Any]) -> str:
    """Serialize a blob for storage.

    Keys are sorted; equal states encode to identical text.

    Args:
        state: Stream state to persist

    Returns:
        Indented JSON text

    Example:
        >>> print(encode_state({"b": {"cutoff": 2}, "a": {"cutoff": 1}}))
        {
          "a": {
            "cutoff": 1
          },
          "b": {
            "cutoff": 2
          }
        }
    """
    return json.dumps(dict(state), indent=2, sort_keys=True)


def decode_state(payload: str, *, location: Optional[str] = None) -> Dict[str, Any]:
    """Parse a persisted blob.

    Raises:
        StateStoreError: If the payload is not a JSON object
    """
    if not payload.strip():
        return {}
    try:
        data = json.loads(payload)
    except json.JSONDecodeError as e:
        raise StateStoreError(
            "State blob is not valid JSON", location=location, cause=e
        ) from e
    if not isinstance(data, dict):
        raise StateStoreError(
            f"State blob must be a JSON object, got {type(data).__name__}",
            location=location,
        )
    return data

