"""State store backends.

Usage:
    from partitions.lib.storage import create_state_store

    # Local filesystem
    store = create_state_store("./.state")

    # AWS S3
    store = create_state_store("s3://my-bucket/sync-state/")
"""

from typing import Any, Optional

from partitions.lib.storage.base import StateStore
from partitions.lib.storage.local import LocalStateStore
from partitions.lib.storage.s3 import S3StateStore

__all__ = [
    "StateStore",
    "LocalStateStore",
    "S3StateStore",
    "create_state_store",
]


def create_state_store(uri: Optional[str] = None, **options: Any) -> StateStore:
    """Get the state store for a location.

    ``s3://`` URIs map to :class:`S3StateStore`; anything else (including
    None, which falls back to ``SYNC_STATE_DIR``) is a local directory.
    """
    if uri and uri.startswith("s3://"):
        return S3StateStore.from_uri(uri, **options)
    return LocalStateStore(uri, **options)
