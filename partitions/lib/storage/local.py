"""Local filesystem state store.

Blobs are JSON files named ``<stream>_state.json`` in a state directory.
The directory defaults to ``SYNC_STATE_DIR`` from the environment, or
``.state`` in the working directory.
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

from partitions.lib.errors import StateStoreError
from partitions.lib.state import decode_state, encode_state
from partitions.lib.storage.base import STATE_SUFFIX, StateStore, state_name

logger = logging.getLogger(__name__)

__all__ = ["DEFAULT_STATE_DIR", "LocalStateStore"]

DEFAULT_STATE_DIR = ".state"


class LocalStateStore(StateStore):
    """State blobs as JSON files.

    Example:
        >>> store = LocalStateStore("./.state")
        >>> store.save("pull_requests", {"apache/kafka": {"cutoff": 1704758400000}})
        >>> store.load("pull_requests")
        {'apache/kafka': {'cutoff': 1704758400000}}
    """

    def __init__(self, state_dir: Optional[Union[str, Path]] = None) -> None:
        if state_dir is None:
            state_dir = os.environ.get("SYNC_STATE_DIR", DEFAULT_STATE_DIR)
        self.state_dir = Path(state_dir)

    @property
    def scheme(self) -> str:
        return "local"

    @property
    def location(self) -> str:
        return str(self.state_dir)

    def _path(self, stream: str) -> Path:
        return self.state_dir / state_name(stream)

    def load(self, stream: str) -> Dict[str, Any]:
        """Read ``<state_dir>/<stream>_state.json``.

        Returns:
            The decoded blob, or {} when the file does not exist

        Raises:
            StateStoreError: If the file cannot be read or holds invalid JSON
        """
        path = self._path(stream)
        if not path.exists():
            logger.debug("No state found for %s at %s", stream, path)
            return {}

        try:
            payload = path.read_text(encoding="utf-8")
        except OSError as e:
            raise StateStoreError(
                f"Failed to read state for {stream}",
                stream=stream,
                location=str(path),
                cause=e,
            ) from e

        state = decode_state(payload, location=str(path))
        logger.debug("Loaded state for %s (%d keys)", stream, len(state))
        return state

    def save(self, stream: str, state: Mapping[str, Any]) -> None:
        """Write the blob atomically, creating the state directory if needed.

        Args:
            stream: Stream name
            state: Full stream state

        Raises:
            StateStoreError: If the directory or file cannot be written
        """
        path = self._path(stream)
        payload = encode_state(state)

        try:
            self.state_dir.mkdir(parents=True, exist_ok=True)
            # Sibling temp file, then os.replace.
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{path.name}.", suffix=".tmp", dir=str(self.state_dir)
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    handle.write(payload)
                    handle.flush()
                    os.fsync(handle.fileno())
                os.replace(tmp_name, path)
            except BaseException:
                if os.path.exists(tmp_name):
                    os.unlink(tmp_name)
                raise
        except OSError as e:
            raise StateStoreError(
                f"Failed to write state for {stream}",
                stream=stream,
                location=str(path),
                cause=e,
            ) from e

        logger.info("Saved state for %s to %s", stream, path)

    def delete(self, stream: str) -> bool:
        path = self._path(stream)
        if not path.exists():
            return False
        path.unlink()
        logger.info("Deleted state for %s", stream)
        return True

    def list_streams(self) -> List[str]:
        if not self.state_dir.exists():
            return []
        return sorted(
            p.name[: -len(STATE_SUFFIX)]
            for p in self.state_dir.glob(f"*{STATE_SUFFIX}")
        )
