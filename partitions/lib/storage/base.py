"""Abstract base class for stream state stores.

A state store reads the persisted blob for a stream before a run and
durably writes the blob returned by the run. Atomicity of the write is the
store's responsibility.
"""

from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Mapping

logger = logging.getLogger(__name__)

__all__ = ["StateStore", "STATE_SUFFIX", "state_name"]

STATE_SUFFIX = "_state.json"

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_.-]+")


def state_name(stream: str) -> str:
    """Object/file name holding the blob for ``stream``."""
    if not stream:
        raise ValueError("stream name must not be empty")
    return f"{_UNSAFE_CHARS.sub('_', stream)}{STATE_SUFFIX}"


class StateStore(ABC):
    """Unified interface over local and object storage for state blobs."""

    @property
    @abstractmethod
    def scheme(self) -> str:
        """URI scheme for this store ('local' or 's3')."""

    @abstractmethod
    def load(self, stream: str) -> Dict[str, Any]:
        """Return the persisted blob for ``stream``.

        Args:
            stream: Stream name

        Returns:
            The decoded blob, or {} when none exists

        Raises:
            StateStoreError: If the blob cannot be read or is not a JSON object
        """

    @abstractmethod
    def save(self, stream: str, state: Mapping[str, Any]) -> None:
        """Persist ``state`` as the blob for ``stream``, replacing any previous one.

        Args:
            stream: Stream name
            state: Full stream state, reserved keys included

        Raises:
            StateStoreError: If the write fails
        """

    @abstractmethod
    def delete(self, stream: str) -> bool:
        """Delete the blob for ``stream``. Returns False if there was none."""

    @abstractmethod
    def list_streams(self) -> List[str]:
        """Names (as stored) of all streams with a persisted blob."""

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.location!r})"

    @property
    def location(self) -> str:
        return self.scheme
