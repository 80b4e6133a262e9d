"""Exceptions raised by sync coordination.

Configuration problems are raised and stop the run before any data is
processed. Bad individual records are never raised; they simply leave the
stream state unchanged.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

__all__ = [
    "PartitionError",
    "ConfigurationError",
    "StateStoreError",
]


def _render(
    message: str,
    stream: Optional[str],
    details: Dict[str, Any],
    suggestion: Optional[str],
) -> str:
    """Multi-line text for ``str(error)``; a bare message stays a single line."""
    lines: List[str] = []
    if stream:
        lines.append(f"[{stream}]")
    lines.append(message)
    if details:
        lines.append("")
        lines.append("Details:")
        lines.extend(f"  {key}: {value}" for key, value in details.items())
    if suggestion:
        lines.append("")
        lines.append(f"Suggestion: {suggestion}")
    return "\n".join(lines)


class PartitionError(Exception):
    """Root of the package's exceptions.

    Carries the stream it happened on, free-form ``details`` and an optional
    hint for the operator. ``to_dict()`` is what the CLI logs.
    """

    default_suggestion: Optional[str] = None

    def __init__(
        self,
        message: str,
        *,
        stream: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        suggestion: Optional[str] = None,
    ) -> None:
        self.message = message
        self.stream = stream
        self.details = dict(details or {})
        self.suggestion = suggestion or self.default_suggestion
        super().__init__(_render(message, stream, self.details, self.suggestion))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error_type": type(self).__name__,
            "message": self.message,
            "stream": self.stream,
            "details": self.details,
            "suggestion": self.suggestion,
        }


class ConfigurationError(PartitionError):
    """Invalid bucketing or cutoff configuration.

    Never retried: the run must abort before any entity is synced.
    """

    def __init__(
        self,
        message: str,
        *,
        field: Optional[str] = None,
        value: Any = None,
        details: Optional[Dict[str, Any]] = None,
        **kwargs: Any,
    ) -> None:
        self.field = field
        self.value = value
        merged = dict(details or {})
        if field:
            merged["field"] = field
        if value is not None:
            merged["value"] = str(value)
        super().__init__(message, details=merged, **kwargs)


class StateStoreError(PartitionError):
    """Reading or writing a persisted state blob failed."""

    default_suggestion = (
        "Check that the state location is reachable and writable. "
        "Deleting a corrupt state blob forces a full resync."
    )

    def __init__(
        self,
        message: str,
        *,
        location: Optional[str] = None,
        cause: Optional[BaseException] = None,
        details: Optional[Dict[str, Any]] = None,
        **kwargs: Any,
    ) -> None:
        self.location = location
        self.cause = cause
        merged = dict(details or {})
        if location:
            merged["location"] = location
        if cause is not None:
            merged.update(cause=str(cause), cause_type=type(cause).__name__)
        super().__init__(message, details=merged, **kwargs)
