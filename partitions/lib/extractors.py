"""Field extractors and partition key generators.

A field extractor is any callable taking a record and returning the raw
cursor value (or None when absent). A key generator is any callable taking
a stream slice and returning its partition key (or None when the slice
cannot be resolved). The classes below cover the common cases; a plain
function or lambda works anywhere one of them is accepted.
"""

from __future__ import annotations

from typing import Any, Callable, Mapping, Optional, Protocol, Sequence, Union

__all__ = [
    "ConstantKey",
    "CustomExtractor",
    "CustomKey",
    "FieldExtractor",
    "FlatField",
    "JoinedFieldsKey",
    "KeyGenerator",
    "NestedField",
    "field_extractor",
    "key_generator",
]


class FieldExtractor(Protocol):
    """Reads the raw cursor value from a record; None when absent."""

    def __call__(self, record: Any) -> Any: ...


class KeyGenerator(Protocol):
    """Maps a stream slice to its partition key; None when unresolvable."""

    def __call__(self, stream_slice: Any) -> Optional[str]: ...


def _lookup(value: Any, name: str) -> Any:
    if isinstance(value, Mapping):
        return value.get(name)
    return getattr(value, name, None)


class FlatField:
    """Top-level field lookup: ``record[name]``."""

    def __init__(self, name: str) -> None:
        self.name = name

    def __call__(self, record: Any) -> Any:
        if record is None:
            return None
        return _lookup(record, self.name)

    def __repr__(self) -> str:
        return f"FlatField({self.name!r})"


class NestedField:
    """Nested path lookup, e.g. ``["commit", "author", "date"]``.

    A dotted string ("commit.author.date") is split on dots. Any missing
    step yields None.
    """

    def __init__(self, path: Union[str, Sequence[str]]) -> None:
        self.path = tuple(path.split(".")) if isinstance(path, str) else tuple(path)
        if not self.path:
            raise ValueError("NestedField path must not be empty")

    def __call__(self, record: Any) -> Any:
        value = record
        for step in self.path:
            if value is None:
                return None
            value = _lookup(value, step)
        return value

    def __repr__(self) -> str:
        return f"NestedField({list(self.path)!r})"


class CustomExtractor:
    """Wraps an arbitrary ``record -> value`` function."""

    def __init__(self, fn: Callable[[Any], Any]) -> None:
        self.fn = fn

    def __call__(self, record: Any) -> Any:
        return self.fn(record)


class JoinedFieldsKey:
    """Joins slice fields into a lower-cased key, e.g. ``org/repo``.

    Returns None when any of the fields is missing or empty.

    Example:
        >>> JoinedFieldsKey("org", "repo")({"org": "Apache", "repo": "Kafka"})
        'apache/kafka'
        >>> JoinedFieldsKey("org", "repo")({"org": "Apache"}) is None
        True
    """

    def __init__(self, *fields: str, separator: str = "/") -> None:
        if not fields:
            raise ValueError("JoinedFieldsKey needs at least one field")
        self.fields = fields
        self.separator = separator

    def __call__(self, stream_slice: Any) -> Optional[str]:
        if stream_slice is None:
            return None
        parts = []
        for name in self.fields:
            value = _lookup(stream_slice, name)
            if value is None or value == "":
                return None
            parts.append(str(value))
        return self.separator.join(parts).lower()

    def __repr__(self) -> str:
        return f"JoinedFieldsKey({', '.join(map(repr, self.fields))}, separator={self.separator!r})"


class ConstantKey:
    """Single partition for streams that are not sliced."""

    def __init__(self, key: str) -> None:
        self.key = key

    def __call__(self, stream_slice: Any) -> Optional[str]:
        return self.key.lower()


class CustomKey:
    """Wraps an arbitrary ``slice -> key`` function."""

    def __init__(self, fn: Callable[[Any], Optional[str]]) -> None:
        self.fn = fn

    def __call__(self, stream_slice: Any) -> Optional[str]:
        return self.fn(stream_slice)


def field_extractor(spec: Union[str, Sequence[str], Callable[[Any], Any]]) -> FieldExtractor:
    """Build a field extractor from a config value.

    Args:
        spec: Field name, dotted path, list path, or a callable

    Returns:
        A callable mapping a record to its raw cursor value

    Example:
        >>> field_extractor("updated_at")
        FlatField('updated_at')
        >>> field_extractor("commit.author.date")
        NestedField(['commit', 'author', 'date'])
    """
    if callable(spec):
        return spec
    if isinstance(spec, str):
        return NestedField(spec) if "." in spec else FlatField(spec)
    path = list(spec)
    if len(path) == 1:
        return FlatField(path[0])
    return NestedField(path)


def key_generator(
    spec: Union[str, Sequence[str], Callable[[Any], Optional[str]]],
    *,
    separator: str = "/",
) -> KeyGenerator:
    """Build a key generator from a config value.

    A single field name or a list of field names produce a
    :class:`JoinedFieldsKey`; callables are used as they are.

    Args:
        spec: Field name, list of field names, or a callable
        separator: Joins the field values

    Returns:
        A callable mapping a stream slice to its partition key, or to None
        when the slice lacks one of the fields

    Example:
        >>> keys = key_generator(["org", "repo"])
        >>> keys({"org": "Apache", "repo": "Kafka"})
        'apache/kafka'
        >>> key_generator("project", separator=":")({"project": "PROJ"})
        'proj'
    """
    if callable(spec):
        return spec
    if isinstance(spec, str):
        return JoinedFieldsKey(spec, separator=separator)
    return JoinedFieldsKey(*spec, separator=separator)
