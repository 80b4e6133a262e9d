"""Bucket sets: the validated, ordered scope of bucket ids for a run.

A bucket set is built from a total bucket count and one or more range
tokens. Each token is a single id (``"5"``) or an inclusive span
(``"1-3"``); tokens arrive either as one comma-delimited string or as a
list. The set provides a cyclic order over its members so schedulers never
special-case wraparound.

Example:
    >>> buckets = BucketSet(10, "1-3,5,7-8")
    >>> buckets.next(3)
    5
    >>> buckets.next(8)
    1
"""

from __future__ import annotations

from bisect import bisect_right
from typing import Iterator, List, Sequence, Tuple, Union

from partitions.lib.errors import ConfigurationError

__all__ = ["BucketRangeSpec", "BucketSet", "parse_bucket_ranges"]

BucketRangeSpec = Union[str, Sequence[str]]


def _split_tokens(range_spec: BucketRangeSpec) -> List[str]:
    if isinstance(range_spec, str):
        raw_tokens = range_spec.split(",")
    else:
        raw_tokens = [str(token) for token in range_spec]
    return [token.strip() for token in raw_tokens if token.strip()]


def _parse_bound(text: str, token: str) -> int:
    text = text.strip()
    if not (text.isascii() and text.isdigit()):
        raise ConfigurationError(
            f"Invalid bucket range '{token}': '{text}' is not a number",
            field="bucket_ranges",
            value=token,
        )
    return int(text)


def parse_bucket_ranges(bucket_total: int, range_spec: BucketRangeSpec) -> Tuple[int, ...]:
    """Parse range tokens into a sorted tuple of unique bucket ids.

    Raises:
        ConfigurationError: On any malformed or out-of-range token
    """
    if bucket_total < 1:
        raise ConfigurationError(
            "bucket_total must be a positive integer",
            field="bucket_total",
            value=bucket_total,
        )

    tokens = _split_tokens(range_spec) if range_spec is not None else []
    if not tokens:
        raise ConfigurationError(
            "bucket_ranges must not be empty",
            field="bucket_ranges",
            value=range_spec,
        )

    members = set()
    for token in tokens:
        bounds = token.split("-")
        if len(bounds) > 2:
            raise ConfigurationError(
                f"Invalid bucket range '{token}': expected 'n' or 'n-m'",
                field="bucket_ranges",
                value=token,
            )

        start = _parse_bound(bounds[0], token)
        end = _parse_bound(bounds[1], token) if len(bounds) == 2 else start

        for bound in (start, end):
            if bound < 1 or bound > bucket_total:
                raise ConfigurationError(
                    f"Invalid bucket range '{token}': bucket {bound} is "
                    f"outside 1-{bucket_total}",
                    field="bucket_ranges",
                    value=token,
                )
        if end < start:
            raise ConfigurationError(
                f"Invalid bucket range '{token}': end is before start",
                field="bucket_ranges",
                value=token,
            )

        members.update(range(start, end + 1))

    return tuple(sorted(members))


class BucketSet:
    """Immutable, sorted set of bucket ids within ``[1, bucket_total]``."""

    __slots__ = ("_bucket_total", "_members")

    def __init__(self, bucket_total: int, range_spec: BucketRangeSpec) -> None:
        members = parse_bucket_ranges(bucket_total, range_spec)
        object.__setattr__(self, "_bucket_total", bucket_total)
        object.__setattr__(self, "_members", members)

    def __setattr__(self, name: str, value: object) -> None:
        raise AttributeError(f"{type(self).__name__} is immutable")

    @property
    def bucket_total(self) -> int:
        return self._bucket_total

    @property
    def members(self) -> Tuple[int, ...]:
        return self._members

    def next(self, bucket_id: int) -> int:
        """Return the smallest member after ``bucket_id``, wrapping to the first."""
        index = bisect_right(self._members, bucket_id)
        if index == len(self._members):
            return self._members[0]
        return self._members[index]

    def __contains__(self, bucket_id: object) -> bool:
        return bucket_id in self._members

    def __iter__(self) -> Iterator[int]:
        return iter(self._members)

    def __len__(self) -> int:
        return len(self._members)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, BucketSet):
            return NotImplemented
        return (
            self._bucket_total == other._bucket_total
            and self._members == other._members
        )

    def __hash__(self) -> int:
        return hash((self._bucket_total, self._members))

    def __repr__(self) -> str:
        return f"BucketSet(bucket_total={self._bucket_total}, members={list(self._members)})"
