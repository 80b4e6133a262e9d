"""YAML configuration loader for sync coordination.

Example YAML (github.yaml):
    namespace: farosai/airbyte-github-source
    state_uri: ./.state
    start_date: "2024-01-01"

    bucketing:
      bucket_total: 10
      bucket_ranges: "1-3,5"
      round_robin_bucket_execution: true

    streams:
      pull_requests:
        cursor_field: updated_at
        partition_fields: [org, repo]
        cutoff_lag_days: 1
      commits:
        cursor_field: commit.author.date
        partition_fields: [org, repo]

Usage:
    from partitions.lib.config_loader import load_sync_config
    config = load_sync_config("./github.yaml")

Values may reference environment variables (``${SYNC_STATE_URI}``). The
bucket id and total can be overridden with ``SYNC_BUCKET_ID`` and
``SYNC_BUCKET_TOTAL``. Every problem is reported as a ConfigurationError
before any data is processed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

import yaml

from partitions.lib.cutoff import TimestampStateConfig
from partitions.lib.env import env_int, expand_values, parse_bool
from partitions.lib.errors import ConfigurationError
from partitions.lib.extractors import ConstantKey, KeyGenerator, field_extractor, key_generator
from partitions.lib.round_robin import RoundRobinConfig, validate_bucketing_config

logger = logging.getLogger(__name__)

__all__ = [
    "StreamConfig",
    "SyncConfig",
    "load_sync_config",
    "parse_bucketing",
    "parse_stream",
    "parse_sync_config",
]


@dataclass(frozen=True)
class StreamConfig:
    """Per-stream cursor and partition settings."""

    name: str
    state: TimestampStateConfig
    partition_fields: List[str]
    entity_fields: List[str]
    separator: str = "/"

    def entity_id(self, stream_slice: Optional[Mapping[str, Any]]) -> Optional[str]:
        """Identifier hashed for bucket assignment, e.g. ``apache/kafka``.

        Returns None when the slice lacks any of the entity fields.
        """
        if not self.entity_fields:
            return self.name
        if not isinstance(stream_slice, Mapping):
            return None
        values = [stream_slice.get(f) for f in self.entity_fields]
        if any(value is None or value == "" for value in values):
            return None
        return self.separator.join(str(value) for value in values)


@dataclass(frozen=True)
class SyncConfig:
    namespace: str
    bucketing: RoundRobinConfig
    streams: Dict[str, StreamConfig] = field(default_factory=dict)
    state_uri: Optional[str] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    cutoff_days: Optional[int] = None

    def stream(self, name: str) -> StreamConfig:
        try:
            return self.streams[name]
        except KeyError:
            valid = ", ".join(sorted(self.streams)) or "(none)"
            raise ConfigurationError(
                f"Unknown stream '{name}'. Configured streams: {valid}",
                field="streams",
                value=name,
            ) from None


def _as_int(value: Any, name: str, *, allow_none: bool = True) -> Optional[int]:
    if value is None:
        if allow_none:
            return None
        raise ConfigurationError(f"{name} is required", field=name)
    if isinstance(value, bool):
        raise ConfigurationError(f"{name} must be an integer", field=name, value=value)
    if isinstance(value, int):
        return value
    try:
        return int(str(value).strip())
    except ValueError:
        raise ConfigurationError(
            f"{name} must be an integer", field=name, value=value
        ) from None


def _as_field_list(value: Any, name: str) -> List[str]:
    if isinstance(value, str):
        return [value]
    if isinstance(value, list) and value and all(isinstance(v, str) for v in value):
        return list(value)
    raise ConfigurationError(
        f"{name} must be a field name or a non-empty list of field names",
        field=name,
        value=value,
    )


def parse_bucketing(data: Optional[Mapping[str, Any]]) -> RoundRobinConfig:
    """Build and validate the bucketing section, applying env overrides."""
    data = dict(data or {})

    bucket_total = _as_int(data.get("bucket_total"), "bucket_total")
    bucket_id = _as_int(data.get("bucket_id"), "bucket_id")

    try:
        env_total = env_int("SYNC_BUCKET_TOTAL")
        env_id = env_int("SYNC_BUCKET_ID")
    except ValueError as e:
        raise ConfigurationError(
            "SYNC_BUCKET_TOTAL and SYNC_BUCKET_ID must be integers", value=str(e)
        ) from e
    if env_total is not None:
        logger.debug("bucket_total overridden by SYNC_BUCKET_TOTAL=%d", env_total)
        bucket_total = env_total
    if env_id is not None:
        logger.debug("bucket_id overridden by SYNC_BUCKET_ID=%d", env_id)
        bucket_id = env_id

    ranges = data.get("bucket_ranges")
    if ranges is not None and not isinstance(ranges, (str, list)):
        ranges = str(ranges)

    config = RoundRobinConfig(
        bucket_total=1 if bucket_total is None else bucket_total,
        bucket_id=bucket_id,
        bucket_ranges=ranges or None,
        round_robin_bucket_execution=parse_bool(
            data.get("round_robin_bucket_execution"), default=False
        ),
    )
    validate_bucketing_config(config, log=logger.warning)
    # Building the set up front surfaces malformed ranges before the run.
    _ = config.bucket_set
    return config


def parse_stream(name: str, data: Optional[Mapping[str, Any]]) -> StreamConfig:
    data = dict(data or {})

    if "cursor_field" not in data:
        raise ConfigurationError(
            f"streams.{name}.cursor_field is required", field=f"streams.{name}.cursor_field"
        )
    cursor = data["cursor_field"]
    if not isinstance(cursor, (str, list)) or not cursor:
        raise ConfigurationError(
            f"streams.{name}.cursor_field must be a field name, dotted path or list",
            field=f"streams.{name}.cursor_field",
            value=cursor,
        )

    separator = str(data.get("separator", "/"))
    if data.get("partition_fields") is None:
        # Unsliced stream: one partition named after the stream.
        partition_fields: List[str] = []
        keys: KeyGenerator = ConstantKey(name)
    else:
        partition_fields = _as_field_list(
            data["partition_fields"], f"streams.{name}.partition_fields"
        )
        keys = key_generator(partition_fields, separator=separator)

    entity_fields = partition_fields
    if data.get("entity_fields") is not None:
        entity_fields = _as_field_list(
            data["entity_fields"], f"streams.{name}.entity_fields"
        )
    lag = _as_int(data.get("cutoff_lag_days", 0), f"streams.{name}.cutoff_lag_days")

    return StreamConfig(
        name=name,
        state=TimestampStateConfig(
            field_extractor=field_extractor(cursor),
            key_generator=keys,
            cutoff_lag_days=lag if lag is not None else 0,
        ),
        partition_fields=partition_fields,
        entity_fields=entity_fields,
        separator=separator,
    )


def parse_sync_config(data: Mapping[str, Any]) -> SyncConfig:
    """Build a SyncConfig from an already-parsed mapping."""
    if not isinstance(data, Mapping):
        raise ConfigurationError("Sync configuration must be a mapping")

    data = expand_values(dict(data))

    namespace = data.get("namespace")
    if not namespace or not isinstance(namespace, str):
        raise ConfigurationError("namespace is required", field="namespace")

    streams_data = data.get("streams") or {}
    if not isinstance(streams_data, Mapping):
        raise ConfigurationError("streams must be a mapping", field="streams")

    cutoff_days = _as_int(data.get("cutoff_days"), "cutoff_days")
    if cutoff_days is not None and cutoff_days < 0:
        raise ConfigurationError(
            "cutoff_days must not be negative", field="cutoff_days", value=cutoff_days
        )

    return SyncConfig(
        namespace=namespace,
        bucketing=parse_bucketing(data.get("bucketing")),
        streams={name: parse_stream(name, cfg) for name, cfg in streams_data.items()},
        state_uri=data.get("state_uri"),
        start_date=_optional_str(data.get("start_date")),
        end_date=_optional_str(data.get("end_date")),
        cutoff_days=cutoff_days,
    )


def _optional_str(value: Any) -> Optional[str]:
    return None if value is None else str(value)


def load_sync_config(path: Union[str, Path]) -> SyncConfig:
    """Load and validate a sync configuration file.

    Relative ``state_uri`` values are resolved against the file's directory.

    Raises:
        ConfigurationError: If the file is missing, unparseable or invalid
    """
    config_path = Path(path)
    if not config_path.exists():
        raise ConfigurationError(
            f"Config file not found: {config_path}", field="path", value=str(config_path)
        )

    try:
        data = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(
            f"Invalid YAML in {config_path}: {e}", field="path", value=str(config_path)
        ) from e

    config = parse_sync_config(data)

    state_uri = config.state_uri
    if state_uri and state_uri.startswith(("./", "../")):
        state_uri = str(config_path.parent / state_uri)
        config = replace(config, state_uri=state_uri)

    logger.debug("Loaded sync config %s (%d streams)", config_path, len(config.streams))
    return config
