"""Tests for the YAML sync configuration loader."""

from pathlib import Path

import pytest

from partitions.lib.config_loader import (
    load_sync_config,
    parse_bucketing,
    parse_stream,
    parse_sync_config,
)
from partitions.lib.errors import ConfigurationError
from partitions.lib.extractors import ConstantKey, FlatField, NestedField

GITHUB_YAML = """
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
  users:
    cursor_field: updated_at
"""


@pytest.fixture(autouse=True)
def clear_bucket_env(monkeypatch):
    monkeypatch.delenv("SYNC_BUCKET_ID", raising=False)
    monkeypatch.delenv("SYNC_BUCKET_TOTAL", raising=False)


@pytest.fixture
def config_file(tmp_path: Path) -> Path:
    path = tmp_path / "github.yaml"
    path.write_text(GITHUB_YAML, encoding="utf-8")
    return path


class TestLoadSyncConfig:
    """Tests for load_sync_config."""

    def test_loads_file(self, config_file):
        config = load_sync_config(config_file)
        assert config.namespace == "farosai/airbyte-github-source"
        assert config.start_date == "2024-01-01"
        assert config.bucketing.bucket_total == 10
        assert config.bucketing.bucket_ranges == "1-3,5"
        assert config.bucketing.round_robin_bucket_execution is True
        assert sorted(config.streams) == ["commits", "pull_requests", "users"]

    def test_relative_state_uri_resolved_against_file(self, config_file):
        config = load_sync_config(config_file)
        assert Path(config.state_uri) == config_file.parent / ".state"

    def test_stream_settings(self, config_file):
        config = load_sync_config(config_file)
        prs = config.stream("pull_requests")
        assert isinstance(prs.state.field_extractor, FlatField)
        assert prs.state.cutoff_lag_days == 1
        assert prs.state.key_generator({"org": "Apache", "repo": "Kafka"}) == "apache/kafka"
        assert prs.entity_id({"org": "Apache", "repo": "Kafka"}) == "Apache/Kafka"
        assert prs.entity_id({"org": "Apache"}) is None
        assert prs.entity_id({"org": "Apache", "repo": ""}) is None
        assert prs.entity_id(None) is None

        commits = config.stream("commits")
        assert isinstance(commits.state.field_extractor, NestedField)
        assert commits.state.cutoff_lag_days == 0

    def test_unsliced_stream(self, config_file):
        users = load_sync_config(config_file).stream("users")
        assert isinstance(users.state.key_generator, ConstantKey)
        assert users.state.key_generator(None) == "users"
        assert users.entity_id({}) == "users"

    def test_unknown_stream(self, config_file):
        with pytest.raises(ConfigurationError, match="Unknown stream 'issues'"):
            load_sync_config(config_file).stream("issues")

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="Config file not found"):
            load_sync_config(tmp_path / "missing.yaml")

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("namespace: [unclosed", encoding="utf-8")
        with pytest.raises(ConfigurationError, match="Invalid YAML"):
            load_sync_config(path)

    def test_env_vars_are_expanded(self, tmp_path, monkeypatch):
        monkeypatch.setenv("TEST_STATE_URI", "s3://bucket/state")
        path = tmp_path / "env.yaml"
        path.write_text(
            "namespace: ns\nstate_uri: ${TEST_STATE_URI}\nstreams: {}\n", encoding="utf-8"
        )
        assert load_sync_config(path).state_uri == "s3://bucket/state"


class TestParseBucketing:
    """Tests for the bucketing section."""

    def test_defaults(self):
        config = parse_bucketing(None)
        assert config.bucket_total == 1
        assert config.bucket_id is None
        assert config.round_robin_bucket_execution is False

    def test_string_numbers(self):
        config = parse_bucketing({"bucket_total": "4", "bucket_id": "2"})
        assert (config.bucket_total, config.bucket_id) == (4, 2)

    def test_integer_range_becomes_string(self):
        config = parse_bucketing(
            {"bucket_total": 5, "bucket_ranges": 3, "round_robin_bucket_execution": True}
        )
        assert config.bucket_set.members == (3,)

    def test_string_boolean(self):
        assert parse_bucketing({"round_robin_bucket_execution": "yes"}).round_robin_bucket_execution

    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("SYNC_BUCKET_TOTAL", "6")
        monkeypatch.setenv("SYNC_BUCKET_ID", "5")
        config = parse_bucketing({"bucket_total": 2, "bucket_id": 1})
        assert (config.bucket_total, config.bucket_id) == (6, 5)

    def test_env_override_must_be_integer(self, monkeypatch):
        monkeypatch.setenv("SYNC_BUCKET_ID", "two")
        with pytest.raises(ConfigurationError, match="must be integers"):
            parse_bucketing({"bucket_total": 2})

    def test_invalid_bucket_id(self):
        with pytest.raises(ConfigurationError, match="bucket_id must be between 1 and 3"):
            parse_bucketing({"bucket_total": 3, "bucket_id": 4})

    def test_non_integer_total(self):
        with pytest.raises(ConfigurationError, match="bucket_total must be an integer"):
            parse_bucketing({"bucket_total": "many"})

    def test_malformed_ranges(self):
        with pytest.raises(ConfigurationError, match="outside 1-3"):
            parse_bucketing(
                {"bucket_total": 3, "bucket_ranges": "1-5", "round_robin_bucket_execution": True}
            )

    def test_ignored_ranges_warn(self, caplog):
        parse_bucketing({"bucket_total": 3, "bucket_ranges": "1-2"})
        assert "ignored because round_robin_bucket_execution is not enabled" in caplog.text


class TestParseStream:
    """Tests for stream sections."""

    def test_cursor_required(self):
        with pytest.raises(ConfigurationError, match="streams.prs.cursor_field is required"):
            parse_stream("prs", {"partition_fields": ["org"]})

    def test_negative_lag(self):
        with pytest.raises(ConfigurationError, match="cutoff_lag_days"):
            parse_stream("prs", {"cursor_field": "updated_at", "cutoff_lag_days": -1})

    def test_partition_fields_must_be_names(self):
        with pytest.raises(ConfigurationError, match="partition_fields"):
            parse_stream("prs", {"cursor_field": "updated_at", "partition_fields": []})

    def test_entity_fields_override(self):
        stream = parse_stream(
            "issues",
            {
                "cursor_field": "updated",
                "partition_fields": ["project", "board"],
                "entity_fields": "project",
            },
        )
        assert stream.entity_id({"project": "PROJ", "board": 1}) == "PROJ"
        assert stream.state.key_generator({"project": "PROJ", "board": 1}) == "proj/1"

    def test_custom_separator(self):
        stream = parse_stream(
            "prs",
            {"cursor_field": "updated_at", "partition_fields": ["org", "repo"], "separator": ":"},
        )
        assert stream.state.key_generator({"org": "a", "repo": "b"}) == "a:b"
        assert stream.entity_id({"org": "a", "repo": "b"}) == "a:b"


class TestParseSyncConfig:
    """Tests for top-level validation."""

    def test_namespace_required(self):
        with pytest.raises(ConfigurationError, match="namespace is required"):
            parse_sync_config({"streams": {}})

    def test_streams_must_be_mapping(self):
        with pytest.raises(ConfigurationError, match="streams must be a mapping"):
            parse_sync_config({"namespace": "ns", "streams": ["a"]})

    def test_negative_cutoff_days(self):
        with pytest.raises(ConfigurationError, match="cutoff_days must not be negative"):
            parse_sync_config({"namespace": "ns", "cutoff_days": -3})

    def test_non_mapping(self):
        with pytest.raises(ConfigurationError, match="must be a mapping"):
            parse_sync_config(["namespace"])

    def test_dates_are_strings(self):
        config = parse_sync_config({"namespace": "ns", "start_date": 20240101, "cutoff_days": 7})
        assert config.start_date == "20240101"
        assert config.cutoff_days == 7
