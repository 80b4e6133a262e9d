"""Tests for the python -m partitions CLI."""

import json
import logging
from pathlib import Path

import pytest

from partitions.__main__ import build_parser, main
from partitions.lib.bucketing import bucket
from partitions.lib.round_robin import BUCKET_EXECUTION_STATE_KEY
from partitions.lib.storage import LocalStateStore

CONFIG = """
namespace: farosai/airbyte-github-source
state_uri: ./state

bucketing:
  bucket_total: 4
  bucket_ranges: "2-3"
  round_robin_bucket_execution: true

streams:
  pull_requests:
    cursor_field: updated_at
    partition_fields: [org, repo]
"""


@pytest.fixture(autouse=True)
def reset_logging(monkeypatch):
    monkeypatch.delenv("SYNC_BUCKET_ID", raising=False)
    monkeypatch.delenv("SYNC_BUCKET_TOTAL", raising=False)
    root = logging.getLogger()
    handlers = root.handlers[:]
    level = root.level
    yield
    root.handlers = handlers
    root.setLevel(level)


@pytest.fixture
def config_file(tmp_path: Path) -> Path:
    path = tmp_path / "github.yaml"
    path.write_text(CONFIG, encoding="utf-8")
    return path


class TestParser:
    def test_requires_command(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])

    def test_global_flags(self):
        args = build_parser().parse_args(
            ["-v", "--json-log", "assign", "--namespace", "n", "--total", "2", "x"]
        )
        assert args.verbose is True
        assert args.json_log is True
        assert args.identifiers == ["x"]


class TestAssign:
    def test_prints_buckets(self, capsys):
        assert main(["assign", "--namespace", "ns", "--total", "10", "apache/kafka", "a/b"]) == 0
        lines = capsys.readouterr().out.splitlines()
        assert lines == [
            f"apache/kafka\t{bucket('ns', 'apache/kafka', 10)}",
            f"a/b\t{bucket('ns', 'a/b', 10)}",
        ]

    def test_invalid_total(self, capsys):
        assert main(["assign", "--namespace", "ns", "--total", "0", "x"]) == 1
        assert "bucket_total must be a positive integer" in capsys.readouterr().err


class TestPlan:
    def test_shows_next_bucket(self, config_file, capsys):
        assert main(["plan", str(config_file), "pull_requests"]) == 0
        assert capsys.readouterr().out.strip() == "pull_requests: next bucket 2/4"

    def test_plan_without_commit_does_not_persist(self, config_file, capsys):
        main(["plan", str(config_file), "pull_requests"])
        main(["plan", str(config_file), "pull_requests"])
        out = capsys.readouterr().out.splitlines()
        assert out == ["pull_requests: next bucket 2/4"] * 2
        assert not (config_file.parent / "state").exists()

    def test_commit_advances(self, config_file, capsys):
        assert main(["plan", str(config_file), "pull_requests", "--commit"]) == 0
        assert main(["plan", str(config_file), "pull_requests", "--commit"]) == 0
        assert main(["plan", str(config_file), "pull_requests"]) == 0
        out = capsys.readouterr().out.splitlines()
        assert out == [
            "pull_requests: next bucket 2/4",
            "pull_requests: committed bucket 2",
            "pull_requests: next bucket 3/4",
            "pull_requests: committed bucket 3",
            "pull_requests: next bucket 2/4",
        ]
        saved = LocalStateStore(config_file.parent / "state").load("pull_requests")
        assert saved[BUCKET_EXECUTION_STATE_KEY] == {"last_executed_bucket_id": 3}

    def test_env_file_overrides_total(self, config_file, tmp_path, monkeypatch, capsys):
        env_file = tmp_path / ".env"
        env_file.write_text("SYNC_BUCKET_TOTAL=6\n", encoding="utf-8")
        code = main(["--env-file", str(env_file), "plan", str(config_file), "pull_requests"])
        monkeypatch.delenv("SYNC_BUCKET_TOTAL")
        assert code == 0
        assert capsys.readouterr().out.strip() == "pull_requests: next bucket 2/6"

    def test_round_robin_disabled(self, tmp_path, capsys):
        path = tmp_path / "fixed.yaml"
        path.write_text(
            "namespace: ns\nbucketing:\n  bucket_total: 3\n  bucket_id: 2\n"
            "streams:\n  s:\n    cursor_field: updated_at\n",
            encoding="utf-8",
        )
        assert main(["plan", str(path), "s"]) == 0
        assert capsys.readouterr().out.strip() == "s: round robin disabled, fixed bucket 2/3"

    def test_unknown_stream(self, config_file, capsys):
        assert main(["plan", str(config_file), "issues"]) == 1
        assert "Unknown stream 'issues'" in capsys.readouterr().err

    def test_missing_config(self, tmp_path, capsys):
        assert main(["plan", str(tmp_path / "nope.yaml"), "s"]) == 1
        assert "Config file not found" in capsys.readouterr().err


class TestStateAndReset:
    def _seed(self, config_file):
        store = LocalStateStore(config_file.parent / "state")
        store.save(
            "pull_requests",
            {
                "apache/kafka": {"cutoff": 1704758400000},
                BUCKET_EXECUTION_STATE_KEY: {"last_executed_bucket_id": 3},
            },
        )

    def test_state_summary(self, config_file, capsys):
        self._seed(config_file)
        assert main(["state", str(config_file), "pull_requests"]) == 0
        out = capsys.readouterr().out.splitlines()
        assert out[0] == "Stream: pull_requests"
        assert out[1] == "Last executed bucket: 3"
        assert out[2].split() == ["apache/kafka", "1704758400000"]

    def test_state_empty(self, config_file, capsys):
        assert main(["state", str(config_file), "pull_requests"]) == 0
        out = capsys.readouterr().out
        assert "Last executed bucket: none" in out
        assert "No partition cutoffs recorded." in out

    def test_state_raw(self, config_file, capsys):
        self._seed(config_file)
        assert main(["state", str(config_file), "pull_requests", "--raw"]) == 0
        data = json.loads(capsys.readouterr().out)
        assert data["apache/kafka"] == {"cutoff": 1704758400000}

    def test_reset(self, config_file, capsys):
        self._seed(config_file)
        assert main(["reset", str(config_file), "pull_requests"]) == 0
        assert main(["reset", str(config_file), "pull_requests"]) == 0
        out = capsys.readouterr().out.splitlines()
        assert out == [
            "Deleted state for pull_requests",
            "No state found for pull_requests",
        ]
