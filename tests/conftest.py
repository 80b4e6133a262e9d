"""Pytest configuration and fixtures."""

import sys
from pathlib import Path

import pytest

# Add the project root to the Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))


@pytest.fixture
def sample_config():
    """Provide a sample valid sync configuration."""
    return {
        "namespace": "farosai/airbyte-github-source",
        "bucketing": {
            "bucket_total": 3,
            "round_robin_bucket_execution": True,
        },
        "streams": {
            "pull_requests": {
                "cursor_field": "updated_at",
                "partition_fields": ["org", "repo"],
                "cutoff_lag_days": 1,
            },
        },
    }


@pytest.fixture
def state_dir(tmp_path, monkeypatch):
    """Point SYNC_STATE_DIR at a temporary directory."""
    path = tmp_path / "state"
    monkeypatch.setenv("SYNC_STATE_DIR", str(path))
    return path
