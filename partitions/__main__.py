"""CLI entry point for sync coordination.

Usage:
    python -m partitions assign --namespace farosai/airbyte-github-source --total 10 apache/kafka
    python -m partitions plan github.yaml pull_requests
    python -m partitions plan github.yaml pull_requests --commit
    python -m partitions state github.yaml pull_requests
    python -m partitions reset github.yaml pull_requests
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import List, Optional

from partitions.lib.bucketing import bucket
from partitions.lib.config_loader import load_sync_config
from partitions.lib.env import load_env_file
from partitions.lib.errors import PartitionError
from partitions.lib.logging import setup_logging
from partitions.lib.round_robin import apply_round_robin_bucketing, next_bucket_id
from partitions.lib.state import execution_state, partition_cutoffs
from partitions.lib.storage import create_state_store

logger = logging.getLogger(__name__)


def cmd_assign(args: argparse.Namespace) -> int:
    """Print the bucket of each identifier."""
    for identifier in args.identifiers:
        print(f"{identifier}\t{bucket(args.namespace, identifier, args.total)}")
    return 0


def cmd_plan(args: argparse.Namespace) -> int:
    """Show which bucket the next run of a stream will process."""
    config = load_sync_config(args.config)
    config.stream(args.stream)
    store = create_state_store(config.state_uri)
    state = store.load(args.stream)

    if not config.bucketing.round_robin_bucket_execution:
        bucket_id = config.bucketing.bucket_id or 1
        print(f"{args.stream}: round robin disabled, fixed bucket {bucket_id}/{config.bucketing.bucket_total}")
        return 0

    bucket_id = next_bucket_id(config.bucketing, state)
    print(f"{args.stream}: next bucket {bucket_id}/{config.bucketing.bucket_total}")

    if args.commit:
        result = apply_round_robin_bucketing(config.bucketing, state, log=logger.info)
        store.save(args.stream, result.state)
        print(f"{args.stream}: committed bucket {bucket_id}")
    return 0


def cmd_state(args: argparse.Namespace) -> int:
    """Print a stream's persisted state."""
    config = load_sync_config(args.config)
    store = create_state_store(config.state_uri)
    state = store.load(args.stream)

    if args.raw:
        print(json.dumps(state, indent=2, sort_keys=True))
        return 0

    execution = execution_state(state)
    last = execution.last_executed_bucket_id if execution else "none"
    print(f"Stream: {args.stream}")
    print(f"Last executed bucket: {last}")
    cutoffs = partition_cutoffs(state)
    if not cutoffs:
        print("No partition cutoffs recorded.")
        return 0
    width = max(len(key) for key in cutoffs)
    for key in sorted(cutoffs):
        print(f"  {key:<{width}}  {cutoffs[key]}")
    return 0


def cmd_reset(args: argparse.Namespace) -> int:
    """Delete a stream's persisted state, forcing a full resync."""
    config = load_sync_config(args.config)
    store = create_state_store(config.state_uri)
    if store.delete(args.stream):
        print(f"Deleted state for {args.stream}")
    else:
        print(f"No state found for {args.stream}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="python -m partitions",
        description="Bucketed round-robin sync coordination",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Which bucket does an entity belong to?
    python -m partitions assign --namespace farosai/airbyte-github-source --total 10 apache/kafka

    # Which bucket will the next run of a stream process?
    python -m partitions plan github.yaml pull_requests

    # Show a stream's persisted cutoffs
    python -m partitions state github.yaml pull_requests
        """,
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose logging")
    parser.add_argument(
        "--json-log",
        action="store_true",
        help="Output logs in JSON format (for log aggregation systems)",
    )
    parser.add_argument("--log-file", help="Write logs to a file in addition to console")
    parser.add_argument("--env-file", help="Load environment variables from this .env file first")

    subparsers = parser.add_subparsers(dest="command", required=True)

    assign = subparsers.add_parser("assign", help="Print the bucket of each identifier")
    assign.add_argument("--namespace", required=True, help="Bucketing namespace key")
    assign.add_argument("--total", type=int, required=True, help="Total number of buckets")
    assign.add_argument("identifiers", nargs="+", help="Entity identifiers")
    assign.set_defaults(func=cmd_assign)

    plan = subparsers.add_parser("plan", help="Show the next bucket for a stream")
    plan.add_argument("config", help="Sync configuration YAML")
    plan.add_argument("stream", help="Stream name")
    plan.add_argument(
        "--commit",
        action="store_true",
        help="Persist the advanced round-robin pointer",
    )
    plan.set_defaults(func=cmd_plan)

    state = subparsers.add_parser("state", help="Print a stream's persisted state")
    state.add_argument("config", help="Sync configuration YAML")
    state.add_argument("stream", help="Stream name")
    state.add_argument("--raw", action="store_true", help="Print the raw JSON blob")
    state.set_defaults(func=cmd_state)

    reset = subparsers.add_parser("reset", help="Delete a stream's persisted state")
    reset.add_argument("config", help="Sync configuration YAML")
    reset.add_argument("stream", help="Stream name")
    reset.set_defaults(func=cmd_reset)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    setup_logging(verbose=args.verbose, json_format=args.json_log, log_file=args.log_file)

    if args.env_file and not load_env_file(args.env_file):
        logger.warning("No variables loaded from %s", args.env_file)

    try:
        return args.func(args)
    except PartitionError as e:
        logger.error("%s", e)
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
