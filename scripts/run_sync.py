"""
Run a sync batch from the command line.

Reads SAP FI records from a JSON file (a list, or an object with a
"records" list) and reconciles them onto the configured boards.

Usage:
    python scripts/run_sync.py records.json
    python scripts/run_sync.py records.json --dry-run
    python scripts/run_sync.py records.json --config config/prod.json --output report.json
    python scripts/run_sync.py records.json --json-logs -v

Exit codes: 0 all records succeeded or were skipped, 1 at least one record
failed, 2 the batch could not start.
"""

import argparse
import asyncio
import json
import logging
import signal
import sys
from pathlib import Path
from typing import Any, Dict, List

# Add project root to path
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from connectors.board_base import create_connector
from core.observability import configure_logging, get_logger
from sync.batch import preview_batch, reconcile_batch
from sync.config import load_connector_config, load_sync_config


logger = get_logger("run_sync")


def load_records(path: Path) -> List[Dict[str, Any]]:
    """Read records from a JSON file or a JSON-lines (.jsonl) file."""
    with open(path, "r", encoding="utf-8") as f:
        if path.suffix == ".jsonl":
            return [json.loads(line) for line in f if line.strip()]
        data = json.load(f)
    if isinstance(data, dict):
        data = data.get("records", [])
    if not isinstance(data, list):
        raise ValueError(f"{path} must contain a list of records or an object with 'records'")
    return data


def print_summary(report) -> None:
    summary = report.summary()
    print(f"\n{'=' * 60}")
    print(f"BATCH {report.batch_id}")
    print(f"{'=' * 60}")
    for outcome in report.outcomes:
        label = outcome.business_key or f"#{outcome.index}"
        if outcome.succeeded:
            detail = f"{outcome.action} item {outcome.item_id} on board {outcome.board_id}"
        elif outcome.reason:
            detail = outcome.reason
        else:
            detail = (outcome.error or {}).get("message", "")
        print(f"  [{outcome.status.value:9}] {label}: {detail}")
    print(f"{'-' * 60}")
    print(
        f"  total={summary['total']} succeeded={summary['succeeded']} "
        f"(created={summary['created']}, updated={summary['updated']}) "
        f"skipped={summary['skipped']} failed={summary['failed']}"
    )


async def run(args: argparse.Namespace) -> int:
    config = load_sync_config(args.config)
    if args.max_concurrency:
        config.max_concurrency = args.max_concurrency
    records = load_records(args.records)

    client_config = load_connector_config(config, connector_type=args.connector)

    async with create_connector(client_config) as client:
        if args.dry_run:
            plan = await preview_batch(records, config, client)
            print(json.dumps(plan, indent=2, default=str))
            return 0

        cancel_event = asyncio.Event()
        loop = asyncio.get_running_loop()
        try:
            loop.add_signal_handler(signal.SIGINT, cancel_event.set)
        except NotImplementedError:
            logger.debug("Signal handlers unavailable; Ctrl+C aborts immediately")

        report = await reconcile_batch(records, config, client=client, cancel_event=cancel_event)

    print_summary(report)
    if args.output:
        with open(args.output, "w", encoding="utf-8") as f:
            json.dump(report.to_dict(), f, indent=2)
        print(f"\nReport written to: {args.output}")

    return 1 if report.failed else 0


def main() -> int:
    parser = argparse.ArgumentParser(description="Reconcile SAP FI records onto Monday.com boards")
    parser.add_argument("records", type=Path, help="JSON file with the records to sync")
    parser.add_argument(
        "--config", "-c",
        type=Path,
        help="Sync config JSON (default: SYNC_CONFIG_PATH or the bundled example)"
    )
    parser.add_argument(
        "--connector",
        choices=["monday", "memory"],
        help="Override the connector type from the config"
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Print the Actions each record would produce without applying them"
    )
    parser.add_argument("--max-concurrency", type=int, help="Override max_concurrency")
    parser.add_argument("--output", "-o", help="Write the JSON batch report to this file")
    parser.add_argument("--json-logs", action="store_true", help="Emit structured JSON logs")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    args = parser.parse_args()

    configure_logging(
        level=logging.DEBUG if args.verbose else None,
        json_format=args.json_logs or None,
        force=True,
    )

    try:
        return asyncio.run(run(args))
    except (OSError, ValueError) as e:
        logger.error(f"Batch could not start: {e}")
        return 2


if __name__ == "__main__":
    sys.exit(main())
