#!/usr/bin/env python3
"""Run the rank batch worker by hand, or inspect a run.

Usage:
    python scripts/process_rank_batch.py tick              # one scheduler tick
    python scripts/process_rank_batch.py drain --max-ticks 20
    python scripts/process_rank_batch.py status <run-id> [--items]
Or via Docker:
    docker compose exec celery_worker python /app/scripts/process_rank_batch.py tick
"""

import argparse
import json
import logging
import sys
import uuid
from pathlib import Path

# Add backend to path when running as script
backend_dir = Path(__file__).resolve().parent.parent / "backend"
if backend_dir.exists():
    sys.path.insert(0, str(backend_dir))

from rankworker.batch.driver import get_run_status
from rankworker.batch.store import BatchStore
from rankworker.config import get_settings
from rankworker.models.base import open_session
from rankworker.services.ranking_client import DataForSEOClient
from rankworker.tasks.rank_batch_tasks import run_tick


def cmd_tick(args) -> int:
    settings = get_settings()
    db = open_session()
    provider = DataForSEOClient.from_settings(settings)
    try:
        for _ in range(args.max_ticks):
            summary = run_tick(db, provider, settings)
            print(json.dumps(summary, indent=2))
            if summary["status"] == "idle":
                break
    finally:
        provider.close()
        db.close()
    return 0


def cmd_status(args) -> int:
    try:
        run_id = uuid.UUID(args.run_id)
    except ValueError:
        print(f"Not a run id: {args.run_id}", file=sys.stderr)
        return 2

    db = open_session()
    try:
        status = get_run_status(BatchStore(db), run_id, include_items=args.items)
    finally:
        db.close()

    if status is None:
        print(f"Run {run_id} not found", file=sys.stderr)
        return 1
    print(status.model_dump_json(indent=2))
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(description="Rank batch worker tools")
    sub = parser.add_subparsers(dest="command", required=True)

    tick = sub.add_parser("tick", help="Run a single tick")
    tick.set_defaults(func=cmd_tick, max_ticks=1)

    drain = sub.add_parser("drain", help="Run ticks until idle or --max-ticks")
    drain.add_argument("--max-ticks", type=int, default=10)
    drain.set_defaults(func=cmd_tick)

    status = sub.add_parser("status", help="Show a run's status")
    status.add_argument("run_id")
    status.add_argument("--items", action="store_true", help="Include per-keyword detail")
    status.set_defaults(func=cmd_status)

    args = parser.parse_args()
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
