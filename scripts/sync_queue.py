"""Inspect or drain the offline submission queue."""
from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Sequence

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from env_validation import load_client_settings
from offline.local_store import LocalStore
from offline.reconciler import Reconciler
from offline.study_client import probe_api
from offline.submission_queue import SubmissionQueue
from offline.transport import HttpTransport


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "command",
        choices=("status", "sync"),
        help="'status' lists pending submissions; 'sync' replays them once",
    )
    parser.add_argument(
        "--token",
        type=str,
        default=None,
        help="Bearer token used when replaying submissions",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable debug logging",
    )
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    settings = load_client_settings()
    store = LocalStore(settings.local_db_path)
    queue = SubmissionQueue(store)

    if args.command == "status":
        entries = [entry.to_record() for entry in queue.peek()]
        store.close()
        print(json.dumps({"pending": len(entries), "entries": entries}, ensure_ascii=False, indent=2))
        return 0

    transport = HttpTransport(settings.api_url, timeout=settings.request_timeout, token=args.token)
    try:
        if not probe_api(transport):
            print(json.dumps({"online": False, "pending": queue.pending_count()}))
            return 1
        report = Reconciler(queue, transport).reconcile()
    finally:
        transport.close()
        store.close()
    print(json.dumps({"online": True, **report.to_dict()}, indent=2))
    return 0 if report.completed else 2


if __name__ == "__main__":
    sys.exit(main())
