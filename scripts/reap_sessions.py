#!/usr/bin/env python3
"""
Run the stale-session reaper once, inline or through the worker queue.

Run with:
    python scripts/reap_sessions.py            # inline
    python scripts/reap_sessions.py --enqueue  # via rq
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from redis import Redis
from src.core.config import get_settings
from src.core.logging import setup_logging
from src.workers.jobs import reap_stale_sessions_job
from src.workers.worker import enqueue_reaper


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument("--enqueue", action="store_true", help="queue the job for the rq worker")
    args = parser.parse_args()

    setup_logging()
    if args.enqueue:
        job_id = enqueue_reaper(Redis.from_url(get_settings().redis_url))
        print(f"Queued reaper job {job_id}")
        return

    report = reap_stale_sessions_job()
    print(
        f"Timed out: {report['timed_out']}, abandoned: {report['abandoned']}, "
        f"locks released: {report['released_locks']}"
    )


if __name__ == "__main__":
    main()
