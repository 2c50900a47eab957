"""CLI script to manually trigger one polling pass of the alert pipeline."""
from __future__ import annotations

import argparse

from airalert.tasks.alerts import poll_recent_readings


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Evaluate the latest fresh reading of every active device",
    )
    parser.add_argument(
        "--freshness-minutes",
        type=int,
        help="Ignore readings older than this many minutes (default: READING_FRESHNESS_MINUTES)",
    )
    parser.add_argument(
        "--async",
        action="store_true",
        dest="use_async",
        help="Queue task on the alerts queue instead of running immediately",
    )

    args = parser.parse_args()

    if args.use_async:
        task = poll_recent_readings.apply_async(kwargs={"freshness_minutes": args.freshness_minutes})
        print(f"Task queued: {task.id}")
    else:
        result = poll_recent_readings.run(args.freshness_minutes)
        print(f"Result: {result}")


if __name__ == "__main__":
    main()
