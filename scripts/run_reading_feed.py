"""Run the live reading feed listener until interrupted."""
from __future__ import annotations

import argparse
import signal
import sys

from loguru import logger

from airalert.config import settings
from airalert.services.dispatcher import get_alert_dispatcher
from airalert.services.reading_feed import ReadingFeedListener
from airalert.utils.exceptions import FeedDisconnectedError


def main() -> int:
    parser = argparse.ArgumentParser(description="Dispatch alerts for readings published on Redis")
    parser.add_argument("--channel", default=settings.READING_FEED_CHANNEL, help="Pub/sub channel to follow")
    parser.add_argument("--redis-url", default=str(settings.REDIS_URL), help="Redis connection URL")
    args = parser.parse_args()

    listener = ReadingFeedListener(get_alert_dispatcher(), redis_url=args.redis_url, channel=args.channel)

    def _shutdown(signum, _frame) -> None:
        logger.info("Stopping live reading feed", signal=signal.Signals(signum).name)
        listener.stop()

    signal.signal(signal.SIGINT, _shutdown)
    signal.signal(signal.SIGTERM, _shutdown)

    try:
        listener.run()
    except FeedDisconnectedError as exc:
        logger.error("Live reading feed gave up", error=exc.message, details=exc.details)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
