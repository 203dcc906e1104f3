# fleet_engine/run_scheduler.py
"""Run the fleet scheduler: one tick at the start of every minute."""

import logging
import signal
import sys
import threading
from datetime import datetime, timezone

from fleet_engine.container import get_container

# Setup logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

logger = logging.getLogger(__name__)

_stop = threading.Event()


def signal_handler(sig, frame):
    logger.info("🛑 Shutting down scheduler...")
    _stop.set()


def seconds_until_next_tick(now: datetime, interval: int) -> float:
    """Align ticks to wall-clock multiples of the interval."""
    elapsed = now.timestamp() % interval
    return interval - elapsed


def main():
    """Main entry point."""
    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    container = get_container()
    interval = container.settings.tick_interval_seconds

    logger.info("=" * 80)
    logger.info("🚀 FLEET SCHEDULER")
    logger.info("=" * 80)
    logger.info(f"Controller ID: {container.settings.controller_id}")
    logger.info(f"Tick interval: {interval}s")
    logger.info(f"Lock TTL: {container.settings.lock_ttl_seconds}s")
    logger.info("=" * 80)

    while not _stop.wait(seconds_until_next_tick(datetime.now(timezone.utc), interval)):
        now = datetime.now(timezone.utc).replace(second=0, microsecond=0)
        try:
            container.scheduler.tick(now, container.snapshot())
        except Exception as e:
            logger.error(f"[scheduler] Tick {now.isoformat()} failed: {e}", exc_info=True)

    logger.info("Scheduler stopped")
    sys.exit(0)


if __name__ == "__main__":
    main()
