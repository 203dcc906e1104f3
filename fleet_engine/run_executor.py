# fleet_engine/run_executor.py
"""Run an executor worker that claims queued dispatch units and runs them on their hosts."""

import logging
import signal
import threading

from fleet_engine.container import get_container

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

logger = logging.getLogger(__name__)

_stop = threading.Event()


def signal_handler(sig, frame):
    logger.info(f"🛑 Signal {sig} received, draining executor...")
    _stop.set()


def main():
    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    executor = get_container().build_executor()
    config = executor.config

    logger.info("=" * 80)
    logger.info(f"🚀 FLEET EXECUTOR {executor.executor_id}")
    logger.info(
        f"slots={executor.slots.total_slots()} poll={config.poll_interval_seconds}s "
        f"lease={config.lease_seconds}s"
    )
    logger.info("=" * 80)

    executor.start()
    _stop.wait()
    executor.stop()
    logger.info("Executor stopped")


if __name__ == "__main__":
    main()
