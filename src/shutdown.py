import logging
import signal

from providers import Beaconwatch

_logger = logging.getLogger("beaconwatch-shutdown")


def shutdown_handler(
    signo: int,
    beaconwatch: Beaconwatch,
) -> None:
    _logger.info(f"Received shutdown signal {signal.Signals(signo).name}")
    if beaconwatch.shutdown_event.is_set():
        return
    _logger.info("Shutting down...")
    beaconwatch.shutdown_event.set()
