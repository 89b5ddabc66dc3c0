from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from observability import Metrics

_LOOP_LAG_CHECK_INTERVAL = 0.1
_LOOP_LAG_HIGH_THRESHOLD = 0.5


async def monitor_event_loop(metrics: Metrics, shutdown_event: asyncio.Event) -> None:
    """Runs until the shutdown event is set, tracking event loop lag."""
    _logger = logging.getLogger("event-loop")
    event_loop = asyncio.get_running_loop()
    _start = event_loop.time()

    while not shutdown_event.is_set():
        await asyncio.sleep(_LOOP_LAG_CHECK_INTERVAL)
        lag = event_loop.time() - _start - _LOOP_LAG_CHECK_INTERVAL
        if lag > _LOOP_LAG_HIGH_THRESHOLD:
            _logger.warning(f"Event loop lag high: {lag}")
        metrics.event_loop_lag_h.observe(lag)
        metrics.event_loop_tasks_g.set(len(asyncio.all_tasks(event_loop)))
        _start = event_loop.time()
