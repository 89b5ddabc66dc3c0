from __future__ import annotations

import logging
import logging.handlers
from logging.handlers import QueueHandler, QueueListener
from queue import Queue
from types import TracebackType
from typing import TYPE_CHECKING, TypeAlias

if TYPE_CHECKING:
    from pathlib import Path

_SysExcInfoType: TypeAlias = (
    tuple[type[BaseException], BaseException, TracebackType | None]
    | tuple[None, None, None]
)

_LOG_FORMAT = "%(asctime)s - %(name)-24s - %(levelname)-5s: %(message)s"

# Keeps a reference to the running listener so that repeated
# setup calls (e.g. in tests) do not leak listener threads
_queue_listener: QueueListener | None = None


class ConditionalExcInfoFormatter(logging.Formatter):
    def __init__(self, fmt: str, include_exc_info: bool) -> None:
        super().__init__(fmt)
        self.include_exc_info = include_exc_info

    def formatException(self, ei: _SysExcInfoType) -> str:  # noqa: N802
        # Tracebacks are only printed to stdout at debug level,
        # they always end up in the debug log file.
        if not self.include_exc_info:
            return ""
        return super().formatException(ei)


def setup_logging(
    log_level: int,
    data_dir: Path,
) -> None:
    """
    Configure logging to use stdout and a rotating debug log file.
    Uses a background thread to handle logging to file without blocking
    the asyncio event loop.
    """
    global _queue_listener  # noqa: PLW0603

    logging.logProcesses = False
    logging.logThreads = False
    if hasattr(logging, "logAsyncioTasks"):
        logging.logAsyncioTasks = False

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)
    root_logger.handlers.clear()

    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(
        ConditionalExcInfoFormatter(
            _LOG_FORMAT, include_exc_info=log_level <= logging.DEBUG
        )
    )
    stream_handler.setLevel(log_level)
    root_logger.addHandler(stream_handler)

    debug_file_handler = logging.handlers.RotatingFileHandler(
        data_dir / "beaconwatch-debug.log",
        maxBytes=5_000_000,
        backupCount=4,
    )
    debug_file_handler.setLevel(logging.DEBUG)
    debug_file_handler.setFormatter(logging.Formatter(_LOG_FORMAT))

    if _queue_listener is not None:
        _queue_listener.stop()

    queue: Queue[logging.LogRecord] = Queue()
    root_logger.addHandler(QueueHandler(queue))
    _queue_listener = QueueListener(queue, debug_file_handler)
    _queue_listener.start()

    if log_level != logging.DEBUG:
        # apscheduler is quite verbose with default INFO logging
        logging.getLogger("apscheduler").setLevel(logging.WARNING)
