"""Keeps a subscription to a beacon node's head events alive for the lifetime
of the process, delivering every event into a single queue.

The stream alternates between two states:

CONNECTING -> STREAMING   once the event stream connection is established
STREAMING  -> CONNECTING  when the connection closes or fails

Before every reconnect the stream waits `reconnect_delay` seconds.
There is no limit on the number of reconnects. The stream stops only
when asked to (`stop()`, the application shutdown event, or task
cancellation) - stop requests are honored at reconnect boundaries.

Events are put into the queue in the order the beacon node emits them,
without deduplication. If the queue is bounded and full, the stream waits
for the consumer instead of dropping events.
"""

import asyncio
import logging
from enum import Enum

from observability import ErrorType
from providers import BeaconClient, BeaconNodeError, Beaconwatch
from schemas import SchemaChain


class StreamState(Enum):
    CONNECTING = "connecting"
    STREAMING = "streaming"


class HeadEventStreamService:
    def __init__(
        self,
        beacon_node: BeaconClient,
        beaconwatch: Beaconwatch,
        queue: asyncio.Queue[SchemaChain.HeadEvent] | None = None,
        reconnect_delay: float | None = None,
    ) -> None:
        self.beacon_node = beacon_node
        self.shutdown_event = beaconwatch.shutdown_event

        self.logger = logging.getLogger(self.__class__.__name__)
        self.metrics = beaconwatch.metrics

        self.queue: asyncio.Queue[SchemaChain.HeadEvent] = (
            queue
            if queue is not None
            else asyncio.Queue(maxsize=beaconwatch.cli_args.event_buffer_size)
        )
        self.reconnect_delay = (
            reconnect_delay
            if reconnect_delay is not None
            else beaconwatch.cli_args.reconnect_delay
        )

        self.state = StreamState.CONNECTING
        self.connect_count = 0
        self._running = False
        self._stop_event = asyncio.Event()

    def stop(self) -> None:
        self._stop_event.set()

    def _stop_requested(self) -> bool:
        return self._stop_event.is_set() or self.shutdown_event.is_set()

    def _set_state(self, state: StreamState) -> None:
        if state != self.state:
            self.logger.debug(
                f"[{self.beacon_node.host}] {self.state.value} -> {state.value}"
            )
        self.state = state
        self.metrics.head_event_stream_connected_g.labels(
            host=self.beacon_node.host
        ).set(int(state == StreamState.STREAMING))

    def _on_connected(self) -> None:
        self.logger.info(f"Subscribed to head events from {self.beacon_node.host}")
        self._set_state(StreamState.STREAMING)

    async def _stream(self) -> None:
        self._set_state(StreamState.CONNECTING)
        self.connect_count += 1
        self.metrics.head_event_stream_connects_c.labels(
            host=self.beacon_node.host
        ).inc()

        try:
            async for event in self.beacon_node.subscribe_to_head_events(
                on_connected=self._on_connected,
            ):
                self.metrics.head_events_c.labels(host=self.beacon_node.host).inc()
                await self.queue.put(event)
        except asyncio.CancelledError:
            raise
        except BeaconNodeError as e:
            self.metrics.errors_c.labels(
                error_type=ErrorType.HEAD_EVENT_STREAM.value,
            ).inc()
            self.logger.error(
                f"Head event stream from {self.beacon_node.host} failed: {e!r}"
            )
        except Exception as e:
            self.metrics.errors_c.labels(
                error_type=ErrorType.HEAD_EVENT_STREAM.value,
            ).inc()
            self.logger.exception(
                f"Unexpected error in head event stream from {self.beacon_node.host}: {e!r}"
            )
        else:
            self.logger.warning(
                f"Head event stream from {self.beacon_node.host} ended"
            )
        finally:
            self._set_state(StreamState.CONNECTING)

    async def _wait_before_reconnect(self) -> None:
        waiters = [
            asyncio.ensure_future(self._stop_event.wait()),
            asyncio.ensure_future(self.shutdown_event.wait()),
        ]
        try:
            await asyncio.wait(
                waiters,
                timeout=self.reconnect_delay,
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            for waiter in waiters:
                waiter.cancel()

    async def run(self) -> None:
        if self._running:
            raise RuntimeError(
                f"Head event stream from {self.beacon_node.host} is already running"
            )
        self._running = True

        self.logger.info(f"Subscribing to head events from {self.beacon_node.host}")
        try:
            while not self._stop_requested():
                await self._stream()

                if self._stop_requested():
                    break

                self.logger.info(
                    f"Reconnecting to {self.beacon_node.host} in {self.reconnect_delay} seconds"
                )
                await self._wait_before_reconnect()
        finally:
            self._running = False

        self.logger.info(f"Stopped head event stream from {self.beacon_node.host}")
