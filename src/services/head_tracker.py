import asyncio
import logging

from observability import ErrorType
from providers import BeaconClient, BeaconNodeError, Beaconwatch
from schemas import SchemaChain


class HeadTrackerService:
    """Consumes the head event queue.

    Keeps track of the latest head and, if enabled, refreshes
    the validator set snapshot once per epoch. A failed refresh
    is retried on the next head event.
    """

    def __init__(
        self,
        beacon_node: BeaconClient,
        queue: asyncio.Queue[SchemaChain.HeadEvent],
        beaconwatch: Beaconwatch,
        slots_per_epoch: int,
    ) -> None:
        self.beacon_node = beacon_node
        self.queue = queue
        self.shutdown_event = beaconwatch.shutdown_event
        self.track_validators = beaconwatch.cli_args.track_validators
        self.slots_per_epoch = slots_per_epoch

        self.logger = logging.getLogger(self.__class__.__name__)
        self.metrics = beaconwatch.metrics

        self.latest_head: SchemaChain.HeadEvent | None = None
        self.validator_set: dict[str, SchemaChain.ValidatorEntry] = {}
        self._validator_set_epoch: int | None = None

    async def update_validator_set(self, head_slot: int) -> None:
        self.validator_set = await self.beacon_node.fetch_validators(
            head_slot=head_slot
        )
        self._validator_set_epoch = head_slot // self.slots_per_epoch
        self.metrics.validator_set_size_g.set(len(self.validator_set))
        self.logger.info(
            f"Updated validator set at slot {head_slot}: {len(self.validator_set)} validators"
        )

    async def handle_head_event(self, event: SchemaChain.HeadEvent) -> None:
        if self.latest_head is not None and event.slot < self.latest_head.slot:
            self.logger.warning(
                f"Head moved back from slot {self.latest_head.slot} to {event.slot}"
            )

        self.logger.info(f"New head @ {event.slot} : {event.block}")
        self.latest_head = event
        self.metrics.head_slot_g.set(event.slot)

        if (
            self.track_validators
            and event.slot // self.slots_per_epoch != self._validator_set_epoch
        ):
            try:
                await self.update_validator_set(head_slot=event.slot)
            except BeaconNodeError as e:
                self.metrics.errors_c.labels(
                    error_type=ErrorType.VALIDATOR_SET_UPDATE.value,
                ).inc()
                self.logger.error(
                    f"Failed to update validator set at slot {event.slot}: {e!r}"
                )

    async def run(self) -> None:
        while not self.shutdown_event.is_set():
            event = await self.queue.get()
            try:
                await self.handle_head_event(event)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self.metrics.errors_c.labels(
                    error_type=ErrorType.HEAD_EVENT_CONSUMER.value,
                ).inc()
                self.logger.exception(
                    f"Failed to handle head event for slot {event.slot}: {e!r}"
                )
            finally:
                self.queue.task_done()
