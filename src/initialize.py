import asyncio
import logging
from pathlib import Path

from observability.event_loop import monitor_event_loop
from providers import BeaconNode, BeaconNodeError, Beaconwatch
from schemas import SchemaChain
from services import HeadEventStreamService, HeadTrackerService

_logger = logging.getLogger("beaconwatch-init")

_INITIALIZATION_CHECK_INTERVAL = 1.0


def check_data_dir_permissions(data_dir: Path) -> None:
    if not Path.is_dir(data_dir):
        _logger.info("Data directory does not exist, attempting to create it")
        try:
            Path.mkdir(data_dir, parents=True)
        except Exception as e:
            raise RuntimeError(
                f"Failed to create data directory at {data_dir}",
            ) from e

    # Attempt to write a file and reading from it
    test_file_path = data_dir / ".beaconwatch_test_permissions"
    test_file_content = "test_permissions"
    with Path.open(test_file_path, "w") as f:
        f.write(test_file_content)
    with Path.open(test_file_path) as f:
        content_read = f.read()
    Path.unlink(test_file_path)
    if content_read != test_file_content:
        raise PermissionError(
            f"Mismatch between data written {test_file_content} and read {content_read} into test file",
        )


async def _wait_for_initialization(
    beacon_node: BeaconNode, shutdown_event: asyncio.Event
) -> SchemaChain.ChainSpec | None:
    await beacon_node.initialize_full()
    while not beacon_node.initialized:
        if shutdown_event.is_set():
            return None
        await asyncio.sleep(_INITIALIZATION_CHECK_INTERVAL)
    return beacon_node.spec


async def _run_head_tracking(
    beaconwatch: Beaconwatch, beacon_node: BeaconNode
) -> HeadEventStreamService | None:
    spec = await _wait_for_initialization(
        beacon_node=beacon_node, shutdown_event=beaconwatch.shutdown_event
    )
    if spec is None:
        _logger.info("Shut down before the beacon node was initialized")
        return None

    try:
        sync_status = await beacon_node.get_sync_status()
    except BeaconNodeError as e:
        _logger.warning(f"Failed to get beacon node sync status: {e!r}")
    else:
        _logger.info(
            f"Beacon node head slot: {sync_status.head_slot}, syncing: {sync_status.is_syncing}"
        )

    head_event_queue: asyncio.Queue[SchemaChain.HeadEvent] = asyncio.Queue(
        maxsize=beaconwatch.cli_args.event_buffer_size
    )
    head_event_stream = HeadEventStreamService(
        beacon_node=beacon_node,
        beaconwatch=beaconwatch,
        queue=head_event_queue,
    )
    head_tracker = HeadTrackerService(
        beacon_node=beacon_node,
        queue=head_event_queue,
        beaconwatch=beaconwatch,
        slots_per_epoch=spec.slots_per_epoch,
    )

    beaconwatch.task_manager.create_task(
        head_event_stream.run(), name=f"head_event_stream_{beacon_node.host}"
    )
    beaconwatch.task_manager.create_task(head_tracker.run(), name="head_tracker")
    return head_event_stream


async def run_services(beaconwatch: Beaconwatch) -> None:
    beaconwatch.scheduler.start()

    async with BeaconNode(
        base_url=beaconwatch.cli_args.beacon_node_url,
        beaconwatch=beaconwatch,
    ) as beacon_node:
        try:
            head_event_stream = await _run_head_tracking(
                beaconwatch=beaconwatch, beacon_node=beacon_node
            )
            if head_event_stream is not None:
                # Run forever while monitoring the event loop
                await monitor_event_loop(
                    metrics=beaconwatch.metrics,
                    shutdown_event=beaconwatch.shutdown_event,
                )
                head_event_stream.stop()
        finally:
            # Reaching this point means the shutdown_event was set
            # (or startup failed) -> cancel all pending tasks
            beaconwatch.task_manager.cancel_all()
            await beaconwatch.task_manager.wait_all()
            beaconwatch.scheduler.shutdown(wait=False)
