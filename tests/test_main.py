import asyncio
import logging
import os
import re
import signal
from typing import Any

import pytest
from aioresponses import aioresponses

from main import main
from providers import Beaconwatch
from tests.mock_api.beacon_node import head_event_data, head_event_stream_body


async def _wait_for_log_lines(
    caplog: pytest.LogCaptureFixture,
    required_log_lines: list[str],
    timeout: float = 5,
) -> None:
    start = asyncio.get_running_loop().time()
    while asyncio.get_running_loop().time() - start < timeout:
        await asyncio.sleep(0.05)

        # Check if every required substring appears at least once in the captured logs
        if all(
            any(line in message for message in caplog.messages)
            for line in required_log_lines
        ):
            return

    pytest.fail(
        f"Log lines not found: {[line for line in required_log_lines if not any(line in m for m in caplog.messages)]}"
    )


@pytest.mark.parametrize(
    "cli_args",
    [
        pytest.param({"track_validators": False}, id="head events only"),
        pytest.param({"track_validators": True}, id="with validator set"),
    ],
    indirect=True,
)
@pytest.mark.usefixtures("_mocked_beacon_node_endpoints")
async def test_lifecycle(
    beaconwatch: Beaconwatch,
    beacon_node_events_url_pattern: re.Pattern[str],
    mocked_responses: aioresponses,
    caplog: pytest.LogCaptureFixture,
) -> None:
    """
    Sanity check that beaconwatch can start running, follow the head and shut down cleanly.
    """
    mocked_responses.get(
        url=beacon_node_events_url_pattern,
        body=head_event_stream_body(
            head_event_data(slot=4_000_001),
            head_event_data(slot=4_000_002),
        ),
        repeat=True,
    )

    main_task = asyncio.create_task(main(beaconwatch=beaconwatch))

    required_log_lines = [
        "Initialized beacon node",
        "Beacon node head slot: 4000000",
        "Subscribed to head events from beacon-node-1",
        "New head @ 4000001",
        "New head @ 4000002",
    ]
    if beaconwatch.cli_args.track_validators:
        required_log_lines.append("Updated validator set at slot 4000001: 2 validators")

    await _wait_for_log_lines(caplog=caplog, required_log_lines=required_log_lines)

    # Make sure no errors occurred
    err_records = [r for r in caplog.records if r.levelno >= logging.ERROR]
    for record in err_records:
        pytest.fail(f"Error occurred: {record.message}")

    # Send SIGTERM signal to process to initiate a clean shutdown
    os.kill(os.getpid(), signal.SIGTERM)

    await beaconwatch.shutdown_event.wait()
    await asyncio.wait_for(main_task, timeout=5)

    assert any("Received shutdown signal SIGTERM" in m for m in caplog.messages)
    assert any("Shutting down" in m for m in caplog.messages)
    assert any(
        "Stopped head event stream from beacon-node-1" in m for m in caplog.messages
    )


async def test_shutdown_before_initialization(
    beaconwatch: Beaconwatch,
    mocked_responses: aioresponses,
    caplog: pytest.LogCaptureFixture,
) -> None:
    # Every request fails -> the beacon node never initializes
    main_task = asyncio.create_task(main(beaconwatch=beaconwatch))

    await _wait_for_log_lines(
        caplog=caplog, required_log_lines=["Failed to initialize beacon node"]
    )
    beaconwatch.shutdown_event.set()
    await asyncio.wait_for(main_task, timeout=5)

    assert "Shut down before the beacon node was initialized" in caplog.messages


async def test_sync_status_failure_does_not_prevent_startup(
    beaconwatch: Beaconwatch,
    beacon_node_events_url_pattern: re.Pattern[str],
    mocked_responses: aioresponses,
    mocked_genesis_response: dict[str, Any],
    mocked_spec_response: dict[str, Any],
    caplog: pytest.LogCaptureFixture,
) -> None:
    mocked_responses.get(
        url=re.compile(r"http://beacon-node-1:1234/eth/v1/beacon/genesis"),
        payload=mocked_genesis_response,
    )
    mocked_responses.get(
        url=re.compile(r"http://beacon-node-1:1234/eth/v1/config/spec"),
        payload=mocked_spec_response,
    )
    mocked_responses.get(
        url=re.compile(r"http://beacon-node-1:1234/eth/v1/node/version"),
        payload=dict(data=dict(version="beacon-node/test")),
        repeat=True,
    )
    mocked_responses.get(
        url=re.compile(r"http://beacon-node-1:1234/eth/v1/node/syncing"),
        status=503,
        body=b"Node is syncing",
    )
    mocked_responses.get(
        url=beacon_node_events_url_pattern,
        body=head_event_stream_body(head_event_data(slot=4_000_001)),
        repeat=True,
    )

    main_task = asyncio.create_task(main(beaconwatch=beaconwatch))

    await _wait_for_log_lines(
        caplog=caplog,
        required_log_lines=[
            "Failed to get beacon node sync status",
            "Subscribed to head events from beacon-node-1",
            "New head @ 4000001",
        ],
    )

    beaconwatch.shutdown_event.set()
    await asyncio.wait_for(main_task, timeout=5)

    assert main_task.exception() is None
    assert any(
        "Stopped head event stream from beacon-node-1" in m for m in caplog.messages
    )
