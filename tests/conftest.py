import asyncio
import logging
from collections.abc import AsyncGenerator, Generator
from pathlib import Path

import prometheus_client
import pytest

from args import CLIArgs
from observability import init_observability
from providers import BeaconNode, Beaconwatch
from schemas import SchemaChain
from tasks import TaskManager

# A few more global fixtures defined separately
from tests.mock_api.base import *
from tests.mock_api.beacon_node import *
from tests.mock_api.beacon_node import (
    _mocked_beacon_node_endpoints,
)


@pytest.fixture
def cli_args(
    beacon_node_url: str,
    tmp_path: Path,
    request: pytest.FixtureRequest,
) -> CLIArgs:
    # CLI args can be overridden through indirect parametrization
    indirect_params = getattr(request, "param", {})

    return CLIArgs(
        beacon_node_url=indirect_params.get("beacon_node_url", beacon_node_url),
        request_timeout=indirect_params.get("request_timeout", 1.0),
        validators_request_timeout=indirect_params.get(
            "validators_request_timeout", 1.0
        ),
        reconnect_delay=indirect_params.get("reconnect_delay", 0.05),
        event_buffer_size=indirect_params.get("event_buffer_size", 0),
        track_validators=indirect_params.get("track_validators", False),
        data_dir=str(tmp_path),
        metrics_address="localhost",
        metrics_port=8000,
        log_level=logging.INFO,
    )


@pytest.fixture(autouse=True, scope="session")
def _init_observability() -> None:
    init_observability(
        log_level=logging.DEBUG,
        data_dir=Path("/tmp"),
    )


@pytest.fixture
def beaconwatch(
    cli_args: CLIArgs, _unregister_prometheus_metrics: None
) -> Beaconwatch:
    return Beaconwatch(cli_args=cli_args)


@pytest.fixture
def task_manager(beaconwatch: Beaconwatch) -> TaskManager:
    # Just a convenience fixture
    return beaconwatch.task_manager


@pytest.fixture
async def beacon_node(
    beaconwatch: Beaconwatch,
) -> AsyncGenerator[BeaconNode, None]:
    async with BeaconNode(
        base_url=beaconwatch.cli_args.beacon_node_url,
        beaconwatch=beaconwatch,
    ) as bn:
        yield bn


@pytest.fixture
async def beacon_node_with_mocked_endpoints(
    _mocked_beacon_node_endpoints: None,
    beacon_node: BeaconNode,
) -> BeaconNode:
    return beacon_node


@pytest.fixture
def head_event_queue() -> asyncio.Queue[SchemaChain.HeadEvent]:
    return asyncio.Queue()


@pytest.fixture
def _unregister_prometheus_metrics() -> Generator[None, None, None]:
    """
    Clears the prometheus registry metrics after a test is done running.
    """
    yield
    collectors = tuple(prometheus_client.REGISTRY._collector_to_names.keys())
    for collector in collectors:
        prometheus_client.REGISTRY.unregister(collector)
