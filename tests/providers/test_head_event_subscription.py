import re

import aiohttp
import pytest
from aioresponses import aioresponses

from providers import BeaconNode, BeaconNodeNotReady, TransportError
from schemas import SchemaChain
from tests.mock_api.beacon_node import head_event_data, head_event_stream_body


async def test_subscribe_to_head_events(
    beacon_node: BeaconNode,
    beacon_node_events_url_pattern: re.Pattern[str],
    mocked_responses: aioresponses,
) -> None:
    mocked_responses.get(
        url=beacon_node_events_url_pattern,
        body=head_event_stream_body(
            head_event_data(slot=100),
            head_event_data(slot=101),
            head_event_data(slot=101, block="0xfork"),
        ),
        content_type="text/event-stream",
    )

    connected_calls = []
    events = [
        event
        async for event in beacon_node.subscribe_to_head_events(
            on_connected=lambda: connected_calls.append(True),
        )
    ]

    assert connected_calls == [True]
    # Delivered in order, without deduplication
    assert [(e.slot, e.block) for e in events] == [
        (100, f"0x{100:064x}"),
        (101, f"0x{101:064x}"),
        (101, "0xfork"),
    ]

    (request_url,) = [url for (_, url) in mocked_responses.requests]
    assert request_url.path == "/eth/v1/events"
    assert request_url.query["topics"] == "head"


async def test_subscribe_to_head_events_sse_framing(
    beacon_node: BeaconNode,
    beacon_node_events_url_pattern: re.Pattern[str],
    mocked_responses: aioresponses,
    caplog: pytest.LogCaptureFixture,
) -> None:
    mocked_responses.get(
        url=beacon_node_events_url_pattern,
        body=(
            b": comment\r\n"
            b"\r\n"
            b"id: 1\r\n"
            b"event: head\r\n"
            b'data: {"slot":"1",\r\n'
            b'data: "block":"0x01","state":"0x02"}\r\n'
            b"\r\n"
            b"event: block\r\n"
            b'data: {"slot":"2","block":"0x03"}\r\n'
            b"\r\n"
            b'data:{"slot":"3","block":"0x04","state":"0x05"}\n'
            b"\n"
            # Trailing partial event without a blank line is not dispatched
            b"event: head\n"
            b'data: {"slot":"4","block":"0x06","state":"0x07"}\n'
        ),
    )

    events = [e async for e in beacon_node.subscribe_to_head_events()]

    assert events == [
        SchemaChain.HeadEvent(slot=1, block="0x01", state="0x02"),
        SchemaChain.HeadEvent(slot=3, block="0x04", state="0x05"),
    ]
    assert any("Ignoring unexpected block event" in m for m in caplog.messages)


async def test_subscribe_to_head_events_skips_malformed(
    beacon_node: BeaconNode,
    beacon_node_events_url_pattern: re.Pattern[str],
    mocked_responses: aioresponses,
    caplog: pytest.LogCaptureFixture,
) -> None:
    mocked_responses.get(
        url=beacon_node_events_url_pattern,
        body=head_event_stream_body(
            head_event_data(slot=10),
            '{"block":"0x01","state":"0x02"}',
            "{not-json",
            head_event_data(slot=11),
        ),
    )

    errors_before = beacon_node.metrics.errors_c.labels(
        error_type="head-event-decode"
    )._value.get()

    events = [e async for e in beacon_node.subscribe_to_head_events()]

    assert [e.slot for e in events] == [10, 11]
    assert (
        sum("Skipping malformed head event" in m for m in caplog.messages) == 2
    )
    assert (
        beacon_node.metrics.errors_c.labels(
            error_type="head-event-decode"
        )._value.get()
        == errors_before + 2
    )


async def test_subscribe_to_head_events_status_error(
    beacon_node: BeaconNode,
    beacon_node_events_url_pattern: re.Pattern[str],
    mocked_responses: aioresponses,
) -> None:
    mocked_responses.get(
        url=beacon_node_events_url_pattern,
        status=503,
        body=b"syncing",
    )

    connected_calls = []
    with pytest.raises(BeaconNodeNotReady):
        async for _ in beacon_node.subscribe_to_head_events(
            on_connected=lambda: connected_calls.append(True),
        ):
            pass

    assert connected_calls == []


async def test_subscribe_to_head_events_connection_error(
    beacon_node: BeaconNode,
    beacon_node_events_url_pattern: re.Pattern[str],
    mocked_responses: aioresponses,
) -> None:
    mocked_responses.get(
        url=beacon_node_events_url_pattern,
        exception=aiohttp.ClientConnectionError("Connection refused"),
    )

    with pytest.raises(TransportError, match="Event stream connection"):
        async for _ in beacon_node.subscribe_to_head_events():
            pass
