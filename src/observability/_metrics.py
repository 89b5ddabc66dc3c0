import sys
from enum import Enum

from prometheus_client import (
    Counter,
    Gauge,
    Histogram,
    start_http_server,
)

from ._service_info import get_service_commit, get_service_version


class ErrorType(Enum):
    HEAD_EVENT_STREAM = "head-event-stream"
    HEAD_EVENT_DECODE = "head-event-decode"
    HEAD_EVENT_CONSUMER = "head-event-consumer"
    VALIDATOR_SET_UPDATE = "validator-set-update"
    OTHER = "other"


class Metrics:
    def __init__(
        self,
        addr: str,
        port: int,
    ) -> None:
        if "pytest" not in sys.modules:
            # do not start the HTTP server while running tests
            start_http_server(addr=addr, port=port)

        self.errors_c = Counter(
            "errors",
            "Number of errors",
            labelnames=["error_type"],
        )
        for enum_type in ErrorType:
            self.errors_c.labels(enum_type.value).reset()

        self.info_g = Gauge(
            "beaconwatch_info",
            "Information about the beaconwatch build.",
            labelnames=["commit", "version"],
        )
        self.info_g.labels(
            commit=get_service_commit(),
            version=get_service_version(),
        ).set(1)

        # Event loop related
        self.event_loop_lag_h = Histogram(
            "event_loop_lag_seconds",
            "Estimate of event loop lag",
        )
        self.event_loop_tasks_g = Gauge(
            "event_loop_tasks",
            "Number of tasks in event loop",
        )

        # HeadEventStreamService
        self.head_events_c = Counter(
            "head_events",
            "Head events received from the beacon node event stream",
            labelnames=["host"],
        )
        self.head_event_stream_connects_c = Counter(
            "head_event_stream_connects",
            "Connection attempts made to the beacon node event stream",
            labelnames=["host"],
        )
        self.head_event_stream_connected_g = Gauge(
            "head_event_stream_connected",
            "1 if the head event stream is currently connected, 0 otherwise",
            labelnames=["host"],
        )

        # HeadTrackerService
        self.head_slot_g = Gauge(
            "head_slot",
            "Slot of the latest head event delivered to the consumer",
        )
        self.validator_set_size_g = Gauge(
            "validator_set_size",
            "Number of active and pending validators in the latest validator set snapshot",
        )

        # BeaconNode
        self.beacon_node_version_g = Gauge(
            "beacon_node_version",
            "Beacon node version",
            labelnames=["host", "version"],
        )
