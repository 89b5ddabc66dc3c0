from .beacon_client import BeaconClient
from .beacon_node import (
    BeaconNode,
    BeaconNodeError,
    BeaconNodeNotReady,
    BeaconNodeReturnedBadRequest,
    BeaconNodeUnsupportedEndpoint,
    DecodeError,
    TransportError,
    UpstreamStatusError,
)
from .beaconwatch import Beaconwatch

__all__ = [
    "BeaconClient",
    "BeaconNode",
    "BeaconNodeError",
    "BeaconNodeNotReady",
    "BeaconNodeReturnedBadRequest",
    "BeaconNodeUnsupportedEndpoint",
    "Beaconwatch",
    "DecodeError",
    "TransportError",
    "UpstreamStatusError",
]
