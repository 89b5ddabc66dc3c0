from __future__ import annotations

import argparse
import logging
import sys
from logging import getLevelNamesMapping
from typing import TYPE_CHECKING, TypeVar
from urllib.parse import urlparse

import msgspec

from observability import get_service_version

if TYPE_CHECKING:
    from collections.abc import Sequence


class CLIArgs(msgspec.Struct, kw_only=True):
    beacon_node_url: str
    request_timeout: float
    validators_request_timeout: float
    reconnect_delay: float
    event_buffer_size: int
    track_validators: bool
    data_dir: str
    metrics_address: str
    metrics_port: int
    log_level: int


def _validate_url(url: str) -> str:
    parsed = urlparse(url)
    if not (parsed.scheme and parsed.netloc):
        raise ValueError(f"Invalid URL: {url}")
    return url


def _validate_positive(value: float, name: str) -> float:
    if value <= 0:
        raise ValueError(f"Invalid value for {name}: {value}")
    return value


_NumT = TypeVar("_NumT", int, float)


def _validate_non_negative(value: _NumT, name: str) -> _NumT:
    if value < 0:
        raise ValueError(f"Invalid value for {name}: {value}")
    return value


def log_cli_arg_values(validated_args: CLIArgs) -> None:
    logger = logging.getLogger(__name__)

    for action in get_parser()._actions:  # noqa: SLF001
        if action.dest in ("help",):
            continue

        validated_arg_value = getattr(validated_args, action.dest)
        if action.dest == "log_level":
            validated_arg_value = logging.getLevelName(validated_arg_value)

        if action.default != validated_arg_value:
            logger.info(f"{action.dest}: {validated_arg_value}")


def get_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Beacon node head event watcher and chain state client."
    )

    parser.add_argument(
        "--beacon-node-url",
        type=str,
        required=True,
        help="URL of the beacon node to connect to.",
    )
    parser.add_argument(
        "--request-timeout",
        type=float,
        required=False,
        default=10.0,
        help="Total timeout in seconds applied to each beacon node API request. Does not apply to the event stream. Defaults to 10.",
    )
    parser.add_argument(
        "--validators-request-timeout",
        type=float,
        required=False,
        default=120.0,
        help="Total timeout in seconds for validator set requests made with --track-validators. The full active and pending validator set can be hundreds of MB, so this is much longer than --request-timeout. Defaults to 120.",
    )
    parser.add_argument(
        "--reconnect-delay",
        type=float,
        required=False,
        default=1.0,
        help="Seconds to wait before reconnecting to the beacon node head event stream. Defaults to 1.",
    )
    parser.add_argument(
        "--event-buffer-size",
        type=int,
        required=False,
        default=0,
        help="Maximum number of undelivered head events to buffer. When the buffer is full the event stream waits for the consumer. Defaults to 0 (unbounded).",
    )
    parser.add_argument(
        "--track-validators",
        action="store_true",
        help="Refresh the active and pending validator set once per epoch. See --validators-request-timeout.",
    )
    parser.add_argument(
        "--data-dir",
        type=str,
        required=False,
        default="/beaconwatch/data",
        help="The directory to use for storing the debug log file. Defaults to /beaconwatch/data .",
    )
    parser.add_argument(
        "--metrics-address",
        type=str,
        required=False,
        default="localhost",
        help="The metrics server listen address. Defaults to localhost.",
    )
    parser.add_argument(
        "--metrics-port",
        type=int,
        required=False,
        default=8000,
        help="The metrics server port number. Defaults to 8000.",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default="INFO",
        choices=getLevelNamesMapping().keys(),
        help="The logging level to use. Defaults to INFO.",
    )
    return parser


def parse_cli_args(args: Sequence[str]) -> CLIArgs:
    if args == ["--version"]:
        print(f"beaconwatch {get_service_version()}")  # noqa: T201
        sys.exit(0)

    parser = get_parser()
    parsed_args = parser.parse_args(args=args)

    try:
        validated_args = CLIArgs(
            beacon_node_url=_validate_url(parsed_args.beacon_node_url),
            request_timeout=_validate_positive(
                parsed_args.request_timeout, "request_timeout"
            ),
            validators_request_timeout=_validate_positive(
                parsed_args.validators_request_timeout, "validators_request_timeout"
            ),
            reconnect_delay=_validate_non_negative(
                parsed_args.reconnect_delay, "reconnect_delay"
            ),
            event_buffer_size=_validate_non_negative(
                parsed_args.event_buffer_size, "event_buffer_size"
            ),
            track_validators=parsed_args.track_validators,
            data_dir=parsed_args.data_dir,
            metrics_address=parsed_args.metrics_address,
            metrics_port=parsed_args.metrics_port,
            log_level=logging.getLevelName(parsed_args.log_level),
        )
    except ValueError as e:
        parser.error(repr(e))
    else:
        # For test_parse_cli_args
        if "pytest" in sys.modules:
            log_cli_arg_values(validated_args)

        return validated_args
