"""Provides methods for interacting with a beacon node through the [Beacon Node API](https://github.com/ethereum/beacon-APIs).

Every request goes through `BeaconNode._fetch`, which classifies failures into:

- `TransportError` - the request did not complete (connection failure, timeout, ...)
- `UpstreamStatusError` - the beacon node responded with a non-2xx status code
- `DecodeError` - the response body could not be decoded into the expected shape

Nothing is retried here. The only component that recovers from errors
locally is the head event stream (see `services.head_event_stream`).
"""

from __future__ import annotations

import contextlib
import datetime
import logging
import warnings
from collections.abc import AsyncIterator, Callable, Iterator
from typing import TYPE_CHECKING, Any, Literal, TypeVar, Unpack
from urllib.parse import urlparse

import aiohttp
import msgspec
from aiohttp import ClientTimeout
from aiohttp.client import _RequestOptions
from aiohttp.hdrs import ACCEPT, CONTENT_TYPE, USER_AGENT
from opentelemetry import trace
from opentelemetry.trace import SpanKind
from yarl import URL

from observability import ErrorType, get_service_name, get_service_version
from observability.api_client import RequestLatency, ServiceType
from providers._headers import ContentType
from providers.beacon_client import BeaconClient
from providers.validator_set import VALIDATOR_SET_STATUSES, build_validator_set
from schemas import SchemaBeaconAPI, SchemaChain

if TYPE_CHECKING:
    from .beaconwatch import Beaconwatch

_T = TypeVar("_T")

_TIMEOUT_DEFAULT_CONNECT = 1

_HEAD_EVENT_NAME = "head"


class BeaconNodeError(Exception):
    pass


class TransportError(BeaconNodeError):
    pass


class UpstreamStatusError(BeaconNodeError):
    def __init__(self, status: int, url: URL | str, body: str) -> None:
        super().__init__(
            f"Received status code {status} for request to {url}."
            f" Full response text: {body}"
        )
        self.status = status
        self.url = url
        self.body = body


class BeaconNodeNotReady(UpstreamStatusError):
    pass


class BeaconNodeUnsupportedEndpoint(UpstreamStatusError):
    pass


class BeaconNodeReturnedBadRequest(UpstreamStatusError):
    pass


class DecodeError(BeaconNodeError):
    pass


_STATUS_CODE_ERRORS: dict[int, type[UpstreamStatusError]] = {
    400: BeaconNodeReturnedBadRequest,
    405: BeaconNodeUnsupportedEndpoint,
    503: BeaconNodeNotReady,
}


@contextlib.contextmanager
def _raise_decode_error(what: str) -> Iterator[None]:
    try:
        yield
    except (msgspec.DecodeError, ValueError) as e:
        raise DecodeError(f"Failed to decode {what}: {e}") from e


def decode_head_event(data: str | bytes) -> SchemaChain.HeadEvent:
    """Decodes the data of a head event, e.g.
    {"slot":"827256","block":"0x56b6...","state":"0x419e...","epoch_transition":false}
    """
    with _raise_decode_error(f"head event {data!r}"):
        return SchemaChain.HeadEvent.from_api(
            msgspec.json.decode(data, type=SchemaBeaconAPI.HeadEvent),
        )


class BeaconNode(BeaconClient):
    def __init__(
        self,
        base_url: str,
        beaconwatch: Beaconwatch,
    ) -> None:
        self.logger = logging.getLogger(self.__class__.__name__)
        self.metrics = beaconwatch.metrics
        self.tracer = trace.get_tracer(self.__class__.__name__)

        self.base_url = URL(base_url)
        self.host = urlparse(base_url).hostname or ""
        if not self.host:
            raise ValueError(f"Failed to parse hostname from {base_url}")

        self.scheduler = beaconwatch.scheduler
        self.task_manager = beaconwatch.task_manager

        self.initialized = False
        self._init_retry_interval = 5.0
        self.node_version = ""
        self.genesis: SchemaChain.Genesis | None = None
        self.spec: SchemaChain.ChainSpec | None = None
        # The validator set can be very large, its requests get a separate timeout
        self._validators_request_timeout = ClientTimeout(
            connect=_TIMEOUT_DEFAULT_CONNECT,
            total=beaconwatch.cli_args.validators_request_timeout,
        )

        self.client_session = aiohttp.ClientSession(
            timeout=ClientTimeout(
                connect=_TIMEOUT_DEFAULT_CONNECT,
                total=beaconwatch.cli_args.request_timeout,
            ),
            headers={
                ACCEPT: ContentType.JSON.value,
                CONTENT_TYPE: ContentType.JSON.value,
                USER_AGENT: f"{get_service_name()}/{get_service_version()}",
            },
            trace_configs=[
                RequestLatency(host=self.host, service_type=ServiceType.BEACON_NODE),
            ],
            # Default aiohttp read buffer is only 64KB which is not always enough,
            # resulting in ValueError("Chunk too big")
            read_bufsize=2**19,
        )

        self.json_encoder = msgspec.json.Encoder()

    async def __aenter__(self) -> BeaconNode:
        return self

    async def __aexit__(self, *_: object) -> None:
        await self.close()

    async def close(self) -> None:
        if not self.client_session.closed:
            await self.client_session.close()

    async def _initialize_full(self) -> None:
        self.genesis = await self.get_genesis()
        self.spec = await self.get_spec()
        self.logger.info(
            f"Beacon node {self.host}: genesis time {self.genesis.genesis_time},"
            f" {self.spec.seconds_per_slot}s slots, {self.spec.slots_per_epoch} slots per epoch"
        )

        # Regularly refresh the version of the beacon node
        self.scheduler.add_job(
            self.update_node_version,
            "interval",
            minutes=10,
            next_run_time=datetime.datetime.now(tz=datetime.UTC),
            id=f"{self.__class__.__name__}.update_node_version-{self.base_url}",
            replace_existing=True,
        )

        self.initialized = True

    async def initialize_full(self) -> None:
        try:
            await self._initialize_full()
            self.logger.info(f"Initialized beacon node at {self.base_url}")
        except BeaconNodeError as e:
            self.logger.exception(
                f"Failed to initialize beacon node at {self.base_url}: {e!r}. Retrying in {self._init_retry_interval} seconds.",
            )
            self.task_manager.create_task(
                self.initialize_full(),
                delay=self._init_retry_interval,
                name=f"{self.__class__.__name__}.initialize_full-{self.host}",
            )

    @staticmethod
    def _raise_for_nok_status(status: int, url: URL, body: bytes) -> None:
        if 200 <= status < 300:
            return

        error_cls = _STATUS_CODE_ERRORS.get(status, UpstreamStatusError)
        raise error_cls(status, url, body.decode(errors="replace"))

    async def _make_request(
        self,
        method: Literal["GET", "POST"],
        endpoint: str,
        formatted_endpoint_string_params: dict[str, str | int] | None = None,
        **kwargs: Unpack[_RequestOptions],
    ) -> tuple[int, bytes]:
        if formatted_endpoint_string_params is not None:
            kwargs["trace_request_ctx"] = dict(path=endpoint)
            endpoint = endpoint.format(**formatted_endpoint_string_params)

        url = self.base_url.join(URL(endpoint))

        self.logger.debug(f"Making {method} request to {url}")
        try:
            async with self.client_session.request(
                method=method,
                url=url,
                **kwargs,
            ) as resp:
                status = resp.status
                body = await resp.read()
        except (aiohttp.ClientError, TimeoutError) as e:
            self.logger.debug(
                f"Failed to get response from {self.host} for {method} {endpoint}: {e!r}",
            )
            raise TransportError(f"{method} {url} failed: {e!r}") from e

        try:
            self._raise_for_nok_status(status=status, url=url, body=body)
        except UpstreamStatusError as e:
            self.logger.debug(
                f"Bad response from {self.host} for {method} {endpoint}: {e!r}",
            )
            raise

        return status, body

    async def _fetch(
        self,
        method: Literal["GET", "POST"],
        endpoint: str,
        response_type: type[_T] | None = None,
        body: Any = None,
        formatted_endpoint_string_params: dict[str, str | int] | None = None,
        **kwargs: Unpack[_RequestOptions],
    ) -> tuple[int, _T | None]:
        """Makes a request and decodes the response into `response_type`.

        Requests without a `response_type` only have their
        status code checked, the response body is ignored.
        """
        if body is not None:
            kwargs["data"] = self.json_encoder.encode(body)

        status, resp_body = await self._make_request(
            method=method,
            endpoint=endpoint,
            formatted_endpoint_string_params=formatted_endpoint_string_params,
            **kwargs,
        )

        if response_type is None:
            return status, None

        with _raise_decode_error(f"response to {method} {endpoint}"):
            return status, msgspec.json.decode(resp_body, type=response_type)

    async def _get(
        self,
        endpoint: str,
        response_type: type[_T],
        formatted_endpoint_string_params: dict[str, str | int] | None = None,
        **kwargs: Unpack[_RequestOptions],
    ) -> _T:
        _, response = await self._fetch(
            method="GET",
            endpoint=endpoint,
            response_type=response_type,
            formatted_endpoint_string_params=formatted_endpoint_string_params,
            **kwargs,
        )
        if response is None:
            raise DecodeError(f"Empty response to GET {endpoint}")
        return response

    async def get_node_version(self) -> str:
        response = await self._get(
            endpoint="/eth/v1/node/version",
            response_type=SchemaBeaconAPI.GetNodeVersionResponse,
        )
        return response.data.version

    async def update_node_version(self) -> None:
        resp_version = await self.get_node_version()

        if resp_version != self.node_version:
            self.logger.info(
                f"Beacon node version changed on {self.host}: {self.node_version} -> {resp_version}"
            )
            # Remove the old value in order not to report
            # multiple versions for the same host
            with contextlib.suppress(KeyError), warnings.catch_warnings():
                warnings.simplefilter("ignore")
                self.metrics.beacon_node_version_g.remove(self.host, self.node_version)

        self.node_version = resp_version
        self.metrics.beacon_node_version_g.labels(
            host=self.host, version=self.node_version
        ).set(1)

    async def get_sync_status(self) -> SchemaChain.SyncStatus:
        # https://ethereum.github.io/beacon-APIs/#/Node/getSyncingStatus
        response = await self._get(
            endpoint="/eth/v1/node/syncing",
            response_type=SchemaBeaconAPI.GetSyncStatusResponse,
        )
        with _raise_decode_error("sync status"):
            return SchemaChain.SyncStatus.from_api(response.data)

    async def get_current_slot(self) -> int:
        sync_status = await self.get_sync_status()
        return sync_status.head_slot

    async def get_proposer_duties(self, epoch: int) -> SchemaChain.ProposerDuties:
        """Returns proposer duties for every slot in the epoch."""
        response = await self._get(
            endpoint="/eth/v1/validator/duties/proposer/{epoch}",
            response_type=SchemaBeaconAPI.GetProposerDutiesResponse,
            formatted_endpoint_string_params=dict(epoch=epoch),
        )
        with _raise_decode_error("proposer duties"):
            return SchemaChain.ProposerDuties.from_api(response)

    async def _get_header(self, block_id: str | int) -> SchemaChain.BlockHeader:
        # https://ethereum.github.io/beacon-APIs/#/Beacon/getBlockHeader
        response = await self._get(
            endpoint="/eth/v1/beacon/headers/{block_id}",
            response_type=SchemaBeaconAPI.GetBlockHeaderResponse,
            formatted_endpoint_string_params=dict(block_id=block_id),
        )
        with _raise_decode_error("block header"):
            return SchemaChain.BlockHeader.from_api(response.data)

    async def get_header(self) -> SchemaChain.BlockHeader:
        return await self._get_header(block_id="head")

    async def get_header_for_slot(self, slot: int) -> SchemaChain.BlockHeader:
        return await self._get_header(block_id=slot)

    async def get_block(self, block_id: str | int) -> SchemaChain.Block:
        """Returns a block by id - 'head' or a slot number.

        The slot of the returned block is not checked against
        the requested one.
        """
        # https://ethereum.github.io/beacon-APIs/#/Beacon/getBlockV2
        response = await self._get(
            endpoint="/eth/v2/beacon/blocks/{block_id}",
            response_type=SchemaBeaconAPI.GetBlockResponse,
            formatted_endpoint_string_params=dict(block_id=block_id),
        )
        with _raise_decode_error("block"):
            return SchemaChain.Block.from_api(response)

    async def get_block_for_slot(self, slot: int) -> SchemaChain.Block:
        return await self.get_block(block_id=slot)

    async def publish_block(self, signed_block: Any) -> int:
        with self.tracer.start_as_current_span(
            name=f"{self.__class__.__name__}.publish_block",
            kind=SpanKind.CLIENT,
            attributes={
                "server.address": self.host,
            },
        ):
            status, _ = await self._fetch(
                method="POST",
                endpoint="/eth/v1/beacon/blocks",
                body=signed_block,
            )
            return status

    async def get_genesis(self) -> SchemaChain.Genesis:
        response = await self._get(
            endpoint="/eth/v1/beacon/genesis",
            response_type=SchemaBeaconAPI.GetGenesisResponse,
        )
        with _raise_decode_error("genesis"):
            return SchemaChain.Genesis.from_api(response.data)

    async def get_spec(self) -> SchemaChain.ChainSpec:
        response = await self._get(
            endpoint="/eth/v1/config/spec",
            response_type=SchemaBeaconAPI.GetSpecResponse,
        )
        with _raise_decode_error("spec"):
            return SchemaChain.ChainSpec.from_api(response.data)

    async def get_fork_schedule(self) -> list[SchemaChain.Fork]:
        response = await self._get(
            endpoint="/eth/v1/config/fork_schedule",
            response_type=SchemaBeaconAPI.GetForkScheduleResponse,
        )
        with _raise_decode_error("fork schedule"):
            return [SchemaChain.Fork.from_api(f) for f in response.data]

    async def get_randao(self, slot: int) -> str:
        response = await self._get(
            endpoint="/eth/v1/beacon/states/{state_id}/randao",
            response_type=SchemaBeaconAPI.GetRandaoResponse,
            formatted_endpoint_string_params=dict(state_id=slot),
        )
        return response.data.randao

    async def get_withdrawals(self, slot: int) -> list[SchemaChain.Withdrawal]:
        response = await self._get(
            endpoint="/eth/v1/beacon/states/{state_id}/withdrawals",
            response_type=SchemaBeaconAPI.GetWithdrawalsResponse,
            formatted_endpoint_string_params=dict(state_id=slot),
        )
        with _raise_decode_error("withdrawals"):
            return [
                SchemaChain.Withdrawal.from_api(w) for w in response.data.withdrawals
            ]

    async def get_validators(
        self,
        state_id: str = "head",
        statuses: list[str] | None = None,
    ) -> list[SchemaChain.ValidatorEntry]:
        # https://ethereum.github.io/beacon-APIs/#/Beacon/getStateValidators
        response = await self._get(
            endpoint="/eth/v1/beacon/states/{state_id}/validators",
            response_type=SchemaBeaconAPI.GetStateValidatorsResponse,
            formatted_endpoint_string_params=dict(state_id=state_id),
            params=dict(status=",".join(statuses)) if statuses else None,
            timeout=self._validators_request_timeout,
        )
        with _raise_decode_error("validators"):
            return [SchemaChain.ValidatorEntry.from_api(v) for v in response.data]

    async def fetch_validators(
        self, head_slot: int
    ) -> dict[str, SchemaChain.ValidatorEntry]:
        validators = await self.get_validators(
            state_id=str(head_slot),
            statuses=VALIDATOR_SET_STATUSES,
        )
        return build_validator_set(validators)

    def _decode_sse_event(
        self, event_name: str | None, data_lines: list[str]
    ) -> SchemaChain.HeadEvent | None:
        if not data_lines:
            return None

        # Events without a name are dispatched as "message" events
        if event_name not in (None, _HEAD_EVENT_NAME):
            self.logger.warning(
                f"Ignoring unexpected {event_name} event in {self.host} event stream",
            )
            return None

        try:
            return decode_head_event("\n".join(data_lines))
        except DecodeError as e:
            self.metrics.errors_c.labels(
                error_type=ErrorType.HEAD_EVENT_DECODE.value,
            ).inc()
            self.logger.error(f"Skipping malformed head event from {self.host}: {e}")
            return None

    async def subscribe_to_head_events(
        self,
        on_connected: Callable[[], None] | None = None,
    ) -> AsyncIterator[SchemaChain.HeadEvent]:
        """Yields head events from a single event stream connection.

        Returns when the beacon node closes the connection.
        Malformed events are logged and skipped.
        """
        url = self.base_url.join(URL("/eth/v1/events"))

        try:
            async with self.client_session.get(
                url=url,
                params={"topics": _HEAD_EVENT_NAME},
                headers={ACCEPT: ContentType.EVENT_STREAM.value},
                # Head events may be sparse -> no read timeout
                timeout=ClientTimeout(
                    sock_connect=_TIMEOUT_DEFAULT_CONNECT, sock_read=None
                ),
            ) as resp:
                if not resp.ok:
                    self._raise_for_nok_status(
                        status=resp.status, url=url, body=await resp.read()
                    )

                if on_connected is not None:
                    on_connected()

                # Minimal SSE client implementation
                event_name: str | None = None
                data_lines: list[str] = []
                async for raw_line in resp.content:
                    line = raw_line.decode(errors="replace").rstrip("\r\n")

                    if not line:
                        # Blank line -> dispatch the event
                        event = self._decode_sse_event(event_name, data_lines)
                        event_name, data_lines = None, []
                        if event is not None:
                            yield event
                        continue

                    if line.startswith(":"):
                        self.logger.debug(f"SSE comment {line}")
                        continue

                    field, _, value = line.partition(":")
                    value = value.removeprefix(" ")
                    if field == "event":
                        event_name = value
                    elif field == "data":
                        data_lines.append(value)
                    elif field not in ("id", "retry"):
                        self.logger.warning(
                            f"Unexpected line in {self.host} event stream: {line!r}",
                        )
        except (aiohttp.ClientError, TimeoutError) as e:
            raise TransportError(
                f"Event stream connection to {self.host} failed: {e!r}"
            ) from e
