"""aiohttp tracing hooks exporting beacon node API request metrics.

Every request made through a session carrying a `RequestLatency`
trace config is counted and timed. Requests that fail before
a response is received are counted separately, by exception type.

Dynamic routes (e.g. "/eth/v1/beacon/headers/123") are labelled with
their template when the caller passes it in as
`trace_request_ctx={"path": "/eth/v1/beacon/headers/{block_id}"}`.
"""

import asyncio
from enum import Enum
from functools import partial
from types import SimpleNamespace
from typing import TypedDict, get_type_hints

import aiohttp
from prometheus_client import Counter, Histogram


class ServiceType(Enum):
    BEACON_NODE = "beacon_node"


class _RequestMetricLabelValues(TypedDict):
    service_type: str
    host: str
    method: str
    path: str
    status: str


_REQUEST_LABEL_NAMES = list(get_type_hints(_RequestMetricLabelValues).keys())

_REQUEST_DURATION = Histogram(
    "request_duration_seconds",
    "Time until the response headers were received, in seconds",
    labelnames=_REQUEST_LABEL_NAMES,
)
_REQUESTS_COUNTER = Counter(
    "requests",
    "Number of requests that received a response",
    labelnames=_REQUEST_LABEL_NAMES,
)
_REQUEST_EXCEPTIONS_COUNTER = Counter(
    "request_exceptions",
    "Number of requests that failed without a response",
    labelnames=["service_type", "host", "method", "path", "exception"],
)
_RECEIVE_BYTES = Counter(
    "receive_bytes",
    "Total response body bytes received",
    labelnames=["service_type", "host"],
)


def _metric_path(trace_config_ctx: SimpleNamespace, url_path: str) -> str:
    trace_request_ctx: dict[str, str] | None = trace_config_ctx.trace_request_ctx
    if trace_request_ctx is None:
        return url_path
    return trace_request_ctx.get("path", url_path)


async def _on_request_start(
    _session: aiohttp.ClientSession,
    trace_config_ctx: SimpleNamespace,
    _params: aiohttp.TraceRequestStartParams,
) -> None:
    trace_config_ctx.start = asyncio.get_running_loop().time()


async def _on_request_end(
    _session: aiohttp.ClientSession,
    trace_config_ctx: SimpleNamespace,
    params: aiohttp.TraceRequestEndParams,
) -> None:
    labels = _RequestMetricLabelValues(
        service_type=trace_config_ctx.service_type,
        host=trace_config_ctx.host,
        method=params.method,
        path=_metric_path(trace_config_ctx, params.url.path),
        status=str(params.response.status),
    )

    elapsed = asyncio.get_running_loop().time() - trace_config_ctx.start
    _REQUEST_DURATION.labels(**labels).observe(elapsed)
    _REQUESTS_COUNTER.labels(**labels).inc()


async def _on_request_exception(
    _session: aiohttp.ClientSession,
    trace_config_ctx: SimpleNamespace,
    params: aiohttp.TraceRequestExceptionParams,
) -> None:
    _REQUEST_EXCEPTIONS_COUNTER.labels(
        service_type=trace_config_ctx.service_type,
        host=trace_config_ctx.host,
        method=params.method,
        path=_metric_path(trace_config_ctx, params.url.path),
        exception=type(params.exception).__name__,
    ).inc()


async def _on_response_chunk_received(
    _session: aiohttp.ClientSession,
    trace_config_ctx: SimpleNamespace,
    params: aiohttp.TraceResponseChunkReceivedParams,
) -> None:
    _RECEIVE_BYTES.labels(
        service_type=trace_config_ctx.service_type,
        host=trace_config_ctx.host,
    ).inc(len(params.chunk))


class RequestLatency(aiohttp.TraceConfig):
    def __init__(self, host: str, service_type: ServiceType):
        super().__init__(
            # The factory receives the per-request trace_request_ctx,
            # host and service type are the same for every request
            trace_config_ctx_factory=partial(  # type: ignore[arg-type]
                lambda trace_request_ctx: SimpleNamespace(
                    trace_request_ctx=trace_request_ctx,
                    host=host,
                    service_type=service_type.value,
                ),
            ),
        )

        self.on_request_start.append(_on_request_start)
        self.on_request_end.append(_on_request_end)
        self.on_request_exception.append(_on_request_exception)
        self.on_response_chunk_received.append(_on_response_chunk_received)
