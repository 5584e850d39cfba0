"""Reverse-proxy forwarding for the telemetry proxy.

Forwards a matched request to its backend with the route prefix rewritten and
the authorization and tenant headers overwritten, then streams the upstream
response back unchanged.
"""
from __future__ import annotations

import logging
from typing import AsyncIterator, Callable, Iterable, List, Mapping, Optional, Tuple
from urllib.parse import quote_from_bytes

import anyio
import httpx
from fastapi import Request, Response
from fastapi.responses import StreamingResponse
from starlette.background import BackgroundTask
from starlette.requests import ClientDisconnect

from telemetry_proxy.core.config import BackendConfig, ProxyConfig
from telemetry_proxy.core.errors import MalformedRequest, RequestBodyTooLarge, UpstreamUnreachable
from telemetry_proxy.core.logging import redact_headers
from telemetry_proxy.models.schemas import RouteMatch
from telemetry_proxy.services.auth import AUTH_HEADER, TENANT_HEADER, encode_credentials, resolve_tenant

log = logging.getLogger("Telemetry-Proxy.proxy")

Headers = List[Tuple[str, str]]

# RFC 9110 hop-by-hop headers (must not be forwarded)
HOP_BY_HOP = {
    "connection", "keep-alive", "proxy-authenticate", "proxy-authorization",
    "te", "trailers", "transfer-encoding", "upgrade",
}

# Printable ASCII passes through untouched; anything else is escaped byte by byte
_RAW_SAFE = "".join(chr(b) for b in range(0x21, 0x7F))


def escape_raw(raw: bytes) -> str:
    """Text form of a raw path or query that keeps every original byte.

    Existing percent-escapes are left alone and non-ASCII bytes become
    ``%XX`` of the byte itself, so the backend decodes the same bytes.
    """
    return quote_from_bytes(raw, safe=_RAW_SAFE)


def strip_hop_headers(headers: Iterable[Tuple[str, str]]) -> Headers:
    return [(k, v) for k, v in headers if k.lower() not in HOP_BY_HOP]


def build_upstream_headers(inbound: Iterable[Tuple[str, str]], overrides: Mapping[str, str]) -> Headers:
    """Copy inbound headers, then apply ``overrides``.

    Order and repeated entries of the copied headers are preserved. Each
    overridden name appears exactly once, whatever the caller sent. ``host``
    is left for the HTTP client to set for the backend origin.
    """
    skip = {k.lower() for k in overrides} | {"host"}
    headers = [(k, v) for k, v in strip_hop_headers(inbound) if k.lower() not in skip]
    headers.extend(overrides.items())
    return headers


def upstream_url(backend: BackendConfig, match: RouteMatch, query: str = "") -> str:
    """Absolute backend URL for a matched route, with the query kept verbatim."""
    url = f"{backend.origin}{match.upstream_path}"
    return f"{url}?{query}" if query else url


def _declared_length(req: Request) -> Optional[int]:
    value = req.headers.get("content-length")
    if value is None:
        return None
    if not value.strip().isdigit():
        raise MalformedRequest(f"invalid content-length {value!r}")
    return int(value)


def _has_body(req: Request) -> bool:
    return bool(_declared_length(req)) or "transfer-encoding" in req.headers


async def _limited_body(req: Request, limit: int, done: anyio.Event) -> AsyncIterator[bytes]:
    received = 0
    async for chunk in req.stream():
        received += len(chunk)
        if received > limit:
            raise RequestBodyTooLarge(limit)
        yield chunk
    done.set()


async def _wait_for_disconnect(req: Request, body_done: anyio.Event) -> None:
    # receive() belongs to the body stream until it is fully read
    await body_done.wait()
    while True:
        message = await req.receive()
        if message["type"] == "http.disconnect":
            return


async def _send_until_disconnect(
    client: httpx.AsyncClient,
    upstream_request: httpx.Request,
    req: Request,
    body_done: anyio.Event,
) -> httpx.Response:
    """Send ``upstream_request``, abandoning it if the caller goes away first.

    Raises ClientDisconnect when the caller disconnects before the upstream
    response headers arrive; the in-flight upstream call is cancelled.
    """
    response: Optional[httpx.Response] = None
    error: Optional[Exception] = None

    async with anyio.create_task_group() as tg:
        async def send() -> None:
            nonlocal response, error
            try:
                response = await client.send(upstream_request, stream=True)
            except Exception as e:
                error = e
            finally:
                tg.cancel_scope.cancel()

        tg.start_soon(send)
        await _wait_for_disconnect(req, body_done)
        tg.cancel_scope.cancel()

    if error is not None:
        raise error
    if response is None:
        raise ClientDisconnect()
    return response


class UpstreamStream:
    """Raw upstream body that closes its response exactly once.

    ``on_close`` receives the upstream status code when the stream is
    exhausted or closed early, and 502 when the upstream fails mid-body.
    """

    def __init__(self, response: httpx.Response, on_close: Callable[[int], None]):
        self._response = response
        self._on_close = on_close
        self._closed = False

    async def __aiter__(self):
        try:
            async for chunk in self._response.aiter_raw():
                yield chunk
        except httpx.TransportError as e:
            log.warning("upstream stream interrupted: %s", type(e).__name__)
            await self.aclose(status=502)
            # Abort the caller's connection rather than end the body cleanly
            raise
        finally:
            await self.aclose()

    async def aclose(self, status: Optional[int] = None) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            await self._response.aclose()
        finally:
            self._on_close(status or self._response.status_code)


async def forward(
    req: Request,
    match: RouteMatch,
    config: ProxyConfig,
    client: httpx.AsyncClient,
    *,
    on_complete: Callable[[int], None] = lambda status: None,
) -> Response:
    """Forward ``req`` to the backend of ``match`` and stream the response back.

    Raises UpstreamUnreachable on transport failures, RequestBodyTooLarge
    when the body exceeds ``config.max_request_body_bytes``, MalformedRequest
    for an unparseable content-length and ClientDisconnect when the caller
    leaves before the upstream answers.
    """
    kind = match.route.backend.value
    backend = config.upstreams.for_kind(match.route.backend)
    query = escape_raw(req.scope.get("query_string", b""))
    target_url = upstream_url(backend, match, query)

    inbound = [(k.decode("latin-1"), v.decode("latin-1")) for k, v in req.headers.raw]
    headers = build_upstream_headers(inbound, {
        AUTH_HEADER: encode_credentials(backend, config.access_token.get_secret_value()),
        TENANT_HEADER: resolve_tenant(backend),
    })

    limit = config.max_request_body_bytes
    declared = _declared_length(req)
    if declared is not None and declared > limit:
        raise RequestBodyTooLarge(limit)
    body_done = anyio.Event()
    if _has_body(req):
        body = _limited_body(req, limit, body_done)
    else:
        body = None
        body_done.set()

    if log.isEnabledFor(logging.DEBUG):
        log.debug("%s %s -> %s%s headers=%s", req.method, kind, backend.origin,
                  match.upstream_path, redact_headers(headers))

    upstream_request = client.build_request(req.method, target_url, headers=headers, content=body)
    try:
        upstream_response = await _send_until_disconnect(client, upstream_request, req, body_done)
    except httpx.TimeoutException as e:
        raise UpstreamUnreachable(kind, 504, "timeout") from e
    except httpx.TransportError as e:
        raise UpstreamUnreachable(kind, 502, type(e).__name__) from e

    log.info("proxy %s %s -> %s %s", req.method, kind, match.upstream_path, upstream_response.status_code)

    stream = UpstreamStream(upstream_response, on_complete)
    response = StreamingResponse(
        stream,
        status_code=upstream_response.status_code,
        background=BackgroundTask(stream.aclose),
    )
    response.raw_headers = [
        (k.lower(), v) for k, v in upstream_response.headers.raw
        if k.decode("latin-1").lower() not in HOP_BY_HOP
    ]
    return response
