"""API routes for the telemetry proxy.

Exposes the liveness and readiness checks and the catch-all proxy route that
dispatches inbound requests through the route table to a backend.
"""
from __future__ import annotations

from logging import getLogger

import httpx
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, Response
from starlette.requests import ClientDisconnect

from telemetry_proxy.core.config import ProxyConfig
from telemetry_proxy.core.errors import MalformedRequest, NoRouteMatched, RequestBodyTooLarge, UpstreamUnreachable
from telemetry_proxy.metrics.prometheus import start_timer
from telemetry_proxy.services.proxy import escape_raw, forward
from telemetry_proxy.services.routing import match_route

log = getLogger("Telemetry-Proxy.API")

health_router = APIRouter()
proxy_router = APIRouter()

PROXY_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]

# nginx convention for "client closed request"
CLIENT_CLOSED_REQUEST = 499


@health_router.get("/health")
async def health():
    """Liveness check."""
    return {"status": "ok"}


@health_router.get("/ready")
async def ready():
    """Readiness check."""
    return {"status": "ok"}


def _request_path(request: Request) -> str:
    """Inbound path as received, still percent-encoded, without the query."""
    raw = request.scope.get("raw_path")
    if not raw:
        return request.url.path
    return escape_raw(raw.split(b"?", 1)[0])


@proxy_router.api_route("/{path:path}", methods=PROXY_METHODS, include_in_schema=False)
async def proxy(request: Request, path: str):
    """
    Forward a request to the backend selected by its path prefix:
      - match the route table (first segment-boundary match wins)
      - rewrite the prefix, overwrite auth and tenant headers
      - stream the upstream status, headers and body back
    """
    match = match_route(request.app.state.routes, _request_path(request))
    if match is None:
        raise NoRouteMatched(request.url.path)

    config: ProxyConfig = request.app.state.config
    client: httpx.AsyncClient = request.app.state.client
    timer = start_timer(match.route.backend.value, request.method)

    try:
        return await forward(request, match, config, client, on_complete=timer.observe)
    except UpstreamUnreachable as e:
        log.warning("upstream %s unreachable (%s) for %s %s", e.backend, e.reason, request.method, match.upstream_path)
        timer.observe(e.status_code)
        return JSONResponse({"error": "Bad Gateway" if e.status_code == 502 else "Gateway Timeout"},
                            status_code=e.status_code)
    except RequestBodyTooLarge as e:
        log.warning("request body over %d bytes rejected for %s", e.limit, match.route.backend.value)
        timer.observe(413)
        return JSONResponse({"error": "Payload Too Large"}, status_code=413)
    except MalformedRequest as e:
        log.warning("rejected %s %s: %s", request.method, match.upstream_path, e)
        timer.observe(400)
        return JSONResponse({"error": "Bad Request"}, status_code=400)
    except ClientDisconnect:
        log.info("client disconnected during %s %s", request.method, match.upstream_path)
        timer.observe(CLIENT_CLOSED_REQUEST)
        return Response(status_code=CLIENT_CLOSED_REQUEST)
    except Exception:
        timer.observe(500)
        raise
