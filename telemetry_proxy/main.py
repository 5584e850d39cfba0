"""Telemetry proxy FastAPI application.

Creates the proxy service, wires routes, configures logging, and exposes
health and Prometheus metrics endpoints.
"""

from __future__ import annotations

import logging
import sys
from contextlib import asynccontextmanager
from typing import Optional

import httpx
import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from telemetry_proxy.api.routes import health_router, proxy_router
from telemetry_proxy.core.config import ProxyConfig, load_config
from telemetry_proxy.core.errors import ConfigurationError, NoRouteMatched
from telemetry_proxy.core.logging import SERVICE_NAME, setup_logging
from telemetry_proxy.metrics.prometheus import metrics_router
from telemetry_proxy.services.routing import build_route_table

log = logging.getLogger(SERVICE_NAME)


def create_app(config: ProxyConfig, *, transport: Optional[httpx.AsyncBaseTransport] = None) -> FastAPI:
    """Build the proxy app for an already validated ``config``.

    ``transport`` replaces the network transport of the shared HTTP client.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan.

        Holds the shared httpx.AsyncClient (connection pool to every backend)
        for the duration of the app.
        """
        async with httpx.AsyncClient(
            timeout=httpx.Timeout(config.request_timeout_s),
            follow_redirects=False,
            transport=transport,
        ) as client:
            app.state.client = client
            yield

    app = FastAPI(title="Telemetry Proxy", version="0.1.0", lifespan=lifespan)
    app.state.config = config
    app.state.routes = build_route_table()

    @app.exception_handler(NoRouteMatched)
    async def no_route(_: Request, exc: NoRouteMatched):
        return JSONResponse({"detail": "No route for path"}, status_code=404)

    app.include_router(health_router)
    app.include_router(metrics_router)
    # Catch-all; must stay last
    app.include_router(proxy_router)
    return app


def main() -> None:
    """Load configuration and serve the proxy until interrupted."""
    setup_logging()
    try:
        config = load_config()
    except ConfigurationError as e:
        log.error("%s", e)
        sys.exit(1)
    log.info("listening on %s:%d", config.host, config.port)
    uvicorn.run(create_app(config), host=config.host, port=config.port)
