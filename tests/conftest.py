# tests/conftest.py
import json
from contextlib import asynccontextmanager

import httpx
import pytest

from telemetry_proxy.core.config import BackendConfig, ProxyConfig, Upstreams
from telemetry_proxy.main import create_app

ACCESS_TOKEN = "test-access-token"


@pytest.fixture
def anyio_backend():
    return "asyncio"


def make_config(base_url: str = "http://backend.local", **overrides) -> ProxyConfig:
    """Proxy config pointing every backend at ``base_url``."""
    upstreams = Upstreams(
        prometheus=BackendConfig(base_url=base_url, org_id="111", tenant_id="prom-tenant"),
        loki=BackendConfig(base_url=base_url, org_id="222"),
        tempo=BackendConfig(base_url=base_url, org_id="333"),
        otlp=BackendConfig(base_url=base_url, org_id="444"),
    )
    return ProxyConfig(upstreams=upstreams, access_token=ACCESS_TOKEN, **overrides)


class RecordingUpstream:
    """httpx.MockTransport handler that records requests and replies with a canned response."""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.status_code = 200
        self.json = {"success": True}
        self.content = None
        self.headers = {}
        self.stream = None
        self.error = None

    def reply(self, status_code: int, json=None, content=None, headers=None, stream=None):
        self.status_code = status_code
        self.json = json
        self.content = content
        self.headers = headers or {}
        self.stream = stream

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        headers = dict(self.headers)
        if self.stream is not None:
            return httpx.Response(self.status_code, headers=headers, stream=self.stream)
        if self.content is not None:
            body = self.content
        elif self.json is not None:
            body = json.dumps(self.json).encode()
            headers.setdefault("content-type", "application/json")
        else:
            body = b""
        headers.setdefault("content-length", str(len(body)))
        # An unread stream, as a real transport would hand back
        return httpx.Response(self.status_code, headers=headers, stream=httpx.ByteStream(body))

    @property
    def last(self) -> httpx.Request:
        return self.requests[-1]


@pytest.fixture
def upstream() -> RecordingUpstream:
    return RecordingUpstream()


@asynccontextmanager
async def proxy_client(config: ProxyConfig, handler):
    """Run the proxy app in-process with its backend calls served by ``handler``."""
    app = create_app(config, transport=httpx.MockTransport(handler))
    async with app.router.lifespan_context(app):
        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport, base_url="http://proxy.local") as client:
            yield client
