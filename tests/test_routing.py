# tests/test_routing.py
import pytest

from telemetry_proxy.core.config import BackendConfig
from telemetry_proxy.models.schemas import BackendKind
from telemetry_proxy.services.routing import build_route_table, match_route
from telemetry_proxy.services.proxy import escape_raw, upstream_url

ROUTES = build_route_table()


def test_route_table_order_and_bindings():
    assert [(r.path_prefix, r.backend, r.rewrite_prefix) for r in ROUTES] == [
        ("/api/prom", BackendKind.PROMETHEUS, "/api/prom"),
        ("/prometheus", BackendKind.PROMETHEUS, ""),
        ("/otlp", BackendKind.OTLP, "/otlp"),
        ("/loki", BackendKind.LOKI, "/loki"),
        ("/tempo", BackendKind.TEMPO, "/tempo"),
    ]


@pytest.mark.parametrize("path,backend,upstream_path", [
    ("/api/prom/push", BackendKind.PROMETHEUS, "/api/prom/push"),
    ("/prometheus/api/v1/query", BackendKind.PROMETHEUS, "/api/v1/query"),
    ("/otlp/v1/traces", BackendKind.OTLP, "/otlp/v1/traces"),
    ("/loki/loki/api/v1/push", BackendKind.LOKI, "/loki/loki/api/v1/push"),
    ("/tempo/api/traces/123", BackendKind.TEMPO, "/tempo/api/traces/123"),
])
def test_match_rewrites_prefix(path, backend, upstream_path):
    match = match_route(ROUTES, path)
    assert match is not None
    assert match.route.backend == backend
    assert match.upstream_path == upstream_path


def test_match_requires_segment_boundary():
    assert match_route(ROUTES, "/prometheusx/api/v1/query") is None
    assert match_route(ROUTES, "/lokis/push") is None
    assert match_route(ROUTES, "/api/prometheus") is None


def test_bare_prefix_matches():
    match = match_route(ROUTES, "/tempo")
    assert match is not None
    assert match.suffix == ""
    assert match.upstream_path == "/tempo"


def test_empty_rewrite_of_bare_prefix_is_root():
    match = match_route(ROUTES, "/prometheus")
    assert match is not None
    assert match.upstream_path == "/"


@pytest.mark.parametrize("path", ["/", "/metrics-x", "/grafana/api", ""])
def test_unmatched_paths(path):
    assert match_route(ROUTES, path) is None


def test_upstream_url_keeps_query_and_base_path():
    backend = BackendConfig(base_url="https://prom.example.com/api/prom", org_id="1")
    match = match_route(ROUTES, "/prometheus/api/v1/query")
    assert upstream_url(backend, match, "query=up") == "https://prom.example.com/api/prom/api/v1/query?query=up"


def test_upstream_url_strips_trailing_slash_from_base():
    backend = BackendConfig(base_url="http://loki.example.com/", org_id="1")
    match = match_route(ROUTES, "/loki/api/v1/push")
    assert upstream_url(backend, match) == "http://loki.example.com/loki/api/v1/push"


def test_escape_raw_keeps_original_bytes():
    assert escape_raw(b"/loki/caf\xe9") == "/loki/caf%E9"
    assert escape_raw(b"/loki/caf%C3%A9") == "/loki/caf%C3%A9"
    assert escape_raw(b"query=rate(up[5m])&x=a%20b") == "query=rate(up[5m])&x=a%20b"
    assert escape_raw(b"a b") == "a%20b"
