"""Static route table mapping inbound path prefixes to backends."""
from __future__ import annotations

from typing import Optional, Sequence

from telemetry_proxy.models.schemas import BackendKind, RouteDescriptor, RouteMatch

# Evaluated top to bottom; first match wins.
ROUTES: tuple[RouteDescriptor, ...] = (
    RouteDescriptor(path_prefix="/api/prom", backend=BackendKind.PROMETHEUS, rewrite_prefix="/api/prom"),
    RouteDescriptor(path_prefix="/prometheus", backend=BackendKind.PROMETHEUS, rewrite_prefix=""),
    RouteDescriptor(path_prefix="/otlp", backend=BackendKind.OTLP, rewrite_prefix="/otlp"),
    RouteDescriptor(path_prefix="/loki", backend=BackendKind.LOKI, rewrite_prefix="/loki"),
    RouteDescriptor(path_prefix="/tempo", backend=BackendKind.TEMPO, rewrite_prefix="/tempo"),
)


def build_route_table() -> tuple[RouteDescriptor, ...]:
    """Return the fixed, ordered route table."""
    return ROUTES


def _prefix_matches(prefix: str, path: str) -> bool:
    # Prefix must end on a path segment boundary
    if not path.startswith(prefix):
        return False
    return len(path) == len(prefix) or path[len(prefix)] == "/"


def match_route(routes: Sequence[RouteDescriptor], path: str) -> Optional[RouteMatch]:
    """Find the first route whose prefix matches ``path``.

    Returns the route and the remaining suffix, or None when nothing matches.
    """
    for route in routes:
        if _prefix_matches(route.path_prefix, path):
            return RouteMatch(route=route, suffix=path[len(route.path_prefix):])
    return None
