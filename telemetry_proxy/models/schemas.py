"""Pydantic models used by the telemetry proxy routing layer."""
from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict


class BackendKind(str, Enum):
    """Observability backends the proxy fronts.

    The value doubles as the metrics label and the environment variable stem.
    """
    PROMETHEUS = "prometheus"  # metrics
    LOKI = "loki"  # logs
    TEMPO = "tempo"  # traces
    OTLP = "otlp"  # generic telemetry


class RouteDescriptor(BaseModel):
    """Static binding of an inbound path prefix to a backend."""

    model_config = ConfigDict(frozen=True)

    path_prefix: str
    backend: BackendKind
    rewrite_prefix: str = ""


class RouteMatch(BaseModel):
    """Result of matching an inbound path against the route table."""

    model_config = ConfigDict(frozen=True)

    route: RouteDescriptor
    suffix: str

    @property
    def upstream_path(self) -> str:
        """Outbound path: rewrite prefix followed by the unmatched suffix."""
        path = f"{self.route.rewrite_prefix}{self.suffix}"
        return path or "/"
