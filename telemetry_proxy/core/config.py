"""Configuration for the telemetry proxy.

Provides strongly-typed, immutable settings using Pydantic and a loader from
environment variables. Every backend needs a URL and an org id; the access
token is shared by all backends.
"""

from __future__ import annotations

import os
from typing import Mapping, Optional

from pydantic import (
    AnyHttpUrl,
    BaseModel,
    ConfigDict,
    Field,
    SecretStr,
    ValidationError,
    field_validator,
)

from telemetry_proxy.core.errors import ConfigurationError
from telemetry_proxy.models.schemas import BackendKind

DEFAULT_PORT = 8085
DEFAULT_REQUEST_TIMEOUT_S = 30.0
DEFAULT_MAX_REQUEST_BODY_BYTES = 50 * 1024 * 1024
ENV_PREFIX = "GRAFANA_CLOUD"


class BackendConfig(BaseModel):
    """Connection and identity settings for one backend."""

    model_config = ConfigDict(frozen=True)

    base_url: AnyHttpUrl
    org_id: str = Field(min_length=1)
    tenant_id: Optional[str] = None

    @field_validator("tenant_id")
    @classmethod
    def _empty_tenant_is_absent(cls, v: Optional[str]) -> Optional[str]:
        return v or None

    @property
    def origin(self) -> str:
        """Base URL as a string without a trailing slash."""
        return str(self.base_url).rstrip("/")


class Upstreams(BaseModel):
    """One BackendConfig per backend kind."""

    model_config = ConfigDict(frozen=True)

    prometheus: BackendConfig
    loki: BackendConfig
    tempo: BackendConfig
    otlp: BackendConfig

    def for_kind(self, kind: BackendKind) -> BackendConfig:
        return getattr(self, kind.value)


class ProxyConfig(BaseModel):
    """Process-wide proxy settings, created once at startup."""

    model_config = ConfigDict(frozen=True)

    upstreams: Upstreams
    access_token: SecretStr
    port: int = Field(default=DEFAULT_PORT, gt=0, le=65535)
    host: str = "0.0.0.0"
    request_timeout_s: float = Field(default=DEFAULT_REQUEST_TIMEOUT_S, gt=0)
    max_request_body_bytes: int = Field(default=DEFAULT_MAX_REQUEST_BODY_BYTES, gt=0)

    @field_validator("access_token")
    @classmethod
    def _token_not_empty(cls, v: SecretStr) -> SecretStr:
        if not v.get_secret_value():
            raise ValueError("access token must not be empty")
        return v


def _require(environ: Mapping[str, str], key: str) -> str:
    value = environ.get(key)
    if not value:
        raise ConfigurationError(f"Missing required environment variable: {key}")
    return value


def _backend_from_env(environ: Mapping[str, str], kind: BackendKind) -> dict:
    prefix = f"{ENV_PREFIX}_{kind.value.upper()}"
    return {
        "base_url": _require(environ, f"{prefix}_URL"),
        "org_id": _require(environ, f"{prefix}_ORG_ID"),
        "tenant_id": environ.get(f"{prefix}_TENANT_ID") or None,
    }


def _describe(e: ValidationError) -> str:
    parts = []
    for err in e.errors():
        loc = ".".join(str(p) for p in err["loc"])
        parts.append(f"{loc}: {err['msg']}")
    return "; ".join(parts)


def load_config(environ: Optional[Mapping[str, str]] = None) -> ProxyConfig:
    """Load a ProxyConfig from environment variables.

    Raises ConfigurationError naming the first missing variable, or listing
    every malformed field.
    """
    env = os.environ if environ is None else environ
    raw = {
        "upstreams": {kind.value: _backend_from_env(env, kind) for kind in BackendKind},
        "access_token": _require(env, f"{ENV_PREFIX}_ACCESS_TOKEN"),
        "port": env.get("PORT") or DEFAULT_PORT,
        "host": env.get("HOST") or "0.0.0.0",
        "request_timeout_s": env.get("REQUEST_TIMEOUT_S") or DEFAULT_REQUEST_TIMEOUT_S,
        "max_request_body_bytes": env.get("MAX_REQUEST_BODY_BYTES") or DEFAULT_MAX_REQUEST_BODY_BYTES,
    }
    try:
        return ProxyConfig.model_validate(raw)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {_describe(e)}") from e
