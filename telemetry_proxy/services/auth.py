"""Per-backend tenant and credential derivation.

Both values are recomputed for each forwarded request from the immutable
configuration. The credential value is a secret and must not be logged.
"""
from __future__ import annotations

import base64

from telemetry_proxy.core.config import BackendConfig

TENANT_HEADER = "x-scope-orgid"
AUTH_HEADER = "authorization"


def resolve_tenant(backend: BackendConfig) -> str:
    """Tenant identity sent to the backend: explicit tenant id, else org id."""
    return backend.tenant_id or backend.org_id


def encode_credentials(backend: BackendConfig, access_token: str) -> str:
    """Basic auth value for ``org_id:access_token``."""
    raw = f"{backend.org_id}:{access_token}".encode("utf-8")
    return "Basic " + base64.b64encode(raw).decode("ascii")
