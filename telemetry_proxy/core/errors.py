"""Error types raised by the telemetry proxy."""
from __future__ import annotations


class ConfigurationError(RuntimeError):
    """A required configuration value is missing or malformed."""


class NoRouteMatched(LookupError):
    """The inbound path matches no configured route."""

    def __init__(self, path: str):
        super().__init__(f"No route for path {path!r}")
        self.path = path


class UpstreamUnreachable(Exception):
    """Transport-level failure talking to a backend.

    ``status_code`` is the gateway status synthesized for the caller.
    """

    def __init__(self, backend: str, status_code: int, reason: str):
        super().__init__(f"{backend} unreachable: {reason}")
        self.backend = backend
        self.status_code = status_code
        self.reason = reason


class RequestBodyTooLarge(Exception):
    """Inbound request body exceeds the configured limit."""

    def __init__(self, limit: int):
        super().__init__(f"Request body exceeds {limit} bytes")
        self.limit = limit


class MalformedRequest(ValueError):
    """Inbound request framing the proxy cannot forward faithfully."""
