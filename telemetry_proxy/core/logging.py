"""Logging configuration utilities for the telemetry proxy."""
import logging
import os
from typing import Iterable, List, Tuple

SERVICE_NAME = "Telemetry-Proxy"

# Header values that must never reach a log line
REDACTED_HEADERS = {"authorization", "x-scope-orgid", "proxy-authorization", "cookie"}


def setup_logging() -> None:
    """Configure root logging based on the LOG_LEVEL environment variable."""
    level = os.getenv("LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s - %(message)s",
    )


def redact_headers(headers: Iterable[Tuple[str, str]]) -> List[Tuple[str, str]]:
    """Return header pairs with sensitive values masked, safe for logging."""
    return [
        (name, "[REDACTED]" if name.lower() in REDACTED_HEADERS else value)
        for name, value in headers
    ]
