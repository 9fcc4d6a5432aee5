from __future__ import annotations

import re

from .errors import ConfigError
from .models import EndpointDescriptor

_HOST_RE = re.compile(
    r"^(?=.{1,253}$)[A-Za-z0-9](?:[A-Za-z0-9-]{0,61}[A-Za-z0-9])?"
    r"(?:\.[A-Za-z0-9](?:[A-Za-z0-9-]{0,61}[A-Za-z0-9])?)*(?::\d{1,5})?$"
)


def ensure_endpoint_valid(endpoint: EndpointDescriptor) -> None:
    if not endpoint.host or not _HOST_RE.match(endpoint.host):
        raise ConfigError(f"Invalid endpoint host: {endpoint.host!r}")
    if not endpoint.database or not endpoint.database.strip():
        raise ConfigError("Endpoint database name is required")
    if endpoint.connect_timeout_seconds <= 0:
        raise ConfigError("connect_timeout_seconds must be greater than 0")
    if endpoint.request_timeout_seconds <= 0:
        raise ConfigError("request_timeout_seconds must be greater than 0")


def ensure_credential_present(credential: str | None) -> None:
    if not credential or not credential.strip():
        raise ConfigError("An access token is required")


def ensure_query_present(query_text: str | None) -> None:
    if not query_text or not query_text.strip():
        raise ConfigError("Query text is empty")
