from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

import yaml

from .errors import ConfigError
from .models import EndpointDescriptor


@dataclass
class QueryConfig:
    statement: str


@dataclass
class SessionConfig:
    close_grace_seconds: float = 10


@dataclass
class ObservabilityConfig:
    log_level: str = "info"


@dataclass
class AppConfig:
    endpoint: Mapping[str, Any]
    query: QueryConfig
    session: SessionConfig = field(default_factory=SessionConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)


def _resolve_env(value: Any, env: Mapping[str, str]) -> Any:
    if isinstance(value, str):
        expanded = os.path.expandvars(value)
        if expanded.startswith("${") and expanded.endswith("}"):
            key = expanded[2:-1]
            if key not in env:
                raise ConfigError(f"Environment variable {key} is required but not set")
            return env[key]
        return expanded
    if isinstance(value, list):
        return [_resolve_env(v, env) for v in value]
    if isinstance(value, dict):
        return {k: _resolve_env(v, env) for k, v in value.items()}
    return value


def _positive_seconds(value: Any, field_name: str) -> float:
    try:
        seconds = float(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{field_name} must be a number of seconds") from exc
    if seconds <= 0:
        raise ConfigError(f"{field_name} must be greater than 0")
    return seconds


_TRUE_STRINGS = {"true", "yes", "on", "1"}
_FALSE_STRINGS = {"false", "no", "off", "0"}


def _parse_bool(value: Any, field_name: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        normalized = value.strip().lower()
        if normalized in _TRUE_STRINGS:
            return True
        if normalized in _FALSE_STRINGS:
            return False
    raise ConfigError(f"{field_name} must be true or false, got {value!r}")


def _load_statement(query_raw: Mapping[str, Any], base_dir: Path) -> str:
    statement = query_raw.get("statement")
    statement_file = query_raw.get("statement_file")
    if statement and statement_file:
        raise ConfigError("Set either query.statement or query.statement_file, not both")
    if statement_file:
        path = Path(statement_file)
        if not path.is_absolute():
            path = base_dir / path
        try:
            statement = path.read_text()
        except OSError as exc:
            raise ConfigError(f"Cannot read query statement file {path}: {exc}") from exc
    if not statement or not str(statement).strip():
        raise ConfigError("A query statement is required")
    return str(statement)


def build_endpoint(raw: Mapping[str, Any]) -> EndpointDescriptor:
    """Turn the ``endpoint`` config section into a descriptor.

    Called once per request, so a broken endpoint surfaces as a
    configuration failure on that request rather than at startup.
    """
    host = raw.get("host")
    database = raw.get("database")
    if not host or not database:
        raise ConfigError("Endpoint host and database are required")

    return EndpointDescriptor(
        host=str(host).strip(),
        database=str(database).strip(),
        http_path=str(raw.get("http_path") or "").strip(),
        encrypt=_parse_bool(raw.get("encrypt", True), "encrypt"),
        connect_timeout_seconds=_positive_seconds(
            raw.get("connect_timeout_seconds", 30), "connect_timeout_seconds"
        ),
        request_timeout_seconds=_positive_seconds(
            raw.get("request_timeout_seconds", 30), "request_timeout_seconds"
        ),
    )


def load_config(path: str | Path, env: Mapping[str, str] | None = None) -> AppConfig:
    env = env or os.environ
    path = Path(path)
    try:
        raw = yaml.safe_load(path.read_text()) or {}
    except OSError as exc:
        raise ConfigError(f"Cannot read config file {path}: {exc}") from exc
    resolved = _resolve_env(raw, env)

    try:
        endpoint_raw = resolved["endpoint"]
        query_raw = resolved["query"]
    except KeyError as exc:
        raise ConfigError(f"Missing config section: {exc.args[0]}") from exc
    session_raw = resolved.get("session", {})
    observability_raw = resolved.get("observability", {})

    if not isinstance(endpoint_raw, dict):
        raise ConfigError("The endpoint section must be a mapping")

    session = SessionConfig(
        close_grace_seconds=_positive_seconds(
            session_raw.get("close_grace_seconds", 10), "close_grace_seconds"
        ),
    )
    observability = ObservabilityConfig(
        log_level=str(observability_raw.get("log_level", "info")),
    )

    return AppConfig(
        endpoint=endpoint_raw,
        query=QueryConfig(statement=_load_statement(query_raw, path.parent)),
        session=session,
        observability=observability,
    )
