"""Request-scoped helpers shared by the HTTP routes and MCP tools."""

import contextvars
import uuid
from typing import Any

from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from ..errors import AuthHeaderError, ConfigError, ConnectError, QueryError
from ..models import Failure, FailureKind, Outcome, Row

request_headers_context: contextvars.ContextVar[dict[str, Any]] = contextvars.ContextVar(
    "request_headers", default={}
)


class HeaderStore:
    """Context-local store for the current request's headers."""

    def set(self, headers: dict[str, Any]) -> None:
        request_headers_context.set(headers)

    def get(self) -> dict[str, Any]:
        return request_headers_context.get({})


header_store = HeaderStore()

_MESSAGE_PREFIX = {
    FailureKind.CONFIGURATION: "Server configuration error: ",
    FailureKind.CONNECTION: "Failed to connect to the tabular server: ",
    FailureKind.QUERY: "Query execution failed: ",
}

_FAILURE_ERRORS = {
    FailureKind.AUTH_HEADER: AuthHeaderError,
    FailureKind.CONFIGURATION: ConfigError,
    FailureKind.CONNECTION: ConnectError,
    FailureKind.QUERY: QueryError,
}


def new_request_id(value: str | None = None) -> str:
    """Generate a unique request ID for tracing."""
    return value or str(uuid.uuid4())


def failure_message(failure: Failure) -> str:
    return _MESSAGE_PREFIX.get(failure.kind, "") + failure.message


def outcome_response(outcome: Outcome) -> JSONResponse:
    if isinstance(outcome, Failure):
        return JSONResponse(
            {"message": failure_message(outcome)}, status_code=outcome.kind.http_status
        )
    return JSONResponse(jsonable_encoder(list(outcome.rows)))


def rows_or_raise(outcome: Outcome) -> tuple[Row, ...]:
    if isinstance(outcome, Failure):
        error_cls = _FAILURE_ERRORS.get(outcome.kind, RuntimeError)
        raise error_cls(failure_message(outcome))
    return outcome.rows
