"""Value types shared by the session, the transport and the HTTP layer."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any, Union

Row = dict[str, Any]


@dataclass(frozen=True)
class EndpointDescriptor:
    host: str
    database: str
    http_path: str = ""
    encrypt: bool = True
    connect_timeout_seconds: float = 30
    request_timeout_seconds: float = 30


class FailureKind(str, enum.Enum):
    CONFIGURATION = "ConfigurationError"
    AUTH_HEADER = "AuthHeaderError"
    CONNECTION = "ConnectionError"
    QUERY = "QueryError"

    @property
    def http_status(self) -> int:
        return 401 if self is FailureKind.AUTH_HEADER else 500


@dataclass(frozen=True)
class Success:
    rows: tuple[Row, ...] = ()

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Failure:
    kind: FailureKind
    message: str

    @property
    def ok(self) -> bool:
        return False


Outcome = Union[Success, Failure]
