"""Transport capability consumed by the query session.

A transport owns one physical connection. Every method returns immediately;
results arrive later as listener callbacks, always invoked on the event loop
thread that called :meth:`Transport.connect`.
"""

from __future__ import annotations

import abc
from typing import Callable, Optional, Protocol

from ..models import EndpointDescriptor, Row


class TransportListener(Protocol):
    def on_connect(self, error: Optional[BaseException]) -> None: ...

    def on_error(self, error: BaseException) -> None: ...

    def on_row(self, row: Row) -> None: ...

    def on_query_error(self, error: BaseException) -> None: ...

    def on_request_completed(self, error: Optional[BaseException], row_count: int) -> None: ...

    def on_end(self) -> None: ...


class Transport(abc.ABC):
    @abc.abstractmethod
    def connect(self, listener: TransportListener) -> None:
        """Start the handshake; reports through ``listener.on_connect``."""

    @abc.abstractmethod
    def submit_query(self, text: str) -> None:
        """Submit one query; rows then ``on_request_completed`` follow.

        May raise synchronously when the connection cannot accept a query.
        """

    @abc.abstractmethod
    def close(self) -> None:
        """Request close; ``listener.on_end`` fires once drained."""


TransportFactory = Callable[[EndpointDescriptor, str], Transport]
