from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

import pytest

from tabular_gateway.models import EndpointDescriptor, Row
from tabular_gateway.transport import Transport, TransportListener


@dataclass
class Script:
    """What a scripted transport does when the session drives it.

    ``submit_events`` are (listener method, args) pairs emitted after the
    query is submitted; when left as None they are derived from ``rows``
    and ``completion_error``.
    """

    connect_error: Optional[BaseException] = None
    connect_raises: Optional[BaseException] = None
    auto_connect: bool = True
    rows: list[Row] = field(default_factory=list)
    completion_error: Optional[BaseException] = None
    submit_events: Optional[list[tuple[str, tuple[Any, ...]]]] = None
    submit_raises: Optional[BaseException] = None
    end_on_close: bool = True


class ScriptedTransport(Transport):
    def __init__(self, endpoint: EndpointDescriptor, credential: str, script: Script) -> None:
        self.endpoint = endpoint
        self.credential = credential
        self.script = script
        self.calls: list[Any] = []
        self.listener: TransportListener | None = None

    def later(self, method: str, *args: Any) -> None:
        assert self.listener is not None
        asyncio.get_running_loop().call_soon(getattr(self.listener, method), *args)

    def connect(self, listener: TransportListener) -> None:
        self.calls.append("connect")
        self.listener = listener
        if self.script.connect_raises is not None:
            raise self.script.connect_raises
        if self.script.auto_connect:
            self.later("on_connect", self.script.connect_error)

    def submit_query(self, text: str) -> None:
        self.calls.append(("submit", text))
        if self.script.submit_raises is not None:
            raise self.script.submit_raises
        events = self.script.submit_events
        if events is None:
            events = [("on_row", (row,)) for row in self.script.rows]
            events.append(
                ("on_request_completed", (self.script.completion_error, len(self.script.rows)))
            )
        for method, args in events:
            self.later(method, *args)

    def close(self) -> None:
        self.calls.append("close")
        if self.script.end_on_close:
            self.later("on_end")

    @property
    def submitted(self) -> bool:
        return any(isinstance(call, tuple) and call[0] == "submit" for call in self.calls)


class TransportRecorder:
    """Transport factory that remembers every transport it built."""

    def __init__(self, script: Script | None = None) -> None:
        self.script = script or Script()
        self.transports: list[ScriptedTransport] = []

    def __call__(self, endpoint: EndpointDescriptor, credential: str) -> Transport:
        transport = ScriptedTransport(endpoint, credential, self.script)
        self.transports.append(transport)
        return transport

    @property
    def transport(self) -> ScriptedTransport:
        assert self.transports, "no transport was created"
        return self.transports[0]


@pytest.fixture
def endpoint() -> EndpointDescriptor:
    return EndpointDescriptor(host="h", database="d", http_path="/sql/1.0/warehouses/w")


@pytest.fixture
def recorder_for() -> Callable[..., TransportRecorder]:
    def build(**script_kwargs: Any) -> TransportRecorder:
        return TransportRecorder(Script(**script_kwargs))

    return build
