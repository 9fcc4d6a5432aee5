"""Query session: one connection, one query, exactly one Outcome.

The transport reports connection, query and row events independently and
in no guaranteed order. The session folds them into an explicit state
variable plus two first-error-wins witnesses, and only builds the Outcome
once the connection has been closed:

    IDLE -> CONNECTING -> CONNECTED -> QUERYING -> COMPLETING -> CLOSED
                      \\-> CONNECT_FAILED --------------------> CLOSED

Outcome precedence at CLOSED: connection error, then query error, then
the accumulated rows (an empty row set is a valid success).
"""

from __future__ import annotations

import asyncio
import enum
import logging
import uuid
from typing import Callable, Optional

from .errors import ConfigError, ConnectError, QueryError
from .guardrails import ensure_credential_present, ensure_endpoint_valid, ensure_query_present
from .logging_utils import log_extra
from .models import EndpointDescriptor, Failure, FailureKind, Outcome, Row, Success
from .transport import Transport, TransportFactory

DEFAULT_CLOSE_GRACE_SECONDS = 10.0


class SessionState(enum.Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    CONNECT_FAILED = "connect_failed"
    CONNECTED = "connected"
    QUERYING = "querying"
    COMPLETING = "completing"
    CLOSED = "closed"


class ErrorWitness:
    """Holds the first error observed in one category."""

    def __init__(self) -> None:
        self._error: Optional[BaseException] = None

    @property
    def error(self) -> Optional[BaseException]:
        return self._error

    def record(self, error: BaseException) -> bool:
        if self._error is not None:
            return False
        self._error = error
        return True

    def __bool__(self) -> bool:
        return self._error is not None


def _message(error: BaseException) -> str:
    return str(error) or type(error).__name__


class QuerySession:
    def __init__(
        self,
        transport_factory: TransportFactory,
        request_id: str | None = None,
        on_complete: Callable[[Outcome], None] | None = None,
        close_grace_seconds: float = DEFAULT_CLOSE_GRACE_SECONDS,
    ) -> None:
        self._transport_factory = transport_factory
        self._request_id = request_id or str(uuid.uuid4())
        self._on_complete = on_complete
        self._close_grace_seconds = close_grace_seconds
        self._log = logging.getLogger(__name__)

        self._state = SessionState.IDLE
        self._transport: Transport | None = None
        self._query_text = ""
        self._connect_timeout = 0.0
        self._request_timeout = 0.0
        self._rows: list[Row] = []
        self._connection_error = ErrorWitness()
        self._query_error = ErrorWitness()
        self._close_requested = False
        self._timer: asyncio.TimerHandle | None = None
        self._done: asyncio.Future[Outcome] | None = None
        self._outcome: Outcome | None = None

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def request_id(self) -> str:
        return self._request_id

    async def run(
        self, endpoint: EndpointDescriptor, credential: str, query_text: str
    ) -> Outcome:
        if self._state is not SessionState.IDLE:
            raise RuntimeError("A query session can only be run once")

        try:
            ensure_endpoint_valid(endpoint)
            ensure_credential_present(credential)
            ensure_query_present(query_text)
            transport = self._transport_factory(endpoint, credential)
        except ConfigError as exc:
            self._log.warning(
                "Query session rejected before connecting",
                extra=log_extra(request_id=self._request_id, error_message=str(exc)),
            )
            self._state = SessionState.CLOSED
            return self._deliver(Failure(FailureKind.CONFIGURATION, _message(exc)))

        loop = asyncio.get_running_loop()
        self._done = loop.create_future()
        self._transport = transport
        self._connect_timeout = endpoint.connect_timeout_seconds
        self._request_timeout = endpoint.request_timeout_seconds
        self._query_text = query_text

        self._state = SessionState.CONNECTING
        self._arm_timer(endpoint.connect_timeout_seconds, self._on_connect_timeout)
        try:
            transport.connect(self)
        except Exception as exc:
            self._record_connection_error(exc)
            self._state = SessionState.CONNECT_FAILED
            self._request_close()
            self._finish()

        try:
            return await self._done
        except asyncio.CancelledError:
            if self._state is not SessionState.CLOSED:
                self._record_query_error(QueryError("Query session was cancelled"))
                self._request_close()
                self._finish()
            raise

    # -- transport listener ------------------------------------------------

    def on_connect(self, error: Optional[BaseException]) -> None:
        if self._state is SessionState.CLOSED:
            self._ignore("connect")
            return
        if self._state is not SessionState.CONNECTING:
            if error is not None:
                self._record_connection_error(error)
            return

        if error is not None:
            self._record_connection_error(error)
            self._state = SessionState.CONNECT_FAILED
            self._request_close()
            return

        self._state = SessionState.CONNECTED
        self._log.debug("Connected", extra=log_extra(request_id=self._request_id))
        self._submit()

    def on_error(self, error: BaseException) -> None:
        if self._state is SessionState.CLOSED:
            self._ignore("error")
            return
        self._record_connection_error(error)
        if self._state is SessionState.CONNECTING:
            self._state = SessionState.CONNECT_FAILED
        self._request_close()

    def on_row(self, row: Row) -> None:
        if self._state is not SessionState.QUERYING:
            self._ignore("row")
            return
        self._rows.append(row)

    def on_query_error(self, error: BaseException) -> None:
        if self._state is SessionState.CLOSED:
            self._ignore("query error")
            return
        self._record_query_error(error)

    def on_request_completed(self, error: Optional[BaseException], row_count: int) -> None:
        if self._state is SessionState.CLOSED:
            self._ignore("request completed")
            return
        if error is not None:
            self._record_query_error(error)
        if self._state is not SessionState.QUERYING:
            return

        self._state = SessionState.COMPLETING
        self._log.debug(
            "Request completed",
            extra=log_extra(request_id=self._request_id, row_count=row_count),
        )
        self._request_close()

    def on_end(self) -> None:
        if self._state is SessionState.CLOSED:
            self._ignore("end")
            return
        if not self._close_requested:
            self._record_connection_error(ConnectError("Connection closed unexpectedly"))
            self._request_close()
        self._finish()

    # -- internals ---------------------------------------------------------

    def _submit(self) -> None:
        if self._transport is None:
            return
        self._state = SessionState.QUERYING
        self._arm_timer(self._request_timeout, self._on_request_timeout)
        try:
            self._transport.submit_query(self._query_text)
        except Exception as exc:
            self._record_query_error(exc)
            self._request_close()
            self._finish()

    def _on_connect_timeout(self) -> None:
        self._timer = None
        if self._state is not SessionState.CONNECTING:
            return
        self._record_connection_error(
            ConnectError(
                f"Connection timed out after {self._connect_timeout:g}s"
            )
        )
        self._state = SessionState.CONNECT_FAILED
        self._request_close()

    def _on_request_timeout(self) -> None:
        self._timer = None
        if self._state is not SessionState.QUERYING:
            return
        self._record_query_error(
            QueryError(
                f"Request timed out after {self._request_timeout:g}s"
            )
        )
        self._state = SessionState.COMPLETING
        self._request_close()

    def _on_close_grace_expired(self) -> None:
        self._timer = None
        if self._state is SessionState.CLOSED:
            return
        self._log.warning(
            "Connection did not report closed in time; finishing session",
            extra=log_extra(request_id=self._request_id, grace_seconds=self._close_grace_seconds),
        )
        self._finish()

    def _request_close(self) -> None:
        if self._close_requested or self._transport is None:
            return
        self._close_requested = True
        self._arm_timer(self._close_grace_seconds, self._on_close_grace_expired)
        try:
            self._transport.close()
        except Exception as exc:
            self._log.warning(
                "Closing the connection raised",
                extra=log_extra(request_id=self._request_id, error_message=str(exc)),
            )
            self._finish()

    def _finish(self) -> None:
        if self._state is SessionState.CLOSED:
            return
        self._state = SessionState.CLOSED
        self._cancel_timer()
        outcome = self._resolve()
        self._deliver(outcome)

    def _resolve(self) -> Outcome:
        if self._connection_error.error is not None:
            return Failure(FailureKind.CONNECTION, _message(self._connection_error.error))
        if self._query_error.error is not None:
            return Failure(FailureKind.QUERY, _message(self._query_error.error))
        if not self._rows:
            self._log.warning(
                "Query executed successfully but returned no data",
                extra=log_extra(request_id=self._request_id),
            )
        return Success(tuple(self._rows))

    def _deliver(self, outcome: Outcome) -> Outcome:
        if self._outcome is not None:
            return self._outcome
        self._outcome = outcome
        if isinstance(outcome, Success):
            self._log.info(
                "Query session succeeded",
                extra=log_extra(request_id=self._request_id, row_count=len(outcome.rows)),
            )
        else:
            self._log.warning(
                "Query session failed",
                extra=log_extra(
                    request_id=self._request_id,
                    failure_kind=outcome.kind.value,
                    error_message=outcome.message,
                ),
            )
        if self._done is not None and not self._done.done():
            self._done.set_result(outcome)
        if self._on_complete is not None:
            self._on_complete(outcome)
        return outcome

    def _record_connection_error(self, error: BaseException) -> None:
        if self._connection_error.record(error):
            self._log.warning(
                "Connection failed",
                extra=log_extra(request_id=self._request_id, error_message=str(error)),
            )

    def _record_query_error(self, error: BaseException) -> None:
        if self._query_error.record(error):
            self._log.warning(
                "Query failed",
                extra=log_extra(request_id=self._request_id, error_message=str(error)),
            )

    def _arm_timer(self, delay: float, callback: Callable[[], None]) -> None:
        self._cancel_timer()
        self._timer = asyncio.get_running_loop().call_later(delay, callback)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _ignore(self, event: str) -> None:
        self._log.debug(
            "Ignoring %s event in state %s",
            event,
            self._state.value,
            extra=log_extra(request_id=self._request_id),
        )
