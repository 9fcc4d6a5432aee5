from __future__ import annotations

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any

import databricks.sql
from databricks.sql.exc import Error as DatabricksError

from ..errors import ConfigError, QueryError
from ..models import EndpointDescriptor
from .base import Transport, TransportListener

_DEFAULT_FETCH_SIZE = 1000


class WarehouseTransport(Transport):
    """SQL warehouse connection driven on a private worker thread.

    The driver is blocking, so each operation runs on a single-thread
    executor (which also keeps them in submission order) and reports back
    to the loop with ``call_soon_threadsafe``.
    """

    def __init__(
        self,
        endpoint: EndpointDescriptor,
        access_token: str,
        fetch_size: int = _DEFAULT_FETCH_SIZE,
    ) -> None:
        if not endpoint.encrypt:
            raise ConfigError("The SQL warehouse driver only supports encrypted connections")
        if not endpoint.http_path:
            raise ConfigError("Endpoint http_path is required for SQL warehouse connections")
        self._endpoint = endpoint
        self._access_token = access_token
        self._fetch_size = fetch_size
        self._log = logging.getLogger(__name__)
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="warehouse-transport")
        self._loop: asyncio.AbstractEventLoop | None = None
        self._listener: TransportListener | None = None
        self._connection: Any = None
        self._cursor: Any = None
        self._submitted = False
        self._closing = False

    def connect(self, listener: TransportListener) -> None:
        self._listener = listener
        self._loop = asyncio.get_running_loop()
        self._executor.submit(self._open)

    def submit_query(self, text: str) -> None:
        if self._connection is None or self._closing:
            raise QueryError("Connection is not open")
        if self._submitted:
            raise QueryError("A query was already submitted on this connection")
        self._submitted = True
        self._executor.submit(self._execute, text)

    def close(self) -> None:
        if self._closing:
            return
        self._closing = True
        self._cancel_running_statement()
        self._executor.submit(self._shutdown)
        self._executor.shutdown(wait=False)

    def _cancel_running_statement(self) -> None:
        # safe from the loop thread; unblocks a running _execute
        cursor = self._cursor
        if cursor is None:
            return
        try:
            cursor.cancel()
        except Exception as exc:
            self._log.warning("Cancelling the running statement failed: %s", exc)

    def _emit(self, callback_name: str, *args: Any) -> None:
        if self._loop is None or self._listener is None:
            return
        callback = getattr(self._listener, callback_name)
        try:
            self._loop.call_soon_threadsafe(callback, *args)
        except RuntimeError:
            self._log.debug("Event loop closed, dropping %s event", callback_name)

    def _open(self) -> None:
        try:
            self._connection = databricks.sql.connect(
                server_hostname=self._endpoint.host,
                http_path=self._endpoint.http_path,
                access_token=self._access_token,
                catalog=self._endpoint.database,
                _socket_timeout=self._endpoint.connect_timeout_seconds,
                session_configuration={
                    "ansi_mode": "true",
                    "statement_timeout": f"{int(self._endpoint.request_timeout_seconds)}s",
                },
            )
        except DatabricksError as exc:
            self._emit("on_connect", exc)
            return
        except Exception as exc:
            self._emit("on_error", exc)
            return
        self._emit("on_connect", None)

    def _execute(self, text: str) -> None:
        row_count = 0
        try:
            with self._connection.cursor() as cursor:
                self._cursor = cursor
                cursor.execute(text)
                columns = [col[0] for col in cursor.description or []]
                while True:
                    batch = cursor.fetchmany(self._fetch_size)
                    if not batch:
                        break
                    for raw in batch:
                        self._emit("on_row", dict(zip(columns, raw)))
                        row_count += 1
        except DatabricksError as exc:
            self._emit("on_request_completed", exc, row_count)
            return
        except OSError as exc:
            self._emit("on_error", exc)
            return
        except Exception as exc:
            self._emit("on_request_completed", exc, row_count)
            return
        finally:
            self._cursor = None
        self._emit("on_request_completed", None, row_count)

    def _shutdown(self) -> None:
        try:
            if self._connection is not None:
                self._connection.close()
        except Exception as exc:
            self._log.warning("Closing the warehouse connection failed: %s", exc)
        finally:
            self._connection = None
            self._emit("on_end")


def warehouse_transport_factory(endpoint: EndpointDescriptor, credential: str) -> Transport:
    return WarehouseTransport(endpoint, credential)
