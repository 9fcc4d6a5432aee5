"""
Integration tests for the SQL warehouse transport.

The driver is patched out; these tests check that the transport reports
handshake, rows, completion and drain through the session correctly.
"""

import asyncio
import threading
from unittest.mock import MagicMock, patch

import pytest
from databricks.sql.exc import Error as DatabricksError

from tabular_gateway.errors import ConfigError, QueryError
from tabular_gateway.models import EndpointDescriptor, Failure, FailureKind, Success
from tabular_gateway.session import QuerySession
from tabular_gateway.transport import WarehouseTransport, warehouse_transport_factory


def create_endpoint(**overrides) -> EndpointDescriptor:
    """Create an endpoint descriptor with typical settings."""
    values = dict(
        host="test.cloud.databricks.com",
        database="main",
        http_path="/sql/1.0/warehouses/test",
        connect_timeout_seconds=5,
        request_timeout_seconds=5,
    )
    values.update(overrides)
    return EndpointDescriptor(**values)


def mock_driver(mock_connect: MagicMock, batches: list) -> tuple[MagicMock, MagicMock]:
    mock_cursor = MagicMock()
    mock_cursor.description = [("category",), ("total",)]
    mock_cursor.fetchmany.side_effect = [*batches, []]
    mock_connection = MagicMock()
    mock_connection.cursor.return_value.__enter__.return_value = mock_cursor
    mock_connect.return_value = mock_connection
    return mock_connection, mock_cursor


class TestWarehouseTransport:
    """Test suite for the warehouse transport driven by a query session."""

    @pytest.mark.asyncio
    async def test_rows_follow_driver_order(self) -> None:
        """Rows from several fetch batches keep their order and column names."""
        with patch("tabular_gateway.transport.warehouse.databricks.sql.connect") as mock_connect:
            mock_connection, mock_cursor = mock_driver(
                mock_connect, [[("Bikes", 10), ("Clothing", 3)], [("Components", 7)]]
            )

            outcome = await QuerySession(warehouse_transport_factory).run(
                create_endpoint(), "user-token", "SELECT 1"
            )

        assert outcome == Success(
            (
                {"category": "Bikes", "total": 10},
                {"category": "Clothing", "total": 3},
                {"category": "Components", "total": 7},
            )
        )
        kwargs = mock_connect.call_args.kwargs
        assert kwargs["server_hostname"] == "test.cloud.databricks.com"
        assert kwargs["http_path"] == "/sql/1.0/warehouses/test"
        assert kwargs["access_token"] == "user-token"
        assert kwargs["catalog"] == "main"
        mock_cursor.execute.assert_called_once_with("SELECT 1")
        mock_connection.close.assert_called_once()

    @pytest.mark.asyncio
    async def test_handshake_failure(self) -> None:
        """A driver error while connecting is a connection failure and no query runs."""
        with patch("tabular_gateway.transport.warehouse.databricks.sql.connect") as mock_connect:
            mock_connect.side_effect = DatabricksError("invalid access token")

            outcome = await QuerySession(warehouse_transport_factory).run(
                create_endpoint(), "user-token", "SELECT 1"
            )

        assert isinstance(outcome, Failure)
        assert outcome.kind is FailureKind.CONNECTION
        assert "invalid access token" in outcome.message

    @pytest.mark.asyncio
    async def test_query_failure_closes_connection(self) -> None:
        """A driver error during execution is a query failure and the connection is closed."""
        with patch("tabular_gateway.transport.warehouse.databricks.sql.connect") as mock_connect:
            mock_connection, mock_cursor = mock_driver(mock_connect, [])
            mock_cursor.execute.side_effect = DatabricksError("syntax error at SELEC")

            outcome = await QuerySession(warehouse_transport_factory).run(
                create_endpoint(), "user-token", "SELEC 1"
            )

        assert isinstance(outcome, Failure)
        assert outcome.kind is FailureKind.QUERY
        assert "syntax error" in outcome.message
        mock_connection.close.assert_called_once()

    @pytest.mark.asyncio
    async def test_non_driver_connect_error_is_reported(self) -> None:
        """An unexpected exception while connecting surfaces with its own message."""
        with patch("tabular_gateway.transport.warehouse.databricks.sql.connect") as mock_connect:
            mock_connect.side_effect = ValueError("bad http_path format")

            outcome = await asyncio.wait_for(
                QuerySession(warehouse_transport_factory).run(
                    create_endpoint(), "user-token", "SELECT 1"
                ),
                2,
            )

        assert outcome == Failure(FailureKind.CONNECTION, "bad http_path format")

    @pytest.mark.asyncio
    async def test_socket_error_while_connecting(self) -> None:
        with patch("tabular_gateway.transport.warehouse.databricks.sql.connect") as mock_connect:
            mock_connect.side_effect = OSError("connection refused")

            outcome = await asyncio.wait_for(
                QuerySession(warehouse_transport_factory).run(
                    create_endpoint(), "user-token", "SELECT 1"
                ),
                2,
            )

        assert outcome == Failure(FailureKind.CONNECTION, "connection refused")

    @pytest.mark.asyncio
    async def test_non_driver_error_while_fetching_is_query_failure(self) -> None:
        """A row conversion error ends the request instead of waiting for the timeout."""
        with patch("tabular_gateway.transport.warehouse.databricks.sql.connect") as mock_connect:
            mock_connection, mock_cursor = mock_driver(mock_connect, [])
            mock_cursor.fetchmany.side_effect = ValueError("cannot convert DECIMAL(38,2)")

            outcome = await asyncio.wait_for(
                QuerySession(warehouse_transport_factory).run(
                    create_endpoint(), "user-token", "SELECT 1"
                ),
                2,
            )

        assert outcome == Failure(FailureKind.QUERY, "cannot convert DECIMAL(38,2)")
        mock_connection.close.assert_called_once()

    @pytest.mark.asyncio
    async def test_request_timeout_cancels_running_statement(self) -> None:
        """Closing cancels a blocked fetch so the connection is closed before the outcome."""
        cancelled = threading.Event()

        def blocking_fetch(size):
            cancelled.wait(5)
            raise DatabricksError("Query was cancelled")

        with patch("tabular_gateway.transport.warehouse.databricks.sql.connect") as mock_connect:
            mock_connection, mock_cursor = mock_driver(mock_connect, [])
            mock_cursor.fetchmany.side_effect = blocking_fetch
            mock_cursor.cancel.side_effect = cancelled.set
            closed_at_delivery = []
            session = QuerySession(
                warehouse_transport_factory,
                on_complete=lambda outcome: closed_at_delivery.append(
                    mock_connection.close.called
                ),
                close_grace_seconds=3,
            )

            outcome = await asyncio.wait_for(
                session.run(
                    create_endpoint(request_timeout_seconds=0.1), "user-token", "SELECT 1"
                ),
                4,
            )

        assert outcome == Failure(FailureKind.QUERY, "Request timed out after 0.1s")
        mock_cursor.cancel.assert_called_once()
        assert closed_at_delivery == [True]

    @pytest.mark.asyncio
    async def test_empty_result(self) -> None:
        with patch("tabular_gateway.transport.warehouse.databricks.sql.connect") as mock_connect:
            mock_driver(mock_connect, [])

            outcome = await QuerySession(warehouse_transport_factory).run(
                create_endpoint(), "user-token", "SELECT 1"
            )

        assert outcome == Success(())

    @pytest.mark.asyncio
    async def test_unencrypted_endpoint_rejected_before_connecting(self) -> None:
        with patch("tabular_gateway.transport.warehouse.databricks.sql.connect") as mock_connect:
            outcome = await QuerySession(warehouse_transport_factory).run(
                create_endpoint(encrypt=False), "user-token", "SELECT 1"
            )

        assert outcome.kind is FailureKind.CONFIGURATION
        mock_connect.assert_not_called()

    def test_missing_http_path_rejected(self) -> None:
        with pytest.raises(ConfigError):
            WarehouseTransport(create_endpoint(http_path=""), "user-token")

    def test_submit_before_connect_raises(self) -> None:
        transport = WarehouseTransport(create_endpoint(), "user-token")
        with pytest.raises(QueryError):
            transport.submit_query("SELECT 1")
