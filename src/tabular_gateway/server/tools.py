"""MCP tools exposed by the tabular gateway.

Tools read the caller's bearer token from the headers captured by the
request middleware, so MCP clients authenticate the same way HTTP
callers do.
"""

from typing import Any

from fastapi.encoders import jsonable_encoder

from ..auth import parse_bearer_token
from ..service import TabularQueryService
from .utils import header_store, new_request_id, rows_or_raise


def load_tools(mcp_server: Any, service: TabularQueryService) -> None:
    """Register all MCP tools with the server.

    Args:
        mcp_server: The FastMCP server instance to register tools with
        service: TabularQueryService running the configured statement
    """

    @mcp_server.tool()
    async def fetch_tabular_data(request_id: str | None = None) -> dict[str, Any]:
        """Run the configured query against the tabular server as the calling user.

        Args:
            request_id: Optional request ID for tracing

        Returns:
            dict: Rows in server order and the row count
        """
        token = parse_bearer_token(header_store.get().get("authorization"))
        outcome = await service.fetch(token, new_request_id(request_id))
        rows = rows_or_raise(outcome)
        return {
            "rows": jsonable_encoder(list(rows)),
            "row_count": len(rows),
        }
