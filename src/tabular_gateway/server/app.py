"""FastAPI application configuration for the tabular gateway.

This module sets up the application by:
1. Loading configuration and logging
2. Creating the query service and registering the MCP tools
3. Combining MCP routes with the HTTP data route
4. Capturing request headers so MCP tools can read the caller's token
"""

import os
from pathlib import Path
from typing import Optional

from fastapi import Depends, FastAPI, Header, Request
from fastapi.responses import JSONResponse
from fastmcp import FastMCP

from ..auth import bearer_token
from ..config import load_config
from ..errors import AuthHeaderError
from ..logging_utils import configure_logging
from ..models import Failure, FailureKind
from ..service import TabularQueryService
from ..transport import TransportFactory, warehouse_transport_factory
from .tools import load_tools
from .utils import header_store, new_request_id, outcome_response


def _config_path() -> Path:
    """Get the configuration file path from environment or default."""
    path = os.environ.get("TABULAR_GATEWAY_CONFIG", "config.example.yml")
    return Path(path)


def create_app(
    config_path: Path | None = None,
    transport_factory: TransportFactory = warehouse_transport_factory,
) -> FastAPI:
    """Create and configure the gateway application.

    Args:
        config_path: Optional path to config file. If None, uses default from environment.
        transport_factory: Builds one transport per query session.

    Returns:
        FastAPI: the combined HTTP and MCP application
    """
    if config_path is None:
        config_path = _config_path()

    config = load_config(config_path)
    configure_logging(config.observability.log_level)

    service = TabularQueryService(config, transport_factory)

    mcp_server = FastMCP(name="tabular-gateway")
    load_tools(mcp_server, service)
    mcp_app = mcp_server.http_app()

    app = FastAPI(
        title="Tabular Gateway",
        description="Runs the configured query against a tabular data server as the calling user",
        version="0.1.0",
        lifespan=mcp_app.lifespan,
    )

    @app.get("/", include_in_schema=False)
    async def health_check() -> dict:
        """Health check endpoint."""
        return {"message": "Tabular Gateway is running", "status": "healthy"}

    @app.post("/api/tabular-data")
    async def tabular_data(
        token: str = Depends(bearer_token),
        x_request_id: Optional[str] = Header(default=None),
    ) -> JSONResponse:
        """Run the configured query and return its rows as a JSON array."""
        outcome = await service.fetch(token, new_request_id(x_request_id))
        return outcome_response(outcome)

    combined_app = FastAPI(
        title="Tabular Gateway App",
        routes=[
            *mcp_app.routes,
            *app.routes,
        ],
        lifespan=mcp_app.lifespan,
    )
    combined_app.state.service = service

    @combined_app.exception_handler(AuthHeaderError)
    async def auth_header_error(request: Request, exc: AuthHeaderError) -> JSONResponse:
        return outcome_response(Failure(FailureKind.AUTH_HEADER, str(exc)))

    # Middleware to capture the user token from the request headers
    @combined_app.middleware("http")
    async def capture_headers(request: Request, call_next):
        header_store.set(dict(request.headers))
        return await call_next(request)

    return combined_app
