"""Tabular gateway package."""

# Note: the server package is not imported here so that the session and
# transport can be used without pulling in FastAPI:
# from tabular_gateway.session import QuerySession
# from tabular_gateway.server import main

__all__ = [
    "config",
    "models",
    "session",
    "server",
]
