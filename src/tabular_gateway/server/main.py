"""Main entry point for the tabular gateway.

Installed as the ``tabular-gateway`` console script. The server uses uvicorn
with the application factory, so configuration is loaded when the worker
starts rather than at import time.
"""

import argparse

import uvicorn


def main() -> None:
    """Start the gateway using uvicorn.

    Configuration:
        - host: Configurable via --host argument (default: "0.0.0.0")
        - port: Configurable via --port argument (default: 8000)

    Usage:
        Run with default port: tabular-gateway
        Run with custom port: tabular-gateway --port 8080
    """
    parser = argparse.ArgumentParser(description="Start the tabular gateway")
    parser.add_argument(
        "--host", default="0.0.0.0", help="Interface to bind (default: 0.0.0.0)"
    )
    parser.add_argument(
        "--port", type=int, default=8000, help="Port to run the server on (default: 8000)"
    )
    args = parser.parse_args()

    uvicorn.run(
        "tabular_gateway.server.app:create_app",
        factory=True,
        host=args.host,
        port=args.port,
    )


if __name__ == "__main__":
    main()
