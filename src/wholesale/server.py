"""HTTP server entry point for the wholesale core.

Usage:
    uvicorn wholesale.server:create_server --factory --host 0.0.0.0 --port 8000
    wholesale-server --port 8000
"""

import argparse

import uvicorn
from fastapi import FastAPI

from wholesale.api.app import create_app
from wholesale.utils.logging import configure_logging


def create_server() -> FastAPI:
    """Initialise the domain and logging, then build the FastAPI app."""
    from wholesale.domain import wholesale

    configure_logging()
    wholesale.init()
    return create_app()


def main():
    parser = argparse.ArgumentParser(description="Wholesale API server")
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--port", type=int, default=8000)
    parser.add_argument("--reload", action="store_true")
    args = parser.parse_args()

    uvicorn.run(
        "wholesale.server:create_server",
        factory=True,
        host=args.host,
        port=args.port,
        reload=args.reload,
    )


if __name__ == "__main__":
    main()
