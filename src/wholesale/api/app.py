"""Wholesale FastAPI application.

Processes commands synchronously via HTTP. Each request runs inside the
wholesale domain context and carries a request id that is bound into every
log line it produces.

Usage:
    uvicorn wholesale.server:create_server --factory --host 0.0.0.0 --port 8000
"""

from uuid import uuid4

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from wholesale.api.errors import register_error_handlers
from wholesale.api.routes import notification_router, order_router, product_router
from wholesale.domain import wholesale
from wholesale.utils.logging import add_context, clear_context

logger = structlog.get_logger(__name__)


def create_app() -> FastAPI:
    app = FastAPI(
        title="Wholesale API",
        description="B2B wholesale core: inventory, order lifecycle and notifications",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def domain_context_middleware(request: Request, call_next):
        """Push the wholesale domain context and a request id for each request."""
        request_id = request.headers.get("x-request-id") or str(uuid4())
        request.state.request_id = request_id
        add_context(request_id=request_id, path=request.url.path, method=request.method)
        try:
            with wholesale.domain_context():
                response = await call_next(request)
        finally:
            clear_context()
        response.headers["X-Request-ID"] = request_id
        return response

    register_error_handlers(app)

    app.include_router(product_router)
    app.include_router(order_router)
    app.include_router(notification_router)

    @app.get("/health")
    async def health():
        return JSONResponse(content={"status": "ok", "domain": wholesale.name})

    return app
