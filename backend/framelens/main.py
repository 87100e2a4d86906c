"""
Framelens Backend — HTTP Entry Point

Serves the REST endpoints under /api/figma and the MCP server over SSE at
/mcp from one ASGI app.
Run with: uvicorn framelens.main:app   (or the `framelens` CLI)
"""

import time

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from framelens.api import figma
from framelens.config import log, settings
from framelens.mcp_server import mcp

APP_VERSION = "0.1.0"


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Tag each REST call with X-Request-Id (caller's, or "none") and log its outcome."""

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-Id", "none")
        start = time.perf_counter()
        response = await call_next(request)
        log(
            "INFO",
            "request handled",
            method=request.method,
            path=request.url.path,
            status=response.status_code,
            request_id=request_id,
            duration_ms=int((time.perf_counter() - start) * 1000),
        )
        response.headers["X-Request-Id"] = request_id
        return response


def create_app() -> FastAPI:
    """REST routes, health check and the MCP SSE mount, behind CORS from settings."""
    app = FastAPI(
        title="Framelens API",
        version=APP_VERSION,
        description="Compact, deduplicated Figma design context for tool-calling clients.",
    )

    origins = [origin.strip() for origin in settings.cors_origins.split(",")]
    # Browsers reject credentials with a wildcard origin
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=origins != ["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestIdMiddleware)

    app.include_router(figma.router)

    @app.get("/api/health")
    async def health_check():
        return {"status": "ok", "version": APP_VERSION}

    # GET /mcp/sse, POST /mcp/messages/
    app.mount("/mcp", mcp.sse_app())

    return app


app = create_app()
