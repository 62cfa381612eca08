"""
FastAPI Application Entry Point.

Creates the tts-api application: structured logging, the request-id
middleware, the 400 handler for malformed query parameters, and table
creation on startup.

Usage:
    uvicorn tts_api.main:app --host 0.0.0.0 --port 8000

Environment Variables:
    TTS_API_SETTINGS: Settings file (default config/settings.yaml)
    TTS_API_SKIP_INIT_DB: Set to 1 to skip table creation on startup
"""

from __future__ import annotations

import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from tts_api.api.dependencies import get_db_engine
from tts_api.api.routes import new_request_id, router
from tts_api.core.errors import ValidationError
from tts_api.core.logging import configure_logging, get_logger, info
from tts_api.store.database import init_db

_LOG = get_logger("tts-api.main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    if os.getenv("TTS_API_SKIP_INIT_DB") == "1":
        info(_LOG, "init_db_skipped", reason="TTS_API_SKIP_INIT_DB=1")
    else:
        init_db(get_db_engine())
    yield


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        FastAPI: Configured application instance ready to serve requests.
    """
    configure_logging()

    app = FastAPI(title="tts-api", lifespan=lifespan)

    @app.middleware("http")
    async def request_id_middleware(request: Request, call_next):
        # Routes bind this id to their own logging context
        request.state.request_id = new_request_id()
        response = await call_next(request)
        response.headers["X-Request-Id"] = request.state.request_id
        return response

    @app.exception_handler(RequestValidationError)
    async def query_validation_handler(request: Request, exc: RequestValidationError):
        rid = getattr(request.state, "request_id", None) or new_request_id()
        fields = [".".join(str(p) for p in err.get("loc", ())) for err in exc.errors()]
        body = ValidationError("Missing or malformed query parameters.", {"fields": fields}).to_dict()
        body["request_id"] = rid
        return JSONResponse(status_code=400, content=body, headers={"X-Request-Id": rid})

    app.include_router(router)
    return app


# Global application instance for ASGI servers (uvicorn, gunicorn, etc.)
app = create_app()
