"""
FastAPI application entry point for the stories backend.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from stories_backend.config import get_settings
from stories_backend.errors import InternalError, StoriesError
from stories_backend.routes import router

logger = logging.getLogger(__name__)


async def stories_error_handler(request: Request, exc: StoriesError) -> JSONResponse:
    if isinstance(exc, InternalError):
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return JSONResponse(status_code=exc.status_code, content={"detail": "internal server error"})
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


def create_app() -> FastAPI:
    settings = get_settings()
    logging.basicConfig(level=settings.log_level.upper())
    app = FastAPI(title="Stories Backend (FastAPI)", version="0.1.0")
    app.add_exception_handler(StoriesError, stories_error_handler)
    app.include_router(router, prefix=settings.api_prefix)
    return app


app = create_app()
