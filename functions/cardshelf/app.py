"""
FastAPI application entry point for the card template service.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from cardshelf.config import get_settings
from cardshelf.dependencies import shutdown_controllers
from cardshelf.errors import CardShelfError, CreateFailed, ValidationError
from cardshelf.routes import router
from cardshelf.schemas import ErrorResponse

logger = logging.getLogger(__name__)


async def handle_cardshelf_error(request: Request, exc: CardShelfError):
    body = ErrorResponse(detail=exc.message)
    if isinstance(exc, ValidationError):
        body.field = exc.field
    if isinstance(exc, CreateFailed):
        body.record_id = exc.record_id
        body.stage = exc.stage.value if exc.stage else None
    if exc.status_code >= 500:
        logger.warning("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=exc.status_code, content=body.model_dump(exclude_none=True)
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    shutdown_controllers()


def create_app() -> FastAPI:
    settings = get_settings()
    logging.basicConfig(level=settings.log_level)
    app = FastAPI(
        title="Card Template Shelf", version="0.1.0", lifespan=lifespan
    )
    app.include_router(router, prefix=settings.api_prefix)
    app.add_exception_handler(CardShelfError, handle_cardshelf_error)
    return app


app = create_app()
