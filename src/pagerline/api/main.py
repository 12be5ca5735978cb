from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from pagerline.api.routes import health, oncall, paging
from pagerline.config import get_settings
from pagerline.core.errors import PagerlineError
from pagerline.db.session import dispose_engine, init_engine
from pagerline.logging import configure_logging

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    settings = get_settings()
    configure_logging()
    init_engine(settings)
    yield
    await dispose_engine()


async def pagerline_error_handler(request: Request, exc: PagerlineError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("request_failed", path=request.url.path, error=exc.message, **exc.details)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


def create_app() -> FastAPI:
    settings = get_settings()

    app = FastAPI(
        title="Pagerline API",
        version="0.1.0",
        docs_url=f"{settings.api_prefix}/docs",
        openapi_url=f"{settings.api_prefix}/openapi.json",
        lifespan=lifespan,
    )

    if settings.cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=[str(origin) for origin in settings.cors_origins],
            allow_methods=["*"],
            allow_headers=["*"],
            allow_credentials=True,
        )

    app.add_exception_handler(PagerlineError, pagerline_error_handler)  # type: ignore[arg-type]
    app.include_router(oncall.router, prefix=settings.api_prefix, tags=["oncall"])
    app.include_router(paging.router, prefix=settings.api_prefix, tags=["paging"])
    app.include_router(health.router, tags=["health"])
    return app


app = create_app()

try:
    from mangum import Mangum

    handler: Mangum | None = Mangum(app)
except ImportError:  # pragma: no cover
    handler = None
