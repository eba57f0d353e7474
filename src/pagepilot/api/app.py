"""FastAPI app for PagePilot — REST API over the page-visit service."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from pagepilot.api.routes import router
from pagepilot.exceptions import InvalidRequestError, UnknownActionError
from pagepilot.session.service import PagePilotService
from pagepilot.settings import get_settings

logger = logging.getLogger(__name__)

try:
    from importlib.metadata import version

    VERSION = version("pagepilot")
except Exception:
    VERSION = "0.0.0"


def create_app(service: PagePilotService | None = None) -> FastAPI:
    """Build and return the FastAPI application.

    Args:
        service: Pre-built service (tests, embedding). When omitted, one is
            built from settings as the app starts up.
    """
    settings = get_settings()

    @asynccontextmanager
    async def lifespan(application: FastAPI) -> AsyncIterator[None]:
        svc = service or PagePilotService.from_settings(get_settings())
        application.state.service = svc
        await svc.start()
        try:
            yield
        finally:
            await svc.close()

    application = FastAPI(
        title="PagePilot",
        description="Automated page visits with persistent per-site identity.",
        version=VERSION,
        lifespan=lifespan,
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.api.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @application.exception_handler(InvalidRequestError)
    @application.exception_handler(UnknownActionError)
    async def _bad_request(request: Request, exc: Exception) -> JSONResponse:
        logger.info("Rejected %s %s: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=400, content={"error": str(exc)})

    application.include_router(router)
    return application


app = create_app()
