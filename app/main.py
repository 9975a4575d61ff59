from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from app.api import router
from app.simulation import router as simulation_router
from app.web import router as web_router
from logging_config import configure_logging
from services.simulator import build_default_controller
from services.sweeper import BufferSweeper
from settings import get_settings


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    settings = get_settings()
    controller = build_default_controller()
    sweeper = None
    if controller.buffer is not None:
        sweeper = BufferSweeper(
            controller.buffer,
            controller.sink.submit,
            interval=settings.buffer_flush_interval_seconds,
        )
        sweeper.start()
    try:
        yield
    finally:
        if sweeper is not None:
            sweeper.stop()
        controller.shutdown()
        build_default_controller.cache_clear()


async def request_validation_error_handler(
    _request: Request,
    exc: RequestValidationError,
) -> JSONResponse:
    """Malformed request bodies and parameters are client errors like any other: 400."""
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": jsonable_encoder(exc.errors())},
    )


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(
        title="Huerto Telemetry",
        description="Simulated farm sensor telemetry with ingestion, queries and offline buffering.",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.add_exception_handler(RequestValidationError, request_validation_error_handler)
    app.include_router(router)
    app.include_router(simulation_router)
    app.include_router(web_router)
    return app


app = create_app()
