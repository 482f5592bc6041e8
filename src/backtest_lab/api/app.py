"""FastAPI application factory.

Run with::

    uvicorn backtest_lab.api.app:create_app --factory --port 8000
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from backtest_lab.api.routes import router
from backtest_lab.config.loader import default_config
from backtest_lab.config.models import AppConfig
from backtest_lab.monitoring.logs import configure_logging
from backtest_lab.service.backtest_service import BacktestService

logger = logging.getLogger(__name__)

REQUEST_SOURCES = ("body", "query", "path")


def format_validation_errors(errors: list) -> str:
    """Flatten request validation errors into one client message."""
    parts = []
    for error in errors:
        loc = [str(item) for item in error.get("loc", ())]
        if loc and loc[0] in REQUEST_SOURCES:
            loc = loc[1:]
        message = error.get("msg", "invalid value")
        parts.append(f"{'.'.join(loc)}: {message}" if loc else message)
    return "Invalid request: " + ("; ".join(parts) if parts else "validation failed")


def create_app(service: Optional[BacktestService] = None, config: Optional[AppConfig] = None) -> FastAPI:
    if config is None:
        config = service.config if service is not None else default_config()
    configure_logging(config.monitoring.log_level)
    if service is None:
        service = BacktestService(config=config)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        logger.info("%s API starting", config.api.title)
        yield
        close = getattr(service.provider, "close", None)
        if close is not None:
            await close()
        logger.info("%s API stopped", config.api.title)

    app = FastAPI(title=config.api.title, version=config.version, lifespan=lifespan)
    app.state.service = service

    @app.exception_handler(RequestValidationError)
    async def invalid_request(request: Request, exc: RequestValidationError) -> JSONResponse:
        message = format_validation_errors(exc.errors())
        logger.warning("Rejected %s %s: %s", request.method, request.url.path, message)
        return JSONResponse(status_code=400, content={"success": False, "error": message})

    @app.exception_handler(Exception)
    async def unhandled_error(request: Request, exc: Exception) -> JSONResponse:
        logger.error("Unhandled error on %s %s: %s", request.method, request.url.path, exc, exc_info=exc)
        return JSONResponse(status_code=500, content={"success": False, "error": str(exc) or "Internal server error"})

    @app.get("/health")
    async def health() -> dict:
        return {"status": "ok", "strategies": len(service.registry.names())}

    app.include_router(router, prefix=config.api.prefix, tags=["backtest"])
    return app
