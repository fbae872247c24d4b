"""FastAPI application factory."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from paye_engine import __version__
from paye_engine.api.routes import (
    health_router,
    payroll_router,
    records_router,
    reports_router,
    tax_years_router,
)
from paye_engine.database import dispose_db, init_db
from paye_engine.errors import (
    CalculationError,
    ConfigurationError,
    DuplicateError,
    ImmutableRecordError,
    PayeEngineError,
    ReportDataError,
    ValidationError,
)

logger = logging.getLogger(__name__)

ERROR_STATUS: dict[type[PayeEngineError], int] = {
    ValidationError: 422,
    ConfigurationError: 422,
    CalculationError: 422,
    DuplicateError: status.HTTP_409_CONFLICT,
    ImmutableRecordError: status.HTTP_409_CONFLICT,
    ReportDataError: status.HTTP_404_NOT_FOUND,
}


def status_for(exc: PayeEngineError) -> int:
    for error_type, code in ERROR_STATUS.items():
        if isinstance(exc, error_type):
            return code
    return status.HTTP_400_BAD_REQUEST


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    init_db()
    yield
    await dispose_db()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="PAYE Engine API",
        description="South African PAYE, UIF and SDL payroll tax engine",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(PayeEngineError)
    async def engine_exception_handler(
        request: Request, exc: PayeEngineError
    ) -> JSONResponse:
        """Map engine errors to JSON bodies carrying their context."""
        return JSONResponse(status_code=status_for(exc), content=exc.to_dict())

    @app.exception_handler(Exception)
    async def general_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        """Handle unexpected exceptions."""
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "detail": "An unexpected error occurred",
                "code": "INTERNAL_ERROR",
            },
        )

    app.include_router(health_router)
    app.include_router(tax_years_router, prefix="/api/v1")
    app.include_router(payroll_router, prefix="/api/v1")
    app.include_router(records_router, prefix="/api/v1")
    app.include_router(reports_router, prefix="/api/v1")

    return app


# Default app instance for uvicorn
app = create_app()
